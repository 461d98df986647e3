"""
Routes an origin response to the rewrite strategy for its content type.

    text/html          streaming markup transform with every tag rewriter
    text/css           full body, global url(...) replacement
    application/json   markup in the "data" field, <img> rewriter only

Anything else, a missing content type, a non-200 status or an
administrative path leaves the response exactly as the origin sent it.
All strategies fail open: on error the original body is returned.
"""

import codecs
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, Optional

import httpx
from opentelemetry import trace

from image_optimizer import metrics
from image_optimizer.config.site_config import SiteConfig
from image_optimizer.rewrite.css import rewrite_css_urls
from image_optimizer.rewrite.errors import UnrecognizedFormatError, UpstreamFailureError
from image_optimizer.rewrite.handlers import build_markup_rewriter
from image_optimizer.rewrite.html_stream import HTMLRewriter
from image_optimizer.vars import BYPASS_PATHS

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

MARKUP = "markup"
STYLESHEET = "stylesheet"
EMBEDDED_MARKUP = "embedded_markup"

# JSON field carrying rendered markup and the token that marks it worth rewriting
EMBEDDED_MARKUP_FIELD = "data"
EMBEDDED_MARKUP_TOKEN = "<img"


async def iter_bytes(data: bytes) -> AsyncIterator[bytes]:
    yield data


@dataclass
class OriginResponse:
    """Status, headers and a streamed body, in or out of the engine."""

    status_code: int
    headers: httpx.Headers
    body: AsyncIterator[bytes]
    rewritten: bool = False

    @classmethod
    def from_bytes(cls, status_code: int, headers, content: bytes) -> "OriginResponse":
        return cls(status_code, httpx.Headers(headers), iter_bytes(content))

    async def read(self) -> bytes:
        return b"".join([chunk async for chunk in self.body])


def charset_of(content_type: Optional[str]) -> str:
    """Charset declared in a content type, utf-8 when absent or unknown."""
    for param in (content_type or "").split(";")[1:]:
        name, _, value = param.strip().partition("=")
        if name.strip().lower() == "charset" and value:
            charset = value.strip().strip("\"'")
            try:
                return codecs.lookup(charset).name
            except LookupError:
                logger.warning(f"[Dispatcher] Unknown charset {charset}, using utf-8")
                break
    return "utf-8"


def is_bypassed_path(path: Optional[str], bypass_paths: Iterable[str] = BYPASS_PATHS) -> bool:
    return bool(path) and any(p in path for p in bypass_paths)


def select_strategy(content_type: Optional[str]) -> str:
    """Map a content type to a strategy name or raise UnrecognizedFormatError."""
    if content_type is None:
        raise UnrecognizedFormatError(content_type)
    media_type = content_type.strip().lower()
    if media_type.startswith("text/html"):
        return MARKUP
    if media_type.startswith("text/css"):
        return STYLESHEET
    if media_type.startswith("application/json"):
        return EMBEDDED_MARKUP
    raise UnrecognizedFormatError(content_type)


def check_status(status_code: int) -> None:
    if status_code != 200:
        raise UpstreamFailureError(status_code)


# Strategies


async def rewrite_markup_stream(
    chunks: AsyncIterator[bytes], rewriter: HTMLRewriter, charset: str = "utf-8"
) -> AsyncIterator[bytes]:
    """
    Rewrite a markup body chunk by chunk.

    Bytes that cannot be decoded survive untouched (surrogateescape). If a
    rewriter fails, the unparsed input and every remaining chunk are sent
    through unchanged instead of breaking the response.
    """
    decoder = codecs.getincrementaldecoder(charset)(errors="surrogateescape")
    transform = rewriter.transform()
    failed = False

    async for chunk in chunks:
        if failed:
            yield chunk
            continue
        try:
            output = transform.write(decoder.decode(chunk))
        except Exception as e:
            logger.error(f"[Dispatcher] Markup rewrite failed, passing the rest through: {e}", exc_info=True)
            failed = True
            yield (transform.pending_input + decoder.decode(b"", final=True)).encode(
                charset, errors="surrogateescape"
            )
            continue
        if output:
            yield output.encode(charset, errors="surrogateescape")

    if failed:
        return
    try:
        output = transform.write(decoder.decode(b"", final=True)) + transform.end()
    except Exception as e:
        logger.error(f"[Dispatcher] Markup rewrite failed at end of document: {e}", exc_info=True)
        output = transform.pending_input
    if output:
        yield output.encode(charset, errors="surrogateescape")


def rewrite_markup(markup: str, config: SiteConfig, tags=None) -> str:
    """Rewrite a complete markup string (optionally with a subset of tag rewriters)."""
    return build_markup_rewriter(config, tags).rewrite(markup)


def rewrite_stylesheet(css: str, config: SiteConfig) -> str:
    return rewrite_css_urls(css, config)


def rewrite_embedded_markup(payload: str, config: SiteConfig) -> Optional[str]:
    """
    Rewrite images in the markup carried by a JSON payload's "data" field.

    Returns:
        The re-serialised JSON, or None when the payload has nothing to rewrite.
    """
    try:
        document = json.loads(payload)
    except ValueError:
        logger.debug("[Dispatcher] JSON body could not be parsed, leaving untouched")
        return None

    if not isinstance(document, dict):
        return None
    markup = document.get(EMBEDDED_MARKUP_FIELD)
    if not isinstance(markup, str) or EMBEDDED_MARKUP_TOKEN not in markup:
        logger.debug("[Dispatcher] No image detected in the JSON response")
        return None

    document[EMBEDDED_MARKUP_FIELD] = rewrite_markup(markup, config, tags=("img",))
    return json.dumps(document, ensure_ascii=False, separators=(",", ":"))


# Entry point


async def rewrite_response(response: OriginResponse, config: SiteConfig, path: str) -> OriginResponse:
    """
    Apply the rewrite strategy matching ``response`` and return the result.

    Args:
        response: The origin response
        config: Configuration of the requested site
        path: Request path, used for the administrative path bypass

    Returns:
        OriginResponse: the original object when nothing is rewritten,
        otherwise a new one with ``rewritten`` set.
    """
    with tracer.start_as_current_span("rewrite_response") as span:
        try:
            check_status(response.status_code)
            content_type = response.headers.get("content-type")
            strategy = select_strategy(content_type)
        except UpstreamFailureError as e:
            logger.warning(f"[Dispatcher] {e}")
            span.set_attribute("rewrite.strategy", "passthrough")
            metrics.record_response("none", metrics.PASSTHROUGH)
            return response
        except UnrecognizedFormatError as e:
            logger.debug(f"[Dispatcher] {e}, passing through")
            span.set_attribute("rewrite.strategy", "passthrough")
            metrics.record_response("none", metrics.PASSTHROUGH)
            return response

        if is_bypassed_path(path):
            logger.info(f"[Dispatcher] Bypassing page by path: {path}")
            span.set_attribute("rewrite.strategy", "passthrough")
            metrics.record_response(strategy, metrics.BYPASSED)
            return response

        span.set_attribute("rewrite.strategy", strategy)
        charset = charset_of(content_type)

        if strategy == MARKUP:
            try:
                rewriter = build_markup_rewriter(config)
            except Exception as e:
                logger.error(f"[Dispatcher] Cannot set up markup rewriting, passing through: {e}", exc_info=True)
                span.set_attribute("rewrite.error", str(e))
                metrics.record_response(strategy, metrics.FAILED)
                return response
            headers = response.headers.copy()
            headers.pop("content-length", None)
            metrics.record_response(strategy, metrics.REWRITTEN)
            return OriginResponse(
                response.status_code,
                headers,
                rewrite_markup_stream(response.body, rewriter, charset),
                rewritten=True,
            )

        original = await response.read()
        text = original.decode(charset, errors="surrogateescape")
        headers = response.headers.copy()
        body = None
        outcome = metrics.UNCHANGED
        try:
            if strategy == STYLESHEET:
                result = rewrite_stylesheet(text, config)
            else:
                result = rewrite_embedded_markup(text, config)
                headers.pop("content-length", None)
            if result is not None and result != text:
                body = result.encode(charset, errors="surrogateescape")
                outcome = metrics.REWRITTEN
        except Exception as e:
            logger.error(f"[Dispatcher] {strategy} rewrite failed, returning original body: {e}", exc_info=True)
            span.set_attribute("rewrite.error", str(e))
            body = None
            outcome = metrics.FAILED

        metrics.record_response(strategy, outcome)
        if body is None:
            return OriginResponse(response.status_code, response.headers, iter_bytes(original))
        return OriginResponse(response.status_code, headers, iter_bytes(body), rewritten=True)
