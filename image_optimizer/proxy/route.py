import logging
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from opentelemetry import trace
from starlette.background import BackgroundTask

from image_optimizer.config.site_config import get_config_for_domain
from image_optimizer.rewrite.dispatcher import OriginResponse, rewrite_response
from image_optimizer.vars import ORIGIN_SERVER_URL, PROXY_TIMEOUT

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Framing headers that no longer hold once a body has been rewritten
REWRITTEN_BODY_HEADERS = {"content-length", "content-encoding"}


def get_target_url(request: Request) -> str:
    """Construct the origin URL for the incoming request."""
    path = request.url.path
    if not path.startswith("/"):
        path = "/" + path

    query_string = str(request.url.query)
    if query_string:
        path = f"{path}?{query_string}"

    return urljoin(ORIGIN_SERVER_URL + "/", path.lstrip("/"))


def prepare_headers(request: Request) -> Dict[str, str]:
    """
    Prepare headers for forwarding to the origin.

    Hop-by-hop headers are dropped, X-Forwarded-* headers are added and an
    uncompressed body is requested so it can be rewritten.
    """
    headers = {}
    for name, value in request.headers.items():
        if name.lower() not in HOP_BY_HOP_HEADERS:
            headers[name] = value

    client_ip = request.client.host if request.client else "unknown"
    existing_xff = headers.get("x-forwarded-for", "")
    headers["x-forwarded-for"] = f"{existing_xff}, {client_ip}".strip(", ")
    headers["x-forwarded-host"] = request.headers.get("host", "")
    headers["x-forwarded-proto"] = request.url.scheme
    headers["x-real-ip"] = client_ip

    # Drop any casing of accept-encoding before setting ours
    for name in [n for n in headers if n.lower() == "accept-encoding"]:
        del headers[name]
    headers["accept-encoding"] = "identity"

    return headers


def response_headers(headers: httpx.Headers, rewritten: bool) -> List[Tuple[bytes, bytes]]:
    """Raw response headers; repeated headers such as Set-Cookie are kept."""
    result = []
    for name, value in headers.multi_items():
        name_lower = name.lower()
        if name_lower in HOP_BY_HOP_HEADERS:
            continue
        if rewritten and name_lower in REWRITTEN_BODY_HEADERS:
            continue
        result.append((name_lower.encode("latin-1"), value.encode("latin-1")))
    return result


def _is_encoded(headers: httpx.Headers) -> bool:
    encoding = headers.get("content-encoding", "identity").strip().lower()
    return encoding not in ("", "identity")


def build_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(PROXY_TIMEOUT),
        follow_redirects=False,
    )


async def _close(upstream: Optional[httpx.Response], client: httpx.AsyncClient) -> None:
    if upstream is not None:
        await upstream.aclose()
    await client.aclose()


async def forward_to_origin(request: Request) -> StreamingResponse:
    """
    Forward the request to the origin and rewrite asset references in the
    response on the way back.

    Rewriting never blocks a response: status codes, content types and
    paths the engine does not handle are streamed back unchanged.
    """
    if not ORIGIN_SERVER_URL:
        raise HTTPException(
            status_code=503,
            detail="ORIGIN_SERVER_URL is not configured. Proxy is unavailable.",
        )

    with tracer.start_as_current_span("proxy_request") as span:
        target_url = get_target_url(request)
        span.set_attribute("proxy.target_url", target_url)
        span.set_attribute("proxy.method", request.method)

        logger.debug(f"[Proxy] {request.method} {request.url.path} -> {target_url}")

        headers = prepare_headers(request)
        body = await request.body()

        client = build_client()
        upstream = None
        try:
            upstream = await client.send(
                client.build_request(
                    method=request.method,
                    url=target_url,
                    headers=headers,
                    content=body,
                ),
                stream=True,
            )
        except httpx.TimeoutException as e:
            await _close(upstream, client)
            logger.error(f"[Proxy] Timeout for {target_url}: {e}")
            span.set_attribute("proxy.error", "timeout")
            raise HTTPException(status_code=504, detail="Gateway timeout")
        except httpx.ConnectError as e:
            await _close(upstream, client)
            logger.error(f"[Proxy] Failed to connect to origin {target_url}: {e}")
            span.set_attribute("proxy.error", "connection_failed")
            raise HTTPException(status_code=502, detail="Bad gateway - cannot connect to origin")
        except httpx.HTTPError as e:
            await _close(upstream, client)
            logger.error(f"[Proxy] Proxy error for {target_url}: {e}", exc_info=True)
            span.set_attribute("proxy.error", str(e))
            raise HTTPException(status_code=502, detail=f"Bad gateway: {str(e)}")

        span.set_attribute("proxy.status_code", upstream.status_code)

        origin = OriginResponse(
            status_code=upstream.status_code,
            headers=upstream.headers,
            body=upstream.aiter_raw(),
        )
        if request.method == "HEAD":
            # No body to rewrite; the origin's framing headers describe the GET body
            result = origin
        elif _is_encoded(upstream.headers):
            # The origin ignored our accept-encoding; compressed bodies pass through
            logger.debug(f"[Proxy] Encoded body from {target_url}, not rewriting")
            result = origin
        else:
            config = get_config_for_domain(request.url.hostname)
            try:
                result = await rewrite_response(origin, config, request.url.path)
            except httpx.HTTPError as e:
                await _close(upstream, client)
                logger.error(f"[Proxy] Failed reading origin body from {target_url}: {e}")
                span.set_attribute("proxy.error", str(e))
                raise HTTPException(status_code=502, detail=f"Bad gateway: {str(e)}")
            except Exception:
                await _close(upstream, client)
                raise

        span.set_attribute("proxy.rewritten", result.rewritten)

        response = StreamingResponse(
            result.body,
            status_code=result.status_code,
            background=BackgroundTask(_close, upstream, client),
        )
        response.raw_headers = response_headers(result.headers, result.rewritten)
        return response


# Register catch-all route for proxying
@router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"])
async def proxy_all(request: Request, path: str):
    """Catch-all route that proxies all requests to the origin."""
    return await forward_to_origin(request)
