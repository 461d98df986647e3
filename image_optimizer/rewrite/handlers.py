"""
Tag rewriters and the table that registers them.

Each rewriter only observes the tags it is registered for. There is no
shared base class; ``build_markup_rewriter`` wires the callbacks a rewriter
provides into an ``HTMLRewriter`` keyed by tag name.
"""

import logging
from typing import Callable, Dict, Optional, Tuple

from image_optimizer.config.site_config import SiteConfig
from image_optimizer.rewrite.attributes import (
    IMAGE_SOURCE_ATTRIBUTES,
    is_valid_asset,
    rewrite_attributes,
    rewrite_candidate_lists,
    rewrite_reference,
)
from image_optimizer.rewrite.css import rewrite_css_urls
from image_optimizer.rewrite.html_stream import Element, EndTag, HTMLRewriter, TextChunk
from image_optimizer.rewrite.patterns import EXPLICIT_SIZE
from image_optimizer.rewrite.style_buffer import BufferState, StyleBuffer

logger = logging.getLogger("uvicorn.error")

ICON_RELS = frozenset(
    {"icon", "shortcut icon", "apple-touch-icon", "apple-touch-icon-precomposed"}
)

# Stylesheet of the WordPress admin bar, never rewritten
ADMIN_BAR_MARKER = "#wpadminbar"

# Empty SVG filter container emitted by the block editor
# (https://github.com/WordPress/gutenberg/issues/38299)
HIDDEN_SVG_VIEWBOX = "0 0 0 0"
HIDDEN_SVG_STYLE = "visibility: hidden; position: absolute; left: -9999px; overflow: hidden;"

ULTIMATE_ADDONS_ATTRIBUTES = ("data-ultimate-bg", "data-image-id")


class ImageTagRewriter:
    """<img>: sources, candidate lists, lazy-load plugins and the loading hint."""

    def __init__(self, config: SiteConfig):
        self.config = config

    def element(self, element: Element) -> None:
        if not self.config.REWRITE_IMAGE_TAGS:
            return

        rewrite_attributes(
            element,
            self.config,
            IMAGE_SOURCE_ATTRIBUTES,
            width=element.get_attribute("width"),
            height=element.get_attribute("height"),
        )
        rewrite_candidate_lists(element, self.config)

        if self.config.IMAGE_LAZY_LOAD and not element.has_attribute("loading"):
            element.set_attribute("loading", "lazy")


class AnchorTagRewriter:
    """<a>: links straight to an image, mostly used by lightboxes."""

    def __init__(self, config: SiteConfig):
        self.config = config

    def element(self, element: Element) -> None:
        if not self.config.REWRITE_HREF_TAGS:
            return
        rewrite_attributes(element, self.config, ("href",), infer=False)


def largest_declared_size(sizes: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Pick the biggest "WxH" candidate of a ``sizes`` attribute."""
    best = None
    for match in EXPLICIT_SIZE.finditer(sizes or ""):
        width, height = match.group(1), match.group(2)
        area = int(width) * int(height)
        if best is None or area > best[0]:
            best = (area, width, height)
    if best is None:
        return None, None
    return best[1], best[2]


class LinkTagRewriter:
    """<link rel="icon">: favicons and touch icons, sized from ``sizes``."""

    def __init__(self, config: SiteConfig):
        self.config = config

    def element(self, element: Element) -> None:
        if not self.config.REWRITE_LINK_TAGS:
            return
        if element.get_attribute("rel") not in ICON_RELS:
            return

        href = element.get_attribute("href")
        if not is_valid_asset(href, self.config) or ".ico" in href:
            return

        width, height = largest_declared_size(element.get_attribute("sizes"))
        new_href = rewrite_reference(self.config, href, width, height)
        if new_href is not None:
            element.set_attribute("href", new_href)


class DivTagRewriter:
    """<div>: background images in ``style`` and Ultimate VC Addons attributes."""

    def __init__(self, config: SiteConfig):
        self.config = config

    def element(self, element: Element) -> None:
        if not self.config.REWRITE_DIV_TAGS:
            return

        style = element.get_attribute("style")
        if is_valid_asset(style, self.config):
            new_style = rewrite_css_urls(style, self.config)
            if new_style != style:
                element.set_attribute("style", new_style)

        rewrite_attributes(element, self.config, ULTIMATE_ADDONS_ATTRIBUTES)


class SvgTagRewriter:
    """<svg>: drops the invisible, empty SVG the block editor adds to every page."""

    def __init__(self, config: SiteConfig):
        self.config = config

    def element(self, element: Element) -> None:
        if not self.config.REWRITE_SVG_TAGS:
            return
        if (
            element.get_attribute("viewbox") == HIDDEN_SVG_VIEWBOX
            and not element.get_attribute("class")
            and element.get_attribute("style") == HIDDEN_SVG_STYLE
        ):
            element.remove()


class StyleTagRewriter:
    """
    <style>: background images in inline CSS.

    Text chunks are collected in a ``StyleBuffer`` and suppressed from the
    output; the rewritten CSS is emitted once by the end-tag callback.
    """

    def __init__(self, config: SiteConfig):
        self.config = config
        self._buffer: Optional[StyleBuffer] = None

    def _transform(self, css: str) -> str:
        if ADMIN_BAR_MARKER in css:
            logger.debug("[StyleTagRewriter] WP admin bar CSS, leaving untouched")
            return css
        # The text is emitted raw, so undo the escaping of child combinators
        return rewrite_css_urls(css, self.config).replace("&gt;", ">")

    def text(self, chunk: TextChunk) -> None:
        if not self.config.REWRITE_STYLE_TAGS:
            return
        if self._buffer is None:
            self._buffer = StyleBuffer()

        self._buffer.append(chunk.text)
        chunk.replace("")
        if chunk.last_in_text_node:
            self._buffer.finalize(self._transform)

    def end_tag(self, end_tag: EndTag) -> None:
        buffer, self._buffer = self._buffer, None
        if buffer is None:
            return
        if buffer.state is BufferState.ACCUMULATING:
            # Input ended inside the text node
            buffer.finalize(self._transform)
        end_tag.before(buffer.consume())


_REWRITERS: Dict[str, Callable[[SiteConfig], object]] = {
    "link": LinkTagRewriter,
    "style": StyleTagRewriter,
    "img": ImageTagRewriter,
    "a": AnchorTagRewriter,
    "svg": SvgTagRewriter,
    "div": DivTagRewriter,
}


def build_markup_rewriter(config: SiteConfig, tags: Optional[Tuple[str, ...]] = None) -> HTMLRewriter:
    """
    Register the tag rewriters for one response.

    Args:
        config: Site configuration shared by all rewriters
        tags: Restrict registration to these tag names (default: all)

    Returns:
        HTMLRewriter: rewriters hold per-document state, so build one per response.
    """
    rewriter = HTMLRewriter()
    for tag, factory in _REWRITERS.items():
        if tags is not None and tag not in tags:
            continue
        handler = factory(config)
        rewriter.on(
            tag,
            element=getattr(handler, "element", None),
            text=getattr(handler, "text", None),
            end_tag=getattr(handler, "end_tag", None),
        )
    return rewriter
