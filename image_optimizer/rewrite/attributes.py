"""
Rewrites asset references held in element attributes.

Every attribute is handled by the same routine, parameterised only by the
attribute name, so single-reference attributes (``src``, ``data-src``, the
lazy-load variants) and candidate lists (``srcset`` and friends) all share
one validity check, one dimension inference and one URL builder.
"""

import logging
import re
from typing import Iterable, Optional

from image_optimizer.config.site_config import SiteConfig
from image_optimizer.rewrite.cdn_url import generate_cdn_url
from image_optimizer.rewrite.dimensions import infer_dimensions
from image_optimizer.rewrite.errors import MalformedReferenceError
from image_optimizer.rewrite.html_stream import Element
from image_optimizer.rewrite.patterns import ASSET_PATH_SEGMENT

logger = logging.getLogger("uvicorn.error")

# Attributes holding exactly one image reference
IMAGE_SOURCE_ATTRIBUTES = (
    "src",
    "data-src",
    "data-lazyload",  # Revolution Slider
    "data-lazy-src",  # WP Rocket
    "data-original",  # jQuery lazyload
)

# Attributes holding a comma separated list of "<url> <size>" candidates
CANDIDATE_LIST_ATTRIBUTES = ("srcset", "data-srcset", "data-lazy-srcset")

_DESCRIPTOR_SEPARATOR = re.compile(r"\s*,\s*")
_WHITESPACE = re.compile(r"\s+")


def is_valid_asset(reference: Optional[str], config: SiteConfig) -> bool:
    """True when ``reference`` points at an optimizable asset not yet on the CDN."""
    return (
        bool(reference)
        and "base64" not in reference
        and ASSET_PATH_SEGMENT in reference
        and config.BUNNY_CDN_HOSTNAME not in reference
    )


def rewrite_reference(
    config: SiteConfig,
    reference: Optional[str],
    width: Optional[str] = None,
    height: Optional[str] = None,
    descriptor: Optional[str] = None,
    infer: bool = True,
) -> Optional[str]:
    """
    Rewrite one asset reference to its CDN URL.

    Args:
        config: Site configuration
        reference: The attribute value or candidate URL
        width: Explicit width from the element, if any
        height: Explicit height from the element, if any
        descriptor: Size token when the reference comes from a candidate list
        infer: When False the reference is sent as-is with automatic sizing

    Returns:
        The rewritten URL, or None when the reference must be left untouched.
    """
    if not is_valid_asset(reference, config):
        return None

    if infer:
        reference, hint = infer_dimensions(reference, width, height, descriptor)
        width, height = hint.width, hint.height
    else:
        width = height = None

    try:
        return generate_cdn_url(config, reference, width, height)
    except MalformedReferenceError as e:
        logger.debug(f"[Rewrite] Leaving reference untouched: {e}")
        return None


def rewrite_descriptor_list(config: SiteConfig, value: Optional[str]) -> Optional[str]:
    """
    Rewrite every URL of a candidate list, keeping size tokens and order.

    Entries that do not split into exactly one URL and one size token, or
    whose URL is not an optimizable asset, are kept verbatim.

    Returns:
        The rewritten list joined with ", ", or None if nothing changed.
    """
    if not value or ASSET_PATH_SEGMENT not in value:
        return None

    changed = False
    rewritten = []
    for descriptor in _DESCRIPTOR_SEPARATOR.split(value):
        parts = _WHITESPACE.split(descriptor.strip())
        if len(parts) != 2:
            rewritten.append(descriptor)
            continue

        url, size = parts
        new_url = rewrite_reference(config, url, descriptor=size)
        if new_url is None:
            rewritten.append(descriptor)
            continue

        changed = True
        rewritten.append(f"{new_url} {size}")

    return ", ".join(rewritten) if changed else None


def rewrite_attributes(
    element: Element,
    config: SiteConfig,
    names: Iterable[str],
    width: Optional[str] = None,
    height: Optional[str] = None,
    infer: bool = True,
) -> int:
    """
    Rewrite each named single-reference attribute of ``element`` in place.

    Returns:
        int: how many attributes were changed.
    """
    changed = 0
    for name in names:
        value = element.get_attribute(name)
        new_value = rewrite_reference(config, value, width, height, infer=infer)
        if new_value is not None:
            element.set_attribute(name, new_value)
            changed += 1
    return changed


def rewrite_candidate_lists(
    element: Element, config: SiteConfig, names: Iterable[str] = CANDIDATE_LIST_ATTRIBUTES
) -> int:
    """Rewrite each named candidate list attribute of ``element`` in place."""
    changed = 0
    for name in names:
        new_value = rewrite_descriptor_list(config, element.get_attribute(name))
        if new_value is not None:
            element.set_attribute(name, new_value)
            changed += 1
    return changed
