"""
Builds Bunny CDN URLs for asset references.

Both entry points share one parameter order:
width, height, quality, sharpen, crop, crop_gravity, brightness,
saturation, hue, gamma, contrast. Optional parameters whose configured
value is falsy are left out entirely.
"""

from enum import Enum
from typing import List, Optional
from urllib.parse import quote, urlsplit

from image_optimizer.config.site_config import SiteConfig
from image_optimizer.rewrite.errors import MalformedReferenceError

AUTO = "auto"

# Characters allowed to stay unescaped in a rewritten path
_PATH_SAFE = "/%:@!$&'()*+,;=-._~"


def _format_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _query_terms(config: SiteConfig, width, height) -> List[str]:
    has_size = bool(width) and bool(height) and width != AUTO and height != AUTO
    crop = bool(config.IMAGE_CROP) and has_size

    terms = [f"width={width or AUTO}", f"height={height or AUTO}"]
    if config.IMAGE_QUALITY:
        terms.append(f"quality={_format_value(config.IMAGE_QUALITY)}")
    if config.IMAGE_SHARPEN:
        terms.append(f"sharpen={_format_value(config.IMAGE_SHARPEN)}")
    if crop:
        terms.append(f"crop={width},{height}")
        if config.IMAGE_CROP_GRAVITY:
            terms.append(f"crop_gravity={_format_value(config.IMAGE_CROP_GRAVITY)}")
    for name, value in (
        ("brightness", config.IMAGE_BRIGHTNESS),
        ("saturation", config.IMAGE_SATURATION),
        ("hue", config.IMAGE_HUE),
        ("gamma", config.IMAGE_GAMMA),
        ("contrast", config.IMAGE_CONTRAST),
    ):
        if value:
            terms.append(f"{name}={_format_value(value)}")
    return terms


def generate_cdn_params(config: SiteConfig, width=AUTO, height=AUTO) -> str:
    """
    Query string for contexts where the caller substitutes the authority
    itself (stylesheets and inline styles).

    Returns:
        str: the query string including the leading "?".
    """
    return "?" + "&".join(_query_terms(config, width, height))


def _reference_path(reference: str) -> str:
    try:
        parts = urlsplit(reference.strip())
    except ValueError as e:
        raise MalformedReferenceError(reference, str(e)) from e

    if parts.scheme and parts.scheme.lower() not in ("http", "https"):
        raise MalformedReferenceError(reference, f"unsupported scheme {parts.scheme}")
    if parts.scheme and not parts.netloc:
        raise MalformedReferenceError(reference, "missing host")
    if not parts.path.startswith("/"):
        raise MalformedReferenceError(reference, "not an absolute path")
    if any(ch.isspace() for ch in parts.path):
        raise MalformedReferenceError(reference, "whitespace in path")
    return quote(parts.path, safe=_PATH_SAFE)


def generate_cdn_url(
    config: SiteConfig,
    reference: str,
    width: Optional[str] = None,
    height: Optional[str] = None,
) -> str:
    """
    Point an asset reference at the CDN host of the site.

    Only the path of the reference survives; scheme, host, query and
    fragment are replaced, and the query is rebuilt from the configuration.

    Args:
        config: Site configuration providing the CDN host and image parameters
        reference: Absolute, protocol-relative or root-relative URL
        width: Target width, "auto" when unknown
        height: Target height, "auto" when unknown

    Returns:
        str: https://<cdn-host><path>?width=...

    Raises:
        MalformedReferenceError: the reference cannot be parsed as a URL.
    """
    path = _reference_path(reference)
    return f"https://{config.BUNNY_CDN_HOSTNAME}{path}{generate_cdn_params(config, width, height)}"
