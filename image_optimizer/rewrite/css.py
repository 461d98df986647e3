"""CSS ``url(...)`` rewriting shared by stylesheets, inline styles and style attributes."""

from image_optimizer.config.site_config import SiteConfig
from image_optimizer.rewrite.cdn_url import generate_cdn_params
from image_optimizer.rewrite.patterns import CSS_URL


def rewrite_css_urls(text: str, config: SiteConfig) -> str:
    """
    Point every matching ``url(...)`` in ``text`` at the CDN host.

    The origin of absolute references is replaced by the CDN host, the
    asset path is kept and the CDN query string appended. Sizes are left
    to the CDN ("auto") since CSS carries no reliable dimensions.
    """
    if not text or "url(" not in text.lower():
        return text

    params = generate_cdn_params(config)
    cdn_host = config.BUNNY_CDN_HOSTNAME

    def _replace(match):
        origin = match.group("origin") or ""
        if cdn_host in origin:
            return match.group(0)
        return f"url('https://{cdn_host}{match.group('path')}{params}')"

    return CSS_URL.sub(_replace, text)
