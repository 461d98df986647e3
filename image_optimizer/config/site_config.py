"""
Per-domain rewrite settings.

Each site proxied through the optimizer gets its own ``SiteConfig``. The
table is built once from static definitions (a JSON file or an inline JSON
environment variable) and is never mutated afterwards. Lookups use the
exact lowercased request hostname and fall back to a single default record.

Definition format::

    {
        "default": {"BUNNY_CDN_HOSTNAME": "example.b-cdn.net"},
        "sites": [
            {"DOMAIN": "example.com", "BUNNY_CDN_HOSTNAME": "example.b-cdn.net",
             "IMAGE_QUALITY": 85, "IMAGE_CROP": true, "IMAGE_CROP_GRAVITY": "center"}
        ]
    }

Setting an image parameter to ``null`` removes it from generated URLs.
"""

import json
import logging
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from image_optimizer.vars import DEFAULT_CDN_HOSTNAME, SITES_CONFIG, SITES_CONFIG_FILE

logger = logging.getLogger("uvicorn.error")


class CropGravity(str, Enum):
    CENTER = "center"
    FORGET = "forget"
    EAST = "east"
    NORTH = "north"
    SOUTH = "south"
    WEST = "west"
    NORTHEAST = "northeast"
    NORTHWEST = "northwest"
    SOUTHEAST = "southeast"
    SOUTHWEST = "southwest"


class SiteConfig(BaseModel):
    """Immutable rewrite settings for one domain."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    DOMAIN: Optional[str] = None
    BUNNY_CDN_HOSTNAME: str = Field(min_length=1)

    REWRITE_LINK_TAGS: bool = True
    REWRITE_STYLE_TAGS: bool = True
    REWRITE_IMAGE_TAGS: bool = True
    REWRITE_HREF_TAGS: bool = True
    REWRITE_DIV_TAGS: bool = True
    REWRITE_SVG_TAGS: bool = True

    IMAGE_LAZY_LOAD: bool = True
    IMAGE_QUALITY: Optional[int] = Field(default=None, ge=1, le=100)
    IMAGE_SHARPEN: Optional[bool] = None
    IMAGE_CROP: Optional[bool] = None
    IMAGE_CROP_GRAVITY: Optional[CropGravity] = None
    IMAGE_BRIGHTNESS: Optional[int] = Field(default=None, ge=-100, le=100)
    IMAGE_SATURATION: Optional[int] = Field(
        default=None,
        ge=-100,
        le=100,
        validation_alias=AliasChoices("IMAGE_SATURATION", "IMAGE_STATURATION"),
    )
    IMAGE_HUE: Optional[int] = Field(default=None, ge=0, le=100)
    IMAGE_GAMMA: Optional[int] = Field(default=None, ge=-100, le=100)
    IMAGE_CONTRAST: Optional[int] = Field(default=None, ge=-100, le=100)


def default_site_config(**overrides: Any) -> SiteConfig:
    """The fallback record used for hosts without their own definition."""
    values: Dict[str, Any] = {
        "BUNNY_CDN_HOSTNAME": DEFAULT_CDN_HOSTNAME,
        "IMAGE_QUALITY": 85,
        "IMAGE_SHARPEN": False,
        "IMAGE_CROP": True,
        "IMAGE_CROP_GRAVITY": CropGravity.CENTER,
    }
    values.update(overrides)
    return SiteConfig(**values)


class SitesRegistry:
    """Read-only table of site configurations keyed by lowercased domain."""

    def __init__(self, sites: Mapping[str, SiteConfig], default: SiteConfig):
        self._sites = MappingProxyType(dict(sites))
        self._default = default

    @property
    def default(self) -> SiteConfig:
        return self._default

    def __len__(self) -> int:
        return len(self._sites)

    def get_config_for_domain(self, domain: Optional[str]) -> SiteConfig:
        logger.debug(f"[SiteConfig] Resolving configuration for domain: {domain}")
        if not domain:
            return self._default
        return self._sites.get(domain.lower(), self._default)

    @classmethod
    def from_definitions(cls, definitions: Union[Dict[str, Any], list, None]) -> "SitesRegistry":
        """
        Build the registry from parsed JSON definitions.

        Args:
            definitions: Either a dict with optional "default" and "sites" keys,
                or a plain list of site entries.

        Returns:
            SitesRegistry: the immutable lookup table. Invalid entries are
            logged and skipped so one bad site never takes the proxy down.
        """
        if definitions is None:
            definitions = {}
        if isinstance(definitions, list):
            definitions = {"sites": definitions}

        default = default_site_config()
        raw_default = definitions.get("default")
        if raw_default:
            try:
                default = SiteConfig(**raw_default)
            except ValidationError as e:
                logger.error(f"[SiteConfig] Invalid default configuration, using built-in default: {e}")

        sites: Dict[str, SiteConfig] = {}
        for entry in definitions.get("sites") or []:
            domain = (entry or {}).get("DOMAIN")
            if not domain:
                logger.warning(f"[SiteConfig] Skipping site entry without DOMAIN: {entry}")
                continue
            try:
                sites[domain.lower()] = SiteConfig(**entry)
            except ValidationError as e:
                logger.error(f"[SiteConfig] Skipping invalid configuration for {domain}: {e}")

        logger.info(f"[SiteConfig] Loaded {len(sites)} site configuration(s)")
        return cls(sites, default)


def load_sites_registry(
    config_file: str = SITES_CONFIG_FILE, inline_config: str = SITES_CONFIG
) -> SitesRegistry:
    """Load the registry from SITES_CONFIG_FILE, falling back to SITES_CONFIG."""
    raw = ""
    if config_file:
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                raw = f.read()
        except OSError as e:
            logger.error(f"[SiteConfig] Cannot read {config_file}: {e}")
    elif inline_config:
        raw = inline_config

    definitions = None
    if raw:
        try:
            definitions = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"[SiteConfig] Site definitions are not valid JSON: {e}")

    return SitesRegistry.from_definitions(definitions)


_registry: Optional[SitesRegistry] = None


def sites_registry() -> SitesRegistry:
    global _registry
    if _registry is None:
        _registry = load_sites_registry()
    return _registry


def get_config_for_domain(domain: Optional[str]) -> SiteConfig:
    return sites_registry().get_config_for_domain(domain)
