from .site_config import SiteConfig, SitesRegistry, get_config_for_domain

__all__ = ["SiteConfig", "SitesRegistry", "get_config_for_domain"]
