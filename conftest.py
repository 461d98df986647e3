# Ensure tests import the service package from this checkout first.
import os
import sys

import pytest

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

from image_optimizer.config.site_config import SiteConfig  # noqa: E402

CDN_HOSTNAME = "x.b-cdn.net"


@pytest.fixture
def site_config():
    """Configuration used by the documented rewrite scenarios."""
    return SiteConfig(
        BUNNY_CDN_HOSTNAME=CDN_HOSTNAME,
        IMAGE_QUALITY=85,
        IMAGE_CROP=True,
        IMAGE_CROP_GRAVITY="center",
    )


@pytest.fixture
def bare_config():
    """Configuration without any optional image parameter."""
    return SiteConfig(BUNNY_CDN_HOSTNAME=CDN_HOSTNAME, IMAGE_LAZY_LOAD=False)
