import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "bunny-image-optimizer")

# Origin the proxy forwards every request to (e.g. http://wordpress:8080)
ORIGIN_SERVER_URL = os.environ.get("ORIGIN_SERVER_URL", "").rstrip("/")
PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "30"))

SITES_CONFIG_FILE = os.getenv("SITES_CONFIG_FILE", "")
SITES_CONFIG = os.getenv("SITES_CONFIG", "")
DEFAULT_CDN_HOSTNAME = os.getenv("DEFAULT_CDN_HOSTNAME", "....b-cdn.net")

# Requests below these paths are never rewritten
BYPASS_PATHS = [
    p.strip()
    for p in os.getenv("BYPASS_PATHS", "/wp-admin/,/wp-login/").split(",")
    if p.strip()
]

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
