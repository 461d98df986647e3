"""Text patterns used to recognise asset references and dimension hints."""

import re

# "-300x200" right before the extension; removed once dimensions are captured
WIDTH_AND_HEIGHT_STRIP = re.compile(r"-(\d+)x(\d+)(?=\.(\w+)$)", re.IGNORECASE)

# Same shape, used to extract the width and height from a filename
WIDTH_AND_HEIGHT_IN_FILENAME = re.compile(r"-(\d+)x(\d+)(?=\.\w+$)")

# Trailing width descriptor of a candidate list entry ("300w")
WIDTH_DESCRIPTOR = re.compile(r"(\d+)w$")

# Explicit size token as found in <link sizes="32x32 16x16">
EXPLICIT_SIZE = re.compile(r"(\d+)x(\d+)")

# Marker every optimizable asset path contains
ASSET_PATH_SEGMENT = "/wp-content/"

# CSS url(...) pointing at an image below uploads/plugins/themes.
# Group "origin" is the optional absolute origin, group "path" the asset path.
CSS_URL = re.compile(
    r"url\(['\"]?"
    r"(?!/cdn-cgi/image/)"
    r"(?P<origin>https?://(?:www\.|(?!www))[^\s'\"()]+?)?"
    r"(?P<path>/wp-content/(?:uploads|plugins|themes)/[^\s'\"()]+?\.(?:jpe?g|gif|png|webp|svg))"
    r"['\"]?\)",
    re.IGNORECASE,
)
