from .cdn_url import generate_cdn_params, generate_cdn_url
from .dispatcher import OriginResponse, rewrite_response
from .errors import MalformedReferenceError, UnrecognizedFormatError, UpstreamFailureError
from .handlers import build_markup_rewriter

__all__ = [
    "generate_cdn_params",
    "generate_cdn_url",
    "OriginResponse",
    "rewrite_response",
    "MalformedReferenceError",
    "UnrecognizedFormatError",
    "UpstreamFailureError",
    "build_markup_rewriter",
]
