"""Error taxonomy of the rewrite engine. Every one of them is recovered locally."""


class RewriteError(Exception):
    """Base class for rewrite engine errors."""


class MalformedReferenceError(RewriteError, ValueError):
    """A candidate asset reference cannot be parsed as a URL."""

    def __init__(self, reference: str, reason: str = ""):
        self.reference = reference
        self.reason = reason
        message = f"Malformed asset reference: {reference!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class UnrecognizedFormatError(RewriteError):
    """The response content type is not one the engine rewrites."""

    def __init__(self, content_type):
        self.content_type = content_type
        super().__init__(f"Unrecognized content type: {content_type!r}")


class UpstreamFailureError(RewriteError):
    """The origin answered with a non-success status."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Invalid origin HTTP status: {status_code}")
