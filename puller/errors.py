"""
Exception types for the image pull and export pipeline.

Every error carries the HTTP status the web layer answers with.
"""


class PullerError(Exception):
    """Base class for all pipeline errors."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidRequestError(PullerError):
    """Occurs when a request parameter cannot be parsed or validated."""

    status_code = 400


class AuthMissingError(PullerError):
    """Occurs when a pull is requested without a bearer token."""

    status_code = 401


class UpstreamError(PullerError):
    """Occurs when the registry, auth service or Hub API answers with a non-2xx status."""

    status_code = 502


class ManifestShapeError(UpstreamError):
    """Occurs when a manifest response does not have the requested shape."""

    status_code = 502


class BlobTimeoutError(PullerError):
    """Occurs when a blob transfer exceeds its deadline."""

    status_code = 504


class PartialFailureError(PullerError):
    """
    Occurs when one or more blobs of a pull session failed.

    Attributes:
        failed: Digests of every failed blob, in request order
        timed_out: Subset of ``failed`` whose deadline fired
    """

    status_code = 502

    def __init__(self, failed: list[str], timed_out: list[str]):
        message = f"Failed to download {len(failed)} blob(s): {', '.join(failed)}"
        if timed_out:
            message += f" (timed out: {', '.join(timed_out)})"
        super().__init__(message)
        self.failed = failed
        self.timed_out = timed_out


class AssemblyError(PullerError):
    """Occurs when the image archive cannot be built from cached blobs."""

    status_code = 500
