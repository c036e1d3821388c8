"""
Exception classes for the upload pipeline.

Every error carries the pipeline step that raised it and, when the platform
reported them, the user errors exactly as returned (field + message), since
those are the most specific diagnostics available.
"""

from typing import Any, Dict, List, Optional


def format_user_errors(errors) -> str:
    """Render a list of user errors as 'field: message; field: message'."""
    parts = []
    for err in errors or []:
        if isinstance(err, dict):
            field = err.get("field")
            message = err.get("message", "")
            code = err.get("code")
        else:
            field = getattr(err, "field", None)
            message = getattr(err, "message", str(err))
            code = getattr(err, "code", None)

        if isinstance(field, (list, tuple)):
            field = ".".join(str(f) for f in field)

        text = f"{field}: {message}" if field else str(message)
        if code:
            text += f" (code: {code})"
        parts.append(text)
    return "; ".join(parts)


class UploadError(Exception):
    """Base exception for all upload pipeline errors."""

    step = "upload"

    def __init__(self, message: str, step: Optional[str] = None,
                 status_code: Optional[int] = None,
                 errors: Optional[List[Any]] = None,
                 response_body: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if step:
            self.step = step
        self.status_code = status_code
        self.errors = list(errors or [])
        self.response_body = response_body

    def __str__(self):
        base_msg = f"[{self.step}] {self.message}"
        if self.status_code is not None:
            base_msg += f" (HTTP {self.status_code})"
        if self.errors:
            base_msg += f" - {format_user_errors(self.errors)}"
        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.__class__.__name__,
            "step": self.step,
            "message": self.message,
            "status_code": self.status_code,
            "errors": format_user_errors(self.errors),
        }


class InvalidArgument(UploadError, ValueError):
    """Raised when caller input is malformed (empty filename, no bytes, ...)."""

    step = "validate"


class GraphQLRequestError(UploadError):
    """Raised when a GraphQL request fails at HTTP level or returns top-level errors."""

    step = "graphql"


class ResponseShapeError(UploadError):
    """Raised when a response does not match the expected schema."""

    step = "decode"


class NegotiationRejected(UploadError):
    """The platform refused to allocate a staged upload target."""

    step = "negotiate"


class TransportFailure(UploadError):
    """The direct upload to the storage target failed (non-2xx or network error)."""

    step = "send"


class FinalizationRejected(UploadError):
    """fileCreate returned user errors; no asset was registered."""

    step = "finalize"


class DownloadFailure(UploadError):
    """Fetching a source URL timed out or returned a non-2xx status."""

    step = "download"

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.url = url


class PollTimeout(UploadError):
    """No CDN URL appeared within the wait bound. The asset is still valid."""

    step = "poll"

    def __init__(self, message: str, asset_id: Optional[str] = None,
                 waited: float = 0.0, **kwargs):
        super().__init__(message, **kwargs)
        self.asset_id = asset_id
        self.waited = waited


class MetadataWriteFailure(UploadError):
    """Writing a metafield failed. The uploaded asset is unaffected."""

    step = "metadata"


class ProductImageError(UploadError):
    """A REST product image call failed."""

    step = "product_image"
