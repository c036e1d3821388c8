"""
Staged upload negotiation (stagedUploadsCreate).

Asks the platform for a temporary direct-upload target for one file. The
returned target is single-use and expires after a few minutes, so a new one
is negotiated for every upload attempt.
"""

from .config import log_and_status, get_setting
from .exceptions import InvalidArgument, NegotiationRejected, ResponseShapeError
from .graphql import execute_query
from .queries import STAGED_UPLOADS_CREATE
from .schemas import StagedUploadsCreatePayload, decode_payload

VALID_HTTP_METHODS = ("POST", "PUT")


def resource_for_mime_type(mime_type):
    """Map a MIME type to a StagedUploadTargetGenerateUploadResource value."""
    mime_type = (mime_type or "").lower()
    if mime_type.startswith("image/"):
        return "IMAGE"
    if mime_type.startswith("video/"):
        return "VIDEO"
    if mime_type.startswith("model/"):
        return "MODEL_3D"
    return "FILE"


def create_staged_target(filename, mime_type, file_size, cfg, resource=None,
                         http_method=None, status_fn=None):
    """
    Allocate a staged upload target for a single file.

    Args:
        filename: Name of the file to upload
        mime_type: MIME type of the file
        file_size: Size of the file in bytes
        cfg: Configuration dictionary
        resource: Resource kind (IMAGE, VIDEO, FILE, MODEL_3D); inferred from
            mime_type when omitted
        http_method: POST or PUT; defaults to STAGED_UPLOAD_METHOD
        status_fn: Optional status update function

    Returns:
        UploadTarget with url, resource_url, the parameter list exactly as
        returned, and the http_method the target was requested for

    Raises:
        InvalidArgument: on empty filename/mime type or a bad size/method
        NegotiationRejected: if the mutation returned user errors or no target
        GraphQLRequestError: on transport-level GraphQL failures
    """
    if not filename or not str(filename).strip():
        raise InvalidArgument("Filename cannot be empty", step="negotiate")
    if not mime_type:
        raise InvalidArgument("MIME type cannot be empty", step="negotiate")
    if file_size is None or int(file_size) <= 0:
        raise InvalidArgument(f"File size must be positive, got {file_size}", step="negotiate")

    http_method = (http_method or get_setting(cfg, "STAGED_UPLOAD_METHOD")).upper()
    if http_method not in VALID_HTTP_METHODS:
        raise InvalidArgument(f"Unsupported staged upload method: {http_method}", step="negotiate")

    resource = resource or resource_for_mime_type(mime_type)

    log_and_status(status_fn, f"  Creating staged upload for {filename} ({file_size} bytes, {resource})")

    variables = {
        "input": [
            {
                "resource": resource,
                "filename": filename,
                "mimeType": mime_type,
                "fileSize": str(int(file_size)),
                "httpMethod": http_method
            }
        ]
    }

    data = execute_query(STAGED_UPLOADS_CREATE, variables, cfg, step="negotiate")
    payload = decode_payload(StagedUploadsCreatePayload, data.get("stagedUploadsCreate"), "negotiate")

    if payload.user_errors:
        error = NegotiationRejected(
            f"Staged upload rejected for {filename}",
            errors=[e.model_dump() for e in payload.user_errors],
        )
        log_and_status(status_fn, f"  {error}", "error")
        raise error

    if not payload.staged_targets:
        raise NegotiationRejected(f"No staged target returned for {filename}")
    if len(payload.staged_targets) != 1:
        raise ResponseShapeError(
            f"Expected one staged target, got {len(payload.staged_targets)}",
            step="negotiate",
        )

    target = payload.staged_targets[0].model_copy(update={"http_method": http_method})
    log_and_status(
        status_fn,
        f"  Staged target ready ({len(target.parameters)} parameters, {http_method})",
        "debug",
    )
    return target
