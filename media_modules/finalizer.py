"""
Asset finalization (fileCreate) and alt-text updates (fileUpdate).
"""

from .config import log_and_status
from .exceptions import FinalizationRejected, InvalidArgument, ResponseShapeError
from .graphql import execute_query
from .queries import FILE_CREATE, FILE_UPDATE
from .schemas import FileCreatePayload, FileUpdatePayload, decode_payload

FILE_CONTENT_TYPES = ("IMAGE", "VIDEO", "FILE", "MODEL_3D", "EXTERNAL_VIDEO")


def content_type_for_mime_type(mime_type):
    """Map a MIME type to a FileContentType value for fileCreate."""
    mime_type = (mime_type or "").lower()
    if mime_type.startswith("image/"):
        return "IMAGE"
    if mime_type.startswith("video/"):
        return "VIDEO"
    if mime_type.startswith("model/"):
        return "MODEL_3D"
    return "FILE"


def finalize_asset(source_url, content_type, cfg, alt_text=None, status_fn=None):
    """
    Register uploaded bytes (or a public URL) as a managed file.

    Args:
        source_url: Staged resourceUrl after a successful direct upload, or a
            publicly reachable URL the platform downloads itself
        content_type: FileContentType (IMAGE, VIDEO, FILE, ...)
        cfg: Configuration dictionary
        alt_text: Optional alt text
        status_fn: Optional status update function

    Returns:
        AssetHandle. Its media fields are usually still empty: the platform
        processes the file asynchronously and this call does not wait.

    Raises:
        InvalidArgument: on an empty source URL or unknown content type
        FinalizationRejected: if fileCreate returned user errors or no file
        GraphQLRequestError: on transport-level GraphQL failures
    """
    if not source_url:
        raise InvalidArgument("Source URL cannot be empty", step="finalize")
    content_type = (content_type or "").upper()
    if content_type not in FILE_CONTENT_TYPES:
        raise InvalidArgument(f"Unsupported file content type: {content_type}", step="finalize")

    file_input = {
        "originalSource": source_url,
        "contentType": content_type
    }
    if alt_text:
        file_input["alt"] = alt_text

    log_and_status(status_fn, f"  Registering file ({content_type})")

    data = execute_query(FILE_CREATE, {"files": [file_input]}, cfg, step="finalize")
    payload = decode_payload(FileCreatePayload, data.get("fileCreate"), "finalize")

    if payload.user_errors:
        error = FinalizationRejected(
            "fileCreate rejected the file",
            errors=[e.model_dump() for e in payload.user_errors],
        )
        log_and_status(status_fn, f"  {error}", "error")
        raise error

    if not payload.files:
        raise FinalizationRejected("fileCreate returned no files")
    if len(payload.files) != 1:
        raise ResponseShapeError(
            f"Expected one file from fileCreate, got {len(payload.files)}",
            step="finalize",
        )

    asset = payload.files[0]
    log_and_status(status_fn, f"  ✅ File registered: {asset.id} ({asset.status.value})")
    return asset


def update_asset_alt(asset_id, alt_text, cfg, status_fn=None):
    """
    Update the alt text of an existing file.

    Returns:
        The updated AssetHandle

    Raises:
        InvalidArgument: on an empty asset id
        FinalizationRejected: if fileUpdate returned user errors or no file
    """
    if not asset_id:
        raise InvalidArgument("Asset ID cannot be empty", step="update")

    variables = {"files": [{"id": asset_id, "alt": alt_text or ""}]}
    data = execute_query(FILE_UPDATE, variables, cfg, step="update")
    payload = decode_payload(FileUpdatePayload, data.get("fileUpdate"), "update")

    if payload.user_errors:
        raise FinalizationRejected(
            f"fileUpdate rejected {asset_id}",
            step="update",
            errors=[e.model_dump() for e in payload.user_errors],
        )
    if not payload.files:
        raise FinalizationRejected(f"fileUpdate returned no file for {asset_id}", step="update")

    log_and_status(status_fn, f"  Updated alt text for {asset_id}")
    return payload.files[0]
