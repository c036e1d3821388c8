"""
Metafield operations for uploaded files.

Business identifiers (source product ID, UPC, batch ID) are stored as
metafields on the file rather than in its alt text. metafieldsSet is an
upsert keyed on owner + namespace + key: writing the same key again
replaces the value instead of adding a second metafield.
"""

from .config import get_setting, log_and_status
from .exceptions import InvalidArgument, MetadataWriteFailure, UploadError
from .graphql import execute_query
from .queries import METAFIELDS_DELETE, METAFIELDS_SET, OWNER_METAFIELDS
from .schemas import MetafieldOwnerData, MetafieldsDeletePayload, MetafieldsSetPayload, decode_payload

DEFAULT_METAFIELD_TYPE = "single_line_text_field"

# Identifier keys that are not stored as plain text
IDENTIFIER_TYPES = {
    "product_id": "number_integer",
}


def metafield_entries(values, namespace):
    """
    Turn a {key: value} mapping into metafieldsSet entries.

    Empty values are skipped. Types come from IDENTIFIER_TYPES, defaulting
    to single_line_text_field.
    """
    entries = []
    for key, value in values.items():
        if value is None or str(value) == "":
            continue
        entries.append({
            "namespace": namespace,
            "key": key,
            "value": str(value),
            "type": IDENTIFIER_TYPES.get(key, DEFAULT_METAFIELD_TYPE)
        })
    return entries


def set_metafields(owner_id, entries, cfg, status_fn=None):
    """
    Create or overwrite several metafields on one owner in a single call.

    Args:
        owner_id: GID of the owning resource (e.g. a MediaImage)
        entries: List of dicts with namespace, key, value and optional type
        cfg: Configuration dictionary
        status_fn: Optional status update function

    Returns:
        List of Metafield records as stored

    Raises:
        InvalidArgument: on an empty owner id or entry list
        MetadataWriteFailure: on user errors or a failed request
    """
    if not owner_id:
        raise InvalidArgument("Owner ID cannot be empty", step="metadata")
    if not entries:
        raise InvalidArgument("No metafields to set", step="metadata")

    metafields = []
    for entry in entries:
        if not entry.get("namespace") or not entry.get("key"):
            raise InvalidArgument(f"Metafield needs a namespace and key: {entry}", step="metadata")
        metafields.append({
            "ownerId": owner_id,
            "namespace": entry["namespace"],
            "key": entry["key"],
            "value": str(entry.get("value", "")),
            "type": entry.get("type") or DEFAULT_METAFIELD_TYPE
        })

    try:
        data = execute_query(METAFIELDS_SET, {"metafields": metafields}, cfg, step="metadata")
        payload = decode_payload(MetafieldsSetPayload, data.get("metafieldsSet"), "metadata")
    except MetadataWriteFailure:
        raise
    except UploadError as e:
        raise MetadataWriteFailure(
            f"Failed to write metafields on {owner_id}: {e.message}",
            status_code=e.status_code,
        ) from e

    if payload.user_errors:
        error = MetadataWriteFailure(
            f"metafieldsSet rejected metafields on {owner_id}",
            errors=[e.model_dump() for e in payload.user_errors],
        )
        log_and_status(status_fn, f"  {error}", "error")
        raise error

    stored = payload.metafields or []
    keys = ", ".join(f"{m.namespace}.{m.key}" for m in stored)
    log_and_status(status_fn, f"  Stored metafields on {owner_id}: {keys}")
    return stored


def set_metafield(owner_id, namespace, key, value, cfg, metafield_type=DEFAULT_METAFIELD_TYPE,
                  status_fn=None):
    """Create or overwrite a single metafield. Returns the stored Metafield."""
    stored = set_metafields(
        owner_id,
        [{"namespace": namespace, "key": key, "value": value, "type": metafield_type}],
        cfg,
        status_fn=status_fn,
    )
    for metafield in stored:
        if metafield.namespace == namespace and metafield.key == key:
            return metafield
    raise MetadataWriteFailure(f"metafieldsSet did not return {namespace}.{key} for {owner_id}")


def get_metafields(owner_id, cfg, first=50):
    """
    List the metafields of an owner.

    Returns:
        List of Metafield records (empty if the owner is not visible yet)
    """
    if not owner_id:
        raise InvalidArgument("Owner ID cannot be empty", step="metadata")
    data = execute_query(OWNER_METAFIELDS, {"id": owner_id, "first": first}, cfg, step="metadata")
    owner = decode_payload(MetafieldOwnerData, data, "metadata").node
    return owner.items() if owner is not None else []


def get_metafield_value(owner_id, namespace, key, cfg):
    """Return the value stored under namespace.key, or None."""
    for metafield in get_metafields(owner_id, cfg):
        if metafield.namespace == namespace and metafield.key == key:
            return metafield.value
    return None


def delete_metafields(owner_id, identifiers, cfg, status_fn=None):
    """
    Delete several metafields of one owner in a single call.

    Args:
        owner_id: GID of the owning resource
        identifiers: List of (namespace, key) pairs
        cfg: Configuration dictionary
        status_fn: Optional status update function

    Returns:
        List of (namespace, key) pairs that were actually deleted; keys with
        nothing stored are left out

    Raises:
        InvalidArgument: on an empty owner id, identifier list, namespace or key
        MetadataWriteFailure: on user errors or a failed request
    """
    if not owner_id:
        raise InvalidArgument("Owner ID cannot be empty", step="metadata")
    if not identifiers:
        raise InvalidArgument("No metafields to delete", step="metadata")

    metafields = []
    for namespace, key in identifiers:
        if not namespace or not key:
            raise InvalidArgument(f"Metafield needs a namespace and key: {namespace}.{key}", step="metadata")
        metafields.append({"ownerId": owner_id, "namespace": namespace, "key": key})

    try:
        data = execute_query(METAFIELDS_DELETE, {"metafields": metafields}, cfg, step="metadata")
        payload = decode_payload(MetafieldsDeletePayload, data.get("metafieldsDelete"), "metadata")
    except UploadError as e:
        raise MetadataWriteFailure(
            f"Failed to delete metafields on {owner_id}: {e.message}",
            status_code=e.status_code,
        ) from e

    if payload.user_errors:
        error = MetadataWriteFailure(
            f"metafieldsDelete rejected metafields on {owner_id}",
            errors=[e.model_dump() for e in payload.user_errors],
        )
        log_and_status(status_fn, f"  {error}", "error")
        raise error

    deleted = [(m.namespace, m.key) for m in payload.deleted_metafields or [] if m is not None]
    if deleted:
        keys = ", ".join(f"{namespace}.{key}" for namespace, key in deleted)
        log_and_status(status_fn, f"  Deleted metafields on {owner_id}: {keys}")
    return deleted


def delete_metafield(owner_id, namespace, key, cfg, status_fn=None):
    """Delete one metafield. Returns True if it existed and was removed."""
    return (namespace, key) in delete_metafields(owner_id, [(namespace, key)], cfg, status_fn=status_fn)


def set_business_identifiers(asset_id, cfg, product_id=None, upc=None, batch_id=None,
                             namespace=None, status_fn=None):
    """
    Store source-system identifiers on an uploaded file in one call.

    Only the identifiers that are given are written. product_id is stored as
    number_integer, upc and batch_id as single_line_text_field.

    Returns:
        List of stored Metafield records
    """
    namespace = namespace or get_setting(cfg, "METAFIELD_NAMESPACE")
    entries = metafield_entries(
        {"product_id": product_id, "upc": upc, "batch_id": batch_id},
        namespace,
    )
    return set_metafields(asset_id, entries, cfg, status_fn=status_fn)
