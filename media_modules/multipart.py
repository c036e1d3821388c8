"""
Byte-exact multipart/form-data construction for staged uploads.

The storage backends behind staged uploads sign the form fields they hand
out, so the body must carry every parameter in the order the platform
returned it, followed by the file part. The file bytes are copied into the
buffer untouched; only headers and boundaries are encoded.

Backends differ in small layout details (CRLF before the closing boundary,
trailing CRLF, a content_type field that sets the file part's header), so
those are captured in MultipartLayout instead of being hard-coded.
"""

import re
import uuid
import logging
from dataclasses import dataclass

from .config import get_setting
from .exceptions import InvalidArgument

CRLF = b"\r\n"

# RFC 2046 bcharsnospace, minus the few characters that upset some parsers
_BOUNDARY_RE = re.compile(r"^[0-9A-Za-z'()+_,\-./:=?]{1,70}$")


@dataclass(frozen=True)
class MultipartLayout:
    """Backend-specific byte layout rules for the multipart body."""

    crlf_before_closing: bool = True
    trailing_crlf: bool = True
    content_type_param: str = ""
    boundary_prefix: str = "----ShopifyBoundary"


def layout_from_cfg(cfg):
    """Build a MultipartLayout from the MULTIPART_* configuration keys."""
    return MultipartLayout(
        crlf_before_closing=bool(get_setting(cfg, "MULTIPART_CRLF_BEFORE_CLOSING")),
        trailing_crlf=bool(get_setting(cfg, "MULTIPART_TRAILING_CRLF")),
        content_type_param=str(cfg.get("MULTIPART_CONTENT_TYPE_PARAM") or ""),
    )


def generate_boundary(prefix="----ShopifyBoundary", avoid=()):
    """
    Generate a random ASCII boundary that does not occur in any of the
    byte strings in avoid.
    """
    while True:
        boundary = f"{prefix}{uuid.uuid4().hex[:16]}"
        marker = boundary.encode("ascii")
        if not any(marker in chunk for chunk in avoid):
            return boundary


def _header_value(text, what):
    if any(c in text for c in "\r\n\0"):
        raise InvalidArgument(f"{what} must not contain line breaks: {text!r}", step="build")
    # HTML form encoding: quotes are percent-escaped inside quoted-string values
    return text.replace('"', "%22").encode("utf-8")


def _as_bytes(value):
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return str(value).encode("utf-8")


def build_multipart_body(parameters, filename, content_type, data,
                         file_field_name="file", layout=None, boundary=None):
    """
    Build a multipart/form-data body from ordered parameters plus one file.

    Args:
        parameters: Ordered iterable of (name, value) pairs, emitted verbatim
            and in order before the file part
        filename: Filename for the file part's Content-Disposition
        content_type: MIME type for the file part
        data: Raw file bytes
        file_field_name: Form field name of the file part
        layout: MultipartLayout (defaults to the standard layout)
        boundary: Explicit boundary token; generated when omitted

    Returns:
        Tuple of (body_bytes, boundary). The caller sends the body with
        "Content-Type: multipart/form-data; boundary=<boundary>".

    Raises:
        InvalidArgument: on empty filename/content type/field names, a
            non-bytes payload, or a boundary that is invalid or collides
            with the payload
    """
    layout = layout or MultipartLayout()

    if not filename or not str(filename).strip():
        raise InvalidArgument("Filename cannot be empty", step="build")
    if not content_type or not str(content_type).strip():
        raise InvalidArgument("Content type cannot be empty", step="build")
    if not file_field_name:
        raise InvalidArgument("File field name cannot be empty", step="build")
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise InvalidArgument(
            f"File data must be bytes, got {type(data).__name__}", step="build"
        )

    fields = []
    for name, value in parameters or []:
        if not name:
            raise InvalidArgument("Form parameter name cannot be empty", step="build")
        if layout.content_type_param and name == layout.content_type_param:
            content_type = str(value)
            continue
        fields.append((_header_value(str(name), "Parameter name"), _as_bytes(value)))

    file_bytes = bytes(data)
    avoid = [file_bytes] + [value for _, value in fields]

    if boundary is None:
        boundary = generate_boundary(layout.boundary_prefix, avoid)
    else:
        if not _BOUNDARY_RE.match(boundary):
            raise InvalidArgument(f"Invalid multipart boundary: {boundary!r}", step="build")
        marker = boundary.encode("ascii")
        if any(marker in chunk for chunk in avoid):
            raise InvalidArgument("Multipart boundary occurs in the payload", step="build")

    delimiter = b"--" + boundary.encode("ascii")
    body = bytearray()

    for name, value in fields:
        body += delimiter + CRLF
        body += b'Content-Disposition: form-data; name="' + name + b'"' + CRLF
        body += CRLF
        body += value + CRLF

    body += delimiter + CRLF
    body += (
        b'Content-Disposition: form-data; name="' + _header_value(file_field_name, "Field name")
        + b'"; filename="' + _header_value(str(filename), "Filename") + b'"' + CRLF
    )
    body += b"Content-Type: " + _header_value(str(content_type), "Content type") + CRLF
    body += CRLF
    body += file_bytes

    if layout.crlf_before_closing:
        body += CRLF
    body += delimiter + b"--"
    if layout.trailing_crlf:
        body += CRLF

    logging.debug(
        f"Built multipart body: fields={[name.decode('utf-8') for name, _ in fields]}, "
        f"file={filename} ({len(file_bytes)} bytes), total={len(body)} bytes"
    )
    return bytes(body), boundary


def multipart_content_type(boundary):
    """Content-Type header value for a body built with the given boundary."""
    return f"multipart/form-data; boundary={boundary}"
