"""
Tests for media_modules/multipart.py

Tests byte-exact multipart body construction for staged uploads.
"""

import re
import pytest
import sys
from pathlib import Path
from unittest.mock import Mock, patch

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from media_modules.exceptions import InvalidArgument
from media_modules.multipart import (
    MultipartLayout,
    build_multipart_body,
    generate_boundary,
    layout_from_cfg,
    multipart_content_type
)


SIGNED_PARAMETERS = [
    ("Content-Type", "image/jpeg"),
    ("success_action_status", "201"),
    ("acl", "private"),
    ("key", "tmp/64119975/products/test.jpg"),
    ("x-goog-date", "20251018T120000Z"),
    ("x-goog-credential", "merchant-assets@shopify-tiers.iam.gserviceaccount.com/20251018/auto/storage/goog4_request"),
    ("x-goog-algorithm", "GOOG4-RSA-SHA256"),
    ("x-goog-signature", "0a1b2c3d4e5f"),
    ("policy", "eyJjb25kaXRpb25zIjpbXX0="),
]


def parse_multipart(body, boundary):
    """Minimal RFC 7578 parser: returns [(name, filename, content_type, content)]."""
    delimiter = b"\r\n--" + boundary.encode("ascii")
    segments = (b"\r\n" + body).split(delimiter)
    assert segments[0] == b""
    assert segments[-1] in (b"--", b"--\r\n")

    parts = []
    for segment in segments[1:-1]:
        assert segment.startswith(b"\r\n")
        head, separator, content = segment[2:].partition(b"\r\n\r\n")
        assert separator
        headers = {}
        for line in head.split(b"\r\n"):
            key, _, value = line.decode("utf-8").partition(": ")
            headers[key.lower()] = value
        disposition = headers["content-disposition"]
        name = re.search(r'name="([^"]*)"', disposition).group(1)
        filename_match = re.search(r'filename="([^"]*)"', disposition)
        parts.append((
            name,
            filename_match.group(1) if filename_match else None,
            headers.get("content-type"),
            content,
        ))
    return parts


# ============================================================================
# ROUND-TRIP TESTS
# ============================================================================

class TestRoundTrip:
    """Build, then parse back, and compare."""

    def test_signed_parameters_and_jpeg(self, tiny_jpeg):
        body, boundary = build_multipart_body(SIGNED_PARAMETERS, "test.jpg", "image/jpeg", tiny_jpeg)
        parts = parse_multipart(body, boundary)

        assert [(name, content.decode("utf-8")) for name, _, _, content in parts[:-1]] == SIGNED_PARAMETERS
        name, filename, content_type, content = parts[-1]
        assert (name, filename, content_type) == ("file", "test.jpg", "image/jpeg")
        assert content == tiny_jpeg

    def test_every_byte_value_survives(self):
        data = bytes(range(256)) * 4
        body, boundary = build_multipart_body([("key", "a")], "all.bin", "application/octet-stream", data)

        assert parse_multipart(body, boundary)[-1][3] == data

    def test_boundary_like_content_survives(self):
        data = (
            b"\xff\xd8--\r\n------ShopifyBoundary\r\n"
            b"Content-Disposition: form-data; name=\"file\"\r\n\r\n\x80\x81--\r\n\xff\xd9"
        )
        params = [("note", "------ShopifyBoundary--"), ("crlf", "line1\r\nline2")]
        body, boundary = build_multipart_body(params, "tricky.jpg", "image/jpeg", data)
        parts = parse_multipart(body, boundary)

        assert [(n, c) for n, _, _, c in parts[:-1]] == [
            ("note", b"------ShopifyBoundary--"),
            ("crlf", b"line1\r\nline2"),
        ]
        assert parts[-1][3] == data

    def test_unicode_values_are_utf8(self):
        body, boundary = build_multipart_body([("title", "Café Ñandú")], "x.png", "image/png", b"\x89PNG")
        assert parse_multipart(body, boundary)[0][3] == "Café Ñandú".encode("utf-8")

    def test_field_order_is_input_order(self):
        params = [("z", "1"), ("a", "2"), ("m", "3"), ("a", "4")]
        body, boundary = build_multipart_body(params, "f.txt", "text/plain", b"hi")

        assert [name for name, _, _, _ in parse_multipart(body, boundary)] == ["z", "a", "m", "a", "file"]

    def test_bytearray_and_memoryview_payloads(self, tiny_jpeg):
        for data in (bytearray(tiny_jpeg), memoryview(tiny_jpeg)):
            body, boundary = build_multipart_body([], "t.jpg", "image/jpeg", data)
            assert parse_multipart(body, boundary)[-1][3] == tiny_jpeg


# ============================================================================
# BYTE LAYOUT TESTS
# ============================================================================

class TestLayout:
    """Tests for the exact bytes emitted under each layout."""

    def test_exact_default_layout(self):
        body, boundary = build_multipart_body([("key", "k1")], "a.jpg", "image/jpeg", b"\xff\xd8", boundary="B0")

        assert boundary == "B0"
        assert body == (
            b"--B0\r\n"
            b'Content-Disposition: form-data; name="key"\r\n'
            b"\r\n"
            b"k1\r\n"
            b"--B0\r\n"
            b'Content-Disposition: form-data; name="file"; filename="a.jpg"\r\n'
            b"Content-Type: image/jpeg\r\n"
            b"\r\n"
            b"\xff\xd8\r\n"
            b"--B0--\r\n"
        )

    def test_no_crlf_before_closing_boundary(self):
        layout = MultipartLayout(crlf_before_closing=False)
        body, _ = build_multipart_body([], "a.jpg", "image/jpeg", b"\xff\xd8", layout=layout, boundary="B0")

        assert body.endswith(b"\r\n\r\n\xff\xd8--B0--\r\n")

    def test_no_trailing_crlf(self):
        layout = MultipartLayout(trailing_crlf=False)
        body, _ = build_multipart_body([], "a.jpg", "image/jpeg", b"\xff\xd8", layout=layout, boundary="B0")

        assert body.endswith(b"\xff\xd8\r\n--B0--")

    def test_content_type_parameter_sets_file_header(self):
        layout = MultipartLayout(content_type_param="Content-Type")
        params = [("Content-Type", "image/webp"), ("key", "k1")]
        body, boundary = build_multipart_body(params, "a.jpg", "image/jpeg", b"RIFF", layout=layout)
        parts = parse_multipart(body, boundary)

        assert [name for name, _, _, _ in parts] == ["key", "file"]
        assert parts[-1][2] == "image/webp"

    def test_content_type_parameter_off_by_default(self):
        params = [("content_type", "image/webp")]
        body, boundary = build_multipart_body(params, "a.jpg", "image/jpeg", b"RIFF")
        parts = parse_multipart(body, boundary)

        assert parts[0][0] == "content_type"
        assert parts[-1][2] == "image/jpeg"

    def test_custom_file_field_name(self):
        body, boundary = build_multipart_body([], "a.jpg", "image/jpeg", b"x", file_field_name="upload")
        assert parse_multipart(body, boundary)[-1][0] == "upload"

    def test_quotes_in_filename_are_escaped(self):
        body, _ = build_multipart_body([], 'my "best" shot.jpg', "image/jpeg", b"x", boundary="B0")
        assert b'filename="my %22best%22 shot.jpg"' in body

    def test_layout_from_cfg(self):
        layout = layout_from_cfg({
            "MULTIPART_CRLF_BEFORE_CLOSING": False,
            "MULTIPART_TRAILING_CRLF": False,
            "MULTIPART_CONTENT_TYPE_PARAM": "content_type"
        })
        assert layout == MultipartLayout(False, False, "content_type")

    def test_layout_from_empty_cfg_uses_defaults(self):
        assert layout_from_cfg({}) == MultipartLayout()

    def test_multipart_content_type(self):
        assert multipart_content_type("B0") == "multipart/form-data; boundary=B0"


# ============================================================================
# BOUNDARY TESTS
# ============================================================================

class TestBoundary:
    """Tests for boundary generation."""

    def test_boundary_is_ascii_with_prefix(self):
        boundary = generate_boundary()
        assert boundary.startswith("----ShopifyBoundary")
        assert boundary.isascii()
        assert len(boundary) == len("----ShopifyBoundary") + 16

    def test_boundaries_differ(self):
        assert generate_boundary() != generate_boundary()

    @patch('media_modules.multipart.uuid.uuid4')
    def test_colliding_boundary_is_regenerated(self, mock_uuid):
        mock_uuid.side_effect = [Mock(hex="a" * 32), Mock(hex="b" * 32)]
        data = b"xx----ShopifyBoundary" + b"a" * 16 + b"xx"

        assert generate_boundary(avoid=[data]) == "----ShopifyBoundary" + "b" * 16
        assert mock_uuid.call_count == 2


# ============================================================================
# VALIDATION TESTS
# ============================================================================

class TestValidation:
    """Tests for malformed input."""

    def test_empty_filename(self):
        with pytest.raises(InvalidArgument, match="Filename"):
            build_multipart_body([], "", "image/jpeg", b"x")

    def test_blank_filename(self):
        with pytest.raises(InvalidArgument):
            build_multipart_body([], "   ", "image/jpeg", b"x")

    def test_empty_content_type(self):
        with pytest.raises(InvalidArgument, match="Content type"):
            build_multipart_body([], "a.jpg", "", b"x")

    def test_text_payload_rejected(self):
        with pytest.raises(InvalidArgument, match="bytes"):
            build_multipart_body([], "a.txt", "text/plain", "not bytes")

    def test_empty_parameter_name(self):
        with pytest.raises(InvalidArgument):
            build_multipart_body([("", "v")], "a.jpg", "image/jpeg", b"x")

    def test_header_injection_in_filename(self):
        with pytest.raises(InvalidArgument, match="line breaks"):
            build_multipart_body([], "a.jpg\r\nX-Evil: 1", "image/jpeg", b"x")

    def test_invalid_explicit_boundary(self):
        with pytest.raises(InvalidArgument, match="Invalid multipart boundary"):
            build_multipart_body([], "a.jpg", "image/jpeg", b"x", boundary="has space")

    def test_explicit_boundary_colliding_with_payload(self):
        with pytest.raises(InvalidArgument, match="occurs in the payload"):
            build_multipart_body([], "a.jpg", "image/jpeg", b"..B0..", boundary="B0")

    def test_error_carries_build_step(self):
        with pytest.raises(InvalidArgument) as exc_info:
            build_multipart_body([], "", "image/jpeg", b"x")
        assert exc_info.value.step == "build"
        assert isinstance(exc_info.value, ValueError)
