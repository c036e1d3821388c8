"""
Pytest configuration and shared fixtures for Shopify Media Uploader tests.
"""

import pytest
import json
import tempfile
from pathlib import Path
from unittest.mock import Mock


# 1x1 pixel JPEG, 68 bytes
TINY_JPEG = bytes.fromhex(
    "ffd8ffe000104a46494600010100000100010000"
    "ffdb004300080606070605080707070909080a0c"
    "140d0c0b0b0c1912130f141d1a1f1e1d1a1c1c20"
    "24a0b280"
) + b"\x00\x00\xff\xd9"


# ============================================================================
# CONFIG FIXTURES
# ============================================================================

@pytest.fixture
def cfg():
    """Configuration with credentials and no waiting anywhere."""
    return {
        "SHOPIFY_STORE_URL": "https://test-store.myshopify.com/",
        "SHOPIFY_ACCESS_TOKEN": "test_token_12345",
        "API_VERSION": "2025-10",
        "MAX_RETRIES": 2,
        "STAGED_UPLOAD_ATTEMPTS": 2,
        "BATCH_SIZE": 2,
        "BATCH_PAUSE_SECONDS": 1.5,
        "CDN_POLL_MAX_WAIT": 30,
        "CDN_POLL_INTERVAL": 10,
        "CDN_POLL_JITTER": 0,
        "REFERENCE_CHECK_WAIT": 0,
        "METAFIELD_NAMESPACE": "migration",
        "METAFIELD_RETRIES": 1,
    }


# ============================================================================
# TEMPORARY FILE FIXTURES
# ============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir):
    """Create a temporary config.json file."""
    config_path = temp_dir / "config.json"
    config_data = {
        "SHOPIFY_STORE_URL": "test-store.myshopify.com",
        "SHOPIFY_ACCESS_TOKEN": "test_token_12345",
        "LOG_FILE": str(temp_dir / "test.log")
    }
    with open(config_path, 'w') as f:
        json.dump(config_data, f, indent=4)
    return config_path


@pytest.fixture
def tiny_jpeg():
    """A 68-byte JPEG."""
    return TINY_JPEG


# ============================================================================
# MOCK API FIXTURES
# ============================================================================

def make_response(status_code=200, json_data=None, text=None, content=None, headers=None):
    """Build a Mock that looks enough like a requests.Response."""
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    if json_data is not None:
        response.json.return_value = json_data
        response.text = text if text is not None else json.dumps(json_data)
    else:
        response.json.side_effect = ValueError("No JSON")
        response.text = text or ""
    response.content = content if content is not None else response.text.encode("utf-8")
    return response


def staged_target_payload(index=1):
    return {
        "data": {
            "stagedUploadsCreate": {
                "stagedTargets": [
                    {
                        "url": "https://shopify-staged-uploads.storage.googleapis.com/",
                        "resourceUrl": f"https://shopify-staged-uploads.storage.googleapis.com/tmp/{index}/test.jpg",
                        "parameters": [
                            {"name": "Content-Type", "value": "image/jpeg"},
                            {"name": "success_action_status", "value": "201"},
                            {"name": "acl", "value": "private"},
                            {"name": "key", "value": f"tmp/{index}/test.jpg"},
                            {"name": "x-goog-date", "value": "20251018T120000Z"},
                            {"name": "x-goog-credential", "value": "merchant-assets@shopify-tiers.iam.gserviceaccount.com/20251018/auto/storage/goog4_request"},
                            {"name": "x-goog-algorithm", "value": "GOOG4-RSA-SHA256"},
                            {"name": "x-goog-signature", "value": f"abc123signature{index}"},
                            {"name": "policy", "value": "eyJjb25kaXRpb25zIjpbXX0="}
                        ]
                    }
                ],
                "userErrors": []
            }
        }
    }


def file_payload(asset_id="gid://shopify/MediaImage/1001", status="UPLOADED", url=None,
                 alt="", mutation="fileCreate"):
    return {
        "data": {
            mutation: {
                "files": [file_node(asset_id, status, url, alt)],
                "userErrors": []
            }
        }
    }


def file_node(asset_id="gid://shopify/MediaImage/1001", status="UPLOADED", url=None, alt="",
              file_errors=None):
    return {
        "id": asset_id,
        "fileStatus": status,
        "alt": alt,
        "createdAt": "2025-10-18T12:00:00Z",
        "image": {"width": 1, "height": 1, "url": url} if url else None,
        "fileErrors": file_errors or []
    }


def node_payload(asset_id="gid://shopify/MediaImage/1001", status="PROCESSING", url=None,
                 file_errors=None):
    return {"data": {"node": file_node(asset_id, status, url, file_errors=file_errors)}}


def user_errors_payload(mutation, errors, result_key="files"):
    return {"data": {mutation: {result_key: None, "userErrors": errors}}}


@pytest.fixture
def mock_response():
    """Factory for mock requests responses."""
    return make_response


@pytest.fixture
def mock_staged_target_response():
    """Mock successful stagedUploadsCreate response."""
    return make_response(json_data=staged_target_payload())


@pytest.fixture
def mock_file_create_response():
    """Mock successful fileCreate response."""
    return make_response(json_data=file_payload())


# ============================================================================
# PATH FIXTURES
# ============================================================================

@pytest.fixture
def project_root():
    """Get project root directory."""
    return Path(__file__).parent.parent


# ============================================================================
# UTILITY FIXTURES
# ============================================================================

@pytest.fixture
def capture_logs(caplog):
    """Capture log output for testing."""
    import logging
    caplog.set_level(logging.DEBUG)
    return caplog


@pytest.fixture
def mock_status_fn():
    """Mock status function that collects status messages."""
    messages = []

    def status_fn(msg):
        messages.append(msg)

    status_fn.messages = messages
    return status_fn
