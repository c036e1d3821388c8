"""
Tests for main.py

Tests the command-line entry point with the upload pipeline mocked out.
"""

import json
import pytest
import sys
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import main
from media_modules.exceptions import FinalizationRejected, PollTimeout
from media_modules.orchestrator import UploadRequest, UploadResult
from media_modules.schemas import AssetHandle


@pytest.fixture
def cli_cfg(monkeypatch, temp_dir):
    """Keep the CLI away from the real config.json and log file."""
    cfg = {
        "SHOPIFY_STORE_URL": "test-store.myshopify.com",
        "SHOPIFY_ACCESS_TOKEN": "test_token_12345",
        "LOG_FILE": str(temp_dir / "test.log")
    }
    monkeypatch.setattr(main, "load_config", lambda: cfg)
    monkeypatch.setattr(main, "save_config", lambda c: None)
    monkeypatch.setattr(main, "setup_logging", lambda path, level: None)
    return cfg


def ok_result(request, cdn_url="https://cdn.shopify.com/s/files/1/a.jpg"):
    asset = AssetHandle.model_validate({"id": "gid://shopify/MediaImage/1", "fileStatus": "READY"})
    return UploadResult(request=request, asset=asset, strategy="staged", cdn_url=cdn_url)


class TestHelpers:
    """Tests for argument helpers."""

    def test_parse_metafields(self):
        assert main.parse_metafields(["product_id=100000001", "note=a=b"]) == {
            "product_id": "100000001", "note": "a=b"
        }
        assert main.parse_metafields(None) == {}

    def test_parse_metafields_rejects_bad_items(self):
        with pytest.raises(ValueError):
            main.parse_metafields(["no-equals-sign"])

    def test_collect_files_expands_directories(self, temp_dir):
        (temp_dir / "b.jpg").write_bytes(b"b")
        (temp_dir / "a.png").write_bytes(b"a")
        (temp_dir / ".hidden").write_bytes(b"h")

        files = main.collect_files([str(temp_dir)])

        assert [Path(f).name for f in files] == ["a.png", "b.jpg"]

    def test_collect_files_missing_path(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            main.collect_files([str(temp_dir / "missing.jpg")])


class TestMain:
    """Tests for main() function."""

    def test_requires_a_source(self, cli_cfg):
        with pytest.raises(SystemExit):
            main.main([])

    def test_missing_credentials(self, cli_cfg, capsys):
        cli_cfg["SHOPIFY_ACCESS_TOKEN"] = ""

        assert main.main(["--url", "https://example.com/a.jpg"]) == 1
        assert "SHOPIFY_ACCESS_TOKEN not configured" in capsys.readouterr().err

    @patch('main.upload_many')
    def test_uploads_files_and_urls(self, mock_upload_many, cli_cfg, temp_dir, tiny_jpeg):
        image = temp_dir / "test.jpg"
        image.write_bytes(tiny_jpeg)
        mock_upload_many.side_effect = lambda reqs, cfg, status_fn, wait: [ok_result(r) for r in reqs]
        output = temp_dir / "results.json"

        code = main.main([
            "--file", str(image), "--url", "https://example.com/b.jpg", "--unreliable",
            "--alt", "Front", "--metafield", "batch_id=B7", "--output", str(output)
        ])

        assert code == 0
        requests_ = mock_upload_many.call_args[0][0]
        assert requests_[0].source == tiny_jpeg
        assert (requests_[0].filename, requests_[0].mime_type) == ("test.jpg", "image/jpeg")
        assert requests_[1].source == "https://example.com/b.jpg"
        assert requests_[1].reliable is False
        assert all(r.alt_text == "Front" and r.metafields == {"batch_id": "B7"} for r in requests_)
        assert len(json.loads(output.read_text())) == 2

    @patch('main.upload_many')
    def test_any_failure_exits_1(self, mock_upload_many, cli_cfg):
        mock_upload_many.side_effect = lambda reqs, cfg, status_fn, wait: [
            ok_result(reqs[0]),
            UploadResult(request=reqs[1], error=FinalizationRejected("rejected"))
        ]

        assert main.main(["--url", "https://example.com/a.jpg", "--url", "https://example.com/b.jpg"]) == 1

    @patch('main.upload_many')
    def test_require_url_fails_without_cdn_url(self, mock_upload_many, cli_cfg):
        mock_upload_many.side_effect = lambda reqs, cfg, status_fn, wait: [ok_result(reqs[0], cdn_url=None)]

        assert main.main(["--url", "https://example.com/a.jpg", "--require-url"]) == 1
        assert mock_upload_many.call_args[1]["wait"] is True

    @patch('main.upload_for_variants')
    def test_variant_upload(self, mock_upload_for_variants, cli_cfg, temp_dir):
        mock_upload_for_variants.side_effect = [
            ok_result(UploadRequest(source="https://example.com/a.jpg")),
            PollTimeout("still processing", asset_id="gid://shopify/MediaImage/2")
        ]
        output = temp_dir / "results.json"

        code = main.main([
            "--url", "https://example.com/a.jpg", "--url", "https://example.com/b.jpg",
            "--product-id", "632910392", "--variant-id", "808950810", "--output", str(output)
        ])

        assert code == 1
        args = mock_upload_for_variants.call_args_list[0][0]
        assert args[1:3] == ("632910392", ["808950810"])

        entries = json.loads(output.read_text())
        assert len(entries) == 2
        assert entries[0]["ok"] is True
        assert entries[1]["ok"] is False
        assert entries[1]["source"] == "https://example.com/b.jpg"
        assert entries[1]["error"]["type"] == "PollTimeout"

    def test_product_id_requires_variant_id(self, cli_cfg):
        with pytest.raises(SystemExit):
            main.main(["--url", "https://example.com/a.jpg", "--product-id", "1"])
