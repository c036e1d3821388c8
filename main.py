#!/usr/bin/env python3
"""
Shopify Media Uploader - CLI Entry Point

Version 1.2.0
Shopify GraphQL Admin API 2025-10

Uploads local files and remote images to Shopify Files using staged
uploads, optionally linking them to product variants.
"""

import argparse
import json
import sys
import os
import logging

# Add current directory to path for imports
sys.path.insert(0, os.path.dirname(__file__))

from media_modules.config import load_config, save_config, setup_logging, SCRIPT_VERSION
from media_modules.exceptions import UploadError
from media_modules.orchestrator import UploadRequest, UploadResult, upload_for_variants, upload_many
from media_modules.utils import guess_mime_type


def print_status(message: str) -> None:
    """Status callback for CLI mode - prints to stdout."""
    print(message)


def parse_metafields(values):
    """Parse repeated key=value arguments into a dict."""
    metafields = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Metafield must be key=value, got: {item}")
        metafields[key.strip()] = value
    return metafields


def collect_files(paths):
    """Expand file and directory arguments into a sorted list of file paths."""
    files = []
    for path in paths or []:
        if os.path.isdir(path):
            for name in sorted(os.listdir(path)):
                full_path = os.path.join(path, name)
                if os.path.isfile(full_path) and not name.startswith("."):
                    files.append(full_path)
        elif os.path.isfile(path):
            files.append(path)
        else:
            raise FileNotFoundError(f"File does not exist: {path}")
    return files


def build_requests(args, metafields):
    """Turn command-line arguments into UploadRequests."""
    requests_ = []
    for path in collect_files(args.file):
        with open(path, "rb") as f:
            data = f.read()
        filename = os.path.basename(path)
        requests_.append(UploadRequest(
            source=data,
            filename=filename,
            mime_type=guess_mime_type(filename),
            alt_text=args.alt,
            metafields=dict(metafields),
        ))
    for url in args.url or []:
        requests_.append(UploadRequest(
            source=url,
            alt_text=args.alt,
            reliable=not args.unreliable,
            fallback_url=args.fallback_url,
            metafields=dict(metafields),
        ))
    return requests_


def main(argv=None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Shopify Media Uploader - Upload files to Shopify via staged uploads",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --file photo.jpg --alt "Front view"
  %(prog)s --file ./images --metafield batch_id=2024-07
  %(prog)s --url https://example.com/a.jpg --unreliable --wait
  %(prog)s --url https://example.com/red.jpg --product-id 123 --variant-id 456
        """
    )

    parser.add_argument(
        "--file", "-f",
        action="append",
        help="Local file or directory to upload (repeatable)"
    )
    parser.add_argument(
        "--url", "-u",
        action="append",
        help="Remote file URL to upload (repeatable)"
    )
    parser.add_argument(
        "--fallback-url",
        help="Alternate URL to download from if a source URL fails"
    )
    parser.add_argument(
        "--unreliable",
        action="store_true",
        help="Download URLs locally and upload staged instead of letting Shopify fetch them"
    )
    parser.add_argument(
        "--alt", "-a",
        help="Alt text for uploaded files"
    )
    parser.add_argument(
        "--metafield", "-m",
        action="append",
        help="Business identifier stored on each file as key=value (repeatable)"
    )
    parser.add_argument(
        "--wait", "-w",
        action="store_true",
        help="Wait for CDN URLs after uploading"
    )
    parser.add_argument(
        "--require-url",
        action="store_true",
        help="Treat files without a CDN URL after waiting as failed (implies --wait)"
    )
    parser.add_argument(
        "--product-id",
        help="Product to attach the uploaded image to (requires --variant-id)"
    )
    parser.add_argument(
        "--variant-id",
        action="append",
        help="Variant ID to show the image for (repeatable)"
    )
    parser.add_argument(
        "--output", "-o",
        help="Path to output JSON file for results (optional)"
    )
    parser.add_argument(
        "--log", "-l",
        help="Path to log file (default: LOG_FILE from config or uploader.log)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {SCRIPT_VERSION}"
    )

    args = parser.parse_args(argv)

    if not args.file and not args.url:
        parser.error("at least one --file or --url is required")
    if bool(args.product_id) != bool(args.variant_id):
        parser.error("--product-id and --variant-id must be used together")

    # Load configuration
    cfg = load_config()

    # Setup logging
    log_path = args.log or cfg.get("LOG_FILE") or "uploader.log"
    setup_logging(log_path, logging.DEBUG if args.verbose else logging.INFO)

    print(f"Starting {SCRIPT_VERSION}")
    print("=" * 60)

    # Validate Shopify credentials
    if not str(cfg.get("SHOPIFY_STORE_URL", "")).strip():
        print("Error: SHOPIFY_STORE_URL not configured in config.json", file=sys.stderr)
        return 1

    if not str(cfg.get("SHOPIFY_ACCESS_TOKEN", "")).strip():
        print("Error: SHOPIFY_ACCESS_TOKEN not configured in config.json", file=sys.stderr)
        return 1

    if args.log:
        cfg["LOG_FILE"] = args.log
        save_config(cfg)

    try:
        metafields = parse_metafields(args.metafield)
        requests_ = build_requests(args, metafields)
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    wait = args.wait or args.require_url

    try:
        if args.product_id:
            results = []
            for request in requests_:
                try:
                    results.append(upload_for_variants(
                        request, args.product_id, args.variant_id, cfg, status_fn=print_status
                    ))
                except UploadError as e:
                    logging.error(f"Variant image upload failed for {request.label()}: {e}")
                    print(f"❌ {e}", file=sys.stderr)
                    results.append(UploadResult(request=request, error=e))
        else:
            results = upload_many(requests_, cfg, status_fn=print_status, wait=wait)
    except KeyboardInterrupt:
        print("\nUpload interrupted by user.", file=sys.stderr)
        return 130

    failed = 0
    for result in results:
        if not result.ok:
            failed += 1
        elif args.require_url and not result.cdn_url:
            print(f"❌ No CDN URL yet for {result.asset.id}", file=sys.stderr)
            failed += 1
        else:
            print(f"{result.asset.id}\t{result.cdn_url or 'processing'}")

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump([r.to_dict() for r in results], f, indent=2)

    print("=" * 60)
    if failed:
        print(f"{failed} of {len(results)} upload(s) failed.", file=sys.stderr)
        return 1
    print("All uploads completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
