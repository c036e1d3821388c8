"""
Upload orchestration: strategy selection, batching and variant association.

Two strategies exist for getting a file into the store:

- reference: hand a public URL to fileCreate and let the platform fetch it.
  Cheap, but the platform's fetcher fails on slow origins and on hosts that
  reject non-browser clients.
- staged: download the bytes ourselves (or use bytes the caller already
  has), negotiate a staged target, send a multipart body to it, and
  register the staged resource URL with fileCreate.

Bytes always go staged. URLs go by reference unless they are known to be
unreliable, in which case, or when the reference attempt fails, they go
staged.
"""

import time
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Union
from urllib.parse import urlparse

from .config import get_setting, http_config_from_cfg, log_and_status
from .exceptions import (
    DownloadFailure,
    FinalizationRejected,
    InvalidArgument,
    MetadataWriteFailure,
    TransportFailure,
    UploadError,
)
from .finalizer import content_type_for_mime_type, finalize_asset
from .metafields import metafield_entries, set_metafields
from .multipart import build_multipart_body, layout_from_cfg
from .poller import ensure_working_url, wait_for_cdn_url
from .product_images import create_product_image, update_product_image
from .schemas import AssetHandle, ProductImage
from .staged_upload import create_staged_target
from .transport import download_source, requires_browser_headers, send_to_target
from .utils import extension_for_mime_type, filename_from_url, guess_mime_type

STRATEGY_REFERENCE = "reference"
STRATEGY_STAGED = "staged"

# Words in a fileCreate user error that point at the source URL rather than
# at the file input itself
_SOURCE_ERROR_HINTS = ("originalsource", "source", "url", "fetch", "download")

_GENERIC_MIME_TYPES = ("application/octet-stream", "binary/octet-stream")


@dataclass
class UploadRequest:
    """
    One file to upload.

    source is either the file's bytes or a URL. reliable=False marks a URL
    the platform is unlikely to fetch on its own (slow origin, hotlink
    protection), so it is downloaded locally and uploaded staged.
    fallback_url is tried when downloading source fails. metafields are
    written in METAFIELD_NAMESPACE after the file is registered.
    """

    source: Union[bytes, str]
    filename: Optional[str] = None
    mime_type: Optional[str] = None
    alt_text: Optional[str] = None
    reliable: bool = True
    fallback_url: Optional[str] = None
    metafields: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_url(self):
        return isinstance(self.source, str)

    def label(self):
        if self.is_url:
            return self.source
        return self.filename or f"<{len(self.source)} bytes>"


@dataclass
class UploadResult:
    """Outcome of one upload. error is set when the upload itself failed."""

    request: UploadRequest
    asset: Optional[AssetHandle] = None
    error: Optional[UploadError] = None
    strategy: Optional[str] = None
    cdn_url: Optional[str] = None
    poll_timed_out: bool = False
    metadata_error: Optional[MetadataWriteFailure] = None
    product_image: Optional[ProductImage] = None

    @property
    def ok(self):
        return self.asset is not None and self.error is None

    def to_dict(self):
        return {
            "source": self.request.label(),
            "ok": self.ok,
            "strategy": self.strategy,
            "asset_id": self.asset.id if self.asset else None,
            "status": self.asset.status.value if self.asset else None,
            "cdn_url": self.cdn_url,
            "poll_timed_out": self.poll_timed_out,
            "error": self.error.to_dict() if self.error else None,
            "metadata_error": self.metadata_error.to_dict() if self.metadata_error else None,
            "product_image_id": self.product_image.id if self.product_image else None,
        }


def _as_request(item):
    if isinstance(item, UploadRequest):
        return item
    return UploadRequest(source=item)


def _host(url):
    try:
        return urlparse(url).netloc.lower()
    except ValueError:
        return ""


def _is_source_rejection(error):
    """Check whether a FinalizationRejected is about the source URL."""
    for err in error.errors:
        if isinstance(err, dict):
            text = f"{err.get('field')} {err.get('message', '')} {err.get('code') or ''}"
        else:
            text = str(err)
        if any(hint in text.lower() for hint in _SOURCE_ERROR_HINTS):
            return True
    return False


def upload_bytes_staged(data, filename, mime_type, cfg, alt_text=None, status_fn=None):
    """
    Upload bytes through a staged target and register them as a file.

    Each attempt negotiates a new target, since targets are single-use.
    Only TransportFailure is retried (up to STAGED_UPLOAD_ATTEMPTS attempts
    in total); negotiation and finalization errors surface immediately.
    fileCreate is only called after a successful send.

    Returns:
        AssetHandle from fileCreate

    Raises:
        InvalidArgument: on empty data or filename
        NegotiationRejected, TransportFailure, FinalizationRejected
    """
    if not data:
        raise InvalidArgument("No file data to upload", step="validate")
    if not filename:
        raise InvalidArgument("Filename cannot be empty", step="validate")

    mime_type = mime_type or guess_mime_type(filename)
    attempts = max(1, int(get_setting(cfg, "STAGED_UPLOAD_ATTEMPTS")))
    layout = layout_from_cfg(cfg)
    http_config = http_config_from_cfg(cfg)

    last_error = None
    for attempt in range(1, attempts + 1):
        target = create_staged_target(filename, mime_type, len(data), cfg, status_fn=status_fn)
        body, boundary = build_multipart_body(
            target.parameter_pairs(),
            filename,
            mime_type,
            data,
            layout=layout,
        )
        try:
            send_to_target(target, body, boundary, http_config)
        except TransportFailure as e:
            last_error = e
            log_and_status(
                status_fn,
                f"  ⚠️ Upload attempt {attempt}/{attempts} for {filename} failed: {e}",
                "warning",
            )
            continue

        log_and_status(status_fn, f"  ✅ Uploaded {filename} ({len(data)} bytes)")
        return finalize_asset(
            target.resource_url,
            content_type_for_mime_type(mime_type),
            cfg,
            alt_text=alt_text,
            status_fn=status_fn,
        )

    raise last_error


def _download_with_fallback(request, cfg, status_fn=None):
    """Download request.source, then request.fallback_url. Returns (data, content_type, url)."""
    http_config = http_config_from_cfg(cfg)
    urls = [request.source]
    if request.fallback_url and request.fallback_url != request.source:
        urls.append(request.fallback_url)

    failures = []
    for url in urls:
        try:
            data, content_type = download_source(url, http_config)
            return data, content_type, url
        except DownloadFailure as e:
            failures.append(e)
            log_and_status(status_fn, f"  ⚠️ Download failed: {e}", "warning")

    if len(failures) == 1:
        raise failures[0]
    raise DownloadFailure(
        "All sources failed to download: " + "; ".join(e.message for e in failures),
        url=request.source,
        status_code=failures[-1].status_code,
    )


def _upload_url_staged(request, cfg, status_fn=None):
    data, content_type, used_url = _download_with_fallback(request, cfg, status_fn)

    filename = request.filename or filename_from_url(used_url)
    mime_type = request.mime_type
    if not mime_type:
        if content_type and content_type not in _GENERIC_MIME_TYPES:
            mime_type = content_type
        else:
            mime_type = guess_mime_type(filename)
    if "." not in filename:
        filename += extension_for_mime_type(mime_type)

    return upload_bytes_staged(data, filename, mime_type, cfg,
                               alt_text=request.alt_text, status_fn=status_fn)


def _reference_content_type(request):
    mime_type = request.mime_type or guess_mime_type(
        request.filename or filename_from_url(request.source), default=None
    )
    # Extension-less URLs are overwhelmingly product images
    return content_type_for_mime_type(mime_type) if mime_type else "IMAGE"


def _fetch_rejection(request, asset):
    """FinalizationRejected for a referenced source the platform marked FAILED."""
    file_errors = asset.file_errors if asset else []
    return FinalizationRejected(
        f"Platform could not fetch {request.source}",
        errors=[
            {"field": ["originalSource"], "message": fe.message or "fetch failed", "code": fe.code}
            for fe in file_errors
        ] or [{"field": ["originalSource"], "message": "source could not be processed"}],
    )


def _upload_by_reference(request, cfg, status_fn=None, sleep=time.sleep):
    """
    Register a URL directly, then check briefly whether the platform could
    fetch it.

    The asset is read at least once after fileCreate; with
    REFERENCE_CHECK_WAIT above zero it is polled for up to that long.

    Returns:
        Tuple of (AssetHandle, cdn_url or None)

    Raises:
        FinalizationRejected: if fileCreate rejects the file, or the platform
            marks it FAILED within REFERENCE_CHECK_WAIT seconds
    """
    asset = finalize_asset(
        request.source,
        _reference_content_type(request),
        cfg,
        alt_text=request.alt_text,
        status_fn=status_fn,
    )

    check_wait = max(0.0, float(get_setting(cfg, "REFERENCE_CHECK_WAIT")))
    interval = float(get_setting(cfg, "CDN_POLL_INTERVAL"))
    if check_wait > 0:
        interval = min(interval, check_wait)
    outcome = wait_for_cdn_url(asset.id, cfg, max_wait=check_wait, poll_interval=interval,
                               status_fn=status_fn, sleep=sleep)
    if outcome.failed:
        raise _fetch_rejection(request, outcome.asset)
    return (outcome.asset or asset), outcome.url


def _fall_back_to_staged(request, cfg, error, failed_hosts, status_fn=None):
    failed_hosts.add(_host(request.source))
    log_and_status(
        status_fn,
        f"  ⚠️ Reference upload failed ({error}); falling back to staged upload",
        "warning",
    )
    return _upload_url_staged(request, cfg, status_fn)


def _await_cdn_url(result, cfg, status_fn=None, sleep=time.sleep):
    outcome = wait_for_cdn_url(result.asset.id, cfg, status_fn=status_fn, sleep=sleep)
    if outcome.asset is not None:
        result.asset = outcome.asset
    result.cdn_url = outcome.url
    result.poll_timed_out = outcome.timed_out
    return outcome


def _write_metafields(result, cfg, status_fn=None):
    namespace = get_setting(cfg, "METAFIELD_NAMESPACE")
    entries = metafield_entries(result.request.metafields, namespace)
    if not entries:
        return

    attempts = 1 + max(0, int(get_setting(cfg, "METAFIELD_RETRIES")))
    for attempt in range(1, attempts + 1):
        try:
            set_metafields(result.asset.id, entries, cfg, status_fn=status_fn)
            result.metadata_error = None
            return
        except MetadataWriteFailure as e:
            result.metadata_error = e
            logging.warning(f"Metafield write {attempt}/{attempts} on {result.asset.id} failed: {e}")
        except InvalidArgument as e:
            # Bad keys fail the same way on every attempt
            result.metadata_error = MetadataWriteFailure(
                f"Invalid metafields for {result.asset.id}: {e.message}"
            )
            logging.warning(f"Metafields for {result.asset.id} not written: {e}")
            break

    log_and_status(
        status_fn,
        f"  ⚠️ Metafields not stored on {result.asset.id}; the file itself was uploaded",
        "warning",
    )


def upload_one(request, cfg, status_fn=None, wait=False, failed_hosts=None, sleep=time.sleep):
    """
    Upload a single file, choosing the strategy from its source.

    Args:
        request: UploadRequest, or bare bytes / URL string
        cfg: Configuration dictionary
        status_fn: Optional status update function
        wait: Also wait up to CDN_POLL_MAX_WAIT for a CDN URL
        failed_hosts: Set of hosts that already failed by reference in this
            run; such hosts go straight to the staged strategy, and hosts
            failing here are added to it
        sleep: Sleep function (injectable for tests)

    Returns:
        UploadResult with asset set. A metafield failure or a poll timeout is
        recorded on the result without raising. With wait=True, a referenced
        source the platform marks FAILED while waiting is uploaded staged
        instead, and metafields go on the asset that is kept.

    Raises:
        UploadError subclass describing the step that failed. DownloadFailure
        means no source could be fetched; FinalizationRejected means the
        platform refused the file itself.
    """
    request = _as_request(request)
    failed_hosts = failed_hosts if failed_hosts is not None else set()

    if request.source is None or (not request.is_url and not isinstance(request.source, (bytes, bytearray))):
        raise InvalidArgument(f"Unsupported source type: {type(request.source).__name__}")
    if not request.source:
        raise InvalidArgument("Source cannot be empty")

    cdn_url = None
    if not request.is_url:
        strategy = STRATEGY_STAGED
        mime_type = request.mime_type or (guess_mime_type(request.filename) if request.filename else None)
        filename = request.filename or ("upload" + extension_for_mime_type(mime_type))
        asset = upload_bytes_staged(bytes(request.source), filename, mime_type, cfg,
                                    alt_text=request.alt_text, status_fn=status_fn)
    else:
        host = _host(request.source)
        if not request.reliable or host in failed_hosts or requires_browser_headers(request.source):
            strategy = STRATEGY_STAGED
            log_and_status(status_fn, f"  Using staged upload for {host}", "debug")
            asset = _upload_url_staged(request, cfg, status_fn)
        else:
            try:
                strategy = STRATEGY_REFERENCE
                asset, cdn_url = _upload_by_reference(request, cfg, status_fn, sleep=sleep)
            except FinalizationRejected as e:
                if not _is_source_rejection(e):
                    raise
                strategy = STRATEGY_STAGED
                asset = _fall_back_to_staged(request, cfg, e, failed_hosts, status_fn)

    result = UploadResult(request=request, asset=asset, strategy=strategy, cdn_url=cdn_url)

    if wait and not result.cdn_url:
        outcome = _await_cdn_url(result, cfg, status_fn, sleep)
        if outcome.failed and result.strategy == STRATEGY_REFERENCE:
            # The platform gave up fetching the source after the check window
            result.asset = _fall_back_to_staged(
                request, cfg, _fetch_rejection(request, outcome.asset), failed_hosts, status_fn
            )
            result.strategy = STRATEGY_STAGED
            outcome = _await_cdn_url(result, cfg, status_fn, sleep)
        if outcome.failed:
            outcome.raise_for_timeout()

    _write_metafields(result, cfg, status_fn)
    return result


def upload_many(requests_, cfg, status_fn=None, wait=False, sleep=time.sleep) -> List[UploadResult]:
    """
    Upload files one after another, pausing between batches.

    A failing item never stops the run: its error is recorded on its result
    and the next item is attempted. Exactly one result is returned per
    input, in input order.

    Args:
        requests_: Iterable of UploadRequest (or bytes / URL strings)
        cfg: Configuration dictionary
        status_fn: Optional status update function
        wait: Wait for a CDN URL after each upload
        sleep: Sleep function (injectable for tests)
    """
    items = [_as_request(item) for item in requests_]
    batch_size = max(1, int(get_setting(cfg, "BATCH_SIZE")))
    pause = float(get_setting(cfg, "BATCH_PAUSE_SECONDS"))
    failed_hosts: Set[str] = set()
    results = []

    log_and_status(status_fn, "\n" + "=" * 80)
    log_and_status(status_fn, f"UPLOADING {len(items)} FILE(S)")
    log_and_status(status_fn, "=" * 80)

    for index, item in enumerate(items):
        if index and index % batch_size == 0 and pause > 0:
            log_and_status(status_fn, f"  Pausing {pause:.1f}s between batches...")
            sleep(pause)

        log_and_status(status_fn, f"\n[{index + 1}/{len(items)}] {item.label()}")
        try:
            result = upload_one(item, cfg, status_fn=status_fn, wait=wait,
                                failed_hosts=failed_hosts, sleep=sleep)
        except UploadError as e:
            log_and_status(status_fn, f"  ❌ {e}", "error")
            result = UploadResult(request=item, error=e)
        results.append(result)

    succeeded = sum(1 for r in results if r.ok)
    log_and_status(status_fn, "\n" + "=" * 80)
    log_and_status(status_fn, "UPLOAD SUMMARY")
    log_and_status(status_fn, "=" * 80)
    log_and_status(status_fn, f"✅ Uploaded: {succeeded}")
    if succeeded < len(results):
        log_and_status(status_fn, f"❌ Failed: {len(results) - succeeded}", "error")
    pending = sum(1 for r in results if r.ok and r.poll_timed_out)
    if pending:
        log_and_status(status_fn, f"⏳ Still processing: {pending}")
    log_and_status(status_fn, "=" * 80 + "\n")

    return results


def upload_for_variants(request, product_id, variant_ids, cfg, status_fn=None, sleep=time.sleep):
    """
    Upload a file and show it as the image of specific product variants.

    The file is uploaded as in upload_one(), its CDN URL is awaited, and a
    product image pointing at that URL is created with the variant IDs.
    The URL is checked with ensure_working_url() first, since the image
    endpoint downloads it.

    Returns:
        UploadResult with asset, cdn_url and product_image set

    Raises:
        InvalidArgument: without a product ID or variant IDs
        PollTimeout: if no CDN URL appeared within CDN_POLL_MAX_WAIT
        ProductImageError: if the product image could not be created
    """
    if not product_id:
        raise InvalidArgument("Product ID is required for variant images")
    if not variant_ids:
        raise InvalidArgument("At least one variant ID is required")

    request = _as_request(request)
    result = upload_one(request, cfg, status_fn=status_fn, sleep=sleep)

    if not result.cdn_url:
        outcome = wait_for_cdn_url(result.asset.id, cfg, status_fn=status_fn, sleep=sleep)
        result.cdn_url = outcome.raise_for_timeout()
        if outcome.asset is not None:
            result.asset = outcome.asset

    # The product image endpoint fetches src itself, so it must already serve
    fallback_url = request.source if request.is_url and request.reliable else None
    result.cdn_url = ensure_working_url(result.cdn_url, result.asset.id, cfg,
                                        fallback_url=fallback_url, status_fn=status_fn, sleep=sleep)

    result.product_image = create_product_image(
        product_id,
        cfg,
        src=result.cdn_url,
        alt=request.alt_text,
        variant_ids=list(variant_ids),
    )
    log_and_status(
        status_fn,
        f"  ✅ Image {result.product_image.id} linked to {len(result.product_image.variant_ids)} variant(s)",
    )
    return result


def reassign_image_variants(product_id, image_id, variant_ids, cfg, status_fn=None):
    """
    Point an existing product image at a different set of variants.

    This updates the image in place; nothing is uploaded again. An empty
    variant list detaches the image from all variants.

    Returns:
        The updated ProductImage
    """
    image = update_product_image(product_id, image_id, cfg, variant_ids=list(variant_ids or []))
    log_and_status(status_fn, f"  ✅ Image {image.id} now linked to variants {image.variant_ids}")
    return image
