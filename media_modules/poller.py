"""
Polling for processed CDN URLs.

The platform fills in an asset's URLs asynchronously after fileCreate. The
poller re-reads the asset at a fixed interval until any URL representation
appears, the asset fails, or the wait bound is reached. Reaching the bound is
an expected outcome ("still processing, check later"), not an error.
"""

import time
import random
import logging
from dataclasses import dataclass
from typing import Optional

from .config import get_setting, http_config_from_cfg, log_and_status
from .exceptions import (
    FinalizationRejected,
    GraphQLRequestError,
    InvalidArgument,
    PollTimeout,
    ResponseShapeError,
)
from .graphql import execute_query
from .queries import FILE_BY_ID
from .schemas import AssetHandle, AssetStatus, FileNodeData, decode_payload
from .transport import is_url_accessible
from .utils import strip_version_parameter


@dataclass
class PollOutcome:
    """Result of wait_for_cdn_url()."""

    asset_id: str
    url: Optional[str] = None
    status: Optional[AssetStatus] = None
    asset: Optional[AssetHandle] = None
    queries: int = 0
    waited: float = 0.0
    last_error: Optional[Exception] = None

    @property
    def failed(self):
        return self.status == AssetStatus.FAILED

    @property
    def timed_out(self):
        return self.url is None and not self.failed

    def raise_for_timeout(self):
        """Raise if no URL was obtained; return the URL otherwise."""
        if self.failed:
            errors = [e.model_dump() for e in self.asset.file_errors] if self.asset else []
            raise FinalizationRejected(
                f"Asset {self.asset_id} failed processing",
                step="poll",
                errors=errors,
            )
        if self.url is None:
            raise PollTimeout(
                f"No CDN URL for {self.asset_id} after {self.waited:.0f}s; still processing, check later",
                asset_id=self.asset_id,
                waited=self.waited,
            )
        return self.url


def fetch_asset(asset_id, cfg):
    """
    Read a file by ID.

    Returns:
        AssetHandle, or None if the node is not visible yet
    """
    if not asset_id:
        raise InvalidArgument("Asset ID cannot be empty", step="poll")
    data = execute_query(FILE_BY_ID, {"id": asset_id}, cfg, step="poll")
    return decode_payload(FileNodeData, data, "poll").node


def wait_for_cdn_url(asset_id, cfg, max_wait=None, poll_interval=None, jitter=None,
                     status_fn=None, sleep=time.sleep, clock=time.monotonic):
    """
    Wait until an asset has a usable URL.

    Each tick issues one file-by-id query. The first non-empty URL among the
    rendered, original, transformed and preview representations ends the
    wait. With max_wait smaller than one tick, exactly one query is made.

    Args:
        asset_id: File GID returned by finalize_asset()
        cfg: Configuration dictionary
        max_wait: Wait bound in seconds (default CDN_POLL_MAX_WAIT)
        poll_interval: Seconds between queries (default CDN_POLL_INTERVAL)
        jitter: Extra random delay of up to this many seconds per tick
        status_fn: Optional status update function
        sleep: Sleep function (injectable for tests)
        clock: Monotonic clock function (injectable for tests)

    Returns:
        PollOutcome; check .url, .timed_out and .failed
    """
    max_wait = float(get_setting(cfg, "CDN_POLL_MAX_WAIT") if max_wait is None else max_wait)
    poll_interval = float(get_setting(cfg, "CDN_POLL_INTERVAL") if poll_interval is None else poll_interval)
    jitter = float(get_setting(cfg, "CDN_POLL_JITTER") if jitter is None else jitter)

    if poll_interval <= 0:
        raise InvalidArgument(f"Poll interval must be positive, got {poll_interval}", step="poll")

    outcome = PollOutcome(asset_id=asset_id)
    start = clock()

    while True:
        try:
            asset = fetch_asset(asset_id, cfg)
            outcome.last_error = None
        except (GraphQLRequestError, ResponseShapeError) as e:
            # A half-populated node reads as pending; the asset itself is still registered
            logging.warning(f"Polling {asset_id} failed, will retry: {e}")
            asset = None
            outcome.last_error = e
        outcome.queries += 1
        outcome.waited = clock() - start

        if asset is not None:
            outcome.asset = asset
            outcome.status = asset.status
            url = asset.first_available_url()
            if url:
                outcome.url = url
                log_and_status(status_fn, f"  ✅ CDN URL available after {outcome.waited:.0f}s: {url}")
                return outcome
            if asset.is_failed:
                log_and_status(status_fn, f"  Asset {asset_id} failed processing", "error")
                return outcome

        delay = poll_interval + (random.uniform(0, jitter) if jitter > 0 else 0)
        if outcome.waited + delay > max_wait:
            log_and_status(
                status_fn,
                f"  CDN URL for {asset_id} not available after {outcome.waited:.0f}s; still processing",
                "warning",
            )
            return outcome

        status = outcome.status.value if outcome.status else "pending"
        log_and_status(status_fn, f"  Waiting for CDN URL ({status}, {outcome.waited:.0f}s)...", "debug")
        sleep(delay)


def ensure_working_url(url, asset_id, cfg, fallback_url=None, status_fn=None, sleep=time.sleep):
    """
    Make sure a CDN URL actually serves before handing it on.

    A freshly reported URL can 404 for a while as the CDN propagates. The
    checks run in order until one URL answers with a 2xx:

    1. the URL as given
    2. the URL without its ?v= cache-busting parameter
    3. a fresh URL read back from the asset
    4. the URL as given, retried CDN_CHECK_RETRIES times with exponential
       backoff (2, 4, 8... seconds)
    5. fallback_url, if given

    Args:
        url: CDN URL reported for the asset
        asset_id: File GID, used to re-read the asset
        cfg: Configuration dictionary
        fallback_url: Last-resort URL (e.g. the original source)
        status_fn: Optional status update function
        sleep: Sleep function (injectable for tests)

    Returns:
        The first working URL, or url itself when nothing answered
    """
    if not url:
        raise InvalidArgument("CDN URL cannot be empty", step="poll")

    http_config = http_config_from_cfg(cfg)
    if is_url_accessible(url, http_config):
        return url

    log_and_status(status_fn, f"  ⚠️ CDN URL not reachable yet: {url}", "warning")

    tried = {url}
    unversioned = strip_version_parameter(url)
    if unversioned not in tried:
        tried.add(unversioned)
        if is_url_accessible(unversioned, http_config):
            log_and_status(status_fn, "  ✅ CDN URL works without its version parameter")
            return unversioned

    if asset_id:
        try:
            asset = fetch_asset(asset_id, cfg)
        except (GraphQLRequestError, ResponseShapeError) as e:
            logging.warning(f"Could not re-read {asset_id} for a fresh CDN URL: {e}")
            asset = None
        fresh_url = asset.first_available_url() if asset is not None else None
        if fresh_url and fresh_url not in tried and is_url_accessible(fresh_url, http_config):
            log_and_status(status_fn, f"  ✅ Using updated CDN URL: {fresh_url}")
            return fresh_url

    retries = max(0, int(get_setting(cfg, "CDN_CHECK_RETRIES")))
    for attempt in range(1, retries + 1):
        delay = 2 ** attempt
        log_and_status(status_fn, f"  Retrying CDN URL {attempt}/{retries} in {delay}s...", "debug")
        sleep(delay)
        if is_url_accessible(url, http_config):
            log_and_status(status_fn, "  ✅ CDN URL became reachable")
            return url

    if fallback_url and is_url_accessible(fallback_url, http_config):
        log_and_status(status_fn, f"  ⚠️ CDN URL still not reachable, using {fallback_url}", "warning")
        return fallback_url

    log_and_status(status_fn, f"  ⚠️ CDN URL still not reachable, keeping {url}", "warning")
    return url
