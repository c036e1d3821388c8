"""
Raw HTTP transport for the two requests that do not go to the Admin API:
the direct upload to a staged storage target, and downloading a source
file before a staged upload.
"""

import logging
from urllib.parse import urlparse

import requests

from .config import HttpConfig
from .exceptions import DownloadFailure, InvalidArgument, TransportFailure
from .multipart import multipart_content_type

# Hosts known to reject requests without browser-like headers, and that the
# platform's own fetcher frequently fails to download from.
BROWSER_HEADER_HOSTS = (
    "images.ca",
    "amazonaws.com",
    "cloudfront.net",
    "cdn.shopify.com",
    "myshopify.com",
    "akamai.net",
    "akamaized.net",
)


def requires_browser_headers(url):
    """Check if a URL's host is known to need browser-like request headers."""
    try:
        if not url or not isinstance(url, str):
            return False
        host = urlparse(url.lower()).netloc
        return any(host == domain or host.endswith("." + domain) for domain in BROWSER_HEADER_HOSTS)
    except Exception:
        return False


def _bare_session():
    # requests adds User-Agent/Accept/Accept-Encoding/Connection by default;
    # storage backends validate the signed header set, so start from nothing.
    session = requests.Session()
    session.headers.clear()
    return session


def send_to_target(target, body, boundary, http_config=None):
    """
    Send a multipart body to a staged upload target.

    The only header set explicitly is Content-Type; no API credentials are
    sent, since the target authenticates through its signed form fields.
    Nothing is retried here: a target is single-use, so retrying means
    negotiating a new one.

    Args:
        target: UploadTarget returned by create_staged_target()
        body: Multipart body bytes
        boundary: Boundary token used to build body
        http_config: HttpConfig with the upload timeout

    Returns:
        The requests.Response of the successful upload

    Raises:
        InvalidArgument: if the target has no URL or an unsupported method
        TransportFailure: on network errors or any non-2xx response
    """
    http_config = http_config or HttpConfig()
    method = (target.http_method or "POST").upper()

    if not target.url:
        raise InvalidArgument("Upload target has no URL", step="send")
    if method not in ("POST", "PUT"):
        raise InvalidArgument(f"Unsupported upload method: {method}", step="send")

    host = urlparse(target.url).netloc
    logging.info(f"Uploading {len(body)} bytes to staged target on {host} ({method})")
    logging.debug(f"Staged upload fields (in order): {[p.name for p in target.parameters]}")

    session = _bare_session()
    try:
        response = session.request(
            method,
            target.url,
            data=body,
            headers={"Content-Type": multipart_content_type(boundary)},
            timeout=http_config.upload_timeout,
        )
    except requests.exceptions.RequestException as e:
        raise TransportFailure(f"Network error uploading to {host}: {e}") from e
    finally:
        session.close()

    if not 200 <= response.status_code < 300:
        response_body = response.text
        logging.error(f"Staged upload to {host} failed with HTTP {response.status_code}: {response_body[:500]}")
        raise TransportFailure(
            f"Upload to staged target failed: {response_body[:500]}",
            status_code=response.status_code,
            response_body=response_body,
        )

    logging.info(f"Staged upload to {host} succeeded (HTTP {response.status_code})")
    return response


def download_source(url, http_config=None):
    """
    Download a source file with browser-like headers.

    Args:
        url: URL to download
        http_config: HttpConfig with download timeout and headers

    Returns:
        Tuple of (content_bytes, content_type) where content_type is the
        response's MIME type without parameters, or None if not sent

    Raises:
        DownloadFailure: on timeout, network error, non-2xx, or empty body
    """
    http_config = http_config or HttpConfig()
    if not url:
        raise DownloadFailure("Source URL is empty", url=url)

    logging.info(f"Downloading source {url}")
    try:
        response = requests.get(
            url,
            headers=http_config.download_headers(),
            timeout=http_config.download_timeout
        )
    except requests.exceptions.Timeout as e:
        raise DownloadFailure(f"Timed out downloading {url}", url=url) from e
    except requests.exceptions.RequestException as e:
        raise DownloadFailure(f"Network error downloading {url}: {e}", url=url) from e

    if not 200 <= response.status_code < 300:
        raise DownloadFailure(
            f"Download of {url} failed",
            url=url,
            status_code=response.status_code,
        )

    content = response.content
    if not content:
        raise DownloadFailure(f"Download of {url} returned no data", url=url,
                              status_code=response.status_code)

    content_type = response.headers.get("Content-Type")
    if content_type:
        content_type = content_type.split(";")[0].strip().lower() or None

    logging.info(f"Downloaded {len(content)} bytes from {url}")
    return content, content_type


def is_url_accessible(url, http_config=None):
    """
    Check whether a URL answers a GET with a 2xx status.

    Only the headers are read; the body is not downloaded. Any network
    error counts as not accessible.
    """
    http_config = http_config or HttpConfig()
    if not url:
        return False
    try:
        response = requests.get(
            url,
            headers=http_config.download_headers(),
            timeout=http_config.download_timeout,
            stream=True
        )
    except requests.exceptions.RequestException as e:
        logging.debug(f"URL check for {url} failed: {e}")
        return False
    try:
        return 200 <= response.status_code < 300
    finally:
        response.close()
