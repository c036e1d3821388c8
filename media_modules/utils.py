"""
Utility functions for Shopify Media Uploader.
"""

import os
from urllib.parse import urlparse, unquote

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".heic": "image/heic",
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".glb": "model/gltf-binary",
    ".usdz": "model/vnd.usdz+zip",
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".csv": "text/csv",
}

CROP_MODES = ("center", "top", "bottom", "left", "right")
IMAGE_FORMATS = ("jpg", "jpeg", "png", "webp", "gif")


def guess_mime_type(filename, default="application/octet-stream"):
    """
    Guess a MIME type from a filename or path extension.

    Examples:
        'photo.JPG' -> 'image/jpeg'
        'model.glb' -> 'model/gltf-binary'
        'archive.xyz' -> 'application/octet-stream'
    """
    extension = os.path.splitext(filename or "")[1].lower()
    return MIME_TYPES.get(extension, default)


def extension_for_mime_type(mime_type):
    """Return a file extension for a MIME type ('.jpg' for image/jpeg), or ''."""
    for extension, known in MIME_TYPES.items():
        if known == (mime_type or "").lower():
            return extension
    return ""


def filename_from_url(url, default="upload"):
    """
    Derive a filename from the last path segment of a URL.

    Query strings are ignored, so
    'https://example.com/gifts/1.jpg?width=810' -> '1.jpg'.
    """
    try:
        path = urlparse(url or "").path
    except ValueError:
        return default
    name = unquote(path.rstrip("/").rsplit("/", 1)[-1]) if path else ""
    return name or default


def build_transformed_url(base_url, width=None, height=None, crop=None, image_format=None,
                          quality=None, scale=None):
    """
    Append Shopify CDN transformation parameters to an image URL.

    Quality is clamped to 1-100. Parameters are appended in a fixed order
    (width, height, crop, format, quality, scale) and the URL is returned
    unchanged when none are given.

    Raises:
        ValueError: on an empty URL or an unknown crop mode/format
    """
    if not base_url:
        raise ValueError("Base CDN URL cannot be empty")

    params = []
    if width is not None:
        params.append(f"width={int(width)}")
    if height is not None:
        params.append(f"height={int(height)}")
    if crop is not None:
        if crop not in CROP_MODES:
            raise ValueError(f"Unknown crop mode: {crop}")
        params.append(f"crop={crop}")
    if image_format is not None:
        if image_format not in IMAGE_FORMATS:
            raise ValueError(f"Unknown image format: {image_format}")
        params.append(f"format={image_format}")
    if quality is not None:
        params.append(f"quality={max(1, min(100, int(quality)))}")
    if scale is not None:
        params.append(f"scale={scale}")

    if not params:
        return base_url

    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{'&'.join(params)}"


def create_responsive_urls(base_url):
    """Build the standard set of responsive image URLs for a CDN URL."""
    return {
        "thumbnail": build_transformed_url(base_url, width=150, height=150, crop="center"),
        "small": build_transformed_url(base_url, width=300, height=300, crop="center"),
        "medium": build_transformed_url(base_url, width=800, height=600, crop="center"),
        "large": build_transformed_url(base_url, width=1200, height=800, crop="center"),
        "webp": build_transformed_url(base_url, image_format="webp", quality=85),
        "original": base_url,
    }


def strip_version_parameter(url):
    """Remove the v= cache-busting parameter from a CDN URL, keeping any others."""
    if not url or "?" not in url:
        return url
    base, _, rest = url.partition("?")
    query, hash_mark, fragment = rest.partition("#")
    kept = [part for part in query.split("&") if part and not part.startswith("v=")]
    if kept:
        base += "?" + "&".join(kept)
    return base + hash_mark + fragment
