"""
Shopify REST Admin API product image operations.

Used for associating uploaded images with product variants and for the
legacy upload path where the image is attached to a product directly
(by URL or base64 attachment).
"""

import time
import base64
import logging
import requests

from .config import get_credentials, get_setting
from .exceptions import InvalidArgument, ProductImageError
from .schemas import ProductImageEnvelope, ProductImagesEnvelope, decode_payload


def _numeric_id(value, what):
    """Accept 123, "123" or "gid://shopify/Product/123" and return 123."""
    text = str(value or "").strip()
    if text.startswith("gid://"):
        text = text.rstrip("/").rsplit("/", 1)[-1]
    if not text.isdigit():
        raise InvalidArgument(f"Invalid {what}: {value!r}", step="product_image")
    return int(text)


def _rest_request(method, path, cfg, payload=None):
    store_url, access_token = get_credentials(cfg)
    if not store_url or not access_token:
        raise InvalidArgument("Shopify credentials not configured", step="product_image")

    api_version = get_setting(cfg, "API_VERSION")
    url = f"https://{store_url}/admin/api/{api_version}/{path}"
    headers = {
        "Content-Type": "application/json",
        "X-Shopify-Access-Token": access_token
    }
    timeout = float(get_setting(cfg, "REQUEST_TIMEOUT"))
    max_retries = int(get_setting(cfg, "MAX_RETRIES"))

    attempt = 0
    while True:
        try:
            response = requests.request(method, url, json=payload, headers=headers, timeout=timeout)
        except requests.exceptions.RequestException as e:
            raise ProductImageError(f"Network error calling {method} {path}: {e}") from e

        if response.status_code == 429 and attempt < max_retries:
            retry_after = response.headers.get("Retry-After")
            delay = float(retry_after) if retry_after else float(2 ** attempt)
            logging.warning(f"REST {method} {path} throttled; retrying in {delay:.1f}s")
            time.sleep(delay)
            attempt += 1
            continue

        if not 200 <= response.status_code < 300:
            errors = []
            try:
                body = response.json()
                raw = body.get("errors") if isinstance(body, dict) else None
                if isinstance(raw, dict):
                    for field, messages in raw.items():
                        for message in messages if isinstance(messages, list) else [messages]:
                            errors.append({"field": [field], "message": str(message)})
                elif raw:
                    errors.append({"message": str(raw)})
            except ValueError:
                pass
            raise ProductImageError(
                f"{method} {path} failed",
                status_code=response.status_code,
                errors=errors,
                response_body=response.text,
            )

        if method == "DELETE":
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ProductImageError(f"{method} {path} returned invalid JSON",
                                    status_code=response.status_code) from e


def create_product_image(product_id, cfg, src=None, attachment=None, filename=None,
                         alt=None, position=None, variant_ids=None):
    """
    Create a product image from a URL or raw bytes.

    Args:
        product_id: Product ID (numeric or GID)
        cfg: Configuration dictionary
        src: Image URL for the platform to fetch
        attachment: Raw image bytes, sent base64 encoded
        filename: Filename for an attachment upload
        alt: Alt text
        position: 1-based position in the product's image list
        variant_ids: Variant IDs (numeric or GID) to show this image for

    Returns:
        ProductImage

    Raises:
        InvalidArgument: if neither or both of src and attachment are given
        ProductImageError: if the request fails
    """
    if (src is None) == (attachment is None):
        raise InvalidArgument("Provide exactly one of src or attachment", step="product_image")

    pid = _numeric_id(product_id, "product ID")
    image = {}
    if src is not None:
        image["src"] = src
    else:
        image["attachment"] = base64.b64encode(bytes(attachment)).decode("ascii")
        if filename:
            image["filename"] = filename
    if alt is not None:
        image["alt"] = alt
    if position is not None:
        image["position"] = position
    if variant_ids:
        image["variant_ids"] = [_numeric_id(v, "variant ID") for v in variant_ids]

    result = _rest_request("POST", f"products/{pid}/images.json", cfg, {"image": image})
    created = decode_payload(ProductImageEnvelope, result, "product_image").image
    logging.info(f"Created product image {created.id} on product {pid} (variants: {created.variant_ids})")
    return created


def update_product_image(product_id, image_id, cfg, variant_ids=None, alt=None, position=None):
    """
    Update an existing product image.

    Passing variant_ids replaces the image's variant association with the
    given set; an empty list detaches it from all variants.

    Returns:
        The updated ProductImage
    """
    pid = _numeric_id(product_id, "product ID")
    iid = _numeric_id(image_id, "image ID")

    image = {"id": iid}
    if variant_ids is not None:
        image["variant_ids"] = [_numeric_id(v, "variant ID") for v in variant_ids]
    if alt is not None:
        image["alt"] = alt
    if position is not None:
        image["position"] = position

    result = _rest_request("PUT", f"products/{pid}/images/{iid}.json", cfg, {"image": image})
    updated = decode_payload(ProductImageEnvelope, result, "product_image").image
    logging.info(f"Updated product image {iid} on product {pid} (variants: {updated.variant_ids})")
    return updated


def delete_product_image(product_id, image_id, cfg):
    """Delete a product image."""
    pid = _numeric_id(product_id, "product ID")
    iid = _numeric_id(image_id, "image ID")
    _rest_request("DELETE", f"products/{pid}/images/{iid}.json", cfg)
    logging.info(f"Deleted product image {iid} from product {pid}")


def list_product_images(product_id, cfg):
    """Return all images of a product."""
    pid = _numeric_id(product_id, "product ID")
    result = _rest_request("GET", f"products/{pid}/images.json", cfg)
    return decode_payload(ProductImagesEnvelope, result, "product_image").images
