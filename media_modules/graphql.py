"""
Shopify GraphQL Admin API executor.

All pipeline steps that talk to the API host go through execute_query().
"""

import time
import logging
import requests

from .config import get_credentials, get_setting
from .exceptions import GraphQLRequestError, InvalidArgument


def graphql_endpoint(cfg):
    """
    Build the GraphQL endpoint URL and request headers from cfg.

    Returns:
        Tuple of (api_url, headers)

    Raises:
        InvalidArgument: if the store URL or access token is missing
    """
    store_url, access_token = get_credentials(cfg)
    if not store_url or not access_token:
        raise InvalidArgument("Shopify credentials not configured", step="graphql")

    api_version = get_setting(cfg, "API_VERSION")
    api_url = f"https://{store_url}/admin/api/{api_version}/graphql.json"
    headers = {
        "Content-Type": "application/json",
        "X-Shopify-Access-Token": access_token
    }
    return api_url, headers


def _is_throttled(result):
    for error in result.get("errors") or []:
        if isinstance(error, dict) and (error.get("extensions") or {}).get("code") == "THROTTLED":
            return True
    return False


def _retry_delay(response, attempt):
    retry_after = response.headers.get("Retry-After") if response is not None else None
    if retry_after:
        try:
            return float(retry_after)
        except ValueError:
            pass
    return float(2 ** attempt)


def execute_query(query, variables, cfg, step="graphql"):
    """
    Execute a GraphQL query or mutation and return its "data" object.

    Throttled requests (HTTP 429 or a THROTTLED error) are retried up to
    MAX_RETRIES times, sleeping for Retry-After or an exponential delay.
    User errors inside the data object are NOT inspected here; each caller
    checks the userErrors list of its own mutation.

    Args:
        query: GraphQL document
        variables: Variables dictionary (may be None)
        cfg: Configuration dictionary
        step: Pipeline step name used in raised errors

    Returns:
        The response's "data" dictionary

    Raises:
        GraphQLRequestError: on network errors, non-2xx responses, invalid
            JSON, or a non-empty top-level "errors" array
    """
    api_url, headers = graphql_endpoint(cfg)
    timeout = float(get_setting(cfg, "REQUEST_TIMEOUT"))
    max_retries = int(get_setting(cfg, "MAX_RETRIES"))

    payload = {"query": query}
    if variables:
        payload["variables"] = variables

    attempt = 0
    while True:
        try:
            response = requests.post(
                api_url,
                json=payload,
                headers=headers,
                timeout=timeout
            )
        except requests.exceptions.RequestException as e:
            raise GraphQLRequestError(f"Network error: {e}", step=step) from e

        if response.status_code == 429 and attempt < max_retries:
            delay = _retry_delay(response, attempt)
            logging.warning(f"GraphQL request throttled during {step}; retrying in {delay:.1f}s")
            time.sleep(delay)
            attempt += 1
            continue

        if not 200 <= response.status_code < 300:
            raise GraphQLRequestError(
                "GraphQL request failed",
                step=step,
                status_code=response.status_code,
                response_body=response.text,
            )

        try:
            result = response.json()
        except ValueError as e:
            raise GraphQLRequestError(
                "GraphQL response was not valid JSON",
                step=step,
                status_code=response.status_code,
                response_body=response.text,
            ) from e

        if _is_throttled(result) and attempt < max_retries:
            delay = _retry_delay(None, attempt)
            logging.warning(f"GraphQL query throttled during {step}; retrying in {delay:.1f}s")
            time.sleep(delay)
            attempt += 1
            continue

        if result.get("errors"):
            logging.error(f"GraphQL errors during {step}: {result['errors']}")
            raise GraphQLRequestError(
                "GraphQL errors: " + "; ".join(
                    e.get("message", str(e)) if isinstance(e, dict) else str(e)
                    for e in result["errors"]
                ),
                step=step,
                status_code=response.status_code,
                response_body=response.text,
            )

        logging.debug(f"GraphQL {step} succeeded (cost: {(result.get('extensions') or {}).get('cost')})")
        return result.get("data") or {}
