"""
Catalog API operations for the Catalog Taxonomy Admin.

This module contains all functions that talk to the catalog REST API for the
three taxonomy levels. It is a thin transport: payloads go out as given and
raw server records come back. Non-2xx responses raise ApiError, network
failures raise TransportError.
"""

import logging
import requests

from .config import DEFAULT_API_URL, get_timeout
from .errors import ApiError, ConfigurationError, TransportError


def _base_url(cfg):
    base_url = str(cfg.get("CATALOG_API_URL", DEFAULT_API_URL) or "").strip()
    if not base_url:
        logging.error("Catalog API URL not configured")
        raise ConfigurationError("Catalog API URL is not configured. Please set it in Settings.")
    return base_url.rstrip("/")


def _headers(cfg):
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json"
    }
    token = str(cfg.get("CATALOG_API_TOKEN", "") or "").strip()
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _error_message(response):
    """Pull the server-provided message out of an error response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message.strip():
            return message
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str) and error.strip():
            return error

    return f"HTTP {response.status_code}"


def _request(method, path, cfg, payload=None, params=None):
    """
    Issue a request against the Catalog API and return the unwrapped body.

    Args:
        method: HTTP method
        path: Path relative to the API root (e.g. "/categories")
        cfg: Configuration dictionary
        payload: Optional JSON body
        params: Optional query parameters

    Returns:
        The "data" member of the response body when present, the body itself
        otherwise, or None for empty responses

    Raises:
        ApiError: Non-2xx response
        TransportError: Network failure or timeout
    """
    url = f"{_base_url(cfg)}{path}"
    logging.debug(f"{method} {path} params={params} payload={payload}")

    try:
        response = requests.request(
            method,
            url,
            json=payload,
            params=params,
            headers=_headers(cfg),
            timeout=get_timeout(cfg)
        )
    except requests.exceptions.RequestException as e:
        logging.error(f"Network error calling {method} {path}: {e}")
        raise TransportError(f"Could not reach the catalog server: {e}") from e

    if response.status_code < 200 or response.status_code >= 300:
        message = _error_message(response)
        logging.error(f"{method} {path} failed with HTTP {response.status_code}: {message}")
        raise ApiError(response.status_code, message)

    if response.status_code == 204 or not response.content:
        return None

    try:
        body = response.json()
    except ValueError:
        logging.warning(f"{method} {path} returned a non-JSON body")
        return None

    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


# ============================================================================
# CATEGORIES
# ============================================================================

def list_categories(cfg):
    """Fetch all categories (each may embed its subcategories)."""
    return _request("GET", "/categories", cfg)


def create_category(payload, cfg):
    return _request("POST", "/categories", cfg, payload=payload)


def update_category(category_id, payload, cfg):
    return _request("PUT", f"/categories/{category_id}", cfg, payload=payload)


def delete_category(category_id, cfg):
    _request("DELETE", f"/categories/{category_id}", cfg)


def toggle_category_status(category_id, cfg):
    return _request("PATCH", f"/categories/{category_id}/toggle-status", cfg)


# ============================================================================
# SUBCATEGORIES
# ============================================================================

def list_subcategories(cfg, category_id=None):
    """
    Fetch subcategories, optionally scoped to one category.

    Args:
        cfg: Configuration dictionary
        category_id: Optional owning category id

    Returns:
        Raw subcategory records
    """
    params = {"categoryId": category_id} if category_id else None
    return _request("GET", "/subcategory", cfg, params=params)


def create_subcategory(payload, cfg):
    return _request("POST", "/subcategory", cfg, payload=payload)


def update_subcategory(subcategory_id, payload, cfg):
    return _request("PATCH", f"/subcategories/{subcategory_id}", cfg, payload=payload)


def delete_subcategory(subcategory_id, cfg):
    _request("DELETE", f"/subcategory/{subcategory_id}", cfg)


def toggle_subcategory_status(subcategory_id, cfg):
    return _request("PATCH", f"/subcategory/{subcategory_id}/status", cfg)


# ============================================================================
# SUB-SUBCATEGORIES
# ============================================================================

def list_sub_subcategories(subcategory_id, cfg):
    """Fetch the sub-subcategories of one subcategory."""
    return _request("GET", "/sub-subcategories", cfg, params={"subcategoryId": subcategory_id})


def create_sub_subcategory(payload, cfg):
    return _request("POST", "/sub-subcategory", cfg, payload=payload)


def update_sub_subcategory(sub_subcategory_id, payload, cfg):
    return _request("PATCH", f"/sub-subcategory/{sub_subcategory_id}", cfg, payload=payload)


def delete_sub_subcategory(sub_subcategory_id, cfg):
    _request("DELETE", f"/sub-subcategory/{sub_subcategory_id}", cfg)


def toggle_sub_subcategory_status(sub_subcategory_id, cfg):
    return _request("PATCH", f"/sub-subcategory/{sub_subcategory_id}/status", cfg)
