from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests

from .config import HTTP_TIMEOUT_SECONDS, PRODUCTS_MAX_PAGES, PRODUCTS_PAGE_LIMIT
from .events import broadcast_log
from .utils import HTTPError, check_response, get_http_session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Variant:
    id: int
    title: str
    price: str         # kept as published ("10.00"), never parsed to float
    available: bool


@dataclass
class Product:
    id: int
    title: str
    handle: str
    updated_at: Optional[str]
    images: List[str] = field(default_factory=list)
    variants: List[Variant] = field(default_factory=list)
    body_html: str = ""

    @property
    def image_url(self) -> Optional[str]:
        return self.images[0] if self.images else None


def _build_products_endpoint(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/products.json"


def _parse_available(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def _parse_variant(item: dict) -> Optional[Variant]:
    try:
        vid = int(item["id"])
    except (KeyError, TypeError, ValueError):
        return None
    price = item.get("price")
    return Variant(
        id=vid,
        title=str(item.get("title") or ""),
        price="" if price is None else str(price),
        available=_parse_available(item.get("available")),
    )


def _parse_images(raw) -> List[str]:
    images: List[str] = []
    if not isinstance(raw, list):
        return images
    for img in raw:
        if isinstance(img, dict):
            src = img.get("src")
        else:
            src = img
        if isinstance(src, str) and src.strip():
            images.append(src.strip())
    return images


def parse_product(item: dict) -> Optional[Product]:
    """Build a Product from one products.json record; None when unusable."""
    if not isinstance(item, dict):
        return None
    try:
        pid = int(item["id"])
    except (KeyError, TypeError, ValueError):
        return None

    raw_variants = item.get("variants")
    if not isinstance(raw_variants, list):
        raw_variants = []

    variants: List[Variant] = []
    for raw in raw_variants:
        v = _parse_variant(raw) if isinstance(raw, dict) else None
        if v is None:
            logger.debug("Skipping malformed variant on product %s: %r", pid, raw)
            continue
        variants.append(v)

    updated_at = item.get("updated_at")
    return Product(
        id=pid,
        title=str(item.get("title") or ""),
        handle=str(item.get("handle") or ""),
        updated_at=None if updated_at is None else str(updated_at),
        images=_parse_images(item.get("images")),
        variants=variants,
        body_html=str(item.get("body_html") or ""),
    )


def _fetch_page(
    session: requests.Session,
    url: str,
    params: dict,
    headers: dict,
    timeout: float,
) -> List[dict]:
    resp = check_response(session.get(url, params=params, headers=headers, timeout=timeout))
    data = resp.json()
    if not isinstance(data, dict):
        raise ValueError("unexpected products.json body")
    items = data.get("products") or []
    if not isinstance(items, list):
        raise ValueError("products is not a list")
    return items


def fetch_products(
    base_url: str,
    user_agent: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = HTTP_TIMEOUT_SECONDS,
    max_pages: int = PRODUCTS_MAX_PAGES,
    limit: int = PRODUCTS_PAGE_LIMIT,
) -> List[Product]:
    """Return the products currently published by a storefront.

    Any failure (transport, HTTP status, body) is logged and yields an empty
    list so one broken storefront never aborts the cycle.
    """
    close_session = False
    if session is None:
        session = get_http_session(user_agent)
        close_session = True

    url = _build_products_endpoint(base_url)
    headers = {"User-Agent": user_agent}
    items: List[dict] = []
    try:
        for page in range(1, max(1, max_pages) + 1):
            params = {"limit": limit}
            if page > 1:
                params["page"] = page
            logger.debug("Products fetch: %s %s", url, params)
            page_items = _fetch_page(session, url, params, headers, timeout)
            items.extend(page_items)
            if len(page_items) < limit:
                break
    except (requests.RequestException, HTTPError, ValueError) as e:
        broadcast_log(f"Error fetching {base_url}: {e}", "error")
        return []
    finally:
        if close_session:
            session.close()

    products: List[Product] = []
    for item in items:
        try:
            p = parse_product(item)
        except (TypeError, ValueError, AttributeError):
            logger.debug("Failed to parse product record from %s", base_url, exc_info=True)
            p = None
        if p is None:
            logger.debug("Skipping malformed product record from %s: %r", base_url, item)
            continue
        products.append(p)
    return products


__all__ = ["Variant", "Product", "parse_product", "fetch_products"]
