"""Discord webhook notifier.

Renders a product event ("new" or "update") into a webhook embed and posts
it once.  With no webhook configured the event is only logged (dry run).
Delivery is best-effort: failures are logged and reported as False, never
raised and never retried.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

import requests

from .config import HTTP_TIMEOUT_SECONDS, WEBHOOK_AVATAR_URL, WEBHOOK_USERNAME
from .events import broadcast_log
from .scraper import Product
from .utils import HTTPError, check_response, get_http_session, html_to_text

logger = logging.getLogger(__name__)

EVENT_NEW = "new"
EVENT_UPDATE = "update"

COLORS = {EVENT_NEW: 3066993, EVENT_UPDATE: 16776960}

# Discord rejects embed field values longer than this.
FIELD_VALUE_LIMIT = 1024
TRUNCATION_MARKER = "..."
DESCRIPTION_BLURB_LIMIT = 300


def _product_url(product: Product, site: str) -> str:
    return f"{site.rstrip('/')}/products/{product.handle}"


def _domain(site: str) -> str:
    return urlparse(site).netloc or site


def build_variant_text(product: Product, site: str) -> str:
    """Per-variant status/price/add-to-cart block, capped at FIELD_VALUE_LIMIT."""
    base = site.rstrip("/")
    text = ""
    for v in product.variants:
        icon = "🟢" if v.available else "🔴"
        atc = f"{base}/cart/{v.id}:1"
        text += f"{icon} **{html_to_text(v.title)}** - ${v.price}\n[Add To Cart]({atc})\n\n"

    if len(text) > FIELD_VALUE_LIMIT:
        cut = FIELD_VALUE_LIMIT - len(TRUNCATION_MARKER) - 1
        text = text[:cut] + TRUNCATION_MARKER
    return text


def _describe(product: Product, event_type: str, changes: Optional[str]) -> Optional[str]:
    if changes:
        return f"**Changes Detected:**\n{changes}"
    if event_type == EVENT_NEW:
        blurb = html_to_text(product.body_html)
        if len(blurb) > DESCRIPTION_BLURB_LIMIT:
            blurb = blurb[: DESCRIPTION_BLURB_LIMIT - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER
        return blurb or None
    return None


def build_payload(
    product: Product,
    site: str,
    event_type: str = EVENT_NEW,
    changes: Optional[str] = None,
) -> dict:
    title = html_to_text(product.title) or "Unknown product"
    variant_text = build_variant_text(product, site)

    embed = {
        "title": f"[{event_type.upper()}] {title}",
        "url": _product_url(product, site),
        "color": COLORS.get(event_type, COLORS[EVENT_UPDATE]),
        "fields": [{"name": "Variants", "value": variant_text or "No variants", "inline": False}],
        "footer": {"text": f"Monitor • {_domain(site)}", "icon_url": WEBHOOK_AVATAR_URL},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    description = _describe(product, event_type, changes)
    if description:
        embed["description"] = description
    if product.image_url:
        embed["thumbnail"] = {"url": product.image_url}

    return {
        "username": WEBHOOK_USERNAME,
        "avatar_url": WEBHOOK_AVATAR_URL,
        "embeds": [embed],
    }


def send_product_event(
    product: Product,
    site: str,
    webhook_url: Optional[str],
    event_type: str = EVENT_NEW,
    changes: Optional[str] = None,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = HTTP_TIMEOUT_SECONDS,
) -> bool:
    """Deliver one notification. Returns True when handled (sent or dry run)."""
    payload = build_payload(product, site, event_type, changes)

    if not webhook_url or not webhook_url.strip():
        broadcast_log(
            f"[Dry Run] Webhook for {product.title} (Configure URL to send)", "warning"
        )
        return True

    close_session = False
    if session is None:
        session = get_http_session()
        close_session = True

    try:
        logger.info("Sending %s notification for product %s (id=%s)", event_type, product.title, product.id)
        check_response(session.post(webhook_url.strip(), json=payload, timeout=timeout))
    except (requests.RequestException, HTTPError) as e:
        broadcast_log(f"Failed to send webhook: {e}", "error")
        return False
    finally:
        if close_session:
            session.close()

    broadcast_log(f"Sent webhook for {product.title}", "success")
    return True


__all__ = [
    "EVENT_NEW",
    "EVENT_UPDATE",
    "FIELD_VALUE_LIMIT",
    "TRUNCATION_MARKER",
    "build_variant_text",
    "build_payload",
    "send_product_event",
]
