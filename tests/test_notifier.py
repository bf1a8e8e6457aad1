import requests

from storefront_monitor import notifier
from storefront_monitor.notifier import (EVENT_NEW, EVENT_UPDATE, FIELD_VALUE_LIMIT,
                                         TRUNCATION_MARKER, build_payload,
                                         build_variant_text, send_product_event)
from storefront_monitor.scraper import Product, Variant

from conftest import FakeResponse, FakeSession

SITE = "https://shop.example"
WEBHOOK = "https://discord.com/api/webhooks/1/token"


def _product(variants=None, images=None, body_html=""):
    return Product(
        id=1,
        title="<b>Box</b>&nbsp;Logo Tee",
        handle="box-logo-tee",
        updated_at="t",
        images=images if images is not None else ["https://cdn.example/1.jpg", "https://cdn.example/2.jpg"],
        variants=variants if variants is not None else [
            Variant(11, "Small", "10.00", True),
            Variant(12, "Large", "12.00", False),
        ],
        body_html=body_html,
    )


def test_variant_text_renders_status_price_and_cart_link():
    text = build_variant_text(_product(), SITE)
    assert text == (
        "🟢 **Small** - $10.00\n[Add To Cart](https://shop.example/cart/11:1)\n\n"
        "🔴 **Large** - $12.00\n[Add To Cart](https://shop.example/cart/12:1)\n\n"
    )


def test_variant_text_is_truncated_with_marker():
    variants = [Variant(1000 + i, f"Size {i}", "99.99", i % 2 == 0) for i in range(40)]
    text = build_variant_text(_product(variants=variants), SITE)
    assert len(text) <= FIELD_VALUE_LIMIT
    assert len(text) == 1023
    assert text.endswith(TRUNCATION_MARKER)


def test_payload_for_update_event():
    payload = build_payload(_product(), SITE, EVENT_UPDATE, "Price: $10.00 -> $12.00 (Variant 11)")
    embed = payload["embeds"][0]
    assert embed["title"] == "[UPDATE] Box Logo Tee"
    assert embed["url"] == "https://shop.example/products/box-logo-tee"
    assert embed["color"] == 16776960
    assert embed["description"] == "**Changes Detected:**\nPrice: $10.00 -> $12.00 (Variant 11)"
    assert embed["thumbnail"] == {"url": "https://cdn.example/1.jpg"}
    assert embed["fields"][0]["name"] == "Variants"
    assert embed["footer"]["text"] == "Monitor • shop.example"


def test_payload_for_new_event_without_images_or_variants():
    payload = build_payload(_product(variants=[], images=[], body_html="<p>Heavy&nbsp;cotton.</p>"), SITE, EVENT_NEW)
    embed = payload["embeds"][0]
    assert embed["title"].startswith("[NEW]")
    assert embed["color"] == 3066993
    assert "thumbnail" not in embed
    assert embed["fields"][0]["value"] == "No variants"
    assert embed["description"] == "Heavy cotton."


def test_dry_run_makes_no_network_call(monkeypatch, log_events):
    def fail(*args, **kwargs):
        raise AssertionError("no session should be created in dry run")

    monkeypatch.setattr(notifier, "get_http_session", fail)
    assert send_product_event(_product(), SITE, "", EVENT_NEW) is True
    assert send_product_event(_product(), SITE, "   ", EVENT_NEW) is True
    dry = [e for e in log_events if "[Dry Run]" in e.message]
    assert len(dry) == 2
    assert dry[0].level == "warning"


def test_successful_delivery_posts_once(log_events):
    session = FakeSession([FakeResponse(204)])
    assert send_product_event(_product(), SITE, WEBHOOK, EVENT_UPDATE, "x", session=session) is True
    assert len(session.calls) == 1
    method, url, kwargs = session.calls[0]
    assert method == "POST" and url == WEBHOOK
    assert kwargs["json"]["embeds"][0]["title"] == "[UPDATE] Box Logo Tee"
    assert log_events[-1].level == "success"


def test_failed_delivery_is_logged_and_not_retried(log_events):
    session = FakeSession([requests.Timeout("slow"), FakeResponse(204)])
    assert send_product_event(_product(), SITE, WEBHOOK, EVENT_NEW, session=session) is False
    assert len(session.calls) == 1
    assert log_events[-1].level == "error"


def test_http_error_status_counts_as_failure():
    session = FakeSession([FakeResponse(400, {"message": "Invalid Form Body"})])
    assert send_product_event(_product(), SITE, WEBHOOK, EVENT_NEW, session=session) is False
