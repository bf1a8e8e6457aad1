import json

import pytest

from storefront_monitor import events
from storefront_monitor.config import MonitorConfig


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None, url=""):
        self.status_code = status_code
        self._body = body
        self._text = text
        self.url = url

    def json(self):
        if self._text is not None:
            return json.loads(self._text)
        return self._body


class FakeSession:
    """Stands in for requests.Session; replays queued responses or raises."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []
        self.headers = {}
        self.closed = False

    def _next(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        result = self.responses.pop(0) if self.responses else FakeResponse(200, {})
        if isinstance(result, Exception):
            raise result
        return result

    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)

    def close(self):
        self.closed = True


def variant_json(vid, price="10.00", available=True, title="Default Title"):
    return {"id": vid, "title": title, "price": price, "available": available}


def product_json(pid, variants=None, title=None, handle=None, images=None, updated_at="2025-01-01T00:00:00Z"):
    return {
        "id": pid,
        "title": title or f"Product {pid}",
        "handle": handle or f"product-{pid}",
        "updated_at": updated_at,
        "body_html": "<p>Nice&nbsp;thing</p>",
        "images": [{"src": src} for src in (images if images is not None else [f"https://cdn.example/{pid}.jpg"])],
        "variants": variants if variants is not None else [variant_json(pid * 10)],
    }


@pytest.fixture
def log_events():
    captured = []
    events.broadcaster.subscribe(captured.append)
    yield captured
    events.broadcaster.unsubscribe(captured.append)


@pytest.fixture
def state_path(tmp_path):
    return str(tmp_path / "state.db")


@pytest.fixture
def make_config():
    def _make(sites=("https://shop.example",), webhook_url="", delay_ms=60000, user_agent="UA"):
        return MonitorConfig(sites=tuple(sites), webhook_url=webhook_url, delay_ms=delay_ms, user_agent=user_agent)
    return _make
