"""Helper utilities.

This module centralises common helper functions such as creating a
configured HTTP session, checking responses and flattening HTML fragments
into plain text for notifications.
"""

from __future__ import annotations

import html
import re
from typing import Optional

import requests
from bs4 import BeautifulSoup
from requests import Response

from .config import DEFAULT_USER_AGENT

_WHITESPACE_RE = re.compile(r"\s+")


def get_http_session(user_agent: Optional[str] = None) -> requests.Session:
    """Return a new HTTP session with sensible defaults.

    Caller is responsible for closing the session.
    """
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": user_agent or DEFAULT_USER_AGENT,
            "Accept": "application/json, text/javascript, */*; q=0.01",
        }
    )
    return session


class HTTPError(Exception):
    """Raised when an HTTP response has a non-success status."""

    def __init__(self, status_code: int, url: str = ""):
        self.status_code = status_code
        self.url = url
        super().__init__(f"Status {status_code}")


def check_response(resp: Response) -> Response:
    if not 200 <= resp.status_code < 300:
        raise HTTPError(resp.status_code, getattr(resp, "url", "") or "")
    return resp


def html_to_text(value: Optional[str]) -> str:
    """Flatten an HTML fragment into a single line of plain text.

    Tags are dropped, entities decoded (``&nbsp;`` becomes a space), stray
    ``<``/``>`` replaced and whitespace runs collapsed.  Idempotent.
    """
    if not value:
        return ""
    text = value
    # only markup goes through the parser; it mangles a trailing bare "&word"
    if "<" in text:
        text = BeautifulSoup(text, "html.parser").get_text()
    # Double-escaped input ("&amp;nbsp;") must not survive a second pass.
    decoded = html.unescape(text)
    while decoded != text:
        text = decoded
        decoded = html.unescape(text)
    text = text.replace("<", " ").replace(">", " ")
    return _WHITESPACE_RE.sub(" ", text).strip()


__all__ = ["get_http_session", "check_response", "HTTPError", "html_to_text"]
