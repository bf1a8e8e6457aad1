"""SQLite persistence layer for the storefront monitor.

The whole state (site -> product id -> snapshot) is read once when the
monitor starts and rewritten in full, in one transaction, after every cycle.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Optional

from tenacity import (after_log, retry, retry_if_exception_type,
                      stop_after_attempt, wait_exponential)

from .config import STATE_DB_PATH
from .events import broadcast_log

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VariantState:
    price: str
    available: bool


@dataclass
class Snapshot:
    title: str
    updated_at: Optional[str]
    variants: Dict[str, VariantState] = field(default_factory=dict)


State = Dict[str, Dict[str, Snapshot]]


@contextmanager
def _connect(db_path: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    path = db_path or STATE_DB_PATH
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def _create_tables(conn: sqlite3.Connection) -> None:
    conn.execute("""
      CREATE TABLE IF NOT EXISTS sites (
        url TEXT PRIMARY KEY
      )
    """)
    conn.execute("""
      CREATE TABLE IF NOT EXISTS products (
        site TEXT NOT NULL,
        product_id TEXT NOT NULL,
        title TEXT NOT NULL,
        updated_at TEXT,
        PRIMARY KEY (site, product_id)
      )
    """)
    conn.execute("""
      CREATE TABLE IF NOT EXISTS variants (
        site TEXT NOT NULL,
        product_id TEXT NOT NULL,
        variant_id TEXT NOT NULL,
        price TEXT NOT NULL,
        available INTEGER NOT NULL,
        PRIMARY KEY (site, product_id, variant_id)
      )
    """)


def init_db(db_path: Optional[str] = None) -> None:
    """Create tables if they don't exist."""
    with _connect(db_path) as conn:
        _create_tables(conn)


def load_state(db_path: Optional[str] = None) -> State:
    """Read the full state; a missing or unreadable database yields {}."""
    path = db_path or STATE_DB_PATH
    if not os.path.exists(path):
        logger.info("No state database at %s, starting fresh.", path)
        return {}

    state: State = {}
    try:
        with _connect(path) as conn:
            _create_tables(conn)
            for (url,) in conn.execute("SELECT url FROM sites ORDER BY rowid"):
                state[url] = {}
            cur = conn.execute(
                "SELECT site, product_id, title, updated_at FROM products ORDER BY rowid"
            )
            for site, pid, title, updated_at in cur.fetchall():
                state.setdefault(site, {})[pid] = Snapshot(title=title, updated_at=updated_at)
            cur = conn.execute(
                "SELECT site, product_id, variant_id, price, available FROM variants ORDER BY rowid"
            )
            for site, pid, vid, price, available in cur.fetchall():
                snap = state.get(site, {}).get(pid)
                if snap is None:
                    logger.warning("Orphan variant %s/%s/%s ignored", site, pid, vid)
                    continue
                snap.variants[vid] = VariantState(price=price, available=bool(available))
    except sqlite3.DatabaseError as e:
        logger.debug("State load failed for %s", path, exc_info=True)
        broadcast_log(f"Database corrupted, starting fresh: {e}", "error")
        return {}
    return state


@retry(
    reraise=True,
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    retry=retry_if_exception_type(sqlite3.OperationalError),
    after=after_log(logger, logging.WARNING),
)
def save_state(state: State, db_path: Optional[str] = None) -> None:
    """Rewrite the whole state in a single transaction.

    Retries a few times when another connection holds the database lock,
    then re-raises.
    """
    site_rows = []
    product_rows = []
    variant_rows = []
    for site, products in state.items():
        site_rows.append((site,))
        for pid, snap in products.items():
            product_rows.append((site, str(pid), str(snap.title), snap.updated_at))
            for vid, vs in snap.variants.items():
                variant_rows.append((site, str(pid), str(vid), str(vs.price), int(bool(vs.available))))

    with _connect(db_path) as conn:
        _create_tables(conn)
        conn.execute("DELETE FROM variants")
        conn.execute("DELETE FROM products")
        conn.execute("DELETE FROM sites")
        conn.executemany("INSERT INTO sites (url) VALUES (?)", site_rows)
        conn.executemany(
            "INSERT INTO products (site, product_id, title, updated_at) VALUES (?, ?, ?, ?)",
            product_rows,
        )
        conn.executemany(
            """
            INSERT INTO variants (site, product_id, variant_id, price, available)
            VALUES (?, ?, ?, ?, ?)
            """,
            variant_rows,
        )


__all__ = [
    "VariantState",
    "Snapshot",
    "State",
    "init_db",
    "load_state",
    "save_state",
]
