"""
Storefront monitoring service package.

This package contains modules for polling Shopify-style storefront catalogs,
diffing them against persisted snapshots, notifying Discord and
coordinating the monitoring loop.
"""

__all__ = [
    "config",
    "control",
    "db",
    "diff",
    "events",
    "main",
    "monitor",
    "notifier",
    "scraper",
    "utils",
]
