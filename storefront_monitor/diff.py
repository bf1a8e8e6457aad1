"""Variant-level change detection between a fetched product and its snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .db import Snapshot, VariantState
from .scraper import Product

NEW = "new"
UPDATE = "update"
UNCHANGED = "unchanged"


@dataclass
class ProductDiff:
    kind: str
    changes: List[str] = field(default_factory=list)

    @property
    def is_new(self) -> bool:
        return self.kind == NEW

    @property
    def has_changes(self) -> bool:
        return self.kind != UNCHANGED


def stock_label(available: bool) -> str:
    return "In Stock" if available else "Out of Stock"


def snapshot_from_product(product: Product) -> Snapshot:
    return Snapshot(
        title=product.title,
        updated_at=product.updated_at,
        variants={
            str(v.id): VariantState(price=v.price, available=v.available)
            for v in product.variants
        },
    )


def diff_product(product: Product, snapshot: Optional[Snapshot]) -> ProductDiff:
    """Classify a fetched product against its last persisted snapshot.

    Lines follow the fetched product's variant order.  Variants that vanished
    from the catalog are not reported.
    """
    if snapshot is None:
        return ProductDiff(kind=NEW)

    changes: List[str] = []
    for v in product.variants:
        vid = str(v.id)
        old = snapshot.variants.get(vid)
        if old is None:
            changes.append(f"New Variant: ID {vid}")
            continue
        # exact string compare: "10.0" != "10.00"
        if v.price != old.price:
            changes.append(f"Price: ${old.price} -> ${v.price} (Variant {vid})")
        if v.available != old.available:
            changes.append(f"Stock: {stock_label(v.available)} (Variant {vid})")

    return ProductDiff(kind=UPDATE if changes else UNCHANGED, changes=changes)


__all__ = [
    "NEW",
    "UPDATE",
    "UNCHANGED",
    "ProductDiff",
    "stock_label",
    "snapshot_from_product",
    "diff_product",
]
