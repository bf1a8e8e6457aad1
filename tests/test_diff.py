from storefront_monitor.db import Snapshot, VariantState
from storefront_monitor.diff import (NEW, UNCHANGED, UPDATE, diff_product,
                                     snapshot_from_product)
from storefront_monitor.scraper import Product, Variant


def _product(*variants, title="Tee"):
    return Product(id=1, title=title, handle="tee", updated_at="t1", variants=list(variants))


def test_missing_snapshot_is_new_regardless_of_variants():
    assert diff_product(_product(), None).kind == NEW
    result = diff_product(_product(Variant(5, "S", "10.00", True)), None)
    assert result.kind == NEW
    assert result.is_new
    assert result.changes == []


def test_identical_snapshot_yields_no_changes():
    p = _product(Variant(5, "S", "10.00", True), Variant(6, "M", "11.00", False))
    result = diff_product(p, snapshot_from_product(p))
    assert result.kind == UNCHANGED
    assert result.changes == []
    assert not result.has_changes


def test_price_change_mentions_both_values():
    before = _product(Variant(5, "S", "10.00", True))
    after = _product(Variant(5, "S", "12.00", True))
    result = diff_product(after, snapshot_from_product(before))
    assert result.kind == UPDATE
    assert len(result.changes) == 1
    line = result.changes[0]
    assert "10.00" in line and "12.00" in line and "5" in line
    assert "Stock" not in line


def test_price_compare_is_exact_string_compare():
    before = _product(Variant(5, "S", "10.0", True))
    after = _product(Variant(5, "S", "10.00", True))
    assert diff_product(after, snapshot_from_product(before)).changes == [
        "Price: $10.0 -> $10.00 (Variant 5)"
    ]


def test_stock_flip_and_flip_back():
    in_stock = _product(Variant(5, "S", "10.00", True))
    out_of_stock = _product(Variant(5, "S", "10.00", False))

    first = diff_product(out_of_stock, snapshot_from_product(in_stock))
    assert first.changes == ["Stock: Out of Stock (Variant 5)"]

    second = diff_product(in_stock, snapshot_from_product(out_of_stock))
    assert second.changes == ["Stock: In Stock (Variant 5)"]


def test_new_variant_and_order_follows_fetched_product():
    snap = Snapshot(title="Tee", updated_at="t0", variants={
        "6": VariantState("11.00", True),
        "5": VariantState("10.00", True),
    })
    p = _product(
        Variant(7, "L", "13.00", True),
        Variant(5, "S", "9.00", False),
        Variant(6, "M", "11.00", True),
    )
    assert diff_product(p, snap).changes == [
        "New Variant: ID 7",
        "Price: $10.00 -> $9.00 (Variant 5)",
        "Stock: Out of Stock (Variant 5)",
    ]


def test_removed_variants_are_not_reported():
    snap = Snapshot(title="Tee", updated_at="t0", variants={
        "5": VariantState("10.00", True),
        "99": VariantState("20.00", True),
    })
    p = _product(Variant(5, "S", "10.00", True))
    assert diff_product(p, snap).kind == UNCHANGED


def test_snapshot_from_product_keeps_tracked_fields_only():
    p = Product(
        id=3, title="Cap", handle="cap", updated_at="2025-02-02",
        images=["https://cdn.example/cap.jpg"],
        variants=[Variant(31, "One", "25.00", False)],
    )
    assert snapshot_from_product(p) == Snapshot(
        title="Cap", updated_at="2025-02-02", variants={"31": VariantState("25.00", False)}
    )
