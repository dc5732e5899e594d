"""Tests for SKU derivation and variant identity rules."""
from decimal import Decimal

import pytest

from app.errors import DuplicateSkuError, DuplicateVariantCodeError
from app.models.product import Product
from app.models.variant import ProductVariant, VariantCode
from app.services.variant_keys import (
    derive_sku,
    ensure_codes_available,
    ensure_sku_available,
    identity_key,
    resolve_sku,
    sanitize_codes,
)


def test_derive_sku_uses_category_code():
    assert derive_sku("PROD-1001", "SHI", "Red", "M") == "PROD-1001-SHI-Red-M"


def test_derive_sku_without_category_is_generic():
    assert derive_sku("PROD-1001", None, "Red", "M") == "PROD-1001-GEN-Red-M"


def test_explicit_sku_wins_over_derived():
    assert resolve_sku(" CUSTOM-1 ", "P", "SHI", "Red", "M") == "CUSTOM-1"
    assert resolve_sku("  ", "P", "SHI", "Red", "M") == "P-SHI-Red-M"


def test_identity_key_ignores_surrounding_whitespace():
    assert identity_key(1, " Red ", "M ") == identity_key(1, "Red", "M")
    assert identity_key(1, "Red", "M") != identity_key(2, "Red", "M")


def test_sanitize_codes():
    assert sanitize_codes([" A1", "", None, "B2", "A1", 7]) == ["A1", "B2", "7"]


def _two_products(db):
    a = Product(code="PROD-A", name="A", normal_price=Decimal("10"))
    b = Product(code="PROD-B", name="B", normal_price=Decimal("10"))
    db.session.add_all([a, b])
    db.session.flush()
    return a, b


def test_sku_held_by_other_product_conflicts(db):
    a, b = _two_products(db)
    db.session.add(ProductVariant(product_id=a.id, color="Red", size="M", sku="SKU-1"))
    db.session.flush()

    ensure_sku_available("SKU-1", a.id)
    with pytest.raises(DuplicateSkuError, match="SKU-1"):
        ensure_sku_available("SKU-1", b.id)


def test_codes_held_by_other_product_conflict(db):
    a, b = _two_products(db)
    db.session.add(VariantCode(code="VC-1", product_id=a.id, color="Red"))
    db.session.flush()

    ensure_codes_available(["VC-1"], a.id)
    ensure_codes_available([], b.id)
    with pytest.raises(DuplicateVariantCodeError, match="VC-1"):
        ensure_codes_available(["VC-1", "VC-2"], b.id)
