"""Tests for tier rule administration."""
import pytest

from app.errors import (
    DuplicateQuantityPriceError,
    QuantityPriceNotFoundError,
    SubcategoryNotFoundError,
    ValidationError,
)
from app.models.category import Subcategory
from app.models.product import Product
from app.services import quantity_price_service as qps


def test_add_and_list(db, catalog):
    sub = catalog["subcategory"]
    qps.add_quantity_price(sub.id, 10, "PERCENTAGE", 10)
    qps.add_quantity_price(sub.id, 5, "FIXED_TOTAL", 2000)

    rules = qps.list_quantity_prices(sub.id)
    assert [(r.quantity, r.price_type) for r in rules] == [(5, "FIXED_TOTAL"), (10, "PERCENTAGE")]
    assert all(r.is_active for r in rules)


@pytest.mark.parametrize(
    "quantity,price_type,value",
    [
        (1, "PERCENTAGE", 10),
        (5, "PERCENTAGE", 101),
        (5, "FIXED_TOTAL", 0),
        (5, "BOGO", 10),
    ],
)
def test_invalid_rules(db, catalog, quantity, price_type, value):
    with pytest.raises(ValidationError):
        qps.add_quantity_price(catalog["subcategory"].id, quantity, price_type, value)


def test_duplicate_threshold(db, catalog):
    sub = catalog["subcategory"]
    rule = qps.add_quantity_price(sub.id, 10, "PERCENTAGE", 10)
    qps.toggle_quantity_price(rule.id, False)

    with pytest.raises(DuplicateQuantityPriceError):
        qps.add_quantity_price(sub.id, 10, "PERCENTAGE", 20)


def test_unknown_subcategory(db):
    with pytest.raises(SubcategoryNotFoundError):
        qps.add_quantity_price(999, 10, "PERCENTAGE", 10)


def test_update_validates_merged_values(db, catalog):
    sub = catalog["subcategory"]
    rule = qps.add_quantity_price(sub.id, 10, "FIXED_TOTAL", 4000)

    with pytest.raises(ValidationError):
        qps.update_quantity_price(rule.id, price_type="PERCENTAGE")

    updated = qps.update_quantity_price(rule.id, value=3800)
    assert float(updated.value) == 3800.0


def test_update_to_taken_threshold(db, catalog):
    sub = catalog["subcategory"]
    qps.add_quantity_price(sub.id, 10, "PERCENTAGE", 10)
    rule = qps.add_quantity_price(sub.id, 20, "PERCENTAGE", 15)

    with pytest.raises(DuplicateQuantityPriceError):
        qps.update_quantity_price(rule.id, quantity=10)


def test_toggle_and_delete(db, catalog):
    rule = qps.add_quantity_price(catalog["subcategory"].id, 10, "PERCENTAGE", 10)

    assert qps.toggle_quantity_price(rule.id, False).is_active is False
    qps.delete_quantity_price(rule.id)
    with pytest.raises(QuantityPriceNotFoundError):
        qps.delete_quantity_price(rule.id)


def test_subcategories_with_pricing(db, catalog):
    sub = catalog["subcategory"]
    bare = Subcategory(category_id=catalog["category"].id, name="Casual")
    db.session.add(bare)
    db.session.add(Product(code="P-1", name="A", normal_price=1, subcategory_id=sub.id))
    db.session.add(Product(code="P-2", name="B", normal_price=1, subcategory_id=sub.id, status="INACTIVE"))
    db.session.commit()
    qps.add_quantity_price(sub.id, 10, "PERCENTAGE", 10)
    inactive = qps.add_quantity_price(sub.id, 20, "PERCENTAGE", 20)
    qps.toggle_quantity_price(inactive.id, False)

    listing = qps.get_subcategories_with_quantity_pricing()

    assert len(listing) == 1
    assert listing[0]["id"] == sub.id
    assert [r["quantity"] for r in listing[0]["quantity_prices"]] == [10]
    assert listing[0]["active_products"] == 1
