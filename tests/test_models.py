"""Tests for database models."""
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from app.models.category import Category
from app.models.image import ProductVariantImage
from app.models.product import Product
from app.models.quantity_price import SubcategoryQuantityPrice
from app.models.variant import ProductVariant


def _product(db, code="PROD-1", **kwargs):
    p = Product(code=code, name="Test Shirt", normal_price=Decimal("500"), **kwargs)
    db.session.add(p)
    db.session.flush()
    return p


def test_product_creation(db):
    p = _product(db, offer_price=Decimal("450"))

    assert p.id is not None
    assert p.status == "ACTIVE"
    assert p.is_active
    data = p.to_dict()
    assert data["normal_price"] == 500.0
    assert data["offer_price"] == 450.0
    assert data["wholesale_price"] is None


def test_get_by_id_or_code(db):
    p = _product(db, code="PROD-77")
    db.session.commit()

    assert Product.get_by_id_or_code(str(p.id)).id == p.id
    assert Product.get_by_id_or_code("PROD-77").id == p.id
    assert Product.get_by_id_or_code("nope") is None


def test_category_sku_code():
    assert Category(name="Shirts").sku_code == "SHI"
    assert Category(name="").sku_code == "GEN"


def test_variant_color_size_is_unique(db):
    p = _product(db)
    db.session.add(ProductVariant(product_id=p.id, color="Red", size="M", stock=1))
    db.session.add(ProductVariant(product_id=p.id, color="Red", size="M", stock=2))
    with pytest.raises(IntegrityError):
        db.session.flush()
    db.session.rollback()


def test_variant_sku_is_unique(db):
    p = _product(db)
    db.session.add(ProductVariant(product_id=p.id, color="Red", size="S", sku="X-1"))
    db.session.add(ProductVariant(product_id=p.id, color="Red", size="M", sku="X-1"))
    with pytest.raises(IntegrityError):
        db.session.flush()
    db.session.rollback()


def test_images_for_variants_primary_first(db):
    p = _product(db)
    v = ProductVariant(product_id=p.id, color="Red", size="S")
    db.session.add(v)
    db.session.flush()
    db.session.add_all([
        ProductVariantImage(variant_id=v.id, image_url="u1", image_public_id="k1", color="Red"),
        ProductVariantImage(
            variant_id=v.id, image_url="u2", image_public_id="k2", color="Red", is_primary=True
        ),
    ])
    db.session.flush()

    grouped = ProductVariantImage.for_variants([v.id, 999])
    assert [img.image_public_id for img in grouped[v.id]] == ["k2", "k1"]
    assert grouped[999] == []


def test_active_rules_ordered_by_threshold(db, catalog, add_rule):
    sub = catalog["subcategory"]
    add_rule(sub, 5, "PERCENTAGE", 5)
    add_rule(sub, 20, "FIXED_TOTAL", 8000)
    add_rule(sub, 10, "PERCENTAGE", 10)
    add_rule(sub, 50, "PERCENTAGE", 30, is_active=False)

    rules = SubcategoryQuantityPrice.active_for(sub.id, max_quantity=15)
    assert [r.quantity for r in rules] == [10, 5]
