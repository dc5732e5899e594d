"""Administration of subcategory tier rules."""
import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from app.errors import (
    DuplicateQuantityPriceError,
    QuantityPriceNotFoundError,
    SubcategoryNotFoundError,
    ValidationError,
)
from app.extensions import db
from app.models.category import Subcategory
from app.models.product import Product
from app.models.quantity_price import SubcategoryQuantityPrice

logger = logging.getLogger(__name__)

MIN_TIER_QUANTITY = 2


def _validate(quantity, price_type, value):
    if quantity is None or quantity < MIN_TIER_QUANTITY:
        raise ValidationError(f"Quantity must be at least {MIN_TIER_QUANTITY}")
    if price_type not in SubcategoryQuantityPrice.PRICE_TYPES:
        raise ValidationError(f"Unknown price type: {price_type}")
    if value is None or Decimal(value) <= 0:
        raise ValidationError("Value must be greater than zero")
    if price_type == SubcategoryQuantityPrice.PERCENTAGE and Decimal(value) > 100:
        raise ValidationError("Discount percentage cannot exceed 100%")


def _get_subcategory(subcategory_id):
    subcategory = db.session.get(Subcategory, subcategory_id)
    if subcategory is None:
        raise SubcategoryNotFoundError(f"Subcategory not found: {subcategory_id}")
    return subcategory


def _get_rule(rule_id):
    rule = db.session.get(SubcategoryQuantityPrice, rule_id)
    if rule is None:
        raise QuantityPriceNotFoundError(f"Quantity price not found: {rule_id}")
    return rule


def _ensure_unique(subcategory_id, quantity, exclude_id=None):
    query = SubcategoryQuantityPrice.query.filter_by(
        subcategory_id=subcategory_id, quantity=quantity
    )
    if exclude_id is not None:
        query = query.filter(SubcategoryQuantityPrice.id != exclude_id)
    if query.first():
        raise DuplicateQuantityPriceError(
            f"Quantity price for quantity {quantity} already exists for this subcategory"
        )


def _commit():
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise DuplicateQuantityPriceError() from e


def list_quantity_prices(subcategory_id, include_inactive=True):
    _get_subcategory(subcategory_id)
    query = SubcategoryQuantityPrice.query.filter_by(subcategory_id=subcategory_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(SubcategoryQuantityPrice.quantity.asc()).all()


def add_quantity_price(subcategory_id, quantity, price_type, value):
    subcategory = _get_subcategory(subcategory_id)
    _validate(quantity, price_type, value)
    _ensure_unique(subcategory.id, quantity)

    rule = SubcategoryQuantityPrice(
        subcategory_id=subcategory.id,
        quantity=quantity,
        price_type=price_type,
        value=value,
        is_active=True,
    )
    db.session.add(rule)
    _commit()
    logger.info(
        "Quantity price %s+ %s %s added to subcategory %s",
        quantity, price_type, value, subcategory.id,
    )
    return rule


def update_quantity_price(rule_id, quantity=None, price_type=None, value=None, is_active=None):
    rule = _get_rule(rule_id)
    quantity = rule.quantity if quantity is None else quantity
    price_type = rule.price_type if price_type is None else price_type
    value = rule.value if value is None else value
    _validate(quantity, price_type, value)
    if quantity != rule.quantity:
        _ensure_unique(rule.subcategory_id, quantity, exclude_id=rule.id)

    rule.quantity = quantity
    rule.price_type = price_type
    rule.value = value
    if is_active is not None:
        rule.is_active = is_active
    _commit()
    logger.info("Quantity price %s updated", rule.id)
    return rule


def toggle_quantity_price(rule_id, is_active):
    rule = _get_rule(rule_id)
    rule.is_active = bool(is_active)
    _commit()
    logger.info(
        "Quantity price %s %s", rule.id, "activated" if rule.is_active else "deactivated"
    )
    return rule


def delete_quantity_price(rule_id):
    rule = _get_rule(rule_id)
    db.session.delete(rule)
    db.session.commit()
    logger.info("Quantity price %s deleted", rule_id)


def get_subcategories_with_quantity_pricing():
    """Active subcategories that have at least one active tier rule."""
    rules = (
        SubcategoryQuantityPrice.query.join(
            Subcategory, Subcategory.id == SubcategoryQuantityPrice.subcategory_id
        )
        .filter(SubcategoryQuantityPrice.is_active.is_(True), Subcategory.is_active.is_(True))
        .order_by(SubcategoryQuantityPrice.quantity.asc())
        .all()
    )
    by_subcategory = {}
    for rule in rules:
        by_subcategory.setdefault(rule.subcategory_id, []).append(rule)
    if not by_subcategory:
        return []

    subcategories = (
        Subcategory.query.filter(Subcategory.id.in_(list(by_subcategory)))
        .order_by(Subcategory.name.asc())
        .all()
    )
    counts = dict(
        db.session.query(Product.subcategory_id, db.func.count(Product.id))
        .filter(
            Product.subcategory_id.in_(list(by_subcategory)),
            Product.status == "ACTIVE",
        )
        .group_by(Product.subcategory_id)
        .all()
    )
    return [
        {
            **sub.to_dict(),
            "quantity_prices": [r.to_dict() for r in by_subcategory[sub.id]],
            "active_products": counts.get(sub.id, 0),
        }
        for sub in subcategories
    ]
