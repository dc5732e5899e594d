"""Quantity-tier pricing for single items and whole carts."""
import logging
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import SQLAlchemyError

from app.errors import (
    InvalidQuantityError,
    ProductNotFoundError,
    ServiceError,
    VariantNotFoundError,
)
from app.extensions import MAX_ROW_ID, db
from app.models.product import Product
from app.models.quantity_price import SubcategoryQuantityPrice
from app.models.variant import ProductVariant

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Upper bound for one line; keeps rule lookups inside the INTEGER range
MAX_QUANTITY = 1_000_000


def money(value):
    if value is None:
        return None
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _plain(value):
    """10.00 -> "10", 12.50 -> "12.5" for messages."""
    text = f"{Decimal(value):f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


class PriceResult:
    def __init__(self, quantity, unit_price, original_price, final_price,
                 applied_rule=None, message=""):
        self.quantity = quantity
        self.unit_price = unit_price
        self.original_price = original_price
        self.final_price = final_price
        self.applied_rule = applied_rule
        self.message = message

    @property
    def total_savings(self):
        return self.original_price - self.final_price

    @property
    def price_per_item(self):
        return money(self.final_price / self.quantity)

    def to_dict(self):
        rule = None
        if self.applied_rule is not None:
            rule = {
                "id": self.applied_rule.id,
                "quantity": self.applied_rule.quantity,
                "price_type": self.applied_rule.price_type,
                "value": float(self.applied_rule.value),
                "discount_amount": float(self.total_savings),
            }
        return {
            "quantity": self.quantity,
            "unit_price": float(self.unit_price),
            "original_price": float(self.original_price),
            "final_price": float(self.final_price),
            "total_savings": float(self.total_savings),
            "price_per_item": float(self.price_per_item),
            "applied_rule": rule,
            "message": self.message,
        }


class TierPricingResolver:
    def __init__(self, session=None):
        self.session = session or db.session

    def resolve_by_id(self, product_id, quantity, variant_id=None, is_wholesale=False):
        product = None
        if product_id is not None and 0 < product_id <= MAX_ROW_ID:
            product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(f"Product not found: {product_id}")
        return self.resolve(product, quantity, variant_id, is_wholesale)

    def resolve(self, product, quantity, variant_id=None, is_wholesale=False):
        """Best price for ``quantity`` units of ``product``.

        Rules with ``quantity <= requested`` are evaluated highest
        threshold first; a rule replaces the current best only when its
        total is strictly lower, so ties keep the higher threshold.
        """
        if product is None:
            raise ProductNotFoundError()
        if quantity is None or quantity < 1:
            raise InvalidQuantityError()
        if quantity > MAX_QUANTITY:
            raise InvalidQuantityError(f"Quantity must be at most {MAX_QUANTITY}")

        variant = self._variant(product, variant_id)
        unit_price = self.base_unit_price(product, variant, is_wholesale)
        original = money(unit_price * quantity)

        if product.subcategory_id is None:
            return PriceResult(
                quantity, unit_price, original, original,
                message="No quantity pricing available for this product",
            )

        best, applied = original, None
        for rule in SubcategoryQuantityPrice.active_for(product.subcategory_id, quantity):
            candidate = self._rule_total(rule, original)
            if candidate < best:
                best, applied = candidate, rule

        if applied is None:
            message = "No quantity discount available"
        elif applied.price_type == SubcategoryQuantityPrice.PERCENTAGE:
            message = (
                f"{_plain(applied.value)}% discount applied for buying "
                f"{applied.quantity} or more items"
            )
        else:
            message = (
                f"Special price ₹{_plain(applied.value)} for buying "
                f"{applied.quantity} items"
            )

        return PriceResult(quantity, unit_price, original, best, applied, message)

    def _variant(self, product, variant_id):
        if variant_id is None:
            return None
        variant = None
        if 0 < variant_id <= MAX_ROW_ID:
            variant = self.session.get(ProductVariant, variant_id)
        if variant is None or variant.product_id != product.id:
            raise VariantNotFoundError(
                f"Variant {variant_id} not found for product {product.code}"
            )
        return variant

    @staticmethod
    def base_unit_price(product, variant=None, is_wholesale=False):
        # Offer prices never apply to wholesale buyers
        if is_wholesale:
            ladder = (
                variant.wholesale_price if variant is not None else None,
                product.wholesale_price,
                product.normal_price,
            )
        else:
            ladder = (
                variant.price if variant is not None else None,
                product.offer_price,
                product.normal_price,
            )
        for price in ladder:
            if price is not None:
                return money(price)
        return ZERO

    @staticmethod
    def _rule_total(rule, original):
        if rule.price_type == SubcategoryQuantityPrice.PERCENTAGE:
            total = original * (1 - Decimal(rule.value) / 100)
        else:
            # FIXED_TOTAL: value is the total for the whole line
            total = Decimal(rule.value)
        return max(money(total), ZERO)


class CartPricingAggregator:
    """Price every cart line independently.

    A failing line never aborts the cart: it falls back to the plain
    unit price of the active product (offer, else normal) with no
    savings, or to zero when even that lookup fails.
    """

    def __init__(self, resolver=None, session=None):
        self.session = session or db.session
        self.resolver = resolver or TierPricingResolver(self.session)

    def resolve_cart(self, lines, is_wholesale=False):
        items = [self._price_line(line, is_wholesale) for line in lines or []]

        subtotal = sum((item["_final"] for item in items), ZERO)
        savings = sum((item["_savings"] for item in items), ZERO)
        for item in items:
            del item["_final"], item["_savings"]

        successful = [i for i in items if i["success"]]
        failed = [i for i in items if not i["success"]]
        return {
            "items": items,
            "successful_items": successful,
            "failed_items": failed,
            "subtotal": float(subtotal),
            "total_savings": float(savings),
            "total": float(subtotal),
            "has_quantity_discounts": savings > 0,
            "success": not failed,
            "warnings": f"{len(failed)} items had pricing issues" if failed else None,
        }

    def _price_line(self, line, is_wholesale):
        item = {
            "product_id": line.product_id,
            "quantity": line.quantity,
            "variant_id": line.variant_id,
            "pricing": None,
            "final_price": 0.0,
            "success": False,
            "_final": ZERO,
            "_savings": ZERO,
        }
        if not line.product_id:
            item["error"] = "Missing productId"
            return item

        try:
            product = Product.get_by_id_or_code(line.product_id)
            if product is None:
                raise ProductNotFoundError(f"Product not found: {line.product_id}")
            result = self.resolver.resolve(
                product, line.quantity, line.variant_id, is_wholesale
            )
        except (ServiceError, SQLAlchemyError) as e:
            if isinstance(e, SQLAlchemyError):
                self.session.rollback()
            logger.error("Price calculation failed for %s: %s", line.product_id, e)
            return self._fallback(item, line, e)

        item.update(
            pricing=result.to_dict(),
            final_price=float(result.final_price),
            success=True,
            _final=result.final_price,
            _savings=result.total_savings,
        )
        return item

    def _fallback(self, item, line, cause):
        reason = getattr(cause, "message", None) or "Pricing unavailable"
        try:
            product = Product.get_by_id_or_code(line.product_id)
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Fallback lookup failed for %s", line.product_id)
            product = None

        if product is None or not product.is_active:
            item["error"] = f"Active product not found: {line.product_id}"
            return item
        if not 1 <= line.quantity <= MAX_QUANTITY:
            item["error"] = reason
            return item

        unit_price = money(product.offer_price or product.normal_price or ZERO)
        total = money(unit_price * line.quantity)
        item.update(
            pricing={
                "quantity": line.quantity,
                "unit_price": float(unit_price),
                "original_price": float(total),
                "final_price": float(total),
                "total_savings": 0.0,
                "price_per_item": float(unit_price),
                "applied_rule": None,
                "message": f"Fallback: {reason}",
            },
            final_price=float(total),
            warning="Used fallback pricing",
            _final=total,
        )
        return item
