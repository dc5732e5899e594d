"""Variant identity and SKU / variant-code uniqueness rules."""
import logging

from app.errors import DuplicateSkuError, DuplicateVariantCodeError
from app.models.variant import ProductVariant, VariantCode

logger = logging.getLogger(__name__)

GENERIC_CATEGORY_CODE = "GEN"


def derive_sku(product_code, category_code, color, size):
    """``{productCode}-{categoryCode|GEN}-{color}-{size}``"""
    return f"{product_code}-{category_code or GENERIC_CATEGORY_CODE}-{color}-{size}"


def identity_key(product_id, color, size):
    """At most one variant per (product, color, size)."""
    return (product_id, (color or "").strip(), (size or "").strip())


def resolve_sku(explicit_sku, product_code, category_code, color, size):
    """Caller-supplied SKU when present, otherwise the derived one."""
    sku = (explicit_sku or "").strip()
    if sku:
        return sku
    sku = derive_sku(product_code, category_code, color, size)
    logger.debug("Derived SKU %s", sku)
    return sku


def ensure_sku_available(sku, product_id):
    """Raise DuplicateSkuError if ``sku`` belongs to another product.

    Variants of ``product_id`` itself never collide: a rebuild replaces
    the same logical variant.
    """
    clash = (
        ProductVariant.query.filter(
            ProductVariant.sku == sku,
            ProductVariant.product_id != product_id,
        )
        .first()
    )
    if clash:
        raise DuplicateSkuError(f"SKU already exists: {sku}")


def sanitize_codes(codes):
    """Strip, drop blanks and repeats, keep order."""
    cleaned = []
    for code in codes or []:
        if code is None:
            continue
        code = str(code).strip()
        if code and code not in cleaned:
            cleaned.append(code)
    return cleaned


def ensure_codes_available(codes, product_id):
    """Raise DuplicateVariantCodeError if any code is held by another product."""
    if not codes:
        return
    taken = (
        VariantCode.query.filter(
            VariantCode.code.in_(codes),
            VariantCode.product_id != product_id,
        )
        .order_by(VariantCode.code)
        .all()
    )
    if taken:
        raise DuplicateVariantCodeError(
            "Variant codes already exist: " + ", ".join(row.code for row in taken)
        )
