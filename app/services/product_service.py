import logging
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError

from app.errors import (
    CategoryNotFoundError,
    ConflictError,
    DuplicateProductCodeError,
    DuplicateSkuError,
    DuplicateVariantCodeError,
    OrderHistoryError,
    ProductNotFoundError,
    SubcategoryNotFoundError,
    ValidationError,
    VariantImageNotFoundError,
    VariantNotFoundError,
)
from app.extensions import MAX_ROW_ID, db, product_lock
from app.models.category import Category, Subcategory
from app.models.image import ProductVariantImage
from app.models.order import OrderItem
from app.models.product import Product
from app.models.quantity_price import SubcategoryQuantityPrice
from app.models.variant import ProductVariant, VariantCode
from app.services import image_service, storage_service
from app.services.pricing_service import CartPricingAggregator, TierPricingResolver
from app.services.variant_keys import (
    ensure_codes_available,
    resolve_sku,
    sanitize_codes,
)
from app.services.variant_matrix import VariantMatrixBuilder

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = (
    "name",
    "description",
    "normal_price",
    "offer_price",
    "wholesale_price",
    "category_id",
    "subcategory_id",
    "status",
)


def generate_product_code():
    """Generate the next product code.

    Uses Postgres sequence in production, fallback to max(id) for SQLite.
    """
    db_uri = current_app.config["SQLALCHEMY_DATABASE_URI"]
    if "postgresql" in db_uri:
        result = db.session.execute(db.text("SELECT nextval('product_code_seq')"))
        seq = result.scalar()
    else:
        # SQLite fallback: use max product id + 1001
        result = db.session.execute(
            db.text("SELECT COALESCE(MAX(id), 0) FROM products")
        )
        seq = result.scalar() + 1001
    return f"PROD-{seq}"


@contextmanager
def _transaction(builder=None, uploaded_keys=None, storage=None):
    """Commit on success. On any failure roll back and remove objects
    uploaded during the call, then re-raise.

    Store uniqueness violations surface as ConflictError.
    """
    try:
        yield
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        if builder is not None:
            builder.discard_uploads()
        if uploaded_keys:
            storage_service.delete_many_quietly(uploaded_keys, storage=storage)
        if isinstance(e, IntegrityError):
            logger.warning("Integrity error on commit: %s", e.orig)
            raise ConflictError("Conflicts with existing catalog data") from e
        raise


def _get_product(product_id, for_update=False):
    if not 0 < product_id <= MAX_ROW_ID:
        raise ProductNotFoundError(f"Product not found: {product_id}")
    query = Product.query.filter_by(id=product_id)
    if for_update:
        query = query.with_for_update()
    product = query.first()
    if product is None:
        raise ProductNotFoundError(f"Product not found: {product_id}")
    return product


def _check_references(category_id, subcategory_id):
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise CategoryNotFoundError(f"Category not found: {category_id}")
    if subcategory_id is not None and db.session.get(Subcategory, subcategory_id) is None:
        raise SubcategoryNotFoundError(f"Subcategory not found: {subcategory_id}")


def get_product_detail(identifier):
    """Product with its variants and their images, by id or code."""
    product = Product.get_by_id_or_code(identifier)
    if product is None:
        raise ProductNotFoundError(f"Product not found: {identifier}")
    variants = ProductVariant.for_product(product.id)
    images = ProductVariantImage.for_variants([v.id for v in variants])
    data = product.to_dict()
    data["variants"] = [v.to_dict(images=images.get(v.id, [])) for v in variants]
    return data


def create_product(payload, files=(), color_map=None, storage=None):
    """Create a product together with its full variant matrix.

    Returns:
        (product, MatrixResult)
    """
    _check_references(payload.category_id, payload.subcategory_id)

    code = (payload.code or "").strip() or generate_product_code()
    if Product.query.filter_by(code=code).first():
        raise DuplicateProductCodeError(f"Product code already exists: {code}")

    builder = VariantMatrixBuilder(storage=storage)
    with _transaction(builder):
        product = Product(
            code=code,
            name=payload.name.strip(),
            description=payload.description or "",
            normal_price=payload.normal_price,
            offer_price=payload.offer_price,
            wholesale_price=payload.wholesale_price,
            category_id=payload.category_id,
            subcategory_id=payload.subcategory_id,
            status=payload.status,
        )
        db.session.add(product)
        db.session.flush()  # get product.id
        result = builder.build(product, payload.variants, files, color_map)

    logger.info(
        "Created product %s with %d variants (%d sizes skipped)",
        product.code, len(result.variants), len(result.skipped),
    )
    return product, result


def update_product(product_id, payload, files=(), color_map=None, storage=None):
    """Update product fields and, when variant groups are sent, rebuild
    the variant matrix.

    Rebuilds for one product are serialized by the product lock and the
    row lock taken on the product.

    Returns:
        (product, MatrixResult)
    """
    fields = payload.model_fields_set
    changes = {f: getattr(payload, f) for f in PRODUCT_FIELDS if f in fields}
    if "name" in changes and changes["name"] is None:
        del changes["name"]
    if "normal_price" in changes and changes["normal_price"] is None:
        raise ValidationError("normal_price cannot be cleared")
    if "status" in changes and changes["status"] is None:
        del changes["status"]
    _check_references(changes.get("category_id"), changes.get("subcategory_id"))

    builder = VariantMatrixBuilder(storage=storage)
    with product_lock(product_id):
        with _transaction(builder):
            product = _get_product(product_id, for_update=True)
            for field, value in changes.items():
                setattr(product, field, value)
            db.session.flush()

            existing = ProductVariant.for_product(product.id)
            result = builder.rebuild(
                product, existing, payload.variants, files, color_map
            )
            if result.unchanged and files:
                message = f"{len(files)} image(s) ignored: no variant groups sent"
                logger.warning(message)
                result.warnings.append(message)

    # Old objects go only after the new rows are committed
    storage_service.delete_many_quietly(result.removed_keys, storage=storage)
    logger.info(
        "Updated product %s (%s)",
        product.code,
        "matrix unchanged" if result.unchanged else f"{len(result.variants)} variants",
    )
    return product, result


def delete_product(product_id, storage=None):
    """Delete a product with no order history, then its stored images."""
    product = _get_product(product_id)
    variant_ids = [v.id for v in ProductVariant.for_product(product.id)]
    if OrderItem.exists_for_product(product.id) or OrderItem.exists_for_variants(variant_ids):
        raise OrderHistoryError("Cannot delete product with existing orders")

    keys = []
    for images in ProductVariantImage.for_variants(variant_ids).values():
        for image in images:
            if image.image_public_id and image.image_public_id not in keys:
                keys.append(image.image_public_id)

    code = product.code
    with _transaction():
        if variant_ids:
            ProductVariantImage.query.filter(
                ProductVariantImage.variant_id.in_(variant_ids)
            ).delete(synchronize_session="fetch")
            ProductVariant.query.filter(
                ProductVariant.id.in_(variant_ids)
            ).delete(synchronize_session="fetch")
        VariantCode.query.filter_by(product_id=product.id).delete(
            synchronize_session="fetch"
        )
        db.session.delete(product)

    storage_service.delete_many_quietly(keys, storage=storage)
    logger.info("Deleted product %s (%d variants, %d images)", code, len(variant_ids), len(keys))


# ── Variants ─────────────────────────────────────────────


def _color_images(product_id, color):
    """One variant's image rows for ``color``; every size shares the set."""
    sibling = (
        ProductVariant.query.filter_by(product_id=product_id, color=color)
        .order_by(ProductVariant.id)
        .first()
    )
    if sibling is None:
        return None, []
    images = ProductVariantImage.for_variants([sibling.id])[sibling.id]
    return sibling, images


def update_variant_stock(product_id, color, size, stock):
    """Set stock for one color/size, creating the variant if it is missing.

    A new variant gets the derived SKU and a copy of the color's images
    and variant codes.

    Returns:
        (variant, created)
    """
    color, size = (color or "").strip(), (size or "").strip()
    if not color or not size:
        raise ValidationError("color and size are required")
    if stock is None or stock < 0:
        raise ValidationError("stock must be zero or more")

    with product_lock(product_id):
        with _transaction():
            product = _get_product(product_id, for_update=True)
            variant = ProductVariant.query.filter_by(
                product_id=product.id, color=color, size=size
            ).first()
            if variant is not None:
                variant.stock = stock
                created = False
            else:
                variant = _create_variant(product, color, size, stock)
                created = True

    logger.info(
        "%s variant %s/%s of %s, stock=%d",
        "Created" if created else "Updated", color, size, product.code, stock,
    )
    return variant, created


def _create_variant(product, color, size, stock):
    category = db.session.get(Category, product.category_id) if product.category_id else None
    sku = resolve_sku(None, product.code, category.sku_code if category else None, color, size)
    if ProductVariant.query.filter_by(sku=sku).first():
        raise DuplicateSkuError(f"SKU already exists: {sku}")

    sibling, images = _color_images(product.id, color)
    variant = ProductVariant(
        product_id=product.id,
        color=color,
        size=size,
        stock=stock,
        sku=sku,
        variant_codes=list(sibling.variant_codes or []) if sibling else [],
    )
    db.session.add(variant)
    db.session.flush()
    for image in images:
        db.session.add(
            ProductVariantImage(
                variant_id=variant.id,
                image_url=image.image_url,
                image_public_id=image.image_public_id,
                is_primary=image.is_primary,
                color=color,
            )
        )
    return variant


def update_variant_codes(product_id, color, codes):
    """Replace the variant codes of one color on every size of it."""
    color = (color or "").strip()
    codes = sanitize_codes(codes)
    with product_lock(product_id):
        with _transaction():
            product = _get_product(product_id, for_update=True)
            variants = ProductVariant.for_product(product.id, color=color)
            if not variants:
                raise VariantNotFoundError(f"No variants with color {color!r}")

            ensure_codes_available(codes, product.id)
            if codes:
                other_color = VariantCode.query.filter(
                    VariantCode.code.in_(codes),
                    VariantCode.product_id == product.id,
                    VariantCode.color != color,
                ).first()
                if other_color:
                    raise DuplicateVariantCodeError(
                        f"Variant code {other_color.code} belongs to color {other_color.color!r}"
                    )

            VariantCode.query.filter_by(product_id=product.id, color=color).delete(
                synchronize_session="fetch"
            )
            for code in codes:
                db.session.add(VariantCode(code=code, product_id=product.id, color=color))
            for variant in variants:
                variant.variant_codes = list(codes)

    logger.info("Set %d variant codes on %s/%s", len(codes), product.code, color)
    return variants


def remove_variant(product_id, variant_id, storage=None):
    """Delete one variant with no order history.

    Storage objects are removed only once no other variant references them.
    """
    with product_lock(product_id):
        product = _get_product(product_id)
        variant = db.session.get(ProductVariant, variant_id)
        if variant is None or variant.product_id != product.id:
            raise VariantNotFoundError(f"Variant not found: {variant_id}")
        if OrderItem.exists_for_variants([variant.id]):
            raise OrderHistoryError("Cannot delete variant with existing orders")
        if ProductVariant.query.filter_by(product_id=product.id).count() == 1:
            raise ValidationError("Cannot remove the last variant of a product")

        images = ProductVariantImage.for_variants([variant.id])[variant.id]
        keys = {img.image_public_id for img in images if img.image_public_id}
        color, size = variant.color, variant.size

        with _transaction():
            ProductVariantImage.query.filter_by(variant_id=variant.id).delete(
                synchronize_session="fetch"
            )
            db.session.delete(variant)
            db.session.flush()
            if not ProductVariant.query.filter_by(product_id=product.id, color=color).count():
                VariantCode.query.filter_by(product_id=product.id, color=color).delete(
                    synchronize_session="fetch"
                )
            still_used = set()
            if keys:
                rows = ProductVariantImage.query.filter(
                    ProductVariantImage.image_public_id.in_(keys)
                ).all()
                still_used = {row.image_public_id for row in rows}

    storage_service.delete_many_quietly(sorted(keys - still_used), storage=storage)
    logger.info("Removed variant %s/%s from %s", color, size, product.code)


# ── Variant images (shared per color) ────────────────────


def _image_ident(image):
    return image.image_public_id or image.image_url


def _color_image_rows(product_id, color):
    variant_ids = [v.id for v in ProductVariant.for_product(product_id, color=color)]
    if not variant_ids:
        return []
    return (
        ProductVariantImage.query.filter(
            ProductVariantImage.variant_id.in_(variant_ids)
        )
        .order_by(ProductVariantImage.id)
        .all()
    )


def _image_in_product(product, image_id):
    image = db.session.get(ProductVariantImage, image_id)
    if image is not None:
        variant = db.session.get(ProductVariant, image.variant_id)
        if variant is not None and variant.product_id == product.id:
            return image
    raise VariantImageNotFoundError(f"Variant image not found: {image_id}")


def add_variant_images(product_id, color, files, storage=None):
    """Upload images and attach them to every size of ``color``.

    The first new image becomes primary only when the color has none.
    """
    color = (color or "").strip()
    files = list(files or [])
    if not files:
        raise ValidationError("No images uploaded")
    storage = storage or storage_service

    product = _get_product(product_id)
    variants = ProductVariant.for_product(product.id, color=color)
    if not variants:
        raise VariantNotFoundError(f"No variants with color {color!r}")

    try:
        payloads = [image_service.prepare_upload(f) for f in files]
    except ValueError as e:
        raise ValidationError(str(e)) from e

    stored = storage.upload_many(payloads, f"products/{product.code}/variants/{color}")
    keys = [item["key"] for item in stored]

    with _transaction(uploaded_keys=keys, storage=storage):
        has_primary = any(row.is_primary for row in _color_image_rows(product.id, color))
        for variant in variants:
            for i, item in enumerate(stored):
                db.session.add(
                    ProductVariantImage(
                        variant_id=variant.id,
                        image_url=item["url"],
                        image_public_id=item["key"],
                        is_primary=(i == 0 and not has_primary),
                        color=color,
                    )
                )

    logger.info("Added %d images to %s/%s", len(stored), product.code, color)
    return stored


def remove_variant_image(product_id, image_id, storage=None):
    """Remove an image from every size of its color and re-pick a primary."""
    product = _get_product(product_id)
    image = _image_in_product(product, image_id)
    ident, color = _image_ident(image), image.color
    key = image.image_public_id

    with _transaction():
        rows = _color_image_rows(product.id, color)
        removed = [r for r in rows if _image_ident(r) == ident]
        remaining = [r for r in rows if _image_ident(r) != ident]
        for row in removed:
            db.session.delete(row)
        if remaining and not any(r.is_primary for r in remaining):
            new_primary = _image_ident(remaining[0])
            for row in remaining:
                row.is_primary = _image_ident(row) == new_primary
        db.session.flush()
        still_used = bool(
            key and ProductVariantImage.query.filter_by(image_public_id=key).first()
        )

    if key and not still_used:
        storage_service.delete_many_quietly([key], storage=storage)
    logger.info("Removed image %s from %s/%s", ident, product.code, color)


def set_primary_variant_image(product_id, image_id):
    """Make one image primary for every size of its color."""
    product = _get_product(product_id)
    image = _image_in_product(product, image_id)
    ident = _image_ident(image)

    with _transaction():
        for row in _color_image_rows(product.id, image.color):
            row.is_primary = _image_ident(row) == ident

    return image


# ── Pricing ──────────────────────────────────────────────


def calculate_quantity_price(product_id, quantity, variant_id=None, is_wholesale=False):
    return TierPricingResolver().resolve_by_id(product_id, quantity, variant_id, is_wholesale)


def calculate_cart_prices(lines, is_wholesale=False):
    return CartPricingAggregator().resolve_cart(lines, is_wholesale)


def get_products_with_quantity_offers(subcategory_id, limit=None):
    """Active products of a subcategory together with its active tier rules."""
    subcategory = db.session.get(Subcategory, subcategory_id)
    if subcategory is None:
        raise SubcategoryNotFoundError(f"Subcategory not found: {subcategory_id}")
    limit = limit or current_app.config["OFFERS_DEFAULT_LIMIT"]

    offers = (
        SubcategoryQuantityPrice.query.filter_by(
            subcategory_id=subcategory.id, is_active=True
        )
        .order_by(SubcategoryQuantityPrice.quantity.asc())
        .all()
    )
    products = (
        Product.query.filter_by(subcategory_id=subcategory.id, status="ACTIVE")
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(limit)
        .all()
    )

    # Primary image per product, one batch query
    variants = ProductVariant.query.filter(
        ProductVariant.product_id.in_([p.id for p in products])
    ).order_by(ProductVariant.id).all() if products else []
    images = ProductVariantImage.for_variants([v.id for v in variants])
    primary = {}
    for variant in variants:
        if variant.product_id in primary:
            continue
        for row in images.get(variant.id, []):
            if row.is_primary:
                primary[variant.product_id] = row.image_url
                break

    offer_dicts = [o.to_dict() for o in offers]
    return {
        "subcategory": {**subcategory.to_dict(), "quantity_offers": offer_dicts},
        "products": [
            {
                **p.to_dict(),
                "primary_image": primary.get(p.id),
                "quantity_offers": offer_dicts,
                "has_quantity_pricing": bool(offer_dicts),
            }
            for p in products
        ],
    }


def get_stats():
    """Product counts by status for the stats command."""
    rows = (
        db.session.query(Product.status, db.func.count(Product.id))
        .group_by(Product.status)
        .all()
    )
    return dict(rows)
