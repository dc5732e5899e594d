"""Expand color groups into the product's color × size variant matrix.

A product is sent as a list of color groups, each with its sizes and
optional variant codes. Every valid size becomes one ProductVariant, and
every size of a color shares that color's image set.

The builder only stages rows on the session. The caller owns the
transaction: it commits, or rolls back and calls ``discard_uploads()``,
and deletes ``result.removed_keys`` from storage after a successful
commit.
"""
import logging

from app.errors import (
    DuplicateSkuError,
    DuplicateVariantCodeError,
    DuplicateVariantError,
    NoValidVariantsError,
    ValidationError,
)
from app.extensions import db
from app.models.category import Category
from app.models.image import ProductVariantImage
from app.models.variant import ProductVariant, VariantCode
from app.services import image_service, storage_service
from app.services.image_grouping import group_images_by_color
from app.services.variant_keys import (
    GENERIC_CATEGORY_CODE,
    ensure_codes_available,
    ensure_sku_available,
    identity_key,
    resolve_sku,
    sanitize_codes,
)

logger = logging.getLogger(__name__)


class MatrixResult:
    def __init__(self):
        self.variants = []
        self.images = {}  # variant id -> [ProductVariantImage]
        self.skipped = []
        self.warnings = []
        self.removed_keys = []
        self.unchanged = False

    def to_dict(self):
        return {
            "variants": [
                v.to_dict(images=self.images.get(v.id, [])) for v in self.variants
            ],
            "skipped": self.skipped,
            "warnings": self.warnings,
        }


class _PlannedColor:
    def __init__(self, color, codes):
        self.color = color
        self.codes = codes
        self.rows = []  # (size, SizeEntry, sku)


class VariantMatrixBuilder:
    def __init__(self, storage=None, session=None):
        self.storage = storage or storage_service
        self.session = session or db.session
        self.uploaded_keys = []

    def build(self, product, variant_groups, files=(), color_map=None):
        """Stage the variant matrix of a new product.

        ``product`` must already be flushed so it has an id.
        """
        result = MatrixResult()
        plan = self._plan(product, variant_groups, result)
        grouping = group_images_by_color(files, _group_colors(variant_groups), color_map)
        result.warnings.extend(grouping.warnings)

        image_sets = self._upload_colors(product, plan, grouping, result)
        self._stage(product, plan, image_sets, result)
        return result

    def rebuild(self, product, existing_variants, variant_groups, files=(), color_map=None):
        """Replace a product's matrix with ``variant_groups``.

        ``None`` or an empty list leaves the current variants in place.
        Colors without new uploads keep their current images. For colors
        that get new uploads, the old storage objects are listed in
        ``result.removed_keys``.
        """
        result = MatrixResult()
        if not variant_groups:
            result.unchanged = True
            result.variants = list(existing_variants)
            result.images = ProductVariantImage.for_variants(
                [v.id for v in existing_variants]
            )
            return result

        plan = self._plan(product, variant_groups, result)
        carried = self._existing_images_by_color(existing_variants)
        grouping = group_images_by_color(files, _group_colors(variant_groups), color_map)
        result.warnings.extend(grouping.warnings)

        uploaded = self._upload_colors(product, plan, grouping, result)

        image_sets = {}
        for planned in plan:
            if planned.color in uploaded:
                image_sets[planned.color] = uploaded[planned.color]
                result.removed_keys.extend(
                    img["key"] for img in carried.get(planned.color, []) if img["key"]
                )
            else:
                image_sets[planned.color] = carried.get(planned.color, [])

        self._clear(product, existing_variants)
        self._stage(product, plan, image_sets, result)
        return result

    def discard_uploads(self):
        """Remove objects uploaded by this builder; used after a rollback."""
        if self.uploaded_keys:
            logger.info("Discarding %d uploaded images", len(self.uploaded_keys))
            storage_service.delete_many_quietly(self.uploaded_keys, storage=self.storage)
            self.uploaded_keys = []

    # ── planning ─────────────────────────────────────────────

    def _category_code(self, product):
        if product.category_id is None:
            return GENERIC_CATEGORY_CODE
        category = self.session.get(Category, product.category_id)
        return category.sku_code if category else GENERIC_CATEGORY_CODE

    def _plan(self, product, variant_groups, result):
        """Validate the groups and resolve every SKU before anything is written."""
        if not variant_groups:
            raise ValidationError("At least one variant group is required")

        category_code = self._category_code(product)
        plan = []
        colors_seen = set()
        keys_seen = set()
        skus_seen = set()
        codes_seen = {}

        for index, group in enumerate(variant_groups, start=1):
            color = (group.color or "").strip()
            if not color:
                raise ValidationError(f"Variant group #{index} has no color")
            if not group.sizes:
                raise ValidationError(f"Variant group {color!r} has no sizes")
            if color in colors_seen:
                raise DuplicateVariantError(f"Color {color!r} is declared more than once")
            colors_seen.add(color)

            codes = sanitize_codes(group.variant_codes)
            for code in codes:
                if code in codes_seen:
                    raise DuplicateVariantCodeError(
                        f"Variant code {code} is used by both {codes_seen[code]!r} and {color!r}"
                    )
                codes_seen[code] = color

            planned = _PlannedColor(color, codes)
            for position, entry in enumerate(group.sizes, start=1):
                size = (entry.size or "").strip()
                if not size:
                    result.skipped.append(
                        {"color": color, "position": position, "reason": "blank size"}
                    )
                    continue

                key = identity_key(product.id, color, size)
                if key in keys_seen:
                    raise DuplicateVariantError(
                        f"Variant {color}/{size} is listed more than once"
                    )
                keys_seen.add(key)

                sku = resolve_sku(entry.sku, product.code, category_code, color, size)
                if sku in skus_seen:
                    raise DuplicateSkuError(f"SKU already exists: {sku}")
                skus_seen.add(sku)
                ensure_sku_available(sku, product.id)
                planned.rows.append((size, entry, sku))

            if planned.rows:
                plan.append(planned)
            else:
                logger.info("Color %s has no valid sizes; omitted", color)

        if not plan:
            raise NoValidVariantsError()

        ensure_codes_available(list(codes_seen), product.id)
        if result.skipped:
            logger.warning(
                "Skipped %d blank sizes for product %s", len(result.skipped), product.code
            )
        return plan

    # ── images ───────────────────────────────────────────────

    def _upload_colors(self, product, plan, grouping, result):
        """Upload each color's new files; returns color -> image dicts."""
        planned_colors = {p.color for p in plan}
        uploaded = {}
        for color, files in grouping.by_color.items():
            if not files:
                continue
            if color not in planned_colors:
                message = f"{len(files)} image(s) for {color!r} unused: no valid sizes"
                logger.warning(message)
                result.warnings.append(message)
                continue

            try:
                payloads = [image_service.prepare_upload(f) for f in files]
            except ValueError as e:
                raise ValidationError(f"Invalid image for {color}: {e}") from e

            stored = self.storage.upload_many(
                payloads, f"products/{product.code}/variants/{color}"
            )
            self.uploaded_keys.extend(item["key"] for item in stored)
            uploaded[color] = [
                {"url": item["url"], "key": item["key"], "is_primary": i == 0}
                for i, item in enumerate(stored)
            ]
        return uploaded

    def _existing_images_by_color(self, existing_variants):
        """Current images per color, deduplicated across sizes.

        Sizes of one color share the same stored objects, so rows are
        deduplicated by storage key (or URL when there is no key). The
        primary flag carries over; exactly one image per color ends up
        primary.
        """
        by_variant = ProductVariantImage.for_variants(
            [v.id for v in existing_variants], primary_first=False
        )
        by_color = {}
        seen = {}
        for variant in existing_variants:
            images = by_color.setdefault(variant.color, [])
            keys = seen.setdefault(variant.color, {})
            for row in by_variant.get(variant.id, []):
                ident = row.image_public_id or row.image_url
                if ident in keys:
                    if row.is_primary:
                        keys[ident]["is_primary"] = True
                    continue
                image = {
                    "url": row.image_url,
                    "key": row.image_public_id,
                    "is_primary": bool(row.is_primary),
                }
                keys[ident] = image
                images.append(image)

        for images in by_color.values():
            _normalize_primary(images)
        return by_color

    # ── writes ───────────────────────────────────────────────

    def _clear(self, product, existing_variants):
        # "fetch" drops the old rows from the identity map; SQLite may hand
        # their ids to the new rows
        variant_ids = [v.id for v in existing_variants]
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
        self.session.flush()

    def _stage(self, product, plan, image_sets, result):
        for planned in plan:
            for code in planned.codes:
                self.session.add(
                    VariantCode(code=code, product_id=product.id, color=planned.color)
                )
            for size, entry, sku in planned.rows:
                variant = ProductVariant(
                    product_id=product.id,
                    color=planned.color,
                    size=size,
                    stock=entry.stock or 0,
                    sku=sku,
                    variant_codes=list(planned.codes),
                    price=entry.price,
                    wholesale_price=entry.wholesale_price,
                )
                self.session.add(variant)
                result.variants.append(variant)

        self.session.flush()

        for variant in result.variants:
            rows = []
            for image in image_sets.get(variant.color, []):
                row = ProductVariantImage(
                    variant_id=variant.id,
                    image_url=image["url"],
                    image_public_id=image["key"],
                    is_primary=image["is_primary"],
                    color=variant.color,
                )
                self.session.add(row)
                rows.append(row)
            result.images[variant.id] = rows

        self.session.flush()
        logger.info(
            "Staged %d variants across %d colors for product %s",
            len(result.variants), len(plan), product.code,
        )


def _group_colors(variant_groups):
    return [(g.color or "").strip() for g in variant_groups]


def _normalize_primary(images):
    """Keep the first primary image primary, or promote the first image."""
    found = False
    for image in images:
        if image["is_primary"] and not found:
            found = True
        else:
            image["is_primary"] = False
    if images and not found:
        images[0]["is_primary"] = True
