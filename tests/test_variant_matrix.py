"""Tests for building and rebuilding a product's color × size matrix."""
from unittest.mock import patch

import pytest

from app.errors import (
    ConflictError,
    DuplicateSkuError,
    DuplicateVariantCodeError,
    DuplicateVariantError,
    NoValidVariantsError,
    UploadError,
    ValidationError,
)
from app.models.image import ProductVariantImage
from app.models.product import Product
from app.models.variant import ProductVariant, VariantCode
from app.schemas import ProductCreate, ProductUpdate
from app.services import product_service
from app.services.variant_matrix import VariantMatrixBuilder


def _create(catalog, groups, files=(), color_map=None, storage=None, **fields):
    data = {
        "name": "Oxford Shirt",
        "normal_price": 500,
        "category_id": catalog["category"].id,
        "subcategory_id": catalog["subcategory"].id,
        "variants": groups,
    }
    data.update(fields)
    return product_service.create_product(
        ProductCreate.model_validate(data), files, color_map, storage=storage
    )


def _update(product_id, data, files=(), color_map=None, storage=None):
    return product_service.update_product(
        product_id, ProductUpdate.model_validate(data), files, color_map, storage=storage
    )


def _matrix(product_id):
    variants = ProductVariant.for_product(product_id)
    images = ProductVariantImage.for_variants([v.id for v in variants])
    return {
        (v.color, v.size): [(i.image_public_id, i.is_primary) for i in images[v.id]]
        for v in variants
    }


RED_BLUE = [
    {"color": "Red", "sizes": [{"size": "S"}, {"size": "M"}]},
    {"color": "Blue", "sizes": [{"size": "M"}]},
]


def test_red_images_shared_blue_has_none(db, catalog, storage, make_image):
    files = [make_image("variantImages[Red]", "r1.png"), make_image("variantImages[Red]", "r2.png")]
    product, result = _create(catalog, RED_BLUE, files, storage=storage)

    matrix = _matrix(product.id)
    assert set(matrix) == {("Red", "S"), ("Red", "M"), ("Blue", "M")}
    assert matrix[("Red", "S")] == matrix[("Red", "M")]
    assert len(matrix[("Red", "S")]) == 2
    assert [primary for _, primary in matrix[("Red", "S")]].count(True) == 1
    assert matrix[("Blue", "M")] == []
    assert len(result.variants) == 3
    assert len(storage.objects) == 2


def test_every_valid_size_becomes_a_variant(db, catalog, storage):
    groups = [
        {"color": "White", "sizes": [{"size": "S"}, {"size": "M"}, {"size": ""}]},
        {"color": "Black", "sizes": [{"size": "S"}, {"size": "M"}, {"size": "L", "stock": 4}]},
    ]
    product, result = _create(catalog, groups, storage=storage)

    assert len(result.variants) == 5
    assert result.skipped == [{"color": "White", "position": 3, "reason": "blank size"}]
    black_l = ProductVariant.query.filter_by(product_id=product.id, color="Black", size="L").one()
    assert black_l.stock == 4
    white_s = ProductVariant.query.filter_by(product_id=product.id, color="White", size="S").one()
    assert white_s.stock == 0


def test_derived_sku(db, catalog, storage):
    product, _ = _create(catalog, [{"color": "Red", "sizes": [{"size": "M"}]}], storage=storage)

    variant = ProductVariant.for_product(product.id)[0]
    assert variant.sku == f"{product.code}-SHI-Red-M"


def test_color_with_only_blank_sizes_is_omitted(db, catalog, storage):
    groups = [
        {"color": "Red", "sizes": [{"size": "M"}]},
        {"color": "Green", "sizes": [{"size": " "}]},
    ]
    product, result = _create(catalog, groups, storage=storage)

    assert {v.color for v in result.variants} == {"Red"}


def test_no_valid_variants_creates_nothing(db, catalog, storage, make_image):
    groups = [{"color": "Red", "sizes": [{"size": ""}]}]
    with pytest.raises(NoValidVariantsError):
        _create(catalog, groups, [make_image("variantImages[Red]")], storage=storage)

    assert Product.query.count() == 0
    assert storage.objects == {}


def test_group_without_color_is_rejected(db, catalog, storage):
    with pytest.raises(ValidationError):
        _create(catalog, [{"color": "", "sizes": [{"size": "M"}]}], storage=storage)
    assert Product.query.count() == 0


def test_group_without_sizes_is_rejected(db, catalog, storage):
    with pytest.raises(ValidationError):
        _create(catalog, [{"color": "Red", "sizes": []}], storage=storage)


def test_create_without_groups_is_rejected(db, catalog, storage):
    with pytest.raises(ValidationError):
        _create(catalog, [], storage=storage)


def test_duplicate_color_size_pair(db, catalog, storage):
    groups = [{"color": "Red", "sizes": [{"size": "M"}, {"size": "M "}]}]
    with pytest.raises(DuplicateVariantError):
        _create(catalog, groups, storage=storage)


def test_explicit_sku_collision_across_products(db, catalog, storage):
    _create(catalog, [{"color": "Red", "sizes": [{"size": "M", "sku": "OX-RED-M"}]}], storage=storage)

    with pytest.raises(ConflictError) as exc:
        _create(catalog, [{"color": "Red", "sizes": [{"size": "M", "sku": "OX-RED-M"}]}], storage=storage)
    assert isinstance(exc.value, DuplicateSkuError)
    assert Product.query.count() == 1


def test_variant_codes_shared_by_all_sizes(db, catalog, storage):
    groups = [{"color": "Red", "sizes": [{"size": "S"}, {"size": "M"}], "variantCodes": ["RC-1", "RC-2"]}]
    product, _ = _create(catalog, groups, storage=storage)

    for variant in ProductVariant.for_product(product.id):
        assert variant.variant_codes == ["RC-1", "RC-2"]
    assert VariantCode.query.filter_by(product_id=product.id).count() == 2


def test_variant_code_held_by_other_product(db, catalog, storage):
    _create(catalog, [{"color": "Red", "sizes": [{"size": "S"}], "variantCodes": ["RC-1"]}], storage=storage)

    with pytest.raises(DuplicateVariantCodeError):
        _create(catalog, [{"color": "Blue", "sizes": [{"size": "S"}], "variantCodes": ["RC-1"]}], storage=storage)


def test_same_code_on_two_colors_is_rejected(db, catalog, storage):
    groups = [
        {"color": "Red", "sizes": [{"size": "S"}], "variantCodes": ["X"]},
        {"color": "Blue", "sizes": [{"size": "S"}], "variantCodes": ["X"]},
    ]
    with pytest.raises(DuplicateVariantCodeError):
        _create(catalog, groups, storage=storage)


def test_upload_failure_is_fatal(db, catalog, storage, make_image):
    storage.fail_upload = True
    with pytest.raises(UploadError):
        _create(catalog, RED_BLUE, [make_image("variantImages[Red]")], storage=storage)
    assert Product.query.count() == 0


def test_invalid_image_is_a_validation_error(db, catalog, storage):
    from io import BytesIO
    from werkzeug.datastructures import FileStorage

    bogus = FileStorage(BytesIO(b"not an image"), filename="x.png", name="variantImages[Red]",
                        content_type="image/png")
    with pytest.raises(ValidationError):
        _create(catalog, RED_BLUE, [bogus], storage=storage)


# ── rebuild ──────────────────────────────────────────────


def test_update_without_variants_leaves_matrix_untouched(db, catalog, storage, make_image):
    product, _ = _create(catalog, RED_BLUE, [make_image("variantImages[Red]")], storage=storage)
    before_ids = sorted(v.id for v in ProductVariant.for_product(product.id))
    before = _matrix(product.id)

    _, result = _update(product.id, {"name": "Renamed"}, storage=storage)

    assert result.unchanged
    assert sorted(v.id for v in ProductVariant.for_product(product.id)) == before_ids
    assert _matrix(product.id) == before
    assert db.session.get(Product, product.id).name == "Renamed"
    assert storage.deleted == []


def test_empty_variant_list_counts_as_omitted(db, catalog, storage):
    product, _ = _create(catalog, RED_BLUE, storage=storage)
    _, result = _update(product.id, {"variants": []}, storage=storage)

    assert result.unchanged
    assert len(ProductVariant.for_product(product.id)) == 3


def test_rebuild_keeps_own_skus(db, catalog, storage):
    groups = [{"color": "Red", "sizes": [{"size": "M", "sku": "OX-RED-M"}]}]
    product, _ = _create(catalog, groups, storage=storage)

    _, result = _update(product.id, {"variants": groups}, storage=storage)

    assert [v.sku for v in result.variants] == ["OX-RED-M"]


def test_rebuild_carries_images_forward(db, catalog, storage, make_image):
    files = [make_image("variantImages[Red]", "r1.png"), make_image("variantImages[Red]", "r2.png")]
    product, _ = _create(catalog, RED_BLUE, files, storage=storage)
    red_before = _matrix(product.id)[("Red", "S")]

    groups = [{"color": "Red", "sizes": [{"size": "S"}, {"size": "M"}, {"size": "L"}]}]
    _update(product.id, {"variants": groups}, storage=storage)

    matrix = _matrix(product.id)
    assert set(matrix) == {("Red", "S"), ("Red", "M"), ("Red", "L")}
    for images in matrix.values():
        assert images == red_before
    assert storage.deleted == []


def test_rebuild_keeps_upload_order_after_primary_switch(db, catalog, storage, make_image):
    files = [make_image("variantImages[Red]", "r1.png"), make_image("variantImages[Red]", "r2.png")]
    product, _ = _create(catalog, RED_BLUE, files, storage=storage)
    red_s = ProductVariant.query.filter_by(product_id=product.id, color="Red", size="S").one()
    first, second = ProductVariantImage.for_variants([red_s.id], primary_first=False)[red_s.id]
    keys = [first.image_public_id, second.image_public_id]
    product_service.set_primary_variant_image(product.id, second.id)

    groups = [{"color": "Red", "sizes": [{"size": "S"}, {"size": "L"}]}]
    _update(product.id, {"variants": groups}, storage=storage)

    for variant in ProductVariant.for_product(product.id):
        images = ProductVariantImage.for_variants([variant.id], primary_first=False)[variant.id]
        assert [i.image_public_id for i in images] == keys
        assert [i.is_primary for i in images] == [False, True]


def test_rebuild_with_new_images_replaces_only_that_color(db, catalog, storage, make_image):
    groups = [
        {"color": "Red", "sizes": [{"size": "S"}]},
        {"color": "Blue", "sizes": [{"size": "S"}]},
    ]
    files = [make_image("variantImages[Red]"), make_image("variantImages[Blue]")]
    product, _ = _create(catalog, groups, files, storage=storage)
    old = _matrix(product.id)

    _update(product.id, {"variants": groups}, [make_image("variantImages[Red]")], storage=storage)

    new = _matrix(product.id)
    assert new[("Blue", "S")] == old[("Blue", "S")]
    assert new[("Red", "S")] != old[("Red", "S")]
    assert storage.deleted == [old[("Red", "S")][0][0]]


def test_rebuild_swallows_storage_delete_failure(db, catalog, storage, make_image):
    groups = [{"color": "Red", "sizes": [{"size": "S"}]}]
    product, _ = _create(catalog, groups, [make_image("variantImages[Red]")], storage=storage)
    storage.fail_delete = True

    _, result = _update(product.id, {"variants": groups}, [make_image("variantImages[Red]")], storage=storage)

    assert len(result.variants) == 1
    assert len(_matrix(product.id)[("Red", "S")]) == 1


def test_failed_rebuild_keeps_old_matrix_and_discards_uploads(db, catalog, storage, make_image):
    product, _ = _create(catalog, RED_BLUE, storage=storage)
    before = _matrix(product.id)

    with patch.object(VariantMatrixBuilder, "_stage", side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError):
            _update(
                product.id,
                {"variants": [{"color": "Red", "sizes": [{"size": "XL"}]}]},
                [make_image("variantImages[Red]")],
                storage=storage,
            )

    assert _matrix(product.id) == before
    assert storage.objects == {}
    assert len(storage.deleted) == 1


def test_rebuild_conflict_with_other_product_sku(db, catalog, storage):
    _create(catalog, [{"color": "Red", "sizes": [{"size": "M", "sku": "TAKEN"}]}], storage=storage)
    product, _ = _create(catalog, [{"color": "Red", "sizes": [{"size": "M"}]}], storage=storage)

    with pytest.raises(DuplicateSkuError):
        _update(product.id, {"variants": [{"color": "Red", "sizes": [{"size": "M", "sku": "TAKEN"}]}]},
                storage=storage)
    assert len(ProductVariant.for_product(product.id)) == 1
