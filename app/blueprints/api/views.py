"""JSON API for the catalog engine: products, variant matrix, tier pricing."""
import json

from flask import current_app, request

from app.blueprints.api import api_bp
from app.errors import ValidationError
from app.schemas import (
    CartRequest,
    OffersQuery,
    ProductCreate,
    ProductUpdate,
    QuantityPriceCreate,
    QuantityPriceQuery,
    QuantityPriceStatus,
    QuantityPriceUpdate,
    StockUpdate,
    VariantCodesUpdate,
)
from app.services import product_service, quantity_price_service


def _storage():
    """Object storage override (tests install a fake); None means S3."""
    return current_app.extensions.get("object_storage")


def _body():
    """Product body from a JSON request or the ``data`` field of a form."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    raw = request.form.get("data")
    if not raw:
        return {key: value for key, value in request.form.items() if key != "variantColors"}
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ValidationError("Field 'data' is not valid JSON") from e


def _uploads():
    files = [f for _, f in request.files.items(multi=True) if f and f.filename]
    color_map = request.form.getlist("variantColors") or None
    return files, color_map


def _json():
    return request.get_json(silent=True) or {}


# ── Products ─────────────────────────────────────────────


@api_bp.route("/products", methods=["POST"])
def create_product():
    payload = ProductCreate.model_validate(_body())
    files, color_map = _uploads()
    product, result = product_service.create_product(
        payload, files, color_map, storage=_storage()
    )
    return {"product": product.to_dict(), **result.to_dict()}, 201


@api_bp.route("/products/<identifier>", methods=["GET"])
def get_product(identifier):
    return product_service.get_product_detail(identifier)


@api_bp.route("/products/<int:product_id>", methods=["PUT"])
def update_product(product_id):
    payload = ProductUpdate.model_validate(_body())
    files, color_map = _uploads()
    product, result = product_service.update_product(
        product_id, payload, files, color_map, storage=_storage()
    )
    return {
        "product": product.to_dict(),
        "variants_rebuilt": not result.unchanged,
        **result.to_dict(),
    }


@api_bp.route("/products/<int:product_id>", methods=["DELETE"])
def delete_product(product_id):
    product_service.delete_product(product_id, storage=_storage())
    return {"message": "Product deleted successfully"}


# ── Variants ─────────────────────────────────────────────


@api_bp.route("/products/<int:product_id>/variants/stock", methods=["PUT"])
def update_variant_stock(product_id):
    body = StockUpdate.model_validate(_json())
    variant, created = product_service.update_variant_stock(
        product_id, body.color, body.size, body.stock
    )
    return {"variant": variant.to_dict(), "created": created}, 201 if created else 200


@api_bp.route("/products/<int:product_id>/variants/codes", methods=["PUT"])
def update_variant_codes(product_id):
    body = VariantCodesUpdate.model_validate(_json())
    variants = product_service.update_variant_codes(
        product_id, body.color, body.variant_codes
    )
    return {"variants": [v.to_dict() for v in variants]}


@api_bp.route("/products/<int:product_id>/variants/<int:variant_id>", methods=["DELETE"])
def remove_variant(product_id, variant_id):
    product_service.remove_variant(product_id, variant_id, storage=_storage())
    return {"message": "Variant removed successfully"}


@api_bp.route("/products/<int:product_id>/variants/images", methods=["POST"])
def add_variant_images(product_id):
    color = request.form.get("color", "")
    files, _ = _uploads()
    stored = product_service.add_variant_images(
        product_id, color, files, storage=_storage()
    )
    return {"images": stored}, 201


@api_bp.route("/products/<int:product_id>/images/<int:image_id>", methods=["DELETE"])
def remove_variant_image(product_id, image_id):
    product_service.remove_variant_image(product_id, image_id, storage=_storage())
    return {"message": "Image removed successfully"}


@api_bp.route("/products/<int:product_id>/images/<int:image_id>/primary", methods=["PUT"])
def set_primary_image(product_id, image_id):
    image = product_service.set_primary_variant_image(product_id, image_id)
    return {"image": image.to_dict()}


# ── Pricing ──────────────────────────────────────────────


@api_bp.route("/products/<int:product_id>/quantity-price", methods=["GET"])
def quantity_price(product_id):
    query = QuantityPriceQuery.model_validate(request.args.to_dict())
    result = product_service.calculate_quantity_price(
        product_id, query.quantity, query.variant_id, query.wholesale
    )
    return result.to_dict()


@api_bp.route("/cart/prices", methods=["POST"])
def cart_prices():
    cart = CartRequest.model_validate(_json())
    return product_service.calculate_cart_prices(cart.items, cart.wholesale)


@api_bp.route("/subcategories/<int:subcategory_id>/quantity-offers", methods=["GET"])
def quantity_offers(subcategory_id):
    args = request.args.to_dict()
    if "limit" not in args:
        args["limit"] = current_app.config["OFFERS_DEFAULT_LIMIT"]
    query = OffersQuery.model_validate(args)
    return product_service.get_products_with_quantity_offers(subcategory_id, query.limit)


# ── Tier rules ───────────────────────────────────────────


@api_bp.route("/subcategories/quantity-pricing", methods=["GET"])
def subcategories_with_pricing():
    return {"subcategories": quantity_price_service.get_subcategories_with_quantity_pricing()}


@api_bp.route("/subcategories/<int:subcategory_id>/quantity-prices", methods=["GET"])
def list_quantity_prices(subcategory_id):
    rules = quantity_price_service.list_quantity_prices(subcategory_id)
    return {"quantity_prices": [r.to_dict() for r in rules]}


@api_bp.route("/subcategories/<int:subcategory_id>/quantity-prices", methods=["POST"])
def add_quantity_price(subcategory_id):
    body = QuantityPriceCreate.model_validate(_json())
    rule = quantity_price_service.add_quantity_price(
        subcategory_id, body.quantity, body.price_type, body.value
    )
    return {"quantity_price": rule.to_dict()}, 201


@api_bp.route("/quantity-prices/<int:rule_id>", methods=["PUT"])
def update_quantity_price(rule_id):
    body = QuantityPriceUpdate.model_validate(_json())
    rule = quantity_price_service.update_quantity_price(
        rule_id, body.quantity, body.price_type, body.value, body.is_active
    )
    return {"quantity_price": rule.to_dict()}


@api_bp.route("/quantity-prices/<int:rule_id>/status", methods=["PUT"])
def toggle_quantity_price(rule_id):
    body = QuantityPriceStatus.model_validate(_json())
    rule = quantity_price_service.toggle_quantity_price(rule_id, body.is_active)
    state = "activated" if rule.is_active else "deactivated"
    return {"quantity_price": rule.to_dict(), "message": f"Quantity price {state} successfully"}


@api_bp.route("/quantity-prices/<int:rule_id>", methods=["DELETE"])
def delete_quantity_price(rule_id):
    quantity_price_service.delete_quantity_price(rule_id)
    return {"message": "Quantity price deleted successfully"}
