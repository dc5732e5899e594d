from app.models.category import Category, Subcategory
from app.models.quantity_price import SubcategoryQuantityPrice
from app.models.product import Product
from app.models.variant import ProductVariant, VariantCode
from app.models.image import ProductVariantImage
from app.models.order import OrderItem

__all__ = [
    "Category",
    "Subcategory",
    "SubcategoryQuantityPrice",
    "Product",
    "ProductVariant",
    "VariantCode",
    "ProductVariantImage",
    "OrderItem",
]
