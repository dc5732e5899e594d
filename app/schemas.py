"""Typed request payloads.

HTTP input is parsed here, before it reaches the services, so the
services only ever see validated numbers and booleans. Field names are
accepted in snake_case or the camelCase the storefront sends.
"""
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class SizeEntry(_Payload):
    size: Optional[str] = None
    stock: int = Field(0, ge=0)
    sku: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    wholesale_price: Optional[Decimal] = Field(None, ge=0)

    @field_validator("stock", mode="before")
    @classmethod
    def blank_stock_is_zero(cls, value):
        return 0 if _blank_to_none(value) is None else value

    @field_validator("price", "wholesale_price", mode="before")
    @classmethod
    def blank_as_none(cls, value):
        return _blank_to_none(value)


class VariantGroup(_Payload):
    color: str = ""
    sizes: List[SizeEntry] = Field(default_factory=list)
    variant_codes: List[str] = Field(default_factory=list)

    @field_validator("color", mode="before")
    @classmethod
    def strip_color(cls, value):
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value


class ProductCreate(_Payload):
    name: str = Field(..., min_length=1)
    code: Optional[str] = None
    description: Optional[str] = None
    normal_price: Decimal = Field(..., ge=0)
    offer_price: Optional[Decimal] = Field(None, ge=0)
    wholesale_price: Optional[Decimal] = Field(None, ge=0)
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    status: Literal["ACTIVE", "INACTIVE", "OUT_OF_STOCK"] = "ACTIVE"
    variants: List[VariantGroup] = Field(default_factory=list)

    @field_validator(
        "code", "offer_price", "wholesale_price", "category_id", "subcategory_id",
        mode="before",
    )
    @classmethod
    def blank_as_none(cls, value):
        return _blank_to_none(value)


class ProductUpdate(_Payload):
    """Partial update: only fields present in the payload are applied.

    ``variants`` left out (or sent empty) keeps the current matrix.
    """

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    normal_price: Optional[Decimal] = Field(None, ge=0)
    offer_price: Optional[Decimal] = Field(None, ge=0)
    wholesale_price: Optional[Decimal] = Field(None, ge=0)
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    status: Optional[Literal["ACTIVE", "INACTIVE", "OUT_OF_STOCK"]] = None
    variants: Optional[List[VariantGroup]] = None

    @field_validator(
        "offer_price", "wholesale_price", "category_id", "subcategory_id",
        mode="before",
    )
    @classmethod
    def blank_as_none(cls, value):
        return _blank_to_none(value)


class StockUpdate(_Payload):
    color: str = Field(..., min_length=1)
    size: str = Field(..., min_length=1)
    stock: int = Field(..., ge=0)


class VariantCodesUpdate(_Payload):
    color: str = Field(..., min_length=1)
    variant_codes: List[str] = Field(default_factory=list)


class QuantityPriceQuery(_Payload):
    quantity: int = 1
    variant_id: Optional[int] = None
    wholesale: bool = False

    @field_validator("variant_id", mode="before")
    @classmethod
    def blank_as_none(cls, value):
        return _blank_to_none(value)


class CartLine(_Payload):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    product_id: Optional[str] = None
    quantity: int = 1
    variant_id: Optional[int] = None

    @field_validator("quantity", mode="before")
    @classmethod
    def blank_quantity_is_one(cls, value):
        # Unparseable quantities price as one unit instead of failing the cart
        if value is None:
            return 1
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                return 1
        return value

    @field_validator("product_id", "variant_id", mode="before")
    @classmethod
    def blank_as_none(cls, value):
        return _blank_to_none(value)


class CartRequest(_Payload):
    items: List[CartLine] = Field(default_factory=list)
    wholesale: bool = False


class OffersQuery(_Payload):
    limit: int = Field(10, ge=1, le=100)


class QuantityPriceCreate(_Payload):
    quantity: int
    price_type: Literal["PERCENTAGE", "FIXED_TOTAL"] = "PERCENTAGE"
    value: Decimal


class QuantityPriceUpdate(_Payload):
    quantity: Optional[int] = None
    price_type: Optional[Literal["PERCENTAGE", "FIXED_TOTAL"]] = None
    value: Optional[Decimal] = None
    is_active: Optional[bool] = None


class QuantityPriceStatus(_Payload):
    is_active: bool
