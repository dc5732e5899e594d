"""Service error taxonomy.

Every error that crosses the service boundary carries a stable ``kind`` and
a user-safe ``message``; the API layer renders it as ``{kind, message}``.
"""


class ServiceError(Exception):
    kind = "error"
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__ or self.kind)
        self.message = message or (self.__class__.__doc__ or self.kind).strip()

    def to_dict(self):
        return {"kind": self.kind, "message": self.message}


class ValidationError(ServiceError):
    """Invalid input."""

    kind = "validation_error"
    status_code = 400


class InvalidQuantityError(ValidationError):
    """Quantity must be at least 1."""

    kind = "invalid_quantity"


class NotFoundError(ServiceError):
    """Resource not found."""

    kind = "not_found"
    status_code = 404


class ProductNotFoundError(NotFoundError):
    """Product not found."""


class SubcategoryNotFoundError(NotFoundError):
    """Subcategory not found."""


class CategoryNotFoundError(NotFoundError):
    """Category not found."""


class VariantNotFoundError(NotFoundError):
    """Product variant not found."""


class VariantImageNotFoundError(NotFoundError):
    """Variant image not found."""


class QuantityPriceNotFoundError(NotFoundError):
    """Quantity price not found."""


class ConflictError(ServiceError):
    """Conflicts with existing data."""

    kind = "conflict"
    status_code = 409


class DuplicateSkuError(ConflictError):
    """SKU already exists."""

    kind = "duplicate_sku"


class DuplicateVariantCodeError(ConflictError):
    """Variant codes already exist."""

    kind = "duplicate_variant_code"


class DuplicateVariantError(ConflictError):
    """Variant with the same color and size already exists."""

    kind = "duplicate_variant"


class DuplicateProductCodeError(ConflictError):
    """Product code already exists."""

    kind = "duplicate_product_code"


class DuplicateQuantityPriceError(ConflictError):
    """Quantity price already exists for this subcategory."""

    kind = "duplicate_quantity_price"


class OrderHistoryError(ConflictError):
    """Cannot delete records with existing orders."""

    kind = "has_order_history"


class UploadError(ServiceError):
    """Failed to upload variant images."""

    kind = "upload_error"
    status_code = 502


class NoValidVariantsError(ServiceError):
    """No valid variants with sizes."""

    kind = "no_valid_variants"
    status_code = 422
