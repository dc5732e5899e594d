from datetime import datetime, timezone
from app.extensions import db


class ProductVariant(db.Model):
    """One color × size inventory unit of a product."""

    __tablename__ = "product_variants"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    color = db.Column(db.String(100), nullable=False)
    size = db.Column(db.String(50), nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    sku = db.Column(db.String(255), unique=True, nullable=True)
    # Shared by every size of the same color; uniqueness lives in VariantCode
    variant_codes = db.Column(db.JSON)
    price = db.Column(db.Numeric(12, 2))
    wholesale_price = db.Column(db.Numeric(12, 2))
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("product_id", "color", "size", name="uq_variant_color_size"),
        db.CheckConstraint("stock >= 0", name="ck_variant_stock"),
    )

    @staticmethod
    def for_product(product_id, color=None):
        query = ProductVariant.query.filter_by(product_id=product_id)
        if color is not None:
            query = query.filter_by(color=color)
        return query.order_by(ProductVariant.id).all()

    def to_dict(self, images=None):
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "color": self.color,
            "size": self.size,
            "stock": self.stock,
            "sku": self.sku,
            "variant_codes": self.variant_codes or [],
            "price": float(self.price) if self.price is not None else None,
            "wholesale_price": (
                float(self.wholesale_price) if self.wholesale_price is not None else None
            ),
        }
        if images is not None:
            data["images"] = [img.to_dict() for img in images]
        return data

    def __repr__(self):
        return f"<Variant {self.color}/{self.size} [{self.sku}]>"


class VariantCode(db.Model):
    """Registry of externally issued variant codes, unique catalog-wide.

    A code belongs to one product color; every size of that color
    carries it in ``ProductVariant.variant_codes``.
    """

    __tablename__ = "variant_codes"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(100), unique=True, nullable=False)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    color = db.Column(db.String(100), nullable=False)

    def __repr__(self):
        return f"<VariantCode {self.code} → {self.product_id}/{self.color}>"
