from datetime import datetime, timezone
from app.extensions import db


class SubcategoryQuantityPrice(db.Model):
    """Tier rule: a better price once ``quantity`` units are bought."""

    __tablename__ = "subcategory_quantity_prices"

    id = db.Column(db.Integer, primary_key=True)
    subcategory_id = db.Column(
        db.Integer,
        db.ForeignKey("subcategories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity = db.Column(db.Integer, nullable=False)  # minimum qualifying qty
    price_type = db.Column(db.String(20), nullable=False, default="PERCENTAGE")
    # Percentage off, or the total price for ``quantity`` units
    value = db.Column(db.Numeric(12, 2), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
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
        db.UniqueConstraint("subcategory_id", "quantity", name="uq_subcategory_quantity"),
        db.CheckConstraint("quantity >= 1", name="ck_quantity_positive"),
    )

    PERCENTAGE = "PERCENTAGE"
    FIXED_TOTAL = "FIXED_TOTAL"
    PRICE_TYPES = {PERCENTAGE, FIXED_TOTAL}

    @staticmethod
    def active_for(subcategory_id, max_quantity=None):
        """Active rules of a subcategory, highest threshold first."""
        query = SubcategoryQuantityPrice.query.filter_by(
            subcategory_id=subcategory_id, is_active=True
        )
        if max_quantity is not None:
            query = query.filter(SubcategoryQuantityPrice.quantity <= max_quantity)
        return query.order_by(SubcategoryQuantityPrice.quantity.desc()).all()

    def to_dict(self):
        return {
            "id": self.id,
            "subcategory_id": self.subcategory_id,
            "quantity": self.quantity,
            "price_type": self.price_type,
            "value": float(self.value),
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<QuantityPrice {self.quantity}+ {self.price_type} {self.value}>"
