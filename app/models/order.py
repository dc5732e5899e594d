from datetime import datetime, timezone
from app.extensions import db


class OrderItem(db.Model):
    """Order line, kept only as order history for variant deletion guards."""

    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False, index=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    product_variant_id = db.Column(
        db.Integer,
        db.ForeignKey("product_variants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    @staticmethod
    def exists_for_variants(variant_ids):
        if not variant_ids:
            return False
        return (
            db.session.query(OrderItem.id)
            .filter(OrderItem.product_variant_id.in_(variant_ids))
            .first()
            is not None
        )

    @staticmethod
    def exists_for_product(product_id):
        return (
            db.session.query(OrderItem.id).filter_by(product_id=product_id).first()
            is not None
        )

    def __repr__(self):
        return f"<OrderItem {self.order_number} x{self.quantity}>"
