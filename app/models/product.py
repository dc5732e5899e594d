from datetime import datetime, timezone
from app.extensions import MAX_ROW_ID, db


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    normal_price = db.Column(db.Numeric(12, 2), nullable=False)
    offer_price = db.Column(db.Numeric(12, 2))
    wholesale_price = db.Column(db.Numeric(12, 2))
    category_id = db.Column(
        db.Integer,
        db.ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    subcategory_id = db.Column(
        db.Integer,
        db.ForeignKey("subcategories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    status = db.Column(
        db.String(20), nullable=False, default="ACTIVE", index=True
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    VALID_STATUSES = {"ACTIVE", "INACTIVE", "OUT_OF_STOCK"}

    @property
    def is_active(self):
        return self.status == "ACTIVE"

    @staticmethod
    def get_by_id_or_code(identifier):
        """Resolve a cart reference that may be either an id or a product code."""
        text = str(identifier)
        if text.isdecimal() and len(text) <= 19 and int(text) <= MAX_ROW_ID:
            product = db.session.get(Product, int(text))
            if product:
                return product
        return Product.query.filter_by(code=text).first()

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "normal_price": float(self.normal_price),
            "offer_price": float(self.offer_price) if self.offer_price is not None else None,
            "wholesale_price": (
                float(self.wholesale_price) if self.wholesale_price is not None else None
            ),
            "category_id": self.category_id,
            "subcategory_id": self.subcategory_id,
            "status": self.status,
        }

    def __repr__(self):
        return f"<Product {self.code}: {self.name}>"
