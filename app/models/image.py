from datetime import datetime, timezone
from app.extensions import db


class ProductVariantImage(db.Model):
    __tablename__ = "product_variant_images"

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(
        db.Integer,
        db.ForeignKey("product_variants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_url = db.Column(db.String(1024), nullable=False)
    image_public_id = db.Column(db.String(512))  # object storage key
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    color = db.Column(db.String(100), nullable=False, index=True)  # denormalized
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    @staticmethod
    def for_variants(variant_ids, primary_first=True):
        """Batch-fetch images for many variants, grouped by variant id.

        Rows come primary first, then in upload order; ``primary_first=False``
        keeps plain upload order.
        """
        grouped = {vid: [] for vid in variant_ids}
        if not variant_ids:
            return grouped
        order = [ProductVariantImage.id]
        if primary_first:
            order.insert(0, ProductVariantImage.is_primary.desc())
        rows = (
            ProductVariantImage.query.filter(
                ProductVariantImage.variant_id.in_(variant_ids)
            )
            .order_by(*order)
            .all()
        )
        for row in rows:
            grouped[row.variant_id].append(row)
        return grouped

    def to_dict(self):
        return {
            "id": self.id,
            "image_url": self.image_url,
            "image_public_id": self.image_public_id,
            "is_primary": self.is_primary,
            "color": self.color,
        }

    def __repr__(self):
        return f"<VariantImage {self.color} {self.image_public_id}>"
