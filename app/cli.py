"""Flask CLI commands for admin operations."""
import click
from flask import current_app

DEMO_CATEGORY = "Shirts"
DEMO_SUBCATEGORY = "Formal Shirts"

# (quantity, price_type, value)
DEMO_TIERS = [
    (5, "PERCENTAGE", 5),
    (10, "PERCENTAGE", 10),
    (20, "FIXED_TOTAL", 8000),
]

DEMO_PRODUCTS = [
    {
        "name": "Oxford Button-Down Shirt",
        "normal_price": 500,
        "offer_price": 450,
        "wholesale_price": 380,
        "variants": [
            {"color": "White", "sizes": [{"size": s, "stock": 25} for s in ("S", "M", "L", "XL")]},
            {"color": "Light Blue", "sizes": [{"size": s, "stock": 15} for s in ("M", "L")]},
        ],
    },
    {
        "name": "Linen Mandarin Collar Shirt",
        "normal_price": 900,
        "variants": [
            {"color": "Beige", "sizes": [{"size": s, "stock": 10} for s in ("M", "L", "XL")]},
            {"color": "Olive", "sizes": [{"size": "L", "stock": 6}]},
        ],
    },
]


def register_cli(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all tables and the product code sequence."""
        from app.extensions import db

        db.create_all()

        # Create sequence for product codes (Postgres only)
        db_uri = current_app.config["SQLALCHEMY_DATABASE_URI"]
        if "postgresql" in db_uri:
            db.session.execute(
                db.text(
                    "CREATE SEQUENCE IF NOT EXISTS product_code_seq START WITH 1001"
                )
            )
            db.session.commit()

        click.echo("Database initialized.")

    @app.cli.command("seed-demo")
    def seed_demo():
        """Seed a demo category, tier rules and products (idempotent)."""
        from app.extensions import db
        from app.models import Category, Product, Subcategory, SubcategoryQuantityPrice
        from app.schemas import ProductCreate
        from app.services.product_service import create_product

        # Only seed if no products exist yet
        if Product.query.first():
            click.echo("Products already exist; skipping demo seed.")
            return

        category = Category.query.filter_by(name=DEMO_CATEGORY).first()
        if category is None:
            category = Category(name=DEMO_CATEGORY)
            db.session.add(category)
            db.session.flush()
        subcategory = Subcategory.query.filter_by(name=DEMO_SUBCATEGORY).first()
        if subcategory is None:
            subcategory = Subcategory(category_id=category.id, name=DEMO_SUBCATEGORY)
            db.session.add(subcategory)
            db.session.flush()
        for quantity, price_type, value in DEMO_TIERS:
            exists = SubcategoryQuantityPrice.query.filter_by(
                subcategory_id=subcategory.id, quantity=quantity
            ).first()
            if not exists:
                db.session.add(
                    SubcategoryQuantityPrice(
                        subcategory_id=subcategory.id,
                        quantity=quantity,
                        price_type=price_type,
                        value=value,
                    )
                )
        db.session.commit()

        variants = 0
        for data in DEMO_PRODUCTS:
            payload = ProductCreate.model_validate(
                {**data, "category_id": category.id, "subcategory_id": subcategory.id}
            )
            product, result = create_product(payload)
            variants += len(result.variants)
            click.echo(f"  {product.code}: {product.name}")
        click.echo(
            f"Seeded {len(DEMO_PRODUCTS)} demo products ({variants} variants) "
            f"and {len(DEMO_TIERS)} tier rules."
        )

    @app.cli.command("quote")
    @click.argument("product_code")
    @click.argument("quantity", type=int)
    @click.option("--wholesale", is_flag=True, help="Use wholesale price ladder")
    def quote(product_code, quantity, wholesale):
        """Show the tier price for QUANTITY units of a product."""
        from app.errors import ServiceError
        from app.models.product import Product
        from app.services.pricing_service import TierPricingResolver

        product = Product.get_by_id_or_code(product_code)
        try:
            result = TierPricingResolver().resolve(product, quantity, is_wholesale=wholesale)
        except ServiceError as e:
            raise click.ClickException(e.message)

        click.echo(f"{product.code}: {product.name} x{quantity}")
        click.echo(f"  Unit price:     {result.unit_price}")
        click.echo(f"  Original total: {result.original_price}")
        click.echo(f"  Final total:    {result.final_price}")
        click.echo(f"  Savings:        {result.total_savings}")
        click.echo(f"  Per item:       {result.price_per_item}")
        click.echo(f"  {result.message}")

    @app.cli.command("stats")
    def stats():
        """Show product statistics."""
        from app.services.product_service import get_stats

        s = get_stats()
        total = sum(s.values())
        click.echo(f"Total products: {total}")
        for status, count in sorted(s.items()):
            click.echo(f"  {status}: {count}")
