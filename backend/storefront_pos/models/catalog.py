from __future__ import annotations

from ..extensions import db
from ..ids import generate_id, PRODUCT_PREFIX, CATEGORY_PREFIX, MANUFACTURER_PREFIX
from ..time_utils import to_utc_z


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(255), nullable=False, unique=True, index=True, default=lambda: generate_id(CATEGORY_PREFIX))
    name = db.Column(db.String(255), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.uuid, "name": self.name}


class Manufacturer(db.Model):
    __tablename__ = "manufacturers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(255), nullable=False, unique=True, index=True, default=lambda: generate_id(MANUFACTURER_PREFIX))
    name = db.Column(db.String(255), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.uuid, "name": self.name}


class Product(db.Model):
    """
    Sellable catalog item.

    EXTERNAL ID: Product.uuid is what clients send and what sale items
    snapshot. The integer id never leaves the backend.

    STOCK: Stock lives on ProductSize rows, one per size label. A product with
    no size rows is untracked and never blocks a sale. Only
    services/stock_service.py writes ProductSize.stock.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_title", "title"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(255), nullable=False, unique=True, index=True, default=lambda: generate_id(PRODUCT_PREFIX))

    title = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(100), nullable=False, unique=True, index=True)
    price_cents = db.Column(db.Integer, nullable=False)

    image = db.Column(db.Text, nullable=True)
    full_size_image = db.Column(db.Text, nullable=True)

    # SET NULL keeps the product when a category/manufacturer row is removed
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    manufacturer_id = db.Column(db.Integer, db.ForeignKey("manufacturers.id", ondelete="SET NULL"), nullable=True, index=True)

    is_visible = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    manufacturer = db.relationship("Manufacturer", backref=db.backref("products", lazy=True))
    sizes = db.relationship(
        "ProductSize",
        back_populates="product",
        order_by="ProductSize.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} uuid={self.uuid!r} code={self.code!r}>"

    @property
    def total_stock(self) -> int:
        return sum(s.stock for s in self.sizes)

    def to_dict(self) -> dict:
        return {
            "id": self.uuid,
            "title": self.title,
            "code": self.code,
            "price_cents": self.price_cents,
            "image": self.image or "",
            "full_size_image": self.full_size_image or "",
            "category_id": self.category.uuid if self.category else None,
            "category_name": self.category.name if self.category else "N/A",
            "manufacturer_id": self.manufacturer.uuid if self.manufacturer else None,
            "manufacturer_name": self.manufacturer.name if self.manufacturer else "N/A",
            "sizes": [s.to_dict() for s in self.sizes],
            "total_stock": self.total_stock,
            "is_visible": self.is_visible,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductSize(db.Model):
    """Per-size stock counter. stock >= 0 is enforced by the database as well."""
    __tablename__ = "product_sizes"
    __table_args__ = (
        db.UniqueConstraint("product_id", "size_name", name="uq_product_size"),
        db.CheckConstraint("stock >= 0", name="ck_product_sizes_stock_nonnegative"),
        db.Index("ix_product_sizes_size_name", "size_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    size_name = db.Column(db.String(100), nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product", back_populates="sizes")

    def to_dict(self) -> dict:
        return {"size": self.size_name, "stock": self.stock}
