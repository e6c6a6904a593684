from __future__ import annotations

from ..extensions import db
from ..ids import generate_id, SALE_PREFIX
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    Committed sale header.

    WHY: A sale is written once by the sale coordinator together with its
    items and the stock decrements they caused. Admin edits replace the item
    set; deleting a sale never touches stock.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_submission_date", "submission_date"),
        db.Index("ix_sales_user_submission", "user_id", "submission_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(255), nullable=False, unique=True, index=True, default=lambda: generate_id(SALE_PREFIX))

    # Submitting user (kept NULL if the account is removed later)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(100), nullable=False)
    notes = db.Column(db.Text, nullable=False, default="")

    submission_date = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        order_by="SaleItem.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.uuid,
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "notes": self.notes or "",
            "submission_date": to_utc_z(self.submission_date),
            "submitted_by_username": self.user.username if self.user else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    One line of a sale.

    DENORMALIZED: title/code/image/size/unit price are frozen at sale time so
    later catalog edits never rewrite history. product_id is kept for
    referential integrity only and is nulled if the product is removed;
    product_uuid is the identifier clients see.

    Manual items have is_manual=True and no product linkage.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.Index("ix_sale_items_product_uuid", "product_uuid"),
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        db.CheckConstraint("discount_cents >= 0", name="ck_sale_items_discount_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)

    is_manual = db.Column(db.Boolean, nullable=False, default=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    product_uuid = db.Column(db.String(255), nullable=True)

    # Snapshot
    title = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(100), nullable=False, default="")
    image = db.Column(db.Text, nullable=True)
    full_size_image = db.Column(db.Text, nullable=True)
    selected_size = db.Column(db.String(100), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    final_price_cents = db.Column(db.Integer, nullable=False)  # unit_price_cents * quantity - discount_cents

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "is_manual": self.is_manual,
            "product_id": self.product_uuid,
            "title": self.title,
            "code": self.code,
            "image": self.image or "",
            "full_size_image": self.full_size_image or "",
            "selected_size": self.selected_size,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "final_price_cents": self.final_price_cents,
        }
