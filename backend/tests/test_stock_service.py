"""
Stock engine tests.

Verifies:
- Sell decrements, rejects overselling and never clamps
- Set-absolute upserts and clamps negatives
- Replace-all swaps the size list and is idempotent
- Payload parsing picks the right mode and rejects bad input
"""

import pytest

from storefront_pos.extensions import db
from storefront_pos.models import ProductSize
from storefront_pos.services import stock_service
from storefront_pos.services.stock_service import (
    InsufficientStockError,
    InvalidStockValueError,
    ProductNotFoundError,
    ReplaceAllAdjustment,
    SellAdjustment,
    SetAbsoluteAdjustment,
    parse_stock_adjustment,
)
from storefront_pos.validation import ValidationError


def stock_of(product, size_name):
    row = db.session.query(ProductSize).filter_by(product_id=product.id, size_name=size_name).populate_existing().first()
    return None if row is None else row.stock


# =============================================================================
# PAYLOAD PARSING
# =============================================================================


class TestParseStockAdjustment:

    def test_sizes_list_selects_replace_all(self):
        adj = parse_stock_adjustment({"sizes": [{"size": "S", "stock": 1}, {"size": "M", "stock": "3"}]})
        assert adj == ReplaceAllAdjustment(sizes=(("S", 1), ("M", 3)))

    def test_sell_action(self):
        adj = parse_stock_adjustment({"action": "sell", "size": "M", "quantity_sold": 2})
        assert adj == SellAdjustment(size="M", quantity=2)

    def test_set_absolute(self):
        adj = parse_stock_adjustment({"size": " M ", "new_stock": 7})
        assert adj == SetAbsoluteAdjustment(size="M", new_stock=7)

    def test_negative_values_are_clamped(self):
        assert parse_stock_adjustment({"size": "M", "new_stock": -4}).new_stock == 0
        adj = parse_stock_adjustment({"sizes": [{"size": "M", "stock": -1}]})
        assert adj.sizes == (("M", 0),)

    @pytest.mark.parametrize("value", [1.5, "abc", "2.0", True, None])
    def test_non_integer_stock_rejected(self, value):
        with pytest.raises(InvalidStockValueError):
            parse_stock_adjustment({"size": "M", "new_stock": value})

    def test_duplicate_size_labels_rejected(self):
        with pytest.raises(InvalidStockValueError):
            parse_stock_adjustment({"sizes": [{"size": "M", "stock": 1}, {"size": "M", "stock": 2}]})

    def test_blank_size_label_rejected(self):
        with pytest.raises(InvalidStockValueError):
            parse_stock_adjustment({"sizes": [{"size": "  ", "stock": 1}]})

    def test_sell_requires_positive_quantity(self):
        with pytest.raises(InvalidStockValueError):
            parse_stock_adjustment({"action": "sell", "size": "M", "quantity_sold": 0})

    def test_unrecognised_payload(self):
        with pytest.raises(ValidationError):
            parse_stock_adjustment({"foo": "bar"})
        with pytest.raises(ValidationError):
            parse_stock_adjustment(["not", "a", "dict"])


# =============================================================================
# SELL
# =============================================================================


class TestSell:

    def test_decrements_stock(self, shirt):
        remaining = stock_service.sell(shirt, "M", 2)
        db.session.commit()
        assert remaining == 3
        assert stock_of(shirt, "M") == 3

    def test_sell_exact_stock_reaches_zero(self, shirt):
        assert stock_service.sell(shirt, "M", 5) == 0
        db.session.commit()
        assert stock_of(shirt, "M") == 0

    def test_oversell_raises_and_never_clamps(self, shirt):
        with pytest.raises(InsufficientStockError) as exc_info:
            stock_service.sell(shirt, "M", 6)
        db.session.rollback()

        err = exc_info.value
        assert err.available == 5
        assert err.requested == 6
        assert err.size == "M"
        assert err.status_code == 409
        assert "Not enough stock for Shirt (Size: M). Available: 5, Requested: 6." == err.message
        assert stock_of(shirt, "M") == 5

    def test_unknown_size_on_sized_product(self, shirt):
        with pytest.raises(InvalidStockValueError):
            stock_service.sell(shirt, "XXL", 1)

    def test_product_without_sizes_is_untracked(self, gift_card):
        assert stock_service.sell(gift_card, "One Size", 50) is None
        assert db.session.query(ProductSize).filter_by(product_id=gift_card.id).count() == 0

    @pytest.mark.parametrize("quantity", [0, -1, 1.0, True])
    def test_rejects_bad_quantity(self, shirt, quantity):
        with pytest.raises(InvalidStockValueError):
            stock_service.sell(shirt, "M", quantity)


# =============================================================================
# SET ABSOLUTE / REPLACE ALL
# =============================================================================


class TestSetAbsolute:

    def test_updates_existing_size(self, shirt):
        stock_service.set_absolute(shirt, "M", 9)
        db.session.commit()
        assert stock_of(shirt, "M") == 9

    def test_inserts_missing_size(self, shirt):
        stock_service.set_absolute(shirt, "L", 4)
        db.session.commit()
        assert stock_of(shirt, "L") == 4
        assert shirt.total_stock == 9

    def test_negative_clamped_to_zero(self, shirt):
        stock_service.set_absolute(shirt, "M", -3)
        db.session.commit()
        assert stock_of(shirt, "M") == 0


class TestReplaceAll:

    def test_replaces_every_size(self, hat):
        stock_service.replace_all(hat, [("XS", 1), ("M", 7)])
        db.session.commit()

        assert sorted((s.size_name, s.stock) for s in hat.sizes) == [("M", 7), ("XS", 1)]
        assert stock_of(hat, "S") is None
        assert hat.total_stock == 8

    def test_idempotent(self, hat):
        sizes = [("S", 3), ("L", 1)]
        stock_service.replace_all(hat, sizes)
        db.session.commit()
        first = sorted((s.size_name, s.stock) for s in hat.sizes)

        stock_service.replace_all(hat, sizes)
        db.session.commit()
        second = sorted((s.size_name, s.stock) for s in hat.sizes)

        assert first == second == [("L", 1), ("S", 3)]

    def test_empty_list_makes_product_untracked(self, hat):
        stock_service.replace_all(hat, [])
        db.session.commit()
        assert hat.total_stock == 0
        assert stock_service.sell(hat, "S", 10) is None


# =============================================================================
# ADJUST STOCK (standalone unit of work)
# =============================================================================


class TestAdjustStock:

    def test_set_absolute_commits_and_returns_total(self, shirt):
        product = stock_service.adjust_stock(shirt.uuid, SetAbsoluteAdjustment(size="M", new_stock=11))
        assert product.uuid == shirt.uuid
        assert product.total_stock == 11

    def test_sell_rejects_oversell_without_writing(self, hat):
        with pytest.raises(InsufficientStockError):
            stock_service.adjust_stock(hat.uuid, SellAdjustment(size="S", quantity=3))
        assert stock_of(hat, "S") == 2

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFoundError) as exc_info:
            stock_service.adjust_stock("prod_missing", SetAbsoluteAdjustment(size="M", new_stock=1))
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Product with id prod_missing not found."

    def test_replace_all_roundtrip(self, shirt):
        product = stock_service.adjust_stock(
            shirt.uuid,
            ReplaceAllAdjustment(sizes=(("S", 2), ("M", 2), ("L", 2))),
            actor_user_id=None,
        )
        assert product.total_stock == 6
        assert [s["size"] for s in product.to_dict()["sizes"]] == ["S", "M", "L"]
