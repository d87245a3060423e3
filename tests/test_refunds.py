from decimal import Decimal

import pytest
from sqlalchemy import select

from omnipos.application.order_service import OrderService
from omnipos.application.stock import StockAdjuster
from omnipos.application.schemas import RefundRequest
from omnipos.core.errors import CommitIntegrityError, OrderNotFoundError, RefundRejectedError
from omnipos.domain.models import Customer, Order, OrderItem, Product


@pytest.fixture
def refund(session_factory, settings):
    def _refund(order_id, payload):
        with session_factory() as s:
            return OrderService(s, settings).refund(order_id, RefundRequest(**payload))
    return _refund


@pytest.fixture
def second_product(seed):
    return seed(Product(name="Tomato Paste", price=Decimal("4.00"), stock=Decimal("20")))


@pytest.fixture
def sale(place, product, second_product, customer):
    return place({
        "customer_id": customer.id,
        "items": [
            {"product_id": product.id, "quantity": 3, "unit_price": "5.00"},
            {"product_id": second_product.id, "quantity": 2, "unit_price": "4.00"},
        ],
        "points_earned": 2,
    })


def returned(session_factory, order_id):
    with session_factory() as s:
        rows = s.execute(
            select(OrderItem.product_id, OrderItem.returned_quantity)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.id)
        ).all()
    return [tuple(r) for r in rows]


def test_full_refund_restores_all_stock(refund, fetch, session_factory, sale, product, second_product, customer):
    assert sale.total_amount == Decimal("23.00")

    refunded = refund(sale.id, {"type": "full"})

    assert refunded.status == "refunded"
    assert fetch(Product, product.id).stock == Decimal("10")
    assert fetch(Product, second_product.id).stock == Decimal("20")
    assert returned(session_factory, sale.id) == [(product.id, 3), (second_product.id, 2)]
    # Loyalty is not reversed
    assert fetch(Customer, customer.id).loyalty_points == 22


def test_refunded_order_cannot_be_refunded_again(refund, fetch, sale, product):
    refund(sale.id, {"type": "full"})

    with pytest.raises(RefundRejectedError):
        refund(sale.id, {"type": "full"})
    assert fetch(Product, product.id).stock == Decimal("10")


def test_partial_refund_reduces_total(refund, fetch, session_factory, sale, product):
    refunded = refund(sale.id, {"type": "partial", "items": [{"product_id": product.id, "quantity": 1}]})

    assert refunded.status == "completed"
    assert refunded.total_amount == Decimal("18.00")
    assert fetch(Product, product.id).stock == Decimal("8")
    assert returned(session_factory, sale.id)[0] == (product.id, 1)


def test_partial_refunds_that_return_everything_close_the_order(refund, fetch, sale, product, second_product):
    refund(sale.id, {"type": "partial", "items": [{"product_id": product.id, "quantity": 1}]})
    refunded = refund(sale.id, {"type": "partial", "items": [
        {"product_id": product.id, "quantity": 2},
        {"product_id": second_product.id, "quantity": 2},
    ]})

    assert refunded.status == "refunded"
    assert refunded.total_amount == Decimal("0.00")
    assert fetch(Product, product.id).stock == Decimal("10")
    assert fetch(Product, second_product.id).stock == Decimal("20")


def test_partial_refund_spreads_over_repeated_lines(place, refund, session_factory, fetch, product):
    order = place({"items": [
        {"product_id": product.id, "quantity": 1, "unit_price": "5.00"},
        {"product_id": product.id, "quantity": 2, "unit_price": "4.50"},
    ]})

    refunded = refund(order.id, {"type": "partial", "items": [{"product_id": product.id, "quantity": 2}]})

    assert returned(session_factory, order.id) == [(product.id, 1), (product.id, 1)]
    assert refunded.total_amount == Decimal("4.50")
    assert fetch(Product, product.id).stock == Decimal("9")


def test_partial_refund_beyond_outstanding_changes_nothing(refund, fetch, session_factory, sale, product, second_product):
    with pytest.raises(RefundRejectedError):
        refund(sale.id, {"type": "partial", "items": [{"product_id": product.id, "quantity": 4}]})

    assert fetch(Product, product.id).stock == Decimal("7")
    assert returned(session_factory, sale.id) == [(product.id, 0), (second_product.id, 0)]


def test_partial_refund_of_product_not_in_order(refund, sale, seed):
    stranger = seed(Product(name="Matches", price=Decimal("0.50"), stock=Decimal("100")))
    with pytest.raises(RefundRejectedError):
        refund(sale.id, {"type": "partial", "items": [{"product_id": stranger.id, "quantity": 1}]})


def test_partial_refund_needs_items(refund, sale):
    with pytest.raises(RefundRejectedError):
        refund(sale.id, {"type": "partial", "items": []})


def test_refund_unknown_order(refund):
    with pytest.raises(OrderNotFoundError):
        refund(31337, {"type": "full"})


def test_unexpected_refund_failure_rolls_back_as_integrity_error(monkeypatch, refund, fetch, session_factory, sale, product, second_product):
    restocked = []
    increment = StockAdjuster.increment

    def flaky(self, product_id, quantity):
        if restocked:
            raise RuntimeError("stock ledger unavailable")
        restocked.append(product_id)
        increment(self, product_id, quantity)

    monkeypatch.setattr(StockAdjuster, "increment", flaky)

    with pytest.raises(CommitIntegrityError) as excinfo:
        refund(sale.id, {"type": "full"})

    assert excinfo.value.to_dict() == {
        "kind": "integrity", "message": "Refund could not be completed", "retryable": False,
    }
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert fetch(Order, sale.id).status == "completed"
    assert fetch(Product, product.id).stock == Decimal("7")
    assert fetch(Product, second_product.id).stock == Decimal("18")
    assert returned(session_factory, sale.id) == [(product.id, 0), (second_product.id, 0)]
