"""Concurrent order placement against a real PostgreSQL server.

SQLite serializes whole write transactions, so row-lock behaviour (foreign key
share locks, ``FOR NO KEY UPDATE``, ``lock_timeout``) is only observable here.
"""

import threading
from decimal import Decimal

import pgserver
import pytest
from sqlalchemy import text

from omnipos.core.errors import CommitContentionError, InsufficientStockError, OrderCommitError
from omnipos.domain.models import Base, Customer, Product
from omnipos.infrastructure.db import build_engine, build_session_factory

ROUNDS = 5


@pytest.fixture(scope="module")
def pg_engine(tmp_path_factory):
    server = pgserver.get_server(tmp_path_factory.mktemp("pgdata"), cleanup_mode="stop")
    engine = build_engine(server.get_uri())
    yield engine
    engine.dispose()
    server.cleanup()


@pytest.fixture
def session_factory(pg_engine):
    Base.metadata.drop_all(pg_engine)
    Base.metadata.create_all(pg_engine)
    return build_session_factory(pg_engine)


def run_together(*calls):
    """Start every call at the same moment and collect the commit failures."""
    start = threading.Barrier(len(calls))
    failures: list[OrderCommitError] = []

    def worker(call):
        start.wait()
        try:
            call()
        except OrderCommitError as exc:
            failures.append(exc)

    threads = [threading.Thread(target=worker, args=(call,)) for call in calls]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return failures


def sale(customer_id, product_id, quantity=1):
    return {
        "customer_id": customer_id,
        "items": [{"product_id": product_id, "quantity": quantity, "unit_price": "2.00"}],
        "points_earned": 1,
    }


def test_concurrent_orders_for_one_customer_on_one_product(place, fetch, seed, customer):
    shared = seed(Product(name="Sugar 500g", price=Decimal("2.00"), stock=Decimal("50")))

    for _ in range(ROUNDS):
        failures = run_together(
            lambda: place(sale(customer.id, shared.id, 3)),
            lambda: place(sale(customer.id, shared.id, 4)),
        )
        assert failures == []

    assert fetch(Product, shared.id).stock == Decimal("15")
    after = fetch(Customer, customer.id)
    assert after.total_purchases == 4 + 2 * ROUNDS
    assert after.loyalty_points == 20 + 2 * ROUNDS
    assert after.total_spend == Decimal("100.00") + Decimal("2.00") * 7 * ROUNDS


def test_concurrent_orders_for_one_customer_on_separate_products(place, fetch, seed, customer):
    salt, flour = seed(
        Product(name="Salt 1kg", price=Decimal("2.00"), stock=Decimal("20")),
        Product(name="Flour 2kg", price=Decimal("2.00"), stock=Decimal("20")),
    )

    for _ in range(ROUNDS):
        failures = run_together(
            lambda: place(sale(customer.id, salt.id)),
            lambda: place(sale(customer.id, flour.id)),
        )
        assert failures == []

    assert fetch(Product, salt.id).stock == Decimal("15")
    assert fetch(Product, flour.id).stock == Decimal("15")
    assert fetch(Customer, customer.id).total_purchases == 4 + 2 * ROUNDS


def test_concurrent_orders_cannot_both_pass_the_floor(place, fetch, seed):
    scarce = seed(Product(name="Cooking Gas Refill", price=Decimal("2.00"), stock=Decimal("10")))
    order = {"items": [{"product_id": scarce.id, "quantity": 7, "unit_price": "2.00"}]}

    failures = run_together(lambda: place(order), lambda: place(order))

    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientStockError)
    assert fetch(Product, scarce.id).stock == Decimal("3")


def test_blocked_row_lock_times_out_as_contention(place, fetch, session_factory, product):
    with session_factory() as holder:
        with holder.begin():
            holder.execute(text("SELECT id FROM products WHERE id = :id FOR UPDATE"), {"id": product.id})

            with pytest.raises(CommitContentionError) as excinfo:
                place(
                    {"items": [{"product_id": product.id, "quantity": 1, "unit_price": "5.00"}]},
                    LOCK_TIMEOUT_MS=200,
                )

    assert excinfo.value.retryable is True
    assert fetch(Product, product.id).stock == Decimal("10")
