"""Shared fixtures: a throwaway SQLite ledger per test with foreign keys enforced."""

import os
import tempfile

# Settings are cached on first import; point the service at a scratch store first
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.mkdtemp(prefix='omnipos-tests-')}/service.db")
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from omnipos.application.order_service import OrderService
from omnipos.application.schemas import OrderCreate
from omnipos.core_settings import Settings
from omnipos.domain.models import Base, Customer, Product
from omnipos.infrastructure.db import build_engine, build_session_factory, get_db


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        STOCK_FLOOR=Decimal("0"),
        ALLOW_OVERSELL=False,
        REJECT_OVER_REDEMPTION=False,
    )


@pytest.fixture
def seed(session_factory):
    """Commit rows in their own session and return them with ids assigned."""
    def _seed(*objs):
        with session_factory() as s:
            s.add_all(objs)
            s.commit()
        return objs[0] if len(objs) == 1 else objs
    return _seed


@pytest.fixture
def fetch(session_factory):
    """Read a row back through a fresh session."""
    def _fetch(model, pk):
        with session_factory() as s:
            return s.get(model, pk)
    return _fetch


@pytest.fixture
def place(session_factory, settings):
    """Place an order on a fresh session, optionally overriding policy settings."""
    def _place(payload: dict, **overrides):
        cfg = settings.model_copy(update=overrides) if overrides else settings
        with session_factory() as s:
            return OrderService(s, cfg).place_order(OrderCreate(**payload))
    return _place


@pytest.fixture
def product(seed):
    return seed(Product(name="Basmati Rice 1kg", sku="RICE-1", price=Decimal("5.00"), stock=Decimal("10")))


@pytest.fixture
def customer(seed):
    return seed(Customer(name="Ama Mensah", loyalty_points=20, total_spend=Decimal("100.00"), total_purchases=4))


@pytest.fixture
def client(session_factory):
    from omnipos.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
