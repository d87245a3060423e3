from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from omnipos.core.errors import InsufficientStockError, ReferencedEntityMissing
from omnipos.domain.models import MANAGED_PRODUCT_TYPE, Product

def total_quantities(items: Iterable) -> dict[int, int]:
    """Units requested per product, summing lines that repeat a product."""
    totals: dict[int, int] = defaultdict(int)
    for item in items:
        totals[item.product_id] += item.quantity
    return dict(totals)

class StockAdjuster:
    """Moves product stock inside the caller's transaction.

    Each adjustment is one ``UPDATE ... SET stock = stock - :q`` so the row lock
    taken by the database serializes concurrent sales of the same product.
    The adjuster never begins or commits a transaction itself.
    """

    def __init__(self, db: Session, floor: Decimal = Decimal("0"), allow_oversell: bool = False):
        self.db = db
        self.floor = floor
        self.allow_oversell = allow_oversell

    def decrement(self, product_id: int, quantity) -> None:
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock - quantity)
        )
        if not self.allow_oversell:
            # Unmanaged products (services, non-stock items) are never held to the floor
            stmt = stmt.where(or_(
                Product.type != MANAGED_PRODUCT_TYPE,
                Product.stock - quantity >= self.floor,
            ))
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount:
            return

        available = self.db.execute(
            select(Product.stock).where(Product.id == product_id)
        ).scalar_one_or_none()
        if available is None:
            raise ReferencedEntityMissing("product", product_id)
        raise InsufficientStockError(product_id, available, Decimal(quantity))

    def increment(self, product_id: int, quantity) -> None:
        result = self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            raise ReferencedEntityMissing("product", product_id)
