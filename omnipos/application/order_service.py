from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session

from omnipos.core.errors import (
    CONTENTION,
    INTEGRITY,
    CommitIntegrityError,
    OrderCommitError,
    OrderNotFoundError,
    RefundRejectedError,
    StoreUnavailableError,
    classify_db_error,
)
from omnipos.core.logging_config import get_logger
from omnipos.core_settings import Settings, get_settings
from omnipos.domain.models import Order, OrderItem, OrderStatus
from .loyalty import LoyaltyLedger
from .schemas import OrderCreate, OrderItemCreate, RefundRequest
from .stock import StockAdjuster, total_quantities

logger = get_logger(__name__)

CENTS = Decimal("0.01")
DEFAULT_PAYMENT_METHOD = "Cash"

def compute_order_total(items: Iterable[OrderItemCreate], explicit_total: Optional[Decimal] = None) -> Decimal:
    """Explicit total when given, else the sum of unit price x quantity, else zero."""
    if explicit_total is not None:
        total = Decimal(explicit_total)
    else:
        total = sum((Decimal(i.unit_price) * i.quantity for i in items), Decimal("0"))
    return total.quantize(CENTS, rounding=ROUND_HALF_UP)

def snapshot_items(items: Iterable[OrderItemCreate]) -> list[dict]:
    return [
        {
            "product_id": i.product_id,
            "quantity": i.quantity,
            "unit_price": str(i.unit_price),
        }
        for i in items
    ]

class OrderService:
    """Places and refunds orders.

    Every public operation runs as a single unit of work on the session it was
    given: the order row, its line items, the stock decrements and the loyalty
    accrual commit together or not at all. The session must not already be in
    a transaction. Failures are never retried here; resubmitting after a
    contention failure creates a new order.
    """

    def __init__(self, db: Optional[Session], settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def _stock(self) -> StockAdjuster:
        return StockAdjuster(self.db, self.settings.STOCK_FLOOR, self.settings.ALLOW_OVERSELL)

    def _require_store(self) -> None:
        if self.db is None:
            raise StoreUnavailableError("Ledger store connection is not configured")

    def _open_unit_of_work(self) -> None:
        """Acquire the connection for the current transaction and bound its lock waits."""
        try:
            connection = self.db.connection()
        except DBAPIError as exc:
            raise StoreUnavailableError("Ledger store is unreachable") from exc
        if connection.dialect.name == "postgresql" and self.settings.LOCK_TIMEOUT_MS > 0:
            connection.execute(text(f"SET LOCAL lock_timeout = {int(self.settings.LOCK_TIMEOUT_MS)}"))

    def _log_rollback(self, error: OrderCommitError, context: dict, cause: Optional[BaseException] = None) -> None:
        fields = {**context, "kind": error.kind, "reason": error.message}
        if error.kind == INTEGRITY:
            logger.error("Order rolled back", exc_info=cause or error, extra={'extra_fields': fields})
        elif error.kind == CONTENTION:
            logger.warning("Order rolled back on contention", extra={'extra_fields': fields})
        else:
            logger.info("Order rejected", extra={'extra_fields': fields})

    def place_order(self, data: OrderCreate) -> Order:
        self._require_store()
        total = compute_order_total(data.items, data.total_amount)
        context = {
            "customer_id": data.customer_id,
            "total_amount": total,
            "line_count": len(data.items),
            "units_by_product": total_quantities(data.items),
        }

        try:
            with self.db.begin():
                self._open_unit_of_work()
                order = Order(
                    customer_id=data.customer_id,
                    total_amount=total,
                    payment_method=data.payment_method or DEFAULT_PAYMENT_METHOD,
                    status=OrderStatus.COMPLETED,
                    items=snapshot_items(data.items),
                )
                self.db.add(order)
                self.db.flush()

                stock = self._stock()
                for item in data.items:
                    self.db.add(OrderItem(
                        order_id=order.id,
                        product_id=item.product_id,
                        quantity=item.quantity,
                        price=item.unit_price,
                        returned_quantity=0,
                    ))
                    self.db.flush()
                    stock.decrement(item.product_id, item.quantity)

                if data.customer_id is not None:
                    LoyaltyLedger(self.db, self.settings.REJECT_OVER_REDEMPTION).accrue(
                        data.customer_id,
                        data.points_redeemed,
                        data.points_earned,
                        total,
                    )
        except OrderCommitError as exc:
            self._log_rollback(exc, context)
            raise
        except SQLAlchemyError as exc:
            error = classify_db_error(exc)
            self._log_rollback(error, context, exc)
            raise error from exc
        except Exception as exc:
            error = CommitIntegrityError("Order could not be completed")
            self._log_rollback(error, context, exc)
            raise error from exc

        logger.info(
            f"Order {order.id} committed",
            extra={'extra_fields': {**context, "order_id": order.id}}
        )
        return order

    def refund(self, order_id: int, data: RefundRequest) -> Order:
        """Return items of a completed order to stock.

        A full refund returns every outstanding unit and marks the order
        ``refunded``. A partial refund returns the requested units, reduces the
        order total by their captured price and marks the order ``refunded``
        once nothing is outstanding. Loyalty balances are left as they are.
        """
        self._require_store()
        context = {"order_id": order_id, "type": data.type}

        try:
            with self.db.begin():
                self._open_unit_of_work()
                order = self.db.execute(
                    select(Order)
                    .where(Order.id == order_id)
                    .with_for_update(key_share=True)
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()
                if order is None:
                    raise OrderNotFoundError(order_id)
                if order.status != OrderStatus.COMPLETED:
                    raise RefundRejectedError(f"Order {order_id} is {order.status} and cannot be refunded")

                lines = self.db.execute(
                    select(OrderItem)
                    .where(OrderItem.order_id == order_id)
                    .order_by(OrderItem.id)
                    .with_for_update(key_share=True)
                    .execution_options(populate_existing=True)
                ).scalars().all()

                if data.type == "full":
                    self._refund_all(lines)
                    order.status = OrderStatus.REFUNDED
                else:
                    refunded = self._refund_partial(order_id, lines, data)
                    order.total_amount = max(Decimal("0"), order.total_amount - refunded).quantize(CENTS)
                    if all(line.outstanding_quantity == 0 for line in lines):
                        order.status = OrderStatus.REFUNDED
                self.db.flush()
        except OrderCommitError as exc:
            self._log_rollback(exc, context)
            raise
        except SQLAlchemyError as exc:
            error = classify_db_error(exc, "Refund could not be completed")
            self._log_rollback(error, context, exc)
            raise error from exc
        except Exception as exc:
            error = CommitIntegrityError("Refund could not be completed")
            self._log_rollback(error, context, exc)
            raise error from exc

        logger.info(
            f"Refund processed for order {order_id}",
            extra={'extra_fields': {**context, "status": order.status, "total_amount": order.total_amount}}
        )
        return order

    def _refund_all(self, lines: list[OrderItem]) -> None:
        stock = self._stock()
        for line in lines:
            outstanding = line.outstanding_quantity
            if outstanding > 0:
                stock.increment(line.product_id, outstanding)
                line.returned_quantity = line.quantity

    def _refund_partial(self, order_id: int, lines: list[OrderItem], data: RefundRequest) -> Decimal:
        if not data.items:
            raise RefundRejectedError("A partial refund needs at least one item")

        by_product: dict[int, list[OrderItem]] = defaultdict(list)
        for line in lines:
            by_product[line.product_id].append(line)

        stock = self._stock()
        refunded = Decimal("0")
        for product_id, quantity in total_quantities(data.items).items():
            candidates = by_product.get(product_id, [])
            outstanding = sum(line.outstanding_quantity for line in candidates)
            if quantity > outstanding:
                raise RefundRejectedError(
                    f"Order {order_id} has {outstanding} unit(s) of product {product_id} left to refund, {quantity} requested"
                )
            remaining = quantity
            # A product sold on several lines is returned against the earliest line first
            for line in candidates:
                take = min(remaining, line.outstanding_quantity)
                if take <= 0:
                    continue
                line.returned_quantity = (line.returned_quantity or 0) + take
                refunded += line.price * take
                remaining -= take
            stock.increment(product_id, quantity)
        return refunded
