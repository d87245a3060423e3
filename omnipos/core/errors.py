"""
Order commit failure taxonomy.

Every failure raised out of the order commit path is an ``OrderCommitError``
tagged with one of four kinds:

- ``configuration``: the store is unreachable or not configured. Not retried.
- ``referential``: a product or customer the order names does not exist, or
  the order cannot be satisfied by current stock or points.
- ``contention``: lock wait timeout, deadlock or serialization conflict. The
  transaction was rolled back and the caller may resubmit the whole call.
- ``integrity``: anything else that broke mid-transaction.

In every case the unit of work has been rolled back before the error leaves
the coordinator.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

CONFIGURATION = "configuration"
REFERENTIAL = "referential"
CONTENTION = "contention"
INTEGRITY = "integrity"

# PostgreSQL SQLSTATE codes
PG_FOREIGN_KEY_VIOLATION = "23503"
PG_CONTENTION_CODES = {
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available (lock_timeout)
    "57014",  # query_canceled (statement_timeout)
}

class OrderCommitError(Exception):
    """Base class for failures surfaced by the order commit path."""

    kind: str = INTEGRITY
    retryable: bool = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }

class StoreUnavailableError(OrderCommitError):
    kind = CONFIGURATION

class ReferencedEntityMissing(OrderCommitError):
    kind = REFERENTIAL

    def __init__(self, entity: str, entity_id: Any = None, message: Optional[str] = None):
        if message is None:
            if entity_id is None:
                message = f"Referenced {entity} not found"
            else:
                message = f"Referenced {entity} {entity_id} not found"
        super().__init__(message, entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id

class InsufficientStockError(OrderCommitError):
    kind = REFERENTIAL

    def __init__(self, product_id: int, available: Decimal, requested: Decimal):
        super().__init__(
            f"Insufficient stock for product {product_id}: available {available}, requested {requested}",
            product_id=product_id,
            available=available,
            requested=requested,
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested

class OverRedemptionError(OrderCommitError):
    kind = REFERENTIAL

    def __init__(self, customer_id: int, balance: int, redeemed: int):
        super().__init__(
            f"Customer {customer_id} cannot redeem {redeemed} points with a balance of {balance}",
            customer_id=customer_id,
            balance=balance,
            redeemed=redeemed,
        )
        self.customer_id = customer_id
        self.balance = balance
        self.redeemed = redeemed

class CommitContentionError(OrderCommitError):
    kind = CONTENTION
    retryable = True

class CommitIntegrityError(OrderCommitError):
    kind = INTEGRITY

class OrderNotFoundError(OrderCommitError):
    kind = REFERENTIAL

    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found", order_id=order_id)
        self.order_id = order_id

class RefundRejectedError(OrderCommitError):
    kind = REFERENTIAL

def _pgcode(exc: SQLAlchemyError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(getattr(orig, "diag", None), "sqlstate", None)

def is_foreign_key_violation(exc: SQLAlchemyError) -> bool:
    if not isinstance(exc, IntegrityError):
        return False
    if _pgcode(exc) == PG_FOREIGN_KEY_VIOLATION:
        return True
    return "foreign key" in str(getattr(exc, "orig", exc)).lower()

def is_contention(exc: SQLAlchemyError) -> bool:
    if _pgcode(exc) in PG_CONTENTION_CODES:
        return True
    msg = str(getattr(exc, "orig", exc)).lower()
    return any(k in msg for k in (
        "deadlock detected",
        "could not serialize access",
        "lock timeout",
        "database is locked",
    ))

def classify_db_error(exc: SQLAlchemyError, message: str = "Order could not be completed") -> OrderCommitError:
    """Map a SQLAlchemy failure raised inside a unit of work onto the taxonomy."""
    if is_foreign_key_violation(exc):
        return ReferencedEntityMissing("product or customer")
    if is_contention(exc):
        return CommitContentionError("Order commit aborted by a conflicting transaction; resubmit to retry")
    if isinstance(exc, DBAPIError) and getattr(exc, "connection_invalidated", False):
        return CommitIntegrityError(f"{message}: connection to the store was lost")
    return CommitIntegrityError(message)
