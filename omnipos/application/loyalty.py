from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from omnipos.core.errors import OverRedemptionError, ReferencedEntityMissing
from omnipos.domain.models import Customer

def accrue_points(balance: int, redeemed: int, earned: int) -> int:
    """New point balance after a sale; over-redemption bottoms out at zero."""
    return max(0, balance - redeemed + earned)

@dataclass(frozen=True)
class LoyaltyAccrual:
    loyalty_points: int
    total_spend: Decimal
    total_purchases: int

def compute_accrual(customer: Customer, redeemed: int, earned: int, order_total: Decimal) -> LoyaltyAccrual:
    return LoyaltyAccrual(
        loyalty_points=accrue_points(customer.loyalty_points or 0, redeemed, earned),
        total_spend=(customer.total_spend or Decimal("0")) + order_total,
        total_purchases=(customer.total_purchases or 0) + 1,
    )

def lock_customer(customer_id: int) -> Select:
    return (
        select(Customer)
        .where(Customer.id == customer_id)
        .with_for_update(key_share=True)
        .execution_options(populate_existing=True)
    )

class LoyaltyLedger:
    """Applies a sale to a customer's points and lifetime statistics.

    Runs inside the caller's transaction. The customer row is read with
    ``FOR NO KEY UPDATE``, which is held until the caller commits or rolls back
    and does not conflict with the ``FOR KEY SHARE`` lock an order insert for
    the same customer takes through its foreign key.
    """

    def __init__(self, db: Session, reject_over_redemption: bool = False):
        self.db = db
        self.reject_over_redemption = reject_over_redemption

    def accrue(self, customer_id: int, redeemed: int, earned: int, order_total: Decimal) -> Customer:
        customer = self.db.execute(lock_customer(customer_id)).scalar_one_or_none()
        if customer is None:
            raise ReferencedEntityMissing("customer", customer_id)

        balance = customer.loyalty_points or 0
        if self.reject_over_redemption and redeemed > balance:
            raise OverRedemptionError(customer_id, balance, redeemed)

        accrual = compute_accrual(customer, redeemed, earned, order_total)
        customer.loyalty_points = accrual.loyalty_points
        customer.total_spend = accrual.total_spend
        customer.total_purchases = accrual.total_purchases
        customer.last_visit = datetime.utcnow()
        self.db.flush()
        return customer
