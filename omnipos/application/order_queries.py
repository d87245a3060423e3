from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from omnipos.core.errors import OrderNotFoundError
from omnipos.domain.models import Customer, Order, OrderItem, Product
from .schemas import OrderLineRead, OrderRead, OrderSummary

class OrderQueryService:
    """Read-only access to order history."""

    def __init__(self, db: Session):
        self.db = db

    def list_orders(self) -> list[OrderSummary]:
        rows = self.db.execute(
            select(Order, Customer.name)
            .outerjoin(Customer, Order.customer_id == Customer.id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        ).all()
        return [
            OrderSummary(**OrderRead.model_validate(order).model_dump(), customer_name=name)
            for order, name in rows
        ]

    def get_order(self, order_id: int) -> Optional[Order]:
        return self.db.get(Order, order_id)

    def get_line_items(self, order_id: int) -> list[OrderLineRead]:
        if self.db.get(Order, order_id) is None:
            raise OrderNotFoundError(order_id)
        rows = self.db.execute(
            select(
                OrderItem.product_id,
                Product.name,
                OrderItem.quantity,
                OrderItem.price,
                OrderItem.returned_quantity,
            )
            .join(Product, OrderItem.product_id == Product.id)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.id)
        ).all()
        return [OrderLineRead(**row._mapping) for row in rows]
