from typing import Optional

from sqlalchemy.orm import Session

from omnipos.domain.models import Customer
from .schemas import CustomerCreate, CustomerUpdate

class CustomerService:
    def __init__(self, db: Session):
        self.db = db

    def list(self):
        return self.db.query(Customer).order_by(Customer.name.asc()).all()

    def get(self, customer_id: int) -> Optional[Customer]:
        return self.db.get(Customer, customer_id)

    def create(self, data: CustomerCreate):
        obj = Customer(**data.model_dump(), total_purchases=0)
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def update(self, customer_id: int, data: CustomerUpdate) -> Optional[Customer]:
        customer = self.get(customer_id)
        if not customer:
            return None
        # Update only provided fields
        for field, value in data.model_dump(exclude_none=True).items():
            setattr(customer, field, value)
        self.db.commit()
        self.db.refresh(customer)
        return customer

    def delete(self, customer_id: int) -> bool:
        customer = self.get(customer_id)
        if not customer:
            return False
        self.db.delete(customer)
        self.db.commit()
        return True
