from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

# --- Orders ---

class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)

class OrderCreate(BaseModel):
    customer_id: Optional[int] = None
    items: list[OrderItemCreate] = []
    payment_method: Optional[str] = None
    # Overrides the computed sum of the items when given
    total_amount: Optional[Decimal] = Field(default=None, ge=0)
    points_redeemed: int = Field(default=0, ge=0)
    points_earned: int = Field(default=0, ge=0)

class OrderRead(BaseModel):
    id: int
    customer_id: Optional[int] = None
    total_amount: Decimal
    payment_method: str
    status: str
    items: list[dict[str, Any]]
    created_at: datetime

    class Config:
        from_attributes = True

class OrderSummary(OrderRead):
    customer_name: Optional[str] = None

class OrderLineRead(BaseModel):
    product_id: int
    name: str
    quantity: int
    price: Decimal
    returned_quantity: int

class RefundItem(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)

class RefundRequest(BaseModel):
    type: Literal["full", "partial"]
    items: list[RefundItem] = []

# --- Products ---

class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    sku: Optional[str] = None
    barcode: Optional[str] = None
    category: Optional[str] = None
    type: str = "Stock"
    price: Decimal = Field(default=Decimal("0"), ge=0)
    cost_price: Decimal = Field(default=Decimal("0"), ge=0)
    stock: Decimal = Decimal("0")
    reorder_level: Decimal = Decimal("0")
    is_active: bool = True

class ProductRead(BaseModel):
    id: int
    name: str
    sku: Optional[str] = None
    barcode: Optional[str] = None
    category: Optional[str] = None
    type: str
    price: Decimal
    cost_price: Decimal
    stock: Decimal
    reorder_level: Decimal
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True

# --- Customers ---

class CustomerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    phone: Optional[str] = None
    email: Optional[str] = None
    type: str = "Walk-in"
    loyalty_joined: bool = False
    loyalty_points: int = Field(default=0, ge=0)
    total_spend: Decimal = Decimal("0")

class CustomerUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    type: Optional[str] = None
    loyalty_joined: Optional[bool] = None
    loyalty_points: Optional[int] = Field(default=None, ge=0)
    total_spend: Optional[Decimal] = None
    total_purchases: Optional[int] = None

class CustomerRead(BaseModel):
    id: int
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    type: str
    loyalty_joined: bool
    loyalty_points: int
    total_spend: Decimal
    total_purchases: int
    last_visit: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
