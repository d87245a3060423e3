from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from omnipos.core.errors import is_foreign_key_violation
from omnipos.core.logging_config import get_logger
from omnipos.domain.models import Product
from .schemas import ProductCreate

logger = get_logger(__name__)

class ProductService:
    def __init__(self, db: Session):
        self.db = db

    def list(self):
        return (
            self.db.query(Product)
            .filter(Product.is_active.is_(True))
            .order_by(Product.id.desc())
            .all()
        )

    def get(self, product_id: int) -> Optional[Product]:
        return self.db.get(Product, product_id)

    def create(self, data: ProductCreate):
        obj = Product(**data.model_dump())
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def update(self, product_id: int, data: ProductCreate) -> Optional[Product]:
        """Full replacement of the editable fields, stock included (manual stock edit)."""
        product = self.get(product_id)
        if not product:
            return None
        for field, value in data.model_dump().items():
            setattr(product, field, value)
        product.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(product)
        return product

    def delete(self, product_id: int) -> Optional[str]:
        """Delete a product, archiving it instead when sales history references it.

        Returns ``"deleted"`` or ``"archived"``, or ``None`` when the product
        does not exist.
        """
        product = self.get(product_id)
        if not product:
            return None
        try:
            self.db.delete(product)
            self.db.commit()
            return "deleted"
        except IntegrityError as exc:
            self.db.rollback()
            if not is_foreign_key_violation(exc):
                raise

        product = self.get(product_id)
        product.is_active = False
        self.db.commit()
        logger.info(
            f"Product {product_id} has sales history, archived instead of deleted",
            extra={'extra_fields': {'product_id': product_id}}
        )
        return "archived"
