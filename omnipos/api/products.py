from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from omnipos.infrastructure.db import get_db
from omnipos.application.product_service import ProductService
from omnipos.application.schemas import ProductCreate, ProductRead

router = APIRouter(prefix="/api/products", tags=["products"])

@router.get("/", response_model=list[ProductRead])
def list_products(db: Session = Depends(get_db)):
    """Active products, newest first. Archived products are hidden."""
    return ProductService(db).list()

@router.get("/{product_id}", response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = ProductService(db).get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product

@router.post("/", response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    return ProductService(db).create(payload)

@router.put("/{product_id}", response_model=ProductRead)
def update_product(product_id: int, payload: ProductCreate, db: Session = Depends(get_db)):
    product = ProductService(db).update(product_id, payload)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product

@router.delete("/{product_id}")
def delete_product(product_id: int, db: Session = Depends(get_db)):
    outcome = ProductService(db).delete(product_id)
    if outcome is None:
        raise HTTPException(status_code=404, detail="Product not found")
    if outcome == "archived":
        return {"success": True, "message": "Product archived (sales history preserved)"}
    return {"success": True, "message": "Product deleted permanently"}
