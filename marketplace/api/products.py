from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from sqlalchemy.orm import Session
from marketplace.api.deps import get_caller, get_db
from marketplace.api.schemas import Message, ProductCreate, ProductRead, ProductUpdate, Restock
from marketplace.core.auth import Caller
from marketplace.services.catalog import CatalogService

router = APIRouter()

@router.get('/', response_model=List[ProductRead])
def list_products(db: Session = Depends(get_db), q: Optional[str] = None, category: Optional[str] = None, limit: int = Query(50, ge=1, le=200), offset: int = Query(0, ge=0)):
    return CatalogService(db).list(q=q, category=category, limit=limit, offset=offset)

@router.get('/{product_id}', response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return CatalogService(db).get(product_id)

@router.post('/', response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return CatalogService(db).create(caller, **payload.model_dump())

@router.patch('/{product_id}', response_model=ProductRead)
def update_product(product_id: int, payload: ProductUpdate, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return CatalogService(db).update(caller, product_id, **payload.model_dump(exclude_unset=True))

@router.post('/{product_id}/restock', response_model=ProductRead)
def restock_product(product_id: int, payload: Restock, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return CatalogService(db).restock(caller, product_id, payload.quantity)

@router.delete('/{product_id}', response_model=Message)
def delete_product(product_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    CatalogService(db).delete(caller, product_id)
    return {'message': 'Product deleted'}
