from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from marketplace.api.deps import get_caller, get_db
from marketplace.api.schemas import Message, OrderRead, PlaceOrder, StatusUpdate
from marketplace.core.auth import Caller
from marketplace.services.orders import CartLine, OrderLifecycleService, OrderPlacementService

router = APIRouter()

@router.post('/v1/orders', response_model=OrderRead, status_code=201)
def place_order(payload: PlaceOrder, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    cart = [CartLine(it.product_id, it.quantity) for it in payload.items]
    return OrderPlacementService(db).place(caller, cart)

@router.get('/v1/orders', response_model=List[OrderRead])
def my_orders(caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return OrderLifecycleService(db).list_for(caller)

@router.get('/v1/orders/all', response_model=List[OrderRead])
def all_orders(caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return OrderLifecycleService(db).list_all(caller)

@router.get('/v1/orders/{order_id}', response_model=OrderRead)
def get_order(order_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return OrderLifecycleService(db).get(caller, order_id)

@router.patch('/v1/orders/{order_id}', response_model=OrderRead)
def update_status(order_id: int, payload: StatusUpdate, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return OrderLifecycleService(db).set_status(caller, order_id, payload.status)

@router.delete('/v1/orders/{order_id}', response_model=Message)
def delete_order(order_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    OrderLifecycleService(db).delete(caller, order_id)
    return {'message': 'Order deleted'}
