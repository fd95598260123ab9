from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from marketplace.api.deps import get_caller, get_db
from marketplace.api.schemas import Message, RoleUpdate, UserRead
from marketplace.core.auth import Caller
from marketplace.services.users import UserDirectory

router = APIRouter()

@router.get('/v1/users', response_model=List[UserRead])
def list_users(caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return UserDirectory(db).list_users(caller)

@router.get('/v1/users/{user_id}', response_model=UserRead)
def get_user(user_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return UserDirectory(db).get_user(caller, user_id)

@router.patch('/v1/users/{user_id}', response_model=UserRead)
def set_role(user_id: int, payload: RoleUpdate, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return UserDirectory(db).set_role(caller, user_id, payload.role)

@router.delete('/v1/users/{user_id}', response_model=Message)
def delete_user(user_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    UserDirectory(db).delete_user(caller, user_id)
    return {'message': 'User deleted successfully'}
