from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from marketplace.api.deps import get_db, get_settings
from marketplace.api.schemas import ArtisanApplication, LoginPayload, RegisterPayload, TokenRead, UserRead
from marketplace.core.config import Settings
from marketplace.services.users import UserDirectory

router = APIRouter()  # main.py mounts at /auth

@router.post('/register', response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, db: Session = Depends(get_db)):
    return UserDirectory(db).register(str(payload.email), payload.name, payload.password)

@router.post('/artisan-applications', response_model=UserRead, status_code=status.HTTP_201_CREATED)
def apply_artisan(payload: ArtisanApplication, db: Session = Depends(get_db)):
    data = payload.model_dump()
    data['email'] = str(payload.email)
    return UserDirectory(db).apply_artisan(**data)

@router.post('/login', response_model=TokenRead)
def login(payload: LoginPayload, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    return {'access_token': UserDirectory(db, settings).authenticate(str(payload.email), payload.password)}
