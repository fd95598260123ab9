from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from marketplace.core.auth import Caller, resolve_caller
from marketplace.core.config import Settings

security = HTTPBearer(auto_error=False)

def get_db(request: Request):
    db = request.app.state.session_factory()
    try: yield db
    finally: db.close()

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_caller(creds: HTTPAuthorizationCredentials = Depends(security), db: Session = Depends(get_db),
               settings: Settings = Depends(get_settings)) -> Caller:
    return resolve_caller(creds.credentials if creds else None, db, settings)
