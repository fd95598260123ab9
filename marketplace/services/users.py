import logging
from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from marketplace.core.auth import Caller, require_role
from marketplace.core.config import Settings
from marketplace.core.errors import Conflict, InvalidRequest, InvalidState, NotFound, Unauthenticated
from marketplace.db.models import Order, Product, Role, User
from marketplace.security.utils import create_access_token, hash_password, verify_password

log = logging.getLogger(__name__)

ASSIGNABLE_ROLES = (Role.USER, Role.ARTISAN, Role.ADMIN)


class UserDirectory:
    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings

    def _email_taken(self, email: str) -> bool:
        return self.db.query(User).filter(User.email == email).first() is not None

    def _create(self, email: str, name: str, password: str, role: Role, **profile) -> User:
        if self._email_taken(email):
            raise Conflict("User with this email already exists")
        user = User(email=email, name=name, password_hash=hash_password(password), role=role, **profile)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # a concurrent signup claimed the address after the check above
            self.db.rollback()
            raise Conflict("User with this email already exists")
        self.db.refresh(user)
        log.info("user %s registered with role %s", user.id, role.value)
        return user

    def register(self, email: str, name: str, password: str) -> User:
        return self._create(email, name, password, Role.USER)

    def apply_artisan(self, email: str, name: str, password: str, phone: Optional[str] = None,
                      business_name: Optional[str] = None, bio: Optional[str] = None,
                      location: Optional[str] = None) -> User:
        """Sign up as an artisan; an admin must promote the account to ARTISAN before it can sell."""
        return self._create(
            email, name, password, Role.ARTISAN_PENDING,
            phone=phone, business_name=business_name, bio=bio, location=location,
        )

    def authenticate(self, email: str, password: str) -> str:
        user = self.db.query(User).filter(User.email == email).first()
        if not user or not verify_password(password, user.password_hash):
            raise Unauthenticated("Invalid credentials")
        token, _ = create_access_token(user.id, user.role.value, self.settings)
        return token

    def list_users(self, caller: Caller) -> List[User]:
        require_role(caller, Role.ADMIN)
        return list(self.db.execute(select(User).order_by(User.id)).scalars().all())

    def get_user(self, caller: Caller, user_id: int) -> User:
        require_role(caller, Role.ADMIN)
        user = self.db.get(User, user_id)
        if not user:
            raise NotFound(f"User {user_id} not found")
        return user

    def set_role(self, caller: Caller, user_id: int, role: str) -> User:
        require_role(caller, Role.ADMIN)
        value = (role or "").upper()
        if value not in {r.value for r in ASSIGNABLE_ROLES}:
            allowed = ", ".join(r.value for r in ASSIGNABLE_ROLES)
            raise InvalidRequest(f"Invalid role. Must be one of: {allowed}")
        user = self.get_user(caller, user_id)
        user.role = Role(value)
        self.db.commit(); self.db.refresh(user)
        log.info("user %s role set to %s by user %s", user_id, value, caller.user_id)
        return user

    def delete_user(self, caller: Caller, user_id: int) -> None:
        require_role(caller, Role.ADMIN)
        user = self.get_user(caller, user_id)
        if user.id == caller.user_id:
            raise InvalidState("Cannot delete your own account")
        for column, label in ((Product.owner_id, "products"), (Order.user_id, "orders")):
            owned = self.db.execute(select(func.count()).where(column == user_id)).scalar_one()
            if owned:
                raise InvalidState(f"Cannot delete user with associated {label}")
        self.db.delete(user); self.db.commit()
        log.info("user %s deleted by user %s", user_id, caller.user_id)
