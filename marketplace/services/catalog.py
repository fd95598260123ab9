import logging
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.orm import Session
from marketplace.core.auth import Caller, require_role
from marketplace.core.errors import InvalidRequest, InvalidState, NotFound, Unauthorized
from marketplace.db.models import OrderItem, Product, Role, User
from marketplace.services.inventory import adjust_stock, lock_products

log = logging.getLogger(__name__)

SELLERS = (Role.ADMIN, Role.ARTISAN)


class CatalogService:
    def __init__(self, db: Session):
        self.db = db

    def list(self, q: Optional[str] = None, category: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[Product]:
        stmt = select(Product)
        if q:
            stmt = stmt.where(Product.name.ilike(f"%{q.lower()}%"))
        if category:
            stmt = stmt.where(Product.category == category)
        stmt = stmt.order_by(Product.created_at.desc(), Product.id.desc()).offset(offset).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def get(self, product_id: int) -> Product:
        obj = self.db.get(Product, product_id)
        if not obj:
            raise NotFound(f"Product {product_id} not found")
        return obj

    def _check_owner(self, caller: Caller, product: Product):
        require_role(caller, *SELLERS)
        if not caller.is_admin and product.owner_id != caller.user_id:
            raise Unauthorized("Artisans may only manage their own products")

    def create(self, caller: Caller, name: str, price: Decimal, stock: int = 0, description: str = "",
               category: str = "", owner_id: Optional[int] = None) -> Product:
        require_role(caller, *SELLERS)
        if price < 0:
            raise InvalidRequest("Price must not be negative")
        if stock < 0:
            raise InvalidRequest("Stock must not be negative")
        if not caller.is_admin or owner_id is None:
            owner_id = caller.user_id
        elif not self.db.get(User, owner_id):
            raise NotFound(f"User {owner_id} not found")
        obj = Product(name=name, description=description, category=category, price=price, stock=stock, owner_id=owner_id)
        self.db.add(obj); self.db.commit(); self.db.refresh(obj)
        log.info("product %s created by user %s with stock %d", obj.id, caller.user_id, obj.stock)
        return obj

    def update(self, caller: Caller, product_id: int, **changes) -> Product:
        """Edit descriptive fields and price. Stock only moves through restock and orders."""
        obj = self.get(product_id)
        self._check_owner(caller, obj)
        if "stock" in changes:
            raise InvalidRequest("Stock cannot be set directly, use restock")
        if changes.get("price") is not None and changes["price"] < 0:
            raise InvalidRequest("Price must not be negative")
        for k, v in changes.items():
            if v is not None:
                setattr(obj, k, v)
        self.db.commit(); self.db.refresh(obj)
        log.info("product %s updated by user %s: %s", product_id, caller.user_id, sorted(changes))
        return obj

    def restock(self, caller: Caller, product_id: int, quantity: int) -> Product:
        if quantity is None or quantity <= 0:
            raise InvalidRequest("Restock quantity must be a positive integer")
        try:
            obj = lock_products(self.db, [product_id]).get(product_id)
            if not obj:
                raise NotFound(f"Product {product_id} not found")
            self._check_owner(caller, obj)
            adjust_stock(self.db, product_id, quantity)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        log.info("product %s restocked by %d to %d", product_id, quantity, obj.stock)
        return obj

    def delete(self, caller: Caller, product_id: int) -> None:
        require_role(caller, Role.ADMIN)
        obj = self.get(product_id)
        referenced = self.db.execute(
            select(func.count(OrderItem.id)).where(OrderItem.product_id == product_id)
        ).scalar_one()
        if referenced:
            raise InvalidState("Cannot delete product with existing order items")
        self.db.delete(obj); self.db.commit()
        log.info("product %s deleted by user %s", product_id, caller.user_id)
