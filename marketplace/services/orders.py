"""Order placement and order lifecycle.

Both services take an open SQLAlchemy session and own its transaction:
every public operation either commits all of its writes or rolls back.
"""
import logging
from collections import defaultdict
from decimal import Decimal
from typing import List, NamedTuple, Sequence
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from marketplace.core.auth import Caller, require_role
from marketplace.core.errors import InsufficientStock, InvalidRequest, InvalidState, NotFound, Unauthorized
from marketplace.db.models import Order, OrderItem, OrderStatus, Role
from marketplace.services.inventory import adjust_stock, lock_products

log = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class CartLine(NamedTuple):
    product_id: int
    quantity: int


def validate_cart(cart: Sequence[CartLine]) -> List[CartLine]:
    """Shape checks that need no database access."""
    if not cart:
        raise InvalidRequest("Cart is empty")
    seen = set()
    for line in cart:
        if line.quantity is None or line.quantity <= 0:
            raise InvalidRequest(f"Quantity for product {line.product_id} must be a positive integer")
        if line.product_id in seen:
            raise InvalidRequest(f"Product {line.product_id} appears more than once in the cart")
        seen.add(line.product_id)
    return list(cart)


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidRequest(f"Invalid status. Must be one of: {allowed}")


def transition_allowed(current: OrderStatus, target: OrderStatus) -> bool:
    # Any status may move to any other status.
    return True


def _with_items(stmt):
    return stmt.options(selectinload(Order.items).selectinload(OrderItem.product))


class OrderPlacementService:
    def __init__(self, db: Session):
        self.db = db

    def place(self, caller: Caller, cart: Sequence[CartLine]) -> Order:
        """Create a PENDING order for ``caller`` and reserve its stock.

        Products are row-locked before the stock check, and each decrement is
        conditional on enough stock remaining, so two checkouts racing for
        the last unit cannot both succeed.
        """
        lines = validate_cart(cart)
        try:
            products = lock_products(self.db, [line.product_id for line in lines])
            for line in lines:
                product = products.get(line.product_id)
                if product is None:
                    raise NotFound(f"Product {line.product_id} not found")
                if line.quantity > product.stock:
                    raise InsufficientStock(product.name, product.stock, line.quantity)

            order = Order(user_id=caller.user_id, status=OrderStatus.PENDING)
            total = Decimal("0")
            for line in lines:
                product = products[line.product_id]
                available = product.stock
                if adjust_stock(self.db, product.id, -line.quantity) is None:
                    raise InsufficientStock(product.name, available, line.quantity)
                order.items.append(
                    OrderItem(product=product, quantity=line.quantity, unit_price=product.price)
                )
                total += product.price * line.quantity
            order.total_price = total.quantize(CENTS)
            self.db.add(order)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        log.info(
            "order %s placed by user %s: %d item(s), total %s",
            order.id, caller.user_id, len(order.items), order.total_price,
        )
        return order


class OrderLifecycleService:
    def __init__(self, db: Session):
        self.db = db

    def _load(self, order_id: int, for_update: bool = False) -> Order:
        stmt = _with_items(select(Order).where(Order.id == order_id))
        if for_update:
            stmt = stmt.with_for_update(of=Order).execution_options(populate_existing=True)
        order = self.db.execute(stmt).scalars().first()
        if not order:
            raise NotFound(f"Order {order_id} not found")
        return order

    def get(self, caller: Caller, order_id: int) -> Order:
        order = self._load(order_id)
        if not caller.is_admin and order.user_id != caller.user_id:
            raise Unauthorized("Not allowed to view this order")
        return order

    def list_for(self, caller: Caller) -> List[Order]:
        stmt = _with_items(
            select(Order).where(Order.user_id == caller.user_id).order_by(Order.created_at.desc(), Order.id.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_all(self, caller: Caller) -> List[Order]:
        require_role(caller, Role.ADMIN)
        stmt = _with_items(select(Order).order_by(Order.created_at.desc(), Order.id.desc()))
        return list(self.db.execute(stmt).scalars().all())

    def set_status(self, caller: Caller, order_id: int, status) -> Order:
        require_role(caller, Role.ADMIN)
        target = parse_status(status)
        try:
            order = self._load(order_id, for_update=True)
            if not transition_allowed(order.status, target):
                raise InvalidState(f"Cannot move order {order_id} from {order.status.value} to {target.value}")
            previous = order.status
            order.status = target
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        log.info("order %s status %s -> %s by user %s", order_id, previous.value, target.value, caller.user_id)
        return order

    def delete(self, caller: Caller, order_id: int) -> None:
        """Delete a PENDING order and put its reserved quantities back on the shelf."""
        require_role(caller, Role.ADMIN)
        try:
            order = self._load(order_id, for_update=True)
            if order.status != OrderStatus.PENDING:
                raise InvalidState(
                    f"Can only delete PENDING orders, current status: {order.status.value}"
                )
            restock = defaultdict(int)
            for item in order.items:
                restock[item.product_id] += item.quantity
            lock_products(self.db, restock)
            for product_id in sorted(restock):
                adjust_stock(self.db, product_id, restock[product_id])
            self.db.delete(order)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        log.info("order %s deleted by user %s, restocked %d product(s)", order_id, caller.user_id, len(restock))
