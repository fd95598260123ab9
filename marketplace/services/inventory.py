from typing import Dict, Iterable, Optional
from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.util import identity_key
from marketplace.db.models import Product


def lock_products(db: Session, product_ids: Iterable[int]) -> Dict[int, Product]:
    """Load products with row locks held until the transaction ends.

    Rows are locked in ascending id order so two transactions touching the
    same products cannot deadlock each other.
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    stmt = (
        select(Product)
        .where(Product.id.in_(ids))
        .order_by(Product.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {p.id: p for p in db.execute(stmt).scalars()}


def adjust_stock(db: Session, product_id: int, delta: int) -> Optional[int]:
    """Add ``delta`` to a product's stock in a single conditional UPDATE.

    Returns the new stock, or None when no row matched: the product is gone,
    or ``delta`` is negative and larger than what is on hand.
    """
    stmt = update(Product).where(Product.id == product_id)
    if delta < 0:
        stmt = stmt.where(Product.stock >= -delta)
    stmt = (
        stmt.values(stock=Product.stock + delta)
        .returning(Product.stock)
        .execution_options(synchronize_session=False)
    )
    new_stock = db.execute(stmt).scalar_one_or_none()
    if new_stock is not None:
        cached = db.identity_map.get(identity_key(Product, product_id))
        if cached is not None:
            set_committed_value(cached, "stock", new_stock)
    return new_stock
