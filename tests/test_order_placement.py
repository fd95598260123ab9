"""Order placement: validation, stock reservation and atomicity."""
import threading
from decimal import Decimal
import pytest
from sqlalchemy import func, select, text
from conftest import caller_for, stock_of
from marketplace.core.errors import InsufficientStock, InvalidRequest, NotFound
from marketplace.db.models import Order, OrderItem, OrderStatus, Product
from marketplace.services import orders as orders_module
from marketplace.services.inventory import adjust_stock
from marketplace.services.orders import CartLine, OrderPlacementService


def count_orders(session_factory):
    with session_factory() as s:
        return s.execute(select(func.count(Order.id))).scalar_one()


def test_place_order_snapshots_price_and_reserves_stock(db, session_factory, customer, make_product):
    mug = make_product(price="10.00", stock=5)

    order = OrderPlacementService(db).place(caller_for(customer), [CartLine(mug.id, 2)])

    assert order.status == OrderStatus.PENDING
    assert order.user_id == customer.id
    assert order.total_price == Decimal("20.00")
    assert [(i.product_id, i.quantity, i.unit_price) for i in order.items] == [(mug.id, 2, Decimal("10.00"))]
    assert order.items[0].product.name == "Mug"
    assert stock_of(session_factory, mug.id) == 3


def test_total_is_sum_of_line_items(db, session_factory, customer, make_product):
    mug = make_product(name="Mug", price="12.50", stock=10)
    bowl = make_product(name="Bowl", price="7.25", stock=4)
    vase = make_product(name="Vase", price="99.99", stock=1)

    order = OrderPlacementService(db).place(
        caller_for(customer), [CartLine(bowl.id, 3), CartLine(mug.id, 1), CartLine(vase.id, 1)]
    )

    assert order.total_price == sum(i.unit_price * i.quantity for i in order.items)
    assert order.total_price == Decimal("134.24")
    assert stock_of(session_factory, mug.id) == 9
    assert stock_of(session_factory, bowl.id) == 1
    assert stock_of(session_factory, vase.id) == 0


def test_untouched_products_keep_their_stock(db, session_factory, customer, make_product):
    mug = make_product(stock=5)
    bowl = make_product(name="Bowl", stock=8)

    OrderPlacementService(db).place(caller_for(customer), [CartLine(mug.id, 1)])

    assert stock_of(session_factory, bowl.id) == 8


def test_unit_price_is_not_recomputed_after_price_change(db, session_factory, customer, make_product):
    mug = make_product(price="10.00", stock=5)
    order = OrderPlacementService(db).place(caller_for(customer), [CartLine(mug.id, 1)])

    mug.price = Decimal("15.00")
    db.commit()

    with session_factory() as s:
        item = s.execute(select(OrderItem).where(OrderItem.order_id == order.id)).scalar_one()
        assert item.unit_price == Decimal("10.00")
        assert s.get(Order, order.id).total_price == Decimal("10.00")


def test_empty_cart_is_rejected(db, session_factory, customer):
    with pytest.raises(InvalidRequest):
        OrderPlacementService(db).place(caller_for(customer), [])
    assert count_orders(session_factory) == 0


@pytest.mark.parametrize("quantity", [0, -1])
def test_non_positive_quantity_is_rejected(db, session_factory, customer, make_product, quantity):
    mug = make_product(stock=5)
    with pytest.raises(InvalidRequest):
        OrderPlacementService(db).place(caller_for(customer), [CartLine(mug.id, quantity)])
    assert stock_of(session_factory, mug.id) == 5


def test_duplicate_product_is_rejected_without_mutation(db, session_factory, customer, make_product):
    mug = make_product(price="10.00", stock=3)

    with pytest.raises(InvalidRequest) as exc:
        OrderPlacementService(db).place(caller_for(customer), [CartLine(mug.id, 2), CartLine(mug.id, 1)])

    assert str(mug.id) in exc.value.detail
    assert stock_of(session_factory, mug.id) == 3
    assert count_orders(session_factory) == 0


def test_unknown_product_is_named(db, session_factory, customer, make_product):
    mug = make_product(stock=5)

    with pytest.raises(NotFound) as exc:
        OrderPlacementService(db).place(caller_for(customer), [CartLine(mug.id, 1), CartLine(9999, 1)])

    assert "9999" in exc.value.detail
    assert stock_of(session_factory, mug.id) == 5
    assert count_orders(session_factory) == 0


def test_insufficient_stock_leaves_everything_unchanged(db, session_factory, customer, make_product):
    mug = make_product(name="Mug", stock=5)
    vase = make_product(name="Vase", stock=1)

    with pytest.raises(InsufficientStock) as exc:
        OrderPlacementService(db).place(caller_for(customer), [CartLine(mug.id, 2), CartLine(vase.id, 2)])

    assert exc.value.product_name == "Vase"
    assert "Vase" in exc.value.detail
    assert stock_of(session_factory, mug.id) == 5
    assert stock_of(session_factory, vase.id) == 1
    assert count_orders(session_factory) == 0


def test_failed_decrement_rolls_back_earlier_decrements(db, session_factory, customer, make_product, monkeypatch):
    mug = make_product(name="Mug", stock=5)
    vase = make_product(name="Vase", stock=1)

    def racing_adjust(session, product_id, delta):
        if product_id == vase.id:
            # another checkout claims the last vase after our stock check
            session.execute(text("UPDATE products SET stock = 0 WHERE id = :id"), {"id": vase.id})
        return adjust_stock(session, product_id, delta)

    monkeypatch.setattr(orders_module, "adjust_stock", racing_adjust)

    with pytest.raises(InsufficientStock):
        OrderPlacementService(db).place(caller_for(customer), [CartLine(mug.id, 2), CartLine(vase.id, 1)])

    assert stock_of(session_factory, mug.id) == 5
    assert stock_of(session_factory, vase.id) == 1
    assert count_orders(session_factory) == 0


def test_second_buyer_of_last_unit_sees_fresh_stock(session_factory, customer, other_customer, make_product):
    lamp = make_product(name="Lamp", stock=1)
    first, second = session_factory(), session_factory()
    try:
        # second session has already read the product while stock was still 1
        assert second.get(Product, lamp.id).stock == 1

        OrderPlacementService(first).place(caller_for(customer), [CartLine(lamp.id, 1)])
        with pytest.raises(InsufficientStock):
            OrderPlacementService(second).place(caller_for(other_customer), [CartLine(lamp.id, 1)])
    finally:
        first.close(); second.close()

    assert stock_of(session_factory, lamp.id) == 0
    assert count_orders(session_factory) == 1


def test_conditional_decrement_never_goes_negative(db, make_product):
    lamp = make_product(stock=1)

    assert adjust_stock(db, lamp.id, -2) is None
    assert adjust_stock(db, lamp.id, -1) == 0
    assert adjust_stock(db, lamp.id, -1) is None
    db.commit()
    db.refresh(lamp)
    assert lamp.stock == 0


def test_simultaneous_checkouts_for_last_unit(session_factory, customer, other_customer, make_product):
    lamp = make_product(name="Lamp", stock=1)
    callers = [caller_for(customer), caller_for(other_customer)]
    barrier = threading.Barrier(len(callers))
    results = []

    def checkout(caller):
        session = session_factory()
        try:
            barrier.wait(timeout=10)
            OrderPlacementService(session).place(caller, [CartLine(lamp.id, 1)])
            results.append("ok")
        except InsufficientStock:
            results.append("insufficient")
        finally:
            session.close()

    threads = [threading.Thread(target=checkout, args=(c,)) for c in callers]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(results) == ["insufficient", "ok"]
    assert stock_of(session_factory, lamp.id) == 0
    assert count_orders(session_factory) == 1
