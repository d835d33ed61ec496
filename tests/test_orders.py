import pytest

from errors import InsufficientStock, InvalidOrder, InvalidTransition, PermissionDenied, StoreError
from orders import can_transition
from schemas import CartItem


@pytest.fixture
def placed(orders, customer, kettle, address):
    return orders.create(customer, [CartItem(product=kettle, quantity=2)], 2598, address=address)


def test_create_denormalizes_owner(placed, customer):
    assert placed.id.startswith("order_")
    assert placed.user_id == customer.id
    assert placed.user_name == "Asha"
    assert placed.user_email == "asha@mail.com"
    assert placed.status == "pending"
    assert placed.created_at == placed.updated_at
    assert placed.payment_status == "pending"


def test_order_ids_are_unique(orders, customer, bulb):
    ids = {orders.create(customer, [CartItem(product=bulb, quantity=1)], 150).id for _ in range(20)}
    assert len(ids) == 20


def test_create_freezes_items(orders, customer, bulb):
    items = [CartItem(product=bulb, quantity=1)]
    order = orders.create(customer, items, 150)
    items[0].quantity = 9
    items[0].product.price = 1
    stored = orders.get(order.id, customer)
    assert stored.items[0].quantity == 1
    assert stored.items[0].product.price == 150


def test_create_requires_login(orders, bulb):
    with pytest.raises(PermissionDenied):
        orders.create(None, [CartItem(product=bulb, quantity=1)], 150)


def test_create_reserves_stock(orders, products, placed, kettle):
    assert products.get(kettle.id).stock == 8


def test_create_rejects_short_stock_without_write(orders, customer, kettle, store):
    with pytest.raises(InsufficientStock):
        orders.create(customer, [CartItem(product=kettle, quantity=11)], 11 * 1299)
    assert store.get("orders") == []


def test_online_payment_is_simulated(orders, customer, bulb):
    order = orders.create(customer, [CartItem(product=bulb, quantity=1)], 150, payment_method="online")
    assert order.payment_status == "paid"
    assert order.transaction_id.startswith("pay_")


def test_owner_and_admin_can_read(orders, placed, customer, admin, other_customer):
    assert orders.get(placed.id, customer).id == placed.id
    assert orders.get(placed.id, admin).id == placed.id
    with pytest.raises(PermissionDenied):
        orders.get(placed.id, other_customer)
    with pytest.raises(PermissionDenied):
        orders.get(placed.id, None)
    assert orders.get("order_missing", customer) is None


def test_list_by_user(orders, placed, customer, other_customer, admin):
    assert [o.id for o in orders.list_by_user(customer.id, customer)] == [placed.id]
    assert orders.list_by_user(other_customer.id, other_customer) == []
    assert len(orders.list_by_user(customer.id, admin)) == 1
    with pytest.raises(PermissionDenied):
        orders.list_by_user(customer.id, other_customer)


def test_admin_list_filters_and_sorts_newest_first(orders, placed, admin, customer, other_customer, bulb):
    later = orders.create(other_customer, [CartItem(product=bulb, quantity=1)], 150)
    assert [o.id for o in orders.list(admin)] == [later.id, placed.id]
    assert [o.id for o in orders.list(admin, q="ravi")] == [later.id]
    orders.update_status(placed.id, "processing", admin)
    assert [o.id for o in orders.list(admin, status="processing")] == [placed.id]
    with pytest.raises(PermissionDenied):
        orders.list(customer)


def test_update_status_bumps_updated_at(orders, placed, admin, customer):
    updated = orders.update_status(placed.id, "shipped", admin)
    assert updated.status == "shipped"
    assert updated.updated_at > placed.updated_at
    assert orders.get(placed.id, customer).status == "shipped"


def test_update_status_unknown_order_returns_none(orders, admin):
    assert orders.update_status("order_missing", "shipped", admin) is None


def test_update_status_is_admin_only(orders, placed, customer):
    with pytest.raises(PermissionDenied):
        orders.update_status(placed.id, "cancelled", customer)


def test_status_cannot_move_backwards(orders, placed, admin):
    orders.update_status(placed.id, "delivered", admin)
    with pytest.raises(InvalidTransition):
        orders.update_status(placed.id, "pending", admin)
    with pytest.raises(InvalidTransition):
        orders.update_status(placed.id, "cancelled", admin)


@pytest.mark.parametrize("current,new,allowed", [
    ("pending", "processing", True),
    ("pending", "delivered", True),
    ("processing", "cancelled", True),
    ("shipped", "cancelled", False),
    ("cancelled", "pending", False),
    ("shipped", "processing", False),
    ("shipped", "shipped", True),
])
def test_can_transition(current, new, allowed):
    assert can_transition(current, new) is allowed


def test_cancel_releases_stock(orders, products, placed, admin, kettle):
    orders.update_status(placed.id, "cancelled", admin)
    assert products.get(kettle.id).stock == 10
    # repeating the cancellation does not release twice
    orders.update_status(placed.id, "cancelled", admin)
    assert products.get(kettle.id).stock == 10


def test_cash_on_delivery_paid_on_delivery(orders, placed, admin):
    assert orders.update_status(placed.id, "delivered", admin).payment_status == "paid"


def test_stats(orders, placed, admin, customer, bulb, products):
    second = orders.create(customer, [CartItem(product=bulb, quantity=2)], 300)
    orders.update_status(second.id, "cancelled", admin)
    stats = orders.stats(admin)
    assert stats.total_users == 2
    assert stats.total_orders == 2
    assert stats.total_products == 2
    assert stats.total_sales == 2598
    assert stats.pending_orders == 1
    assert stats.out_of_stock_products == 0
    with pytest.raises(PermissionDenied):
        orders.stats(customer)


@pytest.fixture
def break_order_writes(monkeypatch, store):
    """Call to make every later write of the "orders" document fail."""
    original = store.set

    def set_(key, value):
        if key == "orders":
            raise StoreError("Could not save orders")
        original(key, value)

    return lambda: monkeypatch.setattr(store, "set", set_)


def test_failed_order_write_returns_reserved_stock(orders, products, customer, kettle, store, break_order_writes):
    break_order_writes()
    with pytest.raises(StoreError):
        orders.create(customer, [CartItem(product=kettle, quantity=2)], 2598)
    assert products.get(kettle.id).stock == 10
    assert products.get(kettle.id).in_stock is True
    assert store.get("orders") == []


def test_failed_cancel_write_keeps_stock_reserved(orders, products, placed, admin, kettle, break_order_writes):
    break_order_writes()
    with pytest.raises(StoreError):
        orders.update_status(placed.id, "cancelled", admin)
    assert products.get(kettle.id).stock == 8
    assert orders.get(placed.id, admin).status == "pending"


def test_create_rejects_total_that_does_not_match_items(orders, products, customer, kettle, store):
    with pytest.raises(InvalidOrder):
        orders.create(customer, [CartItem(product=kettle, quantity=2)], 1)
    assert products.get(kettle.id).stock == 10
    assert store.get("orders") == []
