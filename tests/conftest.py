from datetime import datetime, timedelta, timezone

import pytest

from cart import CartModel
from database import MemoryStore
from orders import OrderRepository
from products import ProductRepository
from schemas import Address, ProductIn
from users import UserRepository


class StepClock:
    """Returns a strictly increasing time, one second per call."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def users(store):
    return UserRepository(store)


@pytest.fixture
def products(store, clock):
    return ProductRepository(store, clock=clock)


@pytest.fixture
def orders(store, users, products, clock):
    return OrderRepository(store, users, products, clock=clock)


@pytest.fixture
def admin(users):
    return users.create("Admin", "admin@shop.com", "admin-pass", is_admin=True)


@pytest.fixture
def customer(users):
    return users.create("Asha", "asha@mail.com", "secret123")


@pytest.fixture
def other_customer(users):
    return users.create("Ravi", "ravi@mail.com", "secret456")


@pytest.fixture
def kettle(products, admin):
    return products.create(
        ProductIn(name="Electric Kettle", description="1.5L steel kettle", price=1299, category="Kitchen", stock=10),
        admin,
    )


@pytest.fixture
def bulb(products, admin):
    return products.create(
        ProductIn(name="LED Bulb", description="9W warm white", price=150, category="Lighting"),
        admin,
    )


@pytest.fixture
def notices():
    return []


@pytest.fixture
def cart(store, orders, customer, notices):
    model = CartModel(store, orders, notify=lambda title, text: notices.append((title, text)))
    model.set_user(customer)
    return model


@pytest.fixture
def address():
    return Address(
        full_name="Asha Rao",
        street="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        pincode="560001",
        phone="9876543210",
    )
