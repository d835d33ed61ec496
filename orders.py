import logging
from typing import Callable, List, Optional

from database import DocumentStore
from errors import InvalidOrder, InvalidTransition, PermissionDenied, StoreError
from products import ProductRepository
from schemas import (
    AdminStats,
    Address,
    CartItem,
    Order,
    OrderStatus,
    PublicUser,
    calculate_total,
    new_id,
    utcnow,
)
from users import USERS_KEY, UserRepository, require_admin, require_user

logger = logging.getLogger(__name__)

ORDERS_KEY = "orders"

# Forward-only: a status may move to any later stage, and cancellation is
# only possible before shipping. Re-setting the current status is allowed.
STATUS_FLOW = ["pending", "processing", "shipped", "delivered"]
CANCELLABLE = {"pending", "processing"}


def can_transition(current: str, new: str) -> bool:
    if current == new:
        return True
    if new == "cancelled":
        return current in CANCELLABLE
    if current == "cancelled":
        return False
    return STATUS_FLOW.index(new) > STATUS_FLOW.index(current)


class OrderRepository:
    def __init__(
        self,
        store: DocumentStore,
        users: UserRepository,
        products: Optional[ProductRepository] = None,
        clock: Callable = utcnow,
    ):
        self.store = store
        self.users = users
        self.products = products
        self.clock = clock

    def _load(self) -> List[Order]:
        return [Order(**o) for o in self.store.get(ORDERS_KEY)]

    def _save(self, orders: List[Order]) -> None:
        self.store.set(ORDERS_KEY, [o.model_dump(mode="json") for o in orders])

    @staticmethod
    def _check_owner(order: Order, actor: PublicUser) -> None:
        if order.user_id != actor.id and not actor.is_admin:
            raise PermissionDenied("Not allowed")

    # ----------------------- Reads -----------------------
    def list(
        self,
        actor: Optional[PublicUser],
        status: Optional[OrderStatus] = None,
        q: Optional[str] = None,
    ) -> List[Order]:
        require_admin(actor)
        orders = self._load()
        if status:
            orders = [o for o in orders if o.status == status]
        if q:
            needle = q.lower()
            orders = [
                o for o in orders
                if any(needle in (field or "").lower() for field in (o.id, o.user_id, o.user_name, o.user_email))
            ]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    def get(self, order_id: str, actor: Optional[PublicUser]) -> Optional[Order]:
        viewer = require_user(actor)
        order = next((o for o in self._load() if o.id == order_id), None)
        if order is None:
            return None
        self._check_owner(order, viewer)
        return order

    def list_by_user(self, user_id: str, actor: Optional[PublicUser]) -> List[Order]:
        viewer = require_user(actor)
        if viewer.id != user_id and not viewer.is_admin:
            raise PermissionDenied("Not allowed")
        orders = [o for o in self._load() if o.user_id == user_id]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    # ----------------------- Writes -----------------------
    def create(
        self,
        actor: Optional[PublicUser],
        items: List[CartItem],
        total_price: int,
        address: Optional[Address] = None,
        payment_method: str = "cash_on_delivery",
    ) -> Order:
        buyer = require_user(actor)
        # Admin listings show who ordered without a join against "users".
        owner = self.users.get(buyer.id) or buyer
        frozen = [item.model_copy(deep=True) for item in items]
        expected = calculate_total(frozen)
        if total_price != expected:
            raise InvalidOrder(f"Order total {total_price} does not match items total {expected}")

        if self.products is not None:
            self.products.reserve_stock(frozen)

        now = self.clock()
        order = Order(
            id=f"order_{new_id()}",
            user_id=owner.id,
            user_name=owner.name,
            user_email=owner.email,
            items=frozen,
            total_price=total_price,
            status="pending",
            created_at=now,
            updated_at=now,
            address=address.model_copy() if address else None,
            payment_method=payment_method,
        )
        if payment_method == "online":
            # Simulated gateway: no real charge is made.
            order.payment_status = "paid"
            order.transaction_id = f"pay_{new_id()[:12]}"

        orders = self._load()
        orders.append(order)
        try:
            self._save(orders)
        except StoreError:
            if self.products is not None:
                self.products.release_stock(frozen)
            raise
        logger.info("Order %s placed by %s for %s", order.id, owner.id, total_price)
        return order

    def update_status(self, order_id: str, status: OrderStatus, actor: Optional[PublicUser]) -> Optional[Order]:
        require_admin(actor)
        orders = self._load()
        index = next((i for i, o in enumerate(orders) if o.id == order_id), None)
        if index is None:
            return None

        order = orders[index]
        if not can_transition(order.status, status):
            raise InvalidTransition(f"Cannot move order from {order.status} to {status}")

        previous = order.status
        order.status = status
        order.updated_at = self.clock()
        if status == "delivered" and order.payment_method == "cash_on_delivery":
            order.payment_status = "paid"

        released = status == "cancelled" and previous != "cancelled" and self.products is not None
        if released:
            self.products.release_stock(order.items)

        try:
            self._save(orders)
        except StoreError:
            if released:
                self.products.reserve_stock(order.items)
            raise
        logger.info("Order %s status %s -> %s", order_id, previous, status)
        return order

    def stats(self, actor: Optional[PublicUser]) -> AdminStats:
        require_admin(actor)
        orders = self._load()
        products = self.products.list() if self.products is not None else []
        return AdminStats(
            total_users=len(self.store.get(USERS_KEY)),
            total_orders=len(orders),
            total_products=len(products),
            total_sales=sum(o.total_price for o in orders if o.status != "cancelled"),
            pending_orders=sum(1 for o in orders if o.status == "pending"),
            out_of_stock_products=sum(1 for p in products if not p.in_stock),
        )
