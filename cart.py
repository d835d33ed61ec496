import logging
from typing import Callable, List, Optional

from database import DocumentStore
from errors import InsufficientStock
from orders import OrderRepository
from schemas import Address, Cart, CartItem, PaymentMethod, Product, PublicUser, calculate_total

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]


def cart_key(user_id: str) -> str:
    return f"cart_{user_id}"


def _log_notice(title: str, description: str) -> None:
    logger.info("%s: %s", title, description)


class CartModel:
    """One signed-in user's cart, written back to cart_<user_id> on change.

    Without a user the cart is empty and nothing is persisted.
    """

    def __init__(self, store: DocumentStore, orders: OrderRepository, notify: Optional[Notifier] = None):
        self.store = store
        self.orders = orders
        self.notify = notify or _log_notice
        self.user: Optional[PublicUser] = None
        self.cart = Cart()

    def set_user(self, user: Optional[PublicUser]) -> None:
        self.user = user
        if user is None:
            self.cart = Cart()
            return
        saved = self.store.get(cart_key(user.id), None)
        self.cart = Cart(**saved) if saved else Cart()

    def _commit(self, items: List[CartItem]) -> None:
        self.cart = Cart(items=items, total_price=calculate_total(items))
        if self.user is not None:
            self.store.set(cart_key(self.user.id), self.cart.model_dump(mode="json"))

    def add_to_cart(self, product: Product, quantity: int = 1) -> None:
        if quantity < 1:
            return
        items = [item.model_copy() for item in self.cart.items]
        existing = next((item for item in items if item.product.id == product.id), None)
        if existing:
            existing.quantity += quantity
        else:
            items.append(CartItem(product=product.model_copy(deep=True), quantity=quantity))
        self._commit(items)
        self.notify("Added to cart", f"{product.name} added to your cart")

    def remove_from_cart(self, product_id: str) -> None:
        items = [item for item in self.cart.items if item.product.id != product_id]
        self._commit(items)
        self.notify("Removed from cart", "Item removed from your cart")

    def update_quantity(self, product_id: str, quantity: int) -> None:
        # Dropping a line takes remove_from_cart; a quantity below one is ignored.
        if quantity < 1:
            return
        items = [
            item.model_copy(update={"quantity": quantity}) if item.product.id == product_id else item
            for item in self.cart.items
        ]
        self._commit(items)

    def clear_cart(self) -> None:
        self._commit([])

    def checkout(self, address: Optional[Address] = None, payment_method: PaymentMethod = "cash_on_delivery") -> Optional[str]:
        if self.user is None:
            self.notify("Checkout failed", "Please log in to checkout")
            return None
        if not self.cart.items:
            self.notify("Checkout failed", "Your cart is empty")
            return None

        try:
            order = self.orders.create(
                self.user,
                self.cart.items,
                self.cart.total_price,
                address=address,
                payment_method=payment_method,
            )
        except InsufficientStock as e:
            self.notify("Checkout failed", e.message)
            return None

        self.clear_cart()
        self.notify("Order placed", f"Your order #{order.id} has been placed successfully")
        return order.id
