import logging
from typing import Callable, Iterable, List, Optional

from database import DocumentStore
from errors import InsufficientStock
from schemas import CartItem, Product, ProductIn, PublicUser, Review, ReviewIn, new_id, utcnow
from users import require_admin, require_user

logger = logging.getLogger(__name__)

PRODUCTS_KEY = "products"

Subscriber = Callable[[List[Product]], None]


def average_rating(reviews: List[Review]) -> float:
    if not reviews:
        return 0
    return sum(r.rating for r in reviews) / len(reviews)


def sync_stock_flag(product: Product) -> Product:
    # in_stock is only free-form for untracked (stock=None) products
    if product.stock is not None:
        product.in_stock = product.stock > 0
    return product


class ProductRepository:
    """Catalog CRUD over the "products" document.

    Writers broadcast the full new list to subscribers. Delivery is best
    effort: a subscriber that raises is logged and skipped.
    """

    def __init__(self, store: DocumentStore, clock: Callable = utcnow):
        self.store = store
        self.clock = clock
        self._subscribers: List[Subscriber] = []

    def _load(self) -> List[Product]:
        return [Product(**p) for p in self.store.get(PRODUCTS_KEY)]

    def _save(self, products: List[Product]) -> None:
        self.store.set(PRODUCTS_KEY, [p.model_dump(mode="json") for p in products])
        self._broadcast(products)

    # ----------------------- Change feed -----------------------
    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _broadcast(self, products: List[Product]) -> None:
        for callback in list(self._subscribers):
            try:
                callback([p.model_copy(deep=True) for p in products])
            except Exception:
                logger.exception("Product subscriber %r failed", callback)

    # ----------------------- Reads -----------------------
    def list(self) -> List[Product]:
        return self._load()

    def get(self, product_id: str) -> Optional[Product]:
        return next((p for p in self._load() if p.id == product_id), None)

    def categories(self) -> List[str]:
        seen = []
        for p in self._load():
            if p.category not in seen:
                seen.append(p.category)
        return seen

    def search(self, q: Optional[str] = None, category: Optional[str] = None, sort: str = "featured") -> List[Product]:
        items = self._load()
        if q:
            needle = q.lower()
            items = [
                p for p in items
                if needle in p.name.lower() or needle in p.description.lower() or needle in p.category.lower()
            ]
        if category and category != "all":
            items = [p for p in items if p.category == category]

        if sort == "price-low":
            items.sort(key=lambda p: p.price)
        elif sort == "price-high":
            items.sort(key=lambda p: p.price, reverse=True)
        elif sort == "newest":
            items.sort(key=lambda p: p.created_at, reverse=True)
        else:
            # stable, so stored order is kept within each group
            items.sort(key=lambda p: not p.featured)
        return items

    # ----------------------- Admin writes -----------------------
    def create(self, data: ProductIn, actor: Optional[PublicUser]) -> Product:
        require_admin(actor)
        product = Product(
            **data.model_dump(),
            id=new_id(),
            created_at=self.clock(),
            reviews=[],
            avg_rating=0,
        )
        sync_stock_flag(product)
        products = self._load()
        products.append(product)
        self._save(products)
        logger.info("Created product %s (%s)", product.id, product.name)
        return product

    def update(self, product: Product, actor: Optional[PublicUser]) -> Optional[Product]:
        require_admin(actor)
        products = self._load()
        for i, existing in enumerate(products):
            if existing.id == product.id:
                updated = product.model_copy(update={
                    "created_at": existing.created_at,
                    "reviews": existing.reviews,
                    "avg_rating": existing.avg_rating,
                })
                sync_stock_flag(updated)
                products[i] = updated
                self._save(products)
                logger.info("Updated product %s", product.id)
                return updated
        return None

    def delete(self, product_id: str, actor: Optional[PublicUser]) -> bool:
        require_admin(actor)
        products = self._load()
        remaining = [p for p in products if p.id != product_id]
        if len(remaining) == len(products):
            return False
        self._save(remaining)
        logger.info("Deleted product %s", product_id)
        return True

    def seed(self, products: Iterable[ProductIn]) -> int:
        if self._load():
            return 0
        now = self.clock()
        seeded = [sync_stock_flag(Product(**p.model_dump(), id=new_id(), created_at=now)) for p in products]
        self._save(seeded)
        return len(seeded)

    # ----------------------- Reviews -----------------------
    def add_review(self, product_id: str, data: ReviewIn, actor: Optional[PublicUser]) -> Optional[Review]:
        author = require_user(actor)
        products = self._load()
        product = next((p for p in products if p.id == product_id), None)
        if product is None:
            return None
        review = Review(
            id=new_id(),
            user_id=author.id,
            user_name=author.name,
            rating=data.rating,
            comment=data.comment,
            created_at=self.clock(),
        )
        product.reviews.append(review)
        product.avg_rating = average_rating(product.reviews)
        self._save(products)
        return review

    def like_review(self, product_id: str, review_id: str, actor: Optional[PublicUser]) -> bool:
        # No per-user dedup: every call counts.
        require_user(actor)
        products = self._load()
        product = next((p for p in products if p.id == product_id), None)
        if product is None:
            return False
        review = next((r for r in product.reviews if r.id == review_id), None)
        if review is None:
            return False
        review.likes += 1
        self._save(products)
        return True

    # ----------------------- Stock -----------------------
    def reserve_stock(self, items: List[CartItem]) -> None:
        """Take ordered quantities out of tracked stock, all or nothing."""
        products = self._load()
        by_id = {p.id: p for p in products}
        wanted = {}
        for item in items:
            wanted[item.product.id] = wanted.get(item.product.id, 0) + item.quantity

        for product_id, quantity in wanted.items():
            product = by_id.get(product_id)
            if product is None or product.stock is None:
                continue
            if product.stock < quantity:
                raise InsufficientStock(f"Only {product.stock} of {product.name} left")

        changed = False
        for product_id, quantity in wanted.items():
            product = by_id.get(product_id)
            if product is None or product.stock is None:
                continue
            product.stock -= quantity
            product.in_stock = product.stock > 0
            changed = True
        if changed:
            self._save(products)

    def release_stock(self, items: List[CartItem]) -> None:
        products = self._load()
        by_id = {p.id: p for p in products}
        changed = False
        for item in items:
            product = by_id.get(item.product.id)
            if product is None or product.stock is None:
                continue
            product.stock += item.quantity
            product.in_stock = product.stock > 0
            changed = True
        if changed:
            self._save(products)
