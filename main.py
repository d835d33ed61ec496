import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

import jwt
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr, Field, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import create_token, decode_token
from cart import CartModel
from database import DocumentStore, store_from_env
from errors import StorefrontError
from orders import OrderRepository
from products import ProductRepository
from schemas import (
    AdminStats,
    Cart,
    CartItemIn,
    CheckoutIn,
    Order,
    OrderStatus,
    Product,
    ProductIn,
    ProductSort,
    PublicUser,
    QuantityIn,
    Review,
    ReviewIn,
    StatusChange,
)
from seed import seed_admin, seed_products
from users import UserRepository, require_admin

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

store: DocumentStore = store_from_env()
users = UserRepository(store)
products = ProductRepository(store)
orders = OrderRepository(store, users, products)


def use_store(new_store: DocumentStore) -> None:
    """Rebind every repository to another store."""
    global store, users, products, orders
    store = new_store
    users = UserRepository(store)
    products = ProductRepository(store)
    orders = OrderRepository(store, users, products)


@asynccontextmanager
async def lifespan(app: FastAPI):
    seeded = seed_products(products)
    if seeded:
        logger.info("Seeded %d demo products", seeded)
    seed_admin(users)
    yield


app = FastAPI(title="Electrical Store API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------- Errors -----------------------
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg')}" if field else str(first.get("msg", "Invalid request"))
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(ValidationError)
async def model_validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"message": str(exc.errors()[0]["msg"])})


@app.exception_handler(StorefrontError)
async def storefront_error(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(status_code=500, content={"message": str(exc)[:200] or "Internal error"})


# ----------------------- Utils -----------------------
security = HTTPBearer(auto_error=False)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[PublicUser]:
    if credentials is None:
        return None
    try:
        payload = decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user_id = payload.get("id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    user = users.get(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def get_current_user(user: Optional[PublicUser] = Depends(get_optional_user)) -> PublicUser:
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})
    return user


def session_payload(user: PublicUser) -> dict:
    token = create_token({"id": user.id, "email": user.email, "is_admin": user.is_admin})
    return {"token": token, "user": user.model_dump()}


class CartSession:
    """A CartModel loaded for one request, collecting its notices."""

    def __init__(self, user: PublicUser):
        self.notices = []
        self.model = CartModel(store, orders, notify=lambda title, text: self.notices.append((title, text)))
        self.model.set_user(user)


def get_cart_session(user: PublicUser = Depends(get_current_user)) -> CartSession:
    return CartSession(user)


# ----------------------- Models -----------------------
class SignupBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginBody(BaseModel):
    email: EmailStr
    password: str


class ProductUpdateBody(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = Field(None, ge=0)
    category: Optional[str] = None
    image_url: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    in_stock: Optional[bool] = None
    featured: Optional[bool] = None


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Electrical Store API running"}


@app.get("/test")
def test_store():
    response = {
        "backend": "✅ Running",
        "store": store.name,
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "documents": [],
    }
    try:
        response["documents"] = store.keys()[:10]
        response["connection_status"] = "Connected"
    except Exception as e:
        response["connection_status"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/api/auth/signup")
def signup(body: SignupBody):
    user = users.create(body.name, body.email, body.password)
    if user is None:
        raise HTTPException(status_code=400, detail="Email already registered")
    return session_payload(user)


@app.post("/api/auth/login")
def login(body: LoginBody):
    user = users.authenticate(body.email, body.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return session_payload(user)


@app.get("/api/auth/me", response_model=PublicUser)
def me(user: PublicUser = Depends(get_current_user)):
    return user


# ----------------------- Products -----------------------
@app.get("/api/products", response_model=List[Product])
def list_products(q: Optional[str] = None, category: Optional[str] = None, sort: ProductSort = "featured"):
    return products.search(q=q, category=category, sort=sort)


@app.get("/api/categories")
def list_categories():
    return {"categories": products.categories()}


@app.get("/api/products/{product_id}", response_model=Product)
def get_product(product_id: str):
    product = products.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.post("/api/products", response_model=Product, status_code=201)
def create_product(body: ProductIn, user: PublicUser = Depends(get_current_user)):
    return products.create(body, user)


@app.put("/api/products/{product_id}", response_model=Product)
def update_product(product_id: str, body: ProductUpdateBody, user: PublicUser = Depends(get_current_user)):
    require_admin(user)
    existing = products.get(product_id)
    if not existing:
        raise HTTPException(status_code=404, detail="Product not found")
    merged = Product(**{**existing.model_dump(), **body.model_dump(exclude_none=True), "id": product_id})
    updated = products.update(merged, user)
    if not updated:
        raise HTTPException(status_code=404, detail="Product not found")
    return updated


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user: PublicUser = Depends(get_current_user)):
    if not products.delete(product_id, user):
        raise HTTPException(status_code=404, detail="Product not found")
    return {"message": "Product deleted"}


@app.post("/api/products/{product_id}/reviews", response_model=Review, status_code=201)
def add_review(product_id: str, body: ReviewIn, user: PublicUser = Depends(get_current_user)):
    review = products.add_review(product_id, body, user)
    if not review:
        raise HTTPException(status_code=404, detail="Product not found")
    return review


@app.post("/api/products/{product_id}/reviews/{review_id}/like")
def like_review(product_id: str, review_id: str, user: PublicUser = Depends(get_current_user)):
    if not products.like_review(product_id, review_id, user):
        raise HTTPException(status_code=404, detail="Review not found")
    return {"ok": True}


# ----------------------- Cart -----------------------
@app.get("/api/cart", response_model=Cart)
def get_cart(session: CartSession = Depends(get_cart_session)):
    return session.model.cart


@app.post("/api/cart/items", response_model=Cart)
def add_cart_item(body: CartItemIn, session: CartSession = Depends(get_cart_session)):
    product = products.get(body.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if not product.in_stock:
        raise HTTPException(status_code=400, detail=f"{product.name} is out of stock")
    session.model.add_to_cart(product, body.quantity)
    return session.model.cart


@app.put("/api/cart/items/{product_id}", response_model=Cart)
def update_cart_item(product_id: str, body: QuantityIn, session: CartSession = Depends(get_cart_session)):
    session.model.update_quantity(product_id, body.quantity)
    return session.model.cart


@app.delete("/api/cart/items/{product_id}", response_model=Cart)
def remove_cart_item(product_id: str, session: CartSession = Depends(get_cart_session)):
    session.model.remove_from_cart(product_id)
    return session.model.cart


@app.delete("/api/cart", response_model=Cart)
def clear_cart(session: CartSession = Depends(get_cart_session)):
    session.model.clear_cart()
    return session.model.cart


@app.post("/api/cart/checkout", status_code=201)
def checkout(body: CheckoutIn, session: CartSession = Depends(get_cart_session)):
    order_id = session.model.checkout(body.address, body.payment_method)
    if order_id is None:
        reason = session.notices[-1][1] if session.notices else "Checkout failed"
        raise HTTPException(status_code=400, detail=reason)
    return {"order_id": order_id}


# ----------------------- Orders -----------------------
@app.get("/api/orders", response_model=List[Order])
def my_orders(user: PublicUser = Depends(get_current_user)):
    return orders.list_by_user(user.id, user)


@app.get("/api/orders/{order_id}", response_model=Order)
def get_order(order_id: str, user: PublicUser = Depends(get_current_user)):
    order = orders.get(order_id, user)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


# ----------------------- Admin -----------------------
@app.get("/api/admin/orders", response_model=List[Order])
def admin_orders(status: Optional[OrderStatus] = None, q: Optional[str] = None, user: PublicUser = Depends(get_current_user)):
    return orders.list(user, status=status, q=q)


@app.put("/api/admin/orders/{order_id}/status", response_model=Order)
def admin_change_status(order_id: str, body: StatusChange, user: PublicUser = Depends(get_current_user)):
    order = orders.update_status(order_id, body.status, user)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@app.get("/api/admin/users", response_model=List[PublicUser])
def admin_users(q: Optional[str] = None, user: PublicUser = Depends(get_current_user)):
    return users.list(user, q=q)


@app.get("/api/admin/stats", response_model=AdminStats)
def admin_stats(user: PublicUser = Depends(get_current_user)):
    return orders.stats(user)


# ----------------------- Seed Demo Data -----------------------
@app.post("/api/seed")
def seed():
    added = seed_products(products)
    admin = seed_admin(users)
    return {
        "seeded": added > 0,
        "products": len(products.list()),
        "admin": admin is not None,
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
