"""
Document Schemas for the Electrical Store

Each Pydantic model describes one stored document shape (or an element of
one). Request bodies that only carry a subset of fields end in "In".
"""
from datetime import datetime, timezone
from typing import List, Optional, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, EmailStr

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentMethod = Literal["cash_on_delivery", "online"]
PaymentStatus = Literal["pending", "paid"]
ProductSort = Literal["featured", "price-low", "price-high", "newest"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


# ----------------------- Users -----------------------
class PublicUser(BaseModel):
    id: str
    name: str
    email: EmailStr
    is_admin: bool = False


class User(PublicUser):
    password_hash: str = Field(..., description="Salted password hash")

    def public(self) -> PublicUser:
        return PublicUser(**self.model_dump(exclude={"password_hash"}))


# ----------------------- Catalog -----------------------
class Review(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    user_name: str = Field(..., description="Author name at submission time")
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    likes: int = Field(0, ge=0)


class ReviewIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


class ProductIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: int = Field(..., ge=0, description="Price in minor currency units")
    category: str = Field(..., min_length=1)
    image_url: str = ""
    stock: Optional[int] = Field(None, ge=0)
    in_stock: bool = True
    featured: bool = False


class Product(ProductIn):
    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utcnow)
    reviews: List[Review] = []
    avg_rating: float = Field(0, ge=0, le=5)


# ----------------------- Cart -----------------------
class CartItem(BaseModel):
    product: Product
    quantity: int = Field(..., ge=1)


def calculate_total(items: List[CartItem]) -> int:
    return sum(item.product.price * item.quantity for item in items)


class Cart(BaseModel):
    items: List[CartItem] = []
    total_price: int = 0


class CartItemIn(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class QuantityIn(BaseModel):
    quantity: int


# ----------------------- Orders -----------------------
class Address(BaseModel):
    full_name: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., pattern=r"^\d{6}$")
    phone: str = Field(..., pattern=r"^\d{10}$")


class Order(BaseModel):
    id: str = Field(default_factory=lambda: f"order_{new_id()}")
    user_id: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    items: List[CartItem]
    total_price: int = Field(..., ge=0)
    status: OrderStatus = "pending"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    address: Optional[Address] = None
    payment_method: PaymentMethod = "cash_on_delivery"
    payment_status: PaymentStatus = "pending"
    transaction_id: Optional[str] = None


class CheckoutIn(BaseModel):
    address: Address
    payment_method: PaymentMethod = "cash_on_delivery"


class StatusChange(BaseModel):
    status: OrderStatus


class AdminStats(BaseModel):
    total_users: int
    total_orders: int
    total_products: int
    total_sales: int
    pending_orders: int
    out_of_stock_products: int
