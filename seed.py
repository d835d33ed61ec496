import os

from products import ProductRepository
from schemas import ProductIn
from users import UserRepository

# Prices are in minor currency units.
DEMO_PRODUCTS = [
    {
        "name": "Laptop Pro X1",
        "description": "High-performance laptop with 16GB RAM and 512GB SSD",
        "price": 129999,
        "category": "Laptops",
        "image_url": "https://images.unsplash.com/photo-1496181133206-80ce9b88a853",
        "stock": 10,
        "featured": True,
    },
    {
        "name": "Smartphone Ultra Z",
        "description": "6.7-inch display, 128GB storage, triple camera system",
        "price": 79999,
        "category": "Smartphones",
        "image_url": "https://images.unsplash.com/photo-1580910051074-3eb694886505",
        "stock": 25,
        "featured": True,
    },
    {
        "name": "Wireless Noise-Cancelling Headphones",
        "description": "Premium sound quality with 20 hours battery life",
        "price": 24999,
        "category": "Audio",
        "image_url": "https://images.unsplash.com/photo-1505740420928-5e560c06d30e",
        "stock": 40,
    },
    {
        "name": '4K Smart TV 55"',
        "description": "Ultra HD resolution with smart features and HDR",
        "price": 64999,
        "category": "TVs",
        "image_url": "https://images.unsplash.com/photo-1593305841991-05c297ba4575",
        "stock": 8,
        "featured": True,
    },
    {
        "name": "Wireless Gaming Mouse",
        "description": "High precision optical sensor with programmable buttons",
        "price": 7999,
        "category": "Gaming",
        "image_url": "https://images.unsplash.com/photo-1615663245857-ac93bb7c39e7",
        "stock": 30,
    },
    {
        "name": "Smart Home Speaker",
        "description": "Voice-controlled speaker with built-in assistant",
        "price": 12999,
        "category": "Smart Home",
        "image_url": "https://images.unsplash.com/photo-1589492477829-5e65395b66cc",
        "stock": 35,
    },
]


def seed_products(products: ProductRepository) -> int:
    return products.seed(ProductIn(**p) for p in DEMO_PRODUCTS)


def seed_admin(users: UserRepository):
    """Create the administrator from ADMIN_* settings, or None if unset."""
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        return None
    return users.ensure_admin(os.getenv("ADMIN_NAME", "Admin"), email, password)
