import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from passlib.context import CryptContext

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
TOKEN_TTL = timedelta(days=7)

# pbkdf2_sha256 is salted per hash and needs no native backend.
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # unrecognized or legacy hash format
        return False


def create_token(payload: dict, expires_delta: Optional[timedelta] = None) -> str:
    exp = datetime.now(timezone.utc) + (expires_delta or TOKEN_TTL)
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGO)


def decode_token(token: str) -> dict:
    """Raises jwt.InvalidTokenError (or its ExpiredSignatureError subclass)."""
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
