import logging
from typing import List, Optional

from pydantic import EmailStr, TypeAdapter, ValidationError

from auth import hash_password, verify_password
from database import DocumentStore
from errors import PermissionDenied
from schemas import PublicUser, User, new_id

logger = logging.getLogger(__name__)

USERS_KEY = "users"
CURRENT_USER_KEY = "currentUser"

_email_adapter = TypeAdapter(EmailStr)


def normalize_email(email: str) -> Optional[str]:
    """Email as stored on a User (domain lowercased), or None if invalid."""
    try:
        return _email_adapter.validate_python(email)
    except ValidationError:
        return None


def require_admin(actor: Optional[PublicUser]) -> PublicUser:
    if actor is None or not actor.is_admin:
        raise PermissionDenied("Admin only")
    return actor


def require_user(actor: Optional[PublicUser]) -> PublicUser:
    if actor is None:
        raise PermissionDenied("Login required")
    return actor


class UserRepository:
    """Registered users plus the single "current user" session record.

    Password hashes never leave this class: everything it returns is a
    PublicUser except find_by_email, which login needs.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def _load(self) -> List[User]:
        return [User(**u) for u in self.store.get(USERS_KEY)]

    def _save(self, users: List[User]) -> None:
        self.store.set(USERS_KEY, [u.model_dump(mode="json") for u in users])

    def list(self, actor: Optional[PublicUser], q: Optional[str] = None) -> List[PublicUser]:
        require_admin(actor)
        users = [u.public() for u in self._load()]
        if q:
            needle = q.lower()
            users = [u for u in users if needle in u.name.lower() or needle in u.email.lower()]
        return users

    def get(self, user_id: str) -> Optional[PublicUser]:
        found = next((u for u in self._load() if u.id == user_id), None)
        return found.public() if found else None

    def find_by_email(self, email: str) -> Optional[User]:
        normalized = normalize_email(email)
        if normalized is None:
            return None
        return next((u for u in self._load() if u.email == normalized), None)

    def create(self, name: str, email: str, password: str, is_admin: bool = False) -> Optional[PublicUser]:
        # an invalid address falls through and fails User validation below
        email = normalize_email(email) or email
        users = self._load()
        if any(u.email == email for u in users):
            logger.info("Signup rejected, email already registered")
            return None
        user = User(
            id=new_id(),
            name=name,
            email=email,
            password_hash=hash_password(password),
            is_admin=is_admin,
        )
        users.append(user)
        self._save(users)
        logger.info("Created user %s (admin=%s)", user.id, is_admin)
        return user.public()

    def authenticate(self, email: str, password: str) -> Optional[PublicUser]:
        user = self.find_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            return None
        return user.public()

    def ensure_admin(self, name: str, email: str, password: str) -> PublicUser:
        existing = self.find_by_email(email)
        if existing:
            return existing.public()
        return self.create(name, email, password, is_admin=True)

    # ----------------------- Session -----------------------
    def current(self) -> Optional[PublicUser]:
        data = self.store.get(CURRENT_USER_KEY, None)
        return PublicUser(**data) if data else None

    def login(self, email: str, password: str) -> Optional[PublicUser]:
        user = self.authenticate(email, password)
        if user:
            self.store.set(CURRENT_USER_KEY, user.model_dump(mode="json"))
        return user

    def signup(self, name: str, email: str, password: str) -> Optional[PublicUser]:
        user = self.create(name, email, password)
        if user:
            self.store.set(CURRENT_USER_KEY, user.model_dump(mode="json"))
        return user

    def logout(self) -> None:
        self.store.delete(CURRENT_USER_KEY)
