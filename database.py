"""
Document store

Every piece of storefront state lives under a string key holding one
JSON-serializable value (see the key list below). Reads return a private
copy, writes replace the whole value. Three backends share that contract:

- MemoryStore   -> tests and local runs with nothing configured
- JsonFileStore -> one <key>.json file per key under DATA_DIR
- MongoStore    -> MongoDB "documents" collection, one record per key

Keys:
- "products"       -> list of Product
- "orders"         -> list of Order
- "users"          -> list of User (with password hash)
- "currentUser"    -> PublicUser or absent
- "cart_<user_id>" -> Cart or absent
"""
import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from errors import StoreError

load_dotenv()

logger = logging.getLogger(__name__)

_MISSING = object()


class DocumentStore(ABC):
    """Whole-value get/set over named JSON documents."""

    name = "store"

    @abstractmethod
    def get(self, key: str, default: Any = _MISSING) -> Any:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def keys(self):
        ...

    @staticmethod
    def _default(default: Any) -> Any:
        return [] if default is _MISSING else default


class MemoryStore(DocumentStore):
    name = "memory"

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key, default=_MISSING):
        raw = self._data.get(key)
        if raw is None:
            return self._default(default)
        return json.loads(raw)

    def set(self, key, value):
        # Serializing here keeps callers from holding a live reference.
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Cannot serialize '{key}': {e}") from e

    def delete(self, key):
        self._data.pop(key, None)

    def keys(self):
        return sorted(self._data)


class JsonFileStore(DocumentStore):
    name = "json"

    def __init__(self, data_dir):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def get(self, key, default=_MISSING):
        path = self._path(key)
        if not path.exists():
            return self._default(default)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Unreadable document '%s' treated as empty: %s", key, e)
            return self._default(default)

    def set(self, key, value):
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as e:
            raise StoreError(f"Cannot write '{key}': {e}") from e

    def delete(self, key):
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StoreError(f"Cannot delete '{key}': {e}") from e

    def keys(self):
        return sorted(p.stem for p in self.data_dir.glob("*.json"))


class MongoStore(DocumentStore):
    name = "mongo"

    def __init__(self, database, collection_name: str = "documents"):
        self.db = database
        self.collection = database[collection_name]

    def get(self, key, default=_MISSING):
        try:
            doc = self.collection.find_one({"_id": key})
        except PyMongoError as e:
            logger.warning("Read of '%s' failed, treated as empty: %s", key, e)
            return self._default(default)
        if not doc or "value" not in doc:
            return self._default(default)
        return copy.deepcopy(doc["value"])

    def set(self, key, value):
        try:
            self.collection.replace_one({"_id": key}, {"_id": key, "value": value}, upsert=True)
        except PyMongoError as e:
            raise StoreError(f"Cannot write '{key}': {str(e)[:80]}") from e

    def delete(self, key):
        try:
            self.collection.delete_one({"_id": key})
        except PyMongoError as e:
            raise StoreError(f"Cannot delete '{key}': {str(e)[:80]}") from e

    def keys(self):
        return sorted(d["_id"] for d in self.collection.find({}, {"_id": 1}))


def store_from_env() -> DocumentStore:
    database_url = os.getenv("DATABASE_URL")
    database_name = os.getenv("DATABASE_NAME")
    data_dir = os.getenv("DATA_DIR")

    if database_url and database_name:
        client = MongoClient(database_url)
        logger.info("Using MongoDB store '%s'", database_name)
        return MongoStore(client[database_name])
    if data_dir:
        logger.info("Using JSON file store at %s", data_dir)
        return JsonFileStore(data_dir)
    logger.info("No DATABASE_URL or DATA_DIR set, using in-memory store")
    return MemoryStore()
