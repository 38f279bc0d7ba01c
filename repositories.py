"""
Repositories for users, products and carts.

Each entity has a Mongo-backed repository and an in-memory one with the same
methods. Documents cross the repository boundary as plain dicts with a string
``id`` instead of Mongo's ``_id``.
"""
import copy
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import DuplicateEmail, StorageTimeout, StorageUnavailable
from schemas import Product, User, new_id

logger = logging.getLogger(__name__)


def sanitize(doc: Optional[Dict]) -> Optional[Dict]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


@contextmanager
def storage_errors(operation: str):
    """Translate pymongo failures into StorageTimeout / StorageUnavailable."""
    try:
        yield
    except DuplicateKeyError:
        raise
    except PyMongoError as exc:
        if getattr(exc, "timeout", False):
            logger.warning("Storage timeout during %s: %s", operation, exc)
            raise StorageTimeout() from exc
        logger.warning("Storage failure during %s: %s", operation, exc)
        raise StorageUnavailable() from exc


# --------- Users ---------

class MongoUserRepository:
    def __init__(self, database: Database):
        self.collection = database["user"]

    def get(self, user_id: str) -> Optional[Dict]:
        with storage_errors("user lookup"):
            return sanitize(self.collection.find_one({"_id": ObjectId(user_id)}))

    def get_by_email(self, email: str) -> Optional[Dict]:
        with storage_errors("user lookup"):
            return sanitize(self.collection.find_one({"email": email}))

    def insert(self, user: User) -> str:
        doc = user.model_dump()
        try:
            with storage_errors("user insert"):
                res = self.collection.insert_one(doc)
        except DuplicateKeyError:
            raise DuplicateEmail()
        return str(res.inserted_id)

    def set_password_hash(self, user_id: str, password_hash: str) -> bool:
        with storage_errors("password update"):
            res = self.collection.update_one(
                {"_id": ObjectId(user_id)}, {"$set": {"password_hash": password_hash}}
            )
        return res.matched_count > 0


class LocalUserRepository:
    def __init__(self):
        self._users: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[Dict]:
        doc = self._users.get(user_id)
        return copy.deepcopy(doc) if doc else None

    def get_by_email(self, email: str) -> Optional[Dict]:
        with self._lock:
            users = list(self._users.values())
        for doc in users:
            if doc["email"] == email:
                return copy.deepcopy(doc)
        return None

    def insert(self, user: User) -> str:
        with self._lock:
            if any(u["email"] == user.email for u in self._users.values()):
                raise DuplicateEmail()
            user_id = new_id()
            self._users[user_id] = {"id": user_id, **user.model_dump()}
        return user_id

    def set_password_hash(self, user_id: str, password_hash: str) -> bool:
        with self._lock:
            doc = self._users.get(user_id)
            if not doc:
                return False
            doc["password_hash"] = password_hash
        return True


# --------- Products ---------

class MongoProductRepository:
    def __init__(self, database: Database):
        self.collection = database["product"]

    def list(self) -> List[Dict]:
        with storage_errors("product list"):
            return [sanitize(p) for p in self.collection.find({})]

    def get(self, product_id: str) -> Optional[Dict]:
        with storage_errors("product lookup"):
            return sanitize(self.collection.find_one({"_id": ObjectId(product_id)}))

    def get_many(self, product_ids: List[str]) -> Dict[str, Dict]:
        if not product_ids:
            return {}
        with storage_errors("product lookup"):
            cursor = self.collection.find({"_id": {"$in": [ObjectId(p) for p in product_ids]}})
            return {str(p["_id"]): sanitize(p) for p in cursor}

    def insert(self, product: Product) -> Dict:
        doc = product.model_dump()
        with storage_errors("product insert"):
            res = self.collection.insert_one(doc)
        doc["_id"] = res.inserted_id
        return sanitize(doc)


class LocalProductRepository:
    def __init__(self):
        self._products: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def list(self) -> List[Dict]:
        with self._lock:
            products = list(self._products.values())
        return [copy.deepcopy(p) for p in products]

    def get(self, product_id: str) -> Optional[Dict]:
        doc = self._products.get(product_id)
        return copy.deepcopy(doc) if doc else None

    def get_many(self, product_ids: List[str]) -> Dict[str, Dict]:
        return {pid: copy.deepcopy(self._products[pid]) for pid in product_ids if pid in self._products}

    def insert(self, product: Product) -> Dict:
        product_id = new_id()
        doc = {"id": product_id, **product.model_dump()}
        with self._lock:
            self._products[product_id] = doc
        return copy.deepcopy(doc)


# --------- Carts ---------

class MongoCartRepository:
    def __init__(self, database: Database):
        self.collection = database["cart"]

    def get_by_user(self, user_id: str) -> Optional[Dict]:
        with storage_errors("cart lookup"):
            return sanitize(self.collection.find_one({"user_id": user_id}))

    def save(self, cart: Dict) -> Dict:
        doc = {k: v for k, v in cart.items() if k != "id"}
        doc["_id"] = ObjectId(cart["id"])
        with storage_errors("cart save"):
            self.collection.replace_one({"user_id": cart["user_id"]}, doc, upsert=True)
        return sanitize(doc)


class LocalCartRepository:
    def __init__(self):
        self._carts: Dict[str, Dict[str, Any]] = {}

    def get_by_user(self, user_id: str) -> Optional[Dict]:
        doc = self._carts.get(user_id)
        return copy.deepcopy(doc) if doc else None

    def save(self, cart: Dict) -> Dict:
        self._carts[cart["user_id"]] = copy.deepcopy(cart)
        return copy.deepcopy(cart)


class Repositories:
    def __init__(self, users, products, carts):
        self.users = users
        self.products = products
        self.carts = carts


def build_repositories(database: Optional[Database]) -> Repositories:
    if database is None:
        return Repositories(LocalUserRepository(), LocalProductRepository(), LocalCartRepository())
    return Repositories(
        MongoUserRepository(database),
        MongoProductRepository(database),
        MongoCartRepository(database),
    )

