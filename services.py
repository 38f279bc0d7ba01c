"""
Business logic: credentials, catalog and carts.

Services take their repositories in the constructor and raise errors from
errors.py; they know nothing about HTTP.
"""
import logging
import threading
import weakref
from typing import Dict, List, Optional

from auth import hash_password, verify_password
from errors import DuplicateEmail, InvalidCredentials, NotFound, UserNotFound, ValidationError
from schemas import Cart, CartItem, Product, User, canonical_id, new_id

logger = logging.getLogger(__name__)


def public_user(doc: Dict) -> Dict:
    return {k: v for k, v in doc.items() if k != "password_hash"}


class CredentialStore:
    def __init__(self, users):
        self.users = users

    def register(self, name: Optional[str], email: Optional[str], password: Optional[str]) -> str:
        if not name or not name.strip() or not email or not password:
            raise ValidationError("name, email and password are required")
        email = email.strip().lower()
        if self.users.get_by_email(email):
            raise DuplicateEmail()
        user = User(name=name.strip(), email=email, password_hash=hash_password(password))
        user_id = self.users.insert(user)
        logger.info("Registered user %s", user_id)
        return user_id

    def authenticate(self, email: str, password: str) -> Dict:
        user = self.users.get_by_email(email.strip().lower())
        if not user:
            logger.info("Login attempt for unknown email")
            raise UserNotFound()
        if not verify_password(password, user.get("password_hash", "")):
            logger.info("Invalid password for user %s", user["id"])
            raise InvalidCredentials()
        return user

    def get_user(self, user_id: str) -> Dict:
        user = self.users.get(canonical_id(user_id))
        if not user:
            raise NotFound("User not found")
        return public_user(user)

    def change_password(self, user_id: str, old_password: str, new_password: str) -> None:
        if not new_password:
            raise ValidationError("new_password is required")
        user = self.users.get(canonical_id(user_id))
        if not user:
            raise NotFound("User not found")
        if not verify_password(old_password, user.get("password_hash", "")):
            raise InvalidCredentials("Old password incorrect")
        self.users.set_password_hash(user["id"], hash_password(new_password))
        logger.info("Password changed for user %s", user["id"])


class Catalog:
    def __init__(self, products):
        self.products = products

    def list_products(self) -> List[Dict]:
        return self.products.list()

    def get_product(self, product_id: str) -> Dict:
        product = self.products.get(canonical_id(product_id))
        if not product:
            raise NotFound("Product not found")
        return product

    def create_product(self, product: Product) -> Dict:
        return self.products.insert(product)


class CartEngine:
    """
    One cart per user, keyed by user id.

    Load, mutate and save for a given user run under that user's lock, so
    concurrent requests in this process cannot lose each other's updates.
    Separate processes sharing a database are not serialized. A lock lives only
    while some call holds it, so the lock map does not grow with the user count.
    """

    def __init__(self, carts, products):
        self.carts = carts
        self.products = products
        self._locks = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    def _priced(self, cart: Dict) -> Dict:
        """Recompute total_price from current catalog prices."""
        ids = [item["product_id"] for item in cart["items"]]
        prices = self.products.get_many(ids)
        total = 0.0
        for item in cart["items"]:
            product = prices.get(item["product_id"])
            if product:
                total += float(product.get("price", 0.0)) * item["quantity"]
        return {**cart, "total_price": round(total, 2)}

    def _load(self, user_id: str) -> Dict:
        cart = self.carts.get_by_user(user_id)
        if not cart:
            raise NotFound("Cart not found")
        return cart

    def _save(self, cart: Dict) -> Dict:
        validated = Cart(**cart).model_dump()
        return self.carts.save(self._priced({"id": cart["id"], **validated}))

    def get_cart(self, user_id: str) -> Dict:
        return self._priced(self._load(canonical_id(user_id)))

    def add_item(self, user_id: str, product_id: str, quantity: int = 1) -> Dict:
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise ValidationError("Quantity must be a positive integer")
        user_id = canonical_id(user_id)
        product_id = canonical_id(product_id)
        if not self.products.get(product_id):
            raise NotFound("Product not found")

        with self._lock_for(user_id):
            cart = self.carts.get_by_user(user_id) or Cart(user_id=user_id).model_dump()
            cart.setdefault("id", new_id())
            items = [CartItem(**item) for item in cart["items"]]
            for i, item in enumerate(items):
                if item.product_id == product_id:
                    items[i] = CartItem(product_id=product_id, quantity=item.quantity + quantity)
                    break
            else:
                items.append(CartItem(product_id=product_id, quantity=quantity))
            cart["items"] = [item.model_dump() for item in items]
            return self._save(cart)

    def remove_item(self, user_id: str, product_id: str) -> Dict:
        user_id = canonical_id(user_id)
        product_id = canonical_id(product_id)
        with self._lock_for(user_id):
            cart = self._load(user_id)
            kept = [item for item in cart["items"] if canonical_id(item["product_id"]) != product_id]
            return self._save({**cart, "items": kept})

    def clear_cart(self, user_id: str) -> Dict:
        user_id = canonical_id(user_id)
        with self._lock_for(user_id):
            cart = self._load(user_id)
            return self._save({**cart, "items": []})
