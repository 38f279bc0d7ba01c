"""
Database Schemas for the Shop API

MongoDB collections are defined below using Pydantic models. Each class maps
to one collection, named by its repository in repositories.py:
- user: registered users (customers and admins)
- product: catalog entries
- cart: one shopping cart per user

Identifiers are stored and compared as canonical ObjectId hex strings.
"""

from typing import Any, List, Optional

from bson import ObjectId
from pydantic import BaseModel, EmailStr, Field, field_validator

from errors import ValidationError


def canonical_id(value: Any) -> str:
    """Normalize an ObjectId or its string form to lowercase hex."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, str) and ObjectId.is_valid(value.strip()):
        return str(ObjectId(value.strip()))
    raise ValidationError("Invalid id")


def new_id() -> str:
    return str(ObjectId())


class User(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password_hash: str = Field(..., description="BCrypt hash of password")
    is_admin: bool = Field(False)


class Product(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: float = Field(..., ge=0, description="Unit price")
    image: Optional[str] = Field(None, description="Image URL")
    category: Optional[str] = None
    stock: int = Field(0, ge=0)


class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)

    @field_validator("product_id", mode="before")
    @classmethod
    def _canonical_product_id(cls, v):
        return canonical_id(v)


class Cart(BaseModel):
    user_id: str
    items: List[CartItem] = Field(default_factory=list)
    total_price: float = Field(0, ge=0)
