"""
Database Schemas for the catalog

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase of the class name.
Input payloads for the routes live next to the document they create.
"""
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

HEX_COLOR = re.compile(r"^#([0-9A-Fa-f]{3}){1,2}$")

RamOption = Literal["2GB", "4GB", "6GB", "8GB", "12GB", "16GB", "32GB"]
SizeOption = Literal["XS", "S", "M", "L", "XL", "XXL", "XXXL"]
WeightOption = Literal["500g", "1kg", "1.5kg", "2kg", "2.5kg", "3kg", "5kg"]


# -----------------------------
# USERS
# -----------------------------
class SignupIn(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(..., min_length=8)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Username must be at least 3 characters")
        return v


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class UserOut(BaseModel):
    id: str
    username: str
    email: EmailStr


class AuthOut(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserOut


# -----------------------------
# CATEGORIES
# -----------------------------
class Category(BaseModel):
    name: str = Field(..., min_length=1)
    slug: Optional[str] = Field(None, description="URL-safe identifier, derived from name when empty")
    images: List[str] = Field(..., min_length=1, description="Hosted image URLs")
    color: str = Field("#FFFFFF")
    parent_id: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Category name is required")
        return v

    @field_validator("color")
    @classmethod
    def check_color(cls, v: str) -> str:
        if not HEX_COLOR.match(v):
            raise ValueError(f"{v} is not a valid hex color code!")
        return v


class SubCategory(BaseModel):
    name: str
    parent_id: Optional[str] = None


class ImageUrlIn(BaseModel):
    img_url: str


# -----------------------------
# PRODUCTS
# -----------------------------
class ProductImage(BaseModel):
    url: str
    storage_id: str


class Product(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    brand: str = Field(..., min_length=1, max_length=50)
    price: float = Field(..., ge=0)
    old_price: Optional[float] = Field(None, ge=0)
    category_id: str
    sub_category_id: Optional[str] = None
    count_in_stock: int = Field(..., ge=0)
    discount: float = Field(0, ge=0, le=100)
    product_ram: List[RamOption] = []
    size: List[SizeOption] = []
    product_weight: List[WeightOption] = []
    location: Optional[str] = Field(None, max_length=100)
    is_featured: bool = False
    images: List[ProductImage] = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class ProductUpdate(BaseModel):
    """Editable product fields. Rating fields are derived and not accepted here."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    brand: Optional[str] = Field(None, min_length=1, max_length=50)
    price: Optional[float] = Field(None, ge=0)
    old_price: Optional[float] = Field(None, ge=0)
    category_id: Optional[str] = None
    sub_category_id: Optional[str] = None
    count_in_stock: Optional[int] = Field(None, ge=0)
    discount: Optional[float] = Field(None, ge=0, le=100)
    product_ram: Optional[List[RamOption]] = None
    size: Optional[List[SizeOption]] = None
    product_weight: Optional[List[WeightOption]] = None
    location: Optional[str] = Field(None, max_length=100)
    is_featured: Optional[bool] = None
    images: Optional[List[ProductImage]] = None


class StorageIdIn(BaseModel):
    storage_id: str


# -----------------------------
# REVIEWS
# -----------------------------
class Review(BaseModel):
    product_id: str
    user_id: Optional[str] = None
    value: int = Field(..., ge=1, le=5)
    text: str = Field(..., min_length=1)
