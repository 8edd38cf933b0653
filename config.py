"""
Application settings

Everything is read from the environment (a local .env is honoured) into a
single Settings object that is handed to the store, the asset service and
the coordinators when they are built.
"""
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:3002",
]


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return list(default)
    return [item.strip().rstrip("/") for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    database_url: Optional[str] = None
    database_name: Optional[str] = None

    secret_key: str = "supersecretkey"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    allowed_origins: List[str] = Field(default_factory=lambda: list(DEFAULT_ORIGINS))

    cloudinary_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    category_folder: str = "ecommerce/categories"
    product_folder: str = "ecommerce/products"

    max_upload_files: int = 5
    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_image_types: List[str] = Field(
        default_factory=lambda: ["image/jpeg", "image/png", "image/webp"]
    )

    # Delete subcategories with their category and reviews with their product.
    cascade_children: bool = False
    rating_recompute_attempts: int = Field(5, ge=1)

    log_level: str = "INFO"
    port: int = 8000


def load_settings(env_path: Optional[str] = None) -> Settings:
    load_dotenv(dotenv_path=env_path)
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        database_name=os.getenv("DATABASE_NAME"),
        secret_key=os.getenv("SECRET_KEY", "supersecretkey"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24)),
        allowed_origins=_env_list("ALLOWED_ORIGINS", DEFAULT_ORIGINS),
        cloudinary_name=os.getenv("CLOUDINARY_NAME"),
        cloudinary_api_key=os.getenv("CLOUDINARY_API_KEY"),
        cloudinary_api_secret=os.getenv("CLOUDINARY_API_SECRET"),
        cascade_children=_env_bool("CASCADE_CHILDREN"),
        rating_recompute_attempts=int(os.getenv("RATING_RECOMPUTE_ATTEMPTS", 5)),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        port=int(os.getenv("PORT", 8000)),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
