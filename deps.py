"""
FastAPI dependencies

Route handlers receive the store, the asset service and the coordinators
through Depends(); tests swap them with app.dependency_overrides.
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from assets import AssetService, CloudinaryAssetService
from cascade import CascadeCoordinator
from config import Settings, get_settings
from database import USER, EntityStore, connect, parse_object_id
from errors import DependencyFailure, Unauthorized, ValidationFailure
from ratings import RatingAggregator
from schemas import UserOut
from security import decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


@lru_cache
def default_store() -> Optional[EntityStore]:
    db = connect(get_settings())
    if db is None:
        return None
    store = EntityStore(db)
    store.ensure_indexes()
    return store


def get_store() -> EntityStore:
    store = default_store()
    if store is None:
        raise DependencyFailure("Database not configured")
    return store


@lru_cache
def default_assets() -> AssetService:
    return CloudinaryAssetService(get_settings())


def get_assets() -> AssetService:
    return default_assets()


def get_aggregator(
    store: EntityStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> RatingAggregator:
    return RatingAggregator(store, max_attempts=settings.rating_recompute_attempts)


def get_coordinator(
    store: EntityStore = Depends(get_store),
    assets: AssetService = Depends(get_assets),
    aggregator: RatingAggregator = Depends(get_aggregator),
    settings: Settings = Depends(get_settings),
) -> CascadeCoordinator:
    return CascadeCoordinator(store, assets, aggregator, settings)


def _load_user(store: EntityStore, settings: Settings, token: str) -> UserOut:
    try:
        user_id = parse_object_id(decode_access_token(settings, token))
    except ValidationFailure:
        raise Unauthorized("Could not validate credentials")
    user = store.find_by_id(USER, user_id)
    if not user:
        raise Unauthorized("Could not validate credentials")
    return UserOut(id=str(user["_id"]), username=user["username"], email=user["email"])


def get_current_user(
    token: str = Depends(oauth2_scheme),
    store: EntityStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> UserOut:
    return _load_user(store, settings, token)


def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    store: EntityStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> Optional[UserOut]:
    if not token:
        return None
    return _load_user(store, settings, token)
