import logging

from fastapi import APIRouter, Depends, HTTPException

from config import Settings, get_settings
from database import USER, EntityStore
from deps import get_current_user, get_store
from schemas import AuthOut, LoginIn, SignupIn, UserOut
from security import create_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)

router = APIRouter()


def _user_out(user: dict) -> UserOut:
    return UserOut(id=str(user["_id"]), username=user["username"], email=user["email"])


@router.post("/signup", response_model=AuthOut, status_code=201)
def signup(
    payload: SignupIn,
    store: EntityStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    email = payload.email.lower()
    existing = store.find_one(USER, {"$or": [{"email": email}, {"username": payload.username}]})
    if existing:
        message = "Email already in use" if existing.get("email") == email else "Username already taken"
        raise HTTPException(400, message)

    user = store.create(
        USER,
        {
            "username": payload.username,
            "email": email,
            "password_hash": get_password_hash(payload.password),
        },
    )
    logger.info("New user %s", user["_id"])
    token = create_access_token(settings, {"sub": str(user["_id"])})
    return AuthOut(token=token, user=_user_out(user))


@router.post("/login", response_model=AuthOut)
def login(
    payload: LoginIn,
    store: EntityStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    user = store.find_one(USER, {"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(401, "Invalid credentials")
    token = create_access_token(settings, {"sub": str(user["_id"])})
    return AuthOut(token=token, user=_user_out(user))


@router.get("/me", response_model=UserOut)
def me(current: UserOut = Depends(get_current_user)):
    return current
