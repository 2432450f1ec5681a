import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import DuplicateKeyError
from werkzeug.security import check_password_hash, generate_password_hash

import config
from database import create_document, get_db, to_object_id, update_document, utcnow
from schemas import PasswordReset, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

bearer_scheme = HTTPBearer(auto_error=False)


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=80)
    email: EmailStr = Field(..., description="Login email")
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    token: str
    username: str


class VerifyRequest(BaseModel):
    token: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(..., min_length=6)


def to_utc(dt: datetime) -> datetime:
    # Mongo hands back naive datetimes that are already UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def create_access_token(user_id: str, username: str, expires_minutes: Optional[int] = None) -> str:
    minutes = config.JWT_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    payload = {
        "sub": user_id,
        "username": username,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Raises jwt.InvalidTokenError (incl. ExpiredSignatureError) on a bad token."""
    return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])


def current_user_id(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> str:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Token not found")
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user_id


@router.post("/register", response_model=AuthResponse)
def register(payload: RegisterRequest):
    email = payload.email.strip().lower()
    users = get_db()["user"]
    if users.find_one({"email": email}):
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(
        username=payload.username.strip(),
        email=email,
        password_hash=generate_password_hash(payload.password),
    )
    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Email already registered")
    logger.info("Registered user %s", user_id)
    return AuthResponse(token=create_access_token(user_id, user.username), username=user.username)


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest):
    user = get_db()["user"].find_one({"email": payload.email.strip().lower()})
    if not user or not check_password_hash(user["password_hash"], payload.password):
        logger.warning("Failed login for %s", payload.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    user_id = str(user["_id"])
    logger.info("User %s logged in", user_id)
    return AuthResponse(token=create_access_token(user_id, user["username"]), username=user["username"])


@router.post("/verify")
def verify(payload: VerifyRequest):
    try:
        decode_access_token(payload.token)
    except jwt.InvalidTokenError:
        return {"is_valid": False}
    return {"is_valid": True}


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordRequest):
    user = get_db()["user"].find_one({"email": payload.email.strip().lower()})
    # Same answer whether or not the account exists
    if user:
        reset = PasswordReset(
            user_id=str(user["_id"]),
            token=secrets.token_urlsafe(32),
            expires_at=utcnow() + timedelta(minutes=config.RESET_TOKEN_TTL_MINUTES),
        )
        create_document("passwordreset", reset)
        # TODO: send the token by mail once an SMTP relay is configured
        logger.info("Issued password reset token for user %s: %s", reset.user_id, reset.token)
    return {"status": "ok"}


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest):
    resets = get_db()["passwordreset"]
    reset = resets.find_one({"token": payload.token})
    if not reset or reset.get("used") or to_utc(reset["expires_at"]) < utcnow():
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    found = update_document(
        "user",
        to_object_id(reset["user_id"]),
        {"password_hash": generate_password_hash(payload.new_password)},
    )
    if not found:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    update_document("passwordreset", reset["_id"], {"used": True})
    logger.info("Password reset for user %s", reset["user_id"])
    return {"status": "ok"}
