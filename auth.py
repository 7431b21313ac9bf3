"""Password hashing, bearer tokens and the current-user dependencies."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import jwt
from fastapi import Depends, Request
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr

import config
import database
from errors import AuthenticationError, AuthorizationError

logger = logging.getLogger("sprintcart.auth")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ADMIN_ROLES = ("admin", "staff")

# Checked in order; headers first, then the query string for clients that
# cannot set headers.
TOKEN_HEADERS = ("x-auth-token", "x-access-token")
TOKEN_QUERY_PARAM = "token"


class TokenData(BaseModel):
    user_id: str
    email: EmailStr
    role: str


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_token(user_doc: Dict[str, Any]) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_doc.get("_id")),
        "email": user_doc.get("email"),
        "role": user_doc.get("role", "customer"),
        "exp": now + timedelta(minutes=config.JWT_EXP_MIN),
        "iat": now,
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm="HS256")


def decode_token(token: str) -> TokenData:
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=["HS256"])
        return TokenData(user_id=payload["sub"], email=payload["email"], role=payload.get("role", "customer"))
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise AuthenticationError("Invalid token")


def extract_token(request: Request) -> Tuple[Optional[str], str]:
    """Return ``(token, source)``; token is None when nothing was sent."""
    authorization = request.headers.get("authorization")
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip(), "authorization"
    for header in TOKEN_HEADERS:
        value = request.headers.get(header)
        if value:
            return value, header
    value = request.query_params.get(TOKEN_QUERY_PARAM)
    if value:
        return value, "query"
    return None, "none"


def get_current_user(request: Request) -> Dict[str, Any]:
    token, source = extract_token(request)
    if not token:
        logger.warning("Auth failed: no token path=%s", request.url.path)
        raise AuthenticationError("No token, access denied")
    try:
        token_data = decode_token(token)
    except AuthenticationError as exc:
        logger.warning("Auth failed: %s path=%s source=%s", exc.message, request.url.path, source)
        raise
    user = database.find_by_id("user", token_data.user_id)
    if not user or not user.get("is_active", True):
        logger.warning("Auth failed: user not found path=%s source=%s", request.url.path, source)
        raise AuthenticationError("User not found")
    return user


def is_admin(user: Dict[str, Any]) -> bool:
    return user.get("role") in ADMIN_ROLES


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if not is_admin(user):
        raise AuthorizationError("Admin access only")
    return user


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "name": user["name"],
        "email": user["email"],
        "role": user.get("role", "customer"),
    }
