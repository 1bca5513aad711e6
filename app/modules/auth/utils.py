from datetime import datetime, timedelta, timezone
from typing import Optional
import secrets
import jwt
from app.core.config import settings

SHOP_SUBJECT = "shop"


def verify_shop_password(candidate: str) -> bool:
    """Compara contra la contraseña única de la tienda en tiempo constante."""
    return secrets.compare_digest(candidate.encode("utf-8"), settings.SHOP_PASSWORD.encode("utf-8"))


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token with an expiration time.
    If expires_delta is not provided, it defaults to ACCESS_TOKEN_EXPIRE_MINUTES.
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.APP_SECRET_STRING, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and validate a token; raises jwt.PyJWTError when invalid or expired."""
    payload = jwt.decode(token, settings.APP_SECRET_STRING, algorithms=[settings.ALGORITHM])
    if payload.get("type") != "access" or payload.get("sub") != SHOP_SUBJECT:
        raise jwt.InvalidTokenError("Unexpected token subject or type")
    return payload
