"""
Hachage des mots de passe et jetons JWT (accès + rafraîchissement).

Le jeton d'accès est court (15 min) et transmis en Bearer ; le jeton de
rafraîchissement (7 jours) est signé avec un secret distinct et transmis
dans un cookie HTTP-only.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import settings

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


def _encode(claims: dict, secret: str, expires_delta: timedelta) -> str:
    to_encode = claims.copy()
    to_encode["exp"] = datetime.now(timezone.utc) + expires_delta
    return jwt.encode(to_encode, secret, algorithm=settings.ALGORITHM)


def create_access_token(user_id, role: str, expires_delta: Optional[timedelta] = None) -> str:
    return _encode(
        {"sub": str(user_id), "role": role, "type": ACCESS},
        settings.ACCESS_TOKEN_SECRET,
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user_id, role: str, name: str = "", expires_delta: Optional[timedelta] = None) -> str:
    return _encode(
        {"sub": str(user_id), "role": role, "name": name, "type": REFRESH},
        settings.REFRESH_TOKEN_SECRET,
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def _decode(token: str, secret: str, expected_type: str) -> dict:
    payload = jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    if payload.get("type") != expected_type or not payload.get("sub"):
        raise JWTError("Type de jeton invalide")
    return payload


def decode_access_token(token: str) -> dict:
    """Décode un jeton d'accès. Lève JWTError si signature, expiration ou type invalide."""
    return _decode(token, settings.ACCESS_TOKEN_SECRET, ACCESS)


def decode_refresh_token(token: str) -> dict:
    """Décode un jeton de rafraîchissement. Lève JWTError si invalide."""
    return _decode(token, settings.REFRESH_TOKEN_SECRET, REFRESH)
