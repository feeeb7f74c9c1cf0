from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import jwt

from dinecore.core.config import settings

ALGO = "HS256"

ROLE_CUSTOMER = "customer"
ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """Already-authenticated caller. Credentials are verified upstream."""

    id: str
    role: str = ROLE_CUSTOMER
    email: str = ""


def create_access_token(subject: str, role: str = ROLE_CUSTOMER, email: str = "", expires_minutes: int | None = None) -> str:
    if expires_minutes is None:
        expires_minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES
    exp = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {"sub": subject, "role": role, "email": email, "type": "access", "exp": exp}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGO)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGO])
