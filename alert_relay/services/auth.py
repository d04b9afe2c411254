"""Admin authentication: shared-password check and JWT bearer tokens."""

import hmac
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from alert_relay.config import settings

ADMIN_SUBJECT = "admin"


def verify_admin_password(password: str) -> bool:
    expected = settings.admin_password
    if not expected:
        return False
    return hmac.compare_digest(password.encode("utf-8"), expected.encode("utf-8"))


def create_access_token(subject: str = ADMIN_SUBJECT) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {"sub": subject, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> str | None:
    """Decode JWT and return the subject. Returns None on failure."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return payload.get("sub")
    except JWTError:
        return None
