from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.core.config import settings

JWT_ALGORITHM = "HS256"


def create_access_token(owner_id: str, expires_delta: timedelta = timedelta(hours=1), secret: str | None = None) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(owner_id),
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
    }
    return jwt.encode(claims, secret or settings.AUTH_JWT_SECRET, algorithm=JWT_ALGORITHM)


def owner_id_from_token(token: str | None, secret: str | None = None) -> str | None:
    """Return the token subject, or None when the token is missing, expired or forged."""
    raw = str(token or "").strip()
    if not raw:
        return None
    try:
        claims = jwt.decode(raw, secret or settings.AUTH_JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    subject = str(claims.get("sub") or "").strip()
    return subject or None
