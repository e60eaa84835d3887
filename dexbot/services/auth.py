"""JWT session tokens. The subject is the caller's own wallet address."""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from dexbot.config import settings


def create_access_token(subject: str, expire_minutes: int | None = None) -> str:
    issued = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expire_minutes or settings.jwt_expire_minutes)
    claims = {"sub": subject, "iat": issued, "exp": issued + lifetime}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> str | None:
    """Return the wallet address a token was issued for, or None if it is invalid or expired."""
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    subject = claims.get("sub")
    return subject if isinstance(subject, str) and subject else None
