from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from coachsched.core.config import settings

# Access tokens are minted by the auth service with the shared secret. The
# encoder lives here so tools and tests produce tokens in the same shape.
ACCESS_TOKEN_EXPIRE_MINUTES = 15


def create_access_token(subject: str | int, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    expire = datetime.now(UTC) + timedelta(minutes=expires_minutes)
    to_encode = {"sub": str(subject), "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> str | None:
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.algorithm]
        )
        if payload.get("type") != "access":
            return None
        sub = payload.get("sub")
        return str(sub) if sub else None
    except JWTError:
        return None
