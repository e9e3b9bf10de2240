"""
TradeDesk Security Utilities

JWT handling for the bearer tokens issued by the identity provider.
"""

from datetime import datetime, timedelta

from jose import JWTError, jwt

from core.config import get_settings


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token."""
    runtime_settings = get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=24))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, runtime_settings.jwt_secret, algorithm=runtime_settings.jwt_algorithm)


def decode_access_token(token: str) -> dict | None:
    """Decode and validate an access token. Returns None when invalid or expired."""
    runtime_settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            runtime_settings.jwt_secret,
            algorithms=[runtime_settings.jwt_algorithm],
        )
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload
