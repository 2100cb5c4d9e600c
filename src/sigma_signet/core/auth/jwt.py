"""Session cookie tokens for accounts signed in through SIGMA."""

from datetime import datetime, timedelta, timezone

import jwt
from pydantic import BaseModel


class TokenError(Exception):
    """Raised when session token validation fails."""

    pass


ALGORITHM = "HS256"
SESSION_EXPIRE_MINUTES = 720


class SessionClaims(BaseModel):
    """Session token payload."""

    sub: str  # account id
    username: str
    exp: int
    iat: int


def create_session_token(
    account_id: str,
    username: str,
    secret_key: str,
    expire_minutes: int = SESSION_EXPIRE_MINUTES,
) -> str:
    """Create a signed session token.

    Args:
        account_id: Local account identifier
        username: Local account username
        secret_key: HMAC signing key
        expire_minutes: Session lifetime

    Returns:
        Encoded JWT string
    """
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expire_minutes)

    payload = {
        "sub": account_id,
        "username": username,
        "exp": int(expire.timestamp()),
        "iat": int(now.timestamp()),
    }

    return jwt.encode(payload, secret_key, algorithm=ALGORITHM)


def decode_session_token(token: str, secret_key: str) -> SessionClaims:
    """Decode and validate a session token.

    Args:
        token: Encoded JWT string
        secret_key: HMAC signing key

    Returns:
        Decoded session claims

    Raises:
        TokenError: If token is invalid or expired
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
        return SessionClaims(
            sub=payload["sub"],
            username=payload["username"],
            exp=payload["exp"],
            iat=payload["iat"],
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Session has expired") from None
    except (jwt.InvalidTokenError, KeyError) as e:
        raise TokenError(f"Invalid session token: {e}") from None
