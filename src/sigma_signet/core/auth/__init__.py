"""Session tokens and password hashing."""

from sigma_signet.core.auth.jwt import (
    SessionClaims,
    TokenError,
    create_session_token,
    decode_session_token,
)
from sigma_signet.core.auth.password import generate_password_hash

__all__ = [
    "SessionClaims",
    "TokenError",
    "create_session_token",
    "decode_session_token",
    "generate_password_hash",
]
