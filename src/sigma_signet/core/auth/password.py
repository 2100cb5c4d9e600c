"""Random password hashes for accounts that never sign in with a password."""

import secrets

import bcrypt

# bcrypt only uses the first 72 bytes of input.
RANDOM_PASSWORD_BYTES = 48


def generate_password_hash() -> str:
    """Hash a freshly generated random password with bcrypt.

    The plaintext is discarded, so the account can only be reached through
    the OIDC flow.

    Returns:
        Bcrypt hash string
    """
    password = secrets.token_urlsafe(RANDOM_PASSWORD_BYTES)[:72]
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())
    return hashed.decode("utf-8")
