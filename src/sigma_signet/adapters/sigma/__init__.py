"""SIGMA identity provider clients."""

from sigma_signet.adapters.sigma.authorize import AuthorizationUrlBuilder, Prompt
from sigma_signet.adapters.sigma.exchange import CodeExchanger, TokenResponse
from sigma_signet.adapters.sigma.token_builder import SecureTokenBuilder, select_encryption_key

__all__ = [
    "AuthorizationUrlBuilder",
    "CodeExchanger",
    "Prompt",
    "SecureTokenBuilder",
    "TokenResponse",
    "select_encryption_key",
]
