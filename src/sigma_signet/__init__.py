"""Sigma Signet - OpenID Connect sign-in against SIGMA."""

__version__ = "0.1.0"
