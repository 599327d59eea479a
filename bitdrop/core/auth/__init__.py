"""
Caller authentication.

Turns an Authorization header into a caller identity.
"""

from .tokens import TokenClaims, TokenVerifier, create_access_token, extract_bearer_token

__all__ = ["TokenClaims", "TokenVerifier", "create_access_token", "extract_bearer_token"]
