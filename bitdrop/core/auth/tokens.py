"""
Bearer token verification.

Tokens are HS256 JWTs. Two issuers are accepted side by side: this
service (signed with the application secret) and the auth platform
(signed with the platform secret). Secrets are tried in order and the
first one that validates the signature wins, so existing tokens keep
working while clients move from one issuer to the other.

The identity is read from a typed claim set rather than a raw dict:
the application's `user_id` claim takes priority over the platform's
standard `sub` claim.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import jwt
from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import (
    CredentialExpired,
    InvalidCredential,
    MalformedCredential,
    MissingCredential,
    MissingIdentityClaim,
)

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
ALGORITHM = "HS256"

# Claims checked for the caller identity, highest priority first.
IDENTITY_CLAIMS = ("user_id", "sub")

ACCESS_TOKEN_TTL = timedelta(hours=72)


class TokenClaims(BaseModel):
    """The subset of JWT claims this service reads."""

    model_config = ConfigDict(extra="allow")

    user_id: Optional[str] = None
    sub: Optional[str] = None
    email: Optional[str] = None
    exp: Optional[float] = None

    @property
    def identity(self) -> Optional[str]:
        """First non-empty identity claim in priority order."""
        for name in IDENTITY_CLAIMS:
            value = getattr(self, name)
            if value and value.strip():
                return value.strip()
        return None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.exp is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now.timestamp() > self.exp


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Pull the token out of an Authorization header value."""
    if not authorization:
        raise MissingCredential("Missing Authorization header")

    if not authorization.startswith(BEARER_PREFIX):
        raise MalformedCredential("Malformed token")

    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise MalformedCredential("Malformed token")
    return token


class TokenVerifier:
    """
    Verifies bearer tokens against an ordered list of signing secrets.

    Stateless apart from its secrets, so one instance can be shared by
    every request.
    """

    def __init__(self, secrets: Sequence[str]) -> None:
        self._secrets = [s for s in secrets if s]
        if not self._secrets:
            logger.warning("TokenVerifier created without signing secrets; every token will be rejected")

    def verify(self, authorization: Optional[str]) -> str:
        """
        Return the caller identity for an Authorization header value.

        Raises an Unauthenticated subclass describing the first check
        that failed.
        """
        token = extract_bearer_token(authorization)
        claims = self._decode(token)

        if claims.is_expired():
            raise CredentialExpired("Token expired")

        identity = claims.identity
        if identity is None:
            raise MissingIdentityClaim("Invalid claims")
        return identity

    def _decode(self, token: str) -> TokenClaims:
        for index, secret in enumerate(self._secrets):
            try:
                payload = jwt.decode(
                    token,
                    secret,
                    algorithms=[ALGORITHM],
                    options={"verify_aud": False},
                )
            except jwt.ExpiredSignatureError:
                # Only raised after the signature checked out
                raise CredentialExpired("Token expired")
            except jwt.InvalidSignatureError:
                continue
            except jwt.InvalidTokenError as e:
                logger.debug(
                    "Token rejected",
                    extra={"secret_index": index, "error": str(e)}
                )
                raise InvalidCredential("Invalid token")

            try:
                return TokenClaims.model_validate(payload)
            except ValidationError:
                raise MissingIdentityClaim("Invalid claims")

        raise InvalidCredential("Invalid token")


def create_access_token(
    user_id: str,
    secret: str,
    email: Optional[str] = None,
    ttl: timedelta = ACCESS_TOKEN_TTL,
) -> str:
    """Mint an application-issued access token."""
    claims = {
        "user_id": user_id,
        "exp": int((datetime.now(timezone.utc) + ttl).timestamp()),
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm=ALGORITHM)
