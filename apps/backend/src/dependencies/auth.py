from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.exceptions import AuthenticationError
from core.security import decode_token
from schemas.auth import Identity
from services.ai.interfaces import IdentityVerifier


# --------------------------------------------------------------------------- #
# Common constants / helpers
# --------------------------------------------------------------------------- #
LOGGER = logging.getLogger(__name__)
BEARER = "Bearer"

# auto_error=False so a missing header flows through AuthenticationError
bearer_scheme = HTTPBearer(auto_error=False)


class JwtIdentityVerifier:
    """Verify signed identity assertions issued by the auth provider."""

    def verify(self, token: str) -> Identity:
        token_data = decode_token(token)
        return Identity(uid=token_data.sub, email=token_data.email)


@lru_cache
def get_identity_verifier() -> IdentityVerifier:
    return JwtIdentityVerifier()


# --------------------------------------------------------------------------- #
# The dependency
# --------------------------------------------------------------------------- #
async def get_current_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    verifier: Annotated[IdentityVerifier, Depends(get_identity_verifier)],
) -> Identity:
    """
    Resolve the caller from the ``Authorization: Bearer`` header.

    Raises
    ------
    AuthenticationError
        If the header is missing, not a bearer token, or fails verification.
    """
    if credentials is None or credentials.scheme.lower() != BEARER.lower():
        LOGGER.debug("Missing bearer credentials")
        raise AuthenticationError("Missing bearer token")
    if not credentials.credentials:
        raise AuthenticationError("Missing bearer token")

    return verifier.verify(credentials.credentials)


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
