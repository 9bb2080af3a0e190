import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from core.config import Settings, get_settings
from core.exceptions import AuthenticationError
from schemas.auth import TokenData


ACCESS_TOKEN_TTL = timedelta(minutes=60)


def _settings() -> Settings:  # lazy accessor to allow tests to set env first
    return get_settings()


_logger = logging.getLogger(__name__)


def create_access_token(
    data: dict[str, Any], expires_delta: timedelta | None = None
) -> str:
    """Encodes a JWT with `sub` (subject) and expiry"""
    to_encode = data.copy()
    to_encode.update({"exp": datetime.now(UTC) + (expires_delta or ACCESS_TOKEN_TTL)})
    s = _settings()
    return jwt.encode(to_encode, s.SECRET_KEY, algorithm=s.ALGORITHM)


def decode_token(token: str) -> TokenData:
    """Decode and validate an identity assertion.

    Raises:
        AuthenticationError: the token is malformed, expired, badly signed or
            carries no ``sub`` claim.
    """
    try:
        s = _settings()
        payload = jwt.decode(
            token,
            s.SECRET_KEY,
            algorithms=[s.ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as err:
        _logger.debug("Rejected identity token: %s", err)
        raise AuthenticationError() from err

    sub = payload.get("sub")
    if not sub:
        raise AuthenticationError("Token missing subject")
    return TokenData(sub=str(sub), email=payload.get("email"))
