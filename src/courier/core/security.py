"""Access token helpers built on python-jose."""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Any

from jose import JWTError, jwt

from courier.core.settings import settings
from courier.services.errors import Unauthorized

# Claims that may carry the user id; ``userId`` is what the legacy issuer signs.
SUBJECT_CLAIMS = ("sub", "userId")


@lru_cache(maxsize=8)
def _compile_user_id_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def is_valid_user_id(value: object) -> bool:
    """Return True if ``value`` is a syntactically valid user identifier."""
    if not isinstance(value, str):
        return False
    return _compile_user_id_pattern(settings.user_id_pattern).fullmatch(value) is not None


def create_access_token(
    user_id: str,
    extra_claims: dict[str, Any] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed access token for ``user_id``.

    A negative ``expires_delta`` yields an already expired token.
    """
    to_encode: dict[str, Any] = {"sub": user_id}
    if extra_claims:
        to_encode.update(extra_claims)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    expire = datetime.now(UTC) + lifetime
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def decode_access_token(token: str | None) -> str:
    """Verify ``token`` and return the user id it was issued for.

    Raises:
        Unauthorized: If the token is missing, expired, badly signed or
            carries no usable subject.
    """
    if not token:
        raise Unauthorized("Authentication required")
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as err:
        raise Unauthorized("Could not validate credentials") from err

    for claim in SUBJECT_CLAIMS:
        subject = payload.get(claim)
        if is_valid_user_id(subject):
            return subject
    raise Unauthorized("Could not validate credentials")


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer`` header value."""
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()
