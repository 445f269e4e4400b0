"""Shared API dependencies for authentication and common functionality."""

from typing import Annotated

from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from courier.core.security import decode_access_token
from courier.db.session import get_db
from courier.services.errors import Unauthorized
from courier.services.message_store import MessageStore
from courier.services.profiles import ProfileDirectory, get_profile_directory
from courier.services.relay import RelayGateway, get_relay_gateway

# HTTP Bearer scheme; the session cookie is accepted when the header is absent
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    token: Annotated[str | None, Cookie()] = None,
) -> str:
    """Return the user id of the authenticated caller.

    Args:
        credentials: HTTP Bearer token credentials, if sent
        token: Session cookie set by the login flow, if sent

    Returns:
        The user id carried by the access token

    Raises:
        HTTPException: If no valid token was presented
    """
    raw = credentials.credentials if credentials is not None else token
    try:
        return decode_access_token(raw)
    except Unauthorized as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=err.reason,
            headers={"WWW-Authenticate": "Bearer"},
        ) from err


def get_message_store(db: SessionDep) -> MessageStore:
    """Return a message store bound to the request's session."""
    return MessageStore(db)


# Type aliases for common dependencies
CurrentUserDep = Annotated[str, Depends(get_current_user_id)]
MessageStoreDep = Annotated[MessageStore, Depends(get_message_store)]
GatewayDep = Annotated[RelayGateway, Depends(get_relay_gateway)]
ProfilesDep = Annotated[ProfileDirectory, Depends(get_profile_directory)]
