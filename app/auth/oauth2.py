"""Bearer-token dependency resolving the owner of a request.

Every library route depends on ``get_current_owner``; all record store
access is scoped to the UUID it returns.
"""

import uuid

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from app.auth.jwt import AuthError, owner_id_from_token
from app.settings import settings

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=settings.auth_token_url, auto_error=False)


async def get_current_owner(
    token: str | None = Depends(oauth2_scheme),  # noqa: B008
) -> uuid.UUID:
    """Return the authenticated owner's UUID.

    Raises:
        AuthError: 401 if the Authorization header is missing or invalid.
    """
    if not token:
        raise AuthError("UNAUTHORIZED", "Missing bearer token.")
    return owner_id_from_token(token)
