from __future__ import annotations

import logging
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from online_courses.core.logging import user_id_var
from online_courses.models.principal import Principal
from online_courses.services.crm_sync import CrmContact
from online_courses.services.token_service import SigningKeyStore

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

HUBSPOT_COOKIE = "hubspotutk"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_signing_keys(request: Request) -> SigningKeyStore:
    return request.app.state.signing_keys


async def require_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    keys: Annotated[SigningKeyStore, Depends(get_signing_keys)],
) -> Principal:
    """Validate the bearer token and return the caller's Principal.

    Async so the user id ContextVar is set in the request task; sync
    dependencies run in a worker thread.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        claims = keys.decode(credentials.credentials)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    roles = claims.get("roles") or []
    principal = Principal(
        user_id=str(claims["sub"]),
        email=claims.get("email"),
        first_name=claims.get("given_name"),
        last_name=claims.get("family_name"),
        roles=frozenset(roles if isinstance(roles, list) else [roles]),
    )
    user_id_var.set(principal.user_id)
    return principal


CurrentUser = Annotated[Principal, Depends(require_user)]


def crm_contact(request: Request, principal: CurrentUser) -> CrmContact:
    """CRM identity for the caller, with the HubSpot cookie and client address."""
    return CrmContact(
        email=principal.email,
        first_name=principal.first_name,
        last_name=principal.last_name,
        hutk=request.cookies.get(HUBSPOT_COOKIE),
        ip_address=request.client.host if request.client else None,
    )
