from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.db import engine as db_engine
from app.models.principal import Principal
from app.models.user import normalize_role
from app.repos.registry import Repos, in_memory_repos, sql_repos
from app.services import access_policy, token_service

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal.

    Used as a FastAPI dependency on any protected endpoint.
    """
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    role = normalize_role(str(claims["role"]))
    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError:
        user_id = None
    if role is None or user_id is None:
        logger.warning("Token with malformed sub/role rejected")
        raise _unauthorized("Invalid token")

    principal = Principal(user_id=user_id, role=role)
    logger.debug("Token validated for user=%s role=%s", principal.user_id, principal.role)
    return principal


def require_action(action: str):
    """Dependency factory: role-level gate for one access-policy action.

    Usage: Depends(require_action(Action.CLASS_CREATE))
    Returns the Principal when the role may perform the action, else 403.
    Ownership of the concrete target is checked later by the service.
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not access_policy.can(principal, action):
            logger.warning(
                "Access denied: user=%s role=%s action=%s",
                principal.user_id,
                principal.role,
                action,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


async def get_repos() -> AsyncGenerator[Repos, None]:
    """Yield the repository bundle for one request.

    With a database: SQL repos on a request-scoped session that commits on
    success and rolls back on any exception.  Without one: the in-memory
    repos.
    """
    factory = db_engine.async_session_factory
    if factory is None:
        yield in_memory_repos()
        return
    async with factory() as session:
        try:
            yield sql_repos(session)
            await session.commit()
        except Exception:
            await session.rollback()
            raise


ReposDep = Annotated[Repos, Depends(get_repos)]
CurrentUser = Annotated[Principal, Depends(require_user)]
