"""Caller identity dependencies for member and operator APIs."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.api.errors import as_http_exception
from superfan_api.db.session import get_session
from superfan_api.domain.errors import Unauthorized
from superfan_api.models.user import User
from superfan_api.services.identity import IdentityService


async def require_user(
    session_user: str | None = Header(None, alias="X-Session-User"),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Resolve the authenticated user from the forwarded session header."""

    if not session_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "Missing session user context"},
        )

    try:
        user_id = UUID(session_user)
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "Invalid session user identifier"},
        ) from error

    try:
        return await IdentityService(db).get_active_user(user_id)
    except Unauthorized as exc:
        raise as_http_exception(exc) from exc


async def require_admin(user: User = Depends(require_user)) -> User:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "forbidden", "message": "Admin role required"},
        )
    return user
