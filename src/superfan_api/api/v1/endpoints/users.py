"""Identity resolution and account lifecycle."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.api.dependencies.security import require_internal_api_key
from superfan_api.api.dependencies.session import require_admin, require_user
from superfan_api.api.errors import economy_errors
from superfan_api.db.session import get_session
from superfan_api.models.user import User
from superfan_api.services.identity import IdentityService


router = APIRouter(prefix="/users", tags=["Users"])


class ResolveIdentityRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    provider: str = Field(..., min_length=1, max_length=32, description="Auth provider, e.g. wallet or google")
    external_id: str = Field(..., min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    display_name: str | None = Field(default=None, max_length=120)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str | None
    display_name: str | None
    role: str
    is_active: bool
    created_at: datetime | None = None


class ResolveIdentityResponse(BaseModel):
    user: UserResponse
    created: bool


@router.post(
    "/resolve",
    response_model=ResolveIdentityResponse,
    dependencies=[Depends(require_internal_api_key)],
)
async def resolve_identity(
    payload: ResolveIdentityRequest,
    db: AsyncSession = Depends(get_session),
) -> ResolveIdentityResponse:
    """Return the user behind an external identity, creating it on first login."""

    with economy_errors():
        user, created = await IdentityService(db).resolve_or_create_user(
            provider=payload.provider,
            external_id=payload.external_id,
            email=payload.email,
            display_name=payload.display_name,
        )
    return ResolveIdentityResponse(user=UserResponse.model_validate(user), created=created)


@router.get("/me", response_model=UserResponse)
async def current_user(user: User = Depends(require_user)) -> UserResponse:
    return UserResponse.model_validate(user)


@router.post("/{user_id}/deactivate", response_model=UserResponse)
async def deactivate_user(
    user_id: UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    with economy_errors():
        user = await IdentityService(db).deactivate(user_id)
    return UserResponse.model_validate(user)
