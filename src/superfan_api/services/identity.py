"""Internal user identity backed by external auth identifiers."""

from __future__ import annotations

from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.core.time import utcnow
from superfan_api.db.session import dialect_insert, transactional
from superfan_api.domain.errors import DatastoreConflict, NotFound, Unauthorized
from superfan_api.models.user import User, UserIdentity, UserRoleEnum


def _normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    value = email.strip().lower()
    return value or None


class IdentityService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def resolve_or_create_user(
        self,
        *,
        provider: str,
        external_id: str,
        email: str | None = None,
        display_name: str | None = None,
    ) -> tuple[User, bool]:
        """Return the user linked to ``(provider, external_id)``, creating both on first contact.

        Concurrent first logins race on ``uq_user_identities_provider_external``;
        the loser discards its insert and re-reads the surviving link.
        """

        normalized = _normalize_email(email)
        async with transactional(self._session):
            user = await self._find_linked(provider, external_id)
            if user is not None:
                return user, False

            user = None
            if normalized:
                user = (await self._session.execute(select(User).where(User.email == normalized))).scalar_one_or_none()
            created = user is None
            if user is None:
                user = User(email=normalized, display_name=display_name, role=UserRoleEnum.FAN.value)
                self._session.add(user)
                try:
                    await self._session.flush()
                except IntegrityError as exc:
                    raise DatastoreConflict("User was created by a concurrent request", provider=provider) from exc

            stmt = (
                dialect_insert(self._session, UserIdentity)
                .values(user_id=user.id, provider=provider, external_id=external_id)
                .on_conflict_do_nothing(index_elements=["provider", "external_id"])
            )
            result = await self._session.execute(stmt)
            if result.rowcount == 0:
                if created:
                    await self._session.delete(user)
                    await self._session.flush()
                user = await self._find_linked(provider, external_id)
                if user is None:
                    raise DatastoreConflict("Identity link did not persist", provider=provider)
                created = False

        if created:
            logger.info("User created from external identity", user_id=str(user.id), provider=provider)
        return user, created

    async def get_active_user(self, user_id: UUID) -> User:
        user = await self._session.get(User, user_id)
        if user is None or not user.is_active:
            raise Unauthorized("Session user not found or inactive")
        return user

    async def deactivate(self, user_id: UUID) -> User:
        async with transactional(self._session):
            user = await self._session.get(User, user_id)
            if user is None:
                raise NotFound("User not found", user_id=str(user_id))
            user.is_active = False
            user.deactivated_at = utcnow()
        logger.info("User deactivated", user_id=str(user_id))
        return user

    async def _find_linked(self, provider: str, external_id: str) -> User | None:
        stmt = (
            select(User)
            .join(UserIdentity, UserIdentity.user_id == User.id)
            .where(UserIdentity.provider == provider, UserIdentity.external_id == external_id)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()


__all__ = ["IdentityService"]
