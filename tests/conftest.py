from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from superfan_api.app import create_app
from superfan_api.db.base import Base
from superfan_api.db.session import get_session
from superfan_api.models.club import Club
from superfan_api.models.reward import Reward, RewardKindEnum, RewardStatusEnum
from superfan_api.models.user import User, UserRoleEnum
from superfan_api.models.wallet import TransactionSourceEnum, TransactionTypeEnum
from superfan_api.observability.payments import get_payment_store
from superfan_api.services.points.cache import get_read_model_cache
from superfan_api.services.points.ledger import PointBucket, WalletLedger


@pytest.fixture(autouse=True)
def _reset_process_state():
    get_read_model_cache().clear()
    get_payment_store().reset()
    yield
    get_read_model_cache().clear()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    async def _make(
        *,
        email: str | None = None,
        display_name: str | None = None,
        role: UserRoleEnum = UserRoleEnum.FAN,
        is_active: bool = True,
    ) -> User:
        async with session_factory() as session:
            user = User(email=email, display_name=display_name, role=role.value, is_active=is_active)
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest.fixture
def make_club(session_factory):
    async def _make(owner: User | None = None, **overrides: Any) -> Club:
        values: dict[str, Any] = {"name": "Night Owls", "owner_id": owner.id if owner else None}
        values.update(overrides)
        for key in ("earn_multiplier", "redeem_multiplier"):
            if key in values:
                values[key] = Decimal(str(values[key]))
        async with session_factory() as session:
            club = Club(**values)
            session.add(club)
            await session.commit()
            return club

    return _make


@pytest.fixture
def make_reward(session_factory):
    async def _make(club: Club, **overrides: Any) -> Reward:
        values: dict[str, Any] = {
            "club_id": club.id,
            "kind": RewardKindEnum.ACCESS,
            "title": "Backstage pass",
            "points_price": 500,
            "status": RewardStatusEnum.ACTIVE,
        }
        values.update(overrides)
        async with session_factory() as session:
            reward = Reward(**values)
            session.add(reward)
            await session.commit()
            return reward

    return _make


@pytest.fixture
def fund_wallet(session_factory):
    """Credit earned and/or purchased points straight through the ledger."""

    async def _fund(user: User, club: Club, *, earned: int = 0, purchased: int = 0):
        async with session_factory() as session:
            ledger = WalletLedger(session)
            wallet = await ledger.get_or_create(user.id, club.id)
            if earned:
                await ledger.credit(
                    wallet,
                    earned,
                    kind=TransactionTypeEnum.BONUS,
                    source=TransactionSourceEnum.EARNED,
                    bucket=PointBucket.EARNED,
                )
            if purchased:
                await ledger.credit(
                    wallet,
                    purchased,
                    kind=TransactionTypeEnum.PURCHASE,
                    source=TransactionSourceEnum.PURCHASED,
                    bucket=PointBucket.PURCHASED,
                    affects_status=False,
                )
            await session.commit()
            return wallet

    return _fund


def session_headers(user: User) -> dict[str, str]:
    return {"X-Session-User": str(user.id)}


@pytest.fixture
def auth_headers():
    return session_headers
