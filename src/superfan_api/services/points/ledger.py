"""Authoritative point ledger.

Every balance change is a single guarded ``UPDATE`` on ``point_wallets`` plus one
appended ``point_transactions`` row, inside the caller's database transaction.
The guard conditions (``purchased_pts >= n`` and so on) make the datastore the
arbiter under concurrency; a zero rowcount means another writer got there first.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.core.settings import settings
from superfan_api.core.time import utcnow
from superfan_api.db.session import dialect_insert
from superfan_api.domain.errors import (
    DatastoreConflict,
    InsufficientPoints,
    InsufficientPointsStatusProtected,
    NotFound,
    RefConflict,
)
from superfan_api.domain.status import compute_status, threshold_for
from superfan_api.models.wallet import (
    PointTransaction,
    PointWallet,
    TransactionSourceEnum,
    TransactionTypeEnum,
)
from superfan_api.services.points.cache import invalidate_wallet_reads


class PointBucket(str, Enum):
    """Wallet bucket a credit lands in."""

    EARNED = "earned"
    PURCHASED = "purchased"


class DebitPool(str, Enum):
    """Which buckets a debit may draw from."""

    PURCHASED_ONLY = "purchased_only"
    EARNED_ONLY = "earned_only"
    ANY = "any"


@dataclass(slots=True)
class LedgerResult:
    wallet: PointWallet
    transaction: PointTransaction
    created: bool


@dataclass(slots=True)
class _DebitPlan:
    from_earned: int
    from_purchased: int
    earned_floor: int


@dataclass(slots=True)
class WalletReconciliation:
    """Balances recomputed from the ledger next to the stored aggregates."""

    wallet_id: UUID
    stored: dict[str, int]
    derived: dict[str, int]

    @property
    def consistent(self) -> bool:
        return self.stored == self.derived


class WalletLedger:
    """Credit, debit and inspect point wallets."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_wallet(self, user_id: UUID, club_id: UUID) -> PointWallet | None:
        stmt = (
            select(PointWallet)
            .where(PointWallet.user_id == user_id, PointWallet.club_id == club_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def require_wallet(self, user_id: UUID, club_id: UUID) -> PointWallet:
        wallet = await self.get_wallet(user_id, club_id)
        if wallet is None:
            raise NotFound("Wallet not found", user_id=str(user_id), club_id=str(club_id))
        return wallet

    async def get_or_create(self, user_id: UUID, club_id: UUID) -> PointWallet:
        """Return the member's wallet, creating an all-zero one on first use.

        Concurrent first-time callers race on ``uq_point_wallets_user_club``; the
        losing insert is a no-op and everybody re-reads the single surviving row.
        """

        wallet = await self.get_wallet(user_id, club_id)
        if wallet is not None:
            return wallet

        stmt = (
            dialect_insert(self._session, PointWallet)
            .values(user_id=user_id, club_id=club_id)
            .on_conflict_do_nothing(index_elements=["user_id", "club_id"])
        )
        await self._session.execute(stmt)
        wallet = await self.get_wallet(user_id, club_id)
        if wallet is None:
            raise DatastoreConflict("Wallet creation did not persist", user_id=str(user_id), club_id=str(club_id))
        logger.info("Point wallet created", wallet_id=str(wallet.id), user_id=str(user_id), club_id=str(club_id))
        return wallet

    async def find_by_ref(self, wallet_id: UUID, ref: str) -> PointTransaction | None:
        stmt = select(PointTransaction).where(PointTransaction.wallet_id == wallet_id, PointTransaction.ref == ref)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def credit(
        self,
        wallet: PointWallet,
        amount: int,
        *,
        kind: TransactionTypeEnum = TransactionTypeEnum.BONUS,
        source: TransactionSourceEnum = TransactionSourceEnum.EARNED,
        bucket: PointBucket = PointBucket.EARNED,
        affects_status: bool | None = None,
        ref: str | None = None,
        metadata: dict[str, Any] | None = None,
        unit_sell_cents: int | None = None,
        unit_settle_cents: int | None = None,
        usd_gross_cents: int | None = None,
    ) -> LedgerResult:
        """Add ``amount`` points to one bucket.

        ``affects_status`` defaults to whether the earned bucket grows; transferred
        and purchased points never count toward tier.
        """

        if amount <= 0:
            raise ValueError("Credit amount must be a positive integer")
        existing = await self._existing(wallet, ref, kind=kind, source=source, pts=amount)
        if existing is not None:
            return existing

        earned = amount if bucket is PointBucket.EARNED else 0
        purchased = amount - earned
        if affects_status is None:
            affects_status = earned > 0 and source is not TransactionSourceEnum.TRANSFERRED

        transaction = await self._apply(
            wallet,
            earned_delta=earned,
            purchased_delta=purchased,
            kind=kind,
            source=source,
            affects_status=affects_status,
            ref=ref,
            metadata=metadata,
            unit_sell_cents=unit_sell_cents,
            unit_settle_cents=unit_settle_cents,
            usd_gross_cents=usd_gross_cents,
        )
        if transaction is None:
            raise NotFound("Wallet not found", wallet_id=str(wallet.id))
        return LedgerResult(wallet=wallet, transaction=transaction, created=True)

    async def debit(
        self,
        wallet: PointWallet,
        amount: int,
        *,
        kind: TransactionTypeEnum = TransactionTypeEnum.SPEND,
        source: TransactionSourceEnum = TransactionSourceEnum.SPENT,
        pool: DebitPool = DebitPool.ANY,
        preserve_status: bool = False,
        ref: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerResult:
        """Remove ``amount`` points, purchased first and then earned.

        Raises ``InsufficientPoints`` when the selected pool cannot cover the
        amount, and ``InsufficientPointsStatusProtected`` when ``preserve_status``
        forbids spending earned points below the member's current tier floor.
        """

        if amount <= 0:
            raise ValueError("Debit amount must be a positive integer")
        existing = await self._existing(wallet, ref, kind=kind, source=source, pts=-amount)
        if existing is not None:
            return existing

        for attempt in range(max(1, settings.ledger_conflict_retries)):
            await self._session.refresh(wallet)
            plan = self._plan_debit(wallet, amount, pool=pool, preserve_status=preserve_status)
            breakdown = {"purchased": plan.from_purchased, "earned": plan.from_earned}
            transaction = await self._apply(
                wallet,
                earned_delta=-plan.from_earned,
                purchased_delta=-plan.from_purchased,
                kind=kind,
                source=source,
                affects_status=False,
                ref=ref,
                metadata={**(metadata or {}), "spent_breakdown": breakdown, "preserve_status": preserve_status},
                earned_floor=plan.earned_floor,
            )
            if transaction is not None:
                return LedgerResult(wallet=wallet, transaction=transaction, created=True)
            logger.warning(
                "Wallet debit lost a concurrent update; re-reading balances",
                wallet_id=str(wallet.id),
                amount=amount,
                attempt=attempt + 1,
            )

        raise DatastoreConflict("Wallet is being modified concurrently; retry the request", wallet_id=str(wallet.id))

    async def refund(self, transaction: PointTransaction, *, reason: str | None = None) -> LedgerResult:
        """Return a debit's points to the buckets they were drawn from."""

        if transaction.pts >= 0:
            raise ValueError("Only debits can be refunded")
        wallet = await self._session.get(PointWallet, transaction.wallet_id)
        if wallet is None:
            raise NotFound("Wallet not found", wallet_id=str(transaction.wallet_id))
        ref = f"refund:{transaction.id}"
        existing = await self._existing(
            wallet,
            ref,
            kind=TransactionTypeEnum.REFUND,
            source=TransactionSourceEnum.REFUNDED,
            pts=-transaction.pts,
        )
        if existing is not None:
            return existing

        refunded = await self._apply(
            wallet,
            earned_delta=-transaction.earned_delta,
            purchased_delta=-transaction.purchased_delta,
            kind=TransactionTypeEnum.REFUND,
            source=TransactionSourceEnum.REFUNDED,
            affects_status=False,
            ref=ref,
            metadata={"refunded_transaction_id": str(transaction.id), "reason": reason},
        )
        if refunded is None:
            raise NotFound("Wallet not found", wallet_id=str(wallet.id))
        return LedgerResult(wallet=wallet, transaction=refunded, created=True)

    async def history(
        self,
        wallet_id: UUID,
        *,
        limit: int = 50,
        types: Sequence[TransactionTypeEnum] | None = None,
    ) -> list[PointTransaction]:
        stmt = select(PointTransaction).where(PointTransaction.wallet_id == wallet_id)
        if types:
            stmt = stmt.where(PointTransaction.type.in_(tuple(types)))
        stmt = stmt.order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def reconcile(self, wallet: PointWallet) -> WalletReconciliation:
        """Recompute every balance column from the transaction log."""

        stmt = select(
            func.coalesce(func.sum(PointTransaction.pts), 0),
            func.coalesce(func.sum(PointTransaction.earned_delta), 0),
            func.coalesce(func.sum(PointTransaction.purchased_delta), 0),
            func.coalesce(func.sum(case((PointTransaction.pts < 0, -PointTransaction.pts), else_=0)), 0),
        ).where(PointTransaction.wallet_id == wallet.id)
        balance, earned, purchased, spent = (await self._session.execute(stmt)).one()
        await self._session.refresh(wallet)
        return WalletReconciliation(
            wallet_id=wallet.id,
            stored={
                "balance_pts": wallet.balance_pts,
                "earned_pts": wallet.earned_pts,
                "purchased_pts": wallet.purchased_pts,
                "spent_pts": wallet.spent_pts,
            },
            derived={
                "balance_pts": int(balance),
                "earned_pts": int(earned),
                "purchased_pts": int(purchased),
                "spent_pts": int(spent),
            },
        )

    async def _existing(
        self,
        wallet: PointWallet,
        ref: str | None,
        *,
        kind: TransactionTypeEnum,
        source: TransactionSourceEnum,
        pts: int,
    ) -> LedgerResult | None:
        """Replay the entry already recorded under ``ref``, if it is the same request."""

        if not ref:
            return None
        transaction = await self.find_by_ref(wallet.id, ref)
        if transaction is None:
            return None
        if transaction.type != kind or transaction.source != source or transaction.pts != pts:
            raise RefConflict(
                "Reference was already used for a different ledger entry",
                ref=ref,
                wallet_id=str(wallet.id),
            )
        logger.info("Ledger ref already applied", wallet_id=str(wallet.id), ref=ref)
        return LedgerResult(wallet=wallet, transaction=transaction, created=False)

    @staticmethod
    def _plan_debit(wallet: PointWallet, amount: int, *, pool: DebitPool, preserve_status: bool) -> _DebitPlan:
        if pool is DebitPool.PURCHASED_ONLY:
            if wallet.purchased_pts < amount:
                raise InsufficientPoints(
                    "Insufficient purchased points",
                    required=amount,
                    available=wallet.purchased_pts,
                    pool=pool.value,
                )
            return _DebitPlan(from_earned=0, from_purchased=amount, earned_floor=0)

        if pool is DebitPool.EARNED_ONLY:
            if wallet.earned_pts < amount:
                raise InsufficientPoints(
                    "Insufficient earned points",
                    required=amount,
                    available=wallet.earned_pts,
                    pool=pool.value,
                )
            return _DebitPlan(from_earned=amount, from_purchased=0, earned_floor=0)

        if wallet.balance_pts < amount:
            raise InsufficientPoints("Insufficient points", required=amount, available=wallet.balance_pts, pool=pool.value)

        floor = threshold_for(compute_status(wallet.earned_pts)) if preserve_status else 0
        from_purchased = min(amount, wallet.purchased_pts)
        from_earned = amount - from_purchased
        available_earned = max(0, wallet.earned_pts - floor)
        if from_earned > available_earned:
            raise InsufficientPointsStatusProtected(
                "Insufficient points (status protection enabled)",
                available_purchased=wallet.purchased_pts,
                available_earned=available_earned,
                required_earned=from_earned,
            )
        return _DebitPlan(from_earned=from_earned, from_purchased=from_purchased, earned_floor=floor)

    async def _apply(
        self,
        wallet: PointWallet,
        *,
        earned_delta: int,
        purchased_delta: int,
        kind: TransactionTypeEnum,
        source: TransactionSourceEnum,
        affects_status: bool,
        ref: str | None,
        metadata: dict[str, Any] | None,
        earned_floor: int = 0,
        unit_sell_cents: int | None = None,
        unit_settle_cents: int | None = None,
        usd_gross_cents: int | None = None,
    ) -> PointTransaction | None:
        delta = earned_delta + purchased_delta
        now = utcnow()

        stmt = update(PointWallet).where(PointWallet.id == wallet.id)
        if delta < 0:
            stmt = stmt.where(PointWallet.balance_pts >= -delta)
        if purchased_delta < 0:
            stmt = stmt.where(PointWallet.purchased_pts >= -purchased_delta)
        if earned_delta < 0 or earned_floor:
            stmt = stmt.where(PointWallet.earned_pts >= max(0, -earned_delta) + earned_floor)
        stmt = stmt.values(
            balance_pts=PointWallet.balance_pts + delta,
            earned_pts=PointWallet.earned_pts + earned_delta,
            purchased_pts=PointWallet.purchased_pts + purchased_delta,
            spent_pts=PointWallet.spent_pts + max(0, -delta),
            last_activity_at=now,
            updated_at=now,
        )
        result = await self._session.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount != 1:
            return None

        transaction = PointTransaction(
            wallet_id=wallet.id,
            type=kind,
            source=source,
            pts=delta,
            earned_delta=earned_delta,
            purchased_delta=purchased_delta,
            affects_status=affects_status,
            ref=ref,
            unit_sell_cents=unit_sell_cents,
            unit_settle_cents=unit_settle_cents,
            usd_gross_cents=usd_gross_cents,
            metadata_json=metadata or {},
        )
        self._session.add(transaction)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise DatastoreConflict("Ledger write conflicted with a concurrent request", ref=ref) from exc

        await self._session.refresh(wallet)
        tier = compute_status(wallet.status_pts).value
        if wallet.current_status != tier:
            wallet.current_status = tier
            await self._session.flush()

        invalidate_wallet_reads(wallet.club_id, wallet.user_id)
        logger.info(
            "Ledger entry recorded",
            wallet_id=str(wallet.id),
            transaction_id=str(transaction.id),
            type=kind.value,
            source=source.value,
            delta=delta,
            earned_delta=earned_delta,
            purchased_delta=purchased_delta,
            ref=ref,
            balance=wallet.balance_pts,
        )
        return transaction


__all__ = [
    "DebitPool",
    "LedgerResult",
    "PointBucket",
    "WalletLedger",
    "WalletReconciliation",
]
