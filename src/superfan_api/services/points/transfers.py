"""Peer-to-peer point transfers inside one club."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.db.session import transactional
from superfan_api.domain.errors import InsufficientPoints, RecipientNotFound, RefConflict, TransferToSelf
from superfan_api.models.user import User
from superfan_api.models.wallet import PointTransaction, PointWallet, TransactionSourceEnum, TransactionTypeEnum
from superfan_api.services.points.ledger import DebitPool, LedgerResult, PointBucket, WalletLedger


@dataclass(slots=True)
class TransferResult:
    ref: str
    amount: int
    pool: DebitPool
    sender_wallet: PointWallet
    recipient_wallet: PointWallet
    outgoing: PointTransaction
    incoming: PointTransaction
    created: bool


class TransferService:
    """Moves points between two wallets as one double-entry unit.

    The outgoing ``SPEND`` and incoming ``PURCHASE`` rows share a reference and
    are both written with ``affects_status`` false. Incoming points land in the
    recipient's purchased bucket, so a transfer never raises the recipient's tier.
    A caller ref is scoped to the sender and replays only the identical transfer.
    """

    def __init__(self, session: AsyncSession, *, ledger: WalletLedger | None = None) -> None:
        self._session = session
        self._ledger = ledger or WalletLedger(session)

    async def transfer(
        self,
        *,
        sender_id: UUID,
        club_id: UUID,
        amount: int,
        pool: DebitPool = DebitPool.PURCHASED_ONLY,
        recipient_id: UUID | None = None,
        recipient_email: str | None = None,
        ref: str | None = None,
        note: str | None = None,
    ) -> TransferResult:
        if amount <= 0:
            raise ValueError("Transfer amount must be a positive integer")
        if pool is DebitPool.EARNED_ONLY:
            raise ValueError("Transfers draw from purchased points or the whole balance")
        if recipient_id is not None and recipient_id == sender_id:
            raise TransferToSelf("Cannot transfer points to yourself")

        transfer_ref = f"transfer:{sender_id}:{ref or uuid4().hex}"
        async with transactional(self._session):
            recipient = await self._resolve_recipient(recipient_id, recipient_email)
            if recipient.id == sender_id:
                raise TransferToSelf("Cannot transfer points to yourself")

            sender_wallet = await self._ledger.get_wallet(sender_id, club_id)
            if sender_wallet is None:
                raise InsufficientPoints("Insufficient points", required=amount, available=0, pool=pool.value)
            recipient_wallet = await self._ledger.get_or_create(recipient.id, club_id)
            await self._lock_wallets(sender_wallet.id, recipient_wallet.id)

            replay = await self._replay(sender_wallet, recipient_wallet, transfer_ref, amount)
            if replay is not None:
                return TransferResult(
                    ref=transfer_ref,
                    amount=amount,
                    pool=pool,
                    sender_wallet=sender_wallet,
                    recipient_wallet=recipient_wallet,
                    outgoing=replay[0].transaction,
                    incoming=replay[1].transaction,
                    created=False,
                )

            metadata = {
                "sender_id": str(sender_id),
                "recipient_id": str(recipient.id),
                "pool": pool.value,
                "note": note,
            }
            outgoing = await self._ledger.debit(
                sender_wallet,
                amount,
                kind=TransactionTypeEnum.SPEND,
                source=TransactionSourceEnum.TRANSFERRED,
                pool=pool,
                ref=transfer_ref,
                metadata={**metadata, "direction": "out"},
            )
            incoming = await self._ledger.credit(
                recipient_wallet,
                amount,
                kind=TransactionTypeEnum.PURCHASE,
                source=TransactionSourceEnum.TRANSFERRED,
                bucket=PointBucket.PURCHASED,
                affects_status=False,
                ref=transfer_ref,
                metadata={**metadata, "direction": "in"},
            )

        logger.info(
            "Points transferred",
            ref=transfer_ref,
            sender_id=str(sender_id),
            recipient_id=str(recipient.id),
            club_id=str(club_id),
            amount=amount,
            pool=pool.value,
        )
        return TransferResult(
            ref=transfer_ref,
            amount=amount,
            pool=pool,
            sender_wallet=sender_wallet,
            recipient_wallet=recipient_wallet,
            outgoing=outgoing.transaction,
            incoming=incoming.transaction,
            created=True,
        )

    async def _replay(
        self,
        sender_wallet: PointWallet,
        recipient_wallet: PointWallet,
        transfer_ref: str,
        amount: int,
    ) -> tuple[LedgerResult, LedgerResult] | None:
        outgoing = await self._ledger.find_by_ref(sender_wallet.id, transfer_ref)
        incoming = await self._ledger.find_by_ref(recipient_wallet.id, transfer_ref)
        if outgoing is None and incoming is None:
            return None
        if (
            outgoing is None
            or incoming is None
            or outgoing.source != TransactionSourceEnum.TRANSFERRED
            or incoming.source != TransactionSourceEnum.TRANSFERRED
            or outgoing.pts != -amount
            or incoming.pts != amount
        ):
            raise RefConflict("Transfer reference was already used for a different transfer", ref=transfer_ref)
        logger.info("Transfer ref already applied", ref=transfer_ref)
        return (
            LedgerResult(wallet=sender_wallet, transaction=outgoing, created=False),
            LedgerResult(wallet=recipient_wallet, transaction=incoming, created=False),
        )

    async def _resolve_recipient(self, recipient_id: UUID | None, recipient_email: str | None) -> User:
        recipient: User | None = None
        if recipient_id is not None:
            recipient = await self._session.get(User, recipient_id)
        elif recipient_email:
            stmt = select(User).where(func.lower(User.email) == recipient_email.strip().lower())
            recipient = (await self._session.execute(stmt)).scalar_one_or_none()
        if recipient is None or not recipient.is_active:
            raise RecipientNotFound("Recipient not found")
        return recipient

    async def _lock_wallets(self, *wallet_ids: UUID) -> None:
        # Fixed id order so two opposite transfers cannot deadlock.
        stmt = select(PointWallet.id).where(PointWallet.id.in_(wallet_ids)).order_by(PointWallet.id).with_for_update()
        await self._session.execute(stmt)


__all__ = ["TransferResult", "TransferService"]
