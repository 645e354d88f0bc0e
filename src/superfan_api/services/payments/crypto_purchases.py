"""Point bundles paid on-chain, verified by the blockchain oracle."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.db.session import transactional
from superfan_api.domain.errors import DuplicateExternalEvent, InvalidPricing, NotFound
from superfan_api.domain.pricing import get_bundle
from superfan_api.domain.settlement import SettlementBreakdown
from superfan_api.models.club import Club
from superfan_api.models.payment_event import ProcessedChainTransaction
from superfan_api.models.wallet import PointWallet, TransactionSourceEnum, TransactionTypeEnum
from superfan_api.observability.payments import get_payment_store
from superfan_api.observability.tracing import get_tracer
from superfan_api.services.payments.chain_verifier import ChainVerifier, HttpChainVerifier, normalize_tx_hash
from superfan_api.services.points.ledger import PointBucket, WalletLedger
from superfan_api.services.settlement import SettlementService

tracer = get_tracer(__name__)


@dataclass(slots=True)
class CryptoPurchaseResult:
    tx_hash: str
    wallet: PointWallet
    points_credited: int
    settlement: SettlementBreakdown


class CryptoPurchaseService:
    """Credits a bundle once per transaction hash.

    The duplicate-hash read is committed before verification, so no database
    transaction is open while the oracle is consulted. The processed-hash row
    and the credit then commit together.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        verifier: ChainVerifier | None = None,
        ledger: WalletLedger | None = None,
        settlement: SettlementService | None = None,
    ) -> None:
        self._session = session
        self._verifier = verifier or HttpChainVerifier()
        self._ledger = ledger or WalletLedger(session)
        self._settlement = settlement or SettlementService(session)

    async def purchase(self, *, user_id: UUID, club_id: UUID, bundle_index: int, tx_hash: str) -> CryptoPurchaseResult:
        normalized = normalize_tx_hash(tx_hash)
        bundle = get_bundle(bundle_index)
        store = get_payment_store()

        already_processed = await self._already_processed(normalized)
        # End the read transaction before the oracle call.
        await self._session.commit()
        if already_processed:
            raise DuplicateExternalEvent("Transaction already credited", tx_hash=normalized)

        with tracer.start_as_current_span("payments.verify_chain_transaction") as span:
            span.set_attribute("chain.tx_hash", normalized)
            verification = await self._verifier.verify(normalized, expected_amount_cents=bundle.usd_cents)
            span.set_attribute("chain.verified", verification.verified)
        if not verification.verified:
            store.record_checkout_failure("crypto_points_purchase", verification.reason or "unverified")
            raise InvalidPricing(
                "On-chain payment could not be verified",
                tx_hash=normalized,
                reason=verification.reason,
            )

        async with transactional(self._session):
            club = await self._session.get(Club, club_id)
            if club is None or not club.is_active:
                raise NotFound("Club not found", club_id=str(club_id))

            self._session.add(
                ProcessedChainTransaction(
                    tx_hash=normalized,
                    user_id=user_id,
                    club_id=club_id,
                    amount_cents=bundle.usd_cents,
                    points_credited=bundle.total_points,
                )
            )
            try:
                await self._session.flush()
            except IntegrityError as exc:
                raise DuplicateExternalEvent("Transaction already credited", tx_hash=normalized) from exc

            wallet = await self._ledger.get_or_create(user_id, club_id)
            await self._ledger.credit(
                wallet,
                bundle.total_points,
                kind=TransactionTypeEnum.PURCHASE,
                source=TransactionSourceEnum.PURCHASED,
                bucket=PointBucket.PURCHASED,
                affects_status=False,
                ref=f"chain:{normalized}",
                metadata={"tx_hash": normalized, "bundle_index": bundle_index, "sender": verification.sender},
                unit_sell_cents=club.system_purchase_rate,
                unit_settle_cents=club.point_settle_cents,
                usd_gross_cents=bundle.usd_cents,
            )
            breakdown = await self._settlement.record_purchase(
                club=club,
                gross_cents=bundle.usd_cents,
                points=bundle.total_points,
            )

        store.record_checkout_success("crypto_points_purchase", normalized)
        logger.info(
            "Crypto point purchase credited",
            tx_hash=normalized,
            user_id=str(user_id),
            club_id=str(club_id),
            points=bundle.total_points,
        )
        return CryptoPurchaseResult(
            tx_hash=normalized,
            wallet=wallet,
            points_credited=bundle.total_points,
            settlement=breakdown,
        )

    async def _already_processed(self, tx_hash: str) -> bool:
        stmt = select(ProcessedChainTransaction.id).where(ProcessedChainTransaction.tx_hash == tx_hash)
        return (await self._session.execute(stmt)).first() is not None


__all__ = ["CryptoPurchaseResult", "CryptoPurchaseService"]
