from __future__ import annotations

import pytest
from sqlalchemy import func, select

from superfan_api.domain.errors import DuplicateExternalEvent, ExternalServiceUnavailable, InvalidPricing
from superfan_api.models.payment_event import ProcessedChainTransaction
from superfan_api.models.settlement import WeeklyUpfrontStat
from superfan_api.services.payments import CryptoPurchaseService
from superfan_api.services.payments.chain_verifier import ChainVerification
from superfan_api.services.points import WalletLedger

TX_HASH = "0x" + "ab" * 32


class FakeVerifier:
    def __init__(self, *, verified: bool = True, reason: str | None = None, error: Exception | None = None) -> None:
        self.verified = verified
        self.reason = reason
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def verify(self, tx_hash: str, *, expected_amount_cents: int) -> ChainVerification:
        self.calls.append((tx_hash, expected_amount_cents))
        if self.error is not None:
            raise self.error
        return ChainVerification(
            tx_hash=tx_hash,
            verified=self.verified,
            reason=self.reason,
            sender="0x" + "11" * 20,
            amount_units=expected_amount_cents * 10**4,
            confirmations=3,
        )


@pytest.mark.asyncio
async def test_verified_transfer_credits_bundle_once(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()
    verifier = FakeVerifier()

    async with session_factory() as session:
        result = await CryptoPurchaseService(session, verifier=verifier).purchase(
            user_id=user.id, club_id=club.id, bundle_index=1, tx_hash=TX_HASH.upper().replace("0X", "0x")
        )

    assert result.tx_hash == TX_HASH
    assert result.points_credited == 5250
    assert result.wallet.purchased_pts == 5250
    assert result.settlement.gross_cents == 5000
    assert verifier.calls == [(TX_HASH, 5000)]

    async with session_factory() as session:
        with pytest.raises(DuplicateExternalEvent):
            await CryptoPurchaseService(session, verifier=verifier).purchase(
                user_id=user.id, club_id=club.id, bundle_index=1, tx_hash=TX_HASH[2:]
            )

    async with session_factory() as session:
        wallet = await WalletLedger(session).require_wallet(user.id, club.id)
        processed = await session.scalar(select(func.count(ProcessedChainTransaction.id)))
        stats = (await session.execute(select(WeeklyUpfrontStat))).scalar_one()

    assert wallet.balance_pts == 5250
    assert wallet.status_pts == 0
    assert processed == 1
    assert stats.purchase_count == 1
    assert len(verifier.calls) == 1


@pytest.mark.asyncio
async def test_unverified_transfer_credits_nothing(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()

    async with session_factory() as session:
        with pytest.raises(InvalidPricing) as excinfo:
            await CryptoPurchaseService(session, verifier=FakeVerifier(verified=False, reason="amount_mismatch")).purchase(
                user_id=user.id, club_id=club.id, bundle_index=0, tx_hash=TX_HASH
            )

    async with session_factory() as session:
        processed = await session.scalar(select(func.count(ProcessedChainTransaction.id)))
        wallet = await WalletLedger(session).get_wallet(user.id, club.id)

    assert excinfo.value.details["reason"] == "amount_mismatch"
    assert processed == 0
    assert wallet is None


@pytest.mark.asyncio
async def test_oracle_outage_fails_closed(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()
    verifier = FakeVerifier(error=ExternalServiceUnavailable("Blockchain verifier is unavailable"))

    async with session_factory() as session:
        with pytest.raises(ExternalServiceUnavailable):
            await CryptoPurchaseService(session, verifier=verifier).purchase(
                user_id=user.id, club_id=club.id, bundle_index=0, tx_hash=TX_HASH
            )

    async with session_factory() as session:
        processed = await session.scalar(select(func.count(ProcessedChainTransaction.id)))

    assert processed == 0


@pytest.mark.asyncio
async def test_malformed_hash_is_rejected_before_verification(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()
    verifier = FakeVerifier()

    async with session_factory() as session:
        with pytest.raises(ValueError):
            await CryptoPurchaseService(session, verifier=verifier).purchase(
                user_id=user.id, club_id=club.id, bundle_index=0, tx_hash="0x1234"
            )

    assert verifier.calls == []


class SessionCheckingVerifier(FakeVerifier):
    def __init__(self, session) -> None:
        super().__init__()
        self.session = session
        self.in_transaction: list[bool] = []

    async def verify(self, tx_hash: str, *, expected_amount_cents: int) -> ChainVerification:
        self.in_transaction.append(self.session.in_transaction())
        return await super().verify(tx_hash, expected_amount_cents=expected_amount_cents)


@pytest.mark.asyncio
async def test_no_transaction_is_open_while_verifying(session_factory, make_user, make_club) -> None:
    user = await make_user()
    club = await make_club()

    async with session_factory() as session:
        verifier = SessionCheckingVerifier(session)
        result = await CryptoPurchaseService(session, verifier=verifier).purchase(
            user_id=user.id, club_id=club.id, bundle_index=0, tx_hash=TX_HASH
        )

    assert verifier.in_transaction == [False]
    assert result.wallet.purchased_pts > 0
