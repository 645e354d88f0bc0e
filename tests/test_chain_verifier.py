from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from superfan_api.domain.errors import ExternalServiceUnavailable
from superfan_api.services.payments.chain_verifier import (
    TRANSFER_TOPIC,
    HttpChainVerifier,
    cents_to_token_units,
    normalize_tx_hash,
)

TX_HASH = "0x" + "cd" * 32
RECEIVER = "0x" + "22" * 20
SENDER = "0x" + "33" * 20
TOKEN = "0x" + "44" * 20


def _topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:]


def _receipt(amount_units: int, *, status: str = "0x1", block: int = 100, token: str = TOKEN) -> dict[str, Any]:
    return {
        "status": status,
        "blockNumber": hex(block),
        "logs": [
            {
                "address": token,
                "topics": [TRANSFER_TOPIC, _topic(SENDER), _topic(RECEIVER)],
                "data": hex(amount_units),
            }
        ],
    }


def _transport(receipt: Any, head: int = 110, *, status_code: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if status_code != 200:
            return httpx.Response(status_code, json={"error": "boom"})
        if body["method"] == "eth_getTransactionReceipt":
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": receipt})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": hex(head)})

    return httpx.MockTransport(handler)


def _verifier(transport: httpx.MockTransport, **overrides: Any) -> HttpChainVerifier:
    options: dict[str, Any] = {
        "rpc_url": "https://rpc.test",
        "receiving_address": RECEIVER,
        "token_contract": TOKEN,
        "token_decimals": 6,
        "min_confirmations": 3,
        "tolerance_cents": 1,
        "allowed_senders": [],
        "transport": transport,
    }
    options.update(overrides)
    return HttpChainVerifier(**options)


def test_normalize_tx_hash() -> None:
    assert normalize_tx_hash(TX_HASH.upper().replace("0X", "")) == TX_HASH
    with pytest.raises(ValueError):
        normalize_tx_hash("0xdeadbeef")


def test_cents_to_token_units() -> None:
    assert cents_to_token_units(1000, 6) == 10_000_000
    assert cents_to_token_units(1, 18) == 10**16


@pytest.mark.asyncio
async def test_matching_transfer_is_verified() -> None:
    verifier = _verifier(_transport(_receipt(10_000_000)))

    result = await verifier.verify(TX_HASH, expected_amount_cents=1000)

    assert result.verified is True
    assert result.sender == SENDER
    assert result.amount_units == 10_000_000
    assert result.confirmations == 11


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("receipt", "reason"),
    [
        (_receipt(10_000_000, status="0x0"), "transaction_failed"),
        (_receipt(10_000_000, block=109), "insufficient_confirmations"),
        (_receipt(10_000_000, token="0x" + "55" * 20), "no_matching_transfer"),
        (_receipt(9_000_000), "amount_mismatch"),
        (None, "transaction_not_found"),
    ],
)
async def test_rejected_receipts(receipt: Any, reason: str) -> None:
    verifier = _verifier(_transport(receipt))

    result = await verifier.verify(TX_HASH, expected_amount_cents=1000)

    assert result.verified is False
    assert result.reason == reason


@pytest.mark.asyncio
async def test_sender_allow_list() -> None:
    verifier = _verifier(_transport(_receipt(10_000_000)), allowed_senders=["0x" + "99" * 20])

    result = await verifier.verify(TX_HASH, expected_amount_cents=1000)

    assert result.verified is False
    assert result.reason == "no_matching_transfer"


@pytest.mark.asyncio
async def test_rpc_failures_fail_closed() -> None:
    verifier = _verifier(_transport(None, status_code=502))

    with pytest.raises(ExternalServiceUnavailable):
        await verifier.verify(TX_HASH, expected_amount_cents=1000)


@pytest.mark.asyncio
async def test_malformed_receipt_fails_closed() -> None:
    verifier = _verifier(_transport({"status": "0x1"}))

    with pytest.raises(ExternalServiceUnavailable):
        await verifier.verify(TX_HASH, expected_amount_cents=1000)


@pytest.mark.asyncio
async def test_unconfigured_verifier_is_unavailable() -> None:
    verifier = _verifier(_transport(None), rpc_url="")

    with pytest.raises(ExternalServiceUnavailable):
        await verifier.verify(TX_HASH, expected_amount_cents=1000)
