"""On-chain payment verification for crypto-denominated point purchases.

The verifier reads an ERC-20 transfer receipt over JSON-RPC and checks that the
expected amount reached the receiving address. Every transport error, timeout
or malformed response fails closed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence

import httpx
from loguru import logger

from superfan_api.core.settings import settings
from superfan_api.domain.errors import ExternalServiceUnavailable

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

_TX_HASH_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_tx_hash(tx_hash: str) -> str:
    """Lowercase ``0x``-prefixed form used for de-duplication."""

    value = tx_hash.strip()
    if not _TX_HASH_RE.match(value):
        raise ValueError("tx_hash must be a 32-byte hex string")
    if not value.startswith("0x"):
        value = f"0x{value}"
    return value.lower()


def _topic_address(topic: str) -> str:
    return f"0x{topic[-40:]}".lower()


def cents_to_token_units(amount_cents: int, decimals: int) -> int:
    return amount_cents * 10**decimals // 100


@dataclass(frozen=True, slots=True)
class ChainVerification:
    tx_hash: str
    verified: bool
    reason: str | None = None
    sender: str | None = None
    amount_units: int = 0
    confirmations: int = 0


class ChainVerifier(Protocol):
    async def verify(self, tx_hash: str, *, expected_amount_cents: int) -> ChainVerification:
        """Return whether ``tx_hash`` paid ``expected_amount_cents`` to the receiving address."""


class HttpChainVerifier:
    """JSON-RPC verifier for a USD stablecoin transfer."""

    def __init__(
        self,
        *,
        rpc_url: str | None = None,
        receiving_address: str | None = None,
        token_contract: str | None = None,
        token_decimals: int | None = None,
        min_confirmations: int | None = None,
        tolerance_cents: int | None = None,
        allowed_senders: Sequence[str] | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._rpc_url = rpc_url if rpc_url is not None else settings.chain_rpc_url
        self._receiving_address = (receiving_address or settings.chain_receiving_address).lower()
        self._token_contract = (token_contract or settings.chain_token_contract).lower()
        self._decimals = settings.chain_token_decimals if token_decimals is None else token_decimals
        self._min_confirmations = settings.chain_min_confirmations if min_confirmations is None else min_confirmations
        self._tolerance_cents = settings.chain_amount_tolerance_cents if tolerance_cents is None else tolerance_cents
        senders = settings.chain_allowed_senders if allowed_senders is None else allowed_senders
        self._allowed_senders = {sender.lower() for sender in senders}
        self._timeout = timeout_seconds or settings.chain_request_timeout_seconds
        self._transport = transport
        if self._receiving_address and not _ADDRESS_RE.match(self._receiving_address):
            raise ValueError("chain receiving address must be a 0x-prefixed 20-byte hex address")

    async def verify(self, tx_hash: str, *, expected_amount_cents: int) -> ChainVerification:
        normalized = normalize_tx_hash(tx_hash)
        if not self._rpc_url or not self._receiving_address or not self._token_contract:
            raise ExternalServiceUnavailable("Blockchain verifier is not configured")

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            receipt = await self._rpc(client, "eth_getTransactionReceipt", [normalized])
            if receipt is None:
                return ChainVerification(tx_hash=normalized, verified=False, reason="transaction_not_found")
            head = await self._rpc(client, "eth_blockNumber", [])

        try:
            result = self._check_receipt(normalized, receipt, head, expected_amount_cents)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Malformed chain receipt", tx_hash=normalized, error=str(exc))
            raise ExternalServiceUnavailable("Blockchain verifier returned a malformed receipt") from exc

        logger.info(
            "Chain transaction checked",
            tx_hash=normalized,
            verified=result.verified,
            reason=result.reason,
            amount_units=result.amount_units,
            confirmations=result.confirmations,
        )
        return result

    async def _rpc(self, client: httpx.AsyncClient, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            response = await client.post(self._rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Chain RPC request failed", method=method, error=str(exc))
            raise ExternalServiceUnavailable("Blockchain verifier is unavailable", method=method) from exc
        if not isinstance(body, Mapping) or body.get("error"):
            logger.error("Chain RPC returned an error", method=method, error=body.get("error") if isinstance(body, Mapping) else body)
            raise ExternalServiceUnavailable("Blockchain verifier rejected the request", method=method)
        return body.get("result")

    def _check_receipt(
        self,
        tx_hash: str,
        receipt: Mapping[str, Any],
        head: Any,
        expected_amount_cents: int,
    ) -> ChainVerification:
        if int(receipt["status"], 16) != 1:
            return ChainVerification(tx_hash=tx_hash, verified=False, reason="transaction_failed")

        block = int(receipt["blockNumber"], 16)
        confirmations = max(0, int(head, 16) - block + 1) if head else 0
        if confirmations < self._min_confirmations:
            return ChainVerification(
                tx_hash=tx_hash,
                verified=False,
                reason="insufficient_confirmations",
                confirmations=confirmations,
            )

        received = 0
        sender: str | None = None
        for log in receipt.get("logs") or []:
            topics = log.get("topics") or []
            if len(topics) < 3 or topics[0].lower() != TRANSFER_TOPIC:
                continue
            if str(log.get("address", "")).lower() != self._token_contract:
                continue
            if _topic_address(topics[2]) != self._receiving_address:
                continue
            log_sender = _topic_address(topics[1])
            if self._allowed_senders and log_sender not in self._allowed_senders:
                continue
            sender = sender or log_sender
            received += int(log["data"], 16)

        if received == 0:
            return ChainVerification(
                tx_hash=tx_hash,
                verified=False,
                reason="no_matching_transfer",
                confirmations=confirmations,
            )

        expected = cents_to_token_units(expected_amount_cents, self._decimals)
        tolerance = cents_to_token_units(self._tolerance_cents, self._decimals)
        if abs(received - expected) > tolerance:
            return ChainVerification(
                tx_hash=tx_hash,
                verified=False,
                reason="amount_mismatch",
                sender=sender,
                amount_units=received,
                confirmations=confirmations,
            )
        return ChainVerification(
            tx_hash=tx_hash,
            verified=True,
            sender=sender,
            amount_units=received,
            confirmations=confirmations,
        )


__all__ = [
    "ChainVerification",
    "ChainVerifier",
    "HttpChainVerifier",
    "TRANSFER_TOPIC",
    "cents_to_token_units",
    "normalize_tx_hash",
]
