"""Worker that voids presale holds whose expiry has passed."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.core.settings import settings
from superfan_api.core.time import utcnow
from superfan_api.services.points.redemptions import RedemptionService

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]


class HoldExpiryWorker:
    """Periodically marks expired HELD redemptions as EXPIRED.

    Read paths already treat an expired hold as void; this sweep makes the
    stored state agree so reports and listings need not recompute it.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        interval_seconds: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.hold_expiry_interval_seconds
        self._batch_size = batch_size or settings.hold_expiry_batch_size
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False
        self.last_run_at = None
        self.total_expired = 0

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info("Hold expiry worker started", interval_seconds=self.interval_seconds, batch_size=self._batch_size)

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Hold expiry worker stopped")

    async def run_once(self) -> Dict[str, int]:
        """Expire holds in batches until none remain due."""

        expired = 0
        session = await self._ensure_session()
        async with session as managed_session:
            service = RedemptionService(managed_session)
            while True:
                count = await service.expire_holds(limit=self._batch_size)
                expired += count
                if count < self._batch_size:
                    break

        self.last_run_at = utcnow()
        self.total_expired += expired
        if expired:
            logger.info("Hold expiry sweep completed", expired=expired)
        return {"expired": expired}

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover
                logger.exception("Hold expiry iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session


__all__ = ["HoldExpiryWorker"]
