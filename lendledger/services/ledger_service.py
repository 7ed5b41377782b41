"""Single-writer ledger service: one asyncio task applies every operation."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..core import LendingCore
from ..oracles import PythPriceFeed
from ..result import OperationResult

logger = logging.getLogger(__name__)

# Operations a client may submit; everything else on LendingCore is internal.
_OPERATIONS = frozenset(
    {
        "deposit",
        "withdraw",
        "borrow",
        "repay",
        "liquidate",
        "flash_loan",
        "accrue",
        "market",
        "health_factor",
        "account_snapshot",
        "supplied_balance",
        "borrowed_balance",
        "add_asset",
        "update_asset_flags",
        "set_rate_model",
        "set_risk_parameters",
        "withdraw_reserves",
    }
)

_STOP = object()


class LedgerService:
    """Queue-fed actor owning a LendingCore.

    Submissions are applied strictly in the order they were queued, one at
    a time, on the event loop's thread. Callers await the OperationResult.
    """

    def __init__(
        self,
        core: LendingCore,
        price_feed: PythPriceFeed | None = None,
        refresh_interval_seconds: int = 30,
    ) -> None:
        self._core = core
        self._price_feed = price_feed
        self._refresh_interval = refresh_interval_seconds
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._refresher: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run())
        if self._price_feed is not None:
            self._refresher = asyncio.create_task(self.run_price_refresh())
        logger.info("Ledger service started")

    async def stop(self) -> None:
        """Drain queued operations, then stop the worker."""
        if self._refresher is not None:
            self._refresher.cancel()
            try:
                await self._refresher
            except asyncio.CancelledError:
                pass
            self._refresher = None
        if self._worker is not None:
            await self._queue.put(_STOP)
            await self._worker
            self._worker = None
        logger.info("Ledger service stopped")

    async def __aenter__(self) -> "LedgerService":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, operation: str, *args: Any, **kwargs: Any) -> OperationResult[Any]:
        if operation not in _OPERATIONS:
            raise ValueError(f"Unknown ledger operation '{operation}'")
        if not self.running:
            raise RuntimeError("Ledger service is not running")
        future: asyncio.Future[OperationResult[Any]] = (
            asyncio.get_running_loop().create_future()
        )
        await self._queue.put((operation, args, kwargs, future))
        return await future

    async def deposit(self, user: str, asset_id: str, amount: int) -> OperationResult[Any]:
        return await self.submit("deposit", user, asset_id, amount)

    async def withdraw(self, user: str, asset_id: str, amount: int) -> OperationResult[Any]:
        return await self.submit("withdraw", user, asset_id, amount)

    async def borrow(self, user: str, asset_id: str, amount: int) -> OperationResult[Any]:
        return await self.submit("borrow", user, asset_id, amount)

    async def repay(self, user: str, asset_id: str, amount: int, payer: str | None = None) -> OperationResult[Any]:
        return await self.submit("repay", user, asset_id, amount, payer=payer)

    async def liquidate(self, *args: Any, **kwargs: Any) -> OperationResult[Any]:
        return await self.submit("liquidate", *args, **kwargs)

    async def flash_loan(self, *args: Any, **kwargs: Any) -> OperationResult[Any]:
        return await self.submit("flash_loan", *args, **kwargs)

    # ------------------------------------------------------------------
    # Worker loops
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _STOP:
                break
            operation, args, kwargs, future = item
            if future.cancelled():
                continue
            try:
                result = getattr(self._core, operation)(*args, **kwargs)
            except Exception as e:
                logger.error("Ledger operation %s raised: %s", operation, e)
                future.set_exception(e)
            else:
                future.set_result(result)

    async def run_price_refresh(self) -> None:
        """Refresh oracle quotes periodically until cancelled."""
        if self._price_feed is None:
            return
        logger.info(
            "Starting price refresh (every %d seconds)", self._refresh_interval
        )
        while True:
            try:
                await self._price_feed.refresh()
            except Exception as e:
                logger.error("Error refreshing prices: %s", e)
            await asyncio.sleep(self._refresh_interval)
