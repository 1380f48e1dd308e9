from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Awaitable, Callable

from app.core.logging import get_logger
from app.models.enums import PriceState
from app.services.errors import RatingEngineError, RecalculationFailed
from app.services.reconciler import ReconcileResult

logger = get_logger()

Reconcile = Callable[[dict], Awaitable[ReconcileResult]]
Publish = Callable[[dict], Awaitable[None]]


class EditSession:
    """Debounces field edits from one editing form and reconciles the settled set.

    Each edit restarts the quiet period. An edit arriving while a reconciliation
    is in flight does not interrupt it: the fields queue up and are rated by the
    next run, and the in-flight result is not published since it is already
    superseded.
    """

    def __init__(
        self,
        shipment_id: str,
        reconcile: Reconcile,
        publish: Publish,
        quiet_period: float = 0.5,
    ) -> None:
        self.shipment_id = str(shipment_id)
        self.reconcile = reconcile
        self.publish = publish
        self.quiet_period = quiet_period
        self.pending: dict = {}
        self.runs = 0
        self._generation = 0
        self._timer: asyncio.Task | None = None
        self._sleeping = False
        self._running = asyncio.Lock()

    @property
    def state(self) -> PriceState | None:
        if self.pending or self._running.locked():
            return PriceState.RECALCULATING
        return None

    async def submit(self, fields: dict) -> None:
        if not fields:
            return
        self.pending.update(fields)
        self._generation += 1
        if self._timer is not None and self._sleeping and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.create_task(self._after_quiet_period(self._generation))
        self._timer.add_done_callback(self._log_timer_failure)
        await self.publish({"type": "state", "shipment_id": self.shipment_id, "price_state": PriceState.RECALCULATING.value})

    async def flush(self) -> None:
        """Rates pending fields now instead of waiting out the quiet period."""
        if self._timer is not None and self._sleeping and not self._timer.done():
            self._timer.cancel()
        await self._run(self._generation)

    async def close(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
        self.pending.clear()

    def _log_timer_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "edit_session_timer_failed",
                shipment_id=self.shipment_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def _after_quiet_period(self, generation: int) -> None:
        self._sleeping = True
        try:
            await asyncio.sleep(self.quiet_period)
        finally:
            self._sleeping = False
        await self._run(generation)

    async def _run(self, generation: int) -> None:
        async with self._running:
            if not self.pending:
                return
            fields, self.pending = self.pending, {}
            self.runs += 1
            try:
                result = await self.reconcile(fields)
            except RecalculationFailed as exc:
                message = {
                    "type": "price",
                    "shipment_id": self.shipment_id,
                    "price_state": PriceState.FAILED.value,
                    "detail": str(exc),
                }
            except (RatingEngineError, ValueError) as exc:
                message = {"type": "error", "shipment_id": self.shipment_id, "detail": str(exc)}
            else:
                message = {
                    "type": "price",
                    "shipment_id": self.shipment_id,
                    "price_state": result.price_state.value,
                    "updated": result.updated,
                    "total_price": result.new_price,
                    "history_entry_id": result.history_entry_id,
                }

            if generation != self._generation:
                logger.info("edit_session_result_superseded", shipment_id=self.shipment_id)
                return
            await self.publish(message)


class EditSessionRegistry:
    """Open editing sessions per shipment, so reads can report a price as being recalculated."""

    def __init__(self) -> None:
        self.sessions: defaultdict[str, set[EditSession]] = defaultdict(set)

    def register(self, session: EditSession) -> None:
        self.sessions[session.shipment_id].add(session)

    def unregister(self, session: EditSession) -> None:
        sessions = self.sessions.get(session.shipment_id)
        if sessions is None:
            return
        sessions.discard(session)
        if not sessions:
            del self.sessions[session.shipment_id]

    def is_recalculating(self, shipment_id) -> bool:
        return any(s.state == PriceState.RECALCULATING for s in self.sessions.get(str(shipment_id), ()))


edit_sessions = EditSessionRegistry()
