import asyncio
from typing import Any, Callable, Optional
from storefront.common.logging_setup import get_logger
from storefront.common.retries import is_recoverable_exception
from storefront.inventory.reservations import sweep_expired

logger = get_logger("storefront.workers.reservation_sweeper")

DEFAULT_POLL_SECONDS = 60.0
DEFAULT_BATCH = 100


class ReservationSweeper:
    """Periodically hands expired stock holds back to availability."""

    def __init__(
        self,
        session_factory: Callable[[], Any],
        *,
        poll_interval: float = DEFAULT_POLL_SECONDS,
        batch_size: int = DEFAULT_BATCH,
    ):
        self.session_factory = session_factory
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def start(self):
        if self._task is None:
            self._stop.clear()
            self._task = asyncio.create_task(self.run(), name="reservation-sweeper")
        return self._task

    async def shutdown(self, wait_timeout: float = 10.0):
        self._stop.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._task, timeout=wait_timeout)
        except asyncio.TimeoutError:
            logger.warning("reservation_sweeper.shutdown.timeout")
            self._task.cancel()
        self._task = None

    async def run(self):
        logger.info("reservation_sweeper.started", extra={"poll_interval": self.poll_interval})
        while not self._stop.is_set():
            try:
                await self.sweep_once()
            except Exception as exc:
                if is_recoverable_exception(exc):
                    logger.warning("reservation_sweeper.transient_error", extra={"error": str(exc)})
                else:
                    logger.exception("reservation_sweeper.loop_error")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("reservation_sweeper.stopped")

    async def sweep_once(self) -> int:
        released = 0
        async with self.session_factory() as session:
            # keep draining while full batches come back
            while not self._stop.is_set():
                count = await sweep_expired(session, batch_size=self.batch_size)
                released += count
                if count < self.batch_size:
                    break
        return released
