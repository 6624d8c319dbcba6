import asyncio
import logging
import time
from typing import Optional

from nexus_agent.modules.client import ControlPlaneError

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Fixed-interval task with single-flight ticks.

    A tick that is still running when the next one is due delays it; ticks
    are never stacked. Once a tick overruns its interval the next one starts
    immediately and any missed ticks are coalesced into it. Failures are
    logged and never stop the schedule.

    Subclasses implement ``tick()``.
    """

    name = "periodic"

    def __init__(self, interval: float, stop_event: Optional[asyncio.Event] = None):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self._stop = stop_event or asyncio.Event()
        self._in_flight = False
        self.runs = 0
        self.failures = 0
        self.consecutive_failures = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Stop issuing new ticks. An in-flight tick is left to finish."""
        self._stop.set()

    async def tick(self) -> None:
        raise NotImplementedError

    async def run_once(self) -> bool:
        """
        Run one tick unless one is already in flight.

        Returns:
            True if the tick ran and succeeded
        """
        if self._in_flight:
            logger.debug(f"{self.name}: previous tick still running, skipping")
            return False

        self._in_flight = True
        self.runs += 1
        try:
            await self.tick()
        except ControlPlaneError as e:
            self._record_failure()
            logger.warning(f"{self.name} failed: {e}")
            return False
        except Exception as e:
            self._record_failure()
            logger.exception(f"{self.name} raised unexpectedly: {e}")
            return False
        finally:
            self._in_flight = False

        if self.consecutive_failures:
            logger.info(f"{self.name} recovered after {self.consecutive_failures} failure(s)")
            self.consecutive_failures = 0
        return True

    async def run(self) -> None:
        """Tick every ``interval`` seconds until stopped."""
        logger.info(f"{self.name} started (every {self.interval:g}s)")
        while not self._stop.is_set():
            started = time.monotonic()
            await self.run_once()

            elapsed = time.monotonic() - started
            if elapsed > self.interval:
                logger.debug(f"{self.name}: tick took {elapsed:.1f}s, longer than the {self.interval:g}s interval")
            delay = max(0.0, self.interval - elapsed)

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        logger.info(f"{self.name} stopped")

    def _record_failure(self) -> None:
        self.failures += 1
        self.consecutive_failures += 1
