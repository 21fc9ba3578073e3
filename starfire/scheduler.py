"""Fixed-interval runner for the claim-and-distribute cycle."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .logging_utils import warn_once_per

logger = logging.getLogger(__name__)


class Scheduler:
    """Run ``cycle`` immediately and then every ``interval`` seconds.

    Ticks fire on a fixed cadence. A tick that arrives while the previous
    cycle is still in flight is skipped rather than started in parallel.
    Errors inside a cycle are logged and never stop the timer.
    """

    def __init__(
        self,
        cycle: Callable[[], Awaitable[Any]],
        interval: float,
        *,
        name: str = "auto-claim",
        on_result: Callable[[Any], None] | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._cycle = cycle
        self.interval = float(interval)
        self.name = name
        self._on_result = on_result
        self._ticker: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self.completed = 0
        self.failed = 0
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def start(self) -> asyncio.Task:
        """Start ticking on the running loop; returns the ticker task."""

        if self.running:
            return self._ticker  # type: ignore[return-value]
        logger.info("Starting %s loop every %.0fs", self.name, self.interval)
        self._ticker = asyncio.get_running_loop().create_task(
            self._tick_forever(), name=f"{self.name}-ticker"
        )
        return self._ticker

    def stop(self) -> None:
        """Cancel future ticks; an in-flight cycle is left to finish."""

        ticker, self._ticker = self._ticker, None
        if ticker is None:
            return
        ticker.cancel()
        logger.info("%s loop stopped", self.name)

    async def wait_idle(self) -> None:
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            await asyncio.wait({inflight})

    async def _tick_forever(self) -> None:
        while True:
            self._launch()
            await asyncio.sleep(self.interval)

    def _launch(self) -> None:
        if self.busy:
            self.skipped += 1
            warn_once_per(
                1.0,
                f"scheduler-overlap:{self.name}",
                "%s cycle still running; skipping tick",
                self.name,
                logger=logger,
            )
            return
        self._inflight = asyncio.get_running_loop().create_task(
            self._run_once(), name=f"{self.name}-cycle"
        )

    async def _run_once(self) -> None:
        try:
            result = await self._cycle()
        except asyncio.CancelledError:
            raise
        except Exception:
            self.failed += 1
            logger.exception("%s cycle failed", self.name)
            return
        self.completed += 1
        if self._on_result is not None:
            try:
                self._on_result(result)
            except Exception:
                logger.exception("%s result handler failed", self.name)


__all__ = ["Scheduler"]
