"""Periodic liveness checks for agents."""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable

from ..logging_config import get_logger

logger = get_logger(__name__)

HealthProbe = Callable[[], Awaitable[bool]]


class HealthMonitor:
    """Runs a probe every interval seconds until stopped."""

    def __init__(self, name: str, probe: HealthProbe, interval: float):
        self._name = name
        self._probe = probe
        self._interval = interval
        self._task: asyncio.Task | None = None
        self.healthy: bool | None = None  # None until the first check
        self.last_check: datetime | None = None
        self.consecutive_failures = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running or self._interval <= 0:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def check_now(self) -> bool:
        """Run the probe once and record the outcome."""
        try:
            healthy = await self._probe()
        except Exception as e:
            logger.error("Health probe for %s raised: %s", self._name, e, exc_info=True)
            healthy = False

        self.healthy = healthy
        self.last_check = datetime.now(timezone.utc)
        if healthy:
            self.consecutive_failures = 0
        else:
            self.consecutive_failures += 1
            logger.warning(
                "Agent %s unhealthy (%s consecutive)", self._name, self.consecutive_failures
            )
        return healthy

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.check_now()
