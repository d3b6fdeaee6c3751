"""Bulk reclamation of expired lock records."""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from leaselock.utils.logging import get_logger

from .models import SweeperSettings
from .space import LockSpace


class ExpirationSweeper:
    """Deletes expired records in one atomic, bounded pass per call."""

    def __init__(self, space: LockSpace, settings: Optional[SweeperSettings] = None) -> None:
        self.space = space
        self.settings = settings or SweeperSettings()
        self.logger = get_logger("ExpirationSweeper")

    async def process(self) -> int:
        """Remove up to ``limit`` expired records, oldest first, and return the count."""
        counter = await self.space.sweep(self.settings.limit, time.time())
        if counter:
            self.logger.info("Swept %d expired lock(s) from %s", counter, self.space.name)
        return counter


class SweeperAgent:
    """Runs an ``ExpirationSweeper`` periodically until stopped."""

    def __init__(self, sweeper: ExpirationSweeper, *, interval_seconds: Optional[float] = None) -> None:
        self.sweeper = sweeper
        self.interval_seconds = interval_seconds or sweeper.settings.interval_seconds
        self.logger = get_logger("SweeperAgent")
        self.total_swept = 0
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self.logger.info("Starting sweeper for space %s", self.sweeper.space.name)
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run(), name=f"sweeper-{self.sweeper.space.name}")

    async def stop(self) -> None:
        self.logger.info("Stopping sweeper for space %s", self.sweeper.space.name)
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None

    def should_stop(self) -> bool:
        return self._stop_event.is_set()

    async def run_once(self) -> int:
        try:
            counter = await self.sweeper.process()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.logger.exception("Sweep failed: %s", exc)
            return 0
        self.total_swept += counter
        return counter

    async def run(self) -> None:
        while not self.should_stop():
            counter = await self.run_once()
            if counter >= self.sweeper.settings.limit:
                # Backlog remains; drain it before waiting again.
                await asyncio.sleep(0)
                continue
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
