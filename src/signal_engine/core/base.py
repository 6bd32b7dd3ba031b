"""
Lifecycle base classes for long-lived engine components.

Provides:
- Component: initialize/start/stop/health_check hooks
- AlwaysOnComponent: components that own a background loop (e.g. context sweeper)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


# ============================================================================
# Base Component
# ============================================================================

class Component(ABC):
    """
    Base class for engine components with a start/stop lifecycle.

    Request-driven parts of the engine (aggregator, fetcher, decision engine)
    are plain objects; only components owning background work derive from this.
    """

    def __init__(self, name: str):
        self.name = name
        self._started = False
        self._started_at: Optional[datetime] = None
        self._logger = logging.getLogger(f"{self.__class__.__module__}.{name}")

    async def start(self) -> None:
        if self._started:
            self._logger.warning("%s already started", self.name)
            return

        self._logger.info("Starting %s", self.name)
        self._started = True
        self._started_at = datetime.now(timezone.utc)

    async def stop(self) -> None:
        if not self._started:
            self._logger.warning("%s not started", self.name)
            return

        self._logger.info("Stopping %s", self.name)
        self._started = False

    async def health_check(self) -> dict:
        """
        Return component health.

        Returns:
            {"component": str, "status": "healthy" | "stopped", "uptime_seconds": float, "details": {...}}
        """
        return {
            "component": self.name,
            "status": "healthy" if self._started else "stopped",
            "uptime_seconds": self.uptime_seconds,
            "details": {},
        }

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def uptime_seconds(self) -> float:
        if not self._started_at:
            return 0.0
        return (datetime.now(timezone.utc) - self._started_at).total_seconds()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name}, started={self._started})"


# ============================================================================
# Always-On Component
# ============================================================================

class AlwaysOnComponent(Component):
    """
    Component with a main loop that runs until stopped.

    Subclasses implement ``_run_loop`` and check ``self._running``.
    """

    def __init__(self, name: str, shutdown_timeout: float = 5.0):
        super().__init__(name)
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._shutdown_timeout = shutdown_timeout

    async def start(self) -> None:
        await super().start()

        if self._running:
            self._logger.warning("%s already running", self.name)
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name=f"{self.name}_loop")
        self._logger.info("%s started", self.name)

    async def stop(self) -> None:
        self._logger.info("Stopping %s...", self.name)
        self._running = False

        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=self._shutdown_timeout)
                self._logger.info("%s stopped gracefully", self.name)
            except asyncio.TimeoutError:
                self._logger.warning("%s shutdown timeout - forcing stop", self.name)
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            self._task = None

        await super().stop()

    @abstractmethod
    async def _run_loop(self) -> None:
        """Main loop; must return promptly once ``self._running`` is False."""
        raise NotImplementedError("Subclasses must implement _run_loop()")

    @property
    def is_running(self) -> bool:
        return self._running
