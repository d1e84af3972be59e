"""
Background driver for the reclamation sweeper.

Runs one sweep per interval on a daemon thread for the lifetime of the
process. A failing cycle is logged and the loop carries on.
"""

from __future__ import annotations

import logging
import threading

from imgmod.components.reclaim import ReclamationSweeper, SweepResult

logger = logging.getLogger(__name__)


class ReclamationScheduler:
    """Runs ReclamationSweeper.sweep on a fixed interval."""

    def __init__(
        self,
        sweeper: ReclamationSweeper,
        interval_seconds: float = 900.0,
        *,
        run_immediately: bool = True,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            sweeper: Sweeper to drive
            interval_seconds: Sleep between cycles
            run_immediately: Sweep once on start instead of waiting a full interval
        """
        self._sweeper = sweeper
        self._interval = interval_seconds
        self._run_immediately = run_immediately
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._running = False

    def start(self) -> None:
        """Start the background sweeper."""
        if self._running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="reclamation-sweeper", daemon=True)
        self._thread.start()
        self._running = True
        logger.info("Reclamation sweeper started (interval: %.1fs)", self._interval)

    def stop(self) -> None:
        """Stop the sweeper thread."""
        if not self._running:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
        self._running = False
        logger.info("Reclamation sweeper stopped")

    def trigger_now(self) -> SweepResult:
        """Run one sweep synchronously."""
        return self._sweeper.sweep()

    @property
    def is_running(self) -> bool:
        return self._running

    def _run_cycle(self) -> None:
        try:
            self._sweeper.sweep()
        except Exception:
            logger.exception("Error in reclamation sweep")

    def _loop(self) -> None:
        if self._run_immediately:
            self._run_cycle()
        while not self._stop_event.wait(timeout=self._interval):
            self._run_cycle()
