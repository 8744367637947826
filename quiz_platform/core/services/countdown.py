"""Background ticker that drives the countdown of timed attempts."""

from __future__ import annotations

from collections.abc import Callable
import logging
from threading import Event, Thread

from quiz_platform.constants.quiz_constants import TICK_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


class CountdownTimer:
    """Calls ``on_tick`` every ``interval_seconds`` until cancelled.

    The callback returns False to stop the ticker on its own.
    """

    def __init__(
        self,
        on_tick: Callable[[], bool],
        interval_seconds: float = TICK_INTERVAL_SECONDS,
        name: str = "AttemptCountdown",
    ) -> None:
        self._on_tick = on_tick
        self._interval = interval_seconds
        self._stop = Event()
        self._thread = Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._stop.set()

    def is_cancelled(self) -> bool:
        return self._stop.is_set()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                keep_running = self._on_tick()
            except Exception:
                logger.exception("Countdown tick failed; stopping %s", self._thread.name)
                break
            if not keep_running:
                break
        self._stop.set()
