from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle: ...


class SaveRunner(Protocol):
    def submit(
        self,
        fn: Callable[[], Any],
        on_success: Callable[[Any], None],
        on_error: Callable[[Exception], None],
    ) -> None: ...


class ThreadTimerScheduler:
    """Headless scheduler backed by daemon ``threading.Timer`` objects."""

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(0.0, delay_seconds), callback)
        timer.daemon = True
        timer.start()
        return timer


class InlineSaveRunner:
    """Runs the save on the calling thread and reports the outcome synchronously."""

    def submit(
        self,
        fn: Callable[[], Any],
        on_success: Callable[[Any], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        try:
            result = fn()
        except Exception as exc:  # noqa: BLE001
            logging.getLogger(__name__).debug("Inline save failed: %s", exc)
            on_error(exc)
            return
        on_success(result)
