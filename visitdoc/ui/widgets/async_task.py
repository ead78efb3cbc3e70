from __future__ import annotations

from collections.abc import Callable
from typing import Any

from PySide6.QtCore import QObject, QRunnable, QThreadPool, QTimer, Signal


class TaskSignals(QObject):
    success = Signal(object)
    error = Signal(Exception)
    finished = Signal()


class AsyncTask(QRunnable):
    def __init__(self, fn: Callable[[], Any]) -> None:
        super().__init__()
        self.fn = fn
        self.signals = TaskSignals()

    def run(self) -> None:
        try:
            result = self.fn()
        except Exception as exc:  # noqa: BLE001
            self.signals.error.emit(exc)
        else:
            self.signals.success.emit(result)
        finally:
            self.signals.finished.emit()


def run_async(
    parent: QObject,
    fn: Callable[[], Any],
    on_success: Callable[[Any], None] | None = None,
    on_error: Callable[[Exception], None] | None = None,
    on_finished: Callable[[], None] | None = None,
    pool: QThreadPool | None = None,
) -> AsyncTask:
    task = AsyncTask(fn)
    if on_success:
        task.signals.success.connect(on_success)
    if on_error:
        task.signals.error.connect(on_error)
    if on_finished:
        task.signals.finished.connect(on_finished)
    (pool or QThreadPool.globalInstance()).start(task)
    return task


class QtSaveRunner(QObject):
    """Runs autosave requests on a Qt thread pool."""

    def __init__(self, parent: QObject | None = None, pool: QThreadPool | None = None) -> None:
        super().__init__(parent)
        self._pool = pool or QThreadPool.globalInstance()
        self._active: set[AsyncTask] = set()

    @property
    def active_count(self) -> int:
        return len(self._active)

    def submit(
        self,
        fn: Callable[[], Any],
        on_success: Callable[[Any], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        holder: list[AsyncTask] = []

        def _finished() -> None:
            if holder:
                self._active.discard(holder[0])

        task = run_async(self, fn, on_success, on_error, _finished, pool=self._pool)
        holder.append(task)
        self._active.add(task)

    def wait_for_done(self, msecs: int = -1) -> bool:
        return self._pool.waitForDone(msecs)


class _QtTimerHandle:
    def __init__(self, timer: QTimer) -> None:
        self._timer = timer

    def cancel(self) -> None:
        self._timer.stop()
        self._timer.deleteLater()

    @property
    def is_active(self) -> bool:
        return self._timer.isActive()


class QtScheduler(QObject):
    """``Scheduler`` backed by single-shot ``QTimer`` objects owned by this object."""

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> _QtTimerHandle:
        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.setInterval(max(0, int(round(delay_seconds * 1000))))

        def _fire() -> None:
            timer.deleteLater()
            callback()

        timer.timeout.connect(_fire)
        timer.start()
        return _QtTimerHandle(timer)
