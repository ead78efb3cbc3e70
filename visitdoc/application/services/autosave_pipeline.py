"""Debounced, single-flight autosave for one visit.

Each section has its own quiescence timer. When any timer fires the pipeline saves the
latest value of every section in one payload. While a save is in transit, further
requests wait in a FIFO and are coalesced so that the next save carries everything
edited in the meantime. There is no automatic retry: after an error the values stay
in memory and the next edit or ``save_now()`` tries again.
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

from visitdoc.application.scheduling import SaveRunner, Scheduler, TimerHandle
from visitdoc.domain.constants import AutoSaveStatus, VisitSection
from visitdoc.domain.models.visit import VisitRecord, VisitSections
from visitdoc.errors import ConcurrentCommitConflictError, LockedError, SaveFailedError

logger = logging.getLogger(__name__)

StatusListener = Callable[[AutoSaveStatus], None]


class VisitGateway(Protocol):
    def get_visit(self, visit_id: str) -> VisitRecord: ...

    def save_sections(
        self,
        visit_id: str,
        sections: VisitSections,
        *,
        expected_version: int,
        actor_id: int | None,
        change_reason: str = "autosave",
    ) -> VisitRecord: ...


class EditPermission(Protocol):
    def can_edit(self, visit: VisitRecord) -> bool: ...

    def require_editable(self, visit: VisitRecord) -> None: ...


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AutoSavePipeline:
    def __init__(
        self,
        visit: VisitRecord,
        *,
        gateway: VisitGateway,
        permission: EditPermission,
        scheduler: Scheduler,
        runner: SaveRunner,
        actor_id: int | None = None,
        debounce_seconds: float = 30.0,
        saved_display_seconds: float = 2.0,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.gateway = gateway
        self.permission = permission
        self.scheduler = scheduler
        self.runner = runner
        self.actor_id = actor_id
        self.debounce_seconds = debounce_seconds
        self.saved_display_seconds = saved_display_seconds
        self._clock = clock

        self._lock = threading.RLock()
        self._visit = copy.deepcopy(visit)
        self._sections = copy.deepcopy(visit.sections)
        self._dirty: set[VisitSection] = set()
        self._timers: dict[VisitSection, TimerHandle] = {}
        self._timer_tokens: dict[VisitSection, int] = {}
        self._token_seq = itertools.count(1)
        self._display_timer: TimerHandle | None = None
        self._in_flight = False
        self._pending: deque[str] = deque()
        self._status = AutoSaveStatus.IDLE
        self._listeners: list[StatusListener] = []
        self._closed = False

        self.last_saved_at: datetime | None = None
        self.last_error: Exception | None = None

    @property
    def visit(self) -> VisitRecord:
        with self._lock:
            return copy.deepcopy(self._visit)

    @property
    def sections(self) -> VisitSections:
        with self._lock:
            return copy.deepcopy(self._sections)

    @property
    def status(self) -> AutoSaveStatus:
        return self._status

    @property
    def is_saving(self) -> bool:
        return self._in_flight

    @property
    def has_unsaved_changes(self) -> bool:
        with self._lock:
            return bool(self._dirty) or self._in_flight or bool(self._pending)

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def get_section(self, section: VisitSection) -> Any:
        with self._lock:
            return self._sections.get(section)

    def update_section(self, section: VisitSection, value: Any) -> None:
        section = VisitSection(section)
        with self._lock:
            self.permission.require_editable(self._visit)
            self._sections = self._sections.with_section(section, value)
            self._dirty.add(section)
            previous = self._timers.pop(section, None)
            if previous is not None:
                previous.cancel()
            token = next(self._token_seq)
            self._timer_tokens[section] = token
            self._timers[section] = self.scheduler.call_later(
                self.debounce_seconds,
                lambda: self._on_section_timer(section, token),
            )

    def save_now(self) -> bool:
        """Save the accumulated state without waiting for the debounce window.

        Returns False when there is nothing to save.
        """
        with self._lock:
            self._cancel_section_timers()
            if not self._dirty:
                return False
            self._request_save("manual")
            return True

    def sync_visit(self, visit: VisitRecord) -> None:
        """Adopt a record changed outside the pipeline, e.g. by a lifecycle transition."""
        with self._lock:
            self._visit = copy.deepcopy(visit)
            if not self._dirty and not self._in_flight:
                self._sections = copy.deepcopy(visit.sections)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._cancel_section_timers()
            if self._display_timer is not None:
                self._display_timer.cancel()
                self._display_timer = None
            self._listeners.clear()

    def _on_section_timer(self, section: VisitSection, token: int) -> None:
        with self._lock:
            # a timer that lost the race with cancel() must not touch its successor
            if self._closed or self._timer_tokens.get(section) != token:
                return
            del self._timer_tokens[section]
            self._timers.pop(section, None)
            self._request_save(f"section:{section.value}")

    def _request_save(self, reason: str) -> None:
        if not self._dirty:
            return
        if not self.permission.can_edit(self._visit):
            self._discard_pending(reason)
            return
        if self._in_flight:
            # Requests made during a save collapse into one follow-up save.
            if not self._pending:
                self._pending.append(reason)
            return
        self._begin_save()

    def _discard_pending(self, reason: str) -> None:
        logger.warning(
            "Autosave for visit %s discarded (%s): visit is %s",
            self._visit.id,
            reason,
            self._visit.status,
        )
        self._cancel_section_timers()
        self._dirty.clear()
        self._pending.clear()
        self._sections = copy.deepcopy(self._visit.sections)
        self.last_error = LockedError(
            f"Visit {self._visit.id} is {self._visit.status}; unsaved changes were discarded",
            status=str(self._visit.status),
        )
        self._move_to(AutoSaveStatus.ERROR)

    def _begin_save(self) -> None:
        self._cancel_section_timers()
        payload = copy.deepcopy(self._sections)
        attempted = set(self._dirty)
        self._dirty.clear()
        self._in_flight = True
        self._move_to(AutoSaveStatus.SAVING)
        visit_id = self._visit.id
        expected_version = self._visit.version_number

        def _save() -> VisitRecord:
            return self.gateway.save_sections(
                visit_id,
                payload,
                expected_version=expected_version,
                actor_id=self.actor_id,
                change_reason="autosave",
            )

        self.runner.submit(
            _save,
            lambda record: self._on_save_success(record),
            lambda exc: self._on_save_error(exc, attempted),
        )

    def _on_save_success(self, record: VisitRecord) -> None:
        with self._lock:
            self._in_flight = False
            self._visit = copy.deepcopy(record)
            self.last_saved_at = self._clock()
            self.last_error = None
            logger.info("Autosaved visit %s at version %s", record.id, record.version_number)
            self._move_to(AutoSaveStatus.SAVED)
            if self._closed:
                return
            if self._pending and self._dirty:
                self._pending.clear()
                self._request_save("queued")
                return
            self._pending.clear()
            self._display_timer = self.scheduler.call_later(
                self.saved_display_seconds,
                self._on_saved_display_elapsed,
            )

    def _on_save_error(self, exc: Exception, attempted: set[VisitSection]) -> None:
        with self._lock:
            self._in_flight = False
            self._pending.clear()
            self._dirty |= attempted
            if isinstance(exc, (ConcurrentCommitConflictError, LockedError)):
                self._refresh_version()
            if isinstance(exc, LockedError) and not self.permission.can_edit(self._visit):
                # finalized elsewhere while this editor was open
                self._discard_pending("rejected by store")
                return
            if isinstance(exc, (LockedError, ConcurrentCommitConflictError, SaveFailedError)):
                self.last_error = exc
            else:
                wrapped = SaveFailedError(f"Autosave of visit {self._visit.id} failed: {exc}")
                wrapped.__cause__ = exc
                self.last_error = wrapped
            logger.error(
                "Autosave of visit %s failed",
                self._visit.id,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
            self._move_to(AutoSaveStatus.ERROR)

    def _refresh_version(self) -> None:
        try:
            current = self.gateway.get_visit(self._visit.id)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to re-read visit %s after a rejected save", self._visit.id)
            return
        self._visit = copy.deepcopy(current)

    def _on_saved_display_elapsed(self) -> None:
        with self._lock:
            self._display_timer = None
            if self._status == AutoSaveStatus.SAVED:
                self._move_to(AutoSaveStatus.IDLE)

    def _move_to(self, status: AutoSaveStatus) -> None:
        settled = (AutoSaveStatus.SAVED, AutoSaveStatus.ERROR)
        if self._status in settled and status not in (self._status, AutoSaveStatus.IDLE):
            # a settled status always passes through idle first
            if self._display_timer is not None:
                self._display_timer.cancel()
                self._display_timer = None
            self._emit(AutoSaveStatus.IDLE)
        self._emit(status)

    def _emit(self, status: AutoSaveStatus) -> None:
        if status == self._status:
            return
        self._status = status
        for listener in list(self._listeners):
            listener(status)

    def _cancel_section_timers(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._timer_tokens.clear()
