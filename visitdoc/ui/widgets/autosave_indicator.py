from __future__ import annotations

from datetime import datetime

from PySide6.QtWidgets import QLabel, QSizePolicy, QWidget

from visitdoc.domain.constants import AutoSaveStatus

STATUS_COLORS = {
    "success": "#9AD8A6",
    "warning": "#F4D58D",
    "error": "#E18A85",
    "info": "#7A7A78",
}

_STATUS_LEVELS = {
    AutoSaveStatus.IDLE: "",
    AutoSaveStatus.SAVING: "info",
    AutoSaveStatus.SAVED: "success",
    AutoSaveStatus.ERROR: "error",
}


def _refresh_status_style(label: QLabel) -> None:
    style = label.style()
    style.unpolish(label)
    style.polish(label)
    label.update()


def set_status(label: QLabel, message: str, level: str = "info") -> None:
    if not message:
        clear_status(label)
        return
    normalized_level = level if level in STATUS_COLORS else "info"
    label.setText(message)
    label.setObjectName("statusLabel")
    label.setProperty("statusLevel", normalized_level)
    label.setSizePolicy(QSizePolicy.Policy.Maximum, QSizePolicy.Policy.Preferred)
    _refresh_status_style(label)


def clear_status(label: QLabel) -> None:
    label.clear()
    label.setObjectName("statusLabel")
    label.setProperty("statusLevel", "")
    _refresh_status_style(label)


class AutoSaveIndicator(QLabel):
    """Status pill bound to an ``AutoSavePipeline`` through its status listener."""

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.status = AutoSaveStatus.IDLE
        self.last_saved_at: datetime | None = None
        self.error_message: str | None = None
        clear_status(self)

    def bind(self, pipeline) -> None:
        pipeline.add_listener(lambda status: self.show_status(status, pipeline=pipeline))

    def show_status(self, status: AutoSaveStatus, *, pipeline=None) -> None:
        self.status = AutoSaveStatus(status)
        if pipeline is not None:
            self.last_saved_at = pipeline.last_saved_at
            self.error_message = str(pipeline.last_error) if pipeline.last_error else None
        set_status(self, self.message_for(self.status), _STATUS_LEVELS[self.status])

    def message_for(self, status: AutoSaveStatus) -> str:
        if status == AutoSaveStatus.SAVING:
            return "Saving..."
        if status == AutoSaveStatus.SAVED:
            if self.last_saved_at is not None:
                return f"Saved at {self.last_saved_at.astimezone():%H:%M:%S}"
            return "Saved"
        if status == AutoSaveStatus.ERROR:
            return f"Save failed: {self.error_message}" if self.error_message else "Save failed"
        return ""
