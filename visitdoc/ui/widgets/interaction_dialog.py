from __future__ import annotations

from collections.abc import Sequence

from PySide6.QtCore import Qt
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QDialog,
    QDialogButtonBox,
    QLabel,
    QListWidget,
    QListWidgetItem,
    QVBoxLayout,
    QWidget,
)

from visitdoc.domain.constants import InteractionSeverity
from visitdoc.domain.models.visit import DrugInteractionWarning

SEVERITY_COLORS = {
    InteractionSeverity.CONTRAINDICATED: "#B3261E",
    InteractionSeverity.MAJOR: "#E18A85",
    InteractionSeverity.MODERATE: "#F4D58D",
    InteractionSeverity.MINOR: "#9AD8A6",
    InteractionSeverity.UNKNOWN: "#7A7A78",
}


class InteractionConfirmDialog(QDialog):
    """Shows held interaction warnings; Accepted means the prescriber confirmed them."""

    def __init__(
        self,
        medication_name: str,
        warnings: Sequence[DrugInteractionWarning],
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.setObjectName("interactionConfirmDialog")
        self.setWindowTitle("Drug interactions")
        self.setModal(True)
        self.warnings = list(warnings)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(16, 16, 16, 16)
        layout.setSpacing(12)

        title = QLabel(f"{medication_name} interacts with the current medication list")
        title.setObjectName("interactionTitle")
        title.setWordWrap(True)
        layout.addWidget(title)

        self.warning_list = QListWidget()
        for warning in self.warnings:
            item = QListWidgetItem(
                f"[{warning.severity.value.upper()}] {warning.medication_name}: {warning.description}"
            )
            item.setData(Qt.ItemDataRole.UserRole, warning.severity.value)
            item.setForeground(QColor(SEVERITY_COLORS[warning.severity]))
            self.warning_list.addItem(item)
        layout.addWidget(self.warning_list)

        self.buttons = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel
        )
        self.buttons.button(QDialogButtonBox.StandardButton.Ok).setText("Prescribe anyway")
        self.buttons.accepted.connect(self.accept)
        self.buttons.rejected.connect(self.reject)
        layout.addWidget(self.buttons)


def resolve_held_submission(editor, parent: QWidget | None = None) -> bool:
    """Ask the prescriber about a held prescription and confirm or cancel it on the editor."""
    held = editor.gate.held
    if held is None:
        return False
    dialog = InteractionConfirmDialog(held.draft.medication_name, held.warnings, parent)
    if dialog.exec() == QDialog.DialogCode.Accepted:
        editor.confirm_prescription()
        return True
    editor.cancel_prescription()
    return False
