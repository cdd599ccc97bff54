"""Dialogs for creating comment stamps and editing placed annotations."""
from PySide6.QtCore import QLocale, Qt
from PySide6.QtGui import QDoubleValidator
from PySide6.QtWidgets import (
    QDialog, QDialogButtonBox, QFormLayout, QLabel, QLineEdit,
    QPlainTextEdit, QVBoxLayout,
)

from models import SIGN_NEGATIVE, Annotation, format_points


def decimal_validator(parent) -> QDoubleValidator:
    """Accepts only "." as decimal separator, whatever the system locale."""
    validator = QDoubleValidator(parent)
    validator.setLocale(QLocale.c())
    validator.setNotation(QDoubleValidator.Notation.StandardNotation)
    return validator


def _points_edit(text: str) -> QLineEdit:
    edit = QLineEdit(text)
    edit.setValidator(decimal_validator(edit))
    edit.setMaximumWidth(100)
    return edit


class NewCommentDialog(QDialog):
    """Title, optional description and a point magnitude for a new comment stamp.

    The sign comes from the button that opened the dialog; the user only
    types the magnitude.
    """

    def __init__(self, sign: str, parent=None):
        super().__init__(parent)
        self._sign = sign
        negative = sign == SIGN_NEGATIVE
        self.setWindowTitle("New Negative Comment" if negative else "New Positive Comment")
        self.setMinimumWidth(380)

        layout = QVBoxLayout(self)
        form = QFormLayout()
        layout.addLayout(form)

        self._title_edit = QLineEdit()
        self._title_edit.setPlaceholderText("e.g. Missing unit")
        form.addRow("Title:", self._title_edit)

        self._desc_edit = QPlainTextEdit()
        self._desc_edit.setPlaceholderText("Shown as a note in the exported PDF (optional)")
        self._desc_edit.setFixedHeight(80)
        form.addRow("Description:", self._desc_edit)

        self._points_edit = _points_edit("1")
        form.addRow("Points (−):" if negative else "Points (+):", self._points_edit)

        self._error_label = QLabel("")
        self._error_label.setStyleSheet("color: red;")
        layout.addWidget(self._error_label)

        buttons = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel
        )
        buttons.accepted.connect(self._on_accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)
        self._title_edit.setFocus()

    def _on_accept(self):
        if not self._title_edit.text().strip():
            self._error_label.setText("Please enter a title.")
            return
        self.accept()

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def sign(self) -> str:
        return self._sign

    def title(self) -> str:
        return self._title_edit.text().strip()

    def description(self) -> str:
        return self._desc_edit.toPlainText().strip()

    def points_text(self) -> str:
        """Raw magnitude text; :func:`models.make_comment_stamp` applies the sign."""
        return self._points_edit.text().strip()


class EditAnnotationDialog(QDialog):
    """Edit a placed annotation.

    A point delta only exposes its value.  A blank title keeps the old one and
    non-numeric points leave the value unchanged.
    """

    def __init__(self, annotation: Annotation, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Edit Annotation")
        self.setMinimumWidth(380)
        self._is_point = annotation.is_point_stamp

        layout = QVBoxLayout(self)
        form = QFormLayout()
        layout.addLayout(form)

        self._title_edit = QLineEdit(annotation.label)
        self._desc_edit = QPlainTextEdit(annotation.description)
        self._desc_edit.setFixedHeight(80)
        if not self._is_point:
            form.addRow("Title:", self._title_edit)
            form.addRow("Description:", self._desc_edit)

        self._points_edit = _points_edit(format_points(annotation.points))
        form.addRow("Points:", self._points_edit)

        hint = QLabel(f"Page {annotation.page}")
        hint.setAlignment(Qt.AlignmentFlag.AlignRight)
        hint.setStyleSheet("color: #888;")
        layout.addWidget(hint)

        buttons = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel
        )
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def label(self):
        return None if self._is_point else self._title_edit.text()

    def description(self):
        return None if self._is_point else self._desc_edit.toPlainText()

    def points_text(self) -> str:
        return self._points_edit.text().strip()
