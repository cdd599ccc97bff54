"""Setup dialog: choose the folder of PDFs to grade."""
import logging
import os

from PySide6.QtWidgets import (
    QDialog, QDialogButtonBox, QFileDialog, QFormLayout,
    QHBoxLayout, QLabel, QLineEdit, QPushButton, QVBoxLayout,
)

import data_store

logger = logging.getLogger(__name__)


class SetupDialog(QDialog):
    def __init__(self, parent=None, message: str = ""):
        super().__init__(parent)
        self.setWindowTitle("GradeFrame — Open Folder")
        self.setMinimumWidth(540)

        self._folder = ""

        # Pre-fill with the folder opened last time
        config = data_store.load_session_config()
        if config:
            self._folder = config.get("folder", "")

        layout = QVBoxLayout(self)
        layout.addWidget(QLabel(
            "<b>Welcome to GradeFrame</b><br>"
            "Select a folder containing the PDFs to grade.<br><br>"
            "Grading progress is saved to <tt>.config.json</tt> inside that folder;<br>"
            "exports are written to a <tt>graded/</tt> sub-folder."
        ))
        layout.addSpacing(8)

        form = QFormLayout()
        layout.addLayout(form)

        self._dir_edit = QLineEdit(self._folder)
        browse_btn = QPushButton("Browse…")
        browse_btn.clicked.connect(self._browse)
        dir_row = QHBoxLayout()
        dir_row.addWidget(self._dir_edit)
        dir_row.addWidget(browse_btn)
        form.addRow("PDF folder:", dir_row)

        layout.addSpacing(12)

        self._error_label = QLabel(message)
        self._error_label.setStyleSheet("color: red;")
        self._error_label.setWordWrap(True)
        layout.addWidget(self._error_label)

        buttons = QDialogButtonBox()
        buttons.addButton("Open Folder", QDialogButtonBox.ButtonRole.AcceptRole)
        buttons.addButton("Cancel", QDialogButtonBox.ButtonRole.RejectRole)
        buttons.accepted.connect(self._on_accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _browse(self):
        path = QFileDialog.getExistingDirectory(self, "Select PDF Folder",
                                                self._dir_edit.text())
        if path:
            self._dir_edit.setText(path)

    def _on_accept(self):
        folder = self._dir_edit.text().strip()
        if not os.path.isdir(folder):
            self._error_label.setText("Folder does not exist.")
            return
        try:
            data_store.save_session_config(folder)
        except OSError as exc:
            # Not fatal: the folder just won't be pre-filled next time.
            logger.warning("Could not save session config: %s", exc)
        self._folder = folder
        self.accept()

    def folder(self) -> str:
        return self._folder
