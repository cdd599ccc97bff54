"""Top strip: one tab per PDF in the folder, labelled with its running total."""
from typing import Dict, List, Optional

from PySide6.QtCore import Signal
from PySide6.QtGui import QColor
from PySide6.QtWidgets import QHBoxLayout, QLabel, QTabBar, QWidget

from models import format_points

_GRADED_TEXT = QColor(5, 120, 61)


class PdfTabBar(QWidget):
    document_selected = Signal(str)

    def __init__(self, parent=None):
        super().__init__(parent)
        self._filenames: List[str] = []

        layout = QHBoxLayout(self)
        layout.setContentsMargins(4, 0, 4, 0)

        self._tabs = QTabBar()
        self._tabs.setExpanding(False)
        self._tabs.setUsesScrollButtons(True)
        self._tabs.currentChanged.connect(self._on_current_changed)
        layout.addWidget(self._tabs, stretch=1)

        self._count_label = QLabel("")
        self._count_label.setStyleSheet("color: #888;")
        layout.addWidget(self._count_label)

    def set_documents(self, filenames: List[str]):
        """Replace the tabs, keeping the current document selected when it still exists."""
        previous = self.current_document()
        self._filenames = list(filenames)
        self._tabs.blockSignals(True)
        while self._tabs.count():
            self._tabs.removeTab(0)
        for name in self._filenames:
            self._tabs.addTab(name)
            self._tabs.setTabToolTip(self._tabs.count() - 1, name)
        self._tabs.blockSignals(False)
        self._count_label.setText(f"{len(self._filenames)} PDF(s)")

        if not self._filenames:
            self.document_selected.emit("")
            return
        if previous in self._filenames:
            self._tabs.setCurrentIndex(self._filenames.index(previous))
            return
        self._tabs.setCurrentIndex(0)
        self.document_selected.emit(self._filenames[0])

    def set_totals(self, totals: Dict[str, float], maximum: float, graded: Dict[str, bool]):
        """Show ``name · total/max`` on each tab; graded documents are tinted."""
        for i, name in enumerate(self._filenames):
            total = totals.get(name, 0.0)
            self._tabs.setTabText(
                i, f"{name}  ·  {format_points(total)}/{format_points(maximum)}")
            self._tabs.setTabTextColor(i, _GRADED_TEXT if graded.get(name) else QColor())

    def select_document(self, filename: str):
        if filename in self._filenames:
            self._tabs.setCurrentIndex(self._filenames.index(filename))

    def current_document(self) -> Optional[str]:
        row = self._tabs.currentIndex()
        if 0 <= row < len(self._filenames):
            return self._filenames[row]
        return None

    def select_next(self, step: int = 1):
        if self._filenames:
            self._tabs.setCurrentIndex((self._tabs.currentIndex() + step) % len(self._filenames))

    def _on_current_changed(self, row: int):
        if 0 <= row < len(self._filenames):
            self.document_selected.emit(self._filenames[row])
