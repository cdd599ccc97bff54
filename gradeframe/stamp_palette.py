"""Left panel: fixed point stamps, a custom value and the comment stamps of the active task."""
import logging
from typing import Dict, List, Optional

from PySide6.QtCore import Qt, Signal
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QGridLayout, QGroupBox, QHBoxLayout, QLabel, QLineEdit, QListWidget,
    QListWidgetItem, QPushButton, QVBoxLayout, QWidget,
)

from annotation_store import new_id
from models import (
    SIGN_NEGATIVE, SIGN_POSITIVE, ActiveStamp, CommentStamp, format_points, format_signed,
)
from stamp_dialogs import decimal_validator

logger = logging.getLogger(__name__)

FIXED_POINTS = (-2.0, -1.0, -0.5, 0.5, 1.0, 2.0)

_POSITIVE_TEXT = QColor(5, 120, 61)
_NEGATIVE_TEXT = QColor(179, 23, 23)
_SELECTED_STYLE = "font-weight: bold; border: 2px solid #1e64dc;"


class StampPalette(QWidget):
    """Emits :attr:`stamp_selected` with an :class:`ActiveStamp` (or None to deselect).

    Comment stamps are shown when they have no task or belong to the active
    task; the palette is disabled while that task is in manual mode.
    """

    stamp_selected = Signal(object)
    new_comment_requested = Signal(str)   # SIGN_POSITIVE | SIGN_NEGATIVE

    def __init__(self, parent=None):
        super().__init__(parent)
        self._active: Optional[ActiveStamp] = None
        self._stamps: Dict[str, CommentStamp] = {}
        self._updating = False

        layout = QVBoxLayout(self)
        layout.setContentsMargins(4, 4, 4, 4)

        self._task_label = QLabel("No task selected")
        self._task_label.setStyleSheet("font-weight: bold;")
        self._task_label.setWordWrap(True)
        layout.addWidget(self._task_label)

        # ── Fixed point stamps ───────────────────────────────────────────────
        points_box = QGroupBox("Points")
        grid = QGridLayout(points_box)
        grid.setSpacing(2)
        self._point_buttons: Dict[str, QPushButton] = {}
        negatives = [v for v in FIXED_POINTS if v < 0]
        positives = [v for v in FIXED_POINTS if v > 0]
        for row, values in enumerate((negatives, positives)):
            for col, value in enumerate(values):
                btn = QPushButton(format_signed(value))
                btn.setCheckable(True)
                btn.setStyleSheet(f"color: {(_NEGATIVE_TEXT if value < 0 else _POSITIVE_TEXT).name()};")
                btn.clicked.connect(lambda checked, v=value: self._on_point_clicked(v, checked))
                grid.addWidget(btn, row, col)
                self._point_buttons[ActiveStamp.point(value).id] = btn

        custom_row = QHBoxLayout()
        self._custom_edit = QLineEdit()
        self._custom_edit.setPlaceholderText("Custom, e.g. -0.25")
        self._custom_edit.setValidator(decimal_validator(self._custom_edit))
        self._custom_edit.returnPressed.connect(self._apply_custom)
        custom_btn = QPushButton("Use")
        custom_btn.clicked.connect(self._apply_custom)
        custom_row.addWidget(self._custom_edit)
        custom_row.addWidget(custom_btn)
        grid.addLayout(custom_row, 2, 0, 1, len(negatives))
        layout.addWidget(points_box)

        # ── Comment stamps ────────────────────────────────────────────────────
        self._neg_list = self._comment_group(layout, "Negative comments", SIGN_NEGATIVE)
        self._pos_list = self._comment_group(layout, "Positive comments", SIGN_POSITIVE)

        self._hint = QLabel("")
        self._hint.setWordWrap(True)
        self._hint.setStyleSheet("color: #888;")
        layout.addWidget(self._hint)

    def _comment_group(self, layout: QVBoxLayout, title: str, sign: str) -> QListWidget:
        box = QGroupBox(title)
        box_layout = QVBoxLayout(box)
        box_layout.setContentsMargins(4, 4, 4, 4)
        lst = QListWidget()
        lst.itemClicked.connect(self._on_comment_clicked)
        box_layout.addWidget(lst)
        add_btn = QPushButton("+ New negative" if sign == SIGN_NEGATIVE else "+ New positive")
        add_btn.clicked.connect(lambda: self.new_comment_requested.emit(sign))
        box_layout.addWidget(add_btn)
        layout.addWidget(box, stretch=1)
        return lst

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def active(self) -> Optional[ActiveStamp]:
        return self._active

    def set_stamps(self, stamps: List[CommentStamp], task_label: Optional[str],
                   manual: bool = False):
        """Refill the comment lists for the active task."""
        self._updating = True
        self._stamps = {s.id: s for s in stamps}
        self._task_label.setText(task_label or "No task selected")
        for lst in (self._neg_list, self._pos_list):
            lst.clear()
        for stamp in stamps:
            text = f"{stamp.label}  ({format_signed(stamp.points)})"
            item = QListWidgetItem(text)
            item.setData(Qt.ItemDataRole.UserRole, stamp.id)
            if stamp.description:
                item.setToolTip(stamp.description)
            negative = stamp.points < 0
            item.setForeground(_NEGATIVE_TEXT if negative else _POSITIVE_TEXT)
            (self._neg_list if negative else self._pos_list).addItem(item)
        self._updating = False

        enabled = task_label is not None and not manual
        self.setEnabled(enabled)
        if manual:
            self._hint.setText("Manual mode: enter the points in the task panel.")
        elif task_label is None:
            self._hint.setText("Add or select a task to start grading.")
        else:
            self._hint.setText("")
        if self._active is not None and not self._active.is_point \
                and self._active.id not in self._stamps:
            self.select(None)
        else:
            self._sync_selection()

    def select(self, active: Optional[ActiveStamp]):
        if active == self._active:
            return
        self._active = active
        self._sync_selection()
        logger.debug("Active stamp: %s", active.id if active else None)
        self.stamp_selected.emit(active)

    # ── Internal ──────────────────────────────────────────────────────────────

    def _sync_selection(self):
        active_id = self._active.id if self._active else None
        for stamp_id, btn in self._point_buttons.items():
            selected = stamp_id == active_id
            btn.setChecked(selected)
        self._updating = True
        for lst in (self._neg_list, self._pos_list):
            for i in range(lst.count()):
                item = lst.item(i)
                item.setSelected(item.data(Qt.ItemDataRole.UserRole) == active_id)
        self._updating = False
        if self._active is not None and self._active.is_point \
                and self._active.id not in self._point_buttons:
            self._custom_edit.setStyleSheet(_SELECTED_STYLE)
        else:
            self._custom_edit.setStyleSheet("")

    def _on_point_clicked(self, value: float, checked: bool):
        self.select(ActiveStamp.point(value) if checked else None)

    def _apply_custom(self):
        text = self._custom_edit.text().strip()
        try:
            value = float(text)
        except ValueError:
            return
        if value == 0:
            return
        self.select(ActiveStamp(id=new_id("cp"), points=value))
        self._custom_edit.setText(format_points(value))

    def _on_comment_clicked(self, item: QListWidgetItem):
        if self._updating:
            return
        stamp = self._stamps.get(item.data(Qt.ItemDataRole.UserRole))
        if stamp is None:
            return
        if self._active is not None and self._active.id == stamp.id:
            self.select(None)
        else:
            self.select(ActiveStamp.from_stamp(stamp))
