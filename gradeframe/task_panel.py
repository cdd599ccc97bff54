"""Right panel: tasks with their scoring mode, running points and the document total."""
from typing import Dict, List, Optional

from PySide6.QtCore import Signal
from PySide6.QtWidgets import (
    QCheckBox, QComboBox, QDialog, QDialogButtonBox, QDoubleSpinBox, QFormLayout,
    QFrame, QHBoxLayout, QLabel, QLineEdit, QProgressBar, QPushButton,
    QScrollArea, QVBoxLayout, QWidget,
)

import scoring
from models import MODE_ADDITIVE, MODE_MANUAL, MODE_SUBTRACTIVE, Task, format_points
from stamp_dialogs import decimal_validator

_MODE_LABELS = [
    (MODE_ADDITIVE, "Add"),
    (MODE_SUBTRACTIVE, "Sub"),
    (MODE_MANUAL, "Manual"),
]
_ACTIVE_STYLE = "QFrame#taskRow { border: 2px solid #1e64dc; border-radius: 4px; }"
_IDLE_STYLE = "QFrame#taskRow { border: 1px solid #ccc; border-radius: 4px; }"


class TaskDialog(QDialog):
    """Name and maximum points of a task (used for add and edit)."""

    def __init__(self, task: Optional[Task] = None, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Edit Task" if task else "Add Task")
        self.setMinimumWidth(320)

        layout = QVBoxLayout(self)
        form = QFormLayout()
        form.setFieldGrowthPolicy(QFormLayout.FieldGrowthPolicy.FieldsStayAtSizeHint)
        layout.addLayout(form)

        self._label_edit = QLineEdit(task.label if task else "")
        self._label_edit.setPlaceholderText("e.g. Q1")
        self._label_edit.setMinimumWidth(180)
        form.addRow("Label:", self._label_edit)

        self._max_spin = QDoubleSpinBox()
        self._max_spin.setRange(0.0, 10_000.0)
        self._max_spin.setDecimals(2)
        self._max_spin.setSingleStep(0.5)
        self._max_spin.setValue(task.max_points if task else 10.0)
        form.addRow("Max points:", self._max_spin)

        self._error_label = QLabel("")
        self._error_label.setStyleSheet("color: red;")
        layout.addWidget(self._error_label)

        buttons = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel
        )
        buttons.accepted.connect(self._on_accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _on_accept(self):
        if not self._label_edit.text().strip():
            self._error_label.setText("Please enter a label.")
            return
        self.accept()

    def label(self) -> str:
        return self._label_edit.text().strip()

    def max_points(self) -> float:
        return self._max_spin.value()


class _TaskRow(QFrame):
    def __init__(self, panel: "TaskPanel", task: Task):
        super().__init__()
        self.setObjectName("taskRow")
        self.task_id = task.id
        self._panel = panel

        layout = QVBoxLayout(self)
        layout.setContentsMargins(6, 4, 6, 4)
        layout.setSpacing(2)

        top = QHBoxLayout()
        self.name_btn = QPushButton(task.label)
        self.name_btn.setFlat(True)
        self.name_btn.setStyleSheet("text-align: left; font-weight: bold;")
        self.name_btn.clicked.connect(lambda: panel.task_selected.emit(self.task_id))
        top.addWidget(self.name_btn, stretch=1)
        self.points_label = QLabel()
        top.addWidget(self.points_label)
        layout.addLayout(top)

        self.progress = QProgressBar()
        self.progress.setRange(0, 100)
        self.progress.setTextVisible(False)
        self.progress.setFixedHeight(6)
        layout.addWidget(self.progress)

        bottom = QHBoxLayout()
        self.mode_combo = QComboBox()
        for mode, text in _MODE_LABELS:
            self.mode_combo.addItem(text, mode)
        self.mode_combo.currentIndexChanged.connect(self._on_mode_changed)
        bottom.addWidget(self.mode_combo)

        self.manual_edit = QLineEdit()
        self.manual_edit.setPlaceholderText("points")
        self.manual_edit.setMaximumWidth(70)
        self.manual_edit.setValidator(decimal_validator(self.manual_edit))
        self.manual_edit.editingFinished.connect(self._on_manual_entered)
        bottom.addWidget(self.manual_edit)
        bottom.addStretch()

        edit_btn = QPushButton("✎")
        edit_btn.setToolTip("Rename / change max points")
        edit_btn.setFixedWidth(28)
        edit_btn.clicked.connect(lambda: panel.edit_task_requested.emit(self.task_id))
        bottom.addWidget(edit_btn)
        del_btn = QPushButton("✕")
        del_btn.setToolTip("Delete task")
        del_btn.setFixedWidth(28)
        del_btn.clicked.connect(lambda: panel.delete_task_requested.emit(self.task_id))
        bottom.addWidget(del_btn)
        layout.addLayout(bottom)

    def update_row(self, task: Task, points: float, manual_value: Optional[float],
                   active: bool):
        self.name_btn.setText(task.label)
        self.points_label.setText(
            f"{format_points(points)} / {format_points(task.max_points)}")
        self.progress.setValue(round(scoring.percent_of(points, task.max_points)))
        self.mode_combo.blockSignals(True)
        self.mode_combo.setCurrentIndex(max(0, self.mode_combo.findData(task.mode)))
        self.mode_combo.blockSignals(False)
        manual = task.mode == MODE_MANUAL
        self.manual_edit.setVisible(manual)
        if manual and not self.manual_edit.hasFocus():
            self.manual_edit.setText(format_points(manual_value) if manual_value is not None else "")
        self.setStyleSheet(_ACTIVE_STYLE if active else _IDLE_STYLE)

    def _on_mode_changed(self, index: int):
        self._panel.mode_changed.emit(self.task_id, self.mode_combo.itemData(index))

    def _on_manual_entered(self):
        self._panel.manual_points_entered.emit(self.task_id, self.manual_edit.text())


class TaskPanel(QWidget):
    task_selected          = Signal(str)
    mode_changed           = Signal(str, str)    # task_id, mode
    manual_points_entered  = Signal(str, str)    # task_id, raw text
    add_task_requested     = Signal()
    edit_task_requested    = Signal(str)
    delete_task_requested  = Signal(str)
    table_toggled          = Signal(bool)

    def __init__(self, parent=None):
        super().__init__(parent)
        self._rows: Dict[str, _TaskRow] = {}

        layout = QVBoxLayout(self)
        layout.setContentsMargins(4, 4, 4, 4)

        header = QLabel("Tasks")
        header.setStyleSheet("font-weight: bold; font-size: 14px;")
        layout.addWidget(header)

        self._rows_widget = QWidget()
        self._rows_layout = QVBoxLayout(self._rows_widget)
        self._rows_layout.setContentsMargins(0, 0, 0, 0)
        self._rows_layout.setSpacing(4)
        self._rows_layout.addStretch()
        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setFrameShape(QFrame.Shape.NoFrame)
        scroll.setWidget(self._rows_widget)
        layout.addWidget(scroll, stretch=1)

        add_btn = QPushButton("+ Add task")
        add_btn.clicked.connect(self.add_task_requested.emit)
        layout.addWidget(add_btn)

        # ── Total ────────────────────────────────────────────────────────────
        total_row = QHBoxLayout()
        total_caption = QLabel("Σ Total")
        total_caption.setStyleSheet("font-weight: bold;")
        total_row.addWidget(total_caption)
        total_row.addStretch()
        self._total_label = QLabel("0 / 0")
        self._total_label.setStyleSheet("font-weight: bold;")
        total_row.addWidget(self._total_label)
        layout.addLayout(total_row)
        self._total_bar = QProgressBar()
        self._total_bar.setRange(0, 100)
        self._total_bar.setFixedHeight(10)
        self._total_bar.setTextVisible(False)
        layout.addWidget(self._total_bar)

        self._table_cb = QCheckBox("Show points table on page 1")
        self._table_cb.toggled.connect(self.table_toggled.emit)
        layout.addWidget(self._table_cb)

    # ── Public API ────────────────────────────────────────────────────────────

    def refresh(self, tasks: List[Task], points: Dict[str, float],
                manual_points: Dict[str, float], active_task_id: Optional[str],
                table_visible: bool):
        """Show *tasks* with their display *points* for the current document."""
        ids = [t.id for t in tasks]
        if ids != list(self._rows):
            self._rebuild(tasks)
        for task in tasks:
            self._rows[task.id].update_row(task, points.get(task.id, 0.0),
                                           manual_points.get(task.id),
                                           task.id == active_task_id)
        total = sum(points.get(t.id, 0.0) for t in tasks)
        maximum = sum(t.max_points for t in tasks)
        self._total_label.setText(f"{format_points(total)} / {format_points(maximum)}")
        self._total_bar.setValue(round(scoring.percent_of(total, maximum)))
        self._table_cb.blockSignals(True)
        self._table_cb.setChecked(table_visible)
        self._table_cb.blockSignals(False)

    def _rebuild(self, tasks: List[Task]):
        for row in self._rows.values():
            self._rows_layout.removeWidget(row)
            row.deleteLater()
        self._rows = {}
        for i, task in enumerate(tasks):
            row = _TaskRow(self, task)
            self._rows_layout.insertWidget(i, row)
            self._rows[task.id] = row
