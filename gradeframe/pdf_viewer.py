"""Center panel: PDF viewer with stamp placement, marker drag and the points table.

PDF rendering backend
---------------------
Uses **PyMuPDF (fitz)**.  Pages are rasterised once per zoom level and cached;
badges and the table are painted on a copy of the raw page pixmap by
:mod:`annotation_overlay`, so dragging never re-rasterises the PDF.

The viewer does not mutate the project.  Clicks, drags and edits are emitted
as signals with page-percentage coordinates and the main window applies them
to the :class:`annotation_store.AnnotationStore`.
"""
import logging
import os
import time
from typing import Dict, List, Optional, Sequence, Tuple

import fitz  # pymupdf
from PySide6.QtCore import QEvent, QPoint, Qt, QTimer, Signal
from PySide6.QtGui import QImage, QPixmap
from PySide6.QtWidgets import (
    QHBoxLayout, QLabel, QMenu, QPushButton, QScrollArea, QVBoxLayout, QWidget,
)

import annotation_overlay
from models import TABLE_MAX_POS, Annotation, PointsTableConfig
from overlay_drag import DragSession, move_drag, scale_drag

logger = logging.getLogger(__name__)

_WHEEL_ZOOM_DIVISOR = 800.0  # wheel-delta units that equal a 1× zoom step
_MIN_ZOOM = 0.5
_MAX_ZOOM = 3.0


def _pm_logical_size(pm: Optional[QPixmap]) -> Tuple[int, int]:
    """Return *(width, height)* of *pm* in device-independent (logical) pixels."""
    if pm and not pm.isNull():
        dpr = pm.devicePixelRatio()
        return int(pm.width() / dpr), int(pm.height() / dpr)
    return 1, 1


class ClickableLabel(QLabel):
    """QLabel that emits fractional-coordinate mouse signals."""

    pressed        = Signal(float, float)
    moved          = Signal(float, float)
    released       = Signal(float, float)
    double_clicked = Signal(float, float)
    context_requested = Signal(float, float, QPoint)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setMouseTracking(True)

    def _frac(self, event) -> Tuple[float, float]:
        w, h = self.width(), self.height()
        if w > 0 and h > 0:
            return (
                max(0.0, min(1.0, event.position().x() / w)),
                max(0.0, min(1.0, event.position().y() / h)),
            )
        return 0.0, 0.0

    def mousePressEvent(self, event):
        fx, fy = self._frac(event)
        if event.button() == Qt.MouseButton.LeftButton:
            self.pressed.emit(fx, fy)
        elif event.button() == Qt.MouseButton.RightButton:
            self.context_requested.emit(fx, fy, event.globalPosition().toPoint())
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event):
        fx, fy = self._frac(event)
        self.moved.emit(fx, fy)
        event.accept()

    def mouseReleaseEvent(self, event):
        if event.button() == Qt.MouseButton.LeftButton:
            fx, fy = self._frac(event)
            self.released.emit(fx, fy)
        super().mouseReleaseEvent(event)

    def mouseDoubleClickEvent(self, event):
        if event.button() == Qt.MouseButton.LeftButton:
            fx, fy = self._frac(event)
            self.double_clicked.emit(fx, fy)
        super().mouseDoubleClickEvent(event)


class PDFViewerPanel(QWidget):
    # page (1-based), x %, y %
    page_clicked           = Signal(int, float, float)
    annotation_moved       = Signal(str, float, float)
    edit_requested         = Signal(str)
    delete_requested       = Signal(str)
    table_changed          = Signal(object)    # PointsTableConfig
    table_hide_requested   = Signal()

    def __init__(self, parent=None):
        super().__init__(parent)
        self._pdf_path: Optional[str] = None
        self._doc: Optional[fitz.Document] = None
        self._current_page: int = 0
        self._zoom: float = 1.2
        self._annotations: List[Annotation] = []
        self._table: Optional[PointsTableConfig] = None
        self._table_rows: Sequence = ()
        self._placing_enabled = False
        self._raw_pixmap: Optional[QPixmap] = None
        self._base_pixmap: Optional[QPixmap] = None
        self._page_points: float = 1.0   # page height in PDF points
        self._hover_id: Optional[str] = None
        # Active drag: (kind, target id or None, session)
        self._drag: Optional[Tuple[str, Optional[str], DragSession]] = None
        self._page_cache: Dict[int, QPixmap] = {}
        self._cache_zoom: float = 0.0
        self._cache_dpr: float = 0.0

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        # ── Toolbar ──────────────────────────────────────────────────────────
        toolbar = QWidget()
        tb = QHBoxLayout(toolbar)
        tb.setContentsMargins(4, 4, 4, 4)
        tb.setSpacing(4)
        tb.addStretch()

        self._prev_btn = QPushButton("◀")
        self._prev_btn.setToolTip("Previous page")
        self._prev_btn.setFixedWidth(32)
        self._prev_btn.clicked.connect(self.prev_page)
        tb.addWidget(self._prev_btn)

        self._page_counter = QLabel("Page 1 / 1")
        self._page_counter.setFixedWidth(80)
        self._page_counter.setAlignment(Qt.AlignmentFlag.AlignCenter)
        tb.addWidget(self._page_counter)

        self._next_btn = QPushButton("▶")
        self._next_btn.setToolTip("Next page")
        self._next_btn.setFixedWidth(32)
        self._next_btn.clicked.connect(self.next_page)
        tb.addWidget(self._next_btn)

        tb.addSpacing(12)

        zoom_out = QPushButton("−")
        zoom_out.setFixedWidth(32)
        zoom_out.setToolTip("Zoom out")
        zoom_out.clicked.connect(self._zoom_out)
        tb.addWidget(zoom_out)
        self._zoom_label = QLabel("120%")
        self._zoom_label.setFixedWidth(50)
        self._zoom_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        tb.addWidget(self._zoom_label)
        zoom_in = QPushButton("+")
        zoom_in.setFixedWidth(32)
        zoom_in.setToolTip("Zoom in")
        zoom_in.clicked.connect(self._zoom_in)
        tb.addWidget(zoom_in)
        tb.addStretch()

        layout.addWidget(toolbar)

        # ── Scroll area ───────────────────────────────────────────────────────
        self._scroll = QScrollArea()
        self._scroll.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._scroll.setWidgetResizable(False)

        self._page_label = ClickableLabel()
        self._page_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._page_label.pressed.connect(self._on_page_pressed)
        self._page_label.moved.connect(self._on_page_moved)
        self._page_label.released.connect(self._on_page_released)
        self._page_label.double_clicked.connect(self._on_page_double_clicked)
        self._page_label.context_requested.connect(self._on_context_requested)
        self._scroll.setWidget(self._page_label)
        layout.addWidget(self._scroll, stretch=1)

        self._scroll.viewport().installEventFilter(self)
        self._show_placeholder()

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def current_page(self) -> int:
        """1-based number of the page on screen."""
        return self._current_page + 1

    def load_pdf(self, pdf_path: Optional[str], annotations: List[Annotation]) -> bool:
        """Open *pdf_path*; returns False (and shows a placeholder) if it cannot be read."""
        if self._doc:
            self._doc.close()
            self._doc = None
        self._annotations = annotations
        self._current_page = 0
        self._drag = None
        self._hover_id = None
        self._invalidate_cache()
        if not pdf_path or not os.path.isfile(pdf_path):
            self._pdf_path = None
            self._show_placeholder()
            return False
        self._pdf_path = pdf_path
        try:
            self._doc = fitz.open(pdf_path)
            if self._doc.page_count == 0:
                raise ValueError("PDF has no pages")
        except (RuntimeError, ValueError) as exc:
            logger.warning("Failed to open PDF %s: %s", pdf_path, exc)
            if self._doc:
                self._doc.close()
                self._doc = None
            self._show_placeholder(
                f"Cannot display this PDF.\n({os.path.basename(pdf_path)})")
            return False
        logger.debug("PDF loaded: %s (%d page(s))", pdf_path, self._doc.page_count)
        self._render_page()
        return True

    def clear(self):
        self.load_pdf(None, [])

    def set_annotations(self, annotations: List[Annotation]):
        self._annotations = annotations
        self._rebuild_base_and_display()

    def set_points_table(self, rows: Sequence, table: Optional[PointsTableConfig]):
        """Show *table* (with *rows* from :func:`scoring.task_summary`) on page 1, or hide it."""
        self._table_rows = rows
        self._table = table
        self._rebuild_base_and_display()

    def set_placing_enabled(self, enabled: bool):
        """Whether a click on empty page area places the active stamp."""
        self._placing_enabled = enabled
        self._page_label.setCursor(Qt.CursorShape.CrossCursor if enabled
                                   else Qt.CursorShape.ArrowCursor)

    def prev_page(self):
        if self._doc and self._current_page > 0:
            self._current_page -= 1
            self._drag = None
            self._render_page()

    def next_page(self):
        if self._doc and self._current_page < self._doc.page_count - 1:
            self._current_page += 1
            self._drag = None
            self._render_page()

    # ── Rendering ─────────────────────────────────────────────────────────────

    def _page_size(self) -> Tuple[int, int]:
        return _pm_logical_size(self._raw_pixmap)

    def _scale(self) -> float:
        """Logical pixels per PDF point at the current zoom."""
        return self._page_size()[1] / self._page_points if self._page_points else 1.0

    def _show_placeholder(self, message: str = "No PDF loaded.\nSelect a document above."):
        self._raw_pixmap = None
        self._base_pixmap = None
        self._page_label.setPixmap(QPixmap())
        self._page_label.setText(message)
        self._page_label.resize(400, 300)
        self._page_counter.setText("Page — / —")
        self._prev_btn.setEnabled(False)
        self._next_btn.setEnabled(False)

    def _render_page(self):
        """Rasterise the current page (or take it from the cache), then draw overlays."""
        if not self._doc:
            self._show_placeholder()
            return
        t0 = time.perf_counter()
        n = self._doc.page_count
        self._page_counter.setText(f"Page {self._current_page + 1} / {n}")
        self._prev_btn.setEnabled(self._current_page > 0)
        self._next_btn.setEnabled(self._current_page < n - 1)

        dpr = self.devicePixelRatio()
        if (self._current_page in self._page_cache
                and self._cache_zoom == self._zoom
                and self._cache_dpr == dpr):
            raw = self._page_cache[self._current_page]
        else:
            try:
                raw = self._render_page_pixmap(self._current_page, dpr)
            except (RuntimeError, ValueError) as exc:
                logger.warning("Failed to render page %d: %s", self._current_page + 1, exc)
                self._show_placeholder(
                    f"Cannot render page {self._current_page + 1}.\nThe PDF may be corrupted.")
                return
            self._page_cache[self._current_page] = raw
            self._cache_zoom = self._zoom
            self._cache_dpr = dpr

        self._raw_pixmap = raw
        self._page_points = self._doc[self._current_page].rect.height
        self._zoom_label.setText(f"{int(self._zoom * 100)}%")
        self._rebuild_base_and_display()
        logger.debug("Page %d rendered in %.3fs", self._current_page + 1,
                     time.perf_counter() - t0)
        QTimer.singleShot(0, self._prerender_adjacent)

    def _render_page_pixmap(self, page_idx: int, dpr: float) -> QPixmap:
        page = self._doc[page_idx]
        mat = fitz.Matrix(self._zoom * dpr, self._zoom * dpr)
        pix = page.get_pixmap(matrix=mat, alpha=False)
        img = QImage(pix.samples, pix.width, pix.height,
                     pix.stride, QImage.Format.Format_RGB888)
        raw = QPixmap.fromImage(img)
        raw.setDevicePixelRatio(dpr)
        return raw

    def _invalidate_cache(self):
        self._page_cache.clear()

    def _prerender_adjacent(self):
        if not self._doc:
            return
        dpr = self.devicePixelRatio()
        if self._cache_zoom != self._zoom or self._cache_dpr != dpr:
            self._invalidate_cache()
            self._cache_zoom = self._zoom
            self._cache_dpr = dpr
        for idx in (self._current_page - 1, self._current_page + 1):
            if 0 <= idx < self._doc.page_count and idx not in self._page_cache:
                try:
                    self._page_cache[idx] = self._render_page_pixmap(idx, dpr)
                except (RuntimeError, ValueError) as exc:
                    logger.debug("Skipping pre-render of page %d: %s", idx + 1, exc)

    def _page_annotations(self) -> List[Annotation]:
        return [a for a in self._annotations if a.page == self._current_page + 1]

    def _table_visible(self) -> bool:
        return self._table is not None and bool(self._table_rows) and self._current_page == 0

    def _rebuild_base_and_display(self):
        """Redraw badges (and the table on page 1) onto the cached raw page."""
        if self._raw_pixmap is None:
            return
        scale = self._scale()
        moving = None
        table = self._table
        if self._drag is not None:
            kind, target, session = self._drag
            if kind == "marker" and session.preview is not None:
                moving = (target, session.preview[0], session.preview[1])
            elif kind == "table-move" and session.preview is not None:
                table = PointsTableConfig(session.preview[0], session.preview[1], table.scale)
            elif kind == "table-scale" and session.preview is not None:
                table = PointsTableConfig(table.x, table.y, session.preview)
        pm = annotation_overlay.draw_annotations(
            self._raw_pixmap, self._page_annotations(), scale,
            moving=moving, hover_id=self._hover_id)
        if self._table_visible():
            pm = annotation_overlay.draw_points_table(pm, self._table_rows, table, scale)
        self._base_pixmap = pm
        self._page_label.setPixmap(pm)
        w, h = _pm_logical_size(pm)
        self._page_label.resize(w, h)

    # ── Hit testing ───────────────────────────────────────────────────────────

    def _annotation_at(self, px: float, py: float) -> Optional[Annotation]:
        w, h = self._page_size()
        return annotation_overlay.find_annotation_at(
            self._page_annotations(), px, py, w, h, self._scale())

    def _table_hit(self, px: float, py: float) -> Optional[str]:
        """``'scale'`` on the resize handle, ``'move'`` inside the table, else None."""
        if not self._table_visible():
            return None
        w, h = self._page_size()
        x, y = px / 100 * w, py / 100 * h
        scale = self._scale()
        handle = annotation_overlay.table_handle_rect(self._table_rows, self._table, w, h, scale)
        if handle.contains(x, y):
            return "scale"
        body = annotation_overlay.table_rect(self._table_rows, self._table, w, h, scale)
        if body.contains(x, y):
            return "move"
        return None

    # ── Mouse handling ────────────────────────────────────────────────────────

    def _on_page_pressed(self, fx: float, fy: float):
        if self._raw_pixmap is None:
            return
        px, py = fx * 100, fy * 100
        hit = self._table_hit(px, py)
        if hit == "scale":
            w, h = self._page_size()
            session = scale_drag(self._table.scale, (self._table.x, self._table.y),
                                 aspect=w / h if h else 1.0)
            self._drag = ("table-scale", None, session)
        elif hit == "move":
            session = move_drag(self._table.x, self._table.y, 0.0, TABLE_MAX_POS)
            self._drag = ("table-move", None, session)
        else:
            ann = self._annotation_at(px, py)
            if ann is None:
                return
            self._drag = ("marker", ann.id, move_drag(ann.x, ann.y))
        self._drag[2].start(px, py)

    def _on_page_moved(self, fx: float, fy: float):
        if self._raw_pixmap is None:
            return
        px, py = fx * 100, fy * 100
        if self._drag is not None:
            self._drag[2].update(px, py)
            self._rebuild_base_and_display()
            return
        ann = self._annotation_at(px, py)
        hover_id = ann.id if ann else None
        table_hit = self._table_hit(px, py)
        if table_hit == "scale":
            self._page_label.setCursor(Qt.CursorShape.SizeFDiagCursor)
        elif table_hit == "move" or ann is not None:
            self._page_label.setCursor(Qt.CursorShape.OpenHandCursor)
        else:
            self._page_label.setCursor(Qt.CursorShape.CrossCursor if self._placing_enabled
                                       else Qt.CursorShape.ArrowCursor)
        if hover_id != self._hover_id:
            self._hover_id = hover_id
            self._rebuild_base_and_display()

    def _on_page_released(self, fx: float, fy: float):
        if self._raw_pixmap is None:
            return
        px, py = fx * 100, fy * 100
        if self._drag is None:
            if self._placing_enabled:
                self.page_clicked.emit(self._current_page + 1, px, py)
            return
        kind, target, session = self._drag
        session.update(px, py)
        value = session.commit()
        self._drag = None
        if value is None:
            self._rebuild_base_and_display()
            return
        if kind == "marker":
            self.annotation_moved.emit(target, value[0], value[1])
        elif kind == "table-move":
            self.table_changed.emit(PointsTableConfig(value[0], value[1], self._table.scale))
        elif kind == "table-scale":
            self.table_changed.emit(PointsTableConfig(self._table.x, self._table.y, value))

    def _on_page_double_clicked(self, fx: float, fy: float):
        if self._raw_pixmap is None:
            return
        ann = self._annotation_at(fx * 100, fy * 100)
        if ann is not None:
            self.edit_requested.emit(ann.id)

    def _on_context_requested(self, fx: float, fy: float, global_pos: QPoint):
        if self._raw_pixmap is None:
            return
        px, py = fx * 100, fy * 100
        ann = self._annotation_at(px, py)
        menu = QMenu(self)
        if ann is not None:
            edit_action = menu.addAction("Edit…")
            delete_action = menu.addAction("Delete")
            chosen = menu.exec(global_pos)
            if chosen is edit_action:
                self.edit_requested.emit(ann.id)
            elif chosen is delete_action:
                self.delete_requested.emit(ann.id)
        elif self._table_hit(px, py) is not None:
            hide_action = menu.addAction("Hide points table")
            if menu.exec(global_pos) is hide_action:
                self.table_hide_requested.emit()

    # ── Gesture / wheel zoom ──────────────────────────────────────────────────

    def eventFilter(self, obj, event):
        """Ctrl + wheel and pinch gestures zoom instead of scrolling."""
        if obj is self._scroll.viewport():
            t = event.type()
            if t == QEvent.Type.Wheel:
                if event.modifiers() & Qt.KeyboardModifier.ControlModifier:
                    delta = event.angleDelta().y()
                    if delta:
                        self._apply_zoom(self._zoom * (1.0 + delta / _WHEEL_ZOOM_DIVISOR))
                    return True
            elif t == QEvent.Type.NativeGesture:
                if event.gestureType() == Qt.NativeGestureType.ZoomNativeGesture:
                    self._apply_zoom(self._zoom * (1.0 + event.value()))
                    return True
        return super().eventFilter(obj, event)

    def _apply_zoom(self, new_zoom: float):
        new_zoom = max(_MIN_ZOOM, min(_MAX_ZOOM, new_zoom))
        if abs(new_zoom - self._zoom) > 0.005:
            self._zoom = new_zoom
            self._invalidate_cache()
            self._render_page()

    def _zoom_in(self):
        self._apply_zoom(self._zoom + 0.2)

    def _zoom_out(self):
        self._apply_zoom(self._zoom - 0.2)

    def keyPressEvent(self, event):
        if event.key() == Qt.Key.Key_Escape and self._drag is not None:
            self._drag[2].cancel()
            self._drag = None
            self._rebuild_base_and_display()
        elif event.key() in (Qt.Key.Key_PageDown, Qt.Key.Key_Right):
            self.next_page()
        elif event.key() in (Qt.Key.Key_PageUp, Qt.Key.Key_Left):
            self.prev_page()
        super().keyPressEvent(event)
