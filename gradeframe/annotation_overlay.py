"""Annotation overlay: draw stamp badges and the points table on top of the PDF image.

All helpers take the **rendered** pixmap size in logical pixels plus *scale*,
the number of pixels per PDF point at the current zoom.  Badge and table sizes
are defined in PDF points (see :mod:`pdf_exporter`) so the screen matches the
exported file.
"""
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from PySide6.QtCore import QPointF, QRectF, Qt
from PySide6.QtGui import QColor, QFont, QPainter, QPen, QPixmap

import pdf_exporter
from models import Annotation, PointsTableConfig

_RESIZE_HANDLE = 8     # side length (pt) of the table's resize-handle square
_HOVER_OUTLINE = QColor(30, 100, 220)


def _qcolor(rgb: Tuple[float, float, float]) -> QColor:
    return QColor.fromRgbF(*rgb)


def _font(size_pt: float, scale: float) -> QFont:
    font = QFont("Helvetica")
    font.setPixelSize(max(4, round(size_pt * scale)))
    font.setBold(True)
    return font


# ── Geometry ──────────────────────────────────────────────────────────────────

def badge_rect(ann: Annotation, img_width: int, img_height: int, scale: float) -> QRectF:
    """Pixel rectangle of *ann*'s badge, centred on its position."""
    bw, bh = pdf_exporter.badge_size(pdf_exporter.badge_text(ann))
    bw, bh = bw * scale, bh * scale
    cx = ann.x / 100 * img_width
    cy = ann.y / 100 * img_height
    return QRectF(cx - bw / 2, cy - bh / 2, bw, bh)


def find_annotation_at(
    annotations: Sequence[Annotation],
    px: float,
    py: float,
    img_width: int,
    img_height: int,
    scale: float,
    tolerance_px: int = 3,
) -> Optional[Annotation]:
    """Return the topmost annotation whose badge contains the percentage point *(px, py)*."""
    x, y = px / 100 * img_width, py / 100 * img_height
    for ann in reversed(annotations):
        rect = badge_rect(ann, img_width, img_height, scale).adjusted(
            -tolerance_px, -tolerance_px, tolerance_px, tolerance_px)
        if rect.contains(QPointF(x, y)):
            return ann
    return None


def table_rect(rows: Sequence[pdf_exporter.TableRow], table: PointsTableConfig,
               img_width: int, img_height: int, scale: float) -> QRectF:
    layout = pdf_exporter.table_layout(rows, table.scale)
    return QRectF(table.x / 100 * img_width, table.y / 100 * img_height,
                  layout.width * scale, layout.height * scale)


def table_handle_rect(rows: Sequence[pdf_exporter.TableRow], table: PointsTableConfig,
                      img_width: int, img_height: int, scale: float) -> QRectF:
    rect = table_rect(rows, table, img_width, img_height, scale)
    hs = max(6.0, _RESIZE_HANDLE * scale)
    return QRectF(rect.right() - hs / 2, rect.bottom() - hs / 2, hs, hs)


# ── Drawing ───────────────────────────────────────────────────────────────────

def draw_annotations(
    pixmap: QPixmap,
    annotations: List[Annotation],
    scale: float,
    moving: Optional[Tuple[str, float, float]] = None,
    hover_id: Optional[str] = None,
) -> QPixmap:
    """Return a *copy* of *pixmap* with every annotation's badge drawn on it.

    *moving* is ``(annotation_id, x, y)`` for a marker that is being dragged.
    """
    result = pixmap.copy()
    dpr = result.devicePixelRatio()
    w, h = result.width() / dpr, result.height() / dpr
    painter = QPainter(result)
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    painter.setFont(_font(pdf_exporter.BADGE_FONTSIZE, scale))
    for ann in annotations:
        if moving is not None and ann.id == moving[0]:
            ann = replace(ann, x=moving[1], y=moving[2])
        _draw_badge(painter, ann, w, h, scale, highlighted=ann.id == hover_id)
    painter.end()
    return result


def _draw_badge(painter: QPainter, ann: Annotation, w: float, h: float,
                scale: float, highlighted: bool = False):
    fill, border, text = pdf_exporter.badge_colors(ann.points)
    rect = badge_rect(ann, w, h, scale)
    painter.setPen(QPen(_HOVER_OUTLINE if highlighted else _qcolor(border),
                        max(1.0, (1.5 if highlighted else 0.75) * scale)))
    painter.setBrush(_qcolor(fill))
    painter.drawRoundedRect(rect, 2 * scale, 2 * scale)
    painter.setPen(_qcolor(text))
    painter.drawText(rect, Qt.AlignmentFlag.AlignCenter, pdf_exporter.badge_text(ann))
    if ann.description:
        # Small dot where the exported PDF gets its sticky note.
        r = 2.5 * scale
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(_qcolor(border))
        painter.drawEllipse(QPointF(rect.right() + pdf_exporter.NOTE_GAP * scale + r,
                                    rect.top() + r), r, r)


def draw_points_table(
    pixmap: QPixmap,
    rows: Sequence[pdf_exporter.TableRow],
    table: PointsTableConfig,
    scale: float,
) -> QPixmap:
    """Return a *copy* of *pixmap* with the summary table and its resize handle."""
    result = pixmap.copy()
    if not rows:
        return result
    dpr = result.devicePixelRatio()
    w, h = result.width() / dpr, result.height() / dpr
    layout = pdf_exporter.table_layout(rows, table.scale)
    outer = table_rect(rows, table, w, h, scale)
    rh = layout.row_height * scale

    painter = QPainter(result)
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    painter.setFont(_font(layout.fontsize, scale))
    border = _qcolor(pdf_exporter._TABLE_BORDER)
    x = outer.left()
    for header, value, cw in zip(layout.headers, layout.values, layout.widths):
        cw *= scale
        head = QRectF(x, outer.top(), cw, rh)
        cell = QRectF(x, outer.top() + rh, cw, rh)
        painter.setPen(QPen(border, max(1.0, 0.75 * scale)))
        painter.setBrush(_qcolor(pdf_exporter._TABLE_HEADER_FILL))
        painter.drawRect(head)
        painter.setBrush(_qcolor(pdf_exporter._TABLE_VALUE_FILL))
        painter.drawRect(cell)
        painter.setPen(_qcolor(pdf_exporter._TABLE_HEADER_TEXT))
        painter.drawText(head, Qt.AlignmentFlag.AlignCenter, header)
        painter.setPen(_qcolor(pdf_exporter._TABLE_VALUE_TEXT))
        painter.drawText(cell, Qt.AlignmentFlag.AlignCenter, value)
        x += cw
    painter.setPen(QPen(border, max(1.0, 1.5 * table.scale * scale)))
    painter.setBrush(Qt.BrushStyle.NoBrush)
    painter.drawRect(outer)
    painter.fillRect(table_handle_rect(rows, table, w, h, scale), border)
    painter.end()
    return result
