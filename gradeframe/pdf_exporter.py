"""Export graded PDFs by burning stamp badges into copies of the originals.

Coordinate notes
----------------
Annotations store percentages of the *visual* page, measured top-down.  The
PDF user space is bottom-up, so the absolute position of an annotation is::

    abs_x = x / 100 * W
    abs_y = H - y / 100 * H

(:func:`to_pdf_point`).  PyMuPDF's drawing API is top-down again, and
``page.rect`` is rotation-aware while ``page.draw_*`` works in the **native**
(pre-rotation) space, so drawing goes visual → native via ``_to_draw()`` and
``_native_rect()``.
"""
import csv
import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import fitz
import openpyxl

import data_store
import report
import scoring
from annotation_store import AnnotationStore
from models import Annotation, PointsTableConfig, format_points, format_signed

logger = logging.getLogger(__name__)

Color = Tuple[float, float, float]
TableRow = Tuple[str, float, float]   # label, points, max points


class ExportError(Exception):
    """Raised when a document cannot be read, annotated or written."""


# ── Badge style ───────────────────────────────────────────────────────────────
BADGE_FONT = "hebo"        # Helvetica-Bold (Base-14)
BADGE_FONTSIZE = 8
BADGE_PAD_X = 4            # per side
BADGE_PAD_Y = 3            # per side
NOTE_ICON_SIZE = 20        # sticky-note icon next to a badge with a description
NOTE_GAP = 2

#                 fill                border              text
_POSITIVE = ((0.86, 0.97, 0.90), (0.16, 0.72, 0.42), (0.02, 0.47, 0.24))
_NEGATIVE = ((0.99, 0.89, 0.89), (0.87, 0.25, 0.25), (0.70, 0.09, 0.09))
_NEUTRAL  = ((0.94, 0.94, 0.93), (0.55, 0.55, 0.53), (0.30, 0.30, 0.28))

# ── Points table style ────────────────────────────────────────────────────────
TABLE_FONTSIZE = 9
TABLE_PAD_X = 6
TABLE_ROW_H = 16
SIGMA = "Σ"
_TABLE_HEADER_FILL = (0.94, 0.27, 0.27)
_TABLE_HEADER_TEXT = (1.0, 1.0, 1.0)
_TABLE_VALUE_FILL  = (1.0, 0.96, 0.96)
_TABLE_VALUE_TEXT  = (0.73, 0.11, 0.11)
_TABLE_BORDER      = (0.94, 0.27, 0.27)


# ── Geometry ──────────────────────────────────────────────────────────────────

def to_pdf_point(x: float, y: float, width: float, height: float) -> Tuple[float, float]:
    """Percentage position → absolute PDF coordinates (origin bottom-left)."""
    return (x / 100) * width, height - (y / 100) * height


def _to_draw(vx: float, vy: float, rot: int, mw: float, mh: float) -> Tuple[float, float]:
    """Convert visual (page.rect) coords to PyMuPDF draw coords."""
    if rot == 90:
        return vy, mh - vx
    if rot == 180:
        return mw - vx, mh - vy
    if rot == 270:
        return mw - vy, vx
    return vx, vy


def _native_rect(vx: float, vy: float, bw: float, bh: float,
                 rot: int, mw: float, mh: float) -> fitz.Rect:
    """Map a visual box (top-left + size) to a native draw-space Rect."""
    if rot == 90:
        return fitz.Rect(vy, mh - vx - bw, vy + bh, mh - vx)
    if rot == 180:
        return fitz.Rect(mw - vx - bw, mh - vy - bh, mw - vx, mh - vy)
    if rot == 270:
        return fitz.Rect(mw - vy - bh, vx, mw - vy, vx + bw)
    return fitz.Rect(vx, vy, vx + bw, vy + bh)


_FONTS = {}

# Stand-ins for characters the badge font has no glyph for.
_SUBSTITUTES = {
    "→": "->", "←": "<-", "⇒": "=>", "⇐": "<=", "↔": "<->",
    "≤": "<=", "≥": ">=", "≠": "!=", "≈": "~", "…": "...",
    "“": '"', "”": '"', "„": '"', "‘": "'", "’": "'", "‚": "'",
    "–": "-", "—": "-", "−": "-",
}


def _font(fontname: str) -> fitz.Font:
    if fontname not in _FONTS:
        _FONTS[fontname] = fitz.Font(fontname)
    return _FONTS[fontname]


def printable_text(text: str, fontname: str = BADGE_FONT) -> str:
    """*text* on one line, with glyphs missing from the font replaced."""
    font = _font(fontname)
    out = []
    for ch in text:
        if ch in "\r\n\t":
            out.append(" ")
        elif font.has_glyph(ord(ch)):
            out.append(ch)
        else:
            out.append(_SUBSTITUTES.get(ch, "?"))
    return "".join(out)


def _line_height(fontname: str, fontsize: float) -> float:
    font = _font(fontname)
    return fontsize * (font.ascender - font.descender)


def text_width(text: str, fontsize: float, fontname: str = BADGE_FONT) -> float:
    """Width of *text* exactly as :func:`_insert_centered` draws it."""
    return _font(fontname).text_length(printable_text(text, fontname), fontsize=fontsize)


# ── Badges ────────────────────────────────────────────────────────────────────

def _is_numeric(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True


def badge_text(ann: Annotation) -> str:
    """``+1`` for point stamps, ``Label +1P`` for comments (suffix only if useful)."""
    if ann.is_point_stamp:
        return format_signed(ann.points)
    text = ann.label
    if ann.points != 0 and not _is_numeric(text.strip()):
        text += f" {format_signed(ann.points)}P"
    return text


def badge_colors(points: float) -> Tuple[Color, Color, Color]:
    """Return ``(fill, border, text)`` for the sign of *points*."""
    if points == 0:
        return _NEUTRAL
    if points > 0:
        return _POSITIVE
    return _NEGATIVE


def badge_size(text: str) -> Tuple[float, float]:
    return (text_width(text, BADGE_FONTSIZE) + BADGE_PAD_X * 2,
            BADGE_FONTSIZE + BADGE_PAD_Y * 2)


def badge_box(ann: Annotation, pw: float, ph: float) -> Tuple[float, float, float, float]:
    """Visual ``(x0, y0, width, height)`` of the badge, centred on the annotation."""
    abs_x, abs_y = to_pdf_point(ann.x, ann.y, pw, ph)
    cx_v, cy_v = abs_x, ph - abs_y
    bw, bh = badge_size(badge_text(ann))
    return cx_v - bw / 2, cy_v - bh / 2, bw, bh


def _insert_centered(page, vx: float, vy: float, bw: float, bh: float, text: str,
                     fontname: str, fontsize: float, color: Color,
                     rot: int, mw: float, mh: float) -> None:
    text = printable_text(text, fontname)
    line_h = _line_height(fontname, fontsize)
    # The first line is laid out at the top of the rect; the extra height
    # below it only keeps insert_textbox from reporting an overflow.
    top = vy + (bh - line_h) / 2
    rect = _native_rect(vx - 1, top, bw + 2, line_h * 1.5 + 1, rot, mw, mh)
    # Embedded copy rather than a Base-14 reference: covers every glyph of the
    # font and carries a ToUnicode map, so extracted text matches the drawing.
    embedded = "GF" + fontname
    page.insert_font(fontname=embedded, fontbuffer=_font(fontname).buffer)
    overflow = page.insert_textbox(rect, text, fontsize=fontsize, fontname=embedded,
                                   color=color, align=fitz.TEXT_ALIGN_CENTER, rotate=rot)
    if overflow < 0:
        logger.warning("text %r did not fit its box (%.2f)", text, overflow)


def draw_badge(page, ann: Annotation) -> None:
    pw, ph = page.rect.width, page.rect.height
    rot = page.rotation
    mw, mh = page.mediabox.width, page.mediabox.height

    text = badge_text(ann)
    fill, border, text_color = badge_colors(ann.points)
    vx, vy, bw, bh = badge_box(ann, pw, ph)

    shape = page.new_shape()
    shape.draw_rect(_native_rect(vx, vy, bw, bh, rot, mw, mh))
    shape.finish(color=border, fill=fill, width=0.75)
    shape.commit()
    _insert_centered(page, vx, vy, bw, bh, text, BADGE_FONT, BADGE_FONTSIZE,
                     text_color, rot, mw, mh)

    if ann.description:
        anchor = _to_draw(vx + bw + NOTE_GAP, vy, rot, mw, mh)
        note = page.add_text_annot(fitz.Point(*anchor), ann.description, icon="Comment")
        note.set_info(title=ann.label, content=ann.description)
        note.set_colors(stroke=border)
        note.set_flags(fitz.PDF_ANNOT_IS_PRINT
                       | fitz.PDF_ANNOT_IS_NO_ZOOM
                       | fitz.PDF_ANNOT_IS_NO_ROTATE)
        note.update()


# ── Points table ──────────────────────────────────────────────────────────────

@dataclass
class TableLayout:
    headers: List[str]
    values: List[str]
    widths: List[float]
    row_height: float
    fontsize: float

    @property
    def width(self) -> float:
        return sum(self.widths)

    @property
    def height(self) -> float:
        return self.row_height * 2


def table_layout(rows: Sequence[TableRow], scale: float = 1.0) -> TableLayout:
    """One column per task plus a trailing Σ column holding ``total/max``."""
    fontsize = TABLE_FONTSIZE * scale
    pad = TABLE_PAD_X * scale
    headers = [label for label, _, _ in rows] + [SIGMA]
    total = sum(points for _, points, _ in rows)
    total_max = sum(max_points for _, _, max_points in rows)
    values = [format_points(points) for _, points, _ in rows]
    values.append(f"{format_points(total)}/{format_points(total_max)}")
    widths = [
        max(text_width(h, fontsize), text_width(v, fontsize)) + pad * 2
        for h, v in zip(headers, values)
    ]
    return TableLayout(headers=headers, values=values, widths=widths,
                       row_height=TABLE_ROW_H * scale, fontsize=fontsize)


def draw_points_table(page, rows: Sequence[TableRow], table: PointsTableConfig) -> TableLayout:
    """Draw the header/value grid with its top-left corner at the table position."""
    pw, ph = page.rect.width, page.rect.height
    rot = page.rotation
    mw, mh = page.mediabox.width, page.mediabox.height
    layout = table_layout(rows, table.scale)

    abs_x, abs_y = to_pdf_point(table.x, table.y, pw, ph)
    left, top = abs_x, ph - abs_y
    rh = layout.row_height

    shape = page.new_shape()
    x = left
    for w in layout.widths:
        shape.draw_rect(_native_rect(x, top, w, rh, rot, mw, mh))
        shape.finish(color=_TABLE_BORDER, fill=_TABLE_HEADER_FILL, width=0.75)
        shape.draw_rect(_native_rect(x, top + rh, w, rh, rot, mw, mh))
        shape.finish(color=_TABLE_BORDER, fill=_TABLE_VALUE_FILL, width=0.75)
        x += w
    shape.draw_rect(_native_rect(left, top, layout.width, layout.height, rot, mw, mh))
    shape.finish(color=_TABLE_BORDER, width=1.5 * table.scale)
    shape.commit()

    x = left
    for header, value, w in zip(layout.headers, layout.values, layout.widths):
        _insert_centered(page, x, top, w, rh, header, BADGE_FONT, layout.fontsize,
                         _TABLE_HEADER_TEXT, rot, mw, mh)
        _insert_centered(page, x, top + rh, w, rh, value, BADGE_FONT, layout.fontsize,
                         _TABLE_VALUE_TEXT, rot, mw, mh)
        x += w
    return layout


# ── Documents ─────────────────────────────────────────────────────────────────

def create_annotated_pdf(
    pdf_bytes: bytes,
    annotations: Sequence[Annotation],
    table_rows: Optional[Sequence[TableRow]] = None,
    table: Optional[PointsTableConfig] = None,
) -> bytes:
    """Return a copy of *pdf_bytes* with badges (and optionally the table) burned in.

    Annotations on pages that do not exist are skipped.  A source that cannot
    be parsed or saved raises :class:`ExportError`.
    """
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except (RuntimeError, ValueError) as exc:
        raise ExportError(f"Could not read PDF: {exc}") from exc
    try:
        if doc.page_count == 0:
            raise ExportError("PDF has no pages")
        for ann in annotations:
            if not 1 <= ann.page <= doc.page_count:
                logger.debug("Skipping annotation %s on missing page %d (%d pages)",
                             ann.id, ann.page, doc.page_count)
                continue
            draw_badge(doc[ann.page - 1], ann)
        if table is not None and table_rows:
            draw_points_table(doc[0], table_rows, table)

        # Plain save first; fall back to a full cleanup pass (garbage=4) when
        # MuPDF chokes on the original cross-reference table.
        last_exc: Optional[Exception] = None
        for garbage_level in (0, 4):
            try:
                data = doc.tobytes(garbage=garbage_level, deflate=True)
                logger.debug("save OK (garbage=%d)", garbage_level)
                return data
            except (RuntimeError, ValueError) as exc:
                logger.warning("save failed (garbage=%d): %s", garbage_level, exc)
                last_exc = exc
        raise ExportError(f"PDF could not be saved: {last_exc}")
    finally:
        doc.close()


def read_pdf(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as exc:
        raise ExportError(f"Could not read {path}: {exc}") from exc


def annotate_document(folder: str, filename: str, store: AnnotationStore) -> bytes:
    """Annotated bytes for one document of the project in *folder*."""
    tasks = store.config.tasks
    grading = store.grading_for(filename)
    table = store.config.points_table
    rows = scoring.task_summary(filename, tasks, grading) if table is not None else None
    return create_annotated_pdf(
        read_pdf(os.path.join(folder, filename)),
        store.annotations_for(filename),
        table_rows=rows,
        table=table,
    )


def export_documents(
    folder: str,
    filenames: Sequence[str],
    store: AnnotationStore,
    output_dir: str,
    pause: float = 0.3,
    progress_cb: Optional[Callable[[int, int], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
    report_name: str = data_store.REPORT_FILENAME,
) -> List[str]:
    """Write graded copies of *filenames* plus a report into *output_dir*/graded.

    The report is written as *report_name* (``report.md`` unless given).

    Documents are processed one at a time with *pause* seconds between them so
    only one document is held in memory.  Returns the written paths.
    """
    try:
        target = data_store.graded_dir(output_dir)
    except OSError as exc:
        raise ExportError(f"Could not create {output_dir}: {exc}") from exc

    written = []
    total = len(filenames)
    logger.info("Exporting %d document(s) to %s", total, target)
    for i, filename in enumerate(filenames):
        if progress_cb:
            progress_cb(i, total)
        if i > 0 and pause > 0:
            sleep(pause)
        data = annotate_document(folder, filename, store)
        dst = os.path.join(target, filename)
        try:
            with open(dst, "wb") as f:
                f.write(data)
        except OSError as exc:
            raise ExportError(f"Could not write {dst}: {exc}") from exc
        logger.info("[%d/%d] %s → %s", i + 1, total, filename, dst)
        written.append(dst)

    report_path = os.path.join(target, report_name)
    text = report.generate_report(
        store.config.tasks,
        [(fn, store.annotations_for(fn)) for fn in filenames],
        title=store.config.name,
    )
    try:
        with open(report_path, "w", encoding="utf-8") as f:
            f.write(text)
    except OSError as exc:
        raise ExportError(f"Could not write {report_path}: {exc}") from exc
    written.append(report_path)
    if progress_cb:
        progress_cb(total, total)
    return written


# ── Points overview (CSV / XLSX) ──────────────────────────────────────────────

def points_overview_rows(filenames: Sequence[str], store: AnnotationStore) -> List[list]:
    tasks = store.config.tasks
    rows = [["document"] + [t.label for t in tasks] + ["total", "max"]]
    maximum = scoring.max_total(tasks)
    for filename in filenames:
        grading = store.grading_for(filename)
        points = [scoring.display_points_for_task(filename, t, grading) for t in tasks]
        rows.append([filename] + points + [sum(points), maximum])
    return rows


def export_points_overview(path: str, filenames: Sequence[str], store: AnnotationStore) -> str:
    """Write one row of task points per document, as XLSX or CSV by extension."""
    rows = points_overview_rows(filenames, store)
    try:
        if path.lower().endswith(".xlsx"):
            wb = openpyxl.Workbook()
            ws = wb.active
            ws.title = "Points"
            for row in rows:
                ws.append(row)
            wb.save(path)
        else:
            with open(path, "w", newline="", encoding="utf-8") as f:
                csv.writer(f).writerows(rows)
    except OSError as exc:
        raise ExportError(f"Could not write {path}: {exc}") from exc
    return path
