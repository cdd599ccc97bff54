import csv
import os

import fitz
import openpyxl
import pytest

import pdf_exporter
from annotation_store import AnnotationStore
from conftest import comment, make_pdf, point
from models import PointsTableConfig


def _open(data):
    return fitz.open(stream=data, filetype="pdf")


# ── Geometry / badge helpers ─────────────────────────────────────────────────

def test_to_pdf_point_is_bottom_up():
    assert pdf_exporter.to_pdf_point(50, 0, 600, 800) == (300, 800)
    assert pdf_exporter.to_pdf_point(0, 100, 600, 800) == (0, 0)
    assert pdf_exporter.to_pdf_point(100, 25, 600, 800) == (600, 600)


def test_badge_text():
    assert pdf_exporter.badge_text(point("a", "t", 1)) == "+1"
    assert pdf_exporter.badge_text(point("a", "t", -0.5)) == "-0.5"
    assert pdf_exporter.badge_text(comment("a", "t", "s", "Missing unit", -1)) \
        == "Missing unit -1P"
    assert pdf_exporter.badge_text(comment("a", "t", "s", "2", 2)) == "2"
    assert pdf_exporter.badge_text(comment("a", "t", "s", "Remark", 0)) == "Remark"


def test_badge_colors_follow_sign():
    assert pdf_exporter.badge_colors(2) == pdf_exporter._POSITIVE
    assert pdf_exporter.badge_colors(-1) == pdf_exporter._NEGATIVE
    assert pdf_exporter.badge_colors(0) == pdf_exporter._NEUTRAL


def test_badge_box_is_centred_on_annotation():
    ann = point("a", "t", 1, x=50, y=25)
    x0, y0, w, h = pdf_exporter.badge_box(ann, 600, 800)
    assert x0 + w / 2 == pytest.approx(300)
    assert y0 + h / 2 == pytest.approx(200)
    assert h == pdf_exporter.BADGE_FONTSIZE + 2 * pdf_exporter.BADGE_PAD_Y


def test_table_layout():
    rows = [("Q1", 5, 10), ("Q2", 2.5, 5)]
    layout = pdf_exporter.table_layout(rows)
    assert layout.headers == ["Q1", "Q2", pdf_exporter.SIGMA]
    assert layout.values == ["5", "2.5", "7.5/15"]
    assert len(layout.widths) == 3
    assert all(w > 2 * pdf_exporter.TABLE_PAD_X for w in layout.widths)
    assert layout.height == 2 * pdf_exporter.TABLE_ROW_H


def test_table_layout_scales():
    rows = [("Q1", 5, 10)]
    small = pdf_exporter.table_layout(rows, 1.0)
    big = pdf_exporter.table_layout(rows, 2.0)
    assert big.width == pytest.approx(small.width * 2)
    assert big.height == pytest.approx(small.height * 2)


# ── create_annotated_pdf ──────────────────────────────────────────────────────

def test_annotated_pdf_contains_badges_and_notes(pdf_bytes):
    anns = [
        point("a1", "t", 2, x=10, y=10),
        comment("a2", "t", "s", "Missing unit", -1, description="Always give units.",
                x=50, y=50),
    ]
    out = pdf_exporter.create_annotated_pdf(pdf_bytes, anns)
    doc = _open(out)
    page = doc[0]
    text = page.get_text()
    assert "+2" in text
    assert "Missing unit" in text
    notes = list(page.annots())
    assert len(notes) == 1
    assert notes[0].info["content"] == "Always give units."
    assert notes[0].info["title"] == "Missing unit"
    doc.close()


def test_note_sits_right_of_badge_and_ignores_zoom(pdf_bytes):
    ann = comment("a2", "t", "s", "Missing unit", -1, description="Always give units.",
                  x=50, y=50)
    doc = _open(pdf_exporter.create_annotated_pdf(pdf_bytes, [ann]))
    page = doc[0]
    vx, vy, bw, bh = pdf_exporter.badge_box(ann, page.rect.width, page.rect.height)
    note = next(page.annots())
    flags = note.flags
    assert flags & fitz.PDF_ANNOT_IS_PRINT
    assert flags & fitz.PDF_ANNOT_IS_NO_ZOOM
    assert flags & fitz.PDF_ANNOT_IS_NO_ROTATE
    assert vx + bw <= note.rect.x0 <= vx + bw + pdf_exporter.NOTE_GAP + 1
    doc.close()


@pytest.mark.parametrize("label,words", [
    ("“Quote”", ["Quote"]),
    ("Fehler → Vorzeichen", ["Fehler", "Vorzeichen"]),
    ("Wrong – sign", ["Wrong", "sign"]),
    ("Grösse ü", ["Grösse", "ü"]),
])
def test_typographic_labels_keep_their_text(pdf_bytes, label, words):
    out = pdf_exporter.create_annotated_pdf(pdf_bytes, [comment("a", "t", "s", label, -1)])
    doc = _open(out)
    text = doc[0].get_text()
    for word in words:
        assert word in text
    assert "-1P" in text
    doc.close()


def test_printable_text_keeps_one_line_and_replaces_missing_glyphs():
    assert pdf_exporter.printable_text("two\nlines") == "two lines"
    assert pdf_exporter.printable_text("ok 😀") == "ok ?"
    assert pdf_exporter.printable_text("Grösse") == "Grösse"


def test_text_width_measures_printed_text():
    raw = "a 😀 b"
    assert pdf_exporter.text_width(raw, 8) == pytest.approx(
        pdf_exporter.text_width(pdf_exporter.printable_text(raw), 8))
    assert pdf_exporter.text_width("Σ", 9) > 0


def test_badge_is_drawn_at_transformed_position(pdf_bytes):
    out = pdf_exporter.create_annotated_pdf(pdf_bytes, [point("a", "t", 1, x=25, y=75)])
    doc = _open(out)
    hits = doc[0].search_for("+1")
    assert hits
    centre = (hits[0].x0 + hits[0].x1) / 2, (hits[0].y0 + hits[0].y1) / 2
    # top-down drawing space: y = 75% of 800
    assert centre[0] == pytest.approx(150, abs=6)
    assert centre[1] == pytest.approx(600, abs=6)
    doc.close()


def test_annotations_on_missing_pages_are_skipped(pdf_bytes):
    anns = [point("a1", "t", 1, page=1), point("a2", "t", 3, page=5)]
    out = pdf_exporter.create_annotated_pdf(pdf_bytes, anns)
    doc = _open(out)
    assert doc.page_count == 1
    assert "+3" not in doc[0].get_text()
    doc.close()


def test_annotations_land_on_their_page():
    data = make_pdf(pages=3)
    out = pdf_exporter.create_annotated_pdf(data, [point("a", "t", -2, page=3)])
    doc = _open(out)
    assert "-2" not in doc[0].get_text()
    assert "-2" in doc[2].get_text()
    doc.close()


def test_points_table_is_drawn_on_first_page():
    data = make_pdf(pages=2)
    rows = [("Q1", 5, 10), ("Q2", 3, 10)]
    out = pdf_exporter.create_annotated_pdf(data, [], table_rows=rows,
                                            table=PointsTableConfig(x=5, y=5, scale=1))
    doc = _open(out)
    text = doc[0].get_text()
    assert "Q1" in text and "Q2" in text
    assert "8/20" in text
    assert pdf_exporter.SIGMA in text
    assert "Q1" not in doc[1].get_text()
    doc.close()


def test_rotated_page_is_annotated():
    src = fitz.open()
    src.new_page(width=600, height=800)
    src[0].set_rotation(90)
    data = src.tobytes()
    src.close()
    out = pdf_exporter.create_annotated_pdf(data, [point("a", "t", 1, x=50, y=50)])
    doc = _open(out)
    assert "+1" in doc[0].get_text()
    doc.close()


@pytest.mark.parametrize("data", [b"not a pdf at all", b""])
def test_unreadable_input_raises_export_error(data):
    with pytest.raises(pdf_exporter.ExportError):
        pdf_exporter.create_annotated_pdf(data, [])


# ── Folder export ─────────────────────────────────────────────────────────────

@pytest.fixture()
def folder(tmp_path, config):
    for name in ("alice.pdf", "bob.pdf"):
        (tmp_path / name).write_bytes(make_pdf())
    return tmp_path


def test_export_documents_writes_graded_copies_and_report(folder, store):
    sleeps, progress = [], []
    written = pdf_exporter.export_documents(
        str(folder), ["alice.pdf", "bob.pdf"], store, str(folder),
        progress_cb=lambda done, total: progress.append((done, total)),
        sleep=sleeps.append,
    )
    graded = folder / "graded"
    assert written == [str(graded / "alice.pdf"), str(graded / "bob.pdf"),
                       str(graded / "report.md")]
    assert sleeps == [0.3]
    assert progress == [(0, 2), (1, 2), (2, 2)]

    doc = fitz.open(str(graded / "alice.pdf"))
    assert "Missing unit" in doc[0].get_text()
    doc.close()

    report = (graded / "report.md").read_text(encoding="utf-8")
    assert report.startswith("# Exam 1\n")
    assert "### alice.pdf\n- Missing unit (-1): Always give units." in report
    # original untouched
    original = fitz.open(str(folder / "alice.pdf"))
    assert "Missing unit" not in original[0].get_text()
    original.close()


def test_export_includes_table_only_when_enabled(folder, store):
    pdf_exporter.export_documents(str(folder), ["alice.pdf"], store, str(folder),
                                  sleep=lambda s: None)
    doc = fitz.open(str(folder / "graded" / "alice.pdf"))
    assert "20/28" not in doc[0].get_text()
    doc.close()

    store.set_points_table(PointsTableConfig())
    pdf_exporter.export_documents(str(folder), ["alice.pdf"], store, str(folder),
                                  sleep=lambda s: None)
    doc = fitz.open(str(folder / "graded" / "alice.pdf"))
    assert "20/28" in doc[0].get_text()
    doc.close()


def test_export_missing_document_raises(folder, store):
    with pytest.raises(pdf_exporter.ExportError):
        pdf_exporter.export_documents(str(folder), ["ghost.pdf"], store, str(folder),
                                      sleep=lambda s: None)


# ── Points overview ───────────────────────────────────────────────────────────

def test_points_overview_rows(store):
    rows = pdf_exporter.points_overview_rows(["alice.pdf", "bob.pdf"], store)
    assert rows[0] == ["document", "Q1", "Q2", "Q3", "total", "max"]
    assert rows[1] == ["alice.pdf", 5, 9, 6, 20, 28]
    assert rows[2] == ["bob.pdf", 0, 10, 0, 10, 28]


def test_points_overview_csv(tmp_path, store):
    path = pdf_exporter.export_points_overview(str(tmp_path / "points.csv"),
                                               ["alice.pdf"], store)
    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[0][0] == "document"
    assert rows[1][0] == "alice.pdf"
    assert float(rows[1][-2]) == 20


def test_points_overview_xlsx(tmp_path, store):
    path = pdf_exporter.export_points_overview(str(tmp_path / "points.xlsx"),
                                               ["alice.pdf"], store)
    assert os.path.isfile(path)
    ws = openpyxl.load_workbook(path).active
    assert ws.title == "Points"
    assert [c.value for c in ws[2]] == ["alice.pdf", 5, 9, 6, 20, 28]


def test_points_overview_unwritable_path(tmp_path, store):
    with pytest.raises(pdf_exporter.ExportError):
        pdf_exporter.export_points_overview(str(tmp_path / "missing" / "points.csv"),
                                            ["alice.pdf"], AnnotationStore(store.config))


def test_export_to_separate_folder_with_own_report_name(folder, tmp_path, store):
    out_dir = tmp_path / "exports"
    out_dir.mkdir()
    written = pdf_exporter.export_documents(
        str(folder), ["alice.pdf"], store, str(out_dir), sleep=lambda s: None,
        report_name="report-alice.md")
    graded = out_dir / "graded"
    assert written == [str(graded / "alice.pdf"), str(graded / "report-alice.md")]
    assert not (graded / "report.md").exists()
    assert not (folder / "graded").exists()
