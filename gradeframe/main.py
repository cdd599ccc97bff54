"""Main entry point for the GradeFrame desktop app."""
import argparse
import logging
import os
import subprocess
import sys
from typing import Dict, List, Optional

from PySide6.QtCore import Qt
from PySide6.QtGui import QKeySequence
from PySide6.QtWidgets import (
    QApplication,
    QDialog,
    QDialogButtonBox,
    QFileDialog,
    QLabel,
    QMainWindow,
    QMessageBox,
    QProgressBar,
    QSplitter,
    QVBoxLayout,
    QWidget,
)

import data_store
import pdf_exporter
import scoring
from annotation_store import AnnotationStore, new_id
from models import MODE_MANUAL, ActiveStamp, make_comment_stamp
from pdf_tab_bar import PdfTabBar
from pdf_viewer import PDFViewerPanel
from setup_dialog import SetupDialog
from stamp_dialogs import EditAnnotationDialog, NewCommentDialog
from stamp_palette import StampPalette
from task_panel import TaskDialog, TaskPanel

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class MainWindow(QMainWindow):
    def __init__(self, folder: Optional[str] = None):
        super().__init__()
        self.setWindowTitle("GradeFrame")
        self.resize(1400, 900)

        self._folder = ""
        self._store: Optional[AnnotationStore] = None
        self._filenames: List[str] = []
        self._current_file = ""
        self._active_task_id: Optional[str] = None

        self._setup_ui()
        if folder:
            self._open_folder(folder)
        else:
            self._load_session()

    def _setup_ui(self):
        file_menu = self.menuBar().addMenu("File")
        file_menu.addAction("Open Folder…").triggered.connect(lambda: self._show_setup())
        file_menu.addSeparator()
        quit_action = file_menu.addAction("Quit")
        quit_action.setShortcut(QKeySequence.StandardKey.Quit)
        quit_action.triggered.connect(self.close)

        go_menu = self.menuBar().addMenu("Go")
        prev_action = go_menu.addAction("Previous PDF")
        prev_action.setShortcut(QKeySequence("Ctrl+["))
        prev_action.triggered.connect(lambda: self._tab_bar.select_next(-1))
        next_action = go_menu.addAction("Next PDF")
        next_action.setShortcut(QKeySequence("Ctrl+]"))
        next_action.triggered.connect(lambda: self._tab_bar.select_next(1))

        export_menu = self.menuBar().addMenu("Export")
        export_menu.addAction("Export Current PDF").triggered.connect(self._export_current)
        export_menu.addAction("Export All PDFs").triggered.connect(self._export_all)
        export_menu.addSeparator()
        export_menu.addAction("Export Points Overview…").triggered.connect(
            self._export_points_overview)

        central = QWidget()
        central_layout = QVBoxLayout(central)
        central_layout.setContentsMargins(0, 0, 0, 0)
        central_layout.setSpacing(0)
        self.setCentralWidget(central)

        self._tab_bar = PdfTabBar()
        self._tab_bar.document_selected.connect(self._on_document_selected)
        central_layout.addWidget(self._tab_bar)

        splitter = QSplitter(Qt.Orientation.Horizontal)
        central_layout.addWidget(splitter, stretch=1)

        # Left: stamp palette
        self._palette = StampPalette()
        self._palette.stamp_selected.connect(self._on_stamp_selected)
        self._palette.new_comment_requested.connect(self._on_new_comment)
        splitter.addWidget(self._palette)

        # Center: PDF viewer
        self._pdf_viewer = PDFViewerPanel()
        self._pdf_viewer.page_clicked.connect(self._on_page_clicked)
        self._pdf_viewer.annotation_moved.connect(self._on_annotation_moved)
        self._pdf_viewer.edit_requested.connect(self._on_edit_annotation)
        self._pdf_viewer.delete_requested.connect(self._on_delete_annotation)
        self._pdf_viewer.table_changed.connect(self._on_table_changed)
        self._pdf_viewer.table_hide_requested.connect(lambda: self._on_table_toggled(False))
        splitter.addWidget(self._pdf_viewer)

        # Right: tasks and totals
        self._task_panel = TaskPanel()
        self._task_panel.task_selected.connect(self._on_task_selected)
        self._task_panel.mode_changed.connect(self._on_mode_changed)
        self._task_panel.manual_points_entered.connect(self._on_manual_points)
        self._task_panel.add_task_requested.connect(self._on_add_task)
        self._task_panel.edit_task_requested.connect(self._on_edit_task)
        self._task_panel.delete_task_requested.connect(self._on_delete_task)
        self._task_panel.table_toggled.connect(self._on_table_toggled)
        splitter.addWidget(self._task_panel)

        splitter.setSizes([260, 840, 300])
        splitter.setStretchFactor(1, 1)

    # ── Project loading ───────────────────────────────────────────────────────

    def _load_session(self):
        config = data_store.load_session_config()
        folder = config.get("folder", "") if config else ""
        if folder and os.path.isdir(folder):
            logger.info("Restoring previous session: %s", folder)
            self._open_folder(folder)
            return
        logger.info("No previous session found, showing setup dialog")
        self._show_setup()

    def _show_setup(self, message: str = ""):
        dlg = SetupDialog(self, message=message)
        if dlg.exec():
            self._open_folder(dlg.folder())

    def _open_folder(self, folder: str):
        try:
            filenames = data_store.list_pdf_files(folder)
        except OSError as exc:
            logger.error("Could not list %s: %s", folder, exc)
            QMessageBox.critical(
                self, "Could not open this folder",
                f"Could not open this folder:\n{folder}\n\n{exc}\n\n"
                "Please choose another folder.")
            self._show_setup(message="Could not open this folder. Please choose another one.")
            return

        config = data_store.load_project_config(folder)
        self._folder = folder
        self._store = AnnotationStore(config, persist=data_store.ConfigWriter(folder))
        self._store.subscribe(self._refresh)
        self._filenames = filenames
        self._current_file = ""
        self._active_task_id = config.tasks[0].id if config.tasks else None
        self._palette.select(None)
        self.setWindowTitle(f"GradeFrame — {config.name}")
        logger.info("Opened %s: %d PDF(s), %d task(s)", folder, len(filenames), len(config.tasks))

        self._tab_bar.set_documents(filenames)
        self._on_document_selected(self._tab_bar.current_document() or "")
        if not filenames:
            self._pdf_viewer.clear()
            self._refresh()
            QMessageBox.information(self, "GradeFrame", "This folder contains no PDF files.")

    def _on_document_selected(self, filename: str):
        if self._store is None or filename == self._current_file:
            return
        self._current_file = filename
        if not filename:
            self._pdf_viewer.clear()
        else:
            path = os.path.join(self._folder, filename)
            logger.debug("Loading PDF: %s", path)
            self._pdf_viewer.load_pdf(path, self._store.annotations_for(filename))
        self._refresh()

    # ── Derived view state ────────────────────────────────────────────────────

    def _refresh(self):
        """Recompute totals and push the store's state into every panel."""
        store = self._store
        if store is None:
            return
        config = store.config
        if self._active_task_id and config.task_by_id(self._active_task_id) is None:
            self._active_task_id = None
        if self._active_task_id is None and config.tasks:
            self._active_task_id = config.tasks[0].id
        task = config.task_by_id(self._active_task_id)

        grading = store.grading_for(self._current_file)
        points: Dict[str, float] = {
            t.id: scoring.display_points_for_task(self._current_file, t, grading)
            for t in config.tasks
        }
        manual = dict(grading.manual_points) if grading else {}
        self._task_panel.refresh(config.tasks, points, manual, self._active_task_id,
                                 config.points_table is not None)

        manual_mode = task is not None and task.mode == MODE_MANUAL
        self._palette.set_stamps(store.stamps_for_task(self._active_task_id),
                                 task.label if task else None, manual=manual_mode)
        self._pdf_viewer.set_placing_enabled(
            task is not None and not manual_mode and self._palette.active is not None)

        self._pdf_viewer.set_annotations(store.annotations_for(self._current_file))
        rows = scoring.task_summary(self._current_file, config.tasks, grading)
        self._pdf_viewer.set_points_table(rows, config.points_table)

        totals = {}
        graded = {}
        for name in self._filenames:
            g = store.grading_for(name)
            totals[name] = scoring.document_total(name, config.tasks, g)
            graded[name] = bool(g and (g.annotations or g.manual_points))
        self._tab_bar.set_totals(totals, scoring.max_total(config.tasks), graded)

    # ── Palette / placement ───────────────────────────────────────────────────

    def _on_stamp_selected(self, active: Optional[ActiveStamp]):
        task = self._store.config.task_by_id(self._active_task_id) if self._store else None
        self._pdf_viewer.set_placing_enabled(
            active is not None and task is not None and task.mode != MODE_MANUAL)

    def _on_page_clicked(self, page: int, x: float, y: float):
        if self._store is None:
            return
        self._store.add_annotation(self._current_file, page, x, y,
                                   self._palette.active, self._active_task_id)

    def _on_new_comment(self, sign: str):
        if self._store is None or self._active_task_id is None:
            return
        dlg = NewCommentDialog(sign, self)
        if not dlg.exec():
            return
        stamp = make_comment_stamp(new_id("s"), dlg.title(), dlg.description(),
                                   dlg.points_text(), sign)
        active = self._store.create_stamp(stamp, task_id=self._active_task_id)
        self._palette.select(active)

    # ── Annotation edits ──────────────────────────────────────────────────────

    def _on_annotation_moved(self, annotation_id: str, x: float, y: float):
        if self._store is not None:
            self._store.move_annotation(annotation_id, x, y)

    def _on_edit_annotation(self, annotation_id: str):
        if self._store is None:
            return
        ann = self._store.find_annotation(annotation_id)
        if ann is None:
            return
        dlg = EditAnnotationDialog(ann, self)
        if dlg.exec():
            self._store.update_annotation(annotation_id, label=dlg.label(),
                                          description=dlg.description(),
                                          points=dlg.points_text())

    def _on_delete_annotation(self, annotation_id: str):
        if self._store is not None:
            self._store.delete_annotation(annotation_id)

    # ── Tasks ─────────────────────────────────────────────────────────────────

    def _on_task_selected(self, task_id: str):
        self._active_task_id = task_id
        self._refresh()

    def _on_mode_changed(self, task_id: str, mode: str):
        if self._store is not None:
            self._store.set_task_mode(task_id, mode)

    def _on_manual_points(self, task_id: str, text: str):
        if self._store is None or not self._current_file:
            return
        if self._store.set_manual_points(self._current_file, task_id, text) is None:
            # Rejected input: show the stored value again.
            self._refresh()

    def _on_add_task(self):
        if self._store is None:
            return
        dlg = TaskDialog(parent=self)
        if dlg.exec():
            task = self._store.add_task(dlg.label(), dlg.max_points())
            if task is not None:
                self._active_task_id = task.id
                self._refresh()

    def _on_edit_task(self, task_id: str):
        if self._store is None:
            return
        task = self._store.config.task_by_id(task_id)
        if task is None:
            return
        dlg = TaskDialog(task, parent=self)
        if dlg.exec():
            self._store.update_task(task_id, label=dlg.label(), max_points=dlg.max_points())

    def _on_delete_task(self, task_id: str):
        if self._store is None:
            return
        task = self._store.config.task_by_id(task_id)
        if task is None:
            return
        answer = QMessageBox.question(
            self, "Delete Task",
            f"Delete task “{task.label}”?\n\n"
            "Stamps placed for it stay in the documents but no longer count.")
        if answer == QMessageBox.StandardButton.Yes:
            self._store.delete_task(task_id)

    # ── Points table ──────────────────────────────────────────────────────────

    def _on_table_toggled(self, visible: bool):
        if self._store is None:
            return
        if visible:
            self._store.set_points_table(self._store.points_table())
        else:
            self._store.hide_points_table()

    def _on_table_changed(self, table):
        if self._store is not None:
            self._store.set_points_table(table)

    # ── Export ────────────────────────────────────────────────────────────────

    def _export_current(self):
        if self._store is None or not self._current_file:
            QMessageBox.warning(self, "Export", "No PDF open.")
            return
        self._run_export([self._current_file],
                         data_store.report_filename(self._current_file))

    def _export_all(self):
        if self._store is None or not self._filenames:
            QMessageBox.warning(self, "Export", "No PDFs to export.")
            return
        self._run_export(list(self._filenames), data_store.report_filename())

    def _run_export(self, filenames: List[str], report_name: str):
        output_dir = QFileDialog.getExistingDirectory(
            self, "Choose Export Folder", self._folder)
        if not output_dir:
            return

        # Single dialog: progress bar → completion message
        dlg = QDialog(self)
        dlg.setWindowTitle("Export Graded PDFs")
        dlg.setMinimumWidth(420)
        dlg_layout = QVBoxLayout(dlg)
        status_label = QLabel("Exporting graded PDFs…")
        dlg_layout.addWidget(status_label)
        progress_bar = QProgressBar()
        progress_bar.setRange(0, len(filenames))
        progress_bar.setValue(0)
        dlg_layout.addWidget(progress_bar)
        btn_box = QDialogButtonBox()
        dlg_layout.addWidget(btn_box)
        dlg.setModal(True)
        dlg.show()

        def on_progress(done: int, total: int):
            progress_bar.setValue(done)
            status_label.setText(f"Exporting graded PDFs… ({min(done + 1, total)}/{total})")
            QApplication.processEvents()

        try:
            written = pdf_exporter.export_documents(
                self._folder, filenames, self._store, output_dir,
                progress_cb=on_progress, report_name=report_name)
        except pdf_exporter.ExportError as exc:
            logger.error("Export failed: %s", exc)
            dlg.close()
            QMessageBox.critical(self, "Export Error", f"Export failed:\n{exc}")
            return

        target = os.path.dirname(written[-1])
        pdf_count = len(written) - 1
        status_label.setText(
            f"Exported {pdf_count} graded PDF(s) and {report_name} to:\n{target}")
        progress_bar.hide()

        open_btn = btn_box.addButton("Open Folder", QDialogButtonBox.ButtonRole.ActionRole)
        ok_btn = btn_box.addButton(QDialogButtonBox.StandardButton.Ok)
        ok_btn.setDefault(True)
        open_btn.clicked.connect(lambda: _open_path(target))
        ok_btn.clicked.connect(dlg.accept)
        dlg.exec()

    def _export_points_overview(self):
        if self._store is None or not self._filenames:
            QMessageBox.warning(self, "Export", "No PDFs to export.")
            return
        default = os.path.join(self._folder, "points.xlsx")
        path, _ = QFileDialog.getSaveFileName(
            self, "Export Points Overview", default,
            "Excel workbook (*.xlsx);;CSV file (*.csv)")
        if not path:
            return
        try:
            pdf_exporter.export_points_overview(path, self._filenames, self._store)
        except pdf_exporter.ExportError as exc:
            logger.error("Points overview export failed: %s", exc)
            QMessageBox.critical(self, "Export Error", str(exc))
            return
        dlg = QMessageBox(QMessageBox.Icon.Information, "Export",
                          f"Points exported to:\n{path}", parent=self)
        open_btn = dlg.addButton("Open File", QMessageBox.ButtonRole.ActionRole)
        dlg.addButton(QMessageBox.StandardButton.Ok)
        dlg.exec()
        if dlg.clickedButton() is open_btn:
            _open_path(path)


def _open_path(path: str) -> None:
    """Open *path* with the platform's default handler (file or directory)."""
    if not os.path.exists(path):
        return
    try:
        if sys.platform == "darwin":
            subprocess.Popen(["open", path])
        elif sys.platform == "win32":
            os.startfile(path)  # type: ignore[attr-defined]
        else:
            subprocess.Popen(["xdg-open", path])
    except OSError as exc:
        logger.warning("Could not open %s: %s", path, exc)


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
    )


def parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="gradeframe",
                                     description="Grade a folder of PDFs with point stamps.")
    parser.add_argument("folder", nargs="?", help="folder of PDFs to open")
    parser.add_argument("--debug", action="store_true", help="verbose logging")
    args, _ = parser.parse_known_args(argv)
    return args


def main():
    args = parse_args(sys.argv[1:])
    configure_logging(args.debug or os.environ.get("GRADEFRAME_DEBUG") == "1")
    app = QApplication(sys.argv)
    app.setApplicationName("GradeFrame")
    window = MainWindow(folder=args.folder)
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
