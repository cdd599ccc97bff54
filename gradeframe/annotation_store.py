"""In-memory owner of the project config: annotations, manual points, stamps, tasks.

Every mutation ends in :meth:`AnnotationStore._commit`, which bumps
``version`` and hands the whole config to the persist callback (write-through,
no diffing).  A failed write is logged and the in-memory state is kept; the
next mutation writes everything again.
"""
import itertools
import logging
import time
from typing import Callable, List, Optional

from models import (
    MODES, ActiveStamp, Annotation, CommentMark, CommentStamp, PdfGrading,
    PointDelta, PointsTableConfig, ProjectConfig, Task, clamp,
)

logger = logging.getLogger(__name__)

PersistCallback = Callable[[ProjectConfig, int], None]

_counter = itertools.count(1)


def new_id(prefix: str) -> str:
    """Timestamp + session counter, unique within a session."""
    return f"{prefix}{int(time.time() * 1000)}_{next(_counter)}"


def _to_float(value) -> Optional[float]:
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if result != result or result in (float("inf"), float("-inf")):
        return None
    return result


class AnnotationStore:
    def __init__(self, config: ProjectConfig, persist: Optional[PersistCallback] = None):
        self.config = config
        self.version = 0
        self._persist = persist
        self._listeners: List[Callable[[], None]] = []

    # ── Change notification ───────────────────────────────────────────────────

    def subscribe(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def _commit(self) -> None:
        self.version += 1
        if self._persist is not None:
            try:
                self._persist(self.config, self.version)
            except (OSError, ValueError, TypeError) as exc:
                logger.error("Failed to save project config (version %d): %s",
                             self.version, exc)
        for callback in list(self._listeners):
            callback()

    # ── Queries ───────────────────────────────────────────────────────────────

    def grading_for(self, filename: str) -> Optional[PdfGrading]:
        return self.config.grading.get(filename)

    def _grading_or_create(self, filename: str) -> PdfGrading:
        grading = self.config.grading.get(filename)
        if grading is None:
            grading = PdfGrading()
            self.config.grading[filename] = grading
        return grading

    def annotations_for(self, filename: str, page: Optional[int] = None) -> List[Annotation]:
        grading = self.config.grading.get(filename)
        if grading is None:
            return []
        if page is None:
            return list(grading.annotations)
        return [a for a in grading.annotations if a.page == page]

    def find_annotation(self, annotation_id: str) -> Optional[Annotation]:
        for grading in self.config.grading.values():
            for ann in grading.annotations:
                if ann.id == annotation_id:
                    return ann
        return None

    def stamp_in_use(self, stamp_id: str) -> bool:
        # Full rescan, O(total annotations).
        return any(
            not ann.is_point_stamp and ann.stamp_id == stamp_id
            for grading in self.config.grading.values()
            for ann in grading.annotations
        )

    def stamps_for_task(self, task_id: Optional[str]) -> List[CommentStamp]:
        return [s for s in self.config.stamps if not s.task_id or s.task_id == task_id]

    # ── Annotations ───────────────────────────────────────────────────────────

    def add_annotation(self, filename: str, page: int, x: float, y: float,
                       active: Optional[ActiveStamp],
                       task_id: Optional[str]) -> Optional[Annotation]:
        """Place *active* on *page* of *filename*; no-op without a stamp or task."""
        if active is None or not task_id or not filename:
            return None
        common = dict(
            id=new_id("a"),
            task_id=task_id,
            stamp_id=active.id,
            page=max(1, int(page)),
            x=clamp(x, 0.0, 100.0),
            y=clamp(y, 0.0, 100.0),
            points=float(active.points),
        )
        if active.is_point:
            ann = PointDelta(**common)
        else:
            ann = CommentMark(label=active.label, description=active.description or "",
                              **common)
        self._grading_or_create(filename).annotations.append(ann)
        logger.debug("Added annotation %s to %s page %d (%s)",
                     ann.id, filename, ann.page, ann.label)
        self._commit()
        return ann

    def delete_annotation(self, annotation_id: str) -> bool:
        for filename, grading in self.config.grading.items():
            for i, ann in enumerate(grading.annotations):
                if ann.id != annotation_id:
                    continue
                grading.annotations.pop(i)
                logger.debug("Deleted annotation %s from %s", annotation_id, filename)
                if not ann.is_point_stamp and not self.stamp_in_use(ann.stamp_id):
                    before = len(self.config.stamps)
                    self.config.stamps = [s for s in self.config.stamps
                                          if s.id != ann.stamp_id]
                    if len(self.config.stamps) != before:
                        logger.debug("Removed unused stamp %s", ann.stamp_id)
                self._commit()
                return True
        return False

    def move_annotation(self, annotation_id: str, x: float, y: float) -> bool:
        ann = self.find_annotation(annotation_id)
        if ann is None:
            return False
        ann.x = clamp(x, 0.0, 100.0)
        ann.y = clamp(y, 0.0, 100.0)
        self._commit()
        return True

    def update_annotation(self, annotation_id: str, label: Optional[str] = None,
                          description: Optional[str] = None, points=None) -> bool:
        """Replace fields in place; non-numeric *points* leaves points unchanged."""
        ann = self.find_annotation(annotation_id)
        if ann is None:
            return False
        value = _to_float(points) if points is not None else None
        if value is not None:
            ann.points = value
        if isinstance(ann, CommentMark):
            if label is not None and label.strip():
                ann.label = label.strip()
            if description is not None:
                ann.description = description.strip()
        self._commit()
        return True

    # ── Manual points ─────────────────────────────────────────────────────────

    def set_manual_points(self, filename: str, task_id: str, value) -> Optional[float]:
        """Store a clamped manual score; returns the stored value or None if rejected."""
        task = self.config.task_by_id(task_id)
        points = _to_float(value)
        if task is None or points is None or not filename:
            return None
        points = clamp(points, 0.0, task.max_points)
        self._grading_or_create(filename).manual_points[task_id] = points
        self._commit()
        return points

    # ── Stamps ────────────────────────────────────────────────────────────────

    def create_stamp(self, stamp: CommentStamp, task_id: Optional[str] = None) -> ActiveStamp:
        """Add *stamp* to the palette and return it as the new active selection."""
        if task_id is not None:
            stamp.task_id = task_id
        self.config.stamps.append(stamp)
        logger.debug("Created stamp %s (%s, %s)", stamp.id, stamp.label, stamp.points)
        self._commit()
        return ActiveStamp.from_stamp(stamp)

    # ── Tasks ─────────────────────────────────────────────────────────────────

    def add_task(self, label: str, max_points) -> Optional[Task]:
        value = _to_float(max_points)
        if not label.strip() or value is None:
            return None
        task = Task(id=new_id("t"), label=label.strip(), max_points=max(0.0, value))
        self.config.tasks.append(task)
        self._commit()
        return task

    def update_task(self, task_id: str, label: Optional[str] = None,
                    max_points=None, mode: Optional[str] = None) -> bool:
        task = self.config.task_by_id(task_id)
        if task is None:
            return False
        if label is not None and label.strip():
            task.label = label.strip()
        if max_points is not None:
            value = _to_float(max_points)
            if value is not None:
                task.max_points = max(0.0, value)
        if mode is not None and mode in MODES:
            task.mode = mode
        self._commit()
        return True

    def set_task_mode(self, task_id: str, mode: str) -> bool:
        return self.update_task(task_id, mode=mode)

    def delete_task(self, task_id: str) -> bool:
        """Remove the task; annotations tagged with it stay stored but no longer score."""
        before = len(self.config.tasks)
        self.config.tasks = [t for t in self.config.tasks if t.id != task_id]
        if len(self.config.tasks) == before:
            return False
        self._commit()
        return True

    # ── Summary table ─────────────────────────────────────────────────────────

    def points_table(self) -> PointsTableConfig:
        return self.config.points_table or PointsTableConfig()

    def set_points_table(self, table: PointsTableConfig) -> PointsTableConfig:
        self.config.points_table = table.clamped()
        self._commit()
        return self.config.points_table

    def hide_points_table(self) -> bool:
        """Drop the table from the project; exports no longer include it."""
        if self.config.points_table is None:
            return False
        self.config.points_table = None
        self._commit()
        return True
