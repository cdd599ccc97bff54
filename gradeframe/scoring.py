"""Points calculations shared by the task panel, tab bar, exports and report.

Everything here is recomputed from the current state on every call; nothing
is cached.  Missing gradings or overrides count as zero.
"""
from typing import Dict, List, Optional, Tuple

from models import MODE_MANUAL, MODE_SUBTRACTIVE, PdfGrading, Task


def display_points_for_task(
    filename: str,
    task: Task,
    grading: Optional[PdfGrading],
    manual_points: Optional[Dict[str, float]] = None,
) -> float:
    """Return the points shown for *task* on document *filename*.

    * manual      – the stored override (0 if none).  Clamping happens when
                    the value is entered, not here.
    * additive    – sum of the task's strictly positive annotations.
    * subtractive – ``max_points`` minus the task's negative annotations,
                    floored at 0.

    *manual_points* maps task id → points for this document and defaults to
    the overrides stored in *grading*.
    """
    if task.mode == MODE_MANUAL:
        if manual_points is None:
            manual_points = grading.manual_points if grading else {}
        return float(manual_points.get(task.id, 0.0))

    annotations = grading.annotations if grading else []
    points = [a.points for a in annotations if a.task_id == task.id]
    if task.mode == MODE_SUBTRACTIVE:
        return max(0.0, task.max_points + sum(p for p in points if p < 0))
    return float(sum(p for p in points if p > 0))


def document_total(filename: str, tasks: List[Task],
                   grading: Optional[PdfGrading]) -> float:
    return sum(display_points_for_task(filename, t, grading) for t in tasks)


def max_total(tasks: List[Task]) -> float:
    return sum(t.max_points for t in tasks)


def task_summary(filename: str, tasks: List[Task],
                 grading: Optional[PdfGrading]) -> List[Tuple[str, float, float]]:
    """Return ``(label, points, max_points)`` per task, in task order."""
    return [(t.label, display_points_for_task(filename, t, grading), t.max_points)
            for t in tasks]


def percent_of(points: float, max_points: float) -> float:
    """Progress-bar percentage, clamped to 0–100."""
    if max_points <= 0:
        return 0.0
    return max(0.0, min(100.0, points / max_points * 100.0))
