import pytest

import scoring
from conftest import point
from models import MODE_ADDITIVE, MODE_MANUAL, MODE_SUBTRACTIVE, PdfGrading, Task


def _grading(*points, task_id="t"):
    return PdfGrading(annotations=[point(f"a{i}", task_id, p) for i, p in enumerate(points)])


def test_additive_sums_positive_points_only():
    task = Task(id="t", label="Q1", max_points=10, mode=MODE_ADDITIVE)
    assert scoring.display_points_for_task("a.pdf", task, _grading(2, 3, -1)) == 5


def test_additive_ignores_negative_and_zero_annotations():
    task = Task(id="t", label="Q1", max_points=10, mode=MODE_ADDITIVE)
    base = scoring.display_points_for_task("a.pdf", task, _grading(1, 0.5))
    assert scoring.display_points_for_task("a.pdf", task, _grading(1, 0.5, -2)) == base
    assert scoring.display_points_for_task("a.pdf", task, _grading(1, 0.5, 0)) == base


def test_subtractive_deducts_negative_points_from_max():
    task = Task(id="t", label="Q2", max_points=10, mode=MODE_SUBTRACTIVE)
    assert scoring.display_points_for_task("a.pdf", task, _grading(-3, -4, 2)) == 3


def test_subtractive_saturates_at_zero():
    task = Task(id="t", label="Q2", max_points=5, mode=MODE_SUBTRACTIVE)
    assert scoring.display_points_for_task("a.pdf", task, _grading(-3, -4, -2)) == 0


def test_subtractive_without_annotations_is_full_marks():
    task = Task(id="t", label="Q2", max_points=7, mode=MODE_SUBTRACTIVE)
    assert scoring.display_points_for_task("a.pdf", task, None) == 7


def test_manual_uses_override_or_zero():
    task = Task(id="t", label="Q3", max_points=10, mode=MODE_MANUAL)
    assert scoring.display_points_for_task("a.pdf", task, None) == 0
    grading = PdfGrading(manual_points={"t": 4.5})
    assert scoring.display_points_for_task("a.pdf", task, grading) == 4.5
    assert scoring.display_points_for_task("a.pdf", task, grading, {"t": 2}) == 2


def test_annotations_of_other_tasks_do_not_count():
    task = Task(id="t", label="Q1", max_points=10, mode=MODE_ADDITIVE)
    grading = _grading(4, task_id="other")
    assert scoring.display_points_for_task("a.pdf", task, grading) == 0


def test_document_total_and_max_total(config):
    grading = config.grading["alice.pdf"]
    # Q1 additive 2+3, Q2 subtractive 10-1, Q3 manual 6
    assert scoring.document_total("alice.pdf", config.tasks, grading) == 5 + 9 + 6
    assert scoring.max_total(config.tasks) == 28


def test_max_total_independent_of_mode(config):
    for task in config.tasks:
        task.mode = MODE_MANUAL
    assert scoring.max_total(config.tasks) == 28


def test_task_summary_rows(config):
    rows = scoring.task_summary("alice.pdf", config.tasks, config.grading["alice.pdf"])
    assert rows == [("Q1", 5, 10), ("Q2", 9, 10), ("Q3", 6, 8)]


@pytest.mark.parametrize("points,max_points,expected", [
    (5, 10, 50.0),
    (0, 0, 0.0),
    (12, 10, 100.0),
    (-1, 10, 0.0),
])
def test_percent_of(points, max_points, expected):
    assert scoring.percent_of(points, max_points) == expected
