import logging

import pytest

import scoring
from annotation_store import AnnotationStore, new_id
from models import (
    MODE_MANUAL, MODE_SUBTRACTIVE, ActiveStamp, CommentMark, PointDelta,
    PointsTableConfig, ProjectConfig, make_comment_stamp,
)


def test_new_ids_are_unique():
    ids = {new_id("a") for _ in range(1000)}
    assert len(ids) == 1000
    assert all(i.startswith("a") for i in ids)


def test_add_point_annotation(store):
    ann = store.add_annotation("bob.pdf", 2, 10, 20, ActiveStamp.point(1.5), "q1")
    assert isinstance(ann, PointDelta)
    assert (ann.page, ann.x, ann.y, ann.points) == (2, 10, 20, 1.5)
    assert ann.stamp_id == "fp_1.5"
    assert store.annotations_for("bob.pdf") == [ann]
    assert store.annotations_for("bob.pdf", page=1) == []


def test_add_comment_annotation_copies_label_and_description(store):
    active = ActiveStamp.from_stamp(store.config.stamps[0])
    ann = store.add_annotation("bob.pdf", 1, 50, 50, active, "q2")
    assert isinstance(ann, CommentMark)
    assert ann.label == "Missing unit"
    assert ann.description == "Always give units."
    assert ann.points == -1


def test_add_without_stamp_or_task_is_noop(store, persist):
    store._persist = persist
    assert store.add_annotation("bob.pdf", 1, 5, 5, None, "q1") is None
    assert store.add_annotation("bob.pdf", 1, 5, 5, ActiveStamp.point(1), None) is None
    assert store.grading_for("bob.pdf") is None
    assert persist.calls == []


def test_add_clamps_position(store):
    ann = store.add_annotation("bob.pdf", 1, 120, -5, ActiveStamp.point(1), "q1")
    assert (ann.x, ann.y) == (100, 0)


def test_move_round_trip_and_clamp(store):
    ann = store.add_annotation("bob.pdf", 1, 10, 10, ActiveStamp.point(1), "q1")
    store.move_annotation(ann.id, 33.5, 66.25)
    assert (store.find_annotation(ann.id).x, store.find_annotation(ann.id).y) == (33.5, 66.25)
    store.move_annotation(ann.id, 105, -3)
    moved = store.find_annotation(ann.id)
    assert (moved.x, moved.y) == (100, 0)


def test_move_unknown_annotation(store):
    assert store.move_annotation("ghost", 1, 1) is False


def test_deleting_only_reference_removes_stamp(store):
    assert store.stamp_in_use("s1")
    assert store.delete_annotation("a4")
    assert [s.id for s in store.config.stamps] == ["s2"]


def test_deleting_one_of_two_references_keeps_stamp(store):
    active = ActiveStamp.from_stamp(store.config.stamps[0])
    store.add_annotation("bob.pdf", 1, 50, 50, active, "q2")
    store.delete_annotation("a4")
    assert "s1" in [s.id for s in store.config.stamps]
    assert store.stamp_in_use("s1")


def test_deleting_point_annotation_keeps_stamps(store):
    before = list(store.config.stamps)
    store.delete_annotation("a1")
    assert store.config.stamps == before
    assert store.find_annotation("a1") is None


def test_delete_unknown_annotation_is_noop(store, persist):
    store._persist = persist
    assert store.delete_annotation("ghost") is False
    assert persist.calls == []


def test_update_comment_annotation(store):
    store.update_annotation("a4", label="No unit", description="", points="-2")
    ann = store.find_annotation("a4")
    assert (ann.label, ann.description, ann.points) == ("No unit", "", -2)


def test_update_keeps_label_when_blank_and_points_when_not_numeric(store):
    store.update_annotation("a4", label="   ", points="abc")
    ann = store.find_annotation("a4")
    assert ann.label == "Missing unit"
    assert ann.points == -1


def test_update_point_delta_only_changes_points(store):
    store.update_annotation("a1", label="ignored", description="ignored", points=4)
    ann = store.find_annotation("a1")
    assert isinstance(ann, PointDelta)
    assert ann.points == 4
    assert ann.label == "+4"
    assert ann.description == ""


@pytest.mark.parametrize("value,expected", [
    (-5, 0), (15, 8), ("3.5", 3.5), ("3,5", 3.5), (" 7,25 ", 7.25),
])
def test_manual_points_are_clamped(store, value, expected):
    assert store.set_manual_points("bob.pdf", "q3", value) == expected
    assert store.grading_for("bob.pdf").manual_points["q3"] == expected


def test_manual_points_reject_non_numeric(store, persist):
    store._persist = persist
    assert store.set_manual_points("alice.pdf", "q3", "abc") is None
    assert store.set_manual_points("alice.pdf", "q3", "1,000.5") is None
    assert store.set_manual_points("alice.pdf", "q3", float("nan")) is None
    assert store.grading_for("alice.pdf").manual_points["q3"] == 6
    assert persist.calls == []


def test_manual_clamp_against_max_ten():
    config = ProjectConfig(name="x")
    store = AnnotationStore(config)
    task = store.add_task("Q", 10)
    store.set_task_mode(task.id, MODE_MANUAL)
    assert store.set_manual_points("a.pdf", task.id, -5) == 0
    assert store.set_manual_points("a.pdf", task.id, 15) == 10


def test_create_stamp_tags_task_and_returns_active(store):
    stamp = make_comment_stamp("s9", "Good", "", "2", "positive")
    active = store.create_stamp(stamp, task_id="q1")
    assert active == ActiveStamp(id="s9", points=2, label="Good", description="")
    assert store.config.stamps[-1].task_id == "q1"
    assert [s.id for s in store.stamps_for_task("q1")] == ["s2", "s9"]
    assert [s.id for s in store.stamps_for_task("q2")] == ["s1", "s2"]


def test_task_operations(store):
    task = store.add_task(" Q4 ", "4")
    assert task.label == "Q4"
    assert task.max_points == 4
    assert store.add_task("", 3) is None
    assert store.add_task("Q5", "lots") is None

    store.update_task(task.id, label="Q4b", max_points=6, mode=MODE_SUBTRACTIVE)
    assert (task.label, task.max_points, task.mode) == ("Q4b", 6, MODE_SUBTRACTIVE)
    store.set_task_mode(task.id, "bogus")
    assert task.mode == MODE_SUBTRACTIVE


def test_deleting_task_orphans_its_annotations(store):
    grading = store.grading_for("alice.pdf")
    before = scoring.document_total("alice.pdf", store.config.tasks, grading)
    assert store.delete_task("q1")
    assert store.find_annotation("a1") is not None
    after = scoring.document_total("alice.pdf", store.config.tasks, grading)
    assert after == before - 5
    assert store.delete_task("q1") is False


def test_points_table_is_clamped(store):
    assert store.points_table() == PointsTableConfig()
    table = store.set_points_table(PointsTableConfig(x=95, y=-2, scale=7))
    assert table == PointsTableConfig(x=90, y=0, scale=3)
    assert store.config.points_table == table


def test_hide_points_table(store):
    store.set_points_table(PointsTableConfig())
    assert store.hide_points_table()
    assert store.config.points_table is None
    assert store.hide_points_table() is False


def test_every_mutation_bumps_version_and_persists(config, persist):
    store = AnnotationStore(config, persist=persist)
    store.add_annotation("bob.pdf", 1, 1, 1, ActiveStamp.point(1), "q1")
    store.set_manual_points("bob.pdf", "q3", 2)
    store.set_points_table(PointsTableConfig())
    assert persist.calls == [1, 2, 3]
    assert store.version == 3


def test_listeners_are_notified(store):
    seen = []
    store.subscribe(lambda: seen.append(store.version))
    store.move_annotation("a1", 1, 1)
    store.delete_annotation("a2")
    assert seen == [1, 2]


def test_persist_failure_is_logged_and_state_kept(config, caplog):
    def failing(config, version):
        raise OSError("disk full")

    store = AnnotationStore(config, persist=failing)
    with caplog.at_level(logging.ERROR, logger="annotation_store"):
        ann = store.add_annotation("bob.pdf", 1, 1, 1, ActiveStamp.point(1), "q1")
    assert ann is not None
    assert store.find_annotation(ann.id) is ann
    assert "disk full" in caplog.text
