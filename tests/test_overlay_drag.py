import pytest

from models import TABLE_MAX_POS
from overlay_drag import DragSession, move_drag, scale_drag


def test_move_drag_follows_pointer_offset():
    committed = []
    drag = move_drag(10, 20, commit=committed.append)
    drag.start(50, 50)
    assert drag.active
    assert drag.update(55, 45) == (15, 15)
    assert drag.commit() == (15, 15)
    assert committed == [(15, 15)]
    assert not drag.active


def test_move_drag_clamps_to_bounds():
    drag = move_drag(80, 5, hi=TABLE_MAX_POS)
    drag.start(0, 0)
    assert drag.update(30, -20) == (TABLE_MAX_POS, 0)


def test_click_without_movement_commits_nothing():
    committed = []
    drag = move_drag(10, 10, commit=committed.append)
    drag.start(40, 40)
    drag.update(40, 40)
    assert drag.commit() is None
    assert committed == []


def test_cancel_discards_preview():
    committed = []
    drag = move_drag(10, 10, commit=committed.append)
    drag.start(0, 0)
    drag.update(5, 5)
    drag.cancel()
    assert drag.commit() is None
    assert committed == []


def test_update_before_start_returns_origin():
    drag = move_drag(3, 4)
    assert drag.update(50, 50) == (3, 4)


def test_scale_drag_uses_distance_ratio():
    drag = scale_drag(1.0, anchor=(0, 0))
    drag.start(10, 0)
    assert drag.update(20, 0) == 2.0
    assert drag.update(15, 0) == 1.5


@pytest.mark.parametrize("pointer,expected", [((100, 0), 3.0), ((1, 0), 0.5)])
def test_scale_drag_is_clamped(pointer, expected):
    drag = scale_drag(1.0, anchor=(0, 0))
    drag.start(10, 0)
    assert drag.update(*pointer) == expected


def test_scale_drag_rounds_to_two_decimals():
    drag = scale_drag(1.0, anchor=(0, 0))
    drag.start(3, 0)
    assert drag.update(4, 0) == 1.33


def test_scale_drag_from_anchor_keeps_scale():
    drag = scale_drag(1.7, anchor=(5, 5))
    drag.start(5, 5)
    assert drag.update(40, 40) == 1.7


def test_generic_session_with_custom_apply():
    drag = DragSession("abc", lambda origin, start, cur: origin * int(cur[0] - start[0]))
    drag.start(0, 0)
    assert drag.update(2, 0) == "abcabc"
