"""Drag / resize sessions for overlays placed on a page.

A :class:`DragSession` has three phases: ``start`` records the pointer,
``update`` returns a preview value computed from the pointer offset, and
``commit`` hands the last preview to a callback.  Annotation markers and the
points table use the same class; only the *apply* function and the commit
callback differ.

Pointer coordinates are percentages of the page (0–100), the same space the
annotations are stored in.
"""
import math
from typing import Any, Callable, Optional, Tuple

from models import TABLE_MAX_SCALE, TABLE_MIN_SCALE, clamp

Point = Tuple[float, float]


class DragSession:
    def __init__(self, origin: Any,
                 apply: Callable[[Any, Point, Point], Any],
                 commit: Optional[Callable[[Any], None]] = None):
        self.origin = origin
        self._apply = apply
        self._commit = commit
        self._start: Optional[Point] = None
        self.preview: Any = None
        self.moved = False

    @property
    def active(self) -> bool:
        return self._start is not None

    def start(self, px: float, py: float) -> None:
        self._start = (px, py)
        self.preview = self.origin
        self.moved = False

    def update(self, px: float, py: float) -> Any:
        if self._start is None:
            return self.origin
        if (px, py) != self._start:
            self.moved = True
        self.preview = self._apply(self.origin, self._start, (px, py))
        return self.preview

    def commit(self) -> Any:
        """End the drag; the callback only fires if the pointer actually moved."""
        if self._start is None:
            return None
        value = self.preview if self.moved else None
        self._start = None
        if value is not None and self._commit is not None:
            self._commit(value)
        return value

    def cancel(self) -> None:
        self._start = None
        self.preview = None
        self.moved = False


def move_drag(x: float, y: float, lo: float = 0.0, hi: float = 100.0,
              commit: Optional[Callable[[Point], None]] = None) -> DragSession:
    """Drag a position by the pointer offset, keeping it within ``[lo, hi]``."""
    def apply(origin: Point, start: Point, current: Point) -> Point:
        return (clamp(origin[0] + current[0] - start[0], lo, hi),
                clamp(origin[1] + current[1] - start[1], lo, hi))
    return DragSession((x, y), apply, commit)


def scale_drag(scale: float, anchor: Point, aspect: float = 1.0,
               commit: Optional[Callable[[float], None]] = None) -> DragSession:
    """Resize around *anchor* by the ratio of pointer distances from it.

    *aspect* is page width / height so distances are measured in page units
    rather than raw percentages.
    """
    def distance(p: Point) -> float:
        return math.hypot((p[0] - anchor[0]) * aspect, p[1] - anchor[1])

    def apply(origin: float, start: Point, current: Point) -> float:
        start_dist = distance(start)
        if start_dist == 0:
            return origin
        new_scale = clamp(origin * distance(current) / start_dist,
                          TABLE_MIN_SCALE, TABLE_MAX_SCALE)
        return round(new_scale * 100) / 100
    return DragSession(scale, apply, commit)
