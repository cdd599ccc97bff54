"""Data models for GradeFrame."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

MODE_ADDITIVE = "additive"
MODE_SUBTRACTIVE = "subtractive"
MODE_MANUAL = "manual"
MODES = (MODE_ADDITIVE, MODE_SUBTRACTIVE, MODE_MANUAL)

SIGN_POSITIVE = "positive"
SIGN_NEGATIVE = "negative"

TABLE_MIN_SCALE = 0.5
TABLE_MAX_SCALE = 3.0
TABLE_MAX_POS = 90.0   # keep the table's top-left corner on the page


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def format_points(value: float) -> str:
    """``2.0`` → ``"2"``, ``-0.5`` → ``"-0.5"``."""
    value = float(value)
    if value == int(value):
        return str(int(value))
    return f"{value:g}"


def format_signed(value: float) -> str:
    """Like :func:`format_points` but with an explicit ``+`` for positive values."""
    text = format_points(value)
    return f"+{text}" if value > 0 else text


@dataclass
class Task:
    id: str
    label: str
    max_points: float
    mode: str = MODE_ADDITIVE  # "additive" | "subtractive" | "manual"

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label,
                "maxPoints": self.max_points, "mode": self.mode}

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        mode = data.get("mode", MODE_ADDITIVE)
        return cls(
            id=str(data["id"]),
            label=str(data.get("label", "")),
            max_points=max(0.0, float(data.get("maxPoints", 0))),
            mode=mode if mode in MODES else MODE_ADDITIVE,
        )


@dataclass
class CommentStamp:
    id: str
    label: str
    description: str
    points: float
    sign: str                      # "positive" | "negative"
    task_id: Optional[str] = None  # palette only shows it for this task

    def to_dict(self) -> dict:
        data = {"id": self.id, "label": self.label, "description": self.description,
                "points": self.points, "sign": self.sign}
        if self.task_id is not None:
            data["taskId"] = self.task_id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CommentStamp":
        points = float(data.get("points", 0))
        return cls(
            id=str(data["id"]),
            label=str(data.get("label", "")),
            description=str(data.get("description", "")),
            points=points,
            sign=data.get("sign") or (SIGN_NEGATIVE if points < 0 else SIGN_POSITIVE),
            task_id=data.get("taskId"),
        )


def make_comment_stamp(stamp_id: str, label: str, description: str, value,
                       sign: str, task_id: Optional[str] = None) -> CommentStamp:
    """Build a stamp whose stored points always agree with *sign*.

    An empty, zero or non-numeric *value* falls back to 1.
    """
    try:
        magnitude = abs(float(value))
    except (TypeError, ValueError):
        magnitude = 1.0
    magnitude = magnitude or 1.0
    points = -magnitude if sign == SIGN_NEGATIVE else magnitude
    return CommentStamp(id=stamp_id, label=label.strip(),
                        description=description.strip(),
                        points=points, sign=sign, task_id=task_id)


@dataclass
class ActiveStamp:
    """The palette selection used for the next placement."""
    id: str
    points: float
    label: Optional[str] = None        # None → raw point value
    description: Optional[str] = None

    @classmethod
    def point(cls, value: float, stamp_id: Optional[str] = None) -> "ActiveStamp":
        return cls(id=stamp_id or f"fp_{format_points(value)}", points=float(value))

    @classmethod
    def from_stamp(cls, stamp: CommentStamp) -> "ActiveStamp":
        return cls(id=stamp.id, points=stamp.points,
                   label=stamp.label, description=stamp.description)

    @property
    def is_point(self) -> bool:
        return not self.label


@dataclass
class PointDelta:
    """An anonymous signed point value placed on a page."""
    id: str
    task_id: str
    stamp_id: str
    page: int     # 1-based page number
    x: float      # percentage 0–100 of page width
    y: float      # percentage 0–100 of page height, top-down
    points: float

    is_point_stamp = True

    @property
    def label(self) -> str:
        return format_signed(self.points)

    @property
    def description(self) -> str:
        return ""


@dataclass
class CommentMark:
    """A placed comment stamp carrying its own label and description."""
    id: str
    task_id: str
    stamp_id: str
    page: int
    x: float
    y: float
    points: float
    label: str
    description: str = ""

    is_point_stamp = False


Annotation = Union[PointDelta, CommentMark]


def annotation_to_dict(ann: Annotation) -> dict:
    return {
        "id": ann.id,
        "taskId": ann.task_id,
        "stampId": ann.stamp_id,
        "page": ann.page,
        "x": ann.x,
        "y": ann.y,
        "points": ann.points,
        "label": ann.label,
        "description": ann.description,
        "isPointStamp": ann.is_point_stamp,
    }


def annotation_from_dict(data: dict) -> Annotation:
    common = dict(
        id=str(data["id"]),
        task_id=str(data.get("taskId", "")),
        stamp_id=str(data.get("stampId", "")),
        page=max(1, int(data.get("page", 1))),
        x=clamp(float(data.get("x", 0)), 0.0, 100.0),
        y=clamp(float(data.get("y", 0)), 0.0, 100.0),
        points=float(data.get("points", 0)),
    )
    if data.get("isPointStamp"):
        return PointDelta(**common)
    return CommentMark(label=str(data.get("label", "")),
                       description=str(data.get("description", "")),
                       **common)


@dataclass
class PdfGrading:
    annotations: List[Annotation] = field(default_factory=list)
    manual_points: Dict[str, float] = field(default_factory=dict)  # task id → points

    def to_dict(self) -> dict:
        return {
            "annotations": [annotation_to_dict(a) for a in self.annotations],
            "manualPoints": dict(self.manual_points),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PdfGrading":
        return cls(
            annotations=[annotation_from_dict(a) for a in data.get("annotations") or []],
            manual_points={str(k): float(v)
                           for k, v in (data.get("manualPoints") or {}).items()},
        )


@dataclass
class PointsTableConfig:
    x: float = 5.0       # percentage position of the top-left corner on page 1
    y: float = 5.0
    scale: float = 1.0   # 0.5–3.0

    def clamped(self) -> "PointsTableConfig":
        return PointsTableConfig(
            x=clamp(self.x, 0.0, TABLE_MAX_POS),
            y=clamp(self.y, 0.0, TABLE_MAX_POS),
            scale=clamp(self.scale, TABLE_MIN_SCALE, TABLE_MAX_SCALE),
        )

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "scale": self.scale}

    @classmethod
    def from_dict(cls, data: dict) -> "PointsTableConfig":
        return cls(
            x=float(data.get("x", 5.0)),
            y=float(data.get("y", 5.0)),
            scale=float(data.get("scale", 1.0)),
        ).clamped()


@dataclass
class ProjectConfig:
    name: str
    tasks: List[Task] = field(default_factory=list)
    stamps: List[CommentStamp] = field(default_factory=list)
    grading: Dict[str, PdfGrading] = field(default_factory=dict)  # filename → grading
    points_table: Optional[PointsTableConfig] = None

    def task_by_id(self, task_id: Optional[str]) -> Optional[Task]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "tasks": [t.to_dict() for t in self.tasks],
            "stamps": [s.to_dict() for s in self.stamps],
            "grading": {fn: g.to_dict() for fn, g in self.grading.items()},
        }
        if self.points_table is not None:
            data["pointsTable"] = self.points_table.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict, default_name: str = "Untitled") -> "ProjectConfig":
        table = data.get("pointsTable")
        return cls(
            name=data.get("name") or default_name,
            tasks=[Task.from_dict(t) for t in data.get("tasks") or []],
            stamps=[CommentStamp.from_dict(s) for s in data.get("stamps") or []],
            grading={str(fn): PdfGrading.from_dict(g)
                     for fn, g in (data.get("grading") or {}).items()},
            points_table=PointsTableConfig.from_dict(table) if table else None,
        )
