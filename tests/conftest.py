import fitz
import pytest

import data_store
from annotation_store import AnnotationStore
from models import (
    MODE_ADDITIVE, MODE_MANUAL, MODE_SUBTRACTIVE, CommentMark, CommentStamp,
    PdfGrading, PointDelta, ProjectConfig, Task,
)


def make_pdf(pages=1, width=600, height=800) -> bytes:
    doc = fitz.open()
    for _ in range(pages):
        doc.new_page(width=width, height=height)
    data = doc.tobytes()
    doc.close()
    return data


def point(ann_id, task_id, points, page=1, x=50.0, y=50.0):
    return PointDelta(id=ann_id, task_id=task_id, stamp_id=f"fp_{points}",
                      page=page, x=x, y=y, points=points)


def comment(ann_id, task_id, stamp_id, label, points, description="", page=1, x=20.0, y=20.0):
    return CommentMark(id=ann_id, task_id=task_id, stamp_id=stamp_id, page=page,
                       x=x, y=y, points=points, label=label, description=description)


@pytest.fixture(autouse=True)
def tmp_session_config(tmp_path, monkeypatch):
    """Keep the app-level session config out of the real home directory."""
    path = tmp_path / "session" / "session_config.json"
    monkeypatch.setattr(data_store, "SESSION_CONFIG_PATH", str(path))
    return path


@pytest.fixture()
def pdf_bytes():
    return make_pdf()


@pytest.fixture()
def config():
    return ProjectConfig(
        name="Exam 1",
        tasks=[
            Task(id="q1", label="Q1", max_points=10, mode=MODE_ADDITIVE),
            Task(id="q2", label="Q2", max_points=10, mode=MODE_SUBTRACTIVE),
            Task(id="q3", label="Q3", max_points=8, mode=MODE_MANUAL),
        ],
        stamps=[
            CommentStamp(id="s1", label="Missing unit", description="Always give units.",
                         points=-1, sign="negative", task_id="q2"),
            CommentStamp(id="s2", label="Nice", description="",
                         points=1, sign="positive"),
        ],
        grading={
            "alice.pdf": PdfGrading(
                annotations=[
                    point("a1", "q1", 2),
                    point("a2", "q1", 3),
                    point("a3", "q1", -1),
                    comment("a4", "q2", "s1", "Missing unit", -1,
                            description="Always give units."),
                ],
                manual_points={"q3": 6},
            ),
        },
    )


@pytest.fixture()
def store(config):
    return AnnotationStore(config)


class RecordingPersist:
    def __init__(self):
        self.calls = []

    def __call__(self, config, version):
        self.calls.append(version)


@pytest.fixture()
def persist():
    return RecordingPersist()
