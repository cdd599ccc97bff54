"""Plain-text (Markdown) summary of all comments, grouped by task then document."""
from typing import Iterable, List, Optional, Sequence, Tuple

from models import Annotation, Task, format_points, format_signed

NO_COMMENTS = "_No comments._"


def annotation_line(ann: Annotation) -> str:
    line = f"- {ann.label} ({format_signed(ann.points)})"
    if ann.description:
        line += f": {ann.description}"
    return line


def generate_report(
    tasks: Sequence[Task],
    documents: Iterable[Tuple[str, Sequence[Annotation]]],
    title: Optional[str] = None,
) -> str:
    """Build the report text.

    *documents* is an ordered sequence of ``(filename, annotations)``; output
    order follows task order, then document order, so equal input gives equal
    output.
    """
    documents = list(documents)
    sections: List[str] = []
    if title:
        sections.append(f"# {title}")

    for task in tasks:
        parts = [f"## {task.label} (max {format_points(task.max_points)} P)"]
        found = False
        for filename, annotations in documents:
            matching = [a for a in annotations if a.task_id == task.id]
            if not matching:
                continue
            found = True
            lines = [f"### {filename}"] + [annotation_line(a) for a in matching]
            parts.append("\n".join(lines))
        if not found:
            parts.append(NO_COMMENTS)
        sections.append("\n\n".join(parts))

    return "\n\n".join(sections) + "\n"
