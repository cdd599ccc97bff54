"""Data persistence: project config, PDF discovery, session config."""
import json
import logging
import os
from typing import List, Optional

from models import ProjectConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".config.json"
GRADED_DIRNAME = "graded"
REPORT_FILENAME = "report.md"


# ── App-level session config (persists which folder was last opened) ─────────

_APP_DATA_DIR = os.path.join(os.path.expanduser("~"), ".gradeframe")
SESSION_CONFIG_PATH = os.path.join(_APP_DATA_DIR, "session_config.json")


def load_session_config() -> Optional[dict]:
    if not os.path.exists(SESSION_CONFIG_PATH):
        return None
    try:
        with open(SESSION_CONFIG_PATH, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable session config %s: %s", SESSION_CONFIG_PATH, exc)
        return None


def save_session_config(folder: str) -> None:
    os.makedirs(os.path.dirname(SESSION_CONFIG_PATH), exist_ok=True)
    config = {"folder": os.path.abspath(folder)}
    with open(SESSION_CONFIG_PATH, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)


# ── Per-folder .config.json ───────────────────────────────────────────────────

def folder_name(folder: str) -> str:
    name = os.path.basename(os.path.normpath(folder.replace("\\", "/")))
    return name or "Untitled"


def default_config(folder: str) -> ProjectConfig:
    return ProjectConfig(name=folder_name(folder))


def load_project_config(folder: str) -> ProjectConfig:
    """Read *folder*/.config.json; a missing or broken file gives a fresh project."""
    path = os.path.join(folder, CONFIG_FILENAME)
    if not os.path.exists(path):
        logger.info("No %s in %s, starting a new project", CONFIG_FILENAME, folder)
        return default_config(folder)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("top-level JSON value is not an object")
        return ProjectConfig.from_dict(data, default_name="Untitled")
    except (OSError, ValueError, KeyError, TypeError) as exc:
        logger.error("Failed to parse %s: %s", path, exc)
        return default_config(folder)


def save_project_config(folder: str, config: ProjectConfig) -> None:
    """Write the whole *config* back to *folder*/.config.json."""
    path = os.path.join(folder, CONFIG_FILENAME)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2)
        f.write("\n")


class ConfigWriter:
    """Persist callback for :class:`annotation_store.AnnotationStore`.

    Writes carry the store version; a write older than the last one written
    is dropped so the file always reflects the latest mutation.
    """

    def __init__(self, folder: str):
        self.folder = folder
        self.written_version = 0

    def __call__(self, config: ProjectConfig, version: int) -> None:
        if version < self.written_version:
            logger.debug("Skipping stale config write v%d (have v%d)",
                         version, self.written_version)
            return
        save_project_config(self.folder, config)
        self.written_version = version


# ── Documents ─────────────────────────────────────────────────────────────────

def list_pdf_files(folder: str) -> List[str]:
    """Return the sorted PDF filenames directly inside *folder* (hidden files excluded).

    Raises OSError if the folder cannot be listed.
    """
    names = [
        entry.name for entry in os.scandir(folder)
        if entry.name.lower().endswith(".pdf") and not entry.name.startswith(".")
    ]
    return sorted(names)


def graded_dir(output_dir: str) -> str:
    path = os.path.join(output_dir, GRADED_DIRNAME)
    os.makedirs(path, exist_ok=True)
    return path


def report_filename(document: Optional[str] = None) -> str:
    """``report.md`` for a full export, ``report-<stem>.md`` for a single document."""
    if document is None:
        return REPORT_FILENAME
    stem, _ = os.path.splitext(document)
    return f"report-{stem}.md"
