"""Filesystem helpers."""

from datetime import datetime
from pathlib import Path

from voicenotes.config import settings

DATA_ROOT = Path(settings.DATA_ROOT)


def ensure_dir_exists(path: Path) -> Path:
    """Ensure that the given directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def sqlite_parent_dir(database_url: str) -> Path | None:
    """Directory that must exist before SQLite can create its file, if any."""
    prefix = "sqlite:///"
    if not database_url.startswith(prefix):
        return None
    db_path = database_url[len(prefix):]
    if not db_path or db_path == ":memory:":
        return None
    return Path(db_path).parent


def download_filename(timestamp: datetime) -> str:
    """Attachment name used when a transcript is downloaded as plain text."""
    stamp = timestamp.isoformat().replace(":", "-")
    return f"speech-transcript-{stamp}.txt"
