"""Session files and chapter export."""

from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from .errors import SessionFileError
from .models.manuscript import Chapter
from .models.session import SessionSnapshot
from .utils.text import export_filename


def save_session(snapshot: SessionSnapshot, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        snapshot.model_dump_json(by_alias=True, exclude_none=True, indent=2),
        encoding="utf-8",
    )
    logger.debug(f"Session saved to {path}")
    return path


def load_session(path: Path) -> SessionSnapshot:
    """Read a snapshot; older files get ids and settings defaults filled in."""
    try:
        raw = path.read_text(encoding="utf-8")
        return SessionSnapshot.model_validate_json(raw)
    except (OSError, ValidationError) as e:
        logger.error(f"Failed to load session {path}: {e}")
        raise SessionFileError(f"Failed to load or parse the session file: {path}") from e


def export_chapter(chapter: Chapter, directory: Path) -> Path:
    """Write one chapter's content as plain text, named after its title."""
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / export_filename(chapter.title)
    target.write_text(chapter.content, encoding="utf-8")
    logger.info(f"Exported {chapter.title} to {target}")
    return target
