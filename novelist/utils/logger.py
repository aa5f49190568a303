import sys
from loguru import logger
from pathlib import Path
from typing import Iterable, Optional

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"

MASK = "****"


def _console_filter(level: str):
    """Our own records at `level`; anything else only from WARNING up."""
    threshold = logger.level(level).no
    warning = logger.level("WARNING").no

    def accept(record) -> bool:
        if (record["name"] or "").split(".")[0] == "novelist":
            return record["level"].no >= threshold
        return record["level"].no >= warning

    return accept


def _masker(secrets: list[str]):
    def patch(record):
        for secret in secrets:
            record["message"] = record["message"].replace(secret, MASK)

    return patch


def setup_logger(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    secrets: Iterable[str] = (),
):
    """Route loguru output to stderr and, optionally, a rotating session log.

    Safe to call again: every call replaces the previous sinks, so the
    console sink always writes to the current sys.stderr. Any value in
    `secrets` (the Gemini API key) is masked in every message.
    """
    level = log_level.upper()
    logger.remove()
    logger.configure(patcher=_masker([s for s in secrets if s]))
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level="DEBUG", filter=_console_filter(level), colorize=True)

    # Gemini prompts are logged at DEBUG, so the file sink keeps everything
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format=FILE_FORMAT,
            level="DEBUG",
            rotation="5 MB",
            retention=3,
            encoding="utf-8",
        )

    return logger
