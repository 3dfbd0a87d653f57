"""Utility functions for streamnotes."""

import logging
import os
import re
import sys
import time
import uuid
from pathlib import Path
from typing import Callable, Optional, Tuple

from loguru import logger


DATA_DIR_NAME = ".streamnotes"
LOG_FILE_NAME = "streamnotes.log"

# Extensions (lowercase, without dot) treated as image assets
IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp", "svg"})
MARKDOWN_EXTENSION = ".md"

IMAGE_NAME_PATTERN = re.compile(r"\.(png|jpg|jpeg|gif|webp|svg)$", re.IGNORECASE)

IMAGE_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
}


def generate_id() -> str:
    """Generate an opaque, unique item identifier."""
    return uuid.uuid4().hex


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def is_markdown_name(name: str) -> bool:
    """True when the name looks like a note (``.md``, any case)."""
    return name.lower().endswith(MARKDOWN_EXTENSION)


def is_image_name(name: str) -> bool:
    """True when the name carries one of the recognized image extensions."""
    return IMAGE_NAME_PATTERN.search(name) is not None


def image_mime_type(name: str) -> str:
    """Return the mime type for an image name, defaulting to octet-stream."""
    _, ext = split_extension(name)
    return IMAGE_MIME_TYPES.get(ext.lstrip(".").lower(), "application/octet-stream")


def split_extension(name: str) -> Tuple[str, str]:
    """Split a name into (stem, extension) at the last dot.

    A leading dot does not start an extension, so ``.env`` has no extension.

    >>> split_extension("image.png")
    ('image', '.png')
    >>> split_extension("README")
    ('README', '')
    """
    dot_index = name.rfind(".")
    if dot_index > 0:
        return name[:dot_index], name[dot_index:]
    return name, ""


def unique_sibling_name(desired: str, is_taken: Callable[[str], bool]) -> str:
    """Find a free name by appending `` (1)``, `` (2)``, ... before the extension.

    Args:
        desired: The name the caller would like to use
        is_taken: Predicate returning True when a candidate collides with a sibling

    Returns:
        ``desired`` itself if free, otherwise the first free numbered variant
    """
    if not is_taken(desired):
        return desired

    stem, ext = split_extension(desired)
    count = 1
    while True:
        candidate = f"{stem} ({count}){ext}"
        if not is_taken(candidate):
            return candidate
        count += 1


def default_data_dir() -> Path:
    """Directory holding config, logs and the persisted store."""
    if config_dir := os.getenv("STREAMNOTES_CONFIG_DIR"):
        return Path(config_dir)
    home = os.getenv("HOME", Path.home())
    return Path(home) / DATA_DIR_NAME


def setup_logging(
    log_level: str = "INFO",
    log_to_file: bool = False,
    log_to_stderr: bool = False,
    log_dir: Optional[Path] = None,
) -> None:  # pragma: no cover
    """Configure loguru sinks.

    Args:
        log_level: Minimum level for every sink
        log_to_file: Write to a rotating file in the data directory
        log_to_stderr: Also write colorized output to stderr
        log_dir: Override the directory for the log file
    """
    logger.remove()

    if log_to_file:
        log_path = (log_dir or default_data_dir()) / LOG_FILE_NAME
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path),
            level=log_level,
            rotation="10 MB",
            retention="10 days",
            backtrace=True,
            diagnose=False,
            enqueue=True,
            colorize=False,
        )

    if log_to_stderr:
        logger.add(sys.stderr, level=log_level, backtrace=True, diagnose=False, colorize=True)

    # Quiet noisy third-party loggers that go through the stdlib
    noisy_loggers = {
        "sqlalchemy.engine": logging.WARNING,
        "aiosqlite": logging.WARNING,
        "asyncio": logging.WARNING,
    }
    for logger_name, level in noisy_loggers.items():
        logging.getLogger(logger_name).setLevel(level)
