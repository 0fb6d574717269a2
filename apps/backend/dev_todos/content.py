"""
File Content Reader
===================

Supplies file text to the matcher on demand.

Binary files (by extension), oversized files and files that fail to read
or decode raise UnreadableFileError; the engine treats that as "no match".
"""

from __future__ import annotations

import logging
from pathlib import Path

from .errors import UnreadableFileError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 2_000_000

BINARY_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".svg",
    ".pdf", ".zip", ".tar", ".gz", ".rar", ".7z",
    ".exe", ".dll", ".so", ".dylib",
    ".mp3", ".mp4", ".avi", ".mov", ".wav",
    ".ttf", ".otf", ".woff", ".woff2", ".eot",
    ".class", ".jar", ".war",
})


def is_binary_path(path: str | Path) -> bool:
    """Check if a file is likely binary based on its extension."""
    return Path(path).suffix.lower() in BINARY_EXTENSIONS


class FileContentReader:
    """
    Reads workspace files as UTF-8 text.

    Attributes:
        max_bytes: Files larger than this are not read
    """

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES):
        self.max_bytes = max_bytes

    def read(self, path: str | Path) -> str:
        """
        Read a file's text.

        Raises:
            UnreadableFileError: If the file is binary, too large or unreadable
        """
        path = Path(path)
        if is_binary_path(path):
            raise UnreadableFileError(path, "binary file")

        try:
            with path.open("rb") as f:
                raw = f.read(self.max_bytes + 1)
        except OSError as e:
            raise UnreadableFileError(path, str(e)) from e

        if len(raw) > self.max_bytes:
            raise UnreadableFileError(path, f"larger than {self.max_bytes} bytes")

        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise UnreadableFileError(path, "not valid UTF-8") from e
