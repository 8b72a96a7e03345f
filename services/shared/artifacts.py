"""Diagnostic artifact store.

Keeps raw inputs that caused a pipeline stage to fail (non-PDF response
bodies, unparseable PDFs, model replies) so operators can inspect them
offline. Every artifact gets a unique name, so concurrent runs never
overwrite each other.
"""

import logging
import re
import time
import uuid
from pathlib import Path

from services.shared.config import Settings

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_MAX_BASE_LENGTH = 50


def sanitize_file_name(name: str) -> str:
    """Reduce a file name to a safe base usable inside artifact names.

    Drops the extension, replaces anything outside [a-zA-Z0-9_-] with an
    underscore and truncates to 50 characters.

    Args:
        name: Original (client supplied) file name

    Returns:
        Sanitized base name, "file" if nothing usable is left
    """
    base = Path(name).name
    base = re.sub(r"\.[^.]*$", "", base)
    base = _UNSAFE_CHARS.sub("_", base)[:_MAX_BASE_LENGTH]
    return base or "file"


class ArtifactStore:
    """Writes diagnostic artifacts under a configured directory."""

    def __init__(self, settings: Settings) -> None:
        """Initialize artifact store.

        The directory is created lazily on first write.

        Args:
            settings: Application settings with artifact_dir
        """
        self.directory = Path(settings.artifact_dir)

    def save(self, label: str, data: bytes | str, suffix: str = ".bin") -> Path:
        """Persist a diagnostic artifact.

        Args:
            label: Human-meaningful part of the name (sanitized before use)
            data: Raw bytes or text to store
            suffix: File extension including the dot

        Returns:
            Path of the written artifact
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        name = f"{int(time.time() * 1000)}-{uuid.uuid4().hex}-{sanitize_file_name(label)}{suffix}"
        path = self.directory / name

        payload = data.encode("utf-8") if isinstance(data, str) else data
        path.write_bytes(payload)

        logger.info(f"Saved diagnostic artifact {path} ({len(payload)} bytes)")
        return path
