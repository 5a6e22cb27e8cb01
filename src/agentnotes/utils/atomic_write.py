"""Atomic file write utilities to prevent corruption from partial writes.

Note content and sidecar metadata are both written through these functions so
a crash never leaves a half-written note or sidecar behind.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def _atomic_replace(payload: str, target_path: Path, suffix: str) -> None:
    dir_path = target_path.parent
    dir_path.mkdir(parents=True, exist_ok=True)

    # Temp file must live in the same directory for rename to be atomic
    fd, temp_path = tempfile.mkstemp(dir=dir_path, prefix=".tmp_", suffix=suffix)

    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(payload)

        os.chmod(temp_path, 0o644)
        os.replace(temp_path, target_path)

    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass  # Temp file may already be gone
        raise


def atomic_write_json(data: Any, target_path: str | Path) -> None:
    """Write data to target_path as JSON atomically.

    Uses temp file + rename:
    1. Write to temporary file in same directory as target
    2. Rename temp file to target (atomic operation)
    3. Clean up temp file on any failure

    Output is 2-space indented with sorted keys and a trailing newline, so
    sidecars diff cleanly under version control.

    Args:
        data: Python object to serialize as JSON
        target_path: Destination file path

    Raises:
        OSError: If write or rename fails
        TypeError: If data is not JSON-serializable
    """
    payload = json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n"
    _atomic_replace(payload, Path(target_path), ".json")


def atomic_write_text(content: str, target_path: str | Path) -> None:
    """Write text content to target_path atomically, verbatim.

    Unlike JSON output no trailing newline is added: note offsets are counted
    against the exact stored text.

    Raises:
        OSError: If write or rename fails
    """
    target_path = Path(target_path)
    _atomic_replace(content, target_path, target_path.suffix)
