"""Filesystem helpers shared by the ledger and training stores."""

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO


@contextmanager
def atomic_write(path: Path, mode: str = "w", encoding: str = "utf-8") -> Iterator[IO]:
    """Write to a temp file beside ``path`` and rename it into place on success.

    Readers never observe a half-written file; on error the temp file is removed
    and the original (if any) is left untouched.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, mode, encoding=encoding) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def validate_key(key: str) -> None:
    """Reject ids that could escape the storage directory.

    Raises:
        ValueError: If the key is empty or contains path traversal patterns
    """
    if not key or key.strip() == "":
        raise ValueError("Key cannot be empty")
    if "/" in key or "\\" in key:
        raise ValueError(f"Invalid key format: path separators not allowed in '{key}'")
    if ".." in key or key.startswith("."):
        raise ValueError(f"Invalid key format: path traversal detected in '{key}'")
    if "\x00" in key:
        raise ValueError("Invalid key format: null bytes not allowed")
