from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path

DEFAULT_FILE_MODE = 0o666


def _target_mode(path: Path) -> int:
    """Mode the replacement should carry: the existing file's, else the umask default."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return DEFAULT_FILE_MODE & ~umask


def write_text_atomic(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` in one rename, keeping its permission bits."""
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = _target_mode(path)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        # mkstemp always creates 0600.
        os.chmod(temp_name, mode)
        os.replace(temp_name, path)
    finally:
        if os.path.exists(temp_name):
            os.unlink(temp_name)
