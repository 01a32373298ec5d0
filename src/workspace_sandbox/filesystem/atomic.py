"""
Atomic file replacement.
"""

import logging
import os
import tempfile

logger = logging.getLogger(__name__)

DEFAULT_DIR_MODE = 0o755


def write_atomic(path: str, data: bytes, mode: int) -> None:
    """
    Replace ``path`` with ``data`` so readers see either old or new content.

    The data goes to a temporary file in the same directory, is flushed and
    fsynced, given ``mode`` and then renamed over the target. If anything
    fails before the rename the temporary file is removed and the target is
    left untouched.

    Args:
        path: Absolute target path (its directory must exist)
        data: Complete new file content
        mode: Permission bits for the resulting file

    Raises:
        OSError: If any step fails
    """
    directory = os.path.dirname(path) or "."
    fd, tmp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory
    )
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise

    logger.debug(f"Atomically wrote {len(data)} bytes to {path}")


def ensure_dirs(path: str, mode: int = DEFAULT_DIR_MODE) -> None:
    """Create ``path`` and any missing parents."""
    os.makedirs(path, mode=mode, exist_ok=True)
