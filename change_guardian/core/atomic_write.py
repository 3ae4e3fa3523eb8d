"""
Atomic file writing utilities.

Prevents half-written files from:
- Ctrl+C interrupts
- Disk full errors
- Power failures

Uses the write-to-temp-then-rename pattern which is atomic on POSIX systems.
Snapshot exports, the stats file and pre-change backups all go through here.

Usage:
    from change_guardian.core.atomic_write import atomic_write, write_backup

    atomic_write(Path(".change-guardian/logs/stats.json"), "{}")
    write_backup(Path("src/app.js"), project_root, backups_dir)
"""

import errno
import os
import tempfile
from pathlib import Path
from typing import Optional


class AtomicWriteError(Exception):
    """Error during atomic write operation."""
    pass


def atomic_write(
    file_path: Path,
    content: str,
    encoding: str = 'utf-8'
) -> bool:
    """
    Write file atomically.

    Uses temp file + atomic rename (POSIX guarantee).
    The rename operation is atomic on the same filesystem.

    Args:
        file_path: Path to file to write
        content: Content to write
        encoding: Text encoding (default: utf-8)

    Returns:
        True if write succeeded

    Raises:
        AtomicWriteError: If write fails (with descriptive message)

    Example:
        >>> atomic_write(Path("stats.json"), '{"ai_agent_calls": 0}')
        True
    """
    file_path = Path(file_path)
    temp_path: Optional[Path] = None

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        # Same directory keeps the rename on one filesystem
        temp_fd, temp_path_str = tempfile.mkstemp(
            prefix=f".tmp_{file_path.name}_",
            dir=file_path.parent,
            suffix=".tmp"
        )
        temp_path = Path(temp_path_str)

        try:
            with os.fdopen(temp_fd, 'w', encoding=encoding, newline='') as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            if e.errno == errno.ENOSPC:
                raise AtomicWriteError(
                    f"Disk full: Cannot write to {file_path}. "
                    f"Free up space and try again."
                ) from e
            elif e.errno == errno.EACCES:
                raise AtomicWriteError(
                    f"Permission denied: Cannot write to {file_path}. "
                    f"Check file/directory permissions."
                ) from e
            else:
                raise AtomicWriteError(
                    f"Write error for {file_path}: {e}"
                ) from e

        if file_path.exists():
            try:
                os.chmod(temp_path, file_path.stat().st_mode)
            except OSError:
                pass  # keep default permissions

        os.replace(temp_path, file_path)
        return True

    except AtomicWriteError:
        _discard(temp_path)
        raise

    except OSError as e:
        _discard(temp_path)
        raise AtomicWriteError(
            f"Failed to write {file_path}: {e}"
        ) from e


def _discard(temp_path: Optional[Path]) -> None:
    if temp_path and temp_path.exists():
        try:
            temp_path.unlink()
        except OSError:
            pass


def write_backup(
    relative_path: Path,
    project_root: Path,
    backups_dir: Path,
    encoding: str = 'utf-8'
) -> Path:
    """
    Save the current content of a project file as its pre-change backup.

    The backup mirrors the file's relative location under ``backups_dir``,
    which is where the audit pipeline's integrity stage looks for it.

    Args:
        relative_path: File path relative to project_root
        project_root: Project root directory
        backups_dir: Backup root directory
        encoding: Text encoding

    Returns:
        Path of the written backup

    Raises:
        FileNotFoundError: If the source file does not exist
        AtomicWriteError: If the backup cannot be written
    """
    source = Path(project_root) / relative_path
    content = source.read_text(encoding=encoding)
    target = Path(backups_dir) / relative_path
    atomic_write(target, content, encoding=encoding)
    return target
