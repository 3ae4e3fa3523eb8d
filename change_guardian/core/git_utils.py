"""
Git integration utilities for snapshot operations.

Provides safe git operations for:
- Checking that git is installed and the project is a repository
- Staging the working tree and moving it into a named stash
- Restoring, dropping and reading files out of that stash
- Hard-resetting tracked files and cleaning untracked files

Error handling features:
- Detailed error messages for git operations (GIT-01, GIT-02, GIT-03)
- Timeout handling (GIT-03)
- Typed exceptions; callers at the snapshot boundary convert them to booleans

Security features:
- Safe path handling to prevent option injection via file names
"""

import subprocess
import shutil
import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Tuple, Union


logger = logging.getLogger(__name__)

NO_CHANGES_MARKER = "No local changes to save"
DEFAULT_GIT_TIMEOUT = 30


class GitError(Exception):
    """Base exception for git-related errors."""
    pass


class GitNotInstalledError(GitError):
    """Git is not installed or not in PATH (GIT-01)."""
    pass


class GitNotARepositoryError(GitError):
    """Working directory is not inside a git work tree (GIT-02)."""
    pass


class GitTimeoutError(GitError):
    """Git operation timed out (GIT-03)."""
    pass


class GitStashError(GitError):
    """A stash push/pop/drop or reset/clean failed (GIT-04)."""
    pass


def _check_git_installed() -> bool:
    """
    Check if git is installed and accessible.

    Returns:
        True if git is available, False otherwise
    """
    return shutil.which('git') is not None


def _run_git_command(
    cmd: List[str],
    cwd: Path,
    timeout: int = DEFAULT_GIT_TIMEOUT,
    operation_name: str = "git operation"
) -> Tuple[bool, str, str]:
    """
    Run a git command with proper error handling.

    Args:
        cmd: Command list to run
        cwd: Working directory
        timeout: Timeout in seconds
        operation_name: Description of operation for error messages

    Returns:
        Tuple of (success, stdout, stderr)

    Raises:
        GitNotInstalledError: If git is not installed (GIT-01)
        GitTimeoutError: If command times out (GIT-03)
    """
    if not _check_git_installed():
        raise GitNotInstalledError(
            "Git is not installed or not in PATH. "
            "Install git: https://git-scm.com/downloads"
        )

    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding='utf-8',
            errors='replace',
            timeout=timeout
        )
        return result.returncode == 0, result.stdout, result.stderr
    except subprocess.TimeoutExpired as e:
        msg = f"Git {operation_name} timed out after {timeout}s."
        logger.error(msg)
        raise GitTimeoutError(msg) from e
    except FileNotFoundError as e:
        raise GitNotInstalledError(f"Git command not found: {e}") from e
    except PermissionError as e:
        msg = f"Permission denied executing git: {e}"
        logger.error(msg)
        return False, "", msg


def safe_git_path(path: Union[str, Path]) -> str:
    """
    Make a repository-relative path safe for use in git commands.

    Paths are rendered with forward slashes. A leading '-' is prefixed with
    './' so git never reads the path as an option.
    """
    path_str = PurePosixPath(*Path(path).parts).as_posix()

    if path_str.startswith('-'):
        return './' + path_str

    return path_str


def validate_git_path(path: Union[str, Path]) -> Tuple[bool, Optional[str]]:
    """
    Validate that a path is safe for git operations.

    Returns:
        Tuple of (is_safe, error_message)
    """
    path_str = str(path)

    if '\x00' in path_str:
        return (False, "Path contains null byte")

    if len(path_str) > 4096:
        return (False, "Path is excessively long")

    if Path(path_str).is_absolute():
        return (False, "Path must be relative to the repository root")

    return (True, None)


@dataclass(frozen=True)
class CheckpointResult:
    """Outcome of pushing a checkpoint."""
    created: bool
    label: str


@dataclass(frozen=True)
class CheckpointEntry:
    """One entry of ``git stash list``."""
    ref: str
    subject: str

    @property
    def label(self) -> str:
        # Subjects read "On <branch>: <message>"
        return self.subject.split(': ', 1)[-1]


class GitBackend:
    """
    Version-control backend built on git stash.

    Every method either succeeds or raises a ``GitError`` subclass. Deciding
    what a failure means is left to the caller (see ``SnapshotStore``).
    """

    def __init__(self, repo_root: Path, timeout: int = DEFAULT_GIT_TIMEOUT):
        self.repo_root = Path(repo_root)
        self.timeout = timeout

    def _git(self, args: List[str], operation_name: str) -> Tuple[bool, str, str]:
        return _run_git_command(
            ['git', *args],
            cwd=self.repo_root,
            timeout=self.timeout,
            operation_name=operation_name
        )

    def _git_checked(self, args: List[str], operation_name: str) -> str:
        success, stdout, stderr = self._git(args, operation_name)
        if not success:
            raise GitStashError(
                f"git {operation_name} failed: {stderr.strip() or stdout.strip()}"
            )
        return stdout

    def is_available(self) -> bool:
        """
        Check that git is installed and repo_root is inside a work tree.

        Returns:
            True if snapshot operations can run
        """
        if not _check_git_installed():
            return False

        try:
            success, stdout, _ = self._git(
                ['rev-parse', '--is-inside-work-tree'], "repo check"
            )
            return success and stdout.strip() == 'true'
        except GitError:
            return False

    def ensure_available(self) -> None:
        """
        Raise a typed error if the backend cannot be used.

        Raises:
            GitNotInstalledError: If git is missing (GIT-01)
            GitNotARepositoryError: If repo_root is not a work tree (GIT-02)
        """
        if not _check_git_installed():
            raise GitNotInstalledError("Git is not installed or not in PATH.")

        success, stdout, stderr = self._git(
            ['rev-parse', '--is-inside-work-tree'], "repo check"
        )
        if not success or stdout.strip() != 'true':
            raise GitNotARepositoryError(
                f"Not a git repository: {self.repo_root} ({stderr.strip()})"
            )

    def stage_all(self, excluding: Iterable[str] = ()) -> None:
        """Stage every modification, including new files, outside ``excluding``."""
        args = ['add', '-A', '--', '.']
        for pattern in excluding:
            args.append(f":(exclude){pattern.rstrip('/')}")
        self._git_checked(args, "add")

    def checkpoint_push(self, label: str, keep_working_tree: bool = False) -> CheckpointResult:
        """
        Save staged modifications into a stash named ``label``.

        With ``keep_working_tree`` the stash is recorded via ``stash create`` +
        ``stash store`` and the working tree is left untouched; otherwise
        ``stash push`` moves the changes out of the working tree.

        Returns:
            CheckpointResult with created=False when nothing needed saving
        """
        if keep_working_tree:
            commit = self._git_checked(['stash', 'create', label], "stash create").strip()
            if not commit:
                return CheckpointResult(created=False, label=label)
            self._git_checked(['stash', 'store', '-m', label, commit], "stash store")
            return CheckpointResult(created=True, label=label)

        success, stdout, stderr = self._git(['stash', 'push', '-m', label], "stash push")
        if not success:
            raise GitStashError(f"git stash push failed: {stderr.strip() or stdout.strip()}")
        if NO_CHANGES_MARKER in stdout + stderr:
            return CheckpointResult(created=False, label=label)
        return CheckpointResult(created=True, label=label)

    def list_checkpoints(self) -> List[CheckpointEntry]:
        """List stash entries, newest first."""
        stdout = self._git_checked(['stash', 'list', '--format=%gd%x09%gs'], "stash list")
        entries = []
        for line in stdout.splitlines():
            if not line.strip():
                continue
            ref, _, subject = line.partition('\t')
            entries.append(CheckpointEntry(ref=ref.strip(), subject=subject.strip()))
        return entries

    def find_checkpoint(self, label: str) -> Optional[str]:
        """Return the stash ref (``stash@{n}``) whose message is ``label``."""
        for entry in self.list_checkpoints():
            if entry.label == label:
                return entry.ref
        return None

    def checkpoint_pop(self, ref: str = 'stash@{0}') -> None:
        """Reapply a checkpoint and remove it from the stash list."""
        self._git_checked(['stash', 'pop', ref], "stash pop")

    def checkpoint_drop(self, ref: str = 'stash@{0}') -> None:
        """Discard a checkpoint permanently."""
        self._git_checked(['stash', 'drop', ref], "stash drop")

    def show_file_at_checkpoint(self, ref: str, relative_path: Union[str, Path]) -> Optional[str]:
        """
        Read one file as stored in a checkpoint.

        ``relative_path`` is relative to ``repo_root``, which may be a
        subdirectory of the repository.

        Returns:
            File content, or None if the file is not part of the checkpoint
        """
        is_valid, error = validate_git_path(relative_path)
        if not is_valid:
            logger.warning(f"Invalid git path for show: {error}")
            return None

        # A "./" path resolves against the working directory, not the repository top
        git_path = safe_git_path(relative_path)
        if not git_path.startswith('./'):
            git_path = './' + git_path

        success, stdout, stderr = self._git(['show', f"{ref}:{git_path}"], "show")
        if not success:
            logger.debug(f"{relative_path} not found in {ref}: {stderr.strip()}")
            return None
        return stdout

    def hard_reset_tracked(self) -> None:
        """
        Discard all modifications to tracked files, repository-wide.

        The checkpoint holds every tracked modification in the repository,
        including those outside ``repo_root``, so popping it afterwards puts
        them back.
        """
        self._git_checked(['reset', '--hard'], "reset")

    def remove_untracked(self, excluding: Iterable[str] = ()) -> None:
        """Delete untracked files and directories under repo_root, keeping excluded paths."""
        args = ['clean', '-fd']
        for pattern in excluding:
            args.extend(['-e', pattern])
        # -e patterns with a slash anchor at the repository top; the pathspecs anchor at repo_root
        args.extend(['--', '.'])
        for pattern in excluding:
            args.append(f":(exclude){pattern.rstrip('/')}")
        self._git_checked(args, "clean")
