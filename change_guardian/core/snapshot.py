"""
Transactional snapshots of the working tree, backed by git stash.

State machine:
    (none) --create, had changes--> ACTIVE
    (none) --create, no changes---> CLEAN
    ACTIVE --restore | drop-------> CONSUMED
    CLEAN  --restore | drop-------> CONSUMED   (no-op, always succeeds)

Every public operation of ``SnapshotStore`` catches git and I/O failures and
reports them as ``None`` / ``False`` so a missing git install leaves the
guardian safely inoperative instead of crashing its caller.
"""

import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

from .atomic_write import AtomicWriteError, atomic_write
from .git_utils import GitBackend, GitError, GitStashError
from .logger import ComponentLogger


LABEL_PREFIX = 'change-guardian-snapshot-'

log = ComponentLogger('GIT-INTEGRITY')


class SnapshotError(Exception):
    """Snapshot session protocol violated (e.g. a second active snapshot)."""
    pass


class SnapshotState(Enum):
    ACTIVE = 'active'
    CLEAN = 'clean'
    CONSUMED = 'consumed'


@dataclass
class Snapshot:
    """
    One checkpoint of the working tree.

    Attributes:
        id: Stash label, or None for a CLEAN snapshot
        state: Current lifecycle state
        created_at: Unix timestamp of creation
    """
    id: Optional[str]
    state: SnapshotState
    created_at: float = 0.0

    @property
    def is_active(self) -> bool:
        return self.state is SnapshotState.ACTIVE

    @property
    def is_clean(self) -> bool:
        return self.state is SnapshotState.CLEAN


def make_label() -> str:
    return f"{LABEL_PREFIX}{int(time.time() * 1000)}"


class SnapshotStore:
    """
    Create, restore, drop and partially export stash-backed snapshots.

    Args:
        backend: Git backend for the project
        excluded_paths: Paths (gitignore syntax) that snapshot operations never
            stage or delete; holds the guardian's own tooling state
        keep_working_tree: Leave the working tree in place after the snapshot
            is taken, so the protected edit starts from the current state
    """

    def __init__(
        self,
        backend: GitBackend,
        excluded_paths: Iterable[str] = ('.change-guardian/',),
        keep_working_tree: bool = True
    ):
        self.backend = backend
        self.excluded_paths: Tuple[str, ...] = tuple(excluded_paths)
        self.keep_working_tree = keep_working_tree
        self._available: Optional[bool] = None

    @property
    def available(self) -> bool:
        """Whether git is installed and the project is a repository (cached)."""
        if self._available is None:
            self._available = self.backend.is_available()
            if not self._available:
                log.warning(
                    "Git is not available or this is not a git repository. "
                    "Snapshot protection disabled.",
                    error_code='GIT-02'
                )
        return self._available

    def _ref_for(self, snapshot: Snapshot) -> str:
        ref = self.backend.find_checkpoint(snapshot.id) if snapshot.id else None
        if ref is None:
            raise GitStashError(f"Snapshot {snapshot.id} no longer exists in the stash list")
        return ref

    def create(self) -> Optional[Snapshot]:
        """
        Stage everything and record it in a named stash.

        Returns:
            ACTIVE snapshot, CLEAN snapshot if there was nothing to protect,
            or None if the backend is unavailable or git failed
        """
        if not self.available:
            log.error("Snapshot could not be created: git not available.", error_code='GIT-01')
            return None

        label = make_label()
        try:
            log.info("Creating snapshot (git add -A && git stash)...")
            self.backend.stage_all(excluding=self.excluded_paths)
            result = self.backend.checkpoint_push(label, keep_working_tree=self.keep_working_tree)
        except GitError as e:
            log.error(f"Snapshot creation failed: {e}", error_code='GIT-04')
            return None

        if not result.created:
            log.info("No local changes. No snapshot required.")
            return Snapshot(id=None, state=SnapshotState.CLEAN, created_at=time.time())

        log.info(f"Snapshot created: {label}")
        return Snapshot(id=label, state=SnapshotState.ACTIVE, created_at=time.time())

    def restore(self, snapshot: Snapshot) -> bool:
        """
        Throw away everything done since the snapshot and reapply it.

        Order: hard reset of tracked files, removal of untracked files outside
        the excluded paths, then stash pop.
        """
        if snapshot.is_clean:
            log.info("Working tree was clean, nothing to restore.")
            snapshot.state = SnapshotState.CONSUMED
            return True
        if not snapshot.is_active:
            log.error(f"Cannot restore snapshot in state {snapshot.state.value}")
            return False
        if not self.available:
            return False

        try:
            log.info("Rolling back (reset, clean, stash pop)...")
            ref = self._ref_for(snapshot)
            self.backend.hard_reset_tracked()
            self.backend.remove_untracked(excluding=self.excluded_paths)
            self.backend.checkpoint_pop(ref)
        except GitError as e:
            log.error(f"Restore failed: {e}", error_code='GIT-04')
            return False

        snapshot.state = SnapshotState.CONSUMED
        log.info("Rollback completed.")
        return True

    def drop(self, snapshot: Snapshot) -> bool:
        """Discard the snapshot without reapplying it."""
        if snapshot.is_clean:
            snapshot.state = SnapshotState.CONSUMED
            return True
        if not snapshot.is_active:
            log.error(f"Cannot drop snapshot in state {snapshot.state.value}")
            return False
        if not self.available:
            return False

        try:
            log.info("Dropping snapshot (git stash drop)...")
            self.backend.checkpoint_drop(self._ref_for(snapshot))
        except GitError as e:
            log.error(f"Drop failed: {e}", error_code='GIT-04')
            return False

        snapshot.state = SnapshotState.CONSUMED
        return True

    def export_file(
        self,
        snapshot: Snapshot,
        relative_path: Union[str, Path],
        destination: Path
    ) -> bool:
        """
        Write the snapshot's version of one file to ``destination``.

        Returns:
            False if the snapshot is not ACTIVE or the file did not exist in it
            (a new file has no "before" version); True once written
        """
        if not snapshot.is_active or not self.available:
            return False

        try:
            content = self.backend.show_file_at_checkpoint(self._ref_for(snapshot), relative_path)
        except GitError as e:
            log.error(f"Could not export {relative_path} from snapshot: {e}", error_code='GIT-04')
            return False

        if content is None:
            return False

        try:
            atomic_write(Path(destination), content)
        except AtomicWriteError as e:
            log.error(f"Could not write export of {relative_path}: {e}")
            return False
        return True
