"""
Change Guardian: one protected change, start to finish.

Session protocol (single owner, strictly sequential):

    guardian = ChangeGuardian(config)
    guardian.prepare()                 # snapshot before anything is touched
    ...external edit happens here...
    if all(guardian.validate(p) for p in changed_files):
        guardian.commit()              # accept, drop the snapshot
    else:
        guardian.rollback()            # restore the snapshot

or, equivalently::

    with guardian.session() as g:
        ...edit...
        g.validate("src/app.js")

A session left open (process killed between prepare and commit/rollback)
leaves its stash behind; ``change-guardian-snapshots`` lists such orphans.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from .comparator import ComparisonResult, IntegrityComparator
from .config import GuardianConfig
from .git_utils import GitBackend
from .logger import ComponentLogger
from .snapshot import Snapshot, SnapshotError, SnapshotStore


log = ComponentLogger('GUARDIAN')


class ChangeGuardian:
    """
    Protects a single logical edit with snapshot, validation and commit/rollback.

    Args:
        config: Resolved project configuration
        store: Snapshot store (built from config if omitted)
        comparator: Integrity comparator (built from config if omitted)
    """

    def __init__(
        self,
        config: GuardianConfig,
        store: Optional[SnapshotStore] = None,
        comparator: Optional[IntegrityComparator] = None
    ):
        self.config = config
        self.store = store or SnapshotStore(
            GitBackend(config.project_root),
            excluded_paths=config.exclusion_patterns
        )
        self.comparator = comparator or IntegrityComparator(config.integrity)
        self.snapshot: Optional[Snapshot] = None
        self.last_results: Dict[str, ComparisonResult] = {}
        self.failed_files: List[str] = []

    @property
    def active(self) -> bool:
        return self.snapshot is not None and self.snapshot.is_active

    def prepare(self) -> bool:
        """
        Take the protective snapshot.

        Returns:
            True if a snapshot (ACTIVE or CLEAN) exists, False if the backend
            is unavailable or git failed

        Raises:
            SnapshotError: If this guardian already holds an ACTIVE snapshot
        """
        if self.active:
            raise SnapshotError(
                f"Snapshot {self.snapshot.id} is still active; "
                f"call commit() or rollback() first"
            )

        log.info("Preparing protective snapshot...")
        self.last_results = {}
        self.failed_files = []
        self.snapshot = self.store.create()
        return self.snapshot is not None

    def validate(self, relative_path: Union[str, Path]) -> bool:
        """
        Check one changed file against its pre-change version.

        A file with no pre-change version passes. Any I/O failure fails
        (an unverifiable file is never reported as intact).

        Returns:
            True if the file passed the integrity comparison
        """
        relative_path = str(relative_path)
        log.info(f"Validating {relative_path}...", file_path=relative_path)

        if self.snapshot is None:
            log.error("No snapshot to validate against; call prepare() first.",
                      file_path=relative_path, error_code='INT-03')
            return self._record_failure(relative_path)

        if self.snapshot.is_clean:
            log.warning("Working tree was clean at prepare(); nothing to compare against.",
                        file_path=relative_path, error_code='INT-03')
            return True

        if not self.store.available:
            return self._record_failure(relative_path)

        temp_export = self.config.temp_exports_dir / f"{Path(relative_path).name}.bak"
        try:
            if not self.store.export_file(self.snapshot, relative_path, temp_export):
                log.warning("No pre-change version in snapshot (new file); skipping integrity check.",
                            file_path=relative_path)
                return True

            current = self.config.project_root / relative_path
            result = self.comparator.compare_files(temp_export, current)
        except (OSError, UnicodeDecodeError) as e:
            log.error(f"Integrity check could not run: {e}",
                      file_path=relative_path, error_code='INT-03')
            return self._record_failure(relative_path)
        finally:
            try:
                temp_export.unlink(missing_ok=True)
            except OSError as e:
                log.warning(f"Could not remove temporary export {temp_export}: {e}")

        self.last_results[relative_path] = result
        if not result.passed:
            code = 'INT-01' if result.line_rule_failed else 'INT-02'
            log.error(f"Integrity violation: {result.summary()}",
                      file_path=relative_path, error_code=code)
            return self._record_failure(relative_path)

        log.info(result.summary(), file_path=relative_path)
        return True

    def _record_failure(self, relative_path: str) -> bool:
        if relative_path not in self.failed_files:
            self.failed_files.append(relative_path)
        return False

    def commit(self) -> bool:
        """Accept the change and drop the snapshot."""
        if self.snapshot is None:
            log.warning("commit() called without an open session.")
            return False

        log.info("Changes accepted. Cleaning up snapshot.")
        if not self.store.drop(self.snapshot):
            log.error(f"Snapshot {self.snapshot.id} could not be dropped; it remains in the stash.")
            return False
        self.snapshot = None
        return True

    def rollback(self) -> bool:
        """Restore the working tree to the snapshot."""
        if self.snapshot is None:
            log.warning("rollback() called without an open session.")
            return False

        log.warning("Rolling back to the protective snapshot!")
        if not self.store.restore(self.snapshot):
            log.critical(
                f"Rollback of {self.snapshot.id} failed; the snapshot is still in the stash.",
                error_code='GIT-04'
            )
            return False
        self.snapshot = None
        return True

    @contextmanager
    def session(self) -> Iterator['ChangeGuardian']:
        """
        Prepare on entry; on exit roll back if the body raised or any
        validate() failed, otherwise commit.

        Raises:
            SnapshotError: If no snapshot could be taken
        """
        if not self.prepare():
            raise SnapshotError("Could not create a protective snapshot")

        try:
            yield self
        except BaseException:
            self.rollback()
            raise

        if self.failed_files:
            self.rollback()
        else:
            self.commit()
