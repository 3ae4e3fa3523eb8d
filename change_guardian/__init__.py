"""
Change Guardian - Integrity protection for automated file edits.

Snapshots the working tree before an external agent edits files, checks each
edited file for drastic line loss or vanished declarations, and either accepts
the change or rolls the tree back. A multi-stage audit pipeline runs local,
integrity and external-auditor checks over changed files.
"""

from change_guardian.core import (
    ChangeGuardian,
    ComparisonResult,
    GuardianConfig,
    IntegrityComparator,
    Snapshot,
    SnapshotError,
    SnapshotState,
    SnapshotStore,
    ThresholdPolicy,
    load_config,
)

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = [
    # Session
    "ChangeGuardian",
    "Snapshot",
    "SnapshotError",
    "SnapshotState",
    "SnapshotStore",
    # Integrity
    "ComparisonResult",
    "IntegrityComparator",
    "ThresholdPolicy",
    # Config
    "GuardianConfig",
    "load_config",
    # Version info
    "__version__",
    "__license__",
]
