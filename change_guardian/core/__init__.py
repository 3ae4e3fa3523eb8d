"""
Change Guardian Core - snapshots, integrity comparison and configuration.

Everything here is importable without side effects; only the CLI entry points
configure logging or touch the terminal.
"""

from .thresholds import ThresholdPolicy
from .symbols import SymbolExtractor, RegexSymbolExtractor, normalize_signature
from .comparator import ComparisonResult, IntegrityComparator, count_lines
from .git_utils import (
    GitBackend,
    GitError,
    GitNotInstalledError,
    GitNotARepositoryError,
    GitTimeoutError,
    GitStashError
)
from .snapshot import Snapshot, SnapshotError, SnapshotState, SnapshotStore
from .guardian import ChangeGuardian
from .stats import StatsCounter
from .local_audit import FileAuditResult, audit_file, run_local_audit
from .config import (
    ConfigError,
    GuardianConfig,
    IntegrityConfig,
    AuditConfig,
    ValidationConfig,
    ThresholdTier,
    load_config,
    deep_merge
)

__all__ = [
    # Integrity
    'ThresholdPolicy',
    'SymbolExtractor',
    'RegexSymbolExtractor',
    'normalize_signature',
    'ComparisonResult',
    'IntegrityComparator',
    'count_lines',

    # Git
    'GitBackend',
    'GitError',
    'GitNotInstalledError',
    'GitNotARepositoryError',
    'GitTimeoutError',
    'GitStashError',

    # Snapshots
    'Snapshot',
    'SnapshotError',
    'SnapshotState',
    'SnapshotStore',
    'ChangeGuardian',

    # Audit support
    'StatsCounter',
    'FileAuditResult',
    'audit_file',
    'run_local_audit',

    # Config
    'ConfigError',
    'GuardianConfig',
    'IntegrityConfig',
    'AuditConfig',
    'ValidationConfig',
    'ThresholdTier',
    'load_config',
    'deep_merge',
]
