#!/usr/bin/env python3
"""
Change Guardian Snapshot Utility

Inspect and clean up guardian snapshots left in the git stash. A snapshot is
orphaned when the process that created it died between prepare and
commit/rollback.

Usage:
    change-guardian-snapshots                          # List guardian snapshots
    change-guardian-snapshots --drop-orphans           # Drop all of them
    change-guardian-snapshots --restore LABEL          # Roll back to one
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List

from change_guardian.core.colors import bold, error, info, success, warning
from change_guardian.core.config import load_config
from change_guardian.core.git_utils import CheckpointEntry, GitBackend, GitError
from change_guardian.core.logger import setup_logger
from change_guardian.core.snapshot import (
    LABEL_PREFIX,
    Snapshot,
    SnapshotState,
    SnapshotStore,
)


def find_guardian_snapshots(backend: GitBackend) -> List[CheckpointEntry]:
    """Stash entries created by the guardian, newest first."""
    return [
        entry for entry in backend.list_checkpoints()
        if entry.label.startswith(LABEL_PREFIX)
    ]


def describe(entry: CheckpointEntry) -> str:
    """One display line for a stash entry."""
    stamp = entry.label[len(LABEL_PREFIX):]
    try:
        created = datetime.fromtimestamp(int(stamp) / 1000).strftime('%Y-%m-%d %H:%M:%S')
    except (ValueError, OverflowError, OSError):
        created = "unknown time"
    return f"{entry.ref:<12} {created}  {entry.label}"


def confirm(question: str, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    try:
        response = input(f"\n❓ {question} [y/N]: ")
    except (EOFError, KeyboardInterrupt):
        return False
    return response.strip().lower() == 'y'


def drop_orphans(store: SnapshotStore, entries: List[CheckpointEntry], assume_yes: bool = False) -> bool:
    """Drop every listed guardian snapshot."""
    if not entries:
        print(success("✅ No orphaned snapshots."))
        return True

    print(f"\n🗑  {len(entries)} snapshot(s) will be dropped:")
    for entry in entries:
        print(f"   - {entry.label}")

    if not confirm("Drop these snapshots?", assume_yes):
        print(warning("Cancelled"))
        return False

    dropped = 0
    for entry in entries:
        if store.drop(Snapshot(id=entry.label, state=SnapshotState.ACTIVE)):
            dropped += 1
        else:
            print(error(f"❌ Could not drop {entry.label}"))

    print(f"\n✅ Dropped {dropped}/{len(entries)} snapshot(s)")
    return dropped == len(entries)


def restore_snapshot(store: SnapshotStore, label: str, assume_yes: bool = False) -> bool:
    """Hard-reset the working tree and reapply one snapshot."""
    try:
        found = store.backend.find_checkpoint(label)
    except GitError as e:
        print(error(f"❌ Could not read the stash: {e}"))
        return False
    if found is None:
        print(error(f"❌ Snapshot not found: {label}"))
        return False

    print(warning(f"\n⚠️  Restoring {label} discards all uncommitted changes made since."))
    if not confirm("Restore this snapshot?", assume_yes):
        print(warning("Cancelled"))
        return False

    if store.restore(Snapshot(id=label, state=SnapshotState.ACTIVE)):
        print(success("✅ Snapshot restored"))
        return True

    print(error("❌ Restore failed; the snapshot is still in the stash"))
    return False


def main():
    parser = argparse.ArgumentParser(
        description="List and clean up Change Guardian snapshots",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Show guardian snapshots still in the stash:
    %(prog)s

  Drop all of them (no prompt):
    %(prog)s --drop-orphans --yes

  Roll the working tree back to a snapshot:
    %(prog)s --restore change-guardian-snapshot-1700000000000
        """
    )

    parser.add_argument('--drop-orphans', action='store_true',
                        help="Drop all guardian snapshots from the stash")
    parser.add_argument('--restore', metavar='LABEL',
                        help="Restore the snapshot with this label")
    parser.add_argument('--yes', '-y', action='store_true',
                        help="Do not ask for confirmation")
    parser.add_argument('--config', type=Path,
                        help="Path to configuration file")

    args = parser.parse_args()

    config = load_config(args.config)
    setup_logger(level=logging.WARNING)
    backend = GitBackend(config.project_root)
    store = SnapshotStore(backend, excluded_paths=config.exclusion_patterns)

    if not store.available:
        print(error("❌ Not in a git repository (or git is not installed)"))
        sys.exit(1)

    try:
        entries = find_guardian_snapshots(backend)
    except GitError as e:
        print(error(f"❌ Could not read the stash: {e}"))
        sys.exit(1)

    if args.restore:
        sys.exit(0 if restore_snapshot(store, args.restore, args.yes) else 1)

    if args.drop_orphans:
        sys.exit(0 if drop_orphans(store, entries, args.yes) else 1)

    if not entries:
        print(success("✅ No guardian snapshots in the stash."))
        sys.exit(0)

    print(f"\n📝 {bold(str(len(entries)))} guardian snapshot(s) in the stash:")
    print("-" * 80)
    for entry in entries:
        print(describe(entry))
    print("-" * 80)
    print(info("Drop them with --drop-orphans, or roll back with --restore LABEL."))
    sys.exit(0)


if __name__ == "__main__":
    main()
