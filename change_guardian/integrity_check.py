#!/usr/bin/env python3
"""
Standalone integrity check of one file against an older copy of it.

Usage:
    change-guardian-check OLD_FILE NEW_FILE
    change-guardian-check --no-strict-symbols backup/app.js src/app.js

Exit codes:
    0 - the new file keeps the old file's substance
    1 - excessive line loss or missing symbols (or a file could not be read)
"""

import argparse
import dataclasses
import sys
from pathlib import Path

from change_guardian.core.colors import error, success
from change_guardian.core.comparator import IntegrityComparator
from change_guardian.core.config import load_config
from change_guardian.core.logger import ComponentLogger, parse_level, setup_logger


log = ComponentLogger('INTEGRITY')


def main():
    parser = argparse.ArgumentParser(
        description="Check that an edited file did not lose code",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s .change-guardian/backups/src/app.js src/app.js
  %(prog)s --min-loss 10 old.py new.py
        """
    )

    parser.add_argument('old_file', type=Path, help="File before the change")
    parser.add_argument('new_file', type=Path, help="File after the change")
    parser.add_argument('--config', type=Path, help="Path to configuration file")
    parser.add_argument('--min-loss', type=int,
                        help="Minimum absolute line loss before rule 1 applies")
    parser.add_argument('--no-strict-symbols', action='store_true',
                        help="Skip the symbol survival check")

    args = parser.parse_args()

    config = load_config(args.config)
    setup_logger(level=parse_level(config.logging.level))

    integrity = config.integrity
    if args.min_loss is not None:
        integrity = dataclasses.replace(integrity, min_absolute_loss=max(args.min_loss, 1))
    if args.no_strict_symbols:
        integrity = dataclasses.replace(integrity, strict_symbols=False)

    comparator = IntegrityComparator(integrity)
    try:
        result = comparator.compare_files(args.old_file, args.new_file)
    except FileNotFoundError as e:
        log.error(f"One of the files to compare is missing: {e.filename}", error_code='INT-03')
        sys.exit(1)
    except (OSError, UnicodeDecodeError) as e:
        log.error(f"Could not read files: {e}", error_code='INT-03')
        sys.exit(1)

    summary = result.summary(args.new_file.name)
    if result.passed:
        print(success(f"✅ {summary}"))
        sys.exit(0)

    print(error(f"❌ {summary}"))
    sys.exit(1)


if __name__ == "__main__":
    main()
