#!/usr/bin/env python3
"""
Audit Pipeline Orchestrator

Runs the configured audit stages over a set of changed files and reports a
single PASS / FAILED verdict.

Stages (default order):
- local: project conventions scan (fatal)
- integrity: compare each file against its saved backup (fatal)
- ai: external auditor command (non-fatal unless audit.ai_fatal)

A fatal stage failure stops the run. A non-fatal failure is recorded and the
run continues; the verdict is FAILED unless audit.ai_failure_is_warning is set.

Usage:
    change-guardian-audit src/app.js src/util.js
    change-guardian-audit --stages local,integrity src/app.js
    change-guardian-audit --backup src/app.js      # save pre-change backups
"""

import sys
from pathlib import Path

# Handle script execution - add parent to path before any local imports
if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).parent.parent))

import shutil
import subprocess
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from change_guardian.core.atomic_write import AtomicWriteError, write_backup
from change_guardian.core.colors import bold, error, info, print_box, success, warning
from change_guardian.core.comparator import IntegrityComparator
from change_guardian.core.config import GuardianConfig, load_config, stage_names
from change_guardian.core.local_audit import run_local_audit
from change_guardian.core.logger import ComponentLogger, parse_level, setup_logger
from change_guardian.core.stats import StatsCounter


log = ComponentLogger('AUDIT')

StageCheck = Callable[[List[str]], bool]


def project_relative(file_path: str, project_root: Path) -> Optional[Path]:
    """Path relative to the project root, or None if it lies outside."""
    path = Path(file_path)
    if not path.is_absolute():
        path = project_root / path
    try:
        return path.resolve().relative_to(Path(project_root).resolve())
    except ValueError:
        return None


@dataclass
class AuditStage:
    """
    One named check in the pipeline.

    Attributes:
        name: Stage name as used in config and --stages
        check: Callable taking the file list, returning True on pass
        fatal: Whether a failure stops the run
        external: Whether the stage calls an external service (counted in stats)
        available: Probe for an external stage; when it returns False the
            stage is skipped as a pass and nothing is counted
    """
    name: str
    check: StageCheck
    fatal: bool = True
    external: bool = False
    available: Optional[Callable[[], bool]] = None


@dataclass
class StageOutcome:
    name: str
    passed: bool
    fatal: bool
    duration: float = 0.0
    error: Optional[str] = None


@dataclass
class PipelineRun:
    """Result of one pipeline execution."""
    passed: bool
    outcomes: List[StageOutcome] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    skipped_stages: List[str] = field(default_factory=list)

    @property
    def failed_stages(self) -> List[str]:
        return [o.name for o in self.outcomes if not o.passed]

    @property
    def degraded(self) -> bool:
        """A non-fatal stage failed."""
        return any(not o.passed and not o.fatal for o in self.outcomes)


class AuditPipeline:
    """
    Ordered multi-stage audit with fail-fast semantics for fatal stages.

    Args:
        config: Project configuration
        stats: Counter for external auditor calls (built from config if omitted)
        comparator: Comparator used by the integrity stage
        runner: Replacement for subprocess.run (tests)
    """

    def __init__(
        self,
        config: Optional[GuardianConfig] = None,
        stats: Optional[StatsCounter] = None,
        comparator: Optional[IntegrityComparator] = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run
    ):
        self.config = config or GuardianConfig()
        self.stats = stats or StatsCounter(self.config.resolve(self.config.stats_file))
        self.comparator = comparator or IntegrityComparator(self.config.integrity)
        self.runner = runner
        self.stages: Dict[str, AuditStage] = {}

        self.register(AuditStage('local', self.check_local, fatal=True))
        self.register(AuditStage('integrity', self.check_integrity, fatal=True))
        self.register(AuditStage('ai', self.check_ai, fatal=self.config.audit.ai_fatal,
                                 external=True, available=self.ai_available))

    def register(self, stage: AuditStage):
        """Add or replace a stage by name."""
        self.stages[stage.name] = stage

    # ------------------------------------------------------------------
    # Built-in stages
    # ------------------------------------------------------------------

    def check_local(self, files: List[str]) -> bool:
        return run_local_audit(files, self.config.validation, self.config.project_root)

    def check_integrity(self, files: List[str]) -> bool:
        """Compare every file that has a saved backup against it."""
        all_passed = True

        for file_path in files:
            relative = project_relative(file_path, self.config.project_root)
            if relative is None:
                log.error("File is outside the project root; cannot check integrity.",
                          file_path=file_path, error_code='INT-03')
                all_passed = False
                continue

            backup = self.config.backups_dir / relative
            if not backup.is_file():
                log.info("No backup found, skipping integrity check.", file_path=file_path)
                continue

            try:
                result = self.comparator.compare_files(backup, self.config.resolve(relative))
            except (OSError, UnicodeDecodeError) as e:
                log.error(f"Integrity check could not run: {e}",
                          file_path=file_path, error_code='INT-03')
                all_passed = False
                continue

            if result.passed:
                log.info(result.summary(), file_path=file_path)
            else:
                code = 'INT-01' if result.line_rule_failed else 'INT-02'
                log.error(f"Integrity violation: {result.summary()}",
                          file_path=file_path, error_code=code)
                all_passed = False

        return all_passed

    def ai_available(self) -> bool:
        command = self.config.audit.command
        if shutil.which(command) is None:
            log.warning(f"'{command}' not installed. Skipping AI audit.", error_code='AUD-03')
            return False
        return True

    def check_ai(self, files: List[str]) -> bool:
        """Ask the external auditor for a review of the files."""
        audit = self.config.audit

        prompt = audit.prompt.replace('{files}', ', '.join(files))
        cmd = [audit.command, *audit.flags, prompt]
        log.info(f"Starting AI audit with '{audit.command}' (timeout {audit.timeout:g}s)...")

        try:
            result = self.runner(
                cmd,
                cwd=self.config.project_root,
                capture_output=True,
                text=True,
                encoding='utf-8',
                errors='replace',
                timeout=audit.timeout
            )
        except subprocess.TimeoutExpired:
            log.error(f"AI audit timed out after {audit.timeout:g}s.", error_code='AUD-02')
            return False
        except OSError as e:
            log.error(f"AI audit could not start: {e}", error_code='AUD-02')
            return False

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or '').strip()
            log.error(f"AI audit failed (exit {result.returncode}): {detail}", error_code='AUD-02')
            return False

        report = (result.stdout or '').strip()
        if report:
            log.info(f"AI report:\n{report}")
        return True

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def run_detailed(self, files: Sequence[str], stages: Optional[Sequence[str]] = None) -> PipelineRun:
        """
        Run the stages in order.

        Args:
            files: Changed files (relative to the project root)
            stages: Stage names; configured stages if omitted

        Returns:
            PipelineRun with per-stage outcomes
        """
        files = list(files)
        run = PipelineRun(passed=True)

        if not files:
            log.info("No files to audit.")
            return run

        stage_list = list(stages) if stages is not None else list(self.config.audit.stages)
        log.info(f"Audit started for {len(files)} file(s): {', '.join(stage_list)}")

        for name in stage_list:
            stage = self.stages.get(name)
            if stage is None:
                log.warning(f"Unknown audit stage '{name}', skipping.", error_code='AUD-01')
                run.skipped_stages.append(name)
                continue

            if stage.external and stage.available is not None and not stage.available():
                run.outcomes.append(StageOutcome(name=name, passed=True, fatal=stage.fatal))
                continue

            start_time = time.time()
            outcome = StageOutcome(name=name, passed=False, fatal=stage.fatal)
            if stage.external:
                calls = self.stats.increment_external_calls()
                log.debug(f"External call #{calls} (stage '{name}')")
            try:
                outcome.passed = bool(stage.check(files))
            except Exception as e:
                outcome.error = str(e)
                log.error(f"Stage '{name}' crashed: {e}", error_code='AUD-01')
            outcome.duration = time.time() - start_time
            run.outcomes.append(outcome)

            if outcome.passed:
                continue

            if stage.fatal:
                log.error(f"Audit stopped: stage '{name}' failed.", error_code='AUD-01')
                run.passed = False
                return run

            if self.config.audit.ai_failure_is_warning:
                run.warnings.append(f"Stage '{name}' failed (treated as warning)")
                log.warning(f"Stage '{name}' failed; continuing (treated as warning).")
            else:
                run.passed = False
                log.warning(f"Stage '{name}' failed; continuing with remaining stages.")

        return run

    def run(self, files: Sequence[str], stages: Optional[Sequence[str]] = None) -> bool:
        """Run the pipeline; True if the verdict is PASS."""
        return self.run_detailed(files, stages).passed


def save_backups(files: Sequence[str], config: GuardianConfig) -> bool:
    """Store the current version of each file as its integrity baseline."""
    ok = True
    for file_path in files:
        relative = project_relative(file_path, config.project_root)
        if relative is None:
            log.error("File is outside the project root; no backup saved.", file_path=file_path)
            ok = False
            continue
        try:
            target = write_backup(relative, config.project_root, config.backups_dir)
            log.info(f"Backup saved: {target}", file_path=file_path)
        except (OSError, AtomicWriteError) as e:
            log.error(f"Backup failed: {e}", file_path=file_path)
            ok = False
    return ok


def print_summary_box(run: PipelineRun, files: Sequence[str]):
    """Print the pipeline verdict in a box."""
    lines = [f"Files: {len(files)}"]
    for outcome in run.outcomes:
        mark = success("✓") if outcome.passed else error("✗")
        kind = "" if outcome.fatal else " (non-fatal)"
        lines.append(f"{mark} {outcome.name}{kind}  {outcome.duration:.2f}s")
    for name in run.skipped_stages:
        lines.append(warning(f"- {name} (unknown, skipped)"))
    for note in run.warnings:
        lines.append(warning(f"⚠ {note}"))

    if not run.passed:
        verdict = error("FAILED")
    elif run.warnings:
        verdict = warning("PASSED (with warnings)")
    else:
        verdict = success("PASSED")
    lines.append("")
    lines.append(bold("Verdict: ") + verdict)

    print_box(lines, title="Audit Summary")


def main():
    """Main CLI entry point"""
    import argparse

    parser = argparse.ArgumentParser(
        description="Run the audit pipeline over changed files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s src/app.js src/util.js
  %(prog)s --stages local,integrity src/app.js
  %(prog)s --config change-guardian.yaml --verbose src/app.js
  %(prog)s --backup src/app.js
        """
    )

    parser.add_argument(
        'files',
        nargs='*',
        help='Files to audit (relative to the project root)'
    )

    parser.add_argument(
        '--config',
        type=Path,
        help='Path to configuration file (YAML, TOML or JSON)'
    )

    parser.add_argument(
        '--stages',
        help='Comma-separated stages to run (default: from config)'
    )

    parser.add_argument(
        '--backup',
        action='store_true',
        help='Save the files as integrity baselines and exit'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show debug output'
    )

    parser.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Minimal output (errors only, no summary)'
    )

    parser.add_argument(
        '--log-file',
        type=Path,
        help='Write JSON logs to this file (default: from config)'
    )

    args = parser.parse_args()

    if args.verbose and args.quiet:
        print(error("ERROR: --verbose and --quiet are mutually exclusive"), file=sys.stderr)
        sys.exit(1)

    if not args.files:
        print(info("No files to audit."))
        sys.exit(0)

    config = load_config(args.config)

    if args.verbose:
        level = parse_level('DEBUG')
    elif args.quiet:
        level = parse_level('ERROR')
    else:
        level = parse_level(config.logging.level)
    log_file = args.log_file or (config.resolve(config.logging.file) if config.logging.file else None)
    setup_logger(log_file=log_file, level=level, console=config.logging.console)

    if args.backup:
        sys.exit(0 if save_backups(args.files, config) else 1)

    stages = stage_names(args.stages) if args.stages else None
    pipeline = AuditPipeline(config)
    run = pipeline.run_detailed(args.files, stages)

    if not args.quiet:
        print()
        print_summary_box(run, args.files)

    sys.exit(0 if run.passed else 1)


if __name__ == "__main__":
    main()
