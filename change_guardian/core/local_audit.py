"""
Local quality scan: the cheap first stage of the audit pipeline.

Checks project conventions without calling anything external:
1. The file exists
2. Source files import/use the central logger (error)
3. Direct console printing (warning, per line)
4. Overlong files (warning)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from .config import ValidationConfig
from .logger import ComponentLogger


CONSOLE_CALLS = {
    '.py': 'print(',
}
DEFAULT_CONSOLE_CALL = 'console.log('

log = ComponentLogger('LOCAL-AUDIT')


@dataclass
class FileAuditResult:
    path: str
    passed: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def fail(self, message: str):
        self.errors.append(message)
        self.passed = False


def audit_file(
    file_path: str,
    config: Optional[ValidationConfig] = None,
    project_root: Optional[Path] = None
) -> FileAuditResult:
    """
    Check one file against the local rules.

    Args:
        file_path: Path as given on the command line
        config: Validation rules
        project_root: Base for relative paths (current directory if omitted)

    Returns:
        FileAuditResult with errors and warnings
    """
    config = config or ValidationConfig()
    result = FileAuditResult(path=file_path)
    path = Path(file_path)
    if not path.is_absolute() and project_root is not None:
        path = Path(project_root) / path
    name = path.name

    if not path.is_file():
        result.fail(f"{file_path}: file not found")
        return result

    try:
        content = path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        result.fail(f"{file_path}: cannot read file: {e}")
        return result

    if path.suffix not in config.extensions:
        return result

    lines = content.split('\n')
    excluded = name in config.exclude_from_logger_check

    if not excluded:
        if not any(pattern in content for pattern in config.logger_patterns):
            result.fail(
                f"{name}: no use of the central logger found. "
                f"Expected one of: {', '.join(config.logger_patterns)}"
            )

        if config.warn_on_console_logs:
            call = CONSOLE_CALLS.get(path.suffix, DEFAULT_CONSOLE_CALL)
            for number, line in enumerate(lines, 1):
                if call in line:
                    result.warnings.append(
                        f"{name}:{number}: {call.rstrip('(')}() found - use the logger instead."
                    )

    if config.max_file_lines_warning and len(lines) > config.max_file_lines_warning:
        result.warnings.append(
            f"{name}: {len(lines)} lines exceeds {config.max_file_lines_warning}; consider splitting it."
        )

    return result


def run_local_audit(
    files: Sequence[str],
    config: Optional[ValidationConfig] = None,
    project_root: Optional[Path] = None
) -> bool:
    """
    Run the local scan over all files.

    Returns:
        True if no file has errors
    """
    if not files:
        log.info("No files to scan.")
        return True

    log.info(f"Local audit: checking {len(files)} file(s)...")
    passed_files = 0

    for file_path in files:
        result = audit_file(file_path, config, project_root)
        for warning in result.warnings:
            log.warning(warning, file_path=file_path)
        if result.passed:
            passed_files += 1
        else:
            for error in result.errors:
                log.error(error, file_path=file_path, error_code='AUD-01')

    log.info(f"Result: {passed_files}/{len(files)} file(s) passed.")
    return passed_files == len(files)
