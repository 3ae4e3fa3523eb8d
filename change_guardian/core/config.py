"""
Configuration for Change Guardian.

Loads ``change-guardian.yaml`` / ``.yml`` / ``.toml`` / ``.json`` from the
project root, deep-merges it over the built-in defaults and validates every
field into frozen dataclasses.

Failure policy:
1. Missing config file - defaults are used
2. Unparseable file or non-mapping document - defaults are used, warning logged (CFG-01)
3. A single field with the wrong type or range - that field falls back to its
   default, warning logged (CFG-02)

Nothing in this module raises for a bad config file; ``ConfigError`` is used
internally to describe the offending field.

Usage:
    config = load_config(project_root=Path.cwd())
    config.integrity.min_absolute_loss   # 3
    config.audit.stages                  # ('local', 'integrity', 'ai')
"""

import copy
import json
import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import yaml


logger = logging.getLogger(__name__)

CONFIG_FILENAMES = (
    'change-guardian.yaml',
    'change-guardian.yml',
    'change-guardian.toml',
    'change-guardian.json',
)

MAX_CONFIG_SIZE = 10 * 1024 * 1024  # 10MB
MAX_ARRAY_SIZE = 10000

DEFAULTS: Dict[str, Any] = {
    'paths': {
        'tooling_dir': '.change-guardian',
        'backups': '.change-guardian/backups',
        'temp_exports': '.change-guardian/tmp/backups',
        'logs': '.change-guardian/logs',
    },
    'logging': {
        'level': 'INFO',
        'file': '.change-guardian/logs/system.log',
        'console': True,
    },
    'integrity': {
        'min_absolute_loss': 3,
        'strict_symbols': True,
        'thresholds': {
            'tiny': {'max_lines': 20, 'tolerance': 0.40},
            'small': {'max_lines': 100, 'tolerance': 0.15},
            'medium': {'max_lines': 200, 'tolerance': 0.10},
            'large': {'max_lines': None, 'tolerance': 0.05},
        },
    },
    'analytics': {
        'stats_file': '.change-guardian/logs/stats.json',
    },
    'audit': {
        'command': 'gemini',
        'flags': ['-y', '-p'],
        'timeout': 30.0,
        'stages': ['local', 'integrity', 'ai'],
        'ai_fatal': False,
        'ai_failure_is_warning': False,
        'prompt': (
            "Run a quality audit for: {files}. "
            "Check for logger usage, project conventions and clean error handling. "
            "Answer ONLY with 'PASSED' or a compact list of at most 5 findings."
        ),
    },
    'validation': {
        'extensions': ['.js', '.cjs', '.mjs', '.ts', '.py'],
        'logger_patterns': [
            'logger',
            'logging.getLogger',
        ],
        'exclude_from_logger_check': [
            'logger.js',
            'logger.cjs',
            'logger.py',
            '__init__.py',
        ],
        'warn_on_console_logs': True,
        'max_file_lines_warning': 500,
    },
}

ENV_MIN_LOSS = 'INTEGRITY_MIN_LOSS'
ENV_STRICT_SYMBOLS = 'INTEGRITY_STRICT_SYMBOLS'


class ConfigError(Exception):
    """Configuration validation error with context."""

    def __init__(self, key: str, message: str, value: Any = None, suggestion: str = None):
        self.key = key
        self.value = value
        self.suggestion = suggestion
        full_message = f"Config error at '{key}': {message}"
        if value is not None:
            full_message += f" (got: {value!r})"
        if suggestion:
            full_message += f". Suggestion: {suggestion}"
        super().__init__(full_message)


# =============================================================================
# Typed configuration
# =============================================================================

@dataclass(frozen=True)
class ThresholdTier:
    """
    One size band of the loss-tolerance table.

    Attributes:
        max_lines: Exclusive upper bound on the old line count; None = unbounded
        tolerance: Accepted fraction of lost lines (0.0-1.0)
        name: Optional label from the config file ("tiny", "small", ...)
    """
    max_lines: Optional[int]
    tolerance: float
    name: str = ''


DEFAULT_TIERS: Tuple[ThresholdTier, ...] = (
    ThresholdTier(20, 0.40, 'tiny'),
    ThresholdTier(100, 0.15, 'small'),
    ThresholdTier(200, 0.10, 'medium'),
    ThresholdTier(None, 0.05, 'large'),
)


@dataclass(frozen=True)
class IntegrityConfig:
    min_absolute_loss: int = 3
    strict_symbols: bool = True
    thresholds: Tuple[ThresholdTier, ...] = DEFAULT_TIERS


@dataclass(frozen=True)
class AuditConfig:
    command: str = 'gemini'
    flags: Tuple[str, ...] = ('-y', '-p')
    timeout: float = 30.0
    stages: Tuple[str, ...] = ('local', 'integrity', 'ai')
    ai_fatal: bool = False
    ai_failure_is_warning: bool = False
    prompt: str = DEFAULTS['audit']['prompt']


@dataclass(frozen=True)
class ValidationConfig:
    extensions: Tuple[str, ...] = tuple(DEFAULTS['validation']['extensions'])
    logger_patterns: Tuple[str, ...] = tuple(DEFAULTS['validation']['logger_patterns'])
    exclude_from_logger_check: Tuple[str, ...] = tuple(DEFAULTS['validation']['exclude_from_logger_check'])
    warn_on_console_logs: bool = True
    max_file_lines_warning: int = 500


@dataclass(frozen=True)
class PathsConfig:
    tooling_dir: str = '.change-guardian'
    backups: str = '.change-guardian/backups'
    temp_exports: str = '.change-guardian/tmp/backups'
    logs: str = '.change-guardian/logs'


@dataclass(frozen=True)
class LoggingConfig:
    level: str = 'INFO'
    file: Optional[str] = '.change-guardian/logs/system.log'
    console: bool = True


@dataclass(frozen=True)
class GuardianConfig:
    """Resolved, immutable configuration for one project."""
    project_root: Path = field(default_factory=Path.cwd)
    paths: PathsConfig = field(default_factory=PathsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    integrity: IntegrityConfig = field(default_factory=IntegrityConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    stats_file: str = '.change-guardian/logs/stats.json'
    source: Optional[Path] = None
    warnings: Tuple[str, ...] = ()

    def resolve(self, path: Union[str, Path]) -> Path:
        """Resolve a configured path against the project root."""
        path = Path(path)
        if path.is_absolute():
            return path
        return self.project_root / path

    @property
    def tooling_dir(self) -> Path:
        return self.resolve(self.paths.tooling_dir)

    @property
    def backups_dir(self) -> Path:
        return self.resolve(self.paths.backups)

    @property
    def temp_exports_dir(self) -> Path:
        return self.resolve(self.paths.temp_exports)

    def _project_relative(self, path: Union[str, Path]) -> Optional[PurePosixPath]:
        try:
            relative = self.resolve(path).relative_to(self.project_root)
        except ValueError:
            return None
        if not relative.parts or '..' in relative.parts:
            return None
        return PurePosixPath(*relative.parts)

    @property
    def exclusion_patterns(self) -> Tuple[str, ...]:
        """
        Paths that rollback must never stage or delete: the tooling directory
        plus any configured backup, log or stats location outside it.
        """
        tooling = self._project_relative(self.paths.tooling_dir)
        patterns = [f"{tooling}/"] if tooling else []

        locations = [
            (self.paths.backups, True),
            (self.paths.temp_exports, True),
            (self.paths.logs, True),
            (self.stats_file, False),
        ]
        if self.logging.file:
            locations.append((self.logging.file, False))

        for location, is_dir in locations:
            relative = self._project_relative(location)
            if relative is None:
                continue
            if tooling is not None and (relative == tooling or tooling in relative.parents):
                continue
            pattern = f"{relative}/" if is_dir else str(relative)
            if pattern not in patterns:
                patterns.append(pattern)

        return tuple(patterns)


# =============================================================================
# Field validators
# =============================================================================

def validate_threshold(
    value: Any,
    key_name: str,
    min_val: float = 0.0,
    max_val: float = 1.0
) -> float:
    """
    Validate a numeric threshold is within range.

    Raises:
        ConfigError: If value is invalid or out of range
    """
    if value is None:
        raise ConfigError(
            key_name,
            "Value is null/None",
            None,
            f"Set to a number between {min_val} and {max_val}"
        )

    # Quoted numbers are a common YAML/TOML mistake
    if isinstance(value, str):
        raise ConfigError(
            key_name,
            "Must be a number, got string",
            value,
            f"Remove quotes: use {key_name.split('.')[-1]} = 0.1 instead of \"{value}\""
        )

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(
            key_name,
            f"Must be numeric, got {type(value).__name__}",
            value,
            "Use a number like 0.1"
        )

    if isinstance(value, float):
        if value != value:
            raise ConfigError(key_name, "Value is NaN (Not a Number)", "NaN")
        if value in (float('inf'), float('-inf')):
            raise ConfigError(key_name, "Value is infinite", "Infinity")

    if value < min_val:
        raise ConfigError(
            key_name,
            f"Value too low (minimum is {min_val})",
            value,
            f"Increase to at least {min_val}"
        )

    if value > max_val:
        raise ConfigError(
            key_name,
            f"Value too high (maximum is {max_val})",
            value,
            f"Decrease to at most {max_val}"
        )

    return float(value)


def validate_positive_int(value: Any, key_name: str) -> int:
    """
    Validate a non-negative integer.

    Raises:
        ConfigError: If value is invalid or negative
    """
    if value is None:
        raise ConfigError(key_name, "Value cannot be None")

    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(
            key_name,
            f"Must be an integer, got {type(value).__name__}",
            value
        )

    if value < 0:
        raise ConfigError(key_name, "Must be non-negative", value)

    return value


def validate_bool(value: Any, key_name: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(
            key_name,
            f"Must be true or false, got {type(value).__name__}",
            value
        )
    return value


def validate_string(value: Any, key_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(key_name, "Must be a non-empty string", value)
    return value


def ensure_list(value: Any, key_name: str, coerce_string: bool = True) -> List[Any]:
    """
    Ensure value is a list, optionally converting a string to a single-item list.

    A string where a list is expected would otherwise be iterated character by
    character.

    Raises:
        ConfigError: If value cannot be converted to list
    """
    if value is None:
        logger.debug(f"Config '{key_name}' is None, using empty list")
        return []

    if isinstance(value, str):
        if coerce_string:
            logger.warning(
                f"Config '{key_name}': Expected list but got string '{value}'. "
                f"Converting to single-item list."
            )
            return [value]
        raise ConfigError(
            key_name,
            "Expected a list, got a string",
            value,
            f"Use [\"{value}\"] for a single-item list, or [] for empty"
        )

    if isinstance(value, (list, tuple)):
        if len(value) > MAX_ARRAY_SIZE:
            raise ConfigError(
                key_name,
                f"Too many items ({len(value)}, maximum is {MAX_ARRAY_SIZE})"
            )
        return list(value)

    raise ConfigError(
        key_name,
        f"Expected a list, got {type(value).__name__}",
        value
    )


def validate_string_list(value: Any, key_name: str) -> Tuple[str, ...]:
    items = ensure_list(value, key_name)
    for item in items:
        if not isinstance(item, str):
            raise ConfigError(key_name, "All items must be strings", item)
    return tuple(items)


def parse_threshold_tiers(value: Any, key_name: str = 'integrity.thresholds') -> Tuple[ThresholdTier, ...]:
    """
    Build the ordered tier table from a mapping or a list of bands.

    Accepts both ``{tiny: {max_lines: 20, tolerance: 0.4}, ...}`` and
    ``[{max_lines: 20, tolerance: 0.4}, ...]``. Bands are sorted by ascending
    ``max_lines``; the unbounded band (``max_lines: null``) sorts last.

    Raises:
        ConfigError: If the table is empty or a band is malformed
    """
    if isinstance(value, dict):
        bands = list(value.items())
    elif isinstance(value, (list, tuple)):
        bands = [('', band) for band in value]
    else:
        raise ConfigError(key_name, "Must be a mapping or list of bands", value)

    if not bands:
        raise ConfigError(key_name, "At least one threshold band is required")

    tiers = []
    for name, band in bands:
        band_key = f"{key_name}.{name}" if name else key_name
        if not isinstance(band, dict):
            raise ConfigError(band_key, "Band must be a mapping", band)

        max_lines = band.get('max_lines')
        if max_lines is not None:
            max_lines = validate_positive_int(max_lines, f"{band_key}.max_lines")
        tolerance = validate_threshold(band.get('tolerance'), f"{band_key}.tolerance")
        tiers.append(ThresholdTier(max_lines, tolerance, str(name)))

    unbounded = [t for t in tiers if t.max_lines is None]
    if len(unbounded) > 1:
        raise ConfigError(key_name, "Only one band may have no max_lines")

    bounded = sorted((t for t in tiers if t.max_lines is not None), key=lambda t: t.max_lines)
    return tuple(bounded + unbounded)


# =============================================================================
# Merge and build
# =============================================================================

_CAMEL_RE = re.compile(r'(?<!^)(?=[A-Z])')


def normalize_keys(value: Any) -> Any:
    """Convert camelCase mapping keys (``minAbsoluteLoss``) to snake_case."""
    if isinstance(value, dict):
        return {
            (_CAMEL_RE.sub('_', k).lower() if isinstance(k, str) else k): normalize_keys(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [normalize_keys(v) for v in value]
    return value


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge ``override`` into a copy of ``base``.

    Mappings merge key by key; lists and scalars from ``override`` replace the
    base value. Neither input is modified.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _section(merged: Dict[str, Any], name: str, warnings: List[str]) -> Dict[str, Any]:
    section = merged.get(name)
    if isinstance(section, dict):
        return section
    warnings.append(f"[{name}] Must be a mapping, using defaults")
    return copy.deepcopy(DEFAULTS[name])


def _field(section: Dict[str, Any], section_name: str, key: str, validator, default, warnings: List[str]):
    key_name = f"{section_name}.{key}"
    try:
        return validator(section.get(key), key_name)
    except ConfigError as e:
        warnings.append(str(e))
        return default


def build_config(
    raw: Optional[Dict[str, Any]] = None,
    project_root: Optional[Path] = None,
    source: Optional[Path] = None
) -> GuardianConfig:
    """
    Merge ``raw`` over the defaults and validate it field by field.

    Invalid fields fall back to their defaults and are reported in
    ``GuardianConfig.warnings``.
    """
    warnings: List[str] = []
    merged = deep_merge(DEFAULTS, normalize_keys(raw or {}))

    paths_raw = _section(merged, 'paths', warnings)
    d_paths = PathsConfig()
    paths = PathsConfig(
        tooling_dir=_field(paths_raw, 'paths', 'tooling_dir', validate_string, d_paths.tooling_dir, warnings),
        backups=_field(paths_raw, 'paths', 'backups', validate_string, d_paths.backups, warnings),
        temp_exports=_field(paths_raw, 'paths', 'temp_exports', validate_string, d_paths.temp_exports, warnings),
        logs=_field(paths_raw, 'paths', 'logs', validate_string, d_paths.logs, warnings),
    )

    logging_raw = _section(merged, 'logging', warnings)
    d_logging = LoggingConfig()
    log_file = logging_raw.get('file')
    logging_config = LoggingConfig(
        level=_field(logging_raw, 'logging', 'level', validate_string, d_logging.level, warnings),
        file=log_file if isinstance(log_file, str) and log_file else None,
        console=_field(logging_raw, 'logging', 'console', validate_bool, d_logging.console, warnings),
    )

    integrity_raw = _section(merged, 'integrity', warnings)
    d_integrity = IntegrityConfig()
    integrity = IntegrityConfig(
        min_absolute_loss=_field(integrity_raw, 'integrity', 'min_absolute_loss',
                                 validate_positive_int, d_integrity.min_absolute_loss, warnings),
        strict_symbols=_field(integrity_raw, 'integrity', 'strict_symbols',
                              validate_bool, d_integrity.strict_symbols, warnings),
        thresholds=_field(integrity_raw, 'integrity', 'thresholds',
                          parse_threshold_tiers, d_integrity.thresholds, warnings),
    )

    audit_raw = _section(merged, 'audit', warnings)
    d_audit = AuditConfig()
    audit = AuditConfig(
        command=_field(audit_raw, 'audit', 'command', validate_string, d_audit.command, warnings),
        flags=_field(audit_raw, 'audit', 'flags', validate_string_list, d_audit.flags, warnings),
        timeout=_field(audit_raw, 'audit', 'timeout',
                       lambda v, k: validate_threshold(v, k, min_val=0.001, max_val=3600.0),
                       d_audit.timeout, warnings),
        stages=_field(audit_raw, 'audit', 'stages', validate_string_list, d_audit.stages, warnings),
        ai_fatal=_field(audit_raw, 'audit', 'ai_fatal', validate_bool, d_audit.ai_fatal, warnings),
        ai_failure_is_warning=_field(audit_raw, 'audit', 'ai_failure_is_warning',
                                     validate_bool, d_audit.ai_failure_is_warning, warnings),
        prompt=_field(audit_raw, 'audit', 'prompt', validate_string, d_audit.prompt, warnings),
    )

    validation_raw = _section(merged, 'validation', warnings)
    d_validation = ValidationConfig()
    validation = ValidationConfig(
        extensions=_field(validation_raw, 'validation', 'extensions',
                          validate_string_list, d_validation.extensions, warnings),
        logger_patterns=_field(validation_raw, 'validation', 'logger_patterns',
                               validate_string_list, d_validation.logger_patterns, warnings),
        exclude_from_logger_check=_field(validation_raw, 'validation', 'exclude_from_logger_check',
                                         validate_string_list, d_validation.exclude_from_logger_check, warnings),
        warn_on_console_logs=_field(validation_raw, 'validation', 'warn_on_console_logs',
                                    validate_bool, d_validation.warn_on_console_logs, warnings),
        max_file_lines_warning=_field(validation_raw, 'validation', 'max_file_lines_warning',
                                      validate_positive_int, d_validation.max_file_lines_warning, warnings),
    )

    analytics_raw = _section(merged, 'analytics', warnings)
    stats_file = _field(analytics_raw, 'analytics', 'stats_file', validate_string,
                        DEFAULTS['analytics']['stats_file'], warnings)

    for message in warnings:
        logger.warning(f"Config warning: {message}", extra={'error_code': 'CFG-02'})

    return GuardianConfig(
        project_root=Path(project_root) if project_root else Path.cwd(),
        paths=paths,
        logging=logging_config,
        integrity=integrity,
        audit=audit,
        validation=validation,
        stats_file=stats_file,
        source=source,
        warnings=tuple(warnings),
    )


# =============================================================================
# Loading
# =============================================================================

def safe_read_file(path: Path, max_size: int = MAX_CONFIG_SIZE) -> str:
    """
    Read a config file with a size cap.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is too large
    """
    size = path.stat().st_size
    if size > max_size:
        raise ValueError(
            f"File too large: {path} ({size:,} bytes, maximum {max_size:,})"
        )
    return path.read_text(encoding='utf-8')


def parse_config_text(text: str, suffix: str) -> Any:
    """
    Parse config text by file suffix.

    Raises:
        ValueError: On unsupported suffix or parse error
    """
    suffix = suffix.lower()
    try:
        if suffix in ('.yaml', '.yml'):
            return yaml.safe_load(text)
        if suffix == '.toml':
            return tomllib.loads(text)
        if suffix == '.json':
            return json.loads(text)
    except yaml.YAMLError as e:
        raise ValueError(f"YAML parse error: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"TOML parse error: {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"JSON parse error at line {e.lineno}: {e.msg}") from e

    raise ValueError(
        f"Unsupported config format: {suffix}. Use .yaml, .yml, .toml, or .json"
    )


def find_config_file(project_root: Path) -> Optional[Path]:
    """Return the first ``change-guardian.*`` file in the project root."""
    for name in CONFIG_FILENAMES:
        candidate = project_root / name
        if candidate.is_file():
            return candidate
    return None


def _env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Apply INTEGRITY_* environment variables to keys the file leaves unset."""
    integrity = raw.get('integrity')
    if not isinstance(integrity, dict):
        integrity = {}
    updates: Dict[str, Any] = {}

    min_loss = os.environ.get(ENV_MIN_LOSS)
    if min_loss is not None and 'min_absolute_loss' not in integrity:
        try:
            updates['min_absolute_loss'] = int(min_loss)
        except ValueError:
            logger.warning(f"Ignoring non-integer {ENV_MIN_LOSS}={min_loss!r}")

    strict = os.environ.get(ENV_STRICT_SYMBOLS)
    if strict is not None and 'strict_symbols' not in integrity:
        updates['strict_symbols'] = strict.strip().lower() != 'false'

    if not updates:
        return raw
    return deep_merge(raw, {'integrity': updates})


def load_config(
    config_path: Optional[Path] = None,
    project_root: Optional[Path] = None
) -> GuardianConfig:
    """
    Load the project configuration, never raising for a bad file.

    Args:
        config_path: Explicit config file; searched in project_root if omitted
        project_root: Project root (defaults to the config file's directory,
            then the current directory)

    Returns:
        Validated GuardianConfig (defaults on any parse failure)
    """
    if project_root is None:
        project_root = Path(config_path).parent if config_path else Path.cwd()
    project_root = Path(project_root)

    if config_path is None:
        config_path = find_config_file(project_root)

    raw: Dict[str, Any] = {}
    if config_path is not None:
        config_path = Path(config_path)
        try:
            parsed = parse_config_text(safe_read_file(config_path), config_path.suffix)
            if parsed is None:
                parsed = {}
            if not isinstance(parsed, dict):
                raise ValueError(
                    f"Config must be a mapping, got {type(parsed).__name__}"
                )
            raw = normalize_keys(parsed)
        except (OSError, ValueError) as e:
            logger.warning(
                f"Could not load {config_path}, using defaults: {e}",
                extra={'error_code': 'CFG-01'}
            )
            raw = {}

    return build_config(_env_overrides(raw), project_root=project_root, source=config_path)


def stage_names(value: Union[str, Sequence[str]]) -> Tuple[str, ...]:
    """Split a ``local,integrity`` style CLI value into stage names."""
    if isinstance(value, str):
        return tuple(s.strip() for s in value.split(',') if s.strip())
    return tuple(value)
