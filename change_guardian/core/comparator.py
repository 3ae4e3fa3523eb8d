"""
Integrity comparison between two revisions of one file.

Two rules decide whether an edit was destructive:

1. Line loss: fail if ``line_delta >= min_absolute_loss`` and
   ``line_delta / old_line_count`` exceeds the size-dependent tolerance.
   Growth never fails; an empty old file has nothing to lose.
2. Symbol survival (strict mode only): fail if any top-level declaration of
   the old text is missing from the new text.

Both rules are always evaluated so the caller gets the full diagnostic.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from .config import IntegrityConfig
from .symbols import RegexSymbolExtractor, SymbolExtractor
from .thresholds import ThresholdPolicy


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComparisonResult:
    """
    Outcome of comparing an old and a new revision.

    Attributes:
        passed: False if either rule failed
        old_line_count: Lines in the old text
        new_line_count: Lines in the new text
        line_delta: old_line_count - new_line_count (negative = growth)
        threshold_used: Tolerance chosen for old_line_count
        missing_symbols: Old signatures absent from the new text, first-seen order
        line_rule_failed: Rule 1 outcome
        symbol_rule_failed: Rule 2 outcome (always False outside strict mode)
    """
    passed: bool
    old_line_count: int
    new_line_count: int
    line_delta: int
    threshold_used: float
    missing_symbols: Tuple[str, ...] = field(default_factory=tuple)
    line_rule_failed: bool = False
    symbol_rule_failed: bool = False

    @property
    def loss_ratio(self) -> float:
        if self.old_line_count == 0 or self.line_delta <= 0:
            return 0.0
        return self.line_delta / self.old_line_count

    def summary(self, name: Optional[str] = None) -> str:
        """One-line report: verdict, measured numbers and threshold used."""
        prefix = f"{name}: " if name else ""
        verdict = "PASSED" if self.passed else "FAILED"
        text = (
            f"{prefix}{verdict} {self.old_line_count} -> {self.new_line_count} lines "
            f"(delta {self.line_delta}, loss {self.loss_ratio:.1%}, "
            f"limit {self.threshold_used:.0%})"
        )
        if self.line_rule_failed:
            text += " - excessive line loss"
        if self.symbol_rule_failed:
            text += f" - missing symbols: {', '.join(self.missing_symbols)}"
        return text


def count_lines(text: str) -> int:
    """
    Count lines the way the guardian has always counted them: split on '\\n'.

    A trailing newline therefore adds one (empty) line, and the empty string
    has zero lines.
    """
    if text == '':
        return 0
    return len(text.split('\n'))


class IntegrityComparator:
    """Decides PASS/FAIL between two revisions of one file."""

    def __init__(
        self,
        config: Optional[IntegrityConfig] = None,
        policy: Optional[ThresholdPolicy] = None,
        extractor: Optional[SymbolExtractor] = None
    ):
        self.config = config or IntegrityConfig()
        self.policy = policy or ThresholdPolicy(self.config.thresholds)
        self.extractor = extractor or RegexSymbolExtractor()

    def compare(
        self,
        old_text: str,
        new_text: str,
        config: Optional[IntegrityConfig] = None
    ) -> ComparisonResult:
        """
        Compare two texts. Pure: no I/O, no logging side effects on the result.

        Args:
            old_text: Content before the change
            new_text: Content after the change
            config: Overrides min_absolute_loss / strict_symbols for this call

        Returns:
            ComparisonResult with both rules evaluated
        """
        config = config or self.config

        old_line_count = count_lines(old_text)
        new_line_count = count_lines(new_text)
        line_delta = old_line_count - new_line_count
        threshold = self.policy.tolerance_for(old_line_count)

        line_rule_failed = (
            old_line_count > 0
            and line_delta >= config.min_absolute_loss
            and (line_delta / old_line_count) > threshold
        )

        missing: List[str] = []
        if config.strict_symbols:
            new_symbols = self.extractor.extract(new_text)
            missing = [s for s in self.extractor.extract_ordered(old_text) if s not in new_symbols]
        symbol_rule_failed = bool(missing)

        return ComparisonResult(
            passed=not line_rule_failed and not symbol_rule_failed,
            old_line_count=old_line_count,
            new_line_count=new_line_count,
            line_delta=line_delta,
            threshold_used=threshold,
            missing_symbols=tuple(missing),
            line_rule_failed=line_rule_failed,
            symbol_rule_failed=symbol_rule_failed,
        )

    def compare_files(
        self,
        old_path: Path,
        new_path: Path,
        config: Optional[IntegrityConfig] = None
    ) -> ComparisonResult:
        """
        Compare two files on disk.

        Raises:
            FileNotFoundError: If either file is missing
            UnicodeDecodeError: If either file is not UTF-8 text
        """
        old_text = Path(old_path).read_text(encoding='utf-8')
        new_text = Path(new_path).read_text(encoding='utf-8')
        result = self.compare(old_text, new_text, config)
        logger.debug(result.summary(Path(new_path).name))
        return result
