"""
Tests for the integrity comparator.

Covers:
1. Line-loss rule with size-dependent tolerance
2. Symbol survival rule
3. Result details (delta, threshold, missing symbols)
4. File-based comparison
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from change_guardian.core.comparator import ComparisonResult, IntegrityComparator, count_lines
from change_guardian.core.config import IntegrityConfig


def lines(n: int) -> str:
    """n lines of plain text without declarations (no trailing newline)."""
    return '\n'.join(f"line {i}" for i in range(n))


class TestCountLines:
    """Lines are counted by splitting on newline."""

    def test_empty_text_has_no_lines(self):
        assert count_lines("") == 0

    def test_single_line(self):
        assert count_lines("abc") == 1

    def test_trailing_newline_adds_a_line(self):
        assert count_lines("a\nb\n") == 3


class TestLineRule:
    """Rule 1: excessive line loss."""

    def setup_method(self):
        self.comparator = IntegrityComparator()

    def test_small_file_moderate_loss_passes(self):
        """12 -> 9 lines is 25% loss, below the 40% tiny-file tolerance."""
        result = self.comparator.compare(lines(12), lines(9))
        assert result.passed
        assert result.line_delta == 3
        assert result.threshold_used == 0.40
        assert not result.line_rule_failed

    def test_medium_file_halved_fails(self):
        """120 -> 60 lines is 50% loss, above the 10% medium tolerance."""
        result = self.comparator.compare(lines(120), lines(60))
        assert not result.passed
        assert result.line_rule_failed
        assert result.line_delta == 60
        assert result.threshold_used == 0.10
        assert result.loss_ratio == pytest.approx(0.5)

    def test_loss_below_minimum_absolute_passes(self):
        """A 2-line loss never trips rule 1 with the default minimum of 3."""
        result = self.comparator.compare(lines(4), lines(2))
        assert result.passed

    def test_minimum_absolute_loss_is_configurable(self):
        config = IntegrityConfig(min_absolute_loss=1, strict_symbols=False)
        result = self.comparator.compare(lines(4), lines(2), config)
        assert result.line_rule_failed

    def test_growth_never_fails(self):
        result = self.comparator.compare(lines(10), lines(500))
        assert result.passed
        assert result.line_delta < 0

    def test_empty_old_file_passes(self):
        """There is nothing to lose in an empty file."""
        result = self.comparator.compare("", lines(5))
        assert result.passed
        assert result.old_line_count == 0

    def test_old_file_emptied(self):
        result = self.comparator.compare(lines(50), "")
        assert not result.passed
        assert result.new_line_count == 0

    def test_identity_always_passes(self):
        text = lines(300) + "\nfunction keep() {}\nclass Stay {}"
        assert self.comparator.compare(text, text).passed

    def test_loss_at_exact_tolerance_passes(self):
        """Tolerance is exceeded only strictly: 100 -> 90 is exactly 10%."""
        result = self.comparator.compare(lines(100), lines(90))
        assert result.threshold_used == 0.10
        assert result.passed


@pytest.mark.parametrize("old_count", [5, 12, 19, 20, 60, 99, 100, 150, 199, 200, 500])
def test_more_loss_never_turns_a_failure_into_a_pass(old_count):
    """With the old size fixed, growing the loss can only go pass -> fail."""
    comparator = IntegrityComparator()
    old = lines(old_count)

    verdicts = [
        comparator.compare(old, lines(old_count - delta)).passed
        for delta in range(old_count + 1)
    ]

    first_failure = verdicts.index(False)
    assert all(verdicts[:first_failure])
    assert not any(verdicts[first_failure:])


class TestSymbolRule:
    """Rule 2: declarations must survive."""

    def setup_method(self):
        self.comparator = IntegrityComparator()

    def test_renamed_function_is_reported_missing(self):
        result = self.comparator.compare("function calc() {}", "function calc2() {}")
        assert not result.passed
        assert result.symbol_rule_failed
        assert result.missing_symbols == ("function calc()",)
        assert not result.line_rule_failed

    def test_superset_of_symbols_passes(self):
        old = "function a() {}\nclass B {}"
        new = "function a() {}\nclass B {}\nconst c = () => 1;"
        assert self.comparator.compare(old, new).passed

    def test_missing_symbols_in_first_seen_order(self):
        old = "class Z {}\nfunction y() {}\nfunction x() {}\n"
        new = "function y() {}\n"
        result = self.comparator.compare(old, new)
        assert result.missing_symbols == ("class Z", "function x()")

    def test_symbol_rule_disabled(self):
        config = IntegrityConfig(strict_symbols=False)
        result = self.comparator.compare("function calc() {}", "function calc2() {}", config)
        assert result.passed
        assert result.missing_symbols == ()

    def test_both_rules_reported_together(self):
        old = lines(150) + "\nfunction gone() {}"
        new = lines(10)
        result = self.comparator.compare(old, new)
        assert result.line_rule_failed
        assert result.symbol_rule_failed
        assert "function gone()" in result.missing_symbols


class TestResultSummary:

    def test_summary_mentions_numbers_and_verdict(self):
        result = IntegrityComparator().compare(lines(120), lines(60))
        text = result.summary("app.js")
        assert text.startswith("app.js: FAILED")
        assert "120 -> 60" in text
        assert "10%" in text

    def test_result_is_immutable(self):
        result = IntegrityComparator().compare("a", "a")
        assert isinstance(result, ComparisonResult)
        with pytest.raises(AttributeError):
            result.passed = False


class TestCompareFiles:

    def test_compare_files(self, tmp_path):
        old = tmp_path / "old.js"
        new = tmp_path / "new.js"
        old.write_text("function calc() {}\n")
        new.write_text("function calc2() {}\n")

        result = IntegrityComparator().compare_files(old, new)
        assert result.missing_symbols == ("function calc()",)

    def test_missing_file_raises(self, tmp_path):
        existing = tmp_path / "a.js"
        existing.write_text("x")
        with pytest.raises(FileNotFoundError):
            IntegrityComparator().compare_files(existing, tmp_path / "missing.js")

    def test_config_from_constructor(self, tmp_path):
        comparator = IntegrityComparator(IntegrityConfig(strict_symbols=False))
        assert comparator.compare("class A {}", "").passed
