"""
Size-dependent loss tolerance.

Percentage-based loss is noisy on small files: a 5-line file losing 2 lines has
lost 40% and may still be a legitimate edit. Larger files therefore get a
stricter tolerance.

Default bands:
    < 20 lines   -> 0.40
    < 100 lines  -> 0.15
    < 200 lines  -> 0.10
    otherwise    -> 0.05
"""

from typing import Iterable, Optional, Tuple

from .config import DEFAULT_TIERS, ThresholdTier


class ThresholdPolicy:
    """Maps a file's prior line count to its accepted fraction of lost lines."""

    def __init__(self, tiers: Optional[Iterable[ThresholdTier]] = None):
        tiers = tuple(tiers) if tiers is not None else DEFAULT_TIERS
        if not tiers:
            tiers = DEFAULT_TIERS
        bounded = sorted((t for t in tiers if t.max_lines is not None), key=lambda t: t.max_lines)
        unbounded = [t for t in tiers if t.max_lines is None]
        self.tiers: Tuple[ThresholdTier, ...] = tuple(bounded + unbounded[:1])

    def tier_for(self, old_line_count: int) -> ThresholdTier:
        """Return the first band whose max_lines exceeds the count, else the last band."""
        for tier in self.tiers:
            if tier.max_lines is None or old_line_count < tier.max_lines:
                return tier
        return self.tiers[-1]

    def tolerance_for(self, old_line_count: int) -> float:
        return self.tier_for(old_line_count).tolerance

    def __repr__(self) -> str:
        bands = ', '.join(
            f"<{t.max_lines}:{t.tolerance}" if t.max_lines is not None else f"*:{t.tolerance}"
            for t in self.tiers
        )
        return f"ThresholdPolicy({bands})"
