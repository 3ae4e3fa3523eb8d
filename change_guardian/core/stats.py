"""
Usage counters persisted as a small JSON file.

The audit pipeline bumps ``ai_agent_calls`` every time it actually invokes the
external auditor, which is the number to watch for cost control.
"""

import json
from pathlib import Path
from typing import Dict

from .atomic_write import AtomicWriteError, atomic_write
from .logger import ComponentLogger


EXTERNAL_CALLS_KEY = 'ai_agent_calls'

log = ComponentLogger('STATS')


class StatsCounter:
    """JSON-file backed counters. Errors are logged, never raised."""

    def __init__(self, stats_file: Path):
        self.stats_file = Path(stats_file)

    def _default(self) -> Dict[str, int]:
        return {EXTERNAL_CALLS_KEY: 0}

    def get_stats(self) -> Dict[str, int]:
        """Read the counters; a missing or malformed file reads as zero."""
        if not self.stats_file.exists():
            return self._default()
        try:
            data = json.loads(self.stats_file.read_text(encoding='utf-8'))
        except (OSError, json.JSONDecodeError) as e:
            log.warning(f"Unreadable stats file {self.stats_file}: {e}", error_code='CFG-01')
            return self._default()
        if not isinstance(data, dict):
            return self._default()
        return data

    def increment(self, key: str) -> int:
        """
        Increase one counter by 1.

        Returns:
            The new value (also when it could not be persisted)
        """
        data = self.get_stats()
        current = data.get(key, 0)
        data[key] = (current if isinstance(current, int) else 0) + 1
        try:
            atomic_write(self.stats_file, json.dumps(data, indent=2))
            log.debug(f"Stat '{key}' increased to {data[key]}")
        except AtomicWriteError as e:
            log.error(f"Could not update stat '{key}': {e}")
        return data[key]

    def increment_external_calls(self) -> int:
        return self.increment(EXTERNAL_CALLS_KEY)
