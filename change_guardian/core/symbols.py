"""
Top-level symbol extraction.

``RegexSymbolExtractor`` is a lexical heuristic, not a parser. It recognises:

- ``function name(params)`` / ``async function name(params)``
- ``const|let|var name = (...) =>`` and ``name = arg =>`` arrow assignments,
  optionally ``async``
- ``class Name``

Every match is whitespace-collapsed and trimmed, so ``function   foo`` and
``function foo`` are the same signature.

Known limitation: a rename shows up as one symbol vanishing and another
appearing. Symbols written in other styles (object methods, ``export default``
expressions, Python ``def``) are not seen. Both are false-positive/negative
sources of the symbol rule and are kept as-is.

A language-aware extractor can replace this one by implementing
``SymbolExtractor``; the comparator only depends on that interface.
"""

import re
from abc import ABC, abstractmethod
from typing import List, Set


SYMBOL_PATTERN = re.compile(
    r'(?:async\s+)?function\s+[\w$]+(?:\s*\([^)]*\))?'
    r'|(?:const|let|var)\s+[\w$]+\s*=\s*(?:async\s*)?(?:\([^)]*\)|[\w$]+)\s*=>'
    r'|class\s+[\w$]+'
)

_WHITESPACE = re.compile(r'\s+')


def normalize_signature(text: str) -> str:
    """Collapse runs of whitespace to one space and trim."""
    return _WHITESPACE.sub(' ', text).strip()


class SymbolExtractor(ABC):
    """Extracts top-level declaration signatures from source text."""

    @abstractmethod
    def extract_ordered(self, source_text: str) -> List[str]:
        """Return unique signatures in first-seen order."""

    def extract(self, source_text: str) -> Set[str]:
        return set(self.extract_ordered(source_text))


class RegexSymbolExtractor(SymbolExtractor):
    """Single-regex extractor for JavaScript-style declarations."""

    def __init__(self, pattern: re.Pattern = SYMBOL_PATTERN):
        self.pattern = pattern

    def extract_ordered(self, source_text: str) -> List[str]:
        seen = set()
        ordered = []
        for match in self.pattern.finditer(source_text):
            signature = normalize_signature(match.group(0))
            if signature not in seen:
                seen.add(signature)
                ordered.append(signature)
        return ordered
