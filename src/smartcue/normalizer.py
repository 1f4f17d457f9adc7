# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Script normalization for alignment.

Both the matcher and the progress math work in a "normalized" index space:
the script with everything except letters, digits and ideographs removed.
Punctuation and whitespace are never spoken, so they must not count against
alignment or against scroll progress.
"""

import re
from dataclasses import dataclass, field

# ASCII letters/digits plus CJK Unified Ideographs (and Extension A)
_IDEOGRAPH_RANGES: str = "\u3400-\u4dbf\u4e00-\u9fff"
_NON_ALIGNMENT_RE: re.Pattern[str] = re.compile(
    f"[^A-Za-z0-9{_IDEOGRAPH_RANGES}]")
_IDEOGRAPH_RE: re.Pattern[str] = re.compile(f"[{_IDEOGRAPH_RANGES}]")
_READING_UNIT_RE: re.Pattern[str] = re.compile(
    f"[A-Za-z0-9]+|[{_IDEOGRAPH_RANGES}]")


def normalize(text: str) -> str:
    """Strip text down to the alignment alphabet.

    Keeps ASCII letters, ASCII digits and ideographs, in order. The result is
    case-preserving and normalizing twice is the same as normalizing once.
    """
    if not text:
        return ""
    return _NON_ALIGNMENT_RE.sub("", text)


def is_ideograph(char: str) -> bool:
    """Check if a single character is a CJK ideograph."""
    return bool(char) and _IDEOGRAPH_RE.fullmatch(char) is not None


def contains_ideograph(text: str) -> bool:
    """Check if text contains at least one CJK ideograph."""
    return _IDEOGRAPH_RE.search(text) is not None


def count_reading_units(text: str) -> int:
    """Count words for reading-rate estimates.

    A run of ASCII letters/digits counts as one word; every ideograph counts
    as one word on its own.
    """
    return len(_READING_UNIT_RE.findall(text))


@dataclass(frozen=True)
class Script:
    """An immutable script with its normalized form."""
    raw: str
    normalized: str = field(init=False)
    reading_units: int = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "normalized", normalize(self.raw))
        object.__setattr__(self, "reading_units", count_reading_units(self.raw))

    @classmethod
    def from_text(cls, raw: str) -> "Script":
        """Build a Script from raw text (None is treated as empty)."""
        return cls(raw or "")

    @property
    def length(self) -> int:
        """Length of the normalized script."""
        return len(self.normalized)

    def fraction_to_index(self, fraction: float) -> int:
        """Convert a progress fraction to a normalized index (floored)."""
        fraction = max(0.0, min(1.0, fraction))
        return int(self.length * fraction)
