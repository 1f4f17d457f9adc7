# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Streaming matchers that turn transcript fragments into script progress.

A matcher is fed successive, noisy pieces of recognized speech and answers
with a progress fraction in [0, 1] of the normalized script, or None when the
fragment does not line up with the script confidently enough. Returned
fractions only ever increase between resyncs, so a stale or accidental match
can never scroll the view backwards.

Two strategies share the same state and contract:
- AnchorMatcher: longest recent suffix found inside a lookahead window, with
  jump limits that grow with the length of the match.
- FuzzyMatcher: exact fragment search, falling back to greedy in-order
  character coverage. More tolerant of misrecognized characters, more prone
  to advancing on coincidence.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from . import debug_log
from .normalizer import contains_ideograph, normalize

logger = logging.getLogger(__name__)

# (minimum suffix length, maximum distance) pairs, longest first
DistanceThresholds = tuple[tuple[int, int], ...]

DEFAULT_DISTANCE_THRESHOLDS: DistanceThresholds = ((8, 150), (5, 80), (3, 30))
DEFAULT_SHORT_DISTANCE: int = 10
DEFAULT_CJK_MULTIPLIER: float = 1.5

STRATEGIES: tuple[str, ...] = ("anchor", "fuzzy")


def max_allowed_distance(
    length: int,
    is_cjk: bool,
    thresholds: DistanceThresholds = DEFAULT_DISTANCE_THRESHOLDS,
    short_distance: int = DEFAULT_SHORT_DISTANCE,
    cjk_multiplier: float = DEFAULT_CJK_MULTIPLIER
) -> float:
    """
    How far ahead a match of the given length may be found and still trusted.

    Longer matches are far less likely to be coincidental, so they may jump
    further. Ideographic suffixes carry more information per character and
    get a multiplier.

    Args:
        length: Length of the matched suffix
        is_cjk: Whether the suffix contains an ideograph
        thresholds: (min_length, max_distance) pairs, checked in order
        short_distance: Limit for suffixes shorter than every threshold
        cjk_multiplier: Scale applied to the limit for CJK suffixes

    Returns:
        Maximum allowed distance from the current index
    """
    limit: float = short_distance
    for min_length, distance in thresholds:
        if length >= min_length:
            limit = distance
            break
    if is_cjk:
        limit *= cjk_multiplier
    return limit


@dataclass
class MatcherState:
    """Alignment state shared by every matching strategy."""
    normalized_script: str
    script_length: int
    last_index: int = 0  # Only moves forward between resyncs
    recent_buffer: str = ""  # Trailing window of normalized input
    last_fraction: float = 0.0  # Floor for the next returned fraction


class StreamMatcher(ABC):
    """
    Base class for streaming script matchers.

    Subclasses implement _find(), which proposes a new normalized index for a
    cleaned fragment. The base class owns normalization, the recent-input
    buffer and the monotonic guard.
    """

    strategy: str = ""

    state: MatcherState
    search_window: int
    buffer_size: int

    def __init__(
        self,
        normalized_script: str,
        start_fraction: float = 0.0,
        search_window: int = 150,
        buffer_size: int = 60
    ) -> None:
        """
        Initialize the matcher.

        Args:
            normalized_script: Script already reduced to the alignment alphabet
            start_fraction: Progress to start matching from (0-1)
            search_window: Number of script characters to look ahead
            buffer_size: Maximum length of the recent-input buffer
        """
        self.search_window = search_window
        self.buffer_size = buffer_size
        self.state = MatcherState(
            normalized_script=normalized_script,
            script_length=len(normalized_script)
        )
        # Case-insensitive search space; lower() keeps ASCII lengths intact
        self._haystack: str = normalized_script.lower()
        self.resync(start_fraction)
        logger.debug(
            "%s matcher initialized: script_len=%d start=%d window=%d",
            self.strategy, self.state.script_length, self.state.last_index,
            self.search_window
        )

    @property
    def last_index(self) -> int:
        """Current position in the normalized script."""
        return self.state.last_index

    @property
    def script_length(self) -> int:
        """Length of the normalized script."""
        return self.state.script_length

    @property
    def progress(self) -> float:
        """Current position as a fraction of the script."""
        if not self.state.script_length:
            return 0.0
        return self.state.last_index / self.state.script_length

    def _window(self) -> tuple[int, str]:
        """Return the lookahead window and its start index."""
        start: int = self.state.last_index
        end: int = min(self.state.script_length, start + self.search_window)
        return start, self._haystack[start:end]

    def feed(self, fragment: str) -> float | None:
        """
        Consume a transcript fragment.

        Args:
            fragment: Raw recognized text (may be empty or unrelated to the script)

        Returns:
            New progress fraction, or None if the position did not change
        """
        if not fragment or not self.state.script_length:
            return None
        clean: str = normalize(fragment).lower()
        if not clean:
            return None

        buffer: str = self.state.recent_buffer + clean
        if len(buffer) > self.buffer_size:
            buffer = buffer[-self.buffer_size:]
        self.state.recent_buffer = buffer

        new_index: int | None = self._find(clean)
        return self._advance(new_index, fragment)

    def _advance(self, new_index: int | None, fragment: str) -> float | None:
        """Apply a proposed index if it moves strictly forward."""
        old_index: int = self.state.last_index
        if new_index is None:
            debug_log.log_no_update(self.strategy, old_index, fragment)
            return None
        new_index = min(new_index, self.state.script_length)
        if new_index <= old_index:
            logger.debug("Ignoring non-advancing index %d (at %d)",
                         new_index, old_index)
            return None

        fraction: float = new_index / self.state.script_length
        if fraction <= self.state.last_fraction:
            return None

        self.state.last_index = new_index
        self.state.last_fraction = fraction
        debug_log.log_match(self.strategy, old_index, new_index, fraction, fragment)
        return fraction

    @abstractmethod
    def _find(self, clean: str) -> int | None:
        """
        Propose a new index for a cleaned, lower-cased fragment.

        The fragment has already been appended to state.recent_buffer.
        """

    def resync(self, fraction: float) -> None:
        """
        Re-anchor the matcher at a progress fraction.

        Used after the user scrolls by hand: the matcher continues from where
        they landed, and the monotonic floor restarts from there.
        """
        fraction = max(0.0, min(1.0, fraction))
        index: int = int(self.state.script_length * fraction)
        self.state.last_index = index
        self.state.recent_buffer = ""
        self.state.last_fraction = (
            index / self.state.script_length if self.state.script_length else 0.0
        )
        debug_log.log_resync(self.strategy, index, fraction)

    def reset(self) -> None:
        """Return to the start of the script."""
        self.resync(0.0)


class AnchorMatcher(StreamMatcher):
    """
    Suffix-in-window matcher.

    Looks for the longest suffix of recent input inside the next
    search_window characters of the script. A hit is only trusted if it is
    close enough for its length (see max_allowed_distance); otherwise shorter
    suffixes are tried, since a short match nearby can still be right when a
    long match was too far away.

    Latin suffixes shorter than min_latin_suffix are only accepted when they
    continue exactly at the current index.
    """

    strategy = "anchor"

    def __init__(
        self,
        normalized_script: str,
        start_fraction: float = 0.0,
        search_window: int = 150,
        buffer_size: int = 60,
        max_suffix_length: int = 20,
        min_latin_suffix: int = 4,
        distance_thresholds: DistanceThresholds = DEFAULT_DISTANCE_THRESHOLDS,
        short_distance: int = DEFAULT_SHORT_DISTANCE,
        cjk_multiplier: float = DEFAULT_CJK_MULTIPLIER
    ) -> None:
        self.max_suffix_length = max_suffix_length
        self.min_latin_suffix = min_latin_suffix
        self.distance_thresholds = tuple(
            (int(length), int(distance)) for length, distance in distance_thresholds
        )
        self.short_distance = short_distance
        self.cjk_multiplier = cjk_multiplier
        super().__init__(normalized_script, start_fraction,
                         search_window=search_window, buffer_size=buffer_size)

    def _find(self, clean: str) -> int | None:
        start, window = self._window()
        if not window:
            return None
        buffer: str = self.state.recent_buffer

        for length in range(min(len(buffer), self.max_suffix_length), 1, -1):
            suffix: str = buffer[-length:]
            is_cjk: bool = contains_ideograph(suffix)
            short_latin: bool = not is_cjk and length < self.min_latin_suffix

            distance: int = window.find(suffix)
            if distance == -1:
                continue
            if short_latin and distance != 0:
                continue

            limit: float = max_allowed_distance(
                length, is_cjk, self.distance_thresholds,
                self.short_distance, self.cjk_multiplier
            )
            if distance <= limit:
                return start + distance + length

            logger.debug("Rejected '%s' at distance %d (max %.0f)",
                         suffix, distance, limit)
            debug_log.log_rejected(self.strategy, start, suffix, distance, limit)
        return None


class FuzzyMatcher(StreamMatcher):
    """
    Coverage-scoring matcher.

    Tries an exact match of the whole fragment in the lookahead window first.
    Otherwise each fragment character is greedily matched to its next
    occurrence in the window, in order; if more than coverage_threshold of
    the characters were found, the position moves just past the last one.
    """

    strategy = "fuzzy"

    def __init__(
        self,
        normalized_script: str,
        start_fraction: float = 0.0,
        search_window: int = 150,
        buffer_size: int = 60,
        coverage_threshold: float = 0.6
    ) -> None:
        self.coverage_threshold = coverage_threshold
        super().__init__(normalized_script, start_fraction,
                         search_window=search_window, buffer_size=buffer_size)

    def coverage(self, clean: str, window: str) -> tuple[int, int]:
        """
        Greedy in-order coverage of a fragment over a window.

        Returns:
            Tuple of (matched character count, window index of the last match or -1)
        """
        matched: int = 0
        cursor: int = 0
        last_match: int = -1
        for char in clean:
            found: int = window.find(char, cursor)
            if found == -1:
                continue
            matched += 1
            last_match = found
            cursor = found + 1
        return matched, last_match

    def _find(self, clean: str) -> int | None:
        start, window = self._window()
        if not window:
            return None

        exact: int = window.find(clean)
        if exact != -1:
            return start + exact + len(clean)

        matched, last_match = self.coverage(clean, window)
        if last_match == -1 or matched / len(clean) <= self.coverage_threshold:
            return None
        return start + last_match + 1


def create_matcher(
    normalized_script: str,
    start_fraction: float = 0.0,
    strategy: str = "anchor",
    **tuning: object
) -> StreamMatcher:
    """
    Build a matcher for the named strategy.

    Args:
        normalized_script: Script reduced to the alignment alphabet
        start_fraction: Progress to start from
        strategy: "anchor" or "fuzzy"
        **tuning: Strategy keyword arguments (unknown keys are ignored)

    Raises:
        ValueError: If the strategy is unknown
    """
    matcher_cls: type[StreamMatcher]
    if strategy == "anchor":
        matcher_cls = AnchorMatcher
        allowed = ("search_window", "buffer_size", "max_suffix_length",
                   "min_latin_suffix", "distance_thresholds",
                   "short_distance", "cjk_multiplier")
    elif strategy == "fuzzy":
        matcher_cls = FuzzyMatcher
        allowed = ("search_window", "buffer_size", "coverage_threshold")
    else:
        raise ValueError(
            f"Unknown matching strategy '{strategy}' (expected one of {STRATEGIES})")

    kwargs = {k: v for k, v in tuning.items() if k in allowed and v is not None}
    return matcher_cls(normalized_script, start_fraction, **kwargs)  # type: ignore[arg-type]
