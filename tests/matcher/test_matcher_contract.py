# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Behaviour shared by every matching strategy.
"""

import pytest

from smartcue.matcher import (
    STRATEGIES,
    AnchorMatcher,
    FuzzyMatcher,
    StreamMatcher,
    create_matcher,
)
from smartcue.normalizer import normalize

SCRIPT = ("The quick brown fox jumps over the lazy dog. "
          "Pack my box with five dozen liquor jugs.")


@pytest.fixture(params=STRATEGIES)
def strategy(request) -> str:
    return request.param


def build(strategy: str, text: str = "ABCDEFGHIJ", start_fraction: float = 0.0) -> StreamMatcher:
    return create_matcher(normalize(text), start_fraction, strategy=strategy)


class TestNoOps:
    """Fragments that cannot be placed leave the state untouched."""

    @pytest.mark.parametrize("fragment", ["", "   ", "...!?", "，。"])
    def test_empty_after_normalization(self, strategy, fragment):
        matcher = build(strategy)
        assert matcher.feed(fragment) is None
        assert matcher.last_index == 0
        assert matcher.state.recent_buffer == ""

    def test_unrelated_text(self, strategy):
        matcher = build(strategy)
        assert matcher.feed("zzzz") is None
        assert matcher.last_index == 0

    def test_empty_script(self, strategy):
        matcher = build(strategy, "")
        assert matcher.feed("anything") is None
        assert matcher.progress == 0.0

    def test_end_of_script(self, strategy):
        """Once at the end nothing more can match."""
        matcher = build(strategy)
        assert matcher.feed("ABCDEFGHIJ") == pytest.approx(1.0)
        assert matcher.feed("HIJ") is None


class TestMonotonic:
    """Progress never moves backwards between resyncs."""

    def test_indices_never_decrease(self, strategy):
        matcher = build(strategy, SCRIPT)
        fragments = [
            "the quick", "brown", "the quick", "fox jumps", "um", "over the",
            "quick brown", "lazy dog", "pack my", "the", "box with five",
            "dozen", "fox", "liquor jugs",
        ]
        last_index = matcher.last_index
        last_fraction = 0.0
        for fragment in fragments:
            fraction = matcher.feed(fragment)
            assert matcher.last_index >= last_index
            if fraction is not None:
                assert fraction > last_fraction
                assert 0.0 < fraction <= 1.0
                last_fraction = fraction
            last_index = matcher.last_index
        assert matcher.progress > 0.5

    def test_start_fraction(self, strategy):
        """A matcher starting half-way cannot match the first half."""
        matcher = build(strategy, start_fraction=0.5)
        assert matcher.last_index == 5
        assert matcher.feed("ABC") is None
        assert matcher.feed("FGH") == pytest.approx(0.8)


class TestResync:
    """resync() re-anchors the matcher and restarts the monotonic floor."""

    def test_resync_moves_back(self, strategy):
        matcher = build(strategy)
        matcher.feed("ABC")
        matcher.feed("DEF")
        matcher.feed("GHI")
        matcher.resync(0.0)
        assert matcher.last_index == 0
        assert matcher.state.recent_buffer == ""
        assert matcher.feed("ABCD") == pytest.approx(0.4)

    def test_resync_clamps(self, strategy):
        matcher = build(strategy)
        matcher.resync(1.5)
        assert matcher.last_index == 10
        matcher.resync(-0.5)
        assert matcher.last_index == 0

    def test_reset(self, strategy):
        matcher = build(strategy)
        matcher.feed("ABCDE")
        matcher.reset()
        assert matcher.last_index == 0
        assert matcher.progress == 0.0


class TestCreateMatcher:
    """Tests for the strategy factory."""

    def test_strategies(self):
        assert isinstance(create_matcher("abc", strategy="anchor"), AnchorMatcher)
        assert isinstance(create_matcher("abc", strategy="fuzzy"), FuzzyMatcher)

    def test_unknown_strategy(self):
        with pytest.raises(ValueError, match="Unknown matching strategy"):
            create_matcher("abc", strategy="levenshtein")

    def test_tuning_filtered_per_strategy(self):
        """Keys meant for the other strategy are ignored."""
        anchor = create_matcher("abc", strategy="anchor",
                                coverage_threshold=0.9, max_suffix_length=8)
        assert isinstance(anchor, AnchorMatcher)
        assert anchor.max_suffix_length == 8

        fuzzy = create_matcher("abc", strategy="fuzzy",
                               coverage_threshold=0.9, max_suffix_length=8)
        assert isinstance(fuzzy, FuzzyMatcher)
        assert fuzzy.coverage_threshold == 0.9

    def test_none_values_use_defaults(self):
        matcher = create_matcher("abc", strategy="anchor", search_window=None)
        assert matcher.search_window == 150
