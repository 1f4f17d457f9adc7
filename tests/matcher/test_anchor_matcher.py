# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for the suffix-in-window AnchorMatcher.
"""

import pytest

from smartcue.matcher import AnchorMatcher, max_allowed_distance
from smartcue.normalizer import normalize


def make_matcher(text: str, start_fraction: float = 0.0, **kwargs) -> AnchorMatcher:
    return AnchorMatcher(normalize(text), start_fraction, **kwargs)


class TestMaxAllowedDistance:
    """Jump limits grow with the length of the matched suffix."""

    @pytest.mark.parametrize("length,expected", [
        (20, 150),
        (8, 150),
        (7, 80),
        (5, 80),
        (4, 30),
        (3, 30),
        (2, 10),
    ])
    def test_latin_limits(self, length, expected):
        assert max_allowed_distance(length, is_cjk=False) == expected

    def test_cjk_multiplier(self):
        """Ideographic suffixes get 1.5x the limit."""
        assert max_allowed_distance(8, is_cjk=True) == pytest.approx(225)
        assert max_allowed_distance(3, is_cjk=True) == pytest.approx(45)
        assert max_allowed_distance(2, is_cjk=True) == pytest.approx(15)

    def test_custom_thresholds(self):
        thresholds = ((10, 500), (4, 40))
        assert max_allowed_distance(12, False, thresholds, 5, 2.0) == 500
        assert max_allowed_distance(4, False, thresholds, 5, 2.0) == 40
        assert max_allowed_distance(3, True, thresholds, 5, 2.0) == 10


class TestSequentialMatching:
    """Reading the script in order advances step by step."""

    def test_abc_def_ghi(self):
        """Consecutive fragments each advance by their own length."""
        matcher = make_matcher("ABCDEFGHIJ")
        assert matcher.feed("ABC") == pytest.approx(0.3)
        assert matcher.feed("DEF") == pytest.approx(0.6)
        assert matcher.feed("GHI") == pytest.approx(0.9)
        assert matcher.last_index == 9

    def test_punctuation_and_case_ignored(self):
        """Matching works on the normalized, case-folded text."""
        matcher = make_matcher("Hello, World!")
        assert matcher.feed("hello world") == pytest.approx(1.0)

    def test_short_latin_suffix_continuing_in_place(self):
        """A two-letter fragment is accepted when it continues exactly here."""
        matcher = make_matcher("ABCDEFGHIJ")
        assert matcher.feed("AB") == pytest.approx(0.2)

    def test_repeated_fragment_does_not_advance(self):
        """Feeding the same fragment again is a no-op."""
        matcher = make_matcher("ABCDEFGHIJ")
        assert matcher.feed("ABC") == pytest.approx(0.3)
        assert matcher.feed("ABC") is None
        assert matcher.last_index == 3

    def test_cjk_script(self):
        matcher = make_matcher("今天天气很好，我们去公园散步。")
        assert matcher.feed("今天天气") == pytest.approx(4 / 13)
        assert matcher.feed("很好") == pytest.approx(6 / 13)


class TestJumpLimits:
    """Matches are only trusted within a distance that depends on length."""

    def test_long_match_may_jump_far(self):
        """Ten matched characters may skip ahead 100 characters."""
        matcher = make_matcher("z" * 100 + "helloworld" + "z" * 50)
        assert matcher.feed("hello world") == pytest.approx(110 / 160)

    def test_short_latin_match_ahead_rejected(self):
        """A two-letter Latin match 15 characters ahead is not trusted."""
        matcher = make_matcher("x" * 15 + "qz" + "y" * 10)
        assert matcher.feed("qz") is None
        assert matcher.last_index == 0

    def test_short_cjk_match_within_limit(self):
        """Two ideographs may jump up to 15 characters."""
        matcher = make_matcher("一二三四五六七八九十你好")
        assert matcher.feed("你好") == pytest.approx(1.0)

    def test_short_cjk_match_beyond_limit(self):
        matcher = make_matcher("甲" * 20 + "你好" + "乙" * 5)
        assert matcher.feed("你好") is None
        assert matcher.last_index == 0

    def test_three_ideographs_within_cjk_limit(self):
        """Three ideographs get 30 * 1.5 = 45 characters."""
        matcher = make_matcher("甲" * 40 + "你好吗" + "乙" * 5)
        assert matcher.feed("你好吗") == pytest.approx(43 / 48)

    def test_falls_back_to_shorter_nearby_suffix(self):
        """A long suffix too far away gives way to a shorter one close by."""
        # "abcdefg" sits 94 characters ahead (limit 80), "defg" right here
        matcher = make_matcher("defg" + "x" * 90 + "abcdefg")
        assert matcher.feed("abcdefg") == pytest.approx(4 / 101)
        assert matcher.last_index == 4

    def test_match_outside_window_not_found(self):
        """Nothing beyond search_window characters is considered."""
        matcher = make_matcher("x" * 30 + "abcdefgh", search_window=20)
        assert matcher.feed("abcdefgh") is None

    def test_custom_distance_thresholds(self):
        """Thresholds from configuration (lists of lists) are honoured."""
        matcher = make_matcher(
            "z" * 100 + "helloworld",
            distance_thresholds=[[8, 50], [5, 20], [3, 10]]
        )
        assert matcher.feed("helloworld") is None


class TestBuffer:
    """The recent-input buffer lets suffixes span fragments."""

    def test_suffix_spans_fragments(self):
        """A word split across two fragments still matches."""
        matcher = make_matcher("x" * 90 + "teleprompter" + "y" * 8)
        assert matcher.feed("telep") is None  # 90 ahead, limit 80 for 5 chars
        assert matcher.feed("rompter") == pytest.approx(102 / 110)

    def test_buffer_capped(self):
        matcher = make_matcher("ABCDEFGHIJ", buffer_size=60)
        matcher.feed("a" * 100)
        assert len(matcher.state.recent_buffer) == 60

    def test_suffix_length_capped(self):
        """Only the last max_suffix_length characters are tried."""
        matcher = make_matcher("abcdefghij" + "x" * 40, max_suffix_length=4)
        # The full fragment is in the script but only "ghij" is searched
        assert matcher.feed("abcdefghij") == pytest.approx(10 / 50)
        assert "abcdefghij" in matcher.state.recent_buffer
