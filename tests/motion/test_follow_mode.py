# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for follow mode: speech-driven targets and per-frame easing.
"""

import pytest

from smartcue.matcher import AnchorMatcher
from smartcue.motion import DriveMode, MotionController


class TestStartFollow:
    """Starting follow mode."""

    def test_start(self, controller, scheduler):
        assert controller.start_follow() is True
        assert controller.mode == DriveMode.FOLLOW
        assert controller.is_running
        assert controller.matcher is not None
        assert controller.matcher.last_index == 0
        assert controller.state.target_offset == controller.offset
        assert scheduler.pending == 1  # The easing frame

    def test_start_fraction_from_geometry(self, controller):
        """The matcher starts at the text sitting on the focus line."""
        controller.jump_to(-564.0)
        controller.start_follow()
        assert controller.matcher.last_index == 5

    def test_explicit_start_fraction(self, controller):
        controller.start_follow(0.3)
        assert controller.matcher.last_index == 3

    def test_layout_not_ready(self, scheduler):
        ctrl = MotionController(scheduler, lambda f: AnchorMatcher("ABC", f))
        assert ctrl.start_follow() is False
        assert ctrl.matcher is None
        assert ctrl.mode == DriveMode.IDLE

    def test_needs_matcher_factory(self, scheduler):
        ctrl = MotionController(scheduler)
        ctrl.set_layout(1000.0, 600.0)
        with pytest.raises(RuntimeError):
            ctrl.start_follow()

    def test_replaces_timed_scroll(self, controller, scheduler):
        """Only one driver runs: starting follow stops a timed scroll."""
        controller.start_timed(5)
        scheduler.advance(5.0)
        controller.start_follow()
        assert controller.mode == DriveMode.FOLLOW
        assert controller.offset == pytest.approx(-250.0)
        scheduler.advance(30.0)
        assert controller.offset == pytest.approx(-250.0)


class TestFractionForOffset:
    """Tests for the offset to progress mapping."""

    def test_inverse_of_target(self, controller):
        assert controller.fraction_for_offset(-364.0) == pytest.approx(0.3)

    def test_clamped(self, controller):
        assert controller.fraction_for_offset(0.0) == 0.0
        assert controller.fraction_for_offset(-5000.0) == 1.0

    def test_no_layout(self, scheduler):
        assert MotionController(scheduler).fraction_for_offset(-100.0) == 0.0


class TestTranscriptTargets:
    """Matched progress becomes a target one line above the focus line."""

    def test_target_offset(self, controller):
        controller.start_follow()
        assert controller.feed_transcript("ABC") == pytest.approx(0.3)
        assert controller.state.target_offset == pytest.approx(-364.0)

    def test_unmatched_fragment_keeps_target(self, controller):
        controller.start_follow()
        controller.feed_transcript("ABC")
        assert controller.feed_transcript("zzzz") is None
        assert controller.state.target_offset == pytest.approx(-364.0)

    def test_ignored_when_not_following(self, controller):
        assert controller.feed_transcript("ABC") is None
        assert controller.state.target_offset == 0.0

    def test_jump_to_resyncs_matcher(self, controller):
        controller.start_follow()
        controller.feed_transcript("ABCDEFGH")
        controller.jump_to(-164.0)
        assert controller.matcher.last_index == 1
        assert controller.offset == -164.0
        assert controller.feed_transcript("BCD") == pytest.approx(0.4)


class TestEasing:
    """The frame loop eases the offset towards the target."""

    def test_first_frame(self, controller, scheduler):
        """Each frame closes ease_rate * dt of the gap (0.4 at 60 fps)."""
        controller.start_follow()
        controller.feed_transcript("ABC")
        scheduler.run_frames(1)
        assert controller.offset == pytest.approx(-364.0 * 0.4)

    def test_converges_and_snaps(self, controller, scheduler, updates):
        controller.start_follow()
        controller.feed_transcript("ABC")
        scheduler.run_frames(60)
        assert controller.offset == pytest.approx(-364.0)

        # Settled: further frames emit nothing
        count = len(updates)
        scheduler.run_frames(10)
        assert len(updates) == count

    def test_dead_zone_snaps(self, controller, scheduler):
        controller.start_follow()
        controller.feed_transcript("ABC")
        controller.state.offset = -363.5
        scheduler.run_frames(1)
        assert controller.offset == pytest.approx(-364.0)

    def test_step_clamped(self, scheduler):
        """The gap is never overshot, however large the rate."""
        ctrl = MotionController(scheduler, lambda f: AnchorMatcher("ABCDEFGHIJ", f),
                                ease_rate=100.0)
        ctrl.set_layout(1000.0, 600.0)
        ctrl.start_follow()
        ctrl.feed_transcript("ABC")
        scheduler.run_frames(1)
        assert ctrl.offset == pytest.approx(-364.0)

    def test_monotone_approach(self, controller, scheduler):
        controller.start_follow()
        controller.feed_transcript("ABCDE")
        offsets = []
        for _ in range(20):
            scheduler.run_frames(1)
            offsets.append(controller.offset)
        assert all(b <= a for a, b in zip(offsets, offsets[1:]))
        assert offsets[-1] >= -564.0


class TestStopFollow:
    """Stopping follow mode cancels the loop and discards the matcher."""

    def test_stop(self, controller, scheduler):
        controller.start_follow()
        controller.feed_transcript("ABC")
        scheduler.run_frames(3)
        frozen = controller.offset
        controller.stop_follow()

        assert controller.mode == DriveMode.IDLE
        assert not controller.is_running
        assert controller.matcher is None
        assert scheduler.pending == 0

        scheduler.run_frames(30)
        assert controller.offset == frozen
        assert controller.feed_transcript("DEF") is None
