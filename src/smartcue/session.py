# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Teleprompter session: one script, one mode, one motion controller.

The session owns the lifecycle (start/stop/pause/resume/switch mode), turns
settings into controller parameters, retries starts until the rendering
surface has measured the layout, and delivers transcript fragments to the
controller. Switching modes always stops the previous driver first.
"""

import logging
from collections.abc import AsyncIterable
from enum import Enum
from typing import Any

from .config import (
    DEFAULT_CONFIG,
    MotionSettings,
    PrompterSettings,
    TrackingSettings,
    coerce_display_settings,
    get_display_settings,
    get_motion_settings,
    get_tracking_settings,
)
from .matcher import StreamMatcher, create_matcher
from .motion import MotionController, MotionListener, MotionUpdate
from .normalizer import Script
from .scheduler import FrameScheduler

logger = logging.getLogger(__name__)


class SessionMode(str, Enum):
    """Which automatic driver start() engages."""
    TIMED = "timed"
    FOLLOW = "follow"


class TranscriptDeltaTracker:
    """
    Turns cumulative recognizer results into the newly recognized text.

    Recognizers typically report the whole utterance so far on every update.
    Only the part after what was already seen is passed on. A result shorter
    than the previous one starts a new utterance.
    """

    def __init__(self) -> None:
        self.last_text: str = ""

    def delta(self, text: str) -> str:
        """Return the unseen part of a cumulative result."""
        if not text:
            return ""
        if len(text) < len(self.last_text):
            new_text = text
        else:
            # Revised earlier words are not re-matched; only the tail is new
            new_text = text[len(self.last_text):]
        self.last_text = text
        return new_text

    def reset(self) -> None:
        """Forget the previous result (recognizer restarted)."""
        self.last_text = ""


class TeleprompterSession:
    """
    Coordinates a loaded script with a motion controller.

    Settings are passthrough configuration (see config.PrompterSettings);
    persisting them is left to the caller.
    """

    script: Script
    settings: PrompterSettings
    tracking: TrackingSettings
    motion: MotionSettings
    mode: SessionMode
    controller: MotionController

    def __init__(
        self,
        script_text: str,
        scheduler: FrameScheduler,
        settings: dict[str, Any] | None = None,
        tracking: dict[str, Any] | None = None,
        motion: dict[str, Any] | None = None,
        listener: MotionListener | None = None
    ) -> None:
        """
        Initialize the session.

        Args:
            script_text: Raw script text (immutable for the session)
            scheduler: Timeline for frames and timers
            settings: Display/timing overrides (merged over defaults)
            tracking: Matcher overrides (merged over defaults)
            motion: Motion overrides (merged over defaults)
            listener: Receives MotionUpdate objects for the rendering surface
        """
        self.scheduler = scheduler
        self.script = Script.from_text(script_text)
        self.settings = get_display_settings({"display": settings or {}})  # type: ignore[typeddict-item]
        self.tracking = get_tracking_settings({"tracking": tracking or {}})  # type: ignore[typeddict-item]
        self.motion = get_motion_settings({"motion": motion or {}})  # type: ignore[typeddict-item]
        self.mode = SessionMode(self.settings.get("mode", DEFAULT_CONFIG["display"]["mode"]))

        self.controller = MotionController(
            scheduler,
            self._build_matcher,
            line_height=self.line_height,
            ease_rate=self.motion["ease_rate"],
            dead_zone=self.motion["dead_zone"],
            momentum_decay=self.motion["momentum_decay"],
            momentum_threshold=self.motion["momentum_threshold"],
            release_timeout=self.motion["release_timeout"],
            listener=listener
        )

        self._deltas = TranscriptDeltaTracker()
        self._retry_handle: object | None = None
        self._paused: bool = False
        logger.info("Session loaded: %d normalized characters, %d words",
                    self.script.length, self.script.reading_units)

    # ------------------------------------------------------------ properties

    @property
    def line_height(self) -> float:
        """Pixel height of one rendered line."""
        return float(self.settings["fontSize"]) * float(self.settings["lineHeight"])

    @property
    def is_running(self) -> bool:
        """True while a driver is engaged."""
        return self.controller.is_running

    @property
    def is_paused(self) -> bool:
        """True after pause() until resume() or stop()."""
        return self._paused

    @property
    def start_pending(self) -> bool:
        """True while waiting for the layout to be measured."""
        return self._retry_handle is not None

    @property
    def offset(self) -> float:
        """Current scroll offset."""
        return self.controller.offset

    @property
    def matcher(self) -> StreamMatcher | None:
        """The active matcher (FOLLOW mode only)."""
        return self.controller.matcher

    def snapshot(self) -> MotionUpdate:
        """Current motion for the rendering surface."""
        return self.controller.snapshot()

    def _build_matcher(self, start_fraction: float) -> StreamMatcher:
        tuning: dict[str, Any] = {
            k: v for k, v in self.tracking.items() if k != "strategy"
        }
        return create_matcher(
            self.script.normalized,
            start_fraction,
            strategy=self.tracking["strategy"],
            **tuning
        )

    # ------------------------------------------------------------- lifecycle

    def start(self) -> None:
        """
        Start the current mode.

        If the rendering surface has not reported a layout yet, the start is
        retried shortly instead of scrolling over a zero-length range.
        """
        self._cancel_retry()
        self._paused = False

        if not self.controller.layout_ready:
            delay: float = self.motion["layout_retry_ms"] / 1000.0
            logger.debug("Layout not measured, retrying start in %.2fs", delay)
            self._retry_handle = self.scheduler.call_later(delay, self._retry_start)
            return

        if self.mode == SessionMode.TIMED:
            self.controller.start_timed(
                self.settings["speed"],
                words_per_minute=self.settings.get("wordsPerMinute"),
                reading_units=self.script.reading_units,
                countdown=int(self.settings.get("countdown") or 0)
            )
        else:
            self._deltas.reset()
            self.controller.start_follow()

    def _retry_start(self) -> None:
        self._retry_handle = None
        self.start()

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self.scheduler.cancel(self._retry_handle)
            self._retry_handle = None

    def stop(self, actual_offset: float | None = None) -> None:
        """
        Stop everything: pending starts, countdown, drivers, momentum.

        Args:
            actual_offset: True offset reported by the rendering layer (used
                to freeze a timed transition exactly where it is drawn)
        """
        self._cancel_retry()
        self._paused = False
        self.controller.stop(actual_offset)

    def pause(self, actual_offset: float | None = None) -> None:
        """Stop, remembering that resume() should start again."""
        was_active: bool = (
            self.controller.is_running
            or self.controller.state.countdown > 0
            or self.start_pending
        )
        self.stop(actual_offset)
        self._paused = was_active

    def resume(self) -> None:
        """Start again after pause(); does nothing otherwise."""
        if self._paused:
            self.start()

    def toggle(self, actual_offset: float | None = None) -> None:
        """Pause if running, otherwise start."""
        if self.controller.is_running or self.controller.state.countdown > 0:
            self.pause(actual_offset)
        else:
            self.start()

    def switch_mode(self, mode: SessionMode | str) -> None:
        """
        Change mode, fully stopping the previous one first.

        Raises:
            ValueError: If the mode name is unknown
        """
        new_mode = SessionMode(mode)
        if new_mode == self.mode:
            return
        self.stop()
        self.mode = new_mode
        self.settings["mode"] = new_mode.value
        logger.info("Switched to %s mode", new_mode.value)

    def rewind(self) -> None:
        """Stop and return to the start of the script."""
        self.stop()
        self.controller.jump_to(0.0)

    # ----------------------------------------------------------- transcripts

    def feed_transcript(self, fragment: str) -> float | None:
        """Deliver a new transcript fragment (already a delta)."""
        return self.controller.feed_transcript(fragment)

    def feed_recognition(self, cumulative_text: str) -> float | None:
        """Deliver a cumulative recognizer result; only the new tail is matched."""
        delta: str = self._deltas.delta(cumulative_text)
        if not delta:
            return None
        return self.feed_transcript(delta)

    def recognizer_restarted(self) -> None:
        """The speech source started a new recognition run."""
        self._deltas.reset()

    async def consume(self, fragments: AsyncIterable[str]) -> None:
        """Feed fragments from an async source until it is exhausted."""
        async for fragment in fragments:
            self.feed_transcript(fragment)

    # ------------------------------------------------------ rendering input

    def update_layout(self, content_extent: float, viewport_extent: float) -> None:
        """Record layout extents measured by the rendering surface."""
        self.controller.set_layout(content_extent, viewport_extent)

    def touch_start(self, y: float, timestamp: float | None = None,
                    actual_offset: float | None = None) -> None:
        self.controller.touch_start(y, timestamp, actual_offset)

    def touch_move(self, y: float, timestamp: float | None = None) -> None:
        self.controller.touch_move(y, timestamp)

    def touch_end(self, timestamp: float | None = None) -> None:
        self.controller.touch_end(timestamp)

    def update_settings(self, changes: dict[str, Any]) -> PrompterSettings:
        """
        Merge settings changes.

        A mode change goes through switch_mode(); font metric changes update
        the controller's line height. Layout extents must be re-reported by
        the rendering surface after metric changes.

        Raises:
            ValueError: If a numeric setting is not a usable number. Nothing
                is changed in that case.
        """
        changes = coerce_display_settings(changes)
        mode = changes.pop("mode", None)
        if mode is not None:
            self.switch_mode(mode)
        self.settings.update(changes)  # type: ignore[typeddict-item]
        self.controller.line_height = self.line_height
        return self.settings
