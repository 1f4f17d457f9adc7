# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Scroll motion controller.

Owns the on-screen offset (pixels, 0 = start, negative = scrolled forward)
and arbitrates between the drive modes:
- TIMED: one linear transition to the end of the content, handed to the
  rendering surface as (target, duration)
- FOLLOW: a matcher turns speech into a target offset; a per-frame loop eases
  the offset towards it
- MANUAL: touch drags move the offset directly, then momentum decays and the
  previously active mode resumes from wherever the user left the view

Exactly one driver is active at a time. Touch always wins: it suspends the
automatic driver (its matcher is kept, its timers are cancelled) until the
momentum settles.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from . import debug_log
from .matcher import StreamMatcher
from .scheduler import FrameScheduler

logger = logging.getLogger(__name__)

DEFAULT_SPEED: int = 5


class DriveMode(str, Enum):
    """Which mechanism is currently moving the offset."""
    IDLE = "idle"
    TIMED = "timed"
    FOLLOW = "follow"
    MANUAL = "manual"


@dataclass
class MotionState:
    """Mutable motion state owned by a MotionController."""
    offset: float = 0.0
    target_offset: float = 0.0
    mode: DriveMode = DriveMode.IDLE
    is_running: bool = False
    content_extent: float = 0.0  # Measured scrollable length
    viewport_extent: float = 0.0
    velocity: float = 0.0  # Pixels per second, touch/momentum only
    countdown: int = 0
    resume_mode: DriveMode = DriveMode.IDLE  # Mode to return to after touch
    transition_duration: float = 0.0


@dataclass
class MotionUpdate:
    """What the rendering surface needs to draw a frame.

    A positive transition_duration means "animate linearly from offset to
    target_offset over that many seconds"; otherwise offset is drawn as is.
    """
    offset: float
    target_offset: float
    transition_duration: float
    mode: DriveMode
    is_running: bool
    countdown: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "offset": self.offset,
            "targetOffset": self.target_offset,
            "duration": self.transition_duration,
            "mode": self.mode.value,
            "isRunning": self.is_running,
            "countdown": self.countdown,
        }


@dataclass
class TimedTransition:
    """A linear transition in flight."""
    start_offset: float
    target_offset: float
    duration: float
    start_time: float

    @property
    def end_time(self) -> float:
        """Time at which the transition reaches its target."""
        return self.start_time + self.duration

    def offset_at(self, now: float) -> float:
        """Interpolated offset at a given time."""
        if self.duration <= 0:
            return self.target_offset
        progress: float = (now - self.start_time) / self.duration
        progress = max(0.0, min(1.0, progress))
        return self.start_offset + (self.target_offset - self.start_offset) * progress


def timed_duration(
    distance: float,
    total_distance: float | None = None,
    speed: float | None = None,
    words_per_minute: float | None = None,
    reading_units: int = 0
) -> float:
    """
    Duration of a timed scroll over a distance.

    With a words-per-minute rate and a word count, the whole script takes
    reading_units / wpm minutes and the duration is that time scaled by
    distance / total_distance. Otherwise a flat speed setting is used:
    speed * 8 + 10 pixels per second.

    Args:
        distance: Pixels left to scroll
        total_distance: Full scrollable distance (needed for WPM timing)
        speed: Speed setting (default 5)
        words_per_minute: Reading rate, overrides speed when usable
        reading_units: Words/ideographs in the script

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the speed setting gives a non-positive rate
    """
    distance = abs(distance)
    if words_per_minute and words_per_minute > 0 and reading_units > 0 \
            and total_distance and total_distance > 0:
        full_time: float = reading_units / words_per_minute * 60.0
        return full_time * distance / total_distance

    if speed is None:
        speed = DEFAULT_SPEED
    pixels_per_second: float = speed * 8 + 10
    if pixels_per_second <= 0:
        raise ValueError(f"Speed {speed} gives a non-positive scroll rate")
    return distance / pixels_per_second


MotionListener = Callable[[MotionUpdate], None]
MatcherFactory = Callable[[float], StreamMatcher]


class MotionController:
    """
    Single source of truth for the scroll offset.

    All mutation happens from direct calls or from callbacks on the given
    scheduler, so there is one mutator. A listener, if given, is called with
    a MotionUpdate whenever the rendering surface should redraw.
    """

    state: MotionState
    matcher: StreamMatcher | None

    def __init__(
        self,
        scheduler: FrameScheduler,
        matcher_factory: MatcherFactory | None = None,
        *,
        line_height: float = 64.0,
        ease_rate: float = 24.0,
        dead_zone: float = 1.0,
        momentum_decay: float = 0.95,
        momentum_threshold: float = 10.0,
        release_timeout: float = 0.1,
        listener: MotionListener | None = None
    ) -> None:
        """
        Initialize the controller.

        Args:
            scheduler: Timeline for frames and timers
            matcher_factory: Builds a matcher from a start fraction (for FOLLOW)
            line_height: Pixel height of one line; follow targets sit one line
                above the focus line so the spoken line stays visible
            ease_rate: Proportional easing rate per second in FOLLOW mode
            dead_zone: Offsets closer than this to the target snap to it
            momentum_decay: Velocity multiplier per nominal frame after release
            momentum_threshold: Speed (px/s) under which momentum settles
            release_timeout: A touch held still this long before release
                carries no momentum
            listener: Receives a MotionUpdate on every visible change
        """
        self.scheduler = scheduler
        self.matcher_factory = matcher_factory
        self.line_height = line_height
        self.ease_rate = ease_rate
        self.dead_zone = dead_zone
        self.momentum_decay = momentum_decay
        self.momentum_threshold = momentum_threshold
        self.release_timeout = release_timeout
        self.listener = listener

        self.state = MotionState()
        self.matcher = None

        self._transition: TimedTransition | None = None
        self._timed_params: dict[str, Any] = {"speed": DEFAULT_SPEED}
        self._frame_handle: object | None = None  # Easing or momentum frame
        self._timer_handle: object | None = None  # Countdown tick or transition end
        self._last_frame_time: float = 0.0
        self._last_touch_y: float = 0.0
        self._last_touch_time: float = 0.0

    # ----------------------------------------------------------------- state

    @property
    def offset(self) -> float:
        """Current offset, interpolated if a timed transition is in flight."""
        if self._transition is not None:
            return self._transition.offset_at(self.scheduler.now())
        return self.state.offset

    @property
    def mode(self) -> DriveMode:
        """Current drive mode."""
        return self.state.mode

    @property
    def is_running(self) -> bool:
        """True while an automatic driver is engaged (even if suspended by touch)."""
        return self.state.is_running

    @property
    def layout_ready(self) -> bool:
        """True once a non-zero content extent has been measured."""
        return self.state.content_extent > 0

    @property
    def end_offset(self) -> float:
        """Offset at which the whole content has scrolled past."""
        return -self.state.content_extent

    def set_layout(self, content_extent: float, viewport_extent: float) -> None:
        """
        Record measured layout extents.

        Raises:
            ValueError: If either extent is negative
        """
        if content_extent < 0 or viewport_extent < 0:
            raise ValueError(
                f"Layout extents must be non-negative, got "
                f"content={content_extent} viewport={viewport_extent}")
        self.state.content_extent = float(content_extent)
        self.state.viewport_extent = float(viewport_extent)

    def snapshot(self) -> MotionUpdate:
        """Current motion as the rendering surface sees it.

        Mid-transition the duration is the time left, so the pair still
        describes a linear move from ``offset`` to ``target_offset``.
        """
        duration = self.state.transition_duration
        if self._transition is not None:
            duration = max(0.0, self._transition.end_time - self.scheduler.now())
        return MotionUpdate(
            offset=self.offset,
            target_offset=self.state.target_offset,
            transition_duration=duration,
            mode=self.state.mode,
            is_running=self.state.is_running,
            countdown=self.state.countdown
        )

    def _emit(self) -> None:
        if self.listener is not None:
            self.listener(self.snapshot())

    def _set_mode(self, mode: DriveMode) -> None:
        if mode != self.state.mode:
            logger.debug("Mode %s -> %s", self.state.mode.value, mode.value)
            debug_log.log_mode_change(self.state.mode.value, mode.value, self.offset)
        self.state.mode = mode

    def _schedule_frame(self, callback: Callable[[float], None]) -> None:
        self._frame_handle = self.scheduler.request_frame(callback)

    def _cancel_frame(self) -> None:
        if self._frame_handle is not None:
            self.scheduler.cancel(self._frame_handle)
            self._frame_handle = None

    def _cancel_timer(self) -> None:
        if self._timer_handle is not None:
            self.scheduler.cancel(self._timer_handle)
            self._timer_handle = None

    def _freeze(self, offset: float) -> None:
        """Stop all motion at an offset."""
        self.state.offset = offset
        self.state.target_offset = offset
        self.state.transition_duration = 0.0
        self.state.velocity = 0.0

    # ----------------------------------------------------------------- timed

    def start_timed(
        self,
        speed: float | None = DEFAULT_SPEED,
        *,
        words_per_minute: float | None = None,
        reading_units: int = 0,
        countdown: int = 0
    ) -> bool:
        """
        Start a timed scroll to the end of the content.

        Args:
            speed: Flat speed setting (pixels per second = speed * 8 + 10)
            words_per_minute: Reading rate; used instead of speed when given
            reading_units: Words/ideographs in the script (for WPM timing)
            countdown: Seconds to count down before scrolling starts

        Returns:
            False if the layout has not been measured yet (nothing changes),
            True otherwise
        """
        if not self.layout_ready:
            logger.debug("start_timed: layout not ready")
            return False
        if self.state.mode != DriveMode.IDLE:
            self.stop()

        self._timed_params = {
            "speed": speed,
            "words_per_minute": words_per_minute,
            "reading_units": reading_units,
        }

        if countdown > 0:
            self._set_mode(DriveMode.TIMED)
            self.state.countdown = int(countdown)
            self._timer_handle = self.scheduler.call_later(1.0, self._countdown_tick)
            self._emit()
            return True

        return self._run_transition()

    def _countdown_tick(self) -> None:
        self._timer_handle = None
        if self.state.countdown > 1:
            self.state.countdown -= 1
            self._timer_handle = self.scheduler.call_later(1.0, self._countdown_tick)
            self._emit()
            return
        self.state.countdown = 0
        self._run_transition()

    def _run_transition(self) -> bool:
        """Start the linear transition from the current offset to the end."""
        start: float = self.state.offset
        target: float = self.end_offset
        distance: float = abs(target - start)
        if distance <= 0:
            # Nothing to scroll: not a running session
            self._set_mode(DriveMode.IDLE)
            self.state.is_running = False
            self._emit()
            return False

        duration: float = timed_duration(
            distance,
            total_distance=self.state.content_extent,
            **self._timed_params
        )
        self._transition = TimedTransition(
            start_offset=start,
            target_offset=target,
            duration=duration,
            start_time=self.scheduler.now()
        )
        self.state.target_offset = target
        self.state.transition_duration = duration
        self.state.is_running = True
        self._set_mode(DriveMode.TIMED)
        self._timer_handle = self.scheduler.call_later(duration, self._finish_transition)
        logger.info("Timed scroll: %.1f -> %.1f over %.2fs", start, target, duration)
        debug_log.log_transition(start, target, duration)
        self._emit()
        return True

    def _finish_transition(self) -> None:
        self._timer_handle = None
        if self._transition is None:
            return
        end: float = self._transition.target_offset
        self._transition = None
        self._freeze(end)
        self.state.is_running = False
        self._set_mode(DriveMode.IDLE)
        self._emit()

    def _halt_transition(self, actual_offset: float | None) -> float:
        """Cancel countdown/transition and return the offset to freeze at."""
        self._cancel_timer()
        self.state.countdown = 0
        if actual_offset is not None:
            frozen: float = actual_offset
        elif self._transition is not None:
            frozen = self._transition.offset_at(self.scheduler.now())
        else:
            frozen = self.state.offset
        self._transition = None
        return frozen

    def stop_timed(self, actual_offset: float | None = None) -> None:
        """
        Stop a timed scroll where it is.

        Args:
            actual_offset: The true interpolated offset reported by the
                rendering layer; if omitted the controller's own interpolation
                at the current time is used
        """
        if self.state.mode != DriveMode.TIMED:
            return
        self._freeze(self._halt_transition(actual_offset))
        self.state.is_running = False
        self._set_mode(DriveMode.IDLE)
        self._emit()

    # ---------------------------------------------------------------- follow

    def fraction_for_offset(self, offset: float | None = None) -> float:
        """Progress fraction whose follow target would be this offset."""
        if self.state.content_extent <= 0:
            return 0.0
        if offset is None:
            offset = self.offset
        fraction: float = (-offset - self.line_height) / self.state.content_extent
        return max(0.0, min(1.0, fraction))

    def start_follow(self, start_fraction: float | None = None) -> bool:
        """
        Start following speech.

        Args:
            start_fraction: Where the new matcher starts; computed from the
                current offset when omitted

        Returns:
            False if the layout has not been measured yet, True otherwise

        Raises:
            RuntimeError: If the controller has no matcher factory
        """
        if self.matcher_factory is None:
            raise RuntimeError("Follow mode needs a matcher factory")
        if not self.layout_ready:
            logger.debug("start_follow: layout not ready")
            return False
        if self.state.mode != DriveMode.IDLE:
            self.stop()

        if start_fraction is None:
            start_fraction = self.fraction_for_offset()
        self.matcher = self.matcher_factory(start_fraction)
        self.state.target_offset = self.state.offset
        self.state.transition_duration = 0.0
        self.state.is_running = True
        self._set_mode(DriveMode.FOLLOW)
        self._start_follow_loop()
        logger.info("Follow started at %.3f", start_fraction)
        self._emit()
        return True

    def _start_follow_loop(self) -> None:
        self._last_frame_time = self.scheduler.now()
        self._schedule_frame(self._follow_tick)

    def _follow_tick(self, now: float) -> None:
        self._frame_handle = None
        if self.state.mode != DriveMode.FOLLOW:
            return

        dt: float = max(0.0, now - self._last_frame_time)
        self._last_frame_time = now

        diff: float = self.state.target_offset - self.state.offset
        if diff != 0:
            if abs(diff) < self.dead_zone:
                self.state.offset = self.state.target_offset
            else:
                self.state.offset += diff * min(1.0, self.ease_rate * dt)
            self._emit()

        self._schedule_frame(self._follow_tick)

    def feed_transcript(self, fragment: str) -> float | None:
        """
        Forward a transcript fragment to the active matcher.

        Fragments are ignored unless FOLLOW mode is active (in particular
        while a touch has suspended it).

        Returns:
            The new progress fraction, or None if nothing changed
        """
        if self.state.mode != DriveMode.FOLLOW or self.matcher is None:
            return None
        fraction: float | None = self.matcher.feed(fragment)
        if fraction is None:
            return None
        self.state.target_offset = -(self.state.content_extent * fraction) - self.line_height
        debug_log.log_target(self.state.offset, self.state.target_offset, fraction)
        return fraction

    def stop_follow(self) -> None:
        """Stop the easing loop and discard the matcher."""
        self._cancel_frame()
        self.matcher = None
        if self.state.mode != DriveMode.FOLLOW:
            return
        self._freeze(self.state.offset)
        self.state.is_running = False
        self._set_mode(DriveMode.IDLE)
        self._emit()

    # ---------------------------------------------------------------- manual

    def touch_start(
        self,
        y: float,
        timestamp: float | None = None,
        actual_offset: float | None = None
    ) -> None:
        """
        Begin a manual drag, suspending any automatic driver.

        Args:
            y: Vertical touch position
            timestamp: Sample time in seconds (scheduler time if omitted)
            actual_offset: True offset reported by the rendering layer, used
                when interrupting a timed transition
        """
        timestamp = self.scheduler.now() if timestamp is None else timestamp
        mode: DriveMode = self.state.mode

        if mode == DriveMode.MANUAL:
            # Caught during momentum
            self._cancel_frame()
        elif mode == DriveMode.TIMED:
            self.state.offset = self._halt_transition(actual_offset)
            self.state.resume_mode = DriveMode.TIMED
        elif mode == DriveMode.FOLLOW:
            self._cancel_frame()
            self.state.resume_mode = DriveMode.FOLLOW
        else:
            self.state.resume_mode = DriveMode.IDLE

        self._freeze(self.state.offset)
        self.state.is_running = self.state.resume_mode != DriveMode.IDLE
        self._set_mode(DriveMode.MANUAL)
        self._last_touch_y = y
        self._last_touch_time = timestamp
        self._emit()

    def touch_move(self, y: float, timestamp: float | None = None) -> None:
        """Move the offset by the drag delta and track velocity."""
        timestamp = self.scheduler.now() if timestamp is None else timestamp
        if self.state.mode != DriveMode.MANUAL:
            self.touch_start(y, timestamp)
            return

        delta: float = y - self._last_touch_y
        elapsed: float = timestamp - self._last_touch_time
        self.state.offset += delta
        self.state.target_offset = self.state.offset
        if elapsed > 0:
            self.state.velocity = delta / elapsed
        self._last_touch_y = y
        self._last_touch_time = timestamp
        self._emit()

    def touch_end(self, timestamp: float | None = None) -> None:
        """
        Release the drag and let momentum carry the offset.

        Without a timestamp the release counts as happening at the last
        touch sample, which keeps the comparison on the client's clock.
        """
        if self.state.mode != DriveMode.MANUAL:
            return
        timestamp = self._last_touch_time if timestamp is None else timestamp
        if timestamp - self._last_touch_time > self.release_timeout:
            self.state.velocity = 0.0

        if abs(self.state.velocity) < self.momentum_threshold:
            self._settle()
            return
        self._last_frame_time = self.scheduler.now()
        self._schedule_frame(self._momentum_tick)

    def _momentum_tick(self, now: float) -> None:
        self._frame_handle = None
        if self.state.mode != DriveMode.MANUAL:
            return

        dt: float = max(0.0, now - self._last_frame_time)
        self._last_frame_time = now
        self.state.offset += self.state.velocity * dt
        self.state.target_offset = self.state.offset
        self.state.velocity *= self.momentum_decay ** (dt / self.scheduler.frame_interval)
        self._emit()

        if abs(self.state.velocity) < self.momentum_threshold:
            self._settle()
        else:
            self._schedule_frame(self._momentum_tick)

    def _settle(self) -> None:
        """Momentum is over: resume whichever mode the touch interrupted."""
        self.state.velocity = 0.0
        resume: DriveMode = self.state.resume_mode
        self.state.resume_mode = DriveMode.IDLE
        self._set_mode(DriveMode.IDLE)

        if resume == DriveMode.TIMED:
            self._run_transition()
            return

        if resume == DriveMode.FOLLOW and self.matcher is not None:
            # Resync from geometry so stale matches cannot pull the view back
            self.matcher.resync(self.fraction_for_offset(self.state.offset))
            self.state.target_offset = self.state.offset
            self.state.is_running = True
            self._set_mode(DriveMode.FOLLOW)
            self._start_follow_loop()
            self._emit()
            return

        self.state.is_running = False
        self._emit()

    # ------------------------------------------------------------------ misc

    def stop(self, actual_offset: float | None = None) -> None:
        """Stop whichever driver is active, including touch momentum."""
        mode: DriveMode = self.state.mode
        if mode == DriveMode.TIMED:
            self.stop_timed(actual_offset)
        elif mode == DriveMode.FOLLOW:
            self.stop_follow()
        elif mode == DriveMode.MANUAL:
            self._cancel_frame()
            self._cancel_timer()
            self.matcher = None
            self.state.resume_mode = DriveMode.IDLE
            self._freeze(self.state.offset)
            self.state.is_running = False
            self._set_mode(DriveMode.IDLE)
            self._emit()

    def jump_to(self, offset: float) -> None:
        """Place the offset directly, with no transition."""
        if self._transition is not None:
            self.stop_timed()
        self._freeze(offset)
        if self.state.mode == DriveMode.FOLLOW and self.matcher is not None:
            self.matcher.resync(self.fraction_for_offset(offset))
        self._emit()
