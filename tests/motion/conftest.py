# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Shared fixtures for motion controller tests.
"""

import pytest

from smartcue.matcher import AnchorMatcher
from smartcue.motion import MotionController, MotionUpdate
from smartcue.scheduler import VirtualScheduler

CONTENT = 1000.0
VIEWPORT = 600.0
SCRIPT = "ABCDEFGHIJ"


@pytest.fixture
def scheduler() -> VirtualScheduler:
    return VirtualScheduler(frame_rate=60)


@pytest.fixture
def updates() -> list[MotionUpdate]:
    return []


@pytest.fixture
def controller(scheduler, updates) -> MotionController:
    """A controller with a measured 1000px layout and a 64px line."""
    ctrl = MotionController(
        scheduler,
        lambda fraction: AnchorMatcher(SCRIPT, fraction),
        line_height=64.0,
        listener=updates.append
    )
    ctrl.set_layout(CONTENT, VIEWPORT)
    return ctrl
