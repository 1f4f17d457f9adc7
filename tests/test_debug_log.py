"""Tests for the debug_log module enable/disable functionality."""

from pathlib import Path
from unittest import mock

import pytest

from smartcue import debug_log
from smartcue.matcher import AnchorMatcher


@pytest.fixture
def log_dir(tmp_path, monkeypatch) -> Path:
    """Point the debug logs at a temporary directory."""
    monkeypatch.setattr(debug_log, "LOG_DIR", tmp_path)
    monkeypatch.setattr(debug_log, "MATCHER_LOG", tmp_path / "matcher.log")
    monkeypatch.setattr(debug_log, "MOTION_LOG", tmp_path / "motion.log")
    yield tmp_path
    debug_log.disable()


class TestDebugLogEnableDisable:
    """Test the enable/disable functionality of debug logging."""

    def setup_method(self):
        """Reset debug log state before each test."""
        debug_log.disable()

    def test_disabled_by_default(self):
        assert not debug_log.is_enabled()

    def test_enable(self):
        debug_log.enable()
        assert debug_log.is_enabled()
        debug_log.disable()

    def test_disable(self):
        debug_log.enable()
        debug_log.disable()
        assert not debug_log.is_enabled()

    @pytest.mark.parametrize("call", [
        lambda: debug_log.clear_logs(),
        lambda: debug_log.log_match("anchor", 0, 3, 0.3, "abc"),
        lambda: debug_log.log_no_update("anchor", 0, "abc"),
        lambda: debug_log.log_rejected("anchor", 0, "abc", 40, 30),
        lambda: debug_log.log_resync("anchor", 5, 0.5),
        lambda: debug_log.log_mode_change("idle", "timed", 0.0),
        lambda: debug_log.log_transition(0.0, -1000.0, 20.0),
        lambda: debug_log.log_target(0.0, -364.0, 0.3),
    ])
    def test_no_op_when_disabled(self, call):
        """Nothing touches the filesystem while disabled."""
        with mock.patch.object(debug_log, '_ensure_log_dir') as mock_ensure:
            call()
            mock_ensure.assert_not_called()


class TestDebugLogWriting:
    """Log lines land in the right files when enabled."""

    def test_clear_logs_writes_headers(self, log_dir):
        debug_log.enable()
        debug_log.clear_logs()
        assert "New session started" in (log_dir / "matcher.log").read_text()
        assert "New session started" in (log_dir / "motion.log").read_text()

    def test_matcher_events(self, log_dir):
        debug_log.enable()
        matcher = AnchorMatcher("ABCDEFGHIJ")
        matcher.feed("ABC")
        matcher.feed("zzzz")
        content = (log_dir / "matcher.log").read_text()
        assert "resync" in content
        assert "advance" in content
        assert "no_update" in content
        assert "zzzz" in content

    def test_rejected_jump_logged(self, log_dir):
        debug_log.enable()
        AnchorMatcher("x" * 50 + "abcd").feed("abcd")
        content = (log_dir / "matcher.log").read_text()
        assert 'rejected pos=    0 suffix="abcd" distance=50 max=30' in content

    def test_motion_events(self, log_dir):
        debug_log.enable()
        debug_log.log_mode_change("idle", "timed", 0.0)
        debug_log.log_transition(0.0, -1000.0, 20.0)
        content = (log_dir / "motion.log").read_text()
        assert "MODE idle -> timed" in content
        assert "TRANSITION 0.0 -> -1000.0 over 20.00s" in content
