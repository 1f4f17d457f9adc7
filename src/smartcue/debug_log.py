"""
Debug logging for matcher and motion decisions.

Creates two log files:
- matcher.log: Fragments fed to the matcher, advances, rejected jumps, resyncs
- motion.log: Mode changes and offsets handed to the rendering surface

Logging is disabled by default. Call enable() to turn it on.
"""

from datetime import datetime
from pathlib import Path

# Log files location (in project root)
LOG_DIR: Path = Path(__file__).parent.parent.parent / "logs"
MATCHER_LOG: Path = LOG_DIR / "matcher.log"
MOTION_LOG: Path = LOG_DIR / "motion.log"

# Global flag to control whether debug logging is enabled
_ENABLED: bool = False  # pylint: disable=invalid-name


def enable() -> None:
    """Enable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = True


def disable() -> None:
    """Disable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = False


def is_enabled() -> bool:
    """Check if debug logging is enabled."""
    return _ENABLED


def _ensure_log_dir() -> None:
    """Create log directory if it doesn't exist."""
    LOG_DIR.mkdir(exist_ok=True)


def _timestamp() -> str:
    """Get current timestamp."""
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def _write(log_file: Path, line: str) -> None:
    _ensure_log_dir()
    with open(log_file, 'a', encoding='utf-8') as f:
        f.write(f"[{_timestamp()}] {line}\n")


def clear_logs() -> None:
    """Clear both log files for a fresh session."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    log_file: Path
    for log_file in [MATCHER_LOG, MOTION_LOG]:
        with open(log_file, 'w', encoding='utf-8') as f:
            f.write(
                f"=== New session started at {datetime.now().isoformat()} ===\n\n")


def log_match(
    strategy: str,
    old_index: int,
    new_index: int,
    fraction: float,
    fragment: str
) -> None:
    """
    Log an accepted match.

    Args:
        strategy: Matcher strategy name
        old_index: Normalized index before the match
        new_index: Normalized index after the match
        fraction: Progress fraction returned to the caller
        fragment: The raw fragment that caused the advance
    """
    if not _ENABLED:
        return
    _write(MATCHER_LOG,
           f"{strategy:6} advance  {old_index:5d} -> {new_index:5d} "
           f"({fraction:.3f}) fragment=\"{fragment[-60:]}\"")


def log_no_update(strategy: str, index: int, fragment: str) -> None:
    """Log a fragment that did not move the position."""
    if not _ENABLED:
        return
    _write(MATCHER_LOG,
           f"{strategy:6} no_update pos={index:5d} fragment=\"{fragment[-60:]}\"")


def log_rejected(
    strategy: str,
    index: int,
    suffix: str,
    distance: int,
    limit: float
) -> None:
    """Log a suffix that was found but too far ahead to trust."""
    if not _ENABLED:
        return
    _write(MATCHER_LOG,
           f"{strategy:6} rejected pos={index:5d} suffix=\"{suffix}\" "
           f"distance={distance} max={limit:.0f}")


def log_resync(strategy: str, index: int, fraction: float) -> None:
    """Log a matcher re-anchor."""
    if not _ENABLED:
        return
    _write(MATCHER_LOG, f"{strategy:6} resync   pos={index:5d} ({fraction:.3f})")


def log_mode_change(old_mode: str, new_mode: str, offset: float) -> None:
    """Log a drive mode transition."""
    if not _ENABLED:
        return
    _write(MOTION_LOG, f"MODE {old_mode} -> {new_mode} at offset={offset:.1f}")


def log_transition(offset: float, target: float, duration: float) -> None:
    """Log a timed transition handed to the rendering surface."""
    if not _ENABLED:
        return
    _write(MOTION_LOG,
           f"TRANSITION {offset:.1f} -> {target:.1f} over {duration:.2f}s")


def log_target(offset: float, target: float, fraction: float) -> None:
    """Log a follow-mode target update."""
    if not _ENABLED:
        return
    _write(MOTION_LOG,
           f"TARGET offset={offset:.1f} target={target:.1f} ({fraction:.3f})")
