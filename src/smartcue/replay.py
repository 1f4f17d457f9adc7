# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debug tool for replaying a transcript through a follow-mode session.

This CLI tool takes a transcript file (one recognized fragment per line) and
a script file, feeds each fragment to a session running on a virtual clock,
and writes a log of every advance and every ignored fragment. Each fragment
is also scored against the upcoming script text so that fragments which
look like the script but did not advance stand out when tuning the matcher.
"""

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal, TextIO

from rapidfuzz import fuzz

from .matcher import STRATEGIES
from .normalizer import normalize
from .scheduler import VirtualScheduler
from .session import SessionMode, TeleprompterSession

EventType = Literal["advance", "JUMP", "no_update", "empty"]

# Advances longer than this many normalized characters are flagged
JUMP_CHARS: int = 50
# Fragments this similar to upcoming text that still did not advance are flagged
MISSED_SIMILARITY: float = 80.0


@dataclass
class ReplayEvent:
    """A single fragment fed during replay."""
    transcript_line: int
    fragment: str
    index_before: int
    index_after: int
    fraction: float | None
    similarity: float
    offset: float
    event_type: EventType


def load_transcript(path: Path) -> list[str]:
    """Load transcript file and extract transcript lines.

    Filters out metadata lines (starting with '===') and blank lines.
    """
    lines: list[str] = []
    with open(path, encoding='utf-8') as f:
        for line in f:
            stripped_line: str = line.strip()
            if stripped_line.startswith('===') or not stripped_line:
                continue
            lines.append(stripped_line)
    return lines


def load_script(path: Path) -> str:
    """Load script file content."""
    with open(path, encoding='utf-8') as f:
        return f.read()


def upcoming_similarity(fragment: str, normalized_script: str, index: int, window: int) -> float:
    """Partial-ratio similarity (0-100) of a fragment to the script ahead of index."""
    clean: str = normalize(fragment).lower()
    upcoming: str = normalized_script[index:index + window].lower()
    if not clean or not upcoming:
        return 0.0
    return float(fuzz.partial_ratio(clean, upcoming))


def replay_transcript(
    transcript_lines: list[str],
    script_text: str,
    output: TextIO,
    strategy: str = "anchor",
    search_window: int | None = None,
    fragment_interval: float = 0.5,
    pixels_per_char: float = 10.0,
    verbose: bool = False
) -> list[ReplayEvent]:
    """Replay transcript fragments through a follow-mode session.

    Args:
        transcript_lines: Recognized fragments, in arrival order
        script_text: The script content
        output: File handle to write log output
        strategy: Matcher strategy ("anchor" or "fuzzy")
        search_window: Lookahead override
        fragment_interval: Virtual seconds between fragments
        pixels_per_char: Simulated content height per normalized character
        verbose: If True, log every fragment. If False, only advances and
            suspicious misses.

    Returns:
        List of all replay events
    """
    tracking: dict[str, object] = {"strategy": strategy}
    if search_window is not None:
        tracking["search_window"] = search_window

    scheduler = VirtualScheduler()
    session = TeleprompterSession(
        script_text, scheduler,
        settings={"mode": SessionMode.FOLLOW.value},
        tracking=tracking
    )
    session.update_layout(max(1.0, session.script.length * pixels_per_char), 800.0)
    session.start()
    matcher = session.matcher
    assert matcher is not None, "Follow mode must create a matcher"
    window: int = matcher.search_window

    events: list[ReplayEvent] = []

    output.write("=" * 80 + "\n")
    output.write("TRANSCRIPT REPLAY LOG\n")
    output.write(f"Generated: {datetime.now().isoformat()}\n")
    output.write(f"Strategy: {strategy} (window {window})\n")
    output.write(f"Script characters (normalized): {session.script.length}\n")
    output.write(f"Transcript lines: {len(transcript_lines)}\n")
    output.write("=" * 80 + "\n\n")
    output.write("REPLAY LOG:\n")
    output.write("-" * 40 + "\n")

    for line_num, fragment in enumerate(transcript_lines, start=1):
        index_before: int = matcher.last_index
        similarity: float = upcoming_similarity(
            fragment, session.script.normalized, index_before, window)

        fraction: float | None = session.feed_transcript(fragment)
        scheduler.advance(fragment_interval)
        index_after: int = matcher.last_index

        event_type: EventType
        if not normalize(fragment):
            event_type = "empty"
        elif fraction is None:
            event_type = "no_update"
        elif index_after - index_before > JUMP_CHARS:
            event_type = "JUMP"
        else:
            event_type = "advance"

        event = ReplayEvent(
            transcript_line=line_num,
            fragment=fragment,
            index_before=index_before,
            index_after=index_after,
            fraction=fraction,
            similarity=similarity,
            offset=session.offset,
            event_type=event_type
        )
        events.append(event)

        missed: bool = event_type == "no_update" and similarity >= MISSED_SIMILARITY
        if verbose or event_type in ("advance", "JUMP") or missed:
            marker: str = "  *** MISSED ***" if missed else ""
            output.write(
                f"[{line_num:4d}] {event_type:9} {index_before:5d} -> {index_after:5d} "
                f"sim={similarity:5.1f} offset={event.offset:9.1f} "
                f"\"{fragment[:50]}\"{marker}\n"
            )

    output.write("\n" + "=" * 80 + "\n")
    output.write("SUMMARY:\n")
    output.write("-" * 40 + "\n")
    advances = [e for e in events if e.event_type == "advance"]
    jumps = [e for e in events if e.event_type == "JUMP"]
    no_updates = [e for e in events if e.event_type == "no_update"]
    missed_events = [e for e in no_updates if e.similarity >= MISSED_SIMILARITY]
    output.write(f"Total fragments processed: {len(events)}\n")
    output.write(f"Advances: {len(advances)}\n")
    output.write(f"Jumps (> {JUMP_CHARS} chars): {len(jumps)}\n")
    output.write(f"No update: {len(no_updates)} ({len(missed_events)} similar to upcoming text)\n")
    output.write(f"Final progress: {matcher.progress:.3f}\n")
    output.write("=" * 80 + "\n")

    session.stop()
    return events


def main() -> None:
    """Main entry point for the replay tool."""
    parser = argparse.ArgumentParser(
        description="Replay a transcript against a script and log matcher decisions"
    )
    parser.add_argument("script", type=Path, help="Script text file")
    parser.add_argument("transcript", type=Path,
                        help="Transcript file (one fragment per line)")
    parser.add_argument("-o", "--output", type=Path, default=None,
                        help="Write log to this file instead of stdout")
    parser.add_argument("--strategy", choices=list(STRATEGIES), default="anchor",
                        help="Matching strategy (default: anchor)")
    parser.add_argument("--window", type=int, default=None,
                        help="Lookahead window in normalized characters")
    parser.add_argument("--interval", type=float, default=0.5,
                        help="Virtual seconds between fragments (default: 0.5)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log every fragment, not just advances")
    args = parser.parse_args()

    for path in (args.script, args.transcript):
        if not path.exists():
            print(f"Error: file not found: {path}", file=sys.stderr)
            sys.exit(1)

    script_text: str = load_script(args.script)
    transcript_lines: list[str] = load_transcript(args.transcript)

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            replay_transcript(transcript_lines, script_text, f,
                              strategy=args.strategy, search_window=args.window,
                              fragment_interval=args.interval, verbose=args.verbose)
        print(f"Replay log written to {args.output}")
    else:
        replay_transcript(transcript_lines, script_text, sys.stdout,
                          strategy=args.strategy, search_window=args.window,
                          fragment_interval=args.interval, verbose=args.verbose)


if __name__ == "__main__":
    main()
