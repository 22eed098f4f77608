from __future__ import annotations

import sys
from typing import Optional, TextIO

from drumcore.beats import BeatEvent
from drumcore.models import Rudiment, Song
from drumcore.sessions import (
    CountdownStatus,
    SessionInfo,
    SessionMode,
    SessionOutcome,
    SessionReporter,
)

BELL = "\a"


def format_clock(seconds: float) -> str:
    """125 -> '2:05'"""
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


class ConsoleReporter(SessionReporter):
    """
    Renders session events as a single rewritten status line,
    ringing the terminal bell on every beat.
    """

    def __init__(self, stream: Optional[TextIO] = None, *, bell: bool = True) -> None:
        self.stream = stream or sys.stdout
        self.bell = bell
        self._info: Optional[SessionInfo] = None
        self._line_open = False
        self._remaining: Optional[int] = None

    # ---- output helpers ----
    def _println(self, text: str = "") -> None:
        self._close_line()
        self.stream.write(text + "\n")
        self.stream.flush()

    def _status(self, text: str) -> None:
        # \r + clear-to-end keeps one live status line
        self.stream.write("\r\x1b[K" + text)
        self.stream.flush()
        self._line_open = True

    def _close_line(self) -> None:
        if self._line_open:
            self.stream.write("\n")
            self._line_open = False

    # ---- hooks ----
    def session_started(self, info: SessionInfo) -> None:
        self._info = info
        self._remaining = None
        entry = info.entry

        if info.mode == SessionMode.practice and isinstance(entry, Rudiment):
            self._println("Practice Session Starting")
            self._println(f"Exercise: {entry.name}")
            self._println(f"Description: {entry.description}")
            self._println(f"Difficulty: {entry.difficulty.value}")
            self._println(f"Duration: {format_clock(info.duration_seconds)}")
        elif info.mode == SessionMode.rhythm and isinstance(entry, Song):
            self._println("Rhythm Practice Starting")
            self._println(f"Rhythm: {entry.title}")
            self._println(f"Artist: {entry.artist}")
            self._println(f"Description: {entry.description}")
            self._println(f"Tempo: {info.tempo_bpm:g} BPM")
            self._println(f"Difficulty: {entry.difficulty.value}")
            self._println(f"Duration: {format_clock(info.duration_seconds)}")
        else:
            self._println("Starting Metronome")
            self._println(f"Tempo: {info.tempo_bpm:g} BPM")
            self._println(f"Subdivision: {info.subdivision}")
            if info.duration_seconds:
                self._println(f"Duration: {info.duration_seconds:g}s")

        if entry is not None and entry.url:
            self._println(f"Learn more: {entry.url}")
        self._println("Press Ctrl+C to stop")
        self._println()

    def pulse(self, event: BeatEvent) -> None:
        if self.bell:
            self.stream.write(BELL)

    def beat(self, event: BeatEvent) -> None:
        marker = f"BEAT {event.sequence_number}" if event.is_downbeat else f"beat {event.sequence_number}"
        symbol = "(*)" if event.is_downbeat else "( )"
        info = self._info
        if info is not None and info.mode == SessionMode.rhythm and info.entry is not None:
            tail = f" - {info.entry.label}"
            if self._remaining is not None:
                tail += f" [{format_clock(self._remaining)} left]"
        else:
            tail = f" ({event.elapsed_seconds:.1f}s)"
        self._status(f"{symbol} {marker}{tail}")

    def tick(self, status: CountdownStatus) -> None:
        self._remaining = status.remaining_seconds
        info = self._info
        if info is None or info.mode != SessionMode.practice or status.remaining_seconds <= 0:
            return
        name = info.entry.label if info.entry is not None else "exercise"
        self._status(
            f"Practicing {name}... {format_clock(status.remaining_seconds)} remaining ({status.percent:.1f}%)"
        )

    def session_finished(self, outcome: SessionOutcome) -> None:
        self._close_line()
        mode = outcome.mode
        if outcome.completed:
            if mode == SessionMode.practice:
                self._println("Practice session completed! Great job!")
                self._println("Keep up the great work!")
            elif mode == SessionMode.rhythm:
                self._println("Rhythm practice completed!")
                self._println("Great job practicing!")
            else:
                self._println(f"Metronome completed after {format_clock(outcome.elapsed_seconds)}")
            return

        if mode == SessionMode.practice:
            self._println("Practice session ended early.")
        elif mode == SessionMode.rhythm:
            self._println("Rhythm practice ended early.")
        else:
            self._println("Metronome stopped.")
        self._println(f"You practiced for {format_clock(outcome.elapsed_seconds)}")
