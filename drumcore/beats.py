from __future__ import annotations

import logging
import sched
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Iterator, Optional

from drumcore.config import ALLOWED_SUBDIVISIONS
from drumcore.errors import InvalidParameterError
from drumcore.timers import RepeatingTimer, SystemClock, new_scheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BeatEvent:
    """One metronome tick. Produced, never stored."""
    sequence_number: int
    position_in_measure: int
    is_downbeat: bool
    elapsed_seconds: float


BeatCallback = Callable[[BeatEvent], None]


def beat_interval_seconds(tempo_bpm: float, subdivision: int) -> float:
    """(60000 / tempo) / subdivision ms, in seconds. 120 BPM / 4 -> 0.125"""
    return (60.0 / tempo_bpm) / subdivision


def position_in_measure(sequence_number: int, subdivision: int) -> int:
    return ((sequence_number - 1) % subdivision) + 1


def check_beat_params(tempo_bpm: float, subdivision: int, duration_seconds: float = 0) -> None:
    if subdivision not in ALLOWED_SUBDIVISIONS:
        allowed = ", ".join(str(s) for s in ALLOWED_SUBDIVISIONS)
        raise InvalidParameterError(f"Subdivision must be {allowed} (got {subdivision})")
    if tempo_bpm <= 0:
        raise InvalidParameterError(f"Tempo must be positive (got {tempo_bpm})")
    if duration_seconds < 0:
        raise InvalidParameterError(f"Duration must be >= 0 seconds (got {duration_seconds})")


class BeatSession:
    """
    A running beat source.

    Iterate it to drive its own scheduler and receive BeatEvents lazily, or
    pass a shared scheduler to BeatScheduler.start() and consume events through
    on_beat while the caller runs that scheduler.
    """

    def __init__(
        self,
        scheduler: sched.scheduler,
        *,
        tempo_bpm: float,
        subdivision: int,
        duration_seconds: float,
        on_beat: Optional[BeatCallback] = None,
        on_pulse: Optional[BeatCallback] = None,
        owns_scheduler: bool = False,
    ) -> None:
        self.tempo_bpm = tempo_bpm
        self.subdivision = subdivision
        self.duration_seconds = duration_seconds
        self.interval_seconds = beat_interval_seconds(tempo_bpm, subdivision)

        self._scheduler = scheduler
        self._owns_scheduler = owns_scheduler
        self._on_beat = on_beat
        self._on_pulse = on_pulse
        self._timer = RepeatingTimer(scheduler, self.interval_seconds, self._tick)

        self._buffer: Deque[BeatEvent] = deque()
        self._started_at: Optional[float] = None
        self._finished_at: Optional[float] = None
        self._completed = False
        self._cancelled = False
        self.beats_emitted = 0

    # ----------------------------
    # State
    # ----------------------------
    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._completed or self._cancelled

    @property
    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._finished_at if self._finished_at is not None else self._scheduler.timefunc()
        return max(0.0, end - self._started_at)

    # ----------------------------
    # Control
    # ----------------------------
    def start(self) -> "BeatSession":
        self._started_at = self._scheduler.timefunc()
        self._timer.start()
        logger.debug(
            "Beat session started tempo=%s subdivision=%s duration=%ss interval=%.4fs",
            self.tempo_bpm,
            self.subdivision,
            self.duration_seconds,
            self.interval_seconds,
        )
        return self

    def cancel(self) -> None:
        """Stop immediately; no event is delivered once this has run. Idempotent."""
        if self.done:
            return
        self._cancelled = True
        self._timer.cancel()
        self._buffer.clear()
        self._finished_at = self._scheduler.timefunc()
        logger.debug("Beat session cancelled after %d beats", self.beats_emitted)

    def _tick(self, sequence_number: int) -> None:
        if self.done:
            return
        elapsed = self._scheduler.timefunc() - self._started_at
        position = position_in_measure(sequence_number, self.subdivision)
        event = BeatEvent(
            sequence_number=sequence_number,
            position_in_measure=position,
            is_downbeat=position == 1,
            elapsed_seconds=elapsed,
        )
        self.beats_emitted = sequence_number

        if self._on_pulse is not None:
            self._on_pulse(event)
        if self._cancelled:
            return
        if self._owns_scheduler:
            self._buffer.append(event)
        if self._on_beat is not None:
            self._on_beat(event)

        # The beat that crosses the limit is still delivered, then the session ends
        if self.duration_seconds > 0 and elapsed >= self.duration_seconds and not self._cancelled:
            self._completed = True
            self._finished_at = self._scheduler.timefunc()
            self._timer.cancel()
            logger.debug("Beat session completed after %d beats (%.3fs)", sequence_number, elapsed)

    # ----------------------------
    # Lazy event sequence
    # ----------------------------
    def __iter__(self) -> Iterator[BeatEvent]:
        if not self._owns_scheduler:
            raise RuntimeError("session runs on a shared scheduler; consume it through on_beat")
        return self._drive()

    def _drive(self) -> Iterator[BeatEvent]:
        try:
            while True:
                while self._buffer:
                    if self._cancelled:
                        return
                    try:
                        event = self._buffer.popleft()
                    except IndexError:
                        # cleared by cancel() on another thread
                        return
                    yield event
                if self.done:
                    return
                delay = self._scheduler.run(blocking=False)
                if self._buffer:
                    continue
                if delay is None:
                    return
                self._scheduler.delayfunc(delay)
        finally:
            if not self.done:
                self.cancel()


class BeatScheduler:
    """Produces BeatSessions on a shared clock."""

    def __init__(self, clock: Optional[SystemClock] = None) -> None:
        self.clock = clock or SystemClock()

    def start(
        self,
        tempo_bpm: float,
        subdivision: int,
        duration_seconds: float = 0,
        *,
        on_beat: Optional[BeatCallback] = None,
        on_pulse: Optional[BeatCallback] = None,
        scheduler: Optional[sched.scheduler] = None,
    ) -> BeatSession:
        """
        Start emitting beats every (60 / tempo) / subdivision seconds.
        duration_seconds=0 runs until cancel().
        """
        check_beat_params(tempo_bpm, subdivision, duration_seconds)
        owns = scheduler is None
        session = BeatSession(
            scheduler if scheduler is not None else new_scheduler(self.clock),
            tempo_bpm=tempo_bpm,
            subdivision=subdivision,
            duration_seconds=duration_seconds,
            on_beat=on_beat,
            on_pulse=on_pulse,
            owns_scheduler=owns,
        )
        return session.start()
