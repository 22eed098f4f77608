from __future__ import annotations

import logging
import sched
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Union

from drumcore.beats import BeatEvent, BeatScheduler, BeatSession, check_beat_params
from drumcore.catalog import CatalogStore, EntryCollection
from drumcore.config import MAX_TEMPO, MIN_TEMPO
from drumcore.errors import EntryNotFoundError, InvalidParameterError
from drumcore.models import Rudiment, Song
from drumcore.timers import RepeatingTimer, SystemClock, new_scheduler

logger = logging.getLogger(__name__)

Entry = Union[Rudiment, Song]
Chooser = Callable[[List[Entry]], Entry]

RHYTHM_SUBDIVISION = 4
COUNTDOWN_INTERVAL_SECONDS = 1.0


class SessionMode(str, Enum):
    practice = "practice"
    rhythm = "rhythm"
    metronome = "metronome"


class SessionStatus(str, Enum):
    completed = "completed"
    cancelled = "cancelled"


@dataclass(frozen=True)
class CountdownStatus:
    elapsed_seconds: int
    remaining_seconds: int
    total_seconds: int

    @property
    def percent(self) -> float:
        if self.total_seconds <= 0:
            return 100.0
        return min(100.0, self.elapsed_seconds * 100.0 / self.total_seconds)


@dataclass(frozen=True)
class SessionInfo:
    mode: SessionMode
    duration_seconds: float
    tempo_bpm: Optional[float] = None
    subdivision: Optional[int] = None
    entry: Optional[Entry] = None


@dataclass(frozen=True)
class SessionOutcome:
    mode: SessionMode
    status: SessionStatus
    elapsed_seconds: float
    beats: int = 0
    entry_id: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.status == SessionStatus.completed

    @property
    def cancelled(self) -> bool:
        return self.status == SessionStatus.cancelled


class SessionReporter:
    """
    Presentation hooks. Subclass and override what you need; every hook is a no-op here.
    """

    def session_started(self, info: SessionInfo) -> None:
        pass

    def pulse(self, event: BeatEvent) -> None:
        pass

    def beat(self, event: BeatEvent) -> None:
        pass

    def tick(self, status: CountdownStatus) -> None:
        pass

    def session_finished(self, outcome: SessionOutcome) -> None:
        pass


class Countdown:
    """One-second countdown on a shared scheduler."""

    def __init__(
        self,
        scheduler: sched.scheduler,
        total_seconds: int,
        *,
        on_tick: Optional[Callable[[CountdownStatus], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> None:
        self.total_seconds = int(total_seconds)
        self.elapsed_seconds = 0
        self.completed = False
        self._on_tick = on_tick
        self._on_complete = on_complete
        self._timer = RepeatingTimer(scheduler, COUNTDOWN_INTERVAL_SECONDS, self._tick)

    @property
    def cancelled(self) -> bool:
        return self._timer.cancelled and not self.completed

    def start(self) -> "Countdown":
        self._timer.start()
        return self

    def cancel(self) -> None:
        self._timer.cancel()

    def _tick(self, _n: int) -> None:
        self.elapsed_seconds += 1
        remaining = max(0, self.total_seconds - self.elapsed_seconds)
        if self._on_tick is not None:
            self._on_tick(CountdownStatus(self.elapsed_seconds, remaining, self.total_seconds))
        if remaining <= 0 and not self._timer.cancelled:
            self.completed = True
            self._timer.cancel()
            if self._on_complete is not None:
                self._on_complete()


class _ActiveSession:
    """Joins the timer handles of one session so they stop together."""

    def __init__(self) -> None:
        self.handles: List[Union[BeatSession, Countdown]] = []
        self.cancelled = False

    def add(self, handle: Union[BeatSession, Countdown]) -> None:
        self.handles.append(handle)

    def stop(self) -> None:
        for h in self.handles:
            h.cancel()

    def cancel(self) -> None:
        self.cancelled = True
        self.stop()


def _check_tempo(tempo_bpm: float) -> None:
    if not (MIN_TEMPO <= tempo_bpm <= MAX_TEMPO):
        raise InvalidParameterError(f"Tempo must be between {MIN_TEMPO} and {MAX_TEMPO} BPM (got {tempo_bpm})")


def _check_minutes(duration_minutes: float) -> None:
    if duration_minutes <= 0:
        raise InvalidParameterError(f"Duration must be positive minutes (got {duration_minutes})")


def _describe(entries: Sequence[Entry]) -> List[str]:
    return [f"{e.label} ({e.difficulty.value})" for e in entries]


class SessionOrchestrator:
    """
    Selects catalog entries and runs practice / rhythm / metronome sessions.

    Runs block the calling thread until the session completes or is cancelled,
    either through cancel() or a KeyboardInterrupt (Ctrl-C) raised while the
    timers sleep. Both endings are normal outcomes.
    """

    def __init__(
        self,
        store: Optional[CatalogStore] = None,
        *,
        reporter: Optional[SessionReporter] = None,
        clock: Optional[SystemClock] = None,
        beat_scheduler: Optional[BeatScheduler] = None,
    ) -> None:
        self._store = store
        self.reporter = reporter or SessionReporter()
        self.clock = clock or SystemClock()
        self.beats = beat_scheduler or BeatScheduler(self.clock)
        self._active: Optional[_ActiveSession] = None

    @property
    def store(self) -> CatalogStore:
        if self._store is None:
            self._store = CatalogStore()
        return self._store

    # ----------------------------
    # Selection
    # ----------------------------
    def select_rudiment(self, name_filter: Optional[str] = None, chooser: Optional[Chooser] = None) -> Rudiment:
        return self._select(self.store.rudiments, "Exercise", name_filter, chooser)

    def select_song(self, name_filter: Optional[str] = None, chooser: Optional[Chooser] = None) -> Song:
        return self._select(self.store.songs, "Rhythm", name_filter, chooser)

    @staticmethod
    def _select(
        collection: EntryCollection,
        kind: str,
        name_filter: Optional[str],
        chooser: Optional[Chooser],
    ) -> Entry:
        if name_filter:
            match = collection.find_by_name(name_filter)
            if match is not None:
                return match
            raise EntryNotFoundError(f'{kind} "{name_filter}" not found.', available=_describe(collection.list_all()))

        entries = collection.list_all()
        if not entries:
            raise EntryNotFoundError(f"No {collection.key} in the catalog.")
        if chooser is None:
            raise InvalidParameterError(f"Pass a {kind.lower()} name or a chooser")
        return chooser(entries)

    # ----------------------------
    # Control
    # ----------------------------
    def cancel(self) -> None:
        """Cancel the running session, if any. Safe from callbacks and other threads."""
        active = self._active
        if active is not None:
            active.cancel()

    def _run_scheduler(self, scheduler: sched.scheduler, active: _ActiveSession) -> None:
        self._active = active
        try:
            scheduler.run()
        except KeyboardInterrupt:
            logger.info("Session interrupted")
            active.cancel()
        finally:
            self._active = None

    def _finish(self, outcome: SessionOutcome) -> SessionOutcome:
        logger.info(
            "%s session %s after %.1fs (beats=%d)",
            outcome.mode.value,
            outcome.status.value,
            outcome.elapsed_seconds,
            outcome.beats,
        )
        self.reporter.session_finished(outcome)
        return outcome

    # ----------------------------
    # Modes
    # ----------------------------
    def run_practice(self, rudiment: Rudiment, duration_minutes: float) -> SessionOutcome:
        """Countdown for min(requested, rudiment duration); no beats."""
        _check_minutes(duration_minutes)
        total = int(min(duration_minutes * 60, rudiment.duration_minutes * 60))

        scheduler = new_scheduler(self.clock)
        active = _ActiveSession()
        countdown = Countdown(scheduler, total, on_tick=self.reporter.tick, on_complete=active.stop)
        active.add(countdown)

        self.reporter.session_started(SessionInfo(mode=SessionMode.practice, duration_seconds=total, entry=rudiment))
        countdown.start()
        self._run_scheduler(scheduler, active)

        status = SessionStatus.completed if countdown.completed else SessionStatus.cancelled
        return self._finish(
            SessionOutcome(
                mode=SessionMode.practice,
                status=status,
                elapsed_seconds=countdown.elapsed_seconds,
                entry_id=rudiment.id,
            )
        )

    def run_rhythm(
        self,
        song: Song,
        duration_minutes: float,
        tempo_override: Optional[float] = None,
    ) -> SessionOutcome:
        """
        Beats at the song tempo (or override), subdivision 4, alongside an
        independent one-second countdown. Whichever ends first stops both.
        """
        _check_minutes(duration_minutes)
        if tempo_override is not None:
            _check_tempo(tempo_override)
        tempo = tempo_override if tempo_override is not None else song.tempo_bpm
        check_beat_params(tempo, RHYTHM_SUBDIVISION)
        total = int(duration_minutes * 60)

        scheduler = new_scheduler(self.clock)
        active = _ActiveSession()

        self.reporter.session_started(
            SessionInfo(
                mode=SessionMode.rhythm,
                duration_seconds=total,
                tempo_bpm=tempo,
                subdivision=RHYTHM_SUBDIVISION,
                entry=song,
            )
        )
        beats = self.beats.start(
            tempo,
            RHYTHM_SUBDIVISION,
            0,
            on_beat=self.reporter.beat,
            on_pulse=self.reporter.pulse,
            scheduler=scheduler,
        )
        active.add(beats)
        countdown = Countdown(scheduler, total, on_tick=self.reporter.tick, on_complete=active.stop)
        active.add(countdown)
        countdown.start()

        self._run_scheduler(scheduler, active)

        status = SessionStatus.completed if countdown.completed else SessionStatus.cancelled
        return self._finish(
            SessionOutcome(
                mode=SessionMode.rhythm,
                status=status,
                elapsed_seconds=countdown.elapsed_seconds,
                beats=beats.beats_emitted,
                entry_id=song.id,
            )
        )

    def run_metronome(self, tempo_bpm: float, subdivision: int, duration_seconds: float = 0) -> SessionOutcome:
        """Plain beat session; duration_seconds=0 runs until cancelled."""
        _check_tempo(tempo_bpm)
        check_beat_params(tempo_bpm, subdivision, duration_seconds)

        active = _ActiveSession()
        self.reporter.session_started(
            SessionInfo(
                mode=SessionMode.metronome,
                duration_seconds=duration_seconds,
                tempo_bpm=tempo_bpm,
                subdivision=subdivision,
            )
        )
        session = self.beats.start(tempo_bpm, subdivision, duration_seconds, on_pulse=self.reporter.pulse)
        active.add(session)

        self._active = active
        try:
            for event in session:
                self.reporter.beat(event)
        except KeyboardInterrupt:
            logger.info("Session interrupted")
            active.cancel()
        finally:
            self._active = None

        status = SessionStatus.completed if session.completed else SessionStatus.cancelled
        return self._finish(
            SessionOutcome(
                mode=SessionMode.metronome,
                status=status,
                elapsed_seconds=session.elapsed_seconds,
                beats=session.beats_emitted,
            )
        )
