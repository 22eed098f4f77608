import pytest

from conftest import rudiment_fields, song_fields
from drumcore.errors import EntryNotFoundError, InvalidParameterError
from drumcore.sessions import (
    CountdownStatus,
    SessionMode,
    SessionOrchestrator,
    SessionReporter,
    SessionStatus,
)


class RecordingReporter(SessionReporter):
    def __init__(self):
        self.started = []
        self.beats = []
        self.pulses = 0
        self.ticks = []
        self.finished = []
        self.on_beat = None
        self.on_tick = None

    def session_started(self, info):
        self.started.append(info)

    def pulse(self, event):
        self.pulses += 1

    def beat(self, event):
        self.beats.append(event)
        if self.on_beat:
            self.on_beat(event)

    def tick(self, status):
        self.ticks.append(status)
        if self.on_tick:
            self.on_tick(status)

    def session_finished(self, outcome):
        self.finished.append(outcome)


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def orch(store, reporter, clock):
    return SessionOrchestrator(store, reporter=reporter, clock=clock)


# ==========================================
# 1. Selection
# ==========================================


def test_select_by_substring_first_match(store, orch):
    store.rudiments.add(rudiment_fields("Single Stroke Roll"))
    store.rudiments.add(rudiment_fields("Double Stroke Roll"))

    assert orch.select_rudiment("stroke").id == "single-stroke-roll"
    assert orch.select_rudiment("DOUBLE").id == "double-stroke-roll"


def test_select_not_found_lists_available(store, orch):
    store.songs.add(song_fields("Rosanna", difficulty="advanced"))
    with pytest.raises(EntryNotFoundError) as exc:
        orch.select_song("billie jean")
    assert "billie jean" in str(exc.value)
    assert exc.value.available == ["Rosanna (advanced)"]


def test_select_delegates_to_chooser(store, orch):
    store.songs.add(song_fields("Rosanna"))
    store.songs.add(song_fields("Fool in the Rain"))

    seen = []

    def chooser(entries):
        seen.extend(e.id for e in entries)
        return entries[1]

    assert orch.select_song(None, chooser=chooser).id == "fool-in-the-rain"
    assert seen == ["rosanna", "fool-in-the-rain"]


def test_select_by_name_goes_through_collection_lookup(store, orch, monkeypatch):
    store.songs.add(song_fields("Rosanna"))
    calls = []
    lookup = store.songs.find_by_name

    def recording_lookup(fragment):
        calls.append(fragment)
        return lookup(fragment)

    monkeypatch.setattr(store.songs, "find_by_name", recording_lookup)
    assert orch.select_song("ROSA").id == "rosanna"
    assert calls == ["ROSA"]


def test_select_empty_catalog(orch):
    with pytest.raises(EntryNotFoundError):
        orch.select_rudiment(None, chooser=lambda entries: entries[0])


def test_select_without_filter_or_chooser(store, orch):
    store.rudiments.add(rudiment_fields())
    with pytest.raises(InvalidParameterError):
        orch.select_rudiment()


# ==========================================
# 2. Practice mode
# ==========================================


def test_practice_capped_by_rudiment_duration(store, orch, reporter, clock):
    rudiment = store.rudiments.add(rudiment_fields(duration_minutes=1))
    outcome = orch.run_practice(rudiment, 10)

    assert outcome.status == SessionStatus.completed
    assert outcome.mode == SessionMode.practice
    assert outcome.elapsed_seconds == 60
    assert outcome.entry_id == rudiment.id
    assert clock.now() == pytest.approx(60.0)

    assert reporter.started[0].duration_seconds == 60
    assert len(reporter.ticks) == 60
    assert reporter.ticks[0] == CountdownStatus(elapsed_seconds=1, remaining_seconds=59, total_seconds=60)
    assert reporter.ticks[-1].remaining_seconds == 0
    assert reporter.ticks[-1].percent == pytest.approx(100.0)
    assert reporter.ticks[29].percent == pytest.approx(50.0)
    assert reporter.beats == []
    assert reporter.finished == [outcome]


def test_practice_capped_by_request(store, orch):
    rudiment = store.rudiments.add(rudiment_fields(duration_minutes=5))
    outcome = orch.run_practice(rudiment, 2)
    assert outcome.completed
    assert outcome.elapsed_seconds == 120


def test_practice_cancel_reports_elapsed(store, orch, reporter):
    rudiment = store.rudiments.add(rudiment_fields(duration_minutes=5))

    def stop_at_ten(status):
        if status.elapsed_seconds == 10:
            orch.cancel()

    reporter.on_tick = stop_at_ten
    outcome = orch.run_practice(rudiment, 5)

    assert outcome.cancelled
    assert outcome.elapsed_seconds == 10
    assert len(reporter.ticks) == 10


def test_practice_keyboard_interrupt(store, orch, reporter):
    rudiment = store.rudiments.add(rudiment_fields(duration_minutes=5))

    def interrupt(status):
        if status.elapsed_seconds == 5:
            raise KeyboardInterrupt

    reporter.on_tick = interrupt
    outcome = orch.run_practice(rudiment, 5)

    assert outcome.status == SessionStatus.cancelled
    assert outcome.elapsed_seconds == 5
    assert reporter.finished == [outcome]


def test_practice_rejects_non_positive_duration(store, orch, reporter):
    rudiment = store.rudiments.add(rudiment_fields())
    with pytest.raises(InvalidParameterError):
        orch.run_practice(rudiment, 0)
    assert reporter.started == []


# ==========================================
# 3. Rhythm mode
# ==========================================


def test_rhythm_duration_timer_stops_both(store, orch, reporter, clock):
    song = store.songs.add(song_fields(tempo_bpm=120))
    outcome = orch.run_rhythm(song, 1)

    assert outcome.completed
    assert outcome.elapsed_seconds == 60
    assert clock.now() == pytest.approx(60.0)

    info = reporter.started[0]
    assert info.tempo_bpm == 120
    assert info.subdivision == 4

    # 125ms beats for ~60s, none after the countdown ended
    assert 470 <= outcome.beats <= 480
    assert outcome.beats == len(reporter.beats)
    assert all(b.elapsed_seconds <= 60.0 for b in reporter.beats)
    assert [b.position_in_measure for b in reporter.beats[:8]] == [1, 2, 3, 4, 1, 2, 3, 4]
    assert reporter.pulses == outcome.beats
    assert len(reporter.ticks) == 60


def test_rhythm_tempo_override(store, orch, reporter):
    song = store.songs.add(song_fields(tempo_bpm=94))
    outcome = orch.run_rhythm(song, 1, tempo_override=60)

    assert reporter.started[0].tempo_bpm == 60
    # 60 BPM / 4 -> 0.25s
    assert reporter.beats[1].elapsed_seconds - reporter.beats[0].elapsed_seconds == pytest.approx(0.25)
    assert outcome.completed


def test_rhythm_cancel_stops_both_timers(store, orch, reporter, clock):
    song = store.songs.add(song_fields(tempo_bpm=120))

    def stop_after_ten(event):
        if event.sequence_number == 10:
            orch.cancel()

    reporter.on_beat = stop_after_ten
    outcome = orch.run_rhythm(song, 5)

    assert outcome.cancelled
    assert outcome.beats == 10
    # 10 beats = 1.25s: countdown ticked once
    assert outcome.elapsed_seconds == 1
    assert clock.now() == pytest.approx(1.25)


def test_rhythm_keyboard_interrupt(store, orch, reporter):
    song = store.songs.add(song_fields(tempo_bpm=100))

    def interrupt(status):
        if status.elapsed_seconds == 3:
            raise KeyboardInterrupt

    reporter.on_tick = interrupt
    outcome = orch.run_rhythm(song, 5)

    assert outcome.cancelled
    assert outcome.elapsed_seconds == 3
    assert outcome.beats == len(reporter.beats)


@pytest.mark.parametrize("tempo", [10, 301])
def test_rhythm_rejects_out_of_range_override(store, orch, reporter, tempo):
    song = store.songs.add(song_fields())
    with pytest.raises(InvalidParameterError):
        orch.run_rhythm(song, 1, tempo_override=tempo)
    assert reporter.started == []


# ==========================================
# 4. Metronome mode
# ==========================================


def test_metronome_bounded(orch, reporter, clock):
    outcome = orch.run_metronome(120, 4, 5)

    assert outcome.completed
    assert outcome.mode == SessionMode.metronome
    assert outcome.beats == 40
    assert outcome.elapsed_seconds == pytest.approx(5.0)
    assert len(reporter.beats) == 40
    assert reporter.pulses == 40
    assert reporter.beats[-1].elapsed_seconds >= 5


def test_metronome_unbounded_cancel(orch, reporter):
    def stop(event):
        if event.sequence_number == 6:
            orch.cancel()

    reporter.on_beat = stop
    outcome = orch.run_metronome(90, 2, 0)

    assert outcome.cancelled
    assert outcome.beats == 6
    assert [b.sequence_number for b in reporter.beats] == [1, 2, 3, 4, 5, 6]


def test_metronome_keyboard_interrupt(orch, reporter):
    def interrupt(event):
        if event.sequence_number == 3:
            raise KeyboardInterrupt

    reporter.on_beat = interrupt
    outcome = orch.run_metronome(120, 1, 0)

    assert outcome.cancelled
    assert outcome.beats == 3
    assert outcome.elapsed_seconds == pytest.approx(1.5)


@pytest.mark.parametrize(
    "tempo, subdivision, duration",
    [(29, 4, 0), (301, 4, 0), (120, 3, 0), (120, 4, -5)],
)
def test_metronome_invalid(orch, reporter, tempo, subdivision, duration):
    with pytest.raises(InvalidParameterError):
        orch.run_metronome(tempo, subdivision, duration)
    assert reporter.started == []


def test_cancel_without_session_is_noop(orch):
    orch.cancel()
