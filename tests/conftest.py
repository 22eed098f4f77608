from __future__ import annotations

from pathlib import Path

import pytest

from drumcore.catalog import CatalogStore
from drumcore.config import get_settings


class FakeClock:
    """Manual clock: sleep() advances time instantly."""

    def __init__(self, start: float = 0.0) -> None:
        self.t = float(start)
        self.slept = 0.0

    def now(self) -> float:
        return self.t

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self.t += seconds
            self.slept += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _isolate_settings(tmp_path, monkeypatch):
    """
    Point the default catalog at tmp_path and clear the settings cache,
    so nothing touches the real project data/ directory.
    """
    monkeypatch.setenv("CATALOG_PATH", str(tmp_path / "default" / "catalog.json"))
    monkeypatch.delenv("DRUMMING_CATALOG_PATH", raising=False)
    monkeypatch.delenv("STRICT_IDS", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def catalog_path(tmp_path) -> Path:
    return tmp_path / "catalog.json"


@pytest.fixture
def store(catalog_path) -> CatalogStore:
    return CatalogStore(catalog_path)


def rudiment_fields(name: str = "Single Stroke Roll", **overrides):
    data = {
        "name": name,
        "description": "Alternating single strokes",
        "duration_minutes": 5,
        "difficulty": "beginner",
        "url": None,
    }
    data.update(overrides)
    return data


def song_fields(title: str = "Back in Black", **overrides):
    data = {
        "title": title,
        "artist": "AC/DC",
        "description": "Straight rock beat",
        "tempo_bpm": 94,
        "difficulty": "intermediate",
        "url": "https://www.songsterr.com/a/wsa/acdc-back-in-black-drum-tab-s54t3",
    }
    data.update(overrides)
    return data
