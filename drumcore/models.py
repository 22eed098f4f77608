from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_serializer
from pydantic.config import ConfigDict


_WHITESPACE_RUN = re.compile(r"\s+")


def slugify(text: str) -> str:
    """
    Derive a catalog id from a name/title: lower-case, every whitespace run -> '-'.
    'Single Stroke Roll' -> 'single-stroke-roll'
    """
    return _WHITESPACE_RUN.sub("-", text.lower())


def utcnow() -> datetime:
    """Helper for strictly UTC aware datetime, millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def next_timestamp(previous: datetime) -> datetime:
    """Current time, bumped so it is strictly later than `previous`."""
    now = utcnow()
    if previous.tzinfo is None:
        previous = previous.replace(tzinfo=timezone.utc)
    if now <= previous:
        now = previous + timedelta(milliseconds=1)
    return now


def _to_utc_z(dt: datetime) -> str:
    """
    Serialize datetime to UTC ISO8601 with millisecond precision and trailing 'Z'.
    e.g. 2025-01-01T10:00:00.000Z
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    s = dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return s.replace("+00:00", "Z")


# =========================
# Enums
# =========================
class Difficulty(str, Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"


class Platform(str, Enum):
    songsterr = "songsterr"
    drumeo = "drumeo"
    youtube = "youtube"
    other = "other"


# =========================
# Base Model Config
# =========================
class _CatalogBaseModel(BaseModel):
    """
    Catalog documents:
    - unknown keys are tolerated on read and dropped on write
    - python field names or camelCase aliases both accepted
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True, use_enum_values=False)


# =========================
# Rudiments
# =========================
class RudimentCreate(_CatalogBaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    duration_minutes: int = Field(
        ...,
        gt=0,
        validation_alias=AliasChoices("duration_minutes", "durationMinutes", "duration"),
        serialization_alias="durationMinutes",
    )
    difficulty: Difficulty
    url: Optional[str] = None
    platform: Optional[Platform] = None


class RudimentUpdate(_CatalogBaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("duration_minutes", "durationMinutes", "duration"),
    )
    difficulty: Optional[Difficulty] = None
    url: Optional[str] = None
    platform: Optional[Platform] = None


class Rudiment(RudimentCreate):
    id: str = Field(..., min_length=1)
    created_at: datetime = Field(
        ...,
        validation_alias=AliasChoices("created_at", "createdAt"),
        serialization_alias="createdAt",
    )
    updated_at: datetime = Field(
        ...,
        validation_alias=AliasChoices("updated_at", "updatedAt"),
        serialization_alias="updatedAt",
    )

    @property
    def label(self) -> str:
        return self.name

    @field_serializer("created_at", "updated_at")
    def _ser_dt(self, dt: datetime) -> str:
        return _to_utc_z(dt)


# =========================
# Songs
# =========================
class SongCreate(_CatalogBaseModel):
    title: str = Field(..., min_length=1)
    artist: str = ""
    description: str = ""
    tempo_bpm: int = Field(
        ...,
        gt=0,
        validation_alias=AliasChoices("tempo_bpm", "tempoBpm", "tempo"),
        serialization_alias="tempoBpm",
    )
    length_seconds: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("length_seconds", "lengthSeconds", "length"),
        serialization_alias="lengthSeconds",
    )
    difficulty: Difficulty
    url: Optional[str] = None
    platform: Optional[Platform] = None


class SongUpdate(_CatalogBaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    artist: Optional[str] = None
    description: Optional[str] = None
    tempo_bpm: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("tempo_bpm", "tempoBpm", "tempo"),
    )
    length_seconds: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("length_seconds", "lengthSeconds", "length"),
    )
    difficulty: Optional[Difficulty] = None
    url: Optional[str] = None
    platform: Optional[Platform] = None


class Song(SongCreate):
    id: str = Field(..., min_length=1)
    created_at: datetime = Field(
        ...,
        validation_alias=AliasChoices("created_at", "createdAt"),
        serialization_alias="createdAt",
    )
    updated_at: datetime = Field(
        ...,
        validation_alias=AliasChoices("updated_at", "updatedAt"),
        serialization_alias="updatedAt",
    )

    @property
    def label(self) -> str:
        return self.title

    @field_serializer("created_at", "updated_at")
    def _ser_dt(self, dt: datetime) -> str:
        return _to_utc_z(dt)


# =========================
# Catalog document
# =========================
class Catalog(_CatalogBaseModel):
    """The whole persisted document. Insertion order is the only ordering."""
    rudiments: List[Rudiment] = Field(default_factory=list)
    songs: List[Song] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2) + "\n"
