# drumcore/config.py
from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Project root: .../drumming-practice
BASE_DIR = Path(__file__).resolve().parents[1]

ALLOWED_SUBDIVISIONS = (1, 2, 4, 8)
MIN_TEMPO = 30
MAX_TEMPO = 300


class Settings(BaseSettings):
    """
    Drumming practice settings.

    Reads from:
    - environment variables
    - .env in project root

    The catalog path is resolved once here; the store never re-reads it.
    """

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ---- Catalog ----
    catalog_path: Path = Field(
        default=Path("data/catalog.json"),
        validation_alias=AliasChoices("CATALOG_PATH", "DRUMMING_CATALOG_PATH"),
    )

    # Reject a derived id that already exists instead of appending a duplicate
    strict_ids: bool = Field(default=False, validation_alias="STRICT_IDS")

    # ---- Logging ----
    log_level: str = Field(default="WARNING", validation_alias="LOG_LEVEL")

    # ---- Session defaults ----
    default_tempo: int = Field(default=120, validation_alias="DEFAULT_TEMPO")
    default_subdivision: int = Field(default=4, validation_alias="DEFAULT_SUBDIVISION")
    practice_minutes: int = Field(default=10, validation_alias="PRACTICE_MINUTES")
    rhythm_minutes: int = Field(default=5, validation_alias="RHYTHM_MINUTES")

    # Terminal bell on every beat
    bell: bool = Field(default=True, validation_alias="BELL")

    def model_post_init(self, __context) -> None:
        # 1) Normalize path to absolute, relative to BASE_DIR
        self.catalog_path = self._abs_path(self.catalog_path)

        # 2) Clamps
        self.default_tempo = int(min(max(self.default_tempo, MIN_TEMPO), MAX_TEMPO))
        if self.default_subdivision not in ALLOWED_SUBDIVISIONS:
            self.default_subdivision = 4
        if self.practice_minutes <= 0:
            self.practice_minutes = 10
        if self.rhythm_minutes <= 0:
            self.rhythm_minutes = 5

        level = (self.log_level or "").strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            level = "WARNING"
        self.log_level = level

    @staticmethod
    def _abs_path(p: Path) -> Path:
        p = p.expanduser()
        if p.is_absolute():
            return p
        return (BASE_DIR / p).resolve()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
