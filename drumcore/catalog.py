from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Generic, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from drumcore.config import get_settings
from drumcore.errors import (
    CatalogUnreadableError,
    CatalogUnwritableError,
    InvalidParameterError,
)
from drumcore.models import (
    Catalog,
    Difficulty,
    Rudiment,
    RudimentCreate,
    RudimentUpdate,
    Song,
    SongCreate,
    SongUpdate,
    next_timestamp,
    slugify,
    utcnow,
)

logger = logging.getLogger(__name__)

EntryT = TypeVar("EntryT", Rudiment, Song)

PathLike = Union[str, Path]

# Never writable through update()
_IMMUTABLE_KEYS = ("id", "created_at", "createdAt", "updated_at", "updatedAt")


def _validation_message(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "value"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def _as_dict(fields: Union[BaseModel, Mapping[str, Any]], *, exclude_unset: bool = False) -> dict:
    if isinstance(fields, BaseModel):
        return fields.model_dump(exclude_unset=exclude_unset)
    return dict(fields)


class EntryCollection(Generic[EntryT]):
    """
    One ordered collection inside the catalog document (rudiments or songs).

    Every call is a full load -> mutate -> save cycle on the owning store;
    nothing is cached between calls. Lookups by id are first-match-wins.
    """

    def __init__(
        self,
        store: "CatalogStore",
        *,
        key: str,
        label_field: str,
        model: Type[EntryT],
        create_model: Type[BaseModel],
        update_model: Type[BaseModel],
    ) -> None:
        self._store = store
        self.key = key
        self.label_field = label_field
        self._model = model
        self._create_model = create_model
        self._update_model = update_model

    # ----------------------------
    # Core helpers
    # ----------------------------
    def _entries(self, catalog: Catalog) -> List[EntryT]:
        return getattr(catalog, self.key)

    @staticmethod
    def _index_of(entries: List[EntryT], entry_id: str) -> int:
        for i, entry in enumerate(entries):
            if entry.id == entry_id:
                return i
        return -1

    # ----------------------------
    # Read Methods
    # ----------------------------
    def list_all(self) -> List[EntryT]:
        return list(self._entries(self._store.load()))

    def get_by_id(self, entry_id: str) -> Optional[EntryT]:
        for entry in self._entries(self._store.load()):
            if entry.id == entry_id:
                return entry
        return None

    def filter_by_difficulty(self, level: Union[str, Difficulty]) -> List[EntryT]:
        try:
            wanted = Difficulty(level)
        except ValueError as e:
            choices = ", ".join(d.value for d in Difficulty)
            raise InvalidParameterError(f"Unknown difficulty '{level}' (expected one of: {choices})") from e
        return [e for e in self._entries(self._store.load()) if e.difficulty == wanted]

    def find_by_name(self, fragment: str) -> Optional[EntryT]:
        """First entry whose name/title contains `fragment`, case-insensitive."""
        needle = fragment.lower()
        for entry in self._entries(self._store.load()):
            if needle in getattr(entry, self.label_field).lower():
                return entry
        return None

    # ----------------------------
    # Write Methods (Mutations)
    # ----------------------------
    def add(self, fields: Union[BaseModel, Mapping[str, Any]]) -> EntryT:
        """
        Derive the id from name/title, stamp createdAt == updatedAt, append, persist.
        Duplicate ids are appended as-is unless the store is strict.
        """
        try:
            data = self._create_model.model_validate(_as_dict(fields))
        except ValidationError as e:
            raise InvalidParameterError(f"Invalid {self.key[:-1]}: {_validation_message(e)}") from e

        payload = data.model_dump()
        now = utcnow()
        entry = self._model.model_validate(
            {
                **payload,
                "id": slugify(payload[self.label_field]),
                "created_at": now,
                "updated_at": now,
            }
        )

        catalog = self._store.load()
        entries = self._entries(catalog)
        if self._store.strict_ids and self._index_of(entries, entry.id) != -1:
            raise InvalidParameterError(f"Duplicate {self.key[:-1]} id: {entry.id}")

        entries.append(entry)
        self._store.save(catalog)
        logger.info("Added %s id=%s", self.key[:-1], entry.id)
        return entry

    def update(self, entry_id: str, partial: Union[BaseModel, Mapping[str, Any]]) -> Optional[EntryT]:
        """
        Merge partial fields over the first match and refresh updatedAt.
        Returns None (and writes nothing) if no entry has that id.
        """
        raw = _as_dict(partial, exclude_unset=True)
        for k in _IMMUTABLE_KEYS:
            raw.pop(k, None)
        try:
            changes = self._update_model.model_validate(raw).model_dump(exclude_unset=True)
        except ValidationError as e:
            raise InvalidParameterError(f"Invalid {self.key[:-1]} update: {_validation_message(e)}") from e

        catalog = self._store.load()
        entries = self._entries(catalog)
        index = self._index_of(entries, entry_id)
        if index == -1:
            return None

        current = entries[index]
        merged = {**current.model_dump(), **changes}
        merged["id"] = current.id
        merged["created_at"] = current.created_at
        merged["updated_at"] = next_timestamp(current.updated_at)
        try:
            updated = self._model.model_validate(merged)
        except ValidationError as e:
            raise InvalidParameterError(f"Invalid {self.key[:-1]} update: {_validation_message(e)}") from e

        entries[index] = updated
        self._store.save(catalog)
        logger.info("Updated %s id=%s", self.key[:-1], entry_id)
        return updated

    def delete(self, entry_id: str) -> bool:
        catalog = self._store.load()
        entries = self._entries(catalog)
        index = self._index_of(entries, entry_id)
        if index == -1:
            return False

        del entries[index]
        self._store.save(catalog)
        logger.info("Deleted %s id=%s", self.key[:-1], entry_id)
        return True


class CatalogStore:
    """
    File-backed catalog of rudiments and songs.

    The path is resolved once at construction. Each operation loads the whole
    document, mutates an in-memory copy and atomically replaces the file.
    Single-process use only: there is no locking, the last writer wins.
    """

    def __init__(self, path: Optional[PathLike] = None, *, strict_ids: Optional[bool] = None) -> None:
        s = get_settings()
        self.path = Path(path).expanduser().resolve() if path is not None else s.catalog_path
        self.strict_ids = s.strict_ids if strict_ids is None else bool(strict_ids)

        self.rudiments: EntryCollection[Rudiment] = EntryCollection(
            self,
            key="rudiments",
            label_field="name",
            model=Rudiment,
            create_model=RudimentCreate,
            update_model=RudimentUpdate,
        )
        self.songs: EntryCollection[Song] = EntryCollection(
            self,
            key="songs",
            label_field="title",
            model=Song,
            create_model=SongCreate,
            update_model=SongUpdate,
        )

    # ----------------------------
    # Persistence
    # ----------------------------
    def load(self) -> Catalog:
        """Read the whole document. A missing file is an empty catalog."""
        if not self.path.exists():
            logger.debug("Catalog %s does not exist yet; using empty catalog", self.path)
            return Catalog()

        try:
            text = self.path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Error reading catalog %s: %s", self.path, e)
            raise CatalogUnreadableError(f"Catalog unreadable: {self.path} ({e})", path=self.path) from e

        try:
            raw = json.loads(text) if text.strip() else {}
        except ValueError as e:
            logger.error("Invalid JSON in catalog %s: %s", self.path, e)
            raise CatalogUnreadableError(f"Catalog unreadable: {self.path} (invalid JSON: {e})", path=self.path) from e

        if not isinstance(raw, dict):
            raise CatalogUnreadableError(
                f"Catalog unreadable: {self.path} (top-level value must be an object)", path=self.path
            )

        try:
            catalog = Catalog.model_validate(raw)
        except ValidationError as e:
            logger.error("Catalog %s violates schema: %s", self.path, e)
            raise CatalogUnreadableError(
                f"Catalog unreadable: {self.path} ({_validation_message(e)})", path=self.path
            ) from e

        logger.debug(
            "Loaded catalog %s: rudiments=%d songs=%d", self.path, len(catalog.rudiments), len(catalog.songs)
        )
        return catalog

    def save(self, catalog: Catalog) -> None:
        """
        All-or-nothing write: render in memory, write a sibling temp file,
        fsync, then os.replace() over the target.
        """
        data = catalog.to_json().encode("utf-8")
        tmp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent))
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            if self.path.exists():
                # keep the existing file mode; mkstemp creates 0600
                shutil.copymode(self.path, tmp_name)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            logger.error("Error writing catalog %s: %s", self.path, e)
            raise CatalogUnwritableError(f"Catalog unwritable: {self.path} ({e})", path=self.path) from e
        finally:
            if tmp_name is not None:
                _discard(tmp_name)

        logger.debug("Saved catalog %s (%d bytes)", self.path, len(data))

    def init(self, *, overwrite: bool = False) -> bool:
        """Write an empty catalog. Returns False if one already exists and overwrite is off."""
        if self.path.exists() and not overwrite:
            return False
        self.save(Catalog())
        return True


def _discard(path: str) -> None:
    try:
        os.unlink(path)
    except OSError as e:
        logger.warning("Could not remove temp file %s: %s", path, e)
