"""Client-side favorites with notes.

Favorites never reach the server. A `FavoritesStore` holds an immutable
snapshot and writes every change through an injected key-value storage:
`MemoryStorage` in tests and `JsonFileStorage` on disk.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, TypeAdapter

from .config import Settings, settings

logger = logging.getLogger(__name__)

FAVORITES_KEY = "favorites"


class Favorite(BaseModel):
    """A favorited property and the user's note about it."""

    model_config = ConfigDict(frozen=True)

    property_id: int
    note: str = ""


FavoritesSnapshot = tuple[Favorite, ...]

_favorites_adapter = TypeAdapter(list[Favorite])


class FavoritesStorage(Protocol):
    """Durable string key-value storage."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileStorage:
    """Key-value storage kept as a single JSON object on disk.

    Writes go to a temporary file that replaces the old one, so a crash
    mid-write leaves the previous contents intact.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        return json.loads(self.path.read_text(encoding="utf-8"))

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise


class FavoritesStore:
    """Favorites list with add/remove/update_note, persisted on every change.

    Each mutation returns the new snapshot; snapshots are tuples of frozen
    models, so earlier snapshots are never modified.
    """

    def __init__(self, storage: FavoritesStorage, key: str = FAVORITES_KEY):
        self.storage = storage
        self.key = key
        raw = storage.get(key)
        self._snapshot: FavoritesSnapshot = (
            tuple(_favorites_adapter.validate_json(raw)) if raw else ()
        )

    @property
    def snapshot(self) -> FavoritesSnapshot:
        return self._snapshot

    def __contains__(self, property_id: int) -> bool:
        return any(fav.property_id == property_id for fav in self._snapshot)

    def __len__(self) -> int:
        return len(self._snapshot)

    def get(self, property_id: int) -> Favorite | None:
        for fav in self._snapshot:
            if fav.property_id == property_id:
                return fav
        return None

    def _commit(self, favorites: FavoritesSnapshot) -> FavoritesSnapshot:
        self.storage.set(self.key, _favorites_adapter.dump_json(list(favorites)).decode())
        self._snapshot = favorites
        return favorites

    def add(self, property_id: int) -> FavoritesSnapshot:
        """Favorite a property with an empty note; no-op if already present."""
        if property_id in self:
            return self._snapshot
        logger.debug(f"Adding favorite {property_id}")
        return self._commit(self._snapshot + (Favorite(property_id=property_id),))

    def remove(self, property_id: int) -> FavoritesSnapshot:
        logger.debug(f"Removing favorite {property_id}")
        return self._commit(tuple(f for f in self._snapshot if f.property_id != property_id))

    def update_note(self, property_id: int, note: str) -> FavoritesSnapshot:
        """Replace the note of a favorite. Unknown ids leave the list unchanged."""
        return self._commit(
            tuple(
                f.model_copy(update={"note": note}) if f.property_id == property_id else f
                for f in self._snapshot
            )
        )

    def toggle(self, property_id: int) -> FavoritesSnapshot:
        if property_id in self:
            return self.remove(property_id)
        return self.add(property_id)


def default_favorites_store(config: Settings | None = None) -> FavoritesStore:
    """Favorites kept in the JSON file named by STORMHAVEN_FAVORITES_PATH."""
    config = config or settings
    return FavoritesStore(JsonFileStorage(config.favorites_path))
