"""Album store - persisted, client-owned album collection.

The whole collection lives as one JSON record under ALBUMS_KEY. Every
mutation is a read-modify-write of the entire collection; concurrent
mutations are not serialized and the last write wins.
"""

import logging
import random
import string
import time
from typing import Callable, Iterable, List, Optional

from pydantic import ValidationError as RecordError

from .exceptions import PersistenceFailure, ValidationError
from .models import Album
from .schemas import AlbumCollection, AlbumRecord
from .storage import KeyValueBackend

ALBUMS_KEY = "nazr.albums"
LEGACY_COLLECTIONS_KEY = "nazr.collections"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_album_id(timestamp_ms: int, rng: Optional[random.Random] = None) -> str:
    """Build an album id from a creation timestamp plus a random suffix.

    Collisions are not checked; timestamp plus 9 base-36 characters is
    unique for practical purposes within one store.
    """
    rng = rng or random
    suffix = "".join(rng.choice(_ID_ALPHABET) for _ in range(9))
    return f"alb_{timestamp_ms}_{suffix}"


class AlbumStore:
    """Sole reader and writer of persisted Album entities."""

    def __init__(
        self,
        backend: KeyValueBackend,
        clock: Optional[Callable[[], int]] = None,
        rng: Optional[random.Random] = None,
        logger: Optional[logging.Logger] = None
    ):
        self._backend = backend
        self._clock = clock or _now_ms
        self._rng = rng
        self._logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Persistence boundary
    # ------------------------------------------------------------------

    def _parse(self, raw: str) -> List[Album]:
        records = AlbumCollection.validate_json(raw)
        return [record.to_album() for record in records]

    def _load(self) -> List[Album]:
        """Read the collection, migrating the legacy record if needed.

        Never raises: unreadable or unparsable state reads as empty.
        """
        try:
            stored = self._backend.get(ALBUMS_KEY)
            if stored:
                return self._parse(stored)

            legacy = self._backend.get(LEGACY_COLLECTIONS_KEY)
            if not legacy:
                return []
        except (PersistenceFailure, RecordError) as e:
            self._logger.warning(f"Could not read albums, treating as empty: {e}")
            return []

        try:
            albums = self._parse(legacy)
        except RecordError as e:
            self._logger.warning(f"Legacy collections record is unparsable, skipping migration: {e}")
            return []

        if self._save(albums):
            try:
                self._backend.remove(LEGACY_COLLECTIONS_KEY)
            except PersistenceFailure as e:
                self._logger.error(f"Failed to remove legacy collections key: {e}")
            self._logger.info(f"Migrated {len(albums)} albums from '{LEGACY_COLLECTIONS_KEY}'")
        return albums

    def _save(self, albums: List[Album]) -> bool:
        """Write the collection. Failures are logged and swallowed."""
        records = [AlbumRecord.from_album(album) for album in albums]
        payload = AlbumCollection.dump_json(records, by_alias=True, exclude_none=True)
        try:
            self._backend.set(ALBUMS_KEY, payload.decode("utf-8"))
            return True
        except PersistenceFailure as e:
            self._logger.error(f"Failed to save albums: {e}")
            return False

    def _touch(self, album: Album) -> None:
        album.updated_at = max(self._clock(), album.updated_at)

    @staticmethod
    def _index_of(albums: List[Album], album_id: str) -> int:
        for index, album in enumerate(albums):
            if album.id == album_id:
                return index
        return -1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list(self) -> List[Album]:
        """List all albums in stored order."""
        return self._load()

    def get(self, album_id: str) -> Optional[Album]:
        """Get an album by ID, or None."""
        for album in self._load():
            if album.id == album_id:
                return album
        return None

    def albums_containing(self, asset_id: int) -> List[Album]:
        """All albums whose membership includes asset_id."""
        return [album for album in self._load() if album.contains(asset_id)]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, name: str, description: Optional[str] = None) -> Album:
        """Create a new, empty album.

        Raises:
            ValidationError: If name is empty after trimming
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Album name cannot be empty")

        now = self._clock()
        album = Album(
            id=generate_album_id(now, self._rng),
            name=name,
            description=(description or "").strip() or None,
            asset_ids=[],
            created_at=now,
            updated_at=now,
        )
        albums = self._load()
        albums.append(album)
        self._save(albums)
        self._logger.info(f"Created album {album.id} '{name}'")
        return album

    def update(
        self,
        album_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> Optional[Album]:
        """Rename and/or re-describe an album.

        A name of None leaves it unchanged; an empty description clears it.

        Raises:
            ValidationError: If a name is given that is empty after trimming
        """
        if name is not None and not name.strip():
            raise ValidationError("Album name cannot be empty")

        albums = self._load()
        index = self._index_of(albums, album_id)
        if index == -1:
            return None

        album = albums[index]
        if name is not None:
            album.name = name.strip()
        if description is not None:
            album.description = description.strip() or None
        self._touch(album)
        self._save(albums)
        return album

    def delete(self, album_id: str) -> bool:
        """Delete an album. Assets it referenced are untouched."""
        albums = self._load()
        remaining = [album for album in albums if album.id != album_id]
        if len(remaining) == len(albums):
            self._logger.warning(f"Attempted to delete non-existent album: {album_id}")
            return False
        self._save(remaining)
        self._logger.info(f"Deleted album {album_id}")
        return True

    def add_assets(self, album_id: str, asset_ids: Iterable[int]) -> Optional[Album]:
        """Add asset ids to an album (set union, existing order kept)."""
        albums = self._load()
        index = self._index_of(albums, album_id)
        if index == -1:
            return None

        album = albums[index]
        existing = set(album.asset_ids)
        for asset_id in asset_ids:
            if asset_id not in existing:
                existing.add(asset_id)
                album.asset_ids.append(asset_id)
        self._touch(album)
        self._save(albums)
        return album

    def remove_assets(self, album_id: str, asset_ids: Iterable[int]) -> Optional[Album]:
        """Remove asset ids from an album (set difference)."""
        albums = self._load()
        index = self._index_of(albums, album_id)
        if index == -1:
            return None

        album = albums[index]
        to_remove = set(asset_ids)
        album.asset_ids = [aid for aid in album.asset_ids if aid not in to_remove]
        self._touch(album)
        self._save(albums)
        return album
