"""Cache synchronizer - reconciles cached views after a mutation.

Two strategies are used:

* in-place patch: deleted assets are filtered out of every loaded page,
  keeping the other pages and their continuation markers;
* invalidation: entries whose content the server must recompute are
  marked stale and refetched lazily on their next observation. The
  currently visible view is the exception and is refetched right away.

All cache writes for one outcome happen inside a single cache batch, so
listeners see one change set per mutation.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Set

from .albums import AlbumStore
from .exceptions import TransportFailure, ValidationError
from .models import Page
from .query_cache import (
    FACE_PROGRESS, PERSON_FACE, PERSONS, UNASSIGNED_FACES, QueryCache, QueryKey,
)
from .session import SessionState


class MutationKind(str, Enum):
    """Kinds of mutation the synchronizer knows how to reconcile."""
    DELETE_ASSET = "delete_asset"
    UNASSIGN_FACES = "unassign_faces"
    MERGE_PERSON = "merge_person"
    ALBUM_MEMBERSHIP = "album_membership"


@dataclass(frozen=True)
class AssetsDeleted:
    asset_ids: FrozenSet[int]

    @classmethod
    def of(cls, asset_ids: Iterable[int]) -> "AssetsDeleted":
        return cls(frozenset(asset_ids))


@dataclass(frozen=True)
class FacesUnassigned:
    person_id: int
    asset_ids: FrozenSet[int]

    @classmethod
    def of(cls, person_id: int, asset_ids: Iterable[int]) -> "FacesUnassigned":
        return cls(person_id, frozenset(asset_ids))


@dataclass(frozen=True)
class PersonMerged:
    source_person_id: int
    target_person_id: int


@dataclass(frozen=True)
class AlbumMembershipChanged:
    album_id: str
    asset_ids: FrozenSet[int] = frozenset()


_PAYLOAD_TYPES = {
    MutationKind.DELETE_ASSET: AssetsDeleted,
    MutationKind.UNASSIGN_FACES: FacesUnassigned,
    MutationKind.MERGE_PERSON: PersonMerged,
    MutationKind.ALBUM_MEMBERSHIP: AlbumMembershipChanged,
}

# Server-derived aggregates that any face reassignment may change
_FACE_AGGREGATES = (FACE_PROGRESS, UNASSIGNED_FACES)


@dataclass
class SyncReport:
    """What one reconciliation did to the cache."""
    kind: MutationKind
    patched: List[QueryKey] = field(default_factory=list)
    invalidated: List[QueryKey] = field(default_factory=list)
    refetched: List[QueryKey] = field(default_factory=list)
    redirected_to: Optional[int] = None
    albums_pruned: List[str] = field(default_factory=list)

    @property
    def touched(self) -> Set[QueryKey]:
        return set(self.patched) | set(self.invalidated)


class CacheSynchronizer:
    """Decides which cached views a mutation made stale, and fixes them."""

    def __init__(
        self,
        cache: QueryCache,
        session: Optional[SessionState] = None,
        album_store: Optional[AlbumStore] = None,
        prune_albums_on_delete: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        self._cache = cache
        self._session = session
        self._album_store = album_store
        self._prune_albums = prune_albums_on_delete
        self._logger = logger or logging.getLogger(__name__)

    async def synchronize_after(self, kind: MutationKind, payload) -> SyncReport:
        """Reconcile the cache after a completed mutation.

        Raises:
            ValidationError: If payload does not match kind
        """
        kind = MutationKind(kind)
        expected = _PAYLOAD_TYPES[kind]
        if not isinstance(payload, expected):
            raise ValidationError(
                f"{kind.value} expects {expected.__name__}, got {type(payload).__name__}"
            )

        report = SyncReport(kind=kind)
        with self._cache.batch():
            if kind is MutationKind.DELETE_ASSET:
                self._apply_delete(payload, report)
            elif kind is MutationKind.UNASSIGN_FACES:
                self._apply_unassign(payload, report)
            elif kind is MutationKind.MERGE_PERSON:
                self._apply_merge(payload, report)
            # Album membership never touches server-backed caches.

        await self._refresh_active_view(report)
        self._logger.debug(
            f"Synchronized {kind.value}: patched={len(report.patched)} "
            f"invalidated={len(report.invalidated)} refetched={len(report.refetched)}"
        )
        return report

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _apply_delete(self, payload: AssetsDeleted, report: SyncReport) -> None:
        doomed = set(payload.asset_ids)
        if not doomed:
            return

        for entry in self._cache.entries():
            if not entry.paginated or not entry.pages:
                continue
            changed = False
            pages = []
            for page in entry.pages:
                kept = [asset for asset in page.items if asset.id not in doomed]
                if len(kept) != len(page.items):
                    pages.append(Page(items=kept, next_cursor=page.next_cursor))
                    changed = True
                else:
                    pages.append(page)
            if changed:
                self._cache.set_pages(entry.key, pages)
                report.patched.append(entry.key)

        if self._prune_albums and self._album_store is not None:
            for album in self._album_store.list():
                if any(asset_id in doomed for asset_id in album.asset_ids):
                    self._album_store.remove_assets(album.id, doomed)
                    report.albums_pruned.append(album.id)

    def _apply_unassign(self, payload: FacesUnassigned, report: SyncReport) -> None:
        person_id = payload.person_id
        stale = []
        for entry in self._cache.entries():
            key = entry.key
            if key.resource in _FACE_AGGREGATES or key.resource == PERSONS:
                stale.append(key)
            elif key.resource == PERSON_FACE and key.scopes_to_person(person_id):
                stale.append(key)
            elif (
                key.scopes_to_person(person_id)
                and entry.paginated
                and entry.holds_any(payload.asset_ids)
            ):
                stale.append(key)
        report.invalidated.extend(self._cache.invalidate(stale))

    def _apply_merge(self, payload: PersonMerged, report: SyncReport) -> None:
        source, target = payload.source_person_id, payload.target_person_id
        stale = [
            entry.key for entry in self._cache.entries()
            if entry.key.scopes_to_person(source)
            or entry.key.scopes_to_person(target)
            or entry.key.resource == PERSONS
            or entry.key.resource in _FACE_AGGREGATES
        ]
        report.invalidated.extend(self._cache.invalidate(stale))

        if self._session is not None and self._session.redirect_person(source, target):
            report.redirected_to = target
            self._logger.info(f"Redirected view from person {source} to {target}")

    # ------------------------------------------------------------------
    # Active view
    # ------------------------------------------------------------------

    async def _refresh_active_view(self, report: SyncReport) -> None:
        if self._session is None or self._session.active_query is None:
            return
        active = self._session.active_query
        if active not in report.invalidated and report.redirected_to is None:
            return
        try:
            await self._cache.observe(active)
            report.refetched.append(active)
        except TransportFailure as e:
            self._logger.warning(f"Refetch of active view {active} failed, left stale: {e}")
        except LookupError as e:
            self._logger.error(f"Cannot refetch active view {active}: {e}")
