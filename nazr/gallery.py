"""Gallery core facade.

Wires the album store, query cache, synchronizer, loader and bulk
coordinator together and exposes the operations the presentation layer
calls: synchronize_after, ensure_album_resolved and apply_bulk, plus
the album store itself.
"""

import asyncio
import logging
from typing import Iterable, Optional

from .albums import AlbumStore
from .api_client import ApiClient
from .bulk import (
    AddToAlbum, BulkAction, BulkMutationCoordinator, BulkResult, DeleteAssets,
    MergePerson, UnassignFromPerson,
)
from .config import AppConfig, get_config
from .loader import DependentPaginationLoader
from .models import Album, AlbumView, Page
from .query_cache import (
    ASSETS, FACE_PROGRESS, PERSON_FACE, PERSONS, UNASSIGNED_FACES,
    CacheEntry, QueryCache, QueryKey,
)
from .session import SessionState
from .storage import JsonFileBackend
from .synchronizer import CacheSynchronizer, MutationKind, SyncReport


class GalleryCore:
    """Client-side convergence layer over the gallery API."""

    def __init__(
        self,
        client: ApiClient,
        album_store: AlbumStore,
        cache: Optional[QueryCache] = None,
        session: Optional[SessionState] = None,
        config: Optional[AppConfig] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.config = config or get_config()
        self.client = client
        self.albums = album_store
        self.cache = cache or QueryCache()
        self.session = session or SessionState()
        self._logger = logger or logging.getLogger(__name__)

        self.synchronizer = CacheSynchronizer(
            self.cache,
            session=self.session,
            album_store=self.albums,
            prune_albums_on_delete=self.config.prune_albums_on_delete,
        )
        self.bulk = BulkMutationCoordinator(
            self.client,
            self.synchronizer,
            album_store=self.albums,
            concurrency=self.config.bulk_concurrency,
        )
        self._register_queries()

    @classmethod
    def from_config(cls, config: Optional[AppConfig] = None) -> "GalleryCore":
        """Build a core with an HTTP client and a file-backed album store."""
        config = config or get_config()
        return cls(
            client=ApiClient(config),
            album_store=AlbumStore(JsonFileBackend(config.albums_path)),
            config=config,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    def _register_queries(self) -> None:
        client = self.client
        self.cache.register(ASSETS, client.list_assets)

        async def persons(params):
            return await client.list_persons()

        async def person_face(params):
            return await client.get_person_face(params["person_id"])

        async def face_progress(params):
            return await client.get_face_progress()

        async def unassigned_faces(params):
            return await client.list_unassigned_faces()

        self.cache.register(PERSONS, persons, paginated=False)
        self.cache.register(PERSON_FACE, person_face, paginated=False)
        self.cache.register(FACE_PROGRESS, face_progress, paginated=False)
        self.cache.register(UNASSIGNED_FACES, unassigned_faces, paginated=False)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def gallery_query(self) -> QueryKey:
        """Default gallery view that album views depend on."""
        return QueryKey.of(
            ASSETS,
            sort=self.config.gallery_sort,
            order=self.config.gallery_order,
            page_size=self.config.effective_page_size,
        )

    def person_query(self, person_id: int) -> QueryKey:
        return QueryKey.of(
            ASSETS,
            sort=self.config.gallery_sort,
            order=self.config.gallery_order,
            page_size=self.config.effective_page_size,
            person_id=person_id,
        )

    async def show(self, query: QueryKey) -> CacheEntry:
        """Make query the visible view and load it."""
        self.session.show(query)
        return await self.cache.observe(query)

    async def show_gallery(self) -> CacheEntry:
        return await self.show(self.gallery_query)

    async def show_person(self, person_id: int) -> CacheEntry:
        return await self.show(self.person_query(person_id))

    async def load_more(self) -> Optional[Page]:
        """Fetch the next page of the visible view (infinite scroll)."""
        if self.session.active_query is None:
            return None
        return await self.cache.fetch_next_page(self.session.active_query)

    # ------------------------------------------------------------------
    # Produced interface
    # ------------------------------------------------------------------

    async def synchronize_after(self, kind: MutationKind, payload) -> SyncReport:
        return await self.synchronizer.synchronize_after(kind, payload)

    def album_loader(self) -> DependentPaginationLoader:
        return DependentPaginationLoader(
            self.cache,
            self.gallery_query,
            max_fetches=self.config.max_dependent_fetches,
        )

    async def ensure_album_resolved(self, album_id: str) -> Optional[AlbumView]:
        """Load gallery pages until the album's members resolve.

        Returns None for an unknown album id. Members the server no
        longer has are reported in missing_ids.
        """
        album = self.albums.get(album_id)
        if album is None:
            return None
        self.session.open_album(album_id)
        return await self.album_loader().resolve_album(album)

    def observe_open_album(self) -> Optional["asyncio.Task"]:
        """Re-evaluate the open album view; starts at most one page fetch."""
        album_id = self.session.selected_album_id
        if album_id is None:
            return None
        album = self.albums.get(album_id)
        if album is None:
            self.session.close_album()
            return None
        return self.album_loader().evaluate(album.asset_ids)

    async def apply_bulk(
        self,
        action: BulkAction,
        asset_ids: Optional[Iterable[int]] = None
    ) -> BulkResult:
        """Apply action to asset_ids, or to the current selection."""
        ids = list(self.session.selection) if asset_ids is None else list(asset_ids)
        result = await self.bulk.apply(action, ids)

        self.session.add_notification(result.message, result.message_type)
        if result.success_count:
            self.session.clear_selection()
        self.observe_open_album()
        return result

    # ------------------------------------------------------------------
    # Convenience actions
    # ------------------------------------------------------------------

    async def delete_asset(self, asset_id: int, permanent: Optional[bool] = None) -> BulkResult:
        if permanent is None:
            permanent = self.config.delete_permanently
        return await self.apply_bulk(DeleteAssets(permanent=permanent), [asset_id])

    async def delete_selected(self, permanent: Optional[bool] = None) -> BulkResult:
        if permanent is None:
            permanent = self.config.delete_permanently
        return await self.apply_bulk(DeleteAssets(permanent=permanent))

    async def unassign_from_person(
        self,
        person_id: int,
        asset_ids: Optional[Iterable[int]] = None
    ) -> BulkResult:
        return await self.apply_bulk(UnassignFromPerson(person_id), asset_ids)

    async def merge_person(self, source_person_id: int, target_person_id: int) -> BulkResult:
        return await self.apply_bulk(MergePerson(source_person_id, target_person_id), [])

    async def add_to_album(
        self,
        album_id: str,
        asset_ids: Optional[Iterable[int]] = None
    ) -> BulkResult:
        return await self.apply_bulk(AddToAlbum(album_id), asset_ids)

    async def create_album_from_selection(
        self,
        name: str,
        description: Optional[str] = None
    ) -> Album:
        """Create an album and add the current selection to it."""
        album = self.albums.create(name, description)
        if self.session.selection:
            await self.add_to_album(album.id)
        return self.albums.get(album.id) or album
