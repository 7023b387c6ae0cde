"""Dependent pagination loader.

An album references a fixed set of asset ids, but assets are only known
once the page containing them has been loaded into the default gallery
view. The loader pulls further gallery pages, one at a time, until every
referenced id is present or the server reports there are no more pages.
Ids still missing at that point are broken references: they are left
out of the resolved view and are not errors.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from .exceptions import TransportFailure
from .models import Album, AlbumView, Asset
from .query_cache import CacheEntry, QueryCache, QueryKey


class DependentPaginationLoader:
    """Extends one paginated cache entry on behalf of a dependent view."""

    def __init__(
        self,
        cache: QueryCache,
        key: QueryKey,
        max_fetches: Optional[int] = None,
        logger: Optional[logging.Logger] = None
    ):
        self._cache = cache
        self._key = key
        self._max_fetches = max_fetches
        self._logger = logger or logging.getLogger(__name__)

    @property
    def key(self) -> QueryKey:
        return self._key

    @property
    def entry(self) -> CacheEntry:
        return self._cache.ensure(self._key)

    def missing(self, target_ids: Iterable[int]) -> Set[int]:
        """Target ids not present in any loaded page."""
        return set(target_ids) - self.entry.asset_ids()

    def evaluate(self, target_ids: Iterable[int]) -> Optional["asyncio.Task"]:
        """One observation: request a single page if, and only if, needed.

        A page is requested when some target id is missing, the server
        has more pages, and no fetch is already in flight for the entry.
        Calling this repeatedly while a fetch runs never starts another.
        Must be called from within a running event loop.
        """
        target = set(target_ids)
        if not target:
            return None
        entry = self.entry
        if entry.is_fetching_next_page or not entry.has_next_page:
            return None
        if not (target - entry.asset_ids()):
            return None

        task = self._cache.start_fetch_next_page(self._key)
        if task is not None:
            task.add_done_callback(self._log_failure)
        return task

    def _log_failure(self, task: "asyncio.Task") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._logger.warning(f"Page fetch for {self._key} failed: {error}")

    async def resolve(self, target_ids: Iterable[int]) -> "Resolution":
        """Fetch pages until every target id is loaded or pages run out.

        Each round either shrinks the missing set or ends the loop, and at
        most one request is outstanding for the entry at any time. A
        transport failure stops the loop and is reported, not raised.
        """
        target = set(target_ids)
        fetches = 0
        failed = False

        while True:
            entry = self.entry
            missing = target - entry.asset_ids()
            if not missing or not entry.has_next_page:
                break
            if self._max_fetches is not None and fetches >= self._max_fetches:
                self._logger.warning(
                    f"Stopped resolving {len(missing)} ids after {fetches} pages of {self._key}"
                )
                break

            try:
                if entry.is_fetching_next_page and entry.pending is not None:
                    # Someone else's request; wait for it instead of issuing another.
                    await entry.pending
                    continue
                task = self.evaluate(target)
                if task is None:
                    break
                fetches += 1
                await task
            except TransportFailure as e:
                self._logger.warning(f"Could not load more of {self._key}: {e}")
                failed = True
                break

        entry = self.entry
        missing = target - entry.asset_ids()
        return Resolution(
            missing=missing,
            fetches=fetches,
            exhausted=bool(missing) and not entry.has_next_page,
            failed=failed,
        )

    def lookup(self) -> Dict[int, Asset]:
        """Map of asset id to asset across the loaded pages."""
        return {asset.id: asset for asset in self.entry.items()}

    async def resolve_album(self, album: Album) -> AlbumView:
        """Resolve an album's members against the gallery pages."""
        resolution = await self.resolve(album.asset_ids)
        loaded = self.lookup()
        assets: List[Asset] = [loaded[aid] for aid in album.asset_ids if aid in loaded]
        missing = [aid for aid in album.asset_ids if aid not in loaded]
        if missing:
            self._logger.debug(f"Album {album.id}: {len(missing)} unresolved references")
        return AlbumView(
            album=album,
            assets=assets,
            missing_ids=missing,
            fetches=resolution.fetches,
            exhausted=resolution.exhausted,
            failed=resolution.failed,
        )


@dataclass
class Resolution:
    """Outcome of DependentPaginationLoader.resolve()."""
    missing: Set[int] = field(default_factory=set)
    fetches: int = 0
    exhausted: bool = False
    failed: bool = False

    @property
    def complete(self) -> bool:
        return not self.missing

