"""Keyed cache of server query results.

Entries are keyed by a normalized QueryKey (resource plus filter
parameters). Paginated entries hold an append-only list of pages;
plain entries hold a single decoded value. Invalidation only marks an
entry stale: the refetch happens the next time someone observes it.
"""

import asyncio
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import (
    Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Iterator, List,
    Optional, Set, Tuple,
)

from .models import Asset, Page


PageFetcher = Callable[[Dict[str, Any], Optional[str]], Awaitable[Page]]
DataFetcher = Callable[[Dict[str, Any]], Awaitable[Any]]
Listener = Callable[[FrozenSet["QueryKey"]], None]


def _freeze(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return tuple(sorted(value))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, dict):
        return tuple(sorted((k, _freeze(v)) for k, v in value.items()))
    return value


@dataclass(frozen=True)
class QueryKey:
    """Resource name plus sorted filter parameters.

    Equal filters always compare and hash equal, whatever order the
    parameters were given in. None-valued parameters are dropped.
    """
    resource: str
    params: Tuple[Tuple[str, Any], ...] = ()

    @classmethod
    def of(cls, resource: str, **params: Any) -> "QueryKey":
        items = tuple(sorted(
            (name, _freeze(value)) for name, value in params.items() if value is not None
        ))
        return cls(resource=resource, params=items)

    def param(self, name: str, default: Any = None) -> Any:
        for key, value in self.params:
            if key == name:
                return value
        return default

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.params)

    @property
    def person_id(self) -> Optional[int]:
        return self.param("person_id")

    def scopes_to_person(self, person_id: int) -> bool:
        return person_id is not None and self.person_id == person_id

    def matches(self, resource: Optional[str] = None, **params: Any) -> bool:
        """Prefix match: same resource and every given parameter equal."""
        if resource is not None and self.resource != resource:
            return False
        return all(self.param(name) == _freeze(value) for name, value in params.items())

    def __str__(self) -> str:
        if not self.params:
            return self.resource
        rendered = ", ".join(f"{k}={v}" for k, v in self.params)
        return f"{self.resource}({rendered})"


@dataclass
class CacheEntry:
    """Cached result for one QueryKey."""
    key: QueryKey
    paginated: bool = True
    pages: List[Page] = field(default_factory=list)
    data: Any = None
    loaded: bool = False
    stale: bool = False
    is_fetching_next_page: bool = False
    generation: int = 0
    error: Optional[BaseException] = None
    pending: Optional["asyncio.Task"] = None
    updated_at: float = 0.0

    @property
    def has_next_page(self) -> bool:
        """True before the first page and while the server reports more."""
        if not self.paginated:
            return False
        if not self.pages:
            return True
        return self.pages[-1].has_more

    @property
    def next_cursor(self) -> Optional[str]:
        return self.pages[-1].next_cursor if self.pages else None

    def items(self) -> Iterator[Asset]:
        for page in self.pages:
            yield from page.items

    def asset_ids(self) -> Set[int]:
        return {asset.id for asset in self.items()}

    def holds_any(self, asset_ids: Iterable[int]) -> bool:
        present = self.asset_ids()
        return any(asset_id in present for asset_id in asset_ids)


class QueryCache:
    """Process-lifetime cache of paginated and plain query results."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._entries: Dict[QueryKey, CacheEntry] = {}
        self._page_fetchers: Dict[str, PageFetcher] = {}
        self._data_fetchers: Dict[str, DataFetcher] = {}
        self._listeners: List[Listener] = []
        self._batch_depth = 0
        self._changed: Set[QueryKey] = set()
        self._logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Registration and lookup
    # ------------------------------------------------------------------

    def register(self, resource: str, fetcher: Callable, paginated: bool = True) -> None:
        """Bind an async query function to a resource name."""
        if paginated:
            self._page_fetchers[resource] = fetcher
            self._data_fetchers.pop(resource, None)
        else:
            self._data_fetchers[resource] = fetcher
            self._page_fetchers.pop(resource, None)

    def ensure(self, key: QueryKey) -> CacheEntry:
        """Return the entry for key, creating an empty one if needed."""
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key, paginated=key.resource not in self._data_fetchers)
            self._entries[key] = entry
        return entry

    def get(self, key: QueryKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def keys(self) -> List[QueryKey]:
        return list(self._entries)

    def entries(self, resource: Optional[str] = None, **params: Any) -> List[CacheEntry]:
        """All entries whose key prefix-matches resource and params."""
        return [entry for key, entry in self._entries.items() if key.matches(resource, **params)]

    def remove(self, key: QueryKey) -> bool:
        removed = self._entries.pop(key, None) is not None
        if removed:
            self._notify(key)
        return removed

    # ------------------------------------------------------------------
    # Direct writes
    # ------------------------------------------------------------------

    def set_pages(self, key: QueryKey, pages: List[Page]) -> CacheEntry:
        """Replace the pages of a paginated entry in place."""
        entry = self.ensure(key)
        entry.pages = list(pages)
        entry.loaded = True
        entry.updated_at = time.time()
        self._notify(key)
        return entry

    def set_data(self, key: QueryKey, data: Any) -> CacheEntry:
        """Replace the value of a plain entry."""
        entry = self.ensure(key)
        entry.paginated = False
        entry.data = data
        entry.loaded = True
        entry.updated_at = time.time()
        self._notify(key)
        return entry

    def invalidate(self, keys: Iterable[QueryKey]) -> List[QueryKey]:
        """Mark entries stale without fetching. Returns the keys marked."""
        marked = []
        for key in keys:
            entry = self._entries.get(key)
            if entry is None:
                continue
            entry.stale = True
            marked.append(key)
            self._notify(key)
            self._logger.debug(f"Invalidated {key}")
        return marked

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def start_fetch_next_page(self, key: QueryKey) -> Optional["asyncio.Task"]:
        """Start fetching the next page of key, unless one is in flight.

        The in-flight flag is set before this returns, so repeated calls
        in the same tick never start a second request. Returns None when a
        fetch is already running or the server reported no more pages.
        """
        entry = self.ensure(key)
        if entry.is_fetching_next_page or not entry.has_next_page:
            return None
        fetcher = self._page_fetchers.get(key.resource)
        if fetcher is None:
            raise LookupError(f"No paginated query registered for '{key.resource}'")

        entry.is_fetching_next_page = True
        cursor = entry.next_cursor
        task = asyncio.get_running_loop().create_task(
            self._run_page_fetch(entry, fetcher, cursor, entry.generation)
        )
        entry.pending = task
        return task

    async def _run_page_fetch(
        self,
        entry: CacheEntry,
        fetcher: PageFetcher,
        cursor: Optional[str],
        generation: int
    ) -> Optional[Page]:
        def is_current() -> bool:
            return self._entries.get(entry.key) is entry and entry.generation == generation

        self._logger.debug(f"Fetching page of {entry.key} (cursor={cursor})")
        try:
            page = await fetcher(entry.key.as_dict(), cursor)
        except BaseException as e:
            if is_current():
                entry.is_fetching_next_page = False
                entry.pending = None
                if isinstance(e, Exception):
                    entry.error = e
            raise

        if not is_current():
            self._logger.debug(f"Discarding page for {entry.key}: entry was reset")
            return None
        entry.is_fetching_next_page = False
        entry.pending = None
        return self._append_page(entry, page)

    def _append_page(self, entry: CacheEntry, page: Page) -> Page:
        seen = entry.asset_ids()
        items = []
        for asset in page.items:
            if asset.id not in seen:
                seen.add(asset.id)
                items.append(asset)
        if len(items) != len(page.items):
            self._logger.debug(
                f"Dropped {len(page.items) - len(items)} duplicate items from page of {entry.key}"
            )
        stored = Page(items=items, next_cursor=page.next_cursor)
        entry.pages.append(stored)
        entry.loaded = True
        entry.stale = False
        entry.error = None
        entry.updated_at = time.time()
        self._notify(entry.key)
        return stored

    async def fetch_next_page(self, key: QueryKey) -> Optional[Page]:
        """Fetch the next page, or wait for the one already in flight."""
        task = self.start_fetch_next_page(key)
        if task is None:
            entry = self.ensure(key)
            if entry.pending is not None:
                await entry.pending
            return None
        return await task

    async def refetch(self, key: QueryKey) -> CacheEntry:
        """Reload an entry from scratch (first page, or the plain value)."""
        entry = self.ensure(key)
        if entry.paginated and key.resource not in self._page_fetchers:
            raise LookupError(f"No paginated query registered for '{key.resource}'")
        entry.generation += 1
        if entry.paginated:
            entry.pages = []
            entry.is_fetching_next_page = False
            entry.pending = None
            await self.fetch_next_page(key)
            return entry

        fetcher = self._data_fetchers.get(key.resource)
        if fetcher is None:
            raise LookupError(f"No query registered for '{key.resource}'")
        generation = entry.generation
        try:
            data = await fetcher(key.as_dict())
        except Exception as e:
            entry.error = e
            raise
        if entry.generation == generation:
            entry.data = data
            entry.loaded = True
            entry.stale = False
            entry.error = None
            entry.updated_at = time.time()
            self._notify(key)
        return entry

    async def observe(self, key: QueryKey) -> CacheEntry:
        """Return an up-to-date entry, fetching if missing or stale."""
        entry = self.ensure(key)
        if entry.stale or not entry.loaded:
            if entry.paginated and not entry.stale and entry.pending is not None:
                await entry.pending
                return entry
            return await self.refetch(key)
        return entry

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @contextmanager
    def batch(self):
        """Defer change notifications until the outermost batch exits."""
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                self._flush()

    def _notify(self, key: QueryKey) -> None:
        self._changed.add(key)
        if self._batch_depth == 0:
            self._flush()

    def _flush(self) -> None:
        if not self._changed:
            return
        changed = frozenset(self._changed)
        self._changed = set()
        for listener in list(self._listeners):
            listener(changed)


# Resource names used by the gallery views
ASSETS = "assets"
PERSONS = "persons"
PERSON_FACE = "personFace"
FACE_PROGRESS = "faceProgress"
UNASSIGNED_FACES = "unassignedFaces"
