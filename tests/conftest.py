"""Shared fixtures and fakes for the gallery core tests."""

import asyncio
from typing import Dict, Iterable, List, Optional

import pytest

from nazr.albums import AlbumStore
from nazr.config import AppConfig
from nazr.exceptions import ApiError, PersistenceFailure
from nazr.models import Asset, DeleteResult, Face, MergeResult, Page, Person
from nazr.storage import InMemoryBackend


def make_asset(asset_id: int) -> Asset:
    return Asset(
        id=asset_id,
        sha256=f"sha{asset_id:04d}",
        filename=f"IMG_{asset_id:04d}.jpg",
        mime="image/jpeg",
        mtime=1_700_000_000.0 - asset_id,
    )


def make_page(asset_ids: Iterable[int], next_cursor: Optional[str] = None) -> Page:
    return Page(items=[make_asset(i) for i in asset_ids], next_cursor=next_cursor)


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1) -> None:
        self.now += ms


class FlakyBackend(InMemoryBackend):
    """In-memory backend whose reads or writes can be made to fail."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.fail_reads = False
        self.fail_writes = False

    def get(self, key):
        if self.fail_reads:
            raise PersistenceFailure("storage unavailable")
        return super().get(key)

    def set(self, key, value):
        if self.fail_writes:
            raise PersistenceFailure("quota exceeded")
        super().set(key, value)


class PagedServer:
    """Paginated query function serving fixed pages of asset ids.

    Cursors are page indexes as strings. Set `gate` to an asyncio.Event
    to hold responses until the test releases them.
    """

    def __init__(self, pages: List[List[int]], fail_on: Optional[int] = None):
        self.pages = pages
        self.fail_on = fail_on
        self.calls: List[Dict] = []
        self.gate: Optional[asyncio.Event] = None

    async def __call__(self, params, cursor):
        self.calls.append({"params": dict(params), "cursor": cursor})
        if self.gate is not None:
            await self.gate.wait()
        index = int(cursor) if cursor else 0
        if self.fail_on is not None and index == self.fail_on:
            raise ApiError(503, "Service unavailable")
        next_cursor = str(index + 1) if index + 1 < len(self.pages) else None
        return make_page(self.pages[index], next_cursor)


class FakeApiClient:
    """In-process stand-in for ApiClient."""

    def __init__(
        self,
        faces: Optional[Dict[int, List[Face]]] = None,
        failing_assets: Iterable[int] = (),
        delete_results: Optional[Dict[int, DeleteResult]] = None,
        merge_result: Optional[MergeResult] = None,
        pages: Optional[List[List[int]]] = None,
    ):
        self.faces = faces or {}
        self.failing_assets = set(failing_assets)
        self.delete_results = delete_results or {}
        self.merge_result = merge_result or MergeResult(faces_merged=0)
        self.server = PagedServer(pages or [[]])
        self.assigned: List[tuple] = []
        self.deleted: List[tuple] = []
        self.merged: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _enter(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1

    async def list_assets(self, params, cursor=None):
        return await self.server(params, cursor)

    async def get_asset_faces(self, asset_id):
        await self._enter()
        if asset_id in self.failing_assets:
            raise ApiError(500, f"Internal error for asset {asset_id}")
        return list(self.faces.get(asset_id, []))

    async def assign_face_to_person(self, face_id, person_id):
        self.assigned.append((face_id, person_id))
        return {}

    async def delete_asset(self, asset_id, permanent=False):
        await self._enter()
        if asset_id in self.failing_assets:
            raise ApiError(0, "Connection error: refused")
        self.deleted.append((asset_id, permanent))
        return self.delete_results.get(asset_id, DeleteResult(success=True))

    async def merge_persons(self, source_person_id, target_person_id):
        self.merged.append((source_person_id, target_person_id))
        if source_person_id in self.failing_assets:
            raise ApiError(500, "Merge failed")
        return self.merge_result

    async def list_persons(self):
        return [Person(id=1, name="Ada", face_count=3)]

    async def get_person_face(self, person_id):
        return {"person_id": person_id}

    async def get_face_progress(self):
        return {"done": 1, "total": 2}

    async def list_unassigned_faces(self):
        return []

    async def aclose(self):
        pass


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return FlakyBackend()


@pytest.fixture
def store(backend, clock):
    return AlbumStore(backend, clock=clock)


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        api_base_url="http://gallery.test",
        albums_path=tmp_path / "albums.json",
        page_size=2,
        bulk_concurrency=4,
    )
