"""Tests for the keyed query cache."""

import asyncio

import pytest

from conftest import PagedServer, make_page
from nazr.exceptions import ApiError
from nazr.query_cache import ASSETS, PERSONS, QueryCache, QueryKey


def make_cache(server=None, persons=None):
    cache = QueryCache()
    if server is not None:
        cache.register(ASSETS, server)
    if persons is not None:
        cache.register(PERSONS, persons, paginated=False)
    return cache


class TestQueryKey:
    """Tests for key normalization."""

    def test_parameter_order_does_not_matter(self):
        a = QueryKey.of(ASSETS, sort="mtime", order="desc", person_id=3)
        b = QueryKey.of(ASSETS, person_id=3, order="desc", sort="mtime")
        assert a == b
        assert hash(a) == hash(b)

    def test_none_parameters_are_dropped(self):
        assert QueryKey.of(ASSETS, person_id=None) == QueryKey.of(ASSETS)

    def test_different_filters_differ(self):
        assert QueryKey.of(ASSETS, person_id=1) != QueryKey.of(ASSETS, person_id=2)

    def test_person_id_and_matching(self):
        key = QueryKey.of(ASSETS, person_id=7, sort="mtime")
        assert key.person_id == 7
        assert key.scopes_to_person(7)
        assert not key.scopes_to_person(8)
        assert key.matches(ASSETS, person_id=7)
        assert not key.matches(PERSONS)
        assert QueryKey.of(PERSONS).person_id is None

    def test_list_parameters_are_hashable(self):
        key = QueryKey.of(ASSETS, ids=[3, 1])
        assert key.param("ids") == (3, 1)
        assert key in {key}

    def test_str(self):
        assert str(QueryKey.of(PERSONS)) == "persons"
        assert str(QueryKey.of(ASSETS, person_id=1)) == "assets(person_id=1)"


class TestPagination:
    """Tests for next-page fetching."""

    def test_pages_append_in_order(self):
        server = PagedServer([[1, 2], [3, 4], [5]])
        cache = make_cache(server)
        key = QueryKey.of(ASSETS)

        async def scenario():
            for _ in range(3):
                await cache.fetch_next_page(key)
            return cache.get(key)

        entry = asyncio.run(scenario())
        assert [a.id for a in entry.items()] == [1, 2, 3, 4, 5]
        assert entry.has_next_page is False
        assert [c["cursor"] for c in server.calls] == [None, "1", "2"]

    def test_no_fetch_once_exhausted(self):
        server = PagedServer([[1]])
        cache = make_cache(server)
        key = QueryKey.of(ASSETS)

        async def scenario():
            await cache.fetch_next_page(key)
            assert cache.start_fetch_next_page(key) is None
            await cache.fetch_next_page(key)

        asyncio.run(scenario())
        assert len(server.calls) == 1

    def test_in_flight_flag_blocks_second_fetch(self):
        server = PagedServer([[1], [2]])
        cache = make_cache(server)
        key = QueryKey.of(ASSETS)

        async def scenario():
            server.gate = asyncio.Event()
            first = cache.start_fetch_next_page(key)
            assert first is not None
            assert cache.get(key).is_fetching_next_page is True
            assert cache.start_fetch_next_page(key) is None
            server.gate.set()
            await first
            return cache.get(key)

        entry = asyncio.run(scenario())
        assert len(server.calls) == 1
        assert entry.is_fetching_next_page is False

    def test_duplicate_items_are_dropped(self):
        server = PagedServer([[1, 2], [2, 3]])
        cache = make_cache(server)
        key = QueryKey.of(ASSETS)

        async def scenario():
            await cache.fetch_next_page(key)
            await cache.fetch_next_page(key)

        asyncio.run(scenario())
        assert [a.id for a in cache.get(key).items()] == [1, 2, 3]

    def test_failed_fetch_clears_flag_and_keeps_pages(self):
        server = PagedServer([[1], [2]], fail_on=1)
        cache = make_cache(server)
        key = QueryKey.of(ASSETS)

        async def scenario():
            await cache.fetch_next_page(key)
            with pytest.raises(ApiError):
                await cache.fetch_next_page(key)

        asyncio.run(scenario())
        entry = cache.get(key)
        assert entry.is_fetching_next_page is False
        assert isinstance(entry.error, ApiError)
        assert [a.id for a in entry.items()] == [1]

    def test_unregistered_resource_raises(self):
        cache = QueryCache()

        async def scenario():
            cache.start_fetch_next_page(QueryKey.of("nowhere"))

        with pytest.raises(LookupError):
            asyncio.run(scenario())

    def test_page_from_before_reset_is_discarded(self):
        server = PagedServer([[1], [2]])
        cache = make_cache(server)
        key = QueryKey.of(ASSETS)

        async def scenario():
            server.gate = asyncio.Event()
            stale_task = cache.start_fetch_next_page(key)
            cache.ensure(key).generation += 1
            server.gate.set()
            return await stale_task

        assert asyncio.run(scenario()) is None
        assert cache.get(key).pages == []


class TestInvalidation:
    """Tests for stale marking and lazy refetch."""

    def test_invalidate_marks_without_fetching(self):
        server = PagedServer([[1, 2]])
        cache = make_cache(server)
        key = QueryKey.of(ASSETS)

        asyncio.run(cache.fetch_next_page(key))
        marked = cache.invalidate([key, QueryKey.of(ASSETS, person_id=9)])

        assert marked == [key]
        assert cache.get(key).stale is True
        assert len(server.calls) == 1

    def test_observe_refetches_stale_entry_from_first_page(self):
        server = PagedServer([[1], [2]])
        cache = make_cache(server)
        key = QueryKey.of(ASSETS)

        async def scenario():
            await cache.fetch_next_page(key)
            await cache.fetch_next_page(key)
            cache.invalidate([key])
            return await cache.observe(key)

        entry = asyncio.run(scenario())
        assert entry.stale is False
        assert [a.id for a in entry.items()] == [1]
        assert server.calls[-1]["cursor"] is None

    def test_observe_fresh_entry_does_not_fetch(self):
        server = PagedServer([[1]])
        cache = make_cache(server)
        key = QueryKey.of(ASSETS)

        async def scenario():
            await cache.observe(key)
            await cache.observe(key)

        asyncio.run(scenario())
        assert len(server.calls) == 1

    def test_plain_entry_refetch(self):
        calls = []

        async def persons(params):
            calls.append(params)
            return ["Ada", "Grace"][: len(calls)]

        cache = make_cache(persons=persons)
        key = QueryKey.of(PERSONS)

        async def scenario():
            await cache.observe(key)
            cache.invalidate([key])
            return await cache.observe(key)

        entry = asyncio.run(scenario())
        assert entry.paginated is False
        assert entry.data == ["Ada", "Grace"]
        assert len(calls) == 2

    def test_set_pages_replaces_in_place(self):
        cache = QueryCache()
        key = QueryKey.of(ASSETS)
        cache.set_pages(key, [make_page([1, 2], "c1")])
        entry = cache.get(key)
        assert entry.loaded is True
        assert entry.next_cursor == "c1"


class TestNotification:
    """Tests for listener notification and batching."""

    def test_listener_sees_each_change(self):
        cache = QueryCache()
        seen = []
        cache.subscribe(seen.append)

        cache.set_data(QueryKey.of(PERSONS), [])
        cache.set_data(QueryKey.of("faceProgress"), {})
        assert len(seen) == 2

    def test_batch_notifies_once(self):
        cache = QueryCache()
        seen = []
        cache.subscribe(seen.append)
        a, b = QueryKey.of(PERSONS), QueryKey.of("faceProgress")

        with cache.batch():
            cache.set_data(a, [])
            cache.set_data(b, {})
            cache.invalidate([a])
            assert seen == []

        assert seen == [frozenset({a, b})]

    def test_unsubscribe(self):
        cache = QueryCache()
        seen = []
        unsubscribe = cache.subscribe(seen.append)
        unsubscribe()
        cache.set_data(QueryKey.of(PERSONS), [])
        assert seen == []
