"""Tests for the HTTP API client, using httpx's mock transport."""

import asyncio
import json

import httpx
import pytest

from nazr.api_client import ApiClient
from nazr.config import AppConfig
from nazr.exceptions import ApiError, TransportFailure


def run_with(handler, call):
    """Run call(client) against a client whose requests go to handler."""
    config = AppConfig(api_base_url="http://gallery.test/")

    async def scenario():
        async with ApiClient(config, transport=httpx.MockTransport(handler)) as client:
            return await call(client)

    return asyncio.run(scenario())


class TestAssets:
    """Tests for the asset endpoints."""

    def test_list_assets_sends_filters_and_cursor(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={
                "items": [{"id": 1, "sha256": "abc", "filename": "a.jpg", "mime": "image/jpeg", "mtime": 5}],
                "next_cursor": "c2",
            })

        page = run_with(handler, lambda c: c.list_assets({"sort": "mtime", "person_id": None}, "c1"))

        assert seen["path"] == "/assets"
        assert seen["params"] == {"sort": "mtime", "cursor": "c1"}
        assert page.items[0].filename == "a.jpg"
        assert page.items[0].is_image
        assert page.has_more

    def test_delete_permanent(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            return httpx.Response(200, json={
                "success": False, "read_only": True, "error": "read-only", "path": "/p/a.jpg",
            })

        result = run_with(handler, lambda c: c.delete_asset(4, permanent=True))

        assert seen["method"] == "DELETE"
        assert seen["url"] == "http://gallery.test/assets/4?permanent=true"
        assert result.read_only is True
        assert result.path == "/p/a.jpg"


class TestFacesAndPeople:
    """Tests for the face and person endpoints."""

    def test_get_asset_faces(self):
        def handler(request):
            assert request.url.path == "/assets/3/faces"
            return httpx.Response(200, json=[
                {"id": 10, "asset_id": 3, "person_id": 7},
                {"id": 11, "asset_id": 3, "person_id": None},
            ])

        faces = run_with(handler, lambda c: c.get_asset_faces(3))
        assert [(f.id, f.person_id) for f in faces] == [(10, 7), (11, None)]

    def test_unassign_posts_null_person(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        run_with(handler, lambda c: c.assign_face_to_person(10, None))
        assert seen == {"path": "/faces/10/assign", "body": {"person_id": None}}

    def test_merge_persons(self):
        def handler(request):
            assert request.url.path == "/persons/7/merge"
            assert json.loads(request.content) == {"target_person_id": 8}
            return httpx.Response(200, json={"faces_merged": 3, "profile_refreshed": {"face_count": 9}})

        result = run_with(handler, lambda c: c.merge_persons(7, 8))
        assert result.faces_merged == 3
        assert result.profile_face_count == 9

    def test_list_persons(self):
        def handler(request):
            return httpx.Response(200, json=[{"id": 1, "name": "Ada", "face_count": 4}])

        persons = run_with(handler, lambda c: c.list_persons())
        assert persons[0].name == "Ada"
        assert persons[0].face_count == 4


class TestErrors:
    """Tests for error translation."""

    def test_http_error_uses_detail(self):
        def handler(request):
            return httpx.Response(404, json={"detail": "Asset not found"})

        with pytest.raises(ApiError) as exc_info:
            run_with(handler, lambda c: c.delete_asset(1))

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Asset not found"
        assert str(exc_info.value) == "API Error 404: Asset not found"

    def test_http_error_without_json_body(self):
        def handler(request):
            return httpx.Response(500, text="boom")

        with pytest.raises(ApiError) as exc_info:
            run_with(handler, lambda c: c.get_face_progress())

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Internal Server Error"

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportFailure) as exc_info:
            run_with(handler, lambda c: c.list_persons())

        assert exc_info.value.status_code == 0
        assert "Connection error" in exc_info.value.message

    def test_empty_body_decodes_as_empty_dict(self):
        def handler(request):
            return httpx.Response(204)

        assert run_with(handler, lambda c: c.get_person_face(1)) == {}

    def test_non_json_success_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>proxy error</html>")

        with pytest.raises(ApiError) as exc_info:
            run_with(handler, lambda c: c.list_assets({}))

        assert exc_info.value.status_code == 200
        assert exc_info.value.message == "Invalid JSON response"

    def test_malformed_page_is_reported(self):
        def handler(request):
            return httpx.Response(200, json={"items": [{"filename": "no-id.jpg"}]})

        with pytest.raises(ApiError) as exc_info:
            run_with(handler, lambda c: c.list_assets({}))

        assert "Malformed response from /assets" in exc_info.value.message

    def test_malformed_face_list_is_reported(self):
        def handler(request):
            return httpx.Response(200, json=[{"id": "x", "asset_id": 3}])

        with pytest.raises(TransportFailure):
            run_with(handler, lambda c: c.get_asset_faces(3))
