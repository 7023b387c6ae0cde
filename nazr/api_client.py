"""Async HTTP client for the gallery backend.

Covers the asset query, person/face and asset deletion services the
core depends on. Every failure surfaces as ApiError.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx

from .config import AppConfig, get_config
from .exceptions import ApiError
from .models import DeleteResult, Face, MergeResult, Page, Person

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _list_of(model) -> Callable[[Any], List]:
    """Parser for a JSON list of model records; a non-list body reads as empty."""
    def parse(data: Any) -> List:
        return [model.from_dict(item) for item in (data if isinstance(data, list) else [])]
    return parse


class ApiClient:
    """HTTP client for the gallery API."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config or get_config()
        self.base_url = self.config.api_base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.config.api_timeout_sec,
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict] = None,
        json: Optional[Dict] = None,
    ) -> Any:
        """Make HTTP request and return the decoded JSON body."""
        try:
            response = await self._client.request(method, path, params=params, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error_msg = e.response.reason_phrase or str(e)
            try:
                error_data = e.response.json()
                if isinstance(error_data, dict):
                    error_msg = error_data.get("detail", error_msg)
            except ValueError:
                pass
            raise ApiError(e.response.status_code, error_msg) from e
        except httpx.RequestError as e:
            raise ApiError(0, f"Connection error: {e}") from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(response.status_code, "Invalid JSON response") from e

    @staticmethod
    def _parse(path: str, parse: Callable[[Any], T], data: Any) -> T:
        """Decode a response body, reporting a malformed one as ApiError."""
        try:
            return parse(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ApiError(0, f"Malformed response from {path}: {e}") from e

    # Assets
    async def list_assets(self, params: Dict[str, Any], cursor: Optional[str] = None) -> Page:
        """Fetch one page of assets matching the filter parameters."""
        query = {k: v for k, v in params.items() if v is not None}
        if cursor is not None:
            query["cursor"] = cursor
        data = await self._request("GET", "/assets", params=query)
        return self._parse("/assets", Page.from_dict, data)

    async def delete_asset(self, asset_id: int, permanent: bool = False) -> DeleteResult:
        """Remove an asset from the index, or from disk when permanent."""
        params = {"permanent": "true"} if permanent else None
        data = await self._request("DELETE", f"/assets/{asset_id}", params=params)
        return self._parse(f"/assets/{asset_id}", DeleteResult.from_dict, data)

    # Faces
    async def get_asset_faces(self, asset_id: int) -> List[Face]:
        """List the faces detected on an asset."""
        data = await self._request("GET", f"/assets/{asset_id}/faces")
        return self._parse(f"/assets/{asset_id}/faces", _list_of(Face), data)

    async def assign_face_to_person(self, face_id: int, person_id: Optional[int]) -> Dict[str, Any]:
        """Assign a face to a person; person_id None unassigns it."""
        return await self._request(
            "POST",
            f"/faces/{face_id}/assign",
            json={"person_id": person_id},
        )

    async def list_unassigned_faces(self) -> List[Face]:
        data = await self._request("GET", "/faces/unassigned")
        return self._parse("/faces/unassigned", _list_of(Face), data)

    async def get_face_progress(self) -> Dict[str, Any]:
        return await self._request("GET", "/faces/progress")

    # People
    async def list_persons(self) -> List[Person]:
        """List all known people."""
        data = await self._request("GET", "/persons")
        return self._parse("/persons", _list_of(Person), data)

    async def get_person_face(self, person_id: int) -> Dict[str, Any]:
        """Representative face of a person."""
        return await self._request("GET", f"/persons/{person_id}/face")

    async def merge_persons(self, source_person_id: int, target_person_id: int) -> MergeResult:
        """Move all faces of the source person onto the target person."""
        data = await self._request(
            "POST",
            f"/persons/{source_person_id}/merge",
            json={"target_person_id": target_person_id},
        )
        return self._parse(f"/persons/{source_person_id}/merge", MergeResult.from_dict, data)
