"""Data models for the gallery client core."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Asset:
    """A server-managed media item (read-only copy held in cache pages)."""
    id: int
    sha256: str
    filename: str
    mime: str
    mtime: float = 0.0
    ext: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Asset":
        return cls(
            id=int(data["id"]),
            sha256=data.get("sha256", data.get("hash", "")),
            filename=data.get("filename", ""),
            mime=data.get("mime", data.get("media_type", "")),
            mtime=data.get("mtime", 0.0) or 0.0,
            ext=data.get("ext"),
        )

    @property
    def is_video(self) -> bool:
        return self.mime.startswith("video/")

    @property
    def is_image(self) -> bool:
        return self.mime.startswith("image/")


@dataclass(frozen=True)
class Person:
    """Facial-recognition identity (server-owned)."""
    id: int
    name: Optional[str] = None
    face_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Person":
        return cls(
            id=int(data["id"]),
            name=data.get("name") or data.get("display_name"),
            face_count=data.get("face_count", 0) or 0,
        )


@dataclass(frozen=True)
class Face:
    """A detected face. person_id is None while unassigned."""
    id: int
    asset_id: int
    person_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Face":
        person_id = data.get("person_id")
        return cls(
            id=int(data["id"]),
            asset_id=int(data["asset_id"]),
            person_id=int(person_id) if person_id is not None else None,
        )


@dataclass(frozen=True)
class Page:
    """One page of a paginated query; next_cursor is None on the last page."""
    items: List[Asset] = field(default_factory=list)
    next_cursor: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Page":
        return cls(
            items=[Asset.from_dict(item) for item in data.get("items", [])],
            next_cursor=data.get("next_cursor"),
        )

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None


@dataclass
class Album:
    """Client-owned named grouping of asset ids.

    asset_ids are soft references: an id may point at an asset the
    server no longer has.
    """
    id: str
    name: str
    description: Optional[str] = None
    asset_ids: List[int] = field(default_factory=list)
    created_at: int = 0  # epoch ms
    updated_at: int = 0  # epoch ms

    def contains(self, asset_id: int) -> bool:
        return asset_id in self.asset_ids

    @property
    def size(self) -> int:
        return len(self.asset_ids)


@dataclass
class DeleteResult:
    """Result of deleting one asset."""
    success: bool
    read_only: bool = False
    error: Optional[str] = None
    path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeleteResult":
        return cls(
            success=bool(data.get("success", False)),
            read_only=bool(data.get("read_only", False)),
            error=data.get("error"),
            path=data.get("path"),
        )


@dataclass
class MergeResult:
    """Result of merging one person into another."""
    faces_merged: int = 0
    profile_face_count: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MergeResult":
        refreshed = data.get("profile_refreshed") or {}
        return cls(
            faces_merged=data.get("faces_merged", 0) or 0,
            profile_face_count=refreshed.get("face_count"),
        )


@dataclass
class AlbumView:
    """An album resolved against the loaded gallery pages."""
    album: Album
    assets: List[Asset] = field(default_factory=list)
    missing_ids: List[int] = field(default_factory=list)
    fetches: int = 0
    exhausted: bool = False
    failed: bool = False

    @property
    def is_complete(self) -> bool:
        return not self.missing_ids
