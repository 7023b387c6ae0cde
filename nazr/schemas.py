"""Pydantic schemas for the persisted album record."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .models import Album


class AlbumRecord(BaseModel):
    """One album as stored in the albums record (camelCase on disk)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: Optional[str] = None
    asset_ids: List[int] = Field(default_factory=list, alias="assetIds")
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")

    @classmethod
    def from_album(cls, album: Album) -> "AlbumRecord":
        return cls(
            id=album.id,
            name=album.name,
            description=album.description,
            asset_ids=list(album.asset_ids),
            created_at=album.created_at,
            updated_at=album.updated_at,
        )

    def to_album(self) -> Album:
        return Album(
            id=self.id,
            name=self.name,
            description=self.description,
            asset_ids=list(self.asset_ids),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


AlbumCollection = TypeAdapter(List[AlbumRecord])
