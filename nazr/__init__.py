"""Nazr gallery client core.

Keeps locally persisted albums and several cached, paginated views of
the server's asset/person/face graph consistent while assets are
deleted, faces unassigned and people merged.
"""

from .albums import AlbumStore
from .bulk import (
    AddToAlbum,
    BulkMutationCoordinator,
    BulkResult,
    DeleteAssets,
    MergePerson,
    UnassignFromPerson,
)
from .config import AppConfig, get_config, set_config
from .exceptions import (
    ApiError,
    AppError,
    InvalidActionError,
    PersistenceFailure,
    TransportFailure,
    ValidationError,
)
from .gallery import GalleryCore
from .loader import DependentPaginationLoader
from .models import Album, AlbumView, Asset, Face, Page, Person
from .query_cache import QueryCache, QueryKey
from .synchronizer import CacheSynchronizer, MutationKind

__version__ = "0.1.0"

__all__ = [
    "AlbumStore",
    "AddToAlbum",
    "BulkMutationCoordinator",
    "BulkResult",
    "DeleteAssets",
    "MergePerson",
    "UnassignFromPerson",
    "AppConfig",
    "get_config",
    "set_config",
    "ApiError",
    "AppError",
    "InvalidActionError",
    "PersistenceFailure",
    "TransportFailure",
    "ValidationError",
    "GalleryCore",
    "DependentPaginationLoader",
    "Album",
    "AlbumView",
    "Asset",
    "Face",
    "Page",
    "Person",
    "QueryCache",
    "QueryKey",
    "CacheSynchronizer",
    "MutationKind",
]
