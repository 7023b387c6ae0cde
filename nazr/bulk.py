"""Bulk mutation coordinator.

Applies one action across a selection of assets. Items run concurrently
through a fixed-size fan-out; each item's result is captured as a tagged
outcome (success, failure or skip) so one bad asset never blocks the
rest. Once every item has settled, the cache synchronizer is invoked a
single time with the union of affected scopes.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple, Union

from . import messages
from .albums import AlbumStore
from .api_client import ApiClient
from .exceptions import InvalidActionError, TransportFailure
from .synchronizer import (
    AlbumMembershipChanged, AssetsDeleted, CacheSynchronizer, FacesUnassigned,
    MutationKind, PersonMerged, SyncReport,
)


@dataclass(frozen=True)
class UnassignFromPerson:
    """Unassign every face of person_id found on each selected asset."""
    person_id: int


@dataclass(frozen=True)
class MergePerson:
    """Merge source person into target. Person-level: one call per action."""
    source_person_id: int
    target_person_id: int


@dataclass(frozen=True)
class AddToAlbum:
    album_id: str


@dataclass(frozen=True)
class DeleteAssets:
    """Delete from the index, or the original file too when permanent."""
    permanent: bool = False


BulkAction = Union[UnassignFromPerson, MergePerson, AddToAlbum, DeleteAssets]


class ItemStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass
class ItemOutcome:
    """Result of applying an action to one item."""
    asset_id: Optional[int]
    status: ItemStatus
    affected: int = 0
    error: Optional[str] = None
    read_only: bool = False
    path: Optional[str] = None


@dataclass
class BulkResult:
    """Aggregate, partial-failure-tolerant outcome of one bulk action."""
    action: BulkAction
    total: int
    outcomes: List[ItemOutcome] = field(default_factory=list)
    sync: Optional[SyncReport] = None
    profile_face_count: Optional[int] = None
    message: str = ""
    message_type: str = "info"

    def _count(self, status: ItemStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def success_count(self) -> int:
        return self._count(ItemStatus.SUCCESS)

    @property
    def failure_count(self) -> int:
        return self._count(ItemStatus.FAILURE)

    @property
    def skipped_count(self) -> int:
        return self._count(ItemStatus.SKIPPED)

    @property
    def affected_count(self) -> int:
        return sum(outcome.affected for outcome in self.outcomes if outcome.status is ItemStatus.SUCCESS)

    @property
    def nothing_to_do(self) -> bool:
        """No item succeeded and none failed: every item was skipped."""
        return self.success_count == 0 and self.failure_count == 0

    @property
    def all_failed(self) -> bool:
        return self.failure_count > 0 and self.success_count == 0

    @property
    def succeeded_ids(self) -> List[int]:
        return [o.asset_id for o in self.outcomes if o.status is ItemStatus.SUCCESS and o.asset_id is not None]

    @property
    def failed_ids(self) -> List[int]:
        return [o.asset_id for o in self.outcomes if o.status is ItemStatus.FAILURE and o.asset_id is not None]

    @property
    def failures(self) -> List[ItemOutcome]:
        return [o for o in self.outcomes if o.status is ItemStatus.FAILURE]

    @property
    def read_only_failures(self) -> List[ItemOutcome]:
        return [o for o in self.failures if o.read_only]


ItemHandler = Callable[[int], Awaitable[ItemOutcome]]


class BulkMutationCoordinator:
    """Runs an action per item and reports the aggregate outcome."""

    def __init__(
        self,
        client: ApiClient,
        synchronizer: CacheSynchronizer,
        album_store: Optional[AlbumStore] = None,
        concurrency: int = 8,
        logger: Optional[logging.Logger] = None
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._client = client
        self._synchronizer = synchronizer
        self._album_store = album_store
        self._concurrency = concurrency
        self._logger = logger or logging.getLogger(__name__)

    async def apply(self, action: BulkAction, asset_ids: Iterable[int]) -> BulkResult:
        """Apply action to every asset id and reconcile caches once.

        Per-item failures are counted, never raised.

        Raises:
            InvalidActionError: If the action cannot be started at all
        """
        ids = list(dict.fromkeys(asset_ids))
        self._validate(action, ids)
        self._logger.info(f"Applying {type(action).__name__} to {len(ids)} assets")

        profile_face_count = None
        if isinstance(action, MergePerson):
            outcome, profile_face_count = await self._merge(action)
            outcomes = [outcome]
        elif isinstance(action, AddToAlbum):
            outcomes = self._add_to_album(action, ids)
        elif isinstance(action, UnassignFromPerson):
            outcomes = await self._fan_out(ids, lambda aid: self._unassign(action, aid))
        else:
            outcomes = await self._fan_out(ids, lambda aid: self._delete(action, aid))

        total = 1 if isinstance(action, MergePerson) else len(ids)
        result = BulkResult(
            action=action, total=total, outcomes=outcomes, profile_face_count=profile_face_count
        )

        kind, payload = self._sync_payload(action, result)
        if payload is not None:
            result.sync = await self._synchronizer.synchronize_after(kind, payload)

        result.message, result.message_type = self._summarize(action, result)
        self._logger.info(
            f"{type(action).__name__}: {result.success_count} succeeded, "
            f"{result.failure_count} failed, {result.skipped_count} skipped"
        )
        return result

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self, action: BulkAction, ids: List[int]) -> None:
        if isinstance(action, MergePerson):
            if action.source_person_id is None or action.target_person_id is None:
                raise InvalidActionError("Merge requires a source and a target person")
            if action.source_person_id == action.target_person_id:
                raise InvalidActionError("Cannot merge a person into itself")
            return

        if isinstance(action, UnassignFromPerson):
            if action.person_id is None:
                raise InvalidActionError("Unassign requires a person id")
        elif isinstance(action, AddToAlbum):
            if self._album_store is None:
                raise InvalidActionError("No album store configured")
            if self._album_store.get(action.album_id) is None:
                raise InvalidActionError(f"Unknown album: {action.album_id}")
        elif not isinstance(action, DeleteAssets):
            raise InvalidActionError(f"Unsupported bulk action: {action!r}")

        if not ids:
            raise InvalidActionError("No assets selected")

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def _fan_out(self, ids: List[int], handler: ItemHandler) -> List[ItemOutcome]:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def run(asset_id: int) -> ItemOutcome:
            async with semaphore:
                try:
                    return await handler(asset_id)
                except TransportFailure as e:
                    self._logger.warning(f"Asset {asset_id} failed: {e}")
                    return ItemOutcome(asset_id, ItemStatus.FAILURE, error=str(e))
                except Exception as e:
                    self._logger.error(f"Asset {asset_id} failed: {e}", exc_info=True)
                    return ItemOutcome(asset_id, ItemStatus.FAILURE, error=str(e))

        return list(await asyncio.gather(*(run(asset_id) for asset_id in ids)))

    # ------------------------------------------------------------------
    # Per-item operations
    # ------------------------------------------------------------------

    async def _unassign(self, action: UnassignFromPerson, asset_id: int) -> ItemOutcome:
        faces = await self._client.get_asset_faces(asset_id)
        matches = [face for face in faces if face.person_id == action.person_id]
        if not matches:
            return ItemOutcome(asset_id, ItemStatus.SKIPPED)

        # Every face call settles before the item is reported, even on failure.
        results = await asyncio.gather(
            *(self._client.assign_face_to_person(face.id, None) for face in matches),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            if len(errors) < len(matches):
                self._logger.warning(
                    f"Asset {asset_id}: {len(matches) - len(errors)} of {len(matches)} faces unassigned"
                )
            raise errors[0]
        return ItemOutcome(asset_id, ItemStatus.SUCCESS, affected=len(matches))

    async def _delete(self, action: DeleteAssets, asset_id: int) -> ItemOutcome:
        result = await self._client.delete_asset(asset_id, permanent=action.permanent)
        if result.success:
            return ItemOutcome(asset_id, ItemStatus.SUCCESS, affected=1)
        if action.permanent and result.read_only:
            self._logger.warning(f"Asset {asset_id} is read-only on disk: {result.path}")
            return ItemOutcome(
                asset_id, ItemStatus.FAILURE,
                error=result.error or "File is read-only",
                read_only=True,
                path=result.path,
            )
        default = "Failed to delete asset." if action.permanent else "Failed to remove asset from index."
        return ItemOutcome(asset_id, ItemStatus.FAILURE, error=result.error or default)

    async def _merge(self, action: MergePerson) -> Tuple[ItemOutcome, Optional[int]]:
        try:
            result = await self._client.merge_persons(action.source_person_id, action.target_person_id)
        except TransportFailure as e:
            self._logger.warning(
                f"Merge {action.source_person_id} -> {action.target_person_id} failed: {e}"
            )
            return ItemOutcome(None, ItemStatus.FAILURE, error=str(e)), None
        outcome = ItemOutcome(None, ItemStatus.SUCCESS, affected=result.faces_merged)
        return outcome, result.profile_face_count

    def _add_to_album(self, action: AddToAlbum, ids: List[int]) -> List[ItemOutcome]:
        album = self._album_store.get(action.album_id)
        existing = set(album.asset_ids) if album is not None else set()
        updated = self._album_store.add_assets(action.album_id, ids)
        if updated is None:
            return [
                ItemOutcome(aid, ItemStatus.FAILURE, error="Album no longer exists") for aid in ids
            ]
        return [
            ItemOutcome(aid, ItemStatus.SKIPPED) if aid in existing
            else ItemOutcome(aid, ItemStatus.SUCCESS, affected=1)
            for aid in ids
        ]

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    @staticmethod
    def _sync_payload(action: BulkAction, result: BulkResult) -> Tuple[MutationKind, object]:
        """Union of affected scopes, or None when nothing changed."""
        if isinstance(action, UnassignFromPerson):
            # A failed asset may still have lost some of its faces.
            touched = result.succeeded_ids + result.failed_ids
            if not touched:
                return MutationKind.UNASSIGN_FACES, None
            return MutationKind.UNASSIGN_FACES, FacesUnassigned.of(action.person_id, touched)
        if isinstance(action, DeleteAssets):
            if not result.succeeded_ids:
                return MutationKind.DELETE_ASSET, None
            return MutationKind.DELETE_ASSET, AssetsDeleted.of(result.succeeded_ids)
        if isinstance(action, MergePerson):
            if result.success_count == 0:
                return MutationKind.MERGE_PERSON, None
            return MutationKind.MERGE_PERSON, PersonMerged(
                action.source_person_id, action.target_person_id
            )
        if not result.succeeded_ids:
            return MutationKind.ALBUM_MEMBERSHIP, None
        return MutationKind.ALBUM_MEMBERSHIP, AlbumMembershipChanged(
            action.album_id, frozenset(result.succeeded_ids)
        )

    def _summarize(self, action: BulkAction, result: BulkResult) -> Tuple[str, str]:
        if isinstance(action, UnassignFromPerson):
            return messages.unassign_summary(
                result.affected_count, result.success_count, result.failure_count, result.total
            )
        if isinstance(action, MergePerson):
            if result.success_count == 0:
                return "Failed to merge people", "error"
            return messages.merge_summary(result.affected_count, result.profile_face_count), "success"
        if isinstance(action, AddToAlbum):
            album = self._album_store.get(action.album_id)
            name = album.name if album is not None else action.album_id
            return messages.add_to_album_summary(result.success_count, result.skipped_count, name)

        read_only = result.read_only_failures
        if read_only:
            first = read_only[0]
            message = messages.read_only_message(
                messages.filename_for(first.path, first.asset_id), first.path
            )
            if result.total > 1:
                counts, _ = messages.delete_summary(
                    result.success_count, result.failure_count, result.total
                )
                message = f"{counts}. {message}"
            return message, "error"
        return messages.delete_summary(result.success_count, result.failure_count, result.total)
