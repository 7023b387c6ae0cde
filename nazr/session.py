"""Volatile view state: active view, pinned person, selection, notifications.

Nothing here is persisted; it lives as long as the active view.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from .query_cache import QueryKey


@dataclass
class SessionState:
    """Centralized view state container."""

    # Active view
    active_query: Optional[QueryKey] = None
    pinned_person_id: Optional[int] = None
    selected_album_id: Optional[str] = None

    # Multi-selection of asset ids
    selection: Set[int] = field(default_factory=set)

    # Notifications
    notifications: List[Dict[str, Any]] = field(default_factory=list)

    def show(self, query: Optional[QueryKey]) -> None:
        """Make query the active view and follow its person scope."""
        self.active_query = query
        self.pinned_person_id = query.person_id if query is not None else None

    def open_album(self, album_id: Optional[str]) -> None:
        self.selected_album_id = album_id

    def close_album(self) -> None:
        self.selected_album_id = None

    def redirect_person(self, source_person_id: int, target_person_id: int) -> bool:
        """Repoint a view pinned to source onto target. Returns True if moved."""
        if self.pinned_person_id is None or self.pinned_person_id != source_person_id:
            return False
        self.pinned_person_id = target_person_id
        if self.active_query is not None and self.active_query.scopes_to_person(source_person_id):
            params = self.active_query.as_dict()
            params["person_id"] = target_person_id
            self.active_query = QueryKey.of(self.active_query.resource, **params)
        return True

    # Selection
    def select(self, asset_ids: Iterable[int]) -> None:
        self.selection.update(asset_ids)

    def deselect(self, asset_ids: Iterable[int]) -> None:
        self.selection.difference_update(asset_ids)

    def toggle(self, asset_id: int) -> bool:
        """Flip selection of one asset. Returns the new selected state."""
        if asset_id in self.selection:
            self.selection.discard(asset_id)
            return False
        self.selection.add(asset_id)
        return True

    def clear_selection(self) -> None:
        self.selection.clear()

    @property
    def selection_count(self) -> int:
        return len(self.selection)

    # Notifications
    def add_notification(self, message: str, type: str = "info") -> None:
        """Add a notification to show the user.

        Args:
            message: The notification message
            type: One of 'info', 'success', 'warning', 'error'
        """
        self.notifications.append({"message": message, "type": type})

    def pop_notifications(self) -> List[Dict[str, Any]]:
        """Get and clear all notifications."""
        notifications = self.notifications.copy()
        self.notifications = []
        return notifications
