"""User-facing summaries of mutation outcomes.

Raw transport errors are never shown; outcomes are summarized as counts.
Read-only deletion failures name the offending path so the user can fix
the file permissions.
"""

from pathlib import PurePath
from typing import Optional, Tuple


def pluralize(count: int, singular: str, plural: Optional[str] = None) -> str:
    """'1 face', '3 faces'."""
    word = singular if count == 1 else (plural or f"{singular}s")
    return f"{count} {word}"


def unassign_summary(affected: int, succeeded: int, failed: int, total: int) -> Tuple[str, str]:
    """Message and notification type for an unassign-from-person action."""
    if affected == 0 and succeeded == 0:
        if failed:
            return f"Failed to unassign faces ({pluralize(failed, 'asset')} failed)", "error"
        return "No faces to unassign on selected assets", "error"

    if total == 1:
        target = "this asset"
    else:
        target = f"{succeeded} of {pluralize(total, 'asset')}"
    message = f"Removed {pluralize(affected, 'face')} from {target}"
    if failed:
        message += f" ({pluralize(failed, 'asset')} failed)"
        return message, "error"
    return message, "success"


def merge_summary(faces_merged: int, profile_face_count: Optional[int] = None) -> str:
    """Message shown after merging one person into another."""
    if profile_face_count:
        return f"Merged {faces_merged} faces. Profile now tracks {profile_face_count}."
    return f"Merged {faces_merged} faces."


def read_only_message(filename: str, path: Optional[str] = None) -> str:
    """Explain a permanent delete refused because the file is read-only."""
    location = f" ({path})" if path else ""
    return (
        f'Unable to delete "{filename}" from disk because the file is read-only{location}. '
        "Update the file permissions and try again."
    )


def delete_summary(succeeded: int, failed: int, total: int) -> Tuple[str, str]:
    if failed == 0:
        return f"Deleted {pluralize(succeeded, 'asset')}", "success"
    if succeeded == 0:
        return f"Delete failed for {pluralize(failed, 'asset')}", "error"
    return f"Deleted {succeeded} of {pluralize(total, 'asset')} ({failed} failed)", "error"


def add_to_album_summary(added: int, skipped: int, album_name: str) -> Tuple[str, str]:
    if added == 0:
        return f'Selected items are already in "{album_name}"', "info"
    message = f'Added {pluralize(added, "item")} to "{album_name}"'
    if skipped:
        message += f" ({skipped} already there)"
    return message, "success"


def filename_for(path: Optional[str], asset_id: Optional[int] = None) -> str:
    if path:
        return PurePath(path).name
    return f"asset {asset_id}" if asset_id is not None else "asset"
