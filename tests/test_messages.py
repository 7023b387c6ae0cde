"""Tests for user-facing outcome messages."""

import pytest

from nazr import messages


@pytest.mark.parametrize("count,expected", [(0, "0 faces"), (1, "1 face"), (2, "2 faces")])
def test_pluralize(count, expected):
    assert messages.pluralize(count, "face") == expected


def test_unassign_nothing_to_do():
    assert messages.unassign_summary(0, 0, 0, 3) == ("No faces to unassign on selected assets", "error")


def test_unassign_all_failed():
    message, kind = messages.unassign_summary(0, 0, 3, 3)
    assert message == "Failed to unassign faces (3 assets failed)"
    assert kind == "error"


def test_unassign_partial():
    assert messages.unassign_summary(4, 2, 0, 5) == ("Removed 4 faces from 2 of 5 assets", "success")


def test_merge_summary():
    assert messages.merge_summary(3, 12) == "Merged 3 faces. Profile now tracks 12."
    assert messages.merge_summary(3) == "Merged 3 faces."


def test_read_only_message_names_file_and_path():
    message = messages.read_only_message("a.jpg", "/mnt/photos/a.jpg")
    assert '"a.jpg"' in message
    assert "(/mnt/photos/a.jpg)" in message
    assert "read-only" in message


def test_delete_summary():
    assert messages.delete_summary(1, 0, 1) == ("Deleted 1 asset", "success")
    assert messages.delete_summary(0, 2, 2) == ("Delete failed for 2 assets", "error")
    assert messages.delete_summary(2, 1, 3) == ("Deleted 2 of 3 assets (1 failed)", "error")


def test_add_to_album_summary():
    assert messages.add_to_album_summary(0, 2, "Trip") == ('Selected items are already in "Trip"', "info")
    assert messages.add_to_album_summary(1, 0, "Trip") == ('Added 1 item to "Trip"', "success")


def test_filename_for():
    assert messages.filename_for("/a/b/c.png", 4) == "c.png"
    assert messages.filename_for(None, 4) == "asset 4"
    assert messages.filename_for(None) == "asset"
