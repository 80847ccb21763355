"""Tests for SQLite save slots."""

from __future__ import annotations

from pathlib import Path

import pytest

from dungeon_chronicle.core.exceptions import ValidationError
from dungeon_chronicle.models import WorldState
from dungeon_chronicle.storage import SessionSnapshot, SessionStore


@pytest.fixture
def store(tmp_path: Path) -> SessionStore:
    return SessionStore(tmp_path / "saves.db")


class TestSessionStore:
    """Tests for slot CRUD."""

    def test_save_and_get(self, store: SessionStore, world: WorldState) -> None:
        """Test a saved slot returns an equal snapshot."""
        world.turn_number = 7

        record = store.save_slot("before the dragon", SessionSnapshot(world=world))
        loaded = store.get_slot("before the dragon")

        assert record.turn_number == 7
        assert record.campaign_name == "Test Campaign"
        assert loaded is not None
        assert loaded.world == world

    def test_missing_slot(self, store: SessionStore) -> None:
        """Test unknown slots return None."""
        assert store.get_slot("nope") is None

    def test_overwrite_keeps_created_at(self, store: SessionStore, world: WorldState) -> None:
        """Test rewriting a slot keeps its creation time."""
        first = store.save_slot("auto", SessionSnapshot(world=world))
        world.turn_number = 2

        second = store.save_slot("auto", SessionSnapshot(world=world))

        assert second.created_at == first.created_at
        assert second.updated_at >= first.updated_at
        loaded = store.get_slot("auto")
        assert loaded is not None
        assert loaded.world.turn_number == 2
        assert len(store.list_slots()) == 1

    def test_list_most_recent_first(self, store: SessionStore, world: WorldState) -> None:
        """Test slots are listed newest first."""
        store.save_slot("first", SessionSnapshot(world=world))
        store.save_slot("second", SessionSnapshot(world=world))

        assert [slot.name for slot in store.list_slots()] == ["second", "first"]

    def test_delete(self, store: SessionStore, world: WorldState) -> None:
        """Test deleting reports whether a slot existed."""
        store.save_slot("auto", SessionSnapshot(world=world))

        assert store.delete_slot("auto")
        assert not store.delete_slot("auto")
        assert store.list_slots() == []

    def test_empty_name_rejected(self, store: SessionStore, world: WorldState) -> None:
        """Test blank slot names are rejected."""
        with pytest.raises(ValidationError):
            store.save_slot("   ", SessionSnapshot(world=world))

    def test_reopen_existing_database(self, tmp_path: Path, world: WorldState) -> None:
        """Test slots survive reopening the database file."""
        SessionStore(tmp_path / "saves.db").save_slot("auto", SessionSnapshot(world=world))

        reopened = SessionStore(tmp_path / "saves.db")

        assert [slot.name for slot in reopened.list_slots()] == ["auto"]
