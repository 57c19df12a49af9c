"""
Tests for the JSON-backed descriptor store.
"""

import asyncio
import json
import time
from unittest.mock import patch

import numpy as np
import pytest

from faceguard.clients.descriptor_store import DescriptorStore
from faceguard.exceptions import StorageError, UserNotFoundError
from faceguard.models.internal_models import UserRecord


def make_user(user_id: str, name: str = "Alice", value: float = 0.0) -> UserRecord:
    return UserRecord(id=user_id, name=name, descriptor=np.full(128, value))


class TestDescriptorStore:
    """Test cases for DescriptorStore."""

    @pytest.fixture
    def users_path(self, tmp_path):
        return tmp_path / "face-data" / "users.json"

    @pytest.fixture
    def store(self, users_path):
        return DescriptorStore(users_path, descriptor_dimension=128)

    class TestLoad:
        """Tests for startup loading."""

        @pytest.mark.asyncio
        async def test_missing_file_creates_empty_store(self, store, users_path):
            count = await store.load()

            assert count == 0
            assert len(store) == 0
            assert json.loads(users_path.read_text()) == {}

        @pytest.mark.asyncio
        async def test_empty_file_is_initialized(self, store, users_path):
            users_path.parent.mkdir(parents=True)
            users_path.write_text("   ")

            assert await store.load() == 0
            assert json.loads(users_path.read_text()) == {}

        @pytest.mark.asyncio
        async def test_corrupt_file_resets_to_empty(self, store, users_path):
            users_path.parent.mkdir(parents=True)
            users_path.write_text("{not json")

            assert await store.load() == 0
            assert len(store) == 0
            assert json.loads(users_path.read_text()) == {}

        @pytest.mark.asyncio
        async def test_non_object_payload_resets(self, store, users_path):
            users_path.parent.mkdir(parents=True)
            users_path.write_text("[1, 2, 3]")

            assert await store.load() == 0
            assert json.loads(users_path.read_text()) == {}

        @pytest.mark.asyncio
        async def test_loads_existing_users(self, store, users_path):
            users_path.parent.mkdir(parents=True)
            users_path.write_text(json.dumps({
                "u1": {"name": "Alice", "descriptor": [0.0] * 128},
                "u2": {"name": "Bob", "descriptor": [0.5] * 128}
            }))

            assert await store.load() == 2
            assert store.get("u1").name == "Alice"
            assert store.get("u2").descriptor.shape == (128,)
            assert [record.id for record in store.all()] == ["u1", "u2"]

        @pytest.mark.asyncio
        async def test_invalid_records_are_skipped(self, store, users_path):
            users_path.parent.mkdir(parents=True)
            users_path.write_text(json.dumps({
                "good": {"name": "Alice", "descriptor": [0.0] * 128},
                "short": {"name": "Bob", "descriptor": [0.0] * 64},
                "nameless": {"descriptor": [0.0] * 128},
                "garbage": "not a record"
            }))

            assert await store.load() == 1
            assert "good" in store
            assert "short" not in store

    class TestMutations:
        """Tests for put and delete."""

        @pytest.mark.asyncio
        async def test_put_persists_and_round_trips(self, store, users_path):
            await store.load()
            alice = make_user("u1", "Alice", 0.25)
            await store.put(alice)

            reloaded = DescriptorStore(users_path, descriptor_dimension=128)
            await reloaded.load()

            assert len(reloaded) == 1
            record = reloaded.get("u1")
            assert record.name == "Alice"
            np.testing.assert_array_equal(record.descriptor, alice.descriptor)

        @pytest.mark.asyncio
        async def test_put_rejects_wrong_dimension(self, store):
            await store.load()
            record = UserRecord(id="u1", name="Alice", descriptor=np.zeros(64))

            with pytest.raises(ValueError, match="128-dimensional"):
                await store.put(record)
            assert len(store) == 0

        @pytest.mark.asyncio
        async def test_failed_write_leaves_memory_unchanged(self, store, users_path):
            await store.load()
            await store.put(make_user("u1"))

            with patch.object(store, "_write_file", side_effect=StorageError("disk full")):
                with pytest.raises(StorageError):
                    await store.put(make_user("u2", "Bob"))

            assert len(store) == 1
            assert "u2" not in store
            assert list(json.loads(users_path.read_text())) == ["u1"]

        @pytest.mark.asyncio
        async def test_delete(self, store, users_path):
            await store.load()
            await store.put(make_user("u1"))
            await store.put(make_user("u2", "Bob"))

            removed = await store.delete("u1")

            assert removed.id == "u1"
            assert "u1" not in store
            assert list(json.loads(users_path.read_text())) == ["u2"]

        @pytest.mark.asyncio
        async def test_delete_unknown_user(self, store):
            await store.load()

            with pytest.raises(UserNotFoundError):
                await store.delete("missing")

        @pytest.mark.asyncio
        async def test_concurrent_puts_keep_every_record(self, store, users_path):
            await store.load()

            await asyncio.gather(*(store.put(make_user(f"u{i}", f"User {i}")) for i in range(20)))

            assert len(store) == 20
            assert len(json.loads(users_path.read_text())) == 20

        def test_write_failure_raises_storage_error(self, tmp_path):
            blocker = tmp_path / "blocker"
            blocker.write_text("a file where a directory should be")
            store = DescriptorStore(blocker / "users.json")

            with pytest.raises(StorageError, match="Failed to write descriptor store"):
                store._write_file({})

        @pytest.mark.asyncio
        async def test_cancelled_put_still_commits_the_write(self, store, users_path):
            await store.load()
            write_file = store._write_file

            def slow_write(payload):
                time.sleep(0.3)
                write_file(payload)

            with patch.object(store, "_write_file", side_effect=slow_write):
                with pytest.raises(asyncio.TimeoutError):
                    await asyncio.wait_for(store.put(make_user("a1")), timeout=0.05)

                # The mutation keeps the lock until its commit has run
                async with store._lock:
                    pass

            on_disk = json.loads(users_path.read_text())
            assert list(on_disk) == ["a1"]
            assert len(store) == len(on_disk)
            assert "a1" in store

        @pytest.mark.asyncio
        async def test_cancelled_delete_still_commits_the_write(self, store, users_path):
            await store.load()
            await store.put(make_user("u1"))
            write_file = store._write_file

            def slow_write(payload):
                time.sleep(0.3)
                write_file(payload)

            with patch.object(store, "_write_file", side_effect=slow_write):
                with pytest.raises(asyncio.TimeoutError):
                    await asyncio.wait_for(store.delete("u1"), timeout=0.05)

                async with store._lock:
                    pass

            assert json.loads(users_path.read_text()) == {}
            assert len(store) == 0

        @pytest.mark.asyncio
        async def test_writes_leave_no_temp_files(self, store, users_path):
            await store.load()

            await asyncio.gather(*(store.put(make_user(f"u{i}", f"User {i}")) for i in range(5)))

            assert [path.name for path in users_path.parent.iterdir()] == ["users.json"]

        @pytest.mark.asyncio
        async def test_non_finite_descriptors_are_skipped(self, store, users_path):
            users_path.parent.mkdir(parents=True)
            users_path.write_text(
                '{"good": {"name": "Alice", "descriptor": [' + ", ".join(["0.0"] * 128) + ']},'
                ' "nan": {"name": "Bob", "descriptor": [' + ", ".join(["NaN"] * 128) + ']}}'
            )

            assert await store.load() == 1
            assert "nan" not in store
