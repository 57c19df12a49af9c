"""
Durable registry of user face descriptors.

The whole collection is held in memory and mirrored to a single JSON file
keyed by user id: `{"<id>": {"name": ..., "descriptor": [...]}}`. The file is
read once at startup and fully rewritten on every mutation.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..exceptions import StorageError, UserNotFoundError
from ..models.internal_models import UserRecord

logger = logging.getLogger(__name__)


class DescriptorStore:
    """
    In-memory descriptor registry backed by a JSON file.

    Mutations are serialized through a single lock and are write-then-commit:
    the file is replaced first and the in-memory mapping only changes once the
    write has succeeded. A caller that is cancelled mid-mutation (for example
    by a request timeout) does not interrupt it: the write and the commit run
    to completion under the lock, so memory and file always agree.
    """

    def __init__(self, path: Union[str, Path], descriptor_dimension: int = 128):
        """
        Initialize the store.

        Args:
            path: Location of the JSON file holding the registry
            descriptor_dimension: Expected descriptor length for every record
        """
        self.path = Path(path)
        self.descriptor_dimension = descriptor_dimension
        self._records: Dict[str, UserRecord] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._records

    async def load(self) -> int:
        """
        Read the durable registry into memory.

        A missing or empty file is initialized to an empty registry. Malformed
        content is discarded and the empty state is persisted in its place.

        Returns:
            Number of records loaded
        """
        async with self._lock:
            try:
                content = await asyncio.to_thread(self._read_file)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Failed to read descriptor store {self.path}: {e}")
                await self._reset()
                return 0

            if content is None:
                logger.info(f"Creating new descriptor store at {self.path}")
                await self._reset()
                return 0

            if not content.strip():
                logger.info(f"Initializing empty descriptor store at {self.path}")
                await self._reset()
                return 0

            try:
                payload = json.loads(content)
                if not isinstance(payload, dict):
                    raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
            except ValueError as e:
                logger.warning(f"Descriptor store {self.path} is corrupt, resetting: {e}")
                await self._reset()
                return 0

            self._records = self._parse_records(payload)
            logger.info(f"Loaded {len(self._records)} existing users")
            return len(self._records)

    def _parse_records(self, payload: dict) -> Dict[str, UserRecord]:
        """Build records from the decoded file, dropping entries that don't validate."""
        records: Dict[str, UserRecord] = {}
        for user_id, data in payload.items():
            try:
                name = data["name"]
                descriptor = data["descriptor"]
                if not isinstance(name, str) or not isinstance(descriptor, list):
                    raise ValueError("name must be a string and descriptor a list")
                if len(descriptor) != self.descriptor_dimension:
                    raise ValueError(
                        f"descriptor has {len(descriptor)} values, expected {self.descriptor_dimension}"
                    )
                records[user_id] = UserRecord(id=user_id, name=name, descriptor=descriptor)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid stored user {user_id}: {e}")
        return records

    async def _reset(self) -> None:
        """Replace the registry with an empty one, in memory and on disk."""
        self._records = {}
        try:
            await asyncio.to_thread(self._write_file, {})
        except StorageError as e:
            logger.error(f"Failed to persist empty descriptor store: {e}")

    def all(self) -> List[UserRecord]:
        """Return every record, in insertion order."""
        return list(self._records.values())

    def get(self, user_id: str) -> Optional[UserRecord]:
        return self._records.get(user_id)

    async def put(self, record: UserRecord) -> UserRecord:
        """
        Insert or overwrite a record and persist the whole registry.

        Raises:
            ValueError: If the descriptor length doesn't match the store
            StorageError: If the durable write fails (memory is left unchanged)
        """
        if record.descriptor.shape[0] != self.descriptor_dimension:
            raise ValueError(
                f"Descriptor must be {self.descriptor_dimension}-dimensional, "
                f"got {record.descriptor.shape[0]}"
            )

        await asyncio.shield(self._put_locked(record))
        logger.info(f"Saved user data successfully. Total users: {len(self._records)}")
        return record

    async def delete(self, user_id: str) -> UserRecord:
        """
        Remove a record and persist the whole registry.

        Raises:
            UserNotFoundError: If no record has this id
            StorageError: If the durable write fails (memory is left unchanged)
        """
        removed = await asyncio.shield(self._delete_locked(user_id))
        logger.info(f"Deleted user {user_id}. Total users: {len(self._records)}")
        return removed

    async def _put_locked(self, record: UserRecord) -> None:
        async with self._lock:
            snapshot = dict(self._records)
            snapshot[record.id] = record
            await self._persist(snapshot)
            self._records = snapshot

    async def _delete_locked(self, user_id: str) -> UserRecord:
        async with self._lock:
            if user_id not in self._records:
                raise UserNotFoundError(f"User {user_id} is not registered", {"id": user_id})

            snapshot = dict(self._records)
            removed = snapshot.pop(user_id)
            await self._persist(snapshot)
            self._records = snapshot
            return removed

    async def _persist(self, records: Dict[str, UserRecord]) -> None:
        payload = {user_id: record.to_storage() for user_id, record in records.items()}
        await asyncio.to_thread(self._write_file, payload)

    def _read_file(self) -> Optional[str]:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8")

    def _write_file(self, payload: dict) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=self.path.name + ".",
                suffix=".tmp",
                delete=False
            ) as f:
                tmp_name = f.name
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.remove(tmp_name)
            logger.error(f"Error saving user data to {self.path}: {e}")
            raise StorageError(f"Failed to write descriptor store: {e}", {"path": str(self.path)})
