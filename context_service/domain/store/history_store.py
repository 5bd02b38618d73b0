from typing import Dict, Any, List, Protocol, Tuple
import asyncio
import copy
import uuid
import structlog

from ..errors import AppendOnlyViolation, NotFoundError, StorageError
from ..models.context import ContextHistory, utc_now
from .filtering import matches, normalize_predicate

logger = structlog.get_logger(__name__)


class ContextHistoryStore(Protocol):
    """Append-only store of context snapshots"""

    async def create(self, snapshot: ContextHistory) -> ContextHistory: ...

    async def get_by_id(self, history_id: str) -> ContextHistory: ...

    async def filter(self, predicate: Dict[str, Any]) -> List[ContextHistory]: ...

    async def close(self) -> None: ...


class InMemoryContextHistoryStore:
    """Asyncio append-only snapshot store"""

    def __init__(self):
        self.snapshots: Dict[str, Dict[str, Any]] = {}
        self._by_version: Dict[Tuple[str, int], str] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    def _ensure_open(self):
        if self._closed:
            raise StorageError("context history store is closed")

    async def create(self, snapshot: ContextHistory) -> ContextHistory:
        """
        Append a snapshot.

        Only one snapshot is kept per (context_id, version); writing the same
        version again returns the row already stored.
        """
        async with self._lock:
            self._ensure_open()
            key = (snapshot.context_id, snapshot.version)
            existing_id = self._by_version.get(key)
            if existing_id is not None:
                logger.info(
                    "Snapshot already captured",
                    context_id=snapshot.context_id,
                    version=snapshot.version,
                    history_id=existing_id,
                )
                return ContextHistory.model_validate(copy.deepcopy(self.snapshots[existing_id]))

            document = copy.deepcopy(snapshot.model_dump())
            document["id"] = document["id"] or uuid.uuid4().hex
            document["created_time"] = document["created_time"] or utc_now()
            if document["id"] in self.snapshots:
                raise StorageError("duplicate history id", {"id": document["id"]})

            self.snapshots[document["id"]] = document
            self._by_version[key] = document["id"]
            return ContextHistory.model_validate(copy.deepcopy(document))

    async def get_by_id(self, history_id: str) -> ContextHistory:
        """Get a snapshot by id"""

        async with self._lock:
            self._ensure_open()
            document = self.snapshots.get(history_id)
            if document is None:
                raise NotFoundError("context history not found", entity_id=history_id)
            return ContextHistory.model_validate(copy.deepcopy(document))

    async def filter(self, predicate: Dict[str, Any]) -> List[ContextHistory]:
        """Return snapshots matching a predicate, oldest version first"""

        normalized = normalize_predicate(predicate, ContextHistory)
        if normalized is None:
            return []

        async with self._lock:
            self._ensure_open()
            found = [
                ContextHistory.model_validate(copy.deepcopy(document))
                for document in self.snapshots.values()
                if matches(document, normalized)
            ]

        return sorted(found, key=lambda item: (item.context_id, item.version))

    async def update(self, *args: Any, **kwargs: Any):
        raise AppendOnlyViolation("context history is append-only; update is not supported")

    async def delete(self, *args: Any, **kwargs: Any):
        raise AppendOnlyViolation("context history is append-only; delete is not supported")

    async def close(self) -> None:
        """Release the store; safe to call more than once"""

        async with self._lock:
            if not self._closed:
                self._closed = True
                logger.info("Context history store closed", snapshots=len(self.snapshots))
