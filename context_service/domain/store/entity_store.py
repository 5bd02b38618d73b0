from typing import Dict, Any, List, Protocol
import asyncio
import copy
import structlog

from ..errors import NotFoundError, StorageError, VersionConflictError
from ..models.context import BUSINESS_FIELDS, Context, utc_now
from .filtering import matches, normalize_predicate

logger = structlog.get_logger(__name__)


class ContextStore(Protocol):
    """Versioned document store for contexts"""

    async def get_by_id(self, context_id: str) -> Context: ...

    async def create(self, context: Context) -> Context: ...

    async def update(self, context: Context) -> Context: ...

    async def delete(self, context_id: str) -> None: ...

    async def filter(self, predicate: Dict[str, Any]) -> List[Context]: ...

    async def close(self) -> None: ...


class InMemoryContextStore:
    """Asyncio document store with compare-and-swap updates"""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    def _ensure_open(self):
        if self._closed:
            raise StorageError("context store is closed")

    async def get_by_id(self, context_id: str) -> Context:
        """Get a context by id"""

        async with self._lock:
            self._ensure_open()
            document = self.documents.get(context_id)
            if document is None:
                raise NotFoundError("context not found", entity_id=context_id)
            return Context.model_validate(copy.deepcopy(document))

    async def create(self, context: Context) -> Context:
        """Insert a fully populated context and return the stored copy"""

        async with self._lock:
            self._ensure_open()
            if not context.id:
                raise StorageError("cannot insert a context without an id")
            if context.id in self.documents:
                raise StorageError("duplicate context id", {"id": context.id})
            self.documents[context.id] = copy.deepcopy(context.model_dump())

        logger.debug("Context inserted", context_id=context.id)
        return await self.get_by_id(context.id)

    async def update(self, context: Context) -> Context:
        """
        Compare-and-swap on (id, version).

        context.version is the version the caller expects to be current.
        On match every mutable field is replaced and the version advances by
        one; otherwise VersionConflictError is raised and nothing is written.
        """
        async with self._lock:
            self._ensure_open()
            stored = self.documents.get(context.id)
            if stored is None or stored["version"] != context.version:
                raise VersionConflictError(context.id, context.version)

            updated = copy.deepcopy(stored)
            updated.update(copy.deepcopy(context.model_dump(include=set(BUSINESS_FIELDS))))
            updated["version"] = context.version + 1
            now = utc_now()
            created_time = stored.get("created_time")
            updated["modified_time"] = max(now, created_time) if created_time else now
            self.documents[context.id] = updated

            return Context.model_validate(copy.deepcopy(updated))

    async def delete(self, context_id: str) -> None:
        """Physically remove a context"""

        async with self._lock:
            self._ensure_open()
            if self.documents.pop(context_id, None) is None:
                raise NotFoundError("context not found", entity_id=context_id)

    async def filter(self, predicate: Dict[str, Any]) -> List[Context]:
        """Return contexts matching an equality predicate"""

        normalized = normalize_predicate(predicate, Context)
        if normalized is None:
            return []

        async with self._lock:
            self._ensure_open()
            return [
                Context.model_validate(copy.deepcopy(document))
                for document in self.documents.values()
                if matches(document, normalized)
            ]

    async def close(self) -> None:
        """Release the store; safe to call more than once"""

        async with self._lock:
            if not self._closed:
                self._closed = True
                logger.info("Context store closed", documents=len(self.documents))

    @property
    def closed(self) -> bool:
        return self._closed
