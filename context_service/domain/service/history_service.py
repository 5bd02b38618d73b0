from typing import List
import structlog

from ..errors import NotFoundError
from ..models.context import Context, ContextHistory
from ..store.history_store import ContextHistoryStore

logger = structlog.get_logger(__name__)


class ContextHistoryService:
    """Creates and reads context snapshots"""

    def __init__(self, history_store: ContextHistoryStore):
        self.history_store = history_store

    async def add_history_for_context(self, context: Context) -> ContextHistory:
        """Snapshot the given (pre-update) state of a context"""

        return await self.history_store.create(ContextHistory.from_context(context))

    async def get_history_by_id(self, history_id: str) -> ContextHistory:
        return await self.history_store.get_by_id(history_id)

    async def get_history_item(self, context_id: str, history_id: str) -> ContextHistory:
        """Get a snapshot, requiring it to belong to the given context"""

        snapshot = await self.history_store.get_by_id(history_id)
        if snapshot.context_id != context_id:
            raise NotFoundError(
                "context history not found for context",
                entity_id=history_id,
                contextId=context_id,
            )
        return snapshot

    async def get_history_for_context_id(self, context_id: str) -> List[ContextHistory]:
        """All snapshots of a context, oldest first"""

        return await self.history_store.filter({"context_id": context_id})
