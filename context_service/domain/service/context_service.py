from typing import Any, Iterator, List, Mapping, Optional
from contextlib import contextmanager
import time
import uuid
import structlog

from ..errors import ContextServiceError, InvalidInputError, StorageError, VersionConflictError
from ..models.context import Context, utc_now
from ..store.entity_store import ContextStore
from .history_service import ContextHistoryService
from ...infrastructure.observability.logging import MetricsCollector, context_logger, metrics as default_metrics

logger = structlog.get_logger(__name__)


@contextmanager
def storage_errors(operation: str, **details: Any) -> Iterator[None]:
    """Wrap unclassified store failures in StorageError with diagnostic details"""
    try:
        yield
    except ContextServiceError:
        raise
    except Exception as e:
        raise StorageError(f"{operation} failed: {e}", details) from e


class ContextService:
    """
    Create, read, update and soft-delete contexts.

    Every mutation after creation goes through the compare-and-swap update
    of the store and is preceded by a best-effort history snapshot of the
    state being replaced.
    """

    def __init__(
        self,
        store: ContextStore,
        history_service: ContextHistoryService,
        metrics: Optional[MetricsCollector] = None
    ):
        self.store = store
        self.history_service = history_service
        self.metrics = metrics or default_metrics

    @contextmanager
    def _timed(self, operation: str) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            self.metrics.record_latency(operation, (time.perf_counter() - started) * 1000)

    @staticmethod
    def _require_body(context: Context):
        missing = [
            field for field in ("name", "content")
            if not (getattr(context, field) or "").strip()
        ]
        if missing:
            raise InvalidInputError(
                f"missing required fields: {', '.join(missing)}",
                {"missing": missing},
            )

    async def create_context(self, candidate: Context) -> Context:
        """Validate and insert a new context at version 1"""

        self._require_body(candidate)

        now = utc_now()
        fields = candidate.business_fields()
        fields["is_active"] = True
        context = Context(
            id=uuid.uuid4().hex,
            version=1,
            created_time=now,
            modified_time=now,
            **fields,
        )

        with self._timed("context.create"), storage_errors("create context", id=context.id):
            created = await self.store.create(context)

        context_logger.log_context_mutation("create", created.id, created.version)
        return created

    async def get_context_by_id(self, context_id: str) -> Context:
        with self._timed("context.get"), storage_errors("get context", id=context_id):
            return await self.store.get_by_id(context_id)

    async def update_context(self, update: Context) -> Context:
        """
        Replace the mutable fields of a context.

        update.version must be the version the caller read before editing.
        is_active and created_time are kept from the stored document; only
        delete_context flips is_active.
        """
        if not update.id:
            raise InvalidInputError("context id is required to update a context")
        if update.version < 1:
            raise InvalidInputError(
                "version is required to update a context",
                {"id": update.id, "version": update.version},
            )
        self._require_body(update)

        with self._timed("context.update"):
            current = await self.get_context_by_id(update.id)
            candidate = update.model_copy(
                update={
                    "is_active": current.is_active,
                    "created_time": current.created_time,
                }
            )
            return await self._apply_update(current, candidate, "update")

    async def delete_context(self, context_id: str) -> Context:
        """Soft delete: flip is_active through the regular update path"""

        with self._timed("context.delete"):
            current = await self.get_context_by_id(context_id)
            candidate = current.model_copy(update={"is_active": False})
            return await self._apply_update(current, candidate, "delete")

    async def filter_contexts(self, predicate: Any) -> List[Context]:
        """Contexts matching predicate; unconstrained or malformed predicates match nothing"""

        if not isinstance(predicate, Mapping) or not predicate:
            logger.info("Rejecting unconstrained context filter", predicate_type=type(predicate).__name__)
            return []

        with self._timed("context.filter"), storage_errors("filter contexts"):
            return await self.store.filter(dict(predicate))

    async def _apply_update(self, current: Context, candidate: Context, action: str) -> Context:
        if current.version != candidate.version:
            self._record_conflict(candidate, current.version)
            raise VersionConflictError(candidate.id, candidate.version)

        await self._capture_snapshot(current)

        try:
            with storage_errors(f"{action} context", id=candidate.id, version=candidate.version):
                updated = await self.store.update(candidate)
        except VersionConflictError:
            self._record_conflict(candidate, None)
            raise

        context_logger.log_context_mutation(action, updated.id, updated.version, previous_version=current.version)
        return updated

    async def _capture_snapshot(self, current: Context):
        # A lost audit row must not block the primary mutation
        try:
            snapshot = await self.history_service.add_history_for_context(current)
        except Exception as e:
            self.metrics.increment_counter("context.history_failure")
            context_logger.log_history_snapshot(current.id, current.version, success=False, error=str(e))
            return

        context_logger.log_history_snapshot(current.id, current.version, history_id=snapshot.id)

    def _record_conflict(self, candidate: Context, stored_version: Optional[int]):
        self.metrics.increment_counter("context.version_conflict")
        logger.warning(
            "Version conflict",
            context_id=candidate.id,
            expected_version=candidate.version,
            stored_version=stored_version,
        )
