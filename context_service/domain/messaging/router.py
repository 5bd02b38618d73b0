from typing import Awaitable, Callable, Dict, Optional
from pydantic import ValidationError
import structlog

from ..errors import ContextServiceError, ErrorType, InvalidActionError, InvalidInputError, ProtocolError
from ..models.context import Context
from ..models.requests import ContextCreateRequest, ContextDeleteRequest, ContextUpdateRequest
from ..service.context_service import ContextService
from .envelope import Envelope, EnvelopeKind, EventName, Message, error_envelope, response_envelope
from .idempotency import IdempotencyStore
from ...infrastructure.observability.logging import context_logger

logger = structlog.get_logger(__name__)

ActionHandler = Callable[[Message], Awaitable[Context]]


class EnvelopeRouter:
    """
    Validates inbound envelopes and dispatches them to the context service.

    The router never retries; every inbound envelope yields exactly one
    outbound RESPONSE or ERROR envelope carrying the request's correlation,
    trace and idempotency identifiers.
    """

    def __init__(
        self,
        context_service: ContextService,
        idempotency_store: Optional[IdempotencyStore] = None,
        expected_type: str = "context"
    ):
        self.context_service = context_service
        self.idempotency_store = idempotency_store
        self.expected_type = expected_type
        self._handlers: Dict[str, ActionHandler] = {
            "create": self._handle_create,
            "update": self._handle_update,
            "delete": self._handle_delete,
        }

    @property
    def actions(self):
        return sorted(self._handlers)

    async def handle(self, envelope: Envelope) -> Envelope:
        """Route one envelope and build the outbound envelope"""

        with structlog.contextvars.bound_contextvars(**envelope.log_context()):
            context_logger.log_envelope(
                "inbound",
                envelope.kind.value,
                envelope.message.type,
                envelope.message.action,
            )

            outbound = await self._route(envelope)

            context_logger.log_envelope(
                "outbound",
                outbound.kind.value,
                outbound.message.type,
                outbound.message.action,
                event_name=outbound.event_name,
                details={"status": outbound.error.status} if outbound.error else None,
            )
            return outbound

    @staticmethod
    def _reject(envelope: Envelope, error: ContextServiceError, event_name: str = EventName.ERROR.value) -> Envelope:
        return error_envelope(
            envelope,
            status=error.status_code,
            message=error.message,
            retriable=error.retryable,
            error_type=error.error_type.value,
            event_name=event_name,
        )

    async def _route(self, envelope: Envelope) -> Envelope:
        if envelope.kind != EnvelopeKind.REQUEST:
            logger.error("Invalid message kind", kind=envelope.kind.value)
            return self._reject(
                envelope,
                ProtocolError("kind is not of type request", {"kind": envelope.kind.value}),
                EventName.INVALID_KIND.value,
            )

        message = envelope.message
        if message.type != self.expected_type:
            logger.error("Invalid message type", message_type=message.type, expected=self.expected_type)
            return self._reject(
                envelope,
                ProtocolError(f"type is not of type {self.expected_type}", {"type": message.type}),
                EventName.INVALID_TYPE.value,
            )

        handler = self._handlers.get(message.action)
        if handler is None:
            logger.error("Invalid action", action=message.action)
            return self._reject(envelope, InvalidActionError(message.action), EventName.INVALID_ACTION.value)

        cache_key = None
        if self.idempotency_store is not None and envelope.idempotency_key:
            cache_key = IdempotencyStore.make_key(message.action, envelope.idempotency_key)
            cached = await self.idempotency_store.get(cache_key)
            if cached is not None:
                logger.info("Duplicate request, replaying stored result", action=message.action)
                return response_envelope(envelope, cached)

        try:
            result = await handler(message)
        except ValidationError as e:
            logger.error("Error decoding message payload", action=message.action, errors=e.error_count())
            return self._reject(
                envelope,
                ProtocolError(f"invalid {message.action} payload: {e.errors(include_url=False)}"),
                EventName.PROCESSING_FAILURE.value,
            )
        except ContextServiceError as e:
            logger.error("Error handling message", action=message.action, error=e.message)
            return self._reject(envelope, e)
        except Exception:
            logger.exception("Unclassified error handling message", action=message.action)
            return error_envelope(
                envelope,
                status=500,
                message="context handler error",
                retriable=False,
                error_type=ErrorType.STORAGE.value,
            )

        data = result.to_wire()
        if cache_key is not None:
            await self.idempotency_store.set(cache_key, data)
        return response_envelope(envelope, data)

    async def _handle_create(self, message: Message) -> Context:
        request = ContextCreateRequest.model_validate(message.data)
        return await self.context_service.create_context(request.to_context())

    async def _handle_update(self, message: Message) -> Context:
        request = ContextUpdateRequest.model_validate(message.data)
        if not request.id:
            raise InvalidInputError("context id is required to update context")
        if request.version is None:
            raise InvalidInputError("version is required to update context", {"id": request.id})
        return await self.context_service.update_context(request.to_context())

    async def _handle_delete(self, message: Message) -> Context:
        request = ContextDeleteRequest.model_validate(message.data)
        return await self.context_service.delete_context(request.id)
