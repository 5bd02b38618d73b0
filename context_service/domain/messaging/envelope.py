from typing import Dict, Any, Optional
from pydantic import Field
from datetime import datetime
from enum import Enum
import uuid

from ..models.context import CamelModel, utc_now


class EnvelopeKind(str, Enum):
    """Envelope kinds"""
    REQUEST = "REQUEST"
    RESPONSE = "RESPONSE"
    ERROR = "ERROR"


class EventName(str, Enum):
    """Event names stamped on outbound envelopes"""
    SUCCESS = "success"
    ERROR = "error"
    INVALID_KIND = "invalid_kind"
    INVALID_TYPE = "invalid_type"
    INVALID_ACTION = "invalid_action"
    PROCESSING_FAILURE = "processing_failure"
    CANCELLED = "cancelled"


class Message(CamelModel):
    """Business message: domain type, action and open payload"""
    type: str
    action: str
    data: Dict[str, Any] = Field(default_factory=dict)


class ErrorDetail(CamelModel):
    """Error carried by an ERROR envelope"""
    status: int
    message: str
    error_type: Optional[str] = None
    retriable: bool = False


class Envelope(CamelModel):
    """Transport-agnostic wrapper around a message"""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    message: Message
    kind: EnvelopeKind = EnvelopeKind.REQUEST
    correlation_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    trace_id: Optional[str] = None
    event_name: Optional[str] = None
    error: Optional[ErrorDetail] = None
    timestamp: datetime = Field(default_factory=utc_now)

    def log_context(self) -> Dict[str, Any]:
        """Identifiers bound into the logging context while handling this envelope"""
        return {
            "correlation_id": self.correlation_id,
            "trace_id": self.trace_id,
            "idempotency_key": self.idempotency_key,
        }


def new_request(
    message_type: str,
    action: str,
    data: Optional[Dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> Envelope:
    """Build a REQUEST envelope, generating correlation and trace ids when absent"""
    return Envelope(
        message=Message(type=message_type, action=action, data=data or {}),
        kind=EnvelopeKind.REQUEST,
        correlation_id=correlation_id or uuid.uuid4().hex,
        idempotency_key=idempotency_key,
        trace_id=trace_id or uuid.uuid4().hex,
    )


def response_envelope(request: Envelope, data: Dict[str, Any]) -> Envelope:
    """RESPONSE for a request, carrying the request's protocol metadata"""
    return Envelope(
        message=Message(type=request.message.type, action=request.message.action, data=data),
        kind=EnvelopeKind.RESPONSE,
        correlation_id=request.correlation_id,
        idempotency_key=request.idempotency_key,
        trace_id=request.trace_id,
        event_name=EventName.SUCCESS.value,
    )


def error_envelope(
    request: Envelope,
    status: int,
    message: str,
    retriable: bool,
    error_type: Optional[str] = None,
    event_name: str = EventName.ERROR.value,
) -> Envelope:
    """ERROR for a request; the original message is echoed back unchanged"""
    return Envelope(
        message=request.message.model_copy(deep=True),
        kind=EnvelopeKind.ERROR,
        correlation_id=request.correlation_id,
        idempotency_key=request.idempotency_key,
        trace_id=request.trace_id,
        event_name=event_name,
        error=ErrorDetail(
            status=status,
            message=message,
            error_type=error_type,
            retriable=retriable,
        ),
    )
