from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
import uuid
import structlog

from ...domain.messaging.envelope import Envelope

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.websocket("/ws/contexts/{session_id}")
async def context_websocket(websocket: WebSocket, session_id: str):
    """Envelope channel: each inbound REQUEST frame gets one RESPONSE or ERROR frame"""

    # Validate session ID format
    try:
        uuid.UUID(session_id)
    except ValueError:
        await websocket.close(code=1008, reason="Invalid session ID format")
        return

    container = websocket.app.state.container
    connection_manager = container.connections

    await connection_manager.connect(websocket, session_id)

    try:
        # Main message loop
        while True:
            raw = await websocket.receive_text()
            connection_manager.touch(session_id)

            try:
                envelope = Envelope.model_validate_json(raw)
            except ValidationError as e:
                logger.error("Invalid envelope frame", session_id=session_id, errors=e.error_count())
                await connection_manager.send_error(session_id, "frame is not a valid envelope")
                continue

            logger.debug("Envelope received", session_id=session_id, action=envelope.message.action)

            response = await container.router.handle(envelope)
            await connection_manager.send_envelope(session_id, response)

    except WebSocketDisconnect:
        logger.info("Client disconnected", session_id=session_id)
    except Exception as e:
        logger.error("WebSocket error", error=str(e), session_id=session_id)
    finally:
        await connection_manager.disconnect(session_id)
