from typing import Dict, Set, Optional, Any
from fastapi import WebSocket
import asyncio
from datetime import datetime, timezone
import structlog

from ...domain.messaging.envelope import Envelope, EnvelopeKind, EventName

logger = structlog.get_logger(__name__)


class ConnectionManager:
    """Manages WebSocket sessions that exchange envelopes"""

    def __init__(self, stale_after: int = 300):
        self.active_connections: Dict[str, WebSocket] = {}
        self.session_metadata: Dict[str, Dict[str, Any]] = {}
        self.stale_after = stale_after
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, session_id: str):
        """Accept a new WebSocket connection"""
        await websocket.accept()

        async with self._lock:
            self.active_connections[session_id] = websocket
            self.session_metadata[session_id] = {
                "connected_at": datetime.now(timezone.utc),
                "last_activity": datetime.now(timezone.utc),
                "envelopes": 0,
            }

        logger.info("WebSocket connected", session_id=session_id)

    async def disconnect(self, session_id: str):
        """Disconnect a WebSocket connection"""
        async with self._lock:
            if session_id in self.active_connections:
                ws = self.active_connections.pop(session_id)
                self.session_metadata.pop(session_id, None)

                try:
                    await ws.close()
                except Exception as e:
                    logger.debug("Error closing WebSocket", session_id=session_id, error=str(e))

        logger.info("WebSocket disconnected", session_id=session_id)

    async def disconnect_all(self):
        for session_id in list(self.active_connections.keys()):
            await self.disconnect(session_id)

    def touch(self, session_id: str):
        """Record inbound activity on a session"""
        metadata = self.session_metadata.get(session_id)
        if metadata is not None:
            metadata["last_activity"] = datetime.now(timezone.utc)
            metadata["envelopes"] += 1

    async def send_json(self, session_id: str, payload: Dict[str, Any]) -> bool:
        """Send a JSON payload to a specific session"""
        if session_id not in self.active_connections:
            logger.warning("Attempted to send to disconnected session", session_id=session_id)
            return False

        websocket = self.active_connections[session_id]

        try:
            await websocket.send_json(payload)

            # Update last activity
            if session_id in self.session_metadata:
                self.session_metadata[session_id]["last_activity"] = datetime.now(timezone.utc)

            return True

        except Exception as e:
            logger.error("Failed to send payload", session_id=session_id, error=str(e))
            await self.disconnect(session_id)
            return False

    async def send_envelope(self, session_id: str, envelope: Envelope) -> bool:
        """Send an outbound envelope to a session"""
        return await self.send_json(session_id, envelope.to_wire())

    async def send_error(self, session_id: str, error_message: str, status: int = 400):
        """Report a frame that could not be decoded into an envelope"""
        await self.send_json(
            session_id,
            {
                "kind": EnvelopeKind.ERROR.value,
                "eventName": EventName.PROCESSING_FAILURE.value,
                "error": {
                    "status": status,
                    "message": error_message,
                    "errorType": "protocol_error",
                    "retriable": False,
                },
            },
        )

    def get_session_metadata(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Get metadata for a session"""
        return self.session_metadata.get(session_id)

    def get_active_sessions(self) -> Set[str]:
        """Get active session IDs"""
        return set(self.active_connections.keys())

    async def health_check(self, interval: int = 60):
        """Periodic health check to clean up stale connections"""
        while True:
            try:
                current_time = datetime.now(timezone.utc)
                stale_sessions = []

                for session_id, metadata in list(self.session_metadata.items()):
                    last_activity = metadata.get("last_activity")
                    if last_activity and (current_time - last_activity).total_seconds() > self.stale_after:
                        stale_sessions.append(session_id)

                for session_id in stale_sessions:
                    logger.warning("Disconnecting stale session", session_id=session_id)
                    await self.disconnect(session_id)

            except Exception as e:
                logger.error("Health check error", error=str(e))

            await asyncio.sleep(interval)
