from typing import Optional
from pydantic import ValidationError
import asyncio
import structlog

from ...domain.errors import ErrorType, OperationCancelledError
from ...domain.messaging.envelope import Envelope, EventName, error_envelope
from ...domain.messaging.router import EnvelopeRouter
from .broker import ChannelClosedError, MessageReader, MessageWriter, Record

logger = structlog.get_logger(__name__)


class ContextConsumer:
    """
    Sequential worker loop: fetch, route, publish the response, commit.

    Fetch, publish and commit failures are logged and retried after a fixed
    backoff. A record is committed only after its response has been
    published; a record left uncommitted when the loop stops is redelivered
    to the next reader of the group.
    """

    def __init__(
        self,
        reader: MessageReader,
        writer: MessageWriter,
        router: EnvelopeRouter,
        retry_backoff: float = 3.0,
        handler_timeout: float = 30.0
    ):
        self.reader = reader
        self.writer = writer
        self.router = router
        self.retry_backoff = retry_backoff
        self.handler_timeout = handler_timeout
        self.processed = 0
        self.failed = 0
        self.running = False

    async def run(self):
        """Consume until cancelled or the reader is closed"""

        self.running = True
        logger.info("Starting consumer")

        try:
            while True:
                try:
                    record = await self.reader.fetch()
                except ChannelClosedError:
                    logger.info("Reader closed, stopping consumer")
                    break
                except Exception as e:
                    logger.error("Error while fetching message", error=str(e))
                    await asyncio.sleep(self.retry_backoff)
                    continue

                response = await self.process(record)

                try:
                    if response is not None:
                        await self._publish(response, record)
                    await self._commit(record)
                except ChannelClosedError:
                    logger.info("Channel closed before commit, stopping consumer", offset=record.offset)
                    break
        finally:
            self.running = False
            await self.reader.close()
            logger.info("Consumer stopped", processed=self.processed, failed=self.failed)

    async def process(self, record: Record) -> Optional[Envelope]:
        """Decode and route one record; None when it cannot be answered"""

        try:
            envelope = Envelope.model_validate_json(record.value)
        except ValidationError as e:
            self.failed += 1
            logger.error(
                "Dropping undecodable envelope",
                topic=record.topic,
                offset=record.offset,
                errors=e.error_count(),
            )
            return None

        try:
            response = await asyncio.wait_for(self.router.handle(envelope), timeout=self.handler_timeout)
        except asyncio.TimeoutError:
            self.failed += 1
            error = OperationCancelledError(
                f"handling exceeded {self.handler_timeout}s",
                {"offset": record.offset},
            )
            logger.error("Message handling cancelled", offset=record.offset, error=error.message)
            return error_envelope(
                envelope,
                status=error.status_code,
                message=error.message,
                retriable=error.retryable,
                error_type=ErrorType.CANCELLED.value,
                event_name=EventName.CANCELLED.value,
            )
        except Exception:
            self.failed += 1
            logger.exception("Unhandled error while routing message", offset=record.offset)
            return error_envelope(
                envelope,
                status=500,
                message="context handler error",
                retriable=False,
                error_type=ErrorType.STORAGE.value,
            )

        self.processed += 1
        return response

    async def _publish(self, response: Envelope, record: Record):
        while True:
            try:
                await self.writer.publish(response)
                return
            except ChannelClosedError:
                raise
            except Exception as e:
                logger.error("Error while pushing response", offset=record.offset, error=str(e))
                await asyncio.sleep(self.retry_backoff)

    async def _commit(self, record: Record):
        while True:
            try:
                await self.reader.commit(record)
                return
            except ChannelClosedError:
                raise
            except Exception as e:
                logger.error("Error while committing message", offset=record.offset, error=str(e))
                await asyncio.sleep(self.retry_backoff)
