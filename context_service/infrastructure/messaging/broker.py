"""
In-process message channel.

Topics are append-only logs; each consumer group keeps a committed offset per
topic. A reader starts at its group's committed offset, so records fetched
but never committed are delivered again to the next reader of that group.
"""

from typing import Dict, List, Optional, Protocol, Tuple
from dataclasses import dataclass, field
from datetime import datetime
import asyncio
import uuid
import structlog

from ...domain.messaging.envelope import Envelope
from ...domain.models.context import utc_now

logger = structlog.get_logger(__name__)


class ChannelClosedError(Exception):
    """Raised when reading from or writing to a closed channel"""


@dataclass
class Record:
    """A message stored on a topic"""
    topic: str
    offset: int
    key: str
    value: bytes
    timestamp: datetime = field(default_factory=utc_now)


class MessageReader(Protocol):
    async def fetch(self) -> Record: ...

    async def commit(self, record: Record) -> None: ...

    async def close(self) -> None: ...


class MessageWriter(Protocol):
    async def publish(self, envelope: Envelope) -> Record: ...

    async def close(self) -> None: ...


class InMemoryBroker:
    """Topic logs with consumer-group offsets"""

    def __init__(self):
        self.topics: Dict[str, List[Record]] = {}
        self.committed: Dict[Tuple[str, str], int] = {}
        self._condition = asyncio.Condition()

    async def append(self, topic: str, value: bytes, key: Optional[str] = None) -> Record:
        """Append a raw value to a topic and wake up waiting readers"""

        async with self._condition:
            log = self.topics.setdefault(topic, [])
            record = Record(topic=topic, offset=len(log), key=key or uuid.uuid4().hex, value=value)
            log.append(record)
            self._condition.notify_all()
            return record

    async def read(self, topic: str, offset: int) -> Record:
        """Wait until a record exists at offset"""

        async with self._condition:
            await self._condition.wait_for(lambda: len(self.topics.get(topic, [])) > offset)
            return self.topics[topic][offset]

    async def commit(self, group: str, record: Record) -> None:
        async with self._condition:
            key = (group, record.topic)
            self.committed[key] = max(self.committed.get(key, 0), record.offset + 1)

    def committed_offset(self, group: str, topic: str) -> int:
        return self.committed.get((group, topic), 0)

    def records(self, topic: str) -> List[Record]:
        return list(self.topics.get(topic, []))

    def reader(self, topic: str, group: str) -> "BrokerReader":
        return BrokerReader(self, topic, group)

    def writer(self, topic: str) -> "BrokerWriter":
        return BrokerWriter(self, topic)


class BrokerReader:
    """Consumer-group reader for one topic"""

    def __init__(self, broker: InMemoryBroker, topic: str, group: str):
        self.broker = broker
        self.topic = topic
        self.group = group
        self.position = broker.committed_offset(group, topic)
        self._closed = False

    async def fetch(self) -> Record:
        """Next record after the last fetched one; waits for new records"""

        if self._closed:
            raise ChannelClosedError(f"reader for {self.topic} is closed")
        record = await self.broker.read(self.topic, self.position)
        self.position = record.offset + 1
        return record

    async def commit(self, record: Record) -> None:
        if self._closed:
            raise ChannelClosedError(f"reader for {self.topic} is closed")
        await self.broker.commit(self.group, record)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            logger.info("Reader closed", topic=self.topic, group=self.group, position=self.position)


class BrokerWriter:
    """Publishes envelopes to one topic"""

    def __init__(self, broker: InMemoryBroker, topic: str):
        self.broker = broker
        self.topic = topic
        self._closed = False

    async def publish(self, envelope: Envelope) -> Record:
        if self._closed:
            raise ChannelClosedError(f"writer for {self.topic} is closed")
        value = envelope.model_dump_json(by_alias=True).encode("utf-8")
        return await self.broker.append(self.topic, value, key=envelope.id)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            logger.info("Writer closed", topic=self.topic)
