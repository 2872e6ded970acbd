"""
Sync outcome events for the push sync service.

This module provides:
- Typed event definitions for push lifecycle outcomes
- Event serialization
- Optional publication on a Redis pub/sub channel
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import redis.asyncio as redis
from pydantic import BaseModel, Field

from shared.models import PushSyncReport

logger = logging.getLogger(__name__)


class SyncEventType(Enum):
    """Push lifecycle event types."""
    PUSH_RECEIVED = "push.received"
    PUSH_COMPLETED = "push.completed"
    PUSH_FAILED = "push.failed"


class EventSource(Enum):
    """Event source systems."""
    PUSH_SYNC = "push_sync"
    SYSTEM = "system"


@dataclass
class EventMetadata:
    """Event metadata for tracking and auditing."""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    correlation_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: EventSource = EventSource.PUSH_SYNC
    version: str = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        """Convert metadata to dictionary."""
        return {
            'event_id': self.event_id,
            'correlation_id': self.correlation_id,
            'timestamp': self.timestamp.isoformat(),
            'source': self.source.value,
            'version': self.version,
        }


class SyncEvent(BaseModel):
    """A push lifecycle event."""

    metadata: EventMetadata = Field(default_factory=EventMetadata)
    event_type: SyncEventType
    repository: str
    branch: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'metadata': self.metadata.to_dict(),
            'event_type': self.event_type.value,
            'repository': self.repository,
            'branch': self.branch,
            'data': self.data,
        }


class EventFactory:
    """Builds sync events from push data."""

    @staticmethod
    def push_received(repository: str, branch: str, commits: int,
                      correlation_id: Optional[str] = None) -> SyncEvent:
        return SyncEvent(
            metadata=EventMetadata(correlation_id=correlation_id),
            event_type=SyncEventType.PUSH_RECEIVED,
            repository=repository,
            branch=branch,
            data={'commits': commits},
        )

    @staticmethod
    def push_finished(report: PushSyncReport, correlation_id: Optional[str] = None) -> SyncEvent:
        event_type = SyncEventType.PUSH_COMPLETED if report.succeeded else SyncEventType.PUSH_FAILED
        return SyncEvent(
            metadata=EventMetadata(correlation_id=correlation_id),
            event_type=event_type,
            repository=report.repository,
            branch=report.branch,
            data=report.model_dump(mode="json"),
        )


class EventSerializer:
    """JSON serialization for sync events."""

    @staticmethod
    def serialize(event: SyncEvent) -> str:
        return json.dumps(event.to_dict())

    @staticmethod
    def deserialize(payload: str) -> SyncEvent:
        data = json.loads(payload)
        meta = data['metadata']
        metadata = EventMetadata(
            event_id=meta['event_id'],
            correlation_id=meta.get('correlation_id'),
            timestamp=datetime.fromisoformat(meta['timestamp']),
            source=EventSource(meta['source']),
            version=meta.get('version', '1.0.0'),
        )
        return SyncEvent(
            metadata=metadata,
            event_type=SyncEventType(data['event_type']),
            repository=data['repository'],
            branch=data.get('branch', ''),
            data=data.get('data', {}),
        )


class EventPublisher:
    """Publishes sync events on a Redis channel when enabled.

    Publication is best effort: failures are logged and swallowed so a Redis
    outage never affects push processing.
    """

    def __init__(self, redis_settings):
        self.settings = redis_settings
        self.enabled = redis_settings.events_enabled
        self.channel = redis_settings.channel
        self.redis_client: Optional[redis.Redis] = None

    async def initialize(self):
        if not self.enabled:
            return
        self.redis_client = redis.from_url(
            self.settings.url,
            decode_responses=True,
            socket_connect_timeout=self.settings.socket_connect_timeout,
            socket_timeout=self.settings.socket_timeout,
            retry_on_timeout=self.settings.retry_on_timeout,
        )
        try:
            await self.redis_client.ping()
            logger.info(f"Publishing sync events on {self.channel}")
        except Exception as e:
            logger.warning(f"Redis unavailable, events will be dropped until it recovers: {e}")

    async def close(self):
        if self.redis_client:
            await self.redis_client.close()
            self.redis_client = None

    async def status(self) -> str:
        if not self.enabled:
            return "disabled"
        if not self.redis_client:
            return "disconnected"
        try:
            await self.redis_client.ping()
            return "connected"
        except Exception:
            return "unreachable"

    async def publish(self, event: SyncEvent) -> bool:
        if not self.enabled or not self.redis_client:
            return False
        try:
            await self.redis_client.publish(self.channel, EventSerializer.serialize(event))
            logger.debug(f"Published {event.event_type.value} for {event.repository}")
            return True
        except Exception as e:
            logger.error(f"Error publishing sync event: {e}")
            return False
