import logging
from typing import AsyncGenerator

from redis.asyncio import Redis
from redis.exceptions import RedisError

from casino_core.converter import DataConverter
from casino_core.models.schema_models import HistoryEntrySchema
from casino_core.services.ledger import Ledger

BACKLOG_SIZE = 20

data_converter = DataConverter()


def history_channel(user_id: str) -> str:
    return f"history:{user_id}"


def to_sse(event: str, payload: str) -> str:
    return f"event: {event}\ndata: {payload}\n\n"


class HistoryPublisher:
    """Publishes settled history entries to a per-user Redis channel."""

    def __init__(self, redis: Redis | None):
        self.redis = redis

    async def publish(self, entry: HistoryEntrySchema):
        """Announce a settled entry. The ledger already holds it, so a
        Redis outage only delays live readers and is logged, not raised.
        """
        if self.redis is None:
            return
        payload = data_converter.convert_entry_to_model(entry).model_dump_json()
        try:
            await self.redis.publish(history_channel(entry.user_id), payload)
        except RedisError as e:
            logging.warning(f"Could not publish history entry {entry.id}: {e}")


class HistorySubscriber:
    """Redis subscriber class to relay a user's history as SSE events."""

    def __init__(self, ledger: Ledger, user_id: str):
        self.ledger: Ledger = ledger
        self.user_id: str = user_id

    async def event_generator(self, redis: Redis) -> AsyncGenerator[str, None]:
        """Yield the recent backlog, then every newly published entry.

        Args:
            redis (Redis): Redis connection object.
        """
        channel = history_channel(self.user_id)
        pubsub = redis.pubsub()
        await pubsub.subscribe(channel)
        try:
            backlog = await self.ledger.list_history(self.user_id, limit=BACKLOG_SIZE)
            for entry in reversed(backlog):
                payload = data_converter.convert_entry_to_model(entry).model_dump_json()
                yield to_sse("history_entry", payload)

            while True:
                msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=None)
                if msg and msg["type"] == "message":
                    data = msg["data"]
                    if isinstance(data, bytes):
                        data = data.decode()
                    logging.debug(f"Payload: {data}")
                    yield to_sse("history_entry", data)
        finally:
            logging.info(f"Unsubscribing from channel {channel}")
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
