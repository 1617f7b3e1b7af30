"""Realtime connections and their channel memberships.

Each connection owns a bounded outbound queue. Publishing never awaits: events
are enqueued with ``put_nowait`` and dropped (and logged) when the queue is full
or the connection is closed. A writer task per connection drains the queue.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import Callable
from enum import StrEnum

from src.core.config import settings
from src.domain.events import RealtimeEvent, role_channel, task_channel, user_channel
from src.domain.user import Actor


logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class Connection:
    """One live realtime client."""

    def __init__(self, *, connection_id: str | None = None, queue_maxsize: int | None = None) -> None:
        self.connection_id = connection_id or uuid.uuid4().hex
        self.actor: Actor | None = None
        self.state = ConnectionState.UNAUTHENTICATED
        self.queue: asyncio.Queue[RealtimeEvent] = asyncio.Queue(
            maxsize=queue_maxsize if queue_maxsize is not None else settings.realtime_queue_maxsize
        )

    @property
    def is_authenticated(self) -> bool:
        return self.state == ConnectionState.AUTHENTICATED

    def deliver(self, event: RealtimeEvent) -> bool:
        """Enqueue an event without waiting. Returns False if it was dropped."""
        if self.state == ConnectionState.CLOSED:
            logger.debug("Dropped event for closed connection", extra={"connection_id": self.connection_id})
            return False
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Outbound queue full, dropping event",
                extra={"connection_id": self.connection_id, "event": event.event},
            )
            return False
        return True

    def __repr__(self) -> str:
        actor_id = self.actor.id if self.actor else None
        return f"Connection(id={self.connection_id!r}, actor={actor_id!r}, state={self.state.value})"


DisconnectHook = Callable[[Connection], None]


class ChannelRegistry:
    """Channel membership for live connections.

    A connection joins ``user:<id>`` and ``role:<role>`` when it authenticates and
    keeps them until it disconnects. Task channels are joined and left on request.
    """

    def __init__(self) -> None:
        self._members: dict[str, set[Connection]] = defaultdict(set)
        self._channels: dict[str, set[str]] = {}
        self._connections: dict[str, Connection] = {}
        self._disconnect_hooks: list[DisconnectHook] = []

    def add_disconnect_hook(self, hook: DisconnectHook) -> None:
        self._disconnect_hooks.append(hook)

    def _join(self, connection: Connection, channel: str) -> None:
        self._members[channel].add(connection)
        self._channels[connection.connection_id].add(channel)

    def _require_authenticated(self, connection: Connection) -> None:
        if not connection.is_authenticated:
            msg = f"Connection {connection.connection_id} is not authenticated"
            raise ValueError(msg)

    def on_connect(self, connection: Connection, actor: Actor) -> None:
        """Authenticate a connection and enroll it in its user and role channels."""
        if connection.state != ConnectionState.UNAUTHENTICATED:
            msg = f"Connection {connection.connection_id} is already {connection.state.value}"
            raise ValueError(msg)

        connection.actor = actor
        connection.state = ConnectionState.AUTHENTICATED
        self._connections[connection.connection_id] = connection
        self._channels[connection.connection_id] = set()
        self._join(connection, user_channel(actor.id))
        self._join(connection, role_channel(actor.role))

        logger.info(
            "Realtime connection authenticated",
            extra={"connection_id": connection.connection_id, "actor_id": actor.id, "role": actor.role},
        )

    def on_join_task(self, connection: Connection, task_id: str) -> str:
        self._require_authenticated(connection)
        channel = task_channel(task_id)
        self._join(connection, channel)
        logger.debug("Joined task channel", extra={"connection_id": connection.connection_id, "channel": channel})
        return channel

    def on_leave_task(self, connection: Connection, task_id: str) -> bool:
        """Leave a task channel. Returns False if the connection was not a member."""
        self._require_authenticated(connection)
        channel = task_channel(task_id)
        members = self._members.get(channel)
        if not members or connection not in members:
            return False
        members.discard(connection)
        if not members:
            del self._members[channel]
        self._channels[connection.connection_id].discard(channel)
        return True

    def on_disconnect(self, connection: Connection) -> None:
        """Release every membership, close the connection, then run disconnect hooks."""
        if connection.state == ConnectionState.CLOSED:
            return

        for channel in self._channels.pop(connection.connection_id, set()):
            members = self._members.get(channel)
            if members is None:
                continue
            members.discard(connection)
            if not members:
                del self._members[channel]
        self._connections.pop(connection.connection_id, None)
        was_authenticated = connection.is_authenticated
        connection.state = ConnectionState.CLOSED

        logger.info("Realtime connection closed", extra={"connection_id": connection.connection_id})

        if not was_authenticated:
            return
        for hook in self._disconnect_hooks:
            try:
                hook(connection)
            except Exception:
                logger.exception("Disconnect hook failed", extra={"connection_id": connection.connection_id})

    def members(self, channel: str) -> list[Connection]:
        return list(self._members.get(channel, ()))

    def has_members(self, channel: str) -> bool:
        return bool(self._members.get(channel))

    def channels_of(self, connection: Connection) -> set[str]:
        return set(self._channels.get(connection.connection_id, ()))

    def connections(self) -> list[Connection]:
        return list(self._connections.values())
