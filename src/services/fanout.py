"""Event fanout: resolve the channels an event goes to and deliver it."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from src.domain.events import (
    EventDescriptor,
    EventKind,
    PresenceStatus,
    RealtimeEvent,
    role_channel,
    task_channel,
    user_channel,
)
from src.domain.task import format_utc, utc_now
from src.domain.user import Role
from src.services.channel_registry import ChannelRegistry, Connection


logger = logging.getLogger(__name__)

# Pseudo-channel: every authenticated connection
BROADCAST = "*"

_TASK_KINDS = frozenset({EventKind.TASK_CREATED, EventKind.TASK_UPDATED, EventKind.TASK_DELETED})
_ORIGINATOR_EXCLUDED = frozenset({EventKind.PRESENCE_CHANGED, EventKind.TYPING})


@dataclass(frozen=True)
class Publication:
    """One channel an event was published to."""

    channel: str
    event: RealtimeEvent


def resolve_channels(
    kind: EventKind,
    *,
    actor_role: Role,
    task_id: str | None = None,
    target_user_id: str | None = None,
    task_channel_active: bool = False,
) -> list[str]:
    """Channels an event of this kind is published to."""
    if kind in _TASK_KINDS:
        channels = [role_channel(Role.ADMIN), role_channel(Role.VENDOR)]
        if task_id and task_channel_active:
            channels.insert(0, task_channel(task_id))
        return channels
    if kind in (EventKind.COMMENT_ADDED, EventKind.SUBTASK_UPDATED, EventKind.TYPING):
        return [task_channel(task_id)] if task_id else []
    if kind == EventKind.BULK_OPERATION:
        if actor_role == Role.ADMIN:
            return [role_channel(Role.ADMIN)]
        return [role_channel(Role.ADMIN), role_channel(Role.VENDOR)]
    if kind == EventKind.PRESENCE_CHANGED:
        return [BROADCAST]
    if kind == EventKind.NOTIFICATION:
        return [user_channel(target_user_id)] if target_user_id else []
    return []


class FanoutRouter:
    """Publishes events to channel members of a registry."""

    def __init__(self, registry: ChannelRegistry, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.registry = registry
        self._clock = clock
        registry.add_disconnect_hook(self._announce_offline)

    def publish(self, descriptor: EventDescriptor) -> list[Publication]:
        """Deliver an event to every member of its channels, at most once per connection.

        Never raises for delivery problems; full or closed connections drop the event.
        """
        task_active = bool(descriptor.task_id) and self.registry.has_members(task_channel(descriptor.task_id or ""))
        channels = resolve_channels(
            descriptor.kind,
            actor_role=descriptor.actor.role,
            task_id=descriptor.task_id,
            target_user_id=descriptor.target_user_id,
            task_channel_active=task_active,
        )
        event = descriptor.to_event()
        exclude_originator = descriptor.kind in _ORIGINATOR_EXCLUDED

        delivered: set[str] = set()
        dropped = 0
        publications = []
        for channel in channels:
            members = self.registry.connections() if channel == BROADCAST else self.registry.members(channel)
            for connection in members:
                if connection.connection_id in delivered:
                    continue
                if exclude_originator and connection.actor and connection.actor.id == descriptor.actor.id:
                    continue
                delivered.add(connection.connection_id)
                if not connection.deliver(event):
                    dropped += 1
            publications.append(Publication(channel=channel, event=event))

        logger.debug(
            "Published event",
            extra={
                "event": event.event,
                "channels": channels,
                "recipients": len(delivered),
                "dropped": dropped,
                "actor_id": descriptor.actor.id,
            },
        )
        return publications

    def presence_event(self, connection: Connection, status: PresenceStatus) -> EventDescriptor | None:
        if connection.actor is None:
            return None
        return EventDescriptor(
            kind=EventKind.PRESENCE_CHANGED,
            actor=connection.actor,
            payload={
                "user": connection.actor.summary(),
                "status": status.value,
                "timestamp": format_utc(self._clock()),
            },
        )

    def _announce_offline(self, connection: Connection) -> None:
        descriptor = self.presence_event(connection, PresenceStatus.OFFLINE)
        if descriptor is not None:
            self.publish(descriptor)
