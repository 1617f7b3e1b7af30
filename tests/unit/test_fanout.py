"""Tests for channel resolution and event delivery."""

import pytest

from src.domain.events import EventDescriptor, EventKind, PresenceStatus
from src.domain.user import Actor, Role
from src.services.channel_registry import Connection
from src.services.fanout import BROADCAST, resolve_channels


def connect(registry, actor: Actor, **kwargs) -> Connection:
    connection = Connection(**kwargs)
    registry.on_connect(connection, actor)
    return connection


def received(connection: Connection) -> list[str]:
    names = []
    while not connection.queue.empty():
        names.append(connection.queue.get_nowait().event)
    return names


@pytest.mark.unit
class TestResolveChannels:
    def test_task_events_without_watchers(self):
        channels = resolve_channels(EventKind.TASK_UPDATED, actor_role=Role.VENDOR, task_id="t1")
        assert channels == ["role:admin", "role:vendor"]

    def test_task_events_with_watchers(self):
        channels = resolve_channels(
            EventKind.TASK_CREATED, actor_role=Role.ADMIN, task_id="t1", task_channel_active=True
        )
        assert channels == ["task:t1", "role:admin", "role:vendor"]

    @pytest.mark.parametrize("kind", [EventKind.COMMENT_ADDED, EventKind.SUBTASK_UPDATED, EventKind.TYPING])
    def test_task_scoped_events(self, kind):
        assert resolve_channels(kind, actor_role=Role.CUSTOMER, task_id="t1") == ["task:t1"]

    def test_bulk_by_admin_stays_with_admins(self):
        assert resolve_channels(EventKind.BULK_OPERATION, actor_role=Role.ADMIN) == ["role:admin"]

    def test_bulk_by_vendor_reaches_vendors(self):
        assert resolve_channels(EventKind.BULK_OPERATION, actor_role=Role.VENDOR) == ["role:admin", "role:vendor"]

    def test_presence_broadcasts(self):
        assert resolve_channels(EventKind.PRESENCE_CHANGED, actor_role=Role.CUSTOMER) == [BROADCAST]

    def test_notification_targets_user(self):
        channels = resolve_channels(EventKind.NOTIFICATION, actor_role=Role.ADMIN, target_user_id="C1")
        assert channels == ["user:C1"]


@pytest.mark.unit
class TestPublish:
    def test_delivered_once_per_connection(self, registry, fanout, admin, vendor):
        watcher = connect(registry, admin)
        registry.on_join_task(watcher, "t1")

        fanout.publish(EventDescriptor(kind=EventKind.TASK_UPDATED, payload={}, actor=vendor, task_id="t1"))
        assert received(watcher) == ["taskUpdated"]

    def test_customers_do_not_receive_task_events_unless_watching(self, registry, fanout, customer, vendor):
        idle = connect(registry, customer)
        fanout.publish(EventDescriptor(kind=EventKind.TASK_CREATED, payload={}, actor=vendor, task_id="t1"))
        assert received(idle) == []

        registry.on_join_task(idle, "t1")
        fanout.publish(EventDescriptor(kind=EventKind.TASK_UPDATED, payload={}, actor=vendor, task_id="t1"))
        assert received(idle) == ["taskUpdated"]

    def test_typing_excludes_originator(self, registry, fanout, customer, vendor):
        typist = connect(registry, customer)
        peer = connect(registry, vendor)
        for connection in (typist, peer):
            registry.on_join_task(connection, "t1")

        fanout.publish(
            EventDescriptor(kind=EventKind.TYPING, payload={"is_typing": True}, actor=customer, task_id="t1")
        )
        assert received(typist) == []
        assert received(peer) == ["userTyping"]

    def test_presence_reaches_everyone_but_originator(self, registry, fanout, admin, vendor, customer):
        source = connect(registry, customer)
        others = [connect(registry, admin), connect(registry, vendor)]

        descriptor = fanout.presence_event(source, PresenceStatus.AWAY)
        fanout.publish(descriptor)

        assert descriptor.payload["status"] == "away"
        assert descriptor.payload["user"]["id"] == "C1"
        assert received(source) == []
        assert all(received(other) == ["userPresenceUpdate"] for other in others)

    def test_full_queue_drops_without_raising(self, registry, fanout, admin, vendor):
        slow = connect(registry, admin, queue_maxsize=1)
        fast = connect(registry, Actor(id="A2", role=Role.ADMIN))

        for _ in range(3):
            fanout.publish(EventDescriptor(kind=EventKind.TASK_UPDATED, payload={}, actor=vendor, task_id="t1"))

        assert received(slow) == ["taskUpdated"]
        assert received(fast) == ["taskUpdated"] * 3

    def test_disconnected_connection_receives_nothing(self, registry, fanout, admin, vendor):
        gone = connect(registry, admin)
        registry.on_disconnect(gone)

        publications = fanout.publish(
            EventDescriptor(kind=EventKind.TASK_UPDATED, payload={}, actor=vendor, task_id="t1")
        )
        assert received(gone) == []
        assert [p.channel for p in publications] == ["role:admin", "role:vendor"]

    def test_disconnect_announces_offline(self, registry, fanout, admin, customer):
        watcher = connect(registry, admin)
        leaving = connect(registry, customer)

        registry.on_disconnect(leaving)

        assert received(watcher) == ["userPresenceUpdate"]

    def test_presence_event_requires_actor(self, fanout):
        assert fanout.presence_event(Connection(), PresenceStatus.ONLINE) is None
