"""Unit tests for realtime frame dispatch and the per-connection writer."""

import asyncio

import pytest

from src.domain.events import RealtimeEvent
from src.interface.realtime import RealtimeSession, _drain, _frame_text
from src.services.channel_registry import Connection


class ClosedSocket:
    """Socket whose sends fail the way a dropped client does under uvicorn."""

    def __init__(self):
        self.attempts = 0

    async def send_json(self, data):
        self.attempts += 1
        raise OSError("client disconnected")


class BrokenTaskService:
    async def get_task(self, actor, task_id):
        raise RuntimeError("store unavailable")


@pytest.fixture
def session(registry, fanout, vendor):
    connection = Connection()
    registry.on_connect(connection, vendor)
    return RealtimeSession(connection, registry=registry, fanout=fanout, task_service=BrokenTaskService())


def drain(connection: Connection) -> list[RealtimeEvent]:
    events = []
    while not connection.queue.empty():
        events.append(connection.queue.get_nowait())
    return events


@pytest.mark.unit
class TestFrameText:
    def test_text_frame(self):
        assert _frame_text({"type": "websocket.receive", "text": '{"event": "x"}'}) == '{"event": "x"}'

    def test_utf8_binary_frame(self):
        assert _frame_text({"type": "websocket.receive", "bytes": '{"msg": "héllo"}'.encode()}) == '{"msg": "héllo"}'

    def test_undecodable_or_empty_frame(self):
        assert _frame_text({"type": "websocket.receive", "bytes": b"\xff\xfe"}) is None
        assert _frame_text({"type": "websocket.receive"}) is None


@pytest.mark.unit
class TestSessionFailures:
    async def test_unexpected_error_becomes_internal_error_frame(self, session):
        await session.handle({"event": "joinTask", "data": {"task_id": "t1"}})

        events = drain(session.connection)
        assert [event.model_dump() for event in events] == [
            {
                "event": "error",
                "data": {"code": "ERR_INTERNAL", "message": "An unexpected error occurred.", "source": "joinTask"},
            }
        ]

    async def test_session_keeps_handling_after_failure(self, session):
        await session.handle({"event": "joinTask", "data": {"task_id": "t1"}})
        await session.handle({"event": "leaveTask", "data": {"task_id": "t1"}})

        assert [event.event for event in drain(session.connection)] == ["error", "leftTask"]


@pytest.mark.unit
class TestWriter:
    async def test_writer_stops_when_socket_send_fails(self):
        connection = Connection()
        connection.deliver(RealtimeEvent(event="taskCreated", data={}))
        socket = ClosedSocket()

        await asyncio.wait_for(_drain(socket, connection), timeout=1)

        assert socket.attempts == 1
