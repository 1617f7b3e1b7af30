"""WebSocket endpoint for realtime task updates.

Frames are JSON objects ``{"event": name, "data": {...}}`` in both directions.
Each connection has a reader loop (this endpoint) and a writer task draining the
connection's outbound queue, so slow clients never block publishers.
"""

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, ValidationError

from src.core.config import Constants
from src.core.errors import ErrorCode, TaskHubError, UnauthorizedError, ValidationFailedError, internal_error_response
from src.domain.events import (
    CONNECTED_EVENT,
    ERROR_EVENT,
    EventDescriptor,
    EventKind,
    PresenceStatus,
    RealtimeEvent,
    task_channel,
)
from src.domain.task import format_utc, utc_now
from src.domain.user import Actor
from src.interface.deps import bearer_token
from src.services import identity_service
from src.services.channel_registry import ChannelRegistry, Connection
from src.services.fanout import FanoutRouter
from src.services.task_service import TaskService


logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

# Acknowledgements for subscription requests
JOINED_EVENT = "joinedTask"
LEFT_EVENT = "leftTask"


class ClientFrame(BaseModel):
    event: str
    data: dict[str, Any] = Field(default_factory=dict)


class TaskRef(BaseModel):
    task_id: str = Field(..., min_length=1)


class TypingPayload(TaskRef):
    is_typing: bool = True


class PresencePayload(BaseModel):
    status: PresenceStatus


class NotificationPayload(BaseModel):
    target_user_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=Constants.COMMENT_MAX_LENGTH)
    type: str = Field(default="info", max_length=50)


class RealtimeSession:
    """Dispatches client frames for one authenticated connection."""

    def __init__(
        self,
        connection: Connection,
        *,
        registry: ChannelRegistry,
        fanout: FanoutRouter,
        task_service: TaskService,
    ) -> None:
        if connection.actor is None:
            msg = "Session requires an authenticated connection"
            raise ValueError(msg)
        self.connection = connection
        self.actor: Actor = connection.actor
        self.registry = registry
        self.fanout = fanout
        self.task_service = task_service

    def send(self, event: str, data: dict[str, Any]) -> None:
        self.connection.deliver(RealtimeEvent(event=event, data=data))

    def send_error(self, error: TaskHubError, source: str | None) -> None:
        self.send(ERROR_EVENT, {"code": error.code, "message": error.message, "source": source})

    async def handle(self, raw: Any) -> None:  # noqa: ANN401
        """Handle one client frame; failures are reported to the client as ``error`` frames."""
        source = raw.get("event") if isinstance(raw, dict) else None
        try:
            frame = ClientFrame.model_validate(raw)
            handler = self._handlers().get(frame.event)
            if handler is None:
                raise ValidationFailedError(f"Unknown event: {frame.event}")
            await handler(frame.data)
        except ValidationError as e:
            self.send_error(ValidationFailedError("Invalid event payload"), source)
            logger.debug("Invalid realtime frame", extra={"source": source, "error": str(e)})
        except TaskHubError as e:
            self.send_error(e, source)
        except Exception:
            logger.exception(
                "Realtime frame failed", extra={"source": source, "connection_id": self.connection.connection_id}
            )
            body = internal_error_response()
            self.send(ERROR_EVENT, {"code": body.code, "message": body.message, "source": source})

    def _handlers(self) -> dict[str, Any]:
        return {
            "joinTask": self.join_task,
            "leaveTask": self.leave_task,
            "typing": self.typing,
            "updatePresence": self.update_presence,
            "sendNotification": self.send_notification,
        }

    async def join_task(self, data: dict[str, Any]) -> None:
        ref = TaskRef.model_validate(data)
        # Only tasks the actor can read may be subscribed to
        await self.task_service.get_task(self.actor, ref.task_id)
        channel = self.registry.on_join_task(self.connection, ref.task_id)
        self.send(JOINED_EVENT, {"task_id": ref.task_id, "channel": channel})

    async def leave_task(self, data: dict[str, Any]) -> None:
        ref = TaskRef.model_validate(data)
        self.registry.on_leave_task(self.connection, ref.task_id)
        self.send(LEFT_EVENT, {"task_id": ref.task_id})

    async def typing(self, data: dict[str, Any]) -> None:
        payload = TypingPayload.model_validate(data)
        if task_channel(payload.task_id) not in self.registry.channels_of(self.connection):
            raise ValidationFailedError("Join the task before sending typing updates")
        self.fanout.publish(
            EventDescriptor(
                kind=EventKind.TYPING,
                actor=self.actor,
                task_id=payload.task_id,
                payload={"task_id": payload.task_id, "user": self.actor.summary(), "is_typing": payload.is_typing},
            )
        )

    async def update_presence(self, data: dict[str, Any]) -> None:
        payload = PresencePayload.model_validate(data)
        descriptor = self.fanout.presence_event(self.connection, payload.status)
        if descriptor is not None:
            self.fanout.publish(descriptor)

    async def send_notification(self, data: dict[str, Any]) -> None:
        payload = NotificationPayload.model_validate(data)
        self.fanout.publish(
            EventDescriptor(
                kind=EventKind.NOTIFICATION,
                actor=self.actor,
                target_user_id=payload.target_user_id,
                payload={
                    "type": payload.type,
                    "message": payload.message,
                    "from": self.actor.summary(),
                    "timestamp": format_utc(utc_now()),
                },
            )
        )


async def _drain(websocket: WebSocket, connection: Connection) -> None:
    """Writer task: forward queued events to the socket until it fails or is cancelled."""
    while True:
        event = await connection.queue.get()
        try:
            await websocket.send_json(event.model_dump())
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug(
                "Realtime writer stopped", extra={"connection_id": connection.connection_id, "error": str(e)}
            )
            return


def _frame_text(message: dict[str, Any]) -> str | None:
    """Text of a received frame; binary frames are accepted when they hold UTF-8."""
    if message.get("text") is not None:
        return message["text"]
    data = message.get("bytes")
    if data is None:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


@router.websocket("/ws")
async def realtime_endpoint(websocket: WebSocket, token: str | None = None) -> None:
    """Authenticate, enroll in channels, then dispatch client frames until disconnect."""
    app_state = websocket.app.state
    registry: ChannelRegistry = app_state.channel_registry

    try:
        actor = await identity_service.resolve(token or bearer_token(websocket.headers.get("authorization")))
    except UnauthorizedError as e:
        logger.info("Realtime connection rejected", extra={"code": ErrorCode.ERR_UNAUTHORIZED})
        await websocket.close(code=Constants.WS_CLOSE_UNAUTHORIZED, reason=e.message)
        return

    await websocket.accept()
    connection = Connection()
    registry.on_connect(connection, actor)
    session = RealtimeSession(
        connection, registry=registry, fanout=app_state.fanout, task_service=app_state.task_service
    )
    writer = asyncio.create_task(_drain(websocket, connection))

    session.send(
        CONNECTED_EVENT,
        {
            "message": "Connected to Task Management System",
            "user": actor.summary(),
            "connection_id": connection.connection_id,
        },
    )

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            text = _frame_text(message)
            if text is None:
                session.send_error(ValidationFailedError("Frames must be UTF-8 JSON"), None)
                continue
            try:
                raw = json.loads(text)
            except ValueError:
                session.send_error(ValidationFailedError("Frames must be JSON"), None)
                continue
            await session.handle(raw)
    except WebSocketDisconnect:
        logger.debug("Realtime client disconnected", extra={"connection_id": connection.connection_id})
    finally:
        registry.on_disconnect(connection)
        writer.cancel()
        try:
            await writer
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.debug(
                "Realtime writer failed", exc_info=True, extra={"connection_id": connection.connection_id}
            )
