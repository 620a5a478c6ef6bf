# ReQueue Dashboard - Real-Time Event Relay
#
# Pushes queue engine events to connected browser clients over /ws.
#
# Wire format (both directions) is a JSON object:
#     {"event": "<name>", "data": <payload>}
#
# Server -> client: connected, statsUpdate, error, and every engine event
#                   in ENGINE_EVENTS, relayed unmodified.
# Client -> server: getStats, subscribeQueue, unsubscribeQueue.
#
# Each client owns a bounded outbox drained by its own sender task. When a
# slow client's outbox is full the oldest pending message is dropped.

import asyncio
import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from uuid import uuid4

from fastapi import APIRouter, WebSocket
from fastapi.encoders import jsonable_encoder

from ..core import EventSeverity, EventType, get_audit_logger
from ..engine.client import ENGINE_EVENTS, EngineHandle

logger = logging.getLogger(__name__)

GREETING = "Connected to ReQueue Dashboard"


class ClientSession:
    """One connected real-time client."""

    def __init__(self, websocket: WebSocket, outbox_size: int = 256):
        self.session_id = uuid4().hex
        self.websocket = websocket
        self.subscriptions: Set[str] = set()
        self.outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue(maxsize=outbox_size)
        self.dropped = 0
        self._sender: Optional[asyncio.Task] = None

    def enqueue(self, event: str, data: Any = None) -> bool:
        """Queue a message; returns False if an older message was dropped."""
        message = {"event": event, "data": data}
        try:
            self.outbox.put_nowait(message)
            return True
        except asyncio.QueueFull:
            try:
                self.outbox.get_nowait()
            except asyncio.QueueEmpty:
                pass
            self.outbox.put_nowait(message)
            self.dropped += 1
            return False

    def __repr__(self) -> str:
        return f"ClientSession({self.session_id}, subscriptions={sorted(self.subscriptions)})"


class EventBroadcaster:
    """Registry of connected clients, keyed by session id.

    Mutations are guarded by a lock so sessions can come and go while a
    broadcast is iterating over a snapshot of the registry.
    """

    def __init__(self, outbox_size: int = 256):
        self._sessions: Dict[str, ClientSession] = {}
        self._lock = threading.Lock()
        self._outbox_size = outbox_size

    async def connect(self, websocket: WebSocket) -> ClientSession:
        await websocket.accept()
        session = ClientSession(websocket, outbox_size=self._outbox_size)
        with self._lock:
            self._sessions[session.session_id] = session
        session._sender = asyncio.create_task(self._pump(session))
        logger.info("Client connected: %s", session.session_id)
        get_audit_logger().log_event(
            event_type=EventType.CLIENT_CONNECTED,
            severity=EventSeverity.INFO,
            message="Dashboard client connected via WebSocket",
            details={"session_id": session.session_id},
        )
        return session

    def disconnect(self, session: ClientSession) -> None:
        with self._lock:
            removed = self._sessions.pop(session.session_id, None)
        sender = session._sender
        if sender is not None and sender is not asyncio.current_task():
            sender.cancel()
        if removed is None:
            return
        logger.info("Client disconnected: %s", session.session_id)
        get_audit_logger().log_event(
            event_type=EventType.CLIENT_DISCONNECTED,
            severity=EventSeverity.INFO,
            message="Dashboard client disconnected",
            details={"session_id": session.session_id, "dropped_messages": session.dropped},
        )

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get(self, session_id: str) -> Optional[ClientSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def broadcast(self, event: str, data: Any = None) -> int:
        """Queue ``event`` for every connected client.

        Must be called on the event loop thread. Returns the number of
        clients the message was queued for.
        """
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            if not session.enqueue(event, data):
                logger.warning(
                    "Outbox full for client %s, dropped oldest message (%d dropped so far)",
                    session.session_id, session.dropped,
                )
        return len(sessions)

    # -- Queue subscription groups ----------------------------------------

    def subscribe(self, session: ClientSession, queue_id: str) -> None:
        with self._lock:
            session.subscriptions.add(queue_id)
        logger.info("Client %s subscribed to queue %s", session.session_id, queue_id)

    def unsubscribe(self, session: ClientSession, queue_id: str) -> None:
        with self._lock:
            session.subscriptions.discard(queue_id)
        logger.info("Client %s unsubscribed from queue %s", session.session_id, queue_id)

    def group_members(self, queue_id: str) -> List[str]:
        """Session ids subscribed to ``queue_id``."""
        with self._lock:
            return [
                sid for sid, s in self._sessions.items() if queue_id in s.subscriptions
            ]

    async def _pump(self, session: ClientSession) -> None:
        """Drain one client's outbox onto its socket."""
        try:
            while True:
                message = await session.outbox.get()
                await session.websocket.send_json(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Dropping dead connection %s: %s", session.session_id, e)
            self.disconnect(session)


class EventRelay:
    """Forwards engine events to every connected client, unmodified.

    Engine callbacks may fire on foreign threads, so each one is handed to
    the event loop with ``call_soon_threadsafe``.
    """

    def __init__(self, engine: EngineHandle, broadcaster: EventBroadcaster):
        self.engine = engine
        self.broadcaster = broadcaster
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._started = False
        self._stopped = False
        self._handlers: List[Tuple[str, Callable[..., None]]] = []

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> int:
        """Subscribe to the engine's events (once). Returns events subscribed."""
        if self._started:
            return 0
        self._started = True
        self._loop = loop or asyncio.get_running_loop()

        subscribed = 0
        for event_name in ENGINE_EVENTS:
            handler = self._make_handler(event_name)
            if self.engine.subscribe(event_name, handler):
                self._handlers.append((event_name, handler))
                subscribed += 1
        if subscribed:
            logger.info("Relaying %d engine events to real-time clients", subscribed)
        else:
            logger.info("Engine exposes no event source, real-time relay inactive")
        return subscribed

    def stop(self) -> None:
        """Detach from the engine. Handlers the emitter cannot remove go inert."""
        self._stopped = True
        handlers, self._handlers = self._handlers, []
        for event_name, handler in handlers:
            if not self.engine.unsubscribe(event_name, handler):
                logger.debug("Engine cannot remove %s handler, left inert", event_name)

    def _make_handler(self, event_name: str):
        def handler(data: Any = None, *_args: Any) -> None:
            if self._stopped or self._loop is None:
                return
            payload = jsonable_encoder(data)
            try:
                self._loop.call_soon_threadsafe(self.broadcaster.broadcast, event_name, payload)
            except RuntimeError:
                # Loop already closed during shutdown
                logger.debug("Event loop closed, dropping %s", event_name)

        handler.__name__ = f"relay_{event_name}"
        return handler


# ---------------------------------------------------------------------------
# WebSocket endpoint
# ---------------------------------------------------------------------------

router = APIRouter(tags=["realtime"])


def _frame_text(frame: Dict[str, Any]) -> Optional[str]:
    """Text of a received frame; binary frames must be UTF-8."""
    if frame.get("text") is not None:
        return frame["text"]
    if frame.get("bytes") is not None:
        try:
            return frame["bytes"].decode("utf-8")
        except UnicodeDecodeError:
            return None
    return None


def _parse_message(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    try:
        message = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(message, dict) or not isinstance(message.get("event"), str):
        return None
    return message


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Real-time event stream for the dashboard UI."""
    services = websocket.app.state.services
    broadcaster: EventBroadcaster = services.broadcaster

    session = await broadcaster.connect(websocket)
    session.enqueue("connected", {"message": GREETING})
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break
            message = _parse_message(_frame_text(frame))
            if message is None:
                session.enqueue("error", {"message": "Invalid message"})
                continue

            event = message["event"]
            data = message.get("data")
            if event == "getStats":
                try:
                    stats = await services.aggregator.compute_system_stats()
                    session.enqueue("statsUpdate", stats)
                except Exception as e:
                    logger.warning("getStats failed for %s: %s", session.session_id, e)
                    session.enqueue("error", {"message": "Failed to get stats"})
            elif event == "subscribeQueue" and data is not None:
                broadcaster.subscribe(session, str(data))
            elif event == "unsubscribeQueue" and data is not None:
                broadcaster.unsubscribe(session, str(data))
            else:
                logger.debug("Ignoring unknown client event %r", event)
    finally:
        broadcaster.disconnect(session)
