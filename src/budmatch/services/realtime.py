"""Realtime delivery over per-user channels.

Each connected user has a private channel keyed by their user id. A user may
hold several sessions (one per socket); ``send`` offers the event to all of
them. Every session owns a bounded FIFO queue drained by a single writer
task, so events to one channel arrive in the order they were sent.

Delivery is best effort and at most once. An event for a user with no open
session, or for a session whose queue is full, is dropped. The conversation
store remains the record of truth.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol
from uuid import UUID, uuid4

import structlog
from fastapi.encoders import jsonable_encoder

from ..domain.errors import Unavailable
from ..domain.models import Conversation, Listing, Message
from ..metrics import REALTIME_DELIVERED, REALTIME_DROPPED

logger = structlog.get_logger()


class Transport(Protocol):
    """The socket side of a session."""

    async def send_json(self, data: Any) -> None:
        ...

    async def close(self, code: int = 1000) -> None:
        ...


Handler = Callable[["Session", str, Any], Awaitable[None]]


def frame(event: str, payload: Any) -> Dict[str, Any]:
    return {"event": event, "data": jsonable_encoder(payload)}


class Session:
    """One connected socket belonging to a user."""

    def __init__(
        self,
        user_id: str,
        transport: Transport,
        queue_size: int = 100,
        send_timeout: float = 5.0,
        on_failure: Optional[Callable[["Session"], None]] = None
    ) -> None:
        self.id: UUID = uuid4()
        self.user_id = user_id
        self.transport = transport
        self.send_timeout = send_timeout
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._handlers: List[Handler] = []
        self._writer: Optional[asyncio.Task] = None
        self._on_failure = on_failure

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain())

    def offer(self, data: Dict[str, Any]) -> bool:
        """Queue a frame without waiting. Returns False if it was dropped."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(data)
            return True
        except asyncio.QueueFull:
            logger.warning(
                "realtime_queue_full",
                user_id=self.user_id,
                session_id=str(self.id),
                event_name=data.get("event")
            )
            return False

    async def _drain(self) -> None:
        while True:
            data = await self._queue.get()
            try:
                await asyncio.wait_for(self.transport.send_json(data), timeout=self.send_timeout)
                REALTIME_DELIVERED.inc()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                REALTIME_DROPPED.inc()
                logger.warning(
                    "realtime_write_failed",
                    user_id=self.user_id,
                    session_id=str(self.id),
                    event_name=data.get("event"),
                    error=str(e)
                )
                self.closed = True
                if self._on_failure is not None:
                    self._on_failure(self)
                while not self._queue.empty():
                    self._queue.get_nowait()
                    self._queue.task_done()
                return
            finally:
                self._queue.task_done()

    async def flush(self) -> None:
        """Wait until every queued frame has been written or dropped."""
        if not self.closed:
            await self._queue.join()

    def on_message(self, handler: Handler) -> None:
        self._handlers.append(handler)

    async def dispatch(self, event: str, data: Any) -> None:
        """Hand an inbound event to every registered handler."""
        for handler in self._handlers:
            try:
                await handler(self, event, data)
            except Exception as e:
                logger.error(
                    "realtime_handler_failed",
                    user_id=self.user_id,
                    event_name=event,
                    error=str(e)
                )
                self.offer(frame("error", {"event": event, "message": getattr(e, "message", str(e))}))

    async def close(self) -> None:
        self.closed = True
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None
        # Release anyone waiting in flush().
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()


class RealtimeHub:
    """Registry of per-user channels with an explicit start/stop lifecycle."""

    def __init__(self, queue_size: int = 100, send_timeout: float = 5.0) -> None:
        self.queue_size = queue_size
        self.send_timeout = send_timeout
        self._channels: Dict[str, Dict[UUID, Session]] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self._running = True
        logger.info("realtime_hub_started")

    async def stop(self) -> None:
        """Close every session and refuse new connections."""
        self._running = False
        sessions = [s for channel in self._channels.values() for s in channel.values()]
        self._channels.clear()
        for session in sessions:
            await session.close()
            try:
                await session.transport.close(code=1001)
            except Exception as e:
                logger.debug("realtime_close_failed", session_id=str(session.id), error=str(e))
        logger.info("realtime_hub_stopped", closed_sessions=len(sessions))

    async def connect(self, user_id: str, transport: Transport) -> Session:
        """Join ``user_id``'s private channel."""
        if not self._running:
            raise Unavailable("Realtime delivery is not running")
        session = Session(
            user_id,
            transport,
            queue_size=self.queue_size,
            send_timeout=self.send_timeout,
            on_failure=self._discard
        )
        self._channels.setdefault(user_id, {})[session.id] = session
        session.start()
        logger.info("realtime_session_joined", user_id=user_id, session_id=str(session.id))
        return session

    def _discard(self, session: Session) -> None:
        channel = self._channels.get(session.user_id)
        if channel is not None:
            channel.pop(session.id, None)
            if not channel:
                del self._channels[session.user_id]

    async def disconnect(self, session: Session) -> None:
        self._discard(session)
        await session.close()
        logger.info("realtime_session_left", user_id=session.user_id, session_id=str(session.id))

    def on_message(self, session: Session, handler: Handler) -> None:
        session.on_message(handler)

    def is_connected(self, user_id: str) -> bool:
        return bool(self._channels.get(user_id))

    def send(self, to_user_id: str, event: str, payload: Any) -> int:
        """Offer an event to every session of a user without waiting.

        Returns the number of sessions that accepted it; zero means dropped.
        """
        sessions = list(self._channels.get(to_user_id, {}).values())
        if not sessions:
            REALTIME_DROPPED.inc()
            logger.debug("realtime_target_offline", user_id=to_user_id, event_name=event)
            return 0

        data = frame(event, payload)
        accepted = 0
        for session in sessions:
            if session.offer(data):
                accepted += 1
            else:
                REALTIME_DROPPED.inc()
        return accepted


def notify_new_message(
    hub: RealtimeHub, conversation: Conversation, message: Message, echo_sender: bool = False
) -> None:
    """Push ``new-message`` to the receiver, and to the sender's other tabs if asked."""
    hub.send(conversation.other_participant(message.sender_id), "new-message", message)
    if echo_sender:
        hub.send(message.sender_id, "new-message", message)


def notify_new_chat(hub: RealtimeHub, conversation: Conversation, message: Message) -> None:
    hub.send(
        conversation.other_participant(message.sender_id),
        "new-chat",
        {"chat": conversation, "message": message}
    )


def notify_match(hub: RealtimeHub, listing: Listing, matched: Listing) -> None:
    """Tell both owners about a committed match, each from their own side."""
    hub.send(listing.owner_id, "new-match", {"listing": listing, "matchedListing": matched})
    if matched.owner_id != listing.owner_id:
        hub.send(matched.owner_id, "new-match", {"listing": matched, "matchedListing": listing})
