"""One subscription to a room's broadcast + presence channel."""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from .messages import channel_name

logger = logging.getLogger(__name__)

STATUS_CLOSED = 'closed'
STATUS_CONNECTING = 'connecting'
STATUS_SUBSCRIBED = 'subscribed'
STATUS_DISCONNECTED = 'disconnected'


class ChannelSession:
    """Send/receive named events on `bingo:room-<room_id>`.

    Sends issued before the transport confirms the subscription are dropped.
    A client never receives its own broadcasts. Every (re)subscription fires
    the subscribed handlers again, so a reconnect behaves like a fresh join.
    """

    def __init__(self, transport, room_id: str, identity: str):
        self.transport = transport
        self.room_id = room_id
        self.identity = identity
        self.name = channel_name(room_id)
        self.status = STATUS_CLOSED
        self._handlers: Dict[str, List[Callable[[Any], None]]] = defaultdict(list)
        self._presence_handlers: List[Callable[[dict], None]] = []
        self._subscribed_handlers: List[Callable[[], None]] = []
        self._disconnected_handlers: List[Callable[[], None]] = []
        self._meta: Optional[dict] = None

    @property
    def is_subscribed(self) -> bool:
        return self.status == STATUS_SUBSCRIBED

    def on(self, event: str, handler: Callable[[Any], None]) -> 'ChannelSession':
        self._handlers[event].append(handler)
        return self

    def on_presence(self, handler: Callable[[dict], None]) -> 'ChannelSession':
        self._presence_handlers.append(handler)
        return self

    def on_subscribed(self, handler: Callable[[], None]) -> 'ChannelSession':
        self._subscribed_handlers.append(handler)
        return self

    def on_disconnected(self, handler: Callable[[], None]) -> 'ChannelSession':
        self._disconnected_handlers.append(handler)
        return self

    def open(self) -> 'ChannelSession':
        if self.status != STATUS_CLOSED:
            return self
        self.status = STATUS_CONNECTING
        self.transport.join(self.name, self.identity, self)
        return self

    def track(self, meta: dict) -> None:
        """Publish this connection's presence meta; re-sent on every resubscribe."""
        self._meta = dict(meta)
        if self.is_subscribed:
            self.transport.track(self.name, self.identity, self._meta)

    def send(self, event: str, payload: Any) -> bool:
        if not self.is_subscribed:
            logger.debug(f"[channel-drop] channel={self.name} event={event} status={self.status}")
            return False
        try:
            self.transport.send(self.name, event, payload)
        except Exception as exc:
            logger.warning(f"[channel-send-failed] channel={self.name} event={event} error={exc}")
            return False
        return True

    def close(self) -> None:
        if self.status == STATUS_CLOSED:
            return
        self.status = STATUS_CLOSED
        try:
            self.transport.leave(self.name)
        except Exception as exc:
            logger.warning(f"[channel-leave-failed] channel={self.name} error={exc}")

    # ---- transport callbacks ----

    def handle_status(self, status: str) -> None:
        if self.status == STATUS_CLOSED:
            return
        if status == STATUS_SUBSCRIBED:
            self.status = STATUS_SUBSCRIBED
            for handler in list(self._subscribed_handlers):
                handler()
            if self._meta is not None and self.is_subscribed:
                self.transport.track(self.name, self.identity, self._meta)
        else:
            logger.info(f"[channel-status] channel={self.name} status={status}")
            self.status = STATUS_CONNECTING
            for handler in list(self._disconnected_handlers):
                handler()

    def handle_broadcast(self, event: str, payload: Any) -> None:
        if self.status == STATUS_CLOSED:
            return
        for handler in list(self._handlers.get(event, ())):
            handler(payload)

    def handle_presence(self, roster: dict) -> None:
        if self.status == STATUS_CLOSED:
            return
        for handler in list(self._presence_handlers):
            handler(roster)
