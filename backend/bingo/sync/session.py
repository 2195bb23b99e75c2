"""Reconciliation engine shared by host and player sessions.

Each client walks connecting -> subscribed -> converged. The host owns the
only writable copy of the room document; players replace their replica
wholesale with every `state` they receive.
"""

import logging
import threading
import time
from collections import defaultdict
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from .channel import ChannelSession
from .errors import MessageError
from .local_store import KeyValueStore, MemoryStore, ensure_client_id, get_username
from .messages import (
    EVENTS,
    ClaimBingoMessage,
    Message,
    RequestStateMessage,
    StateMessage,
    decode,
    encode,
)
from .presence import PresenceTracker
from .state import RoomState, utc_now_iso

logger = logging.getLogger(__name__)

PHASE_IDLE = 'idle'
PHASE_CONNECTING = 'connecting'
PHASE_SUBSCRIBED = 'subscribed'
PHASE_CONVERGED = 'converged'


class RoomSession:
    role: str = ''

    def __init__(self, transport, room_id: str, store: Optional[KeyValueStore] = None,
                 client_id: Optional[str] = None, username: Optional[str] = None,
                 presence_grace_sec: float = 2.0, clock: Callable[[], float] = time.monotonic):
        self.room_id = room_id
        self.store = store if store is not None else MemoryStore()
        self.client_id = client_id or ensure_client_id(self.store)
        self.username = username or get_username(self.store)
        self.presence = PresenceTracker(grace_sec=presence_grace_sec, clock=clock)
        self.phase = PHASE_IDLE
        self._state = RoomState()
        self._lock = threading.RLock()
        self._closed = threading.Event()
        self._listeners: Dict[str, List[Callable[..., None]]] = defaultdict(list)

        self.channel = ChannelSession(transport, room_id, self.client_id)
        for event in EVENTS:
            self.channel.on(event, partial(self._receive, event))
        self.channel.on_presence(self._on_presence)
        self.channel.on_subscribed(self._handle_subscribed)
        self.channel.on_disconnected(self._handle_disconnected)

    @classmethod
    def from_config(cls, transport, room_id: str, config, **kwargs):
        """Build a session using the timing knobs of a Flask config mapping."""
        kwargs.setdefault('presence_grace_sec', float(config.get('PRESENCE_GRACE_SEC', 2)))
        return cls(transport, room_id, **kwargs)

    @property
    def state(self) -> RoomState:
        return self._state

    @property
    def is_converged(self) -> bool:
        return self.phase == PHASE_CONVERGED

    def add_listener(self, kind: str, callback: Callable[..., None]) -> None:
        """Local notifications: 'state', 'presence', plus role-specific kinds."""
        self._listeners[kind].append(callback)

    def _notify(self, kind: str, *args: Any) -> None:
        for callback in list(self._listeners.get(kind, ())):
            try:
                callback(*args)
            except Exception:
                logger.exception(f"[listener-failed] room={self.room_id} kind={kind}")

    # ---- lifecycle ----

    def open(self) -> 'RoomSession':
        self._closed.clear()
        self._before_open()
        self.phase = PHASE_CONNECTING
        self.channel.track(self.presence_meta())
        self.channel.open()
        return self

    def close(self) -> None:
        self._closed.set()
        self.channel.close()
        self.phase = PHASE_IDLE

    def presence_meta(self) -> Dict[str, Optional[str]]:
        meta = {'role': self.role, 'online_at': utc_now_iso()}
        if self.username:
            meta['username'] = self.username
        return meta

    def _before_open(self) -> None:
        pass

    def _handle_subscribed(self) -> None:
        self.phase = PHASE_SUBSCRIBED
        logger.info(f"[subscribed] room={self.room_id} role={self.role} client={self.client_id}")
        self._on_subscribed()

    def _on_subscribed(self) -> None:
        raise NotImplementedError

    def _handle_disconnected(self) -> None:
        if self.phase != PHASE_IDLE:
            self.phase = PHASE_CONNECTING

    # ---- inbound ----

    def _send(self, message: Message) -> bool:
        event, payload = encode(message)
        return self.channel.send(event, payload)

    def _receive(self, event: str, payload: Any) -> None:
        try:
            message = decode(event, payload)
        except MessageError as exc:
            logger.warning(f"[message-dropped] room={self.room_id} event={event} error={exc}")
            return
        self._dispatch(message)

    def _dispatch(self, message: Message) -> None:
        if isinstance(message, StateMessage):
            self._on_state(message)
        elif isinstance(message, RequestStateMessage):
            self._on_request_state(message)
        elif isinstance(message, ClaimBingoMessage):
            self._on_claim(message)
        else:
            raise TypeError(f"unhandled message {message!r}")

    def _on_state(self, message: StateMessage) -> None:
        pass

    def _on_request_state(self, message: RequestStateMessage) -> None:
        pass

    def _on_claim(self, message: ClaimBingoMessage) -> None:
        pass

    def _on_presence(self, roster: dict) -> None:
        self.presence.sync(roster)
        self._notify('presence', self.presence)
