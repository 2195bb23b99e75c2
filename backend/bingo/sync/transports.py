"""Channel transports: an in-process hub and a Socket.IO client for the relay server."""

import itertools
import logging
import threading
from typing import Dict, Optional

import socketio

from .channel import STATUS_DISCONNECTED, STATUS_SUBSCRIBED

logger = logging.getLogger(__name__)


class LocalHub:
    """In-process broadcast + presence relay with synchronous delivery."""

    def __init__(self):
        self._lock = threading.RLock()
        self._members: Dict[str, Dict[int, 'LocalTransport']] = {}
        self._ids = itertools.count(1)

    def connect(self) -> 'LocalTransport':
        return LocalTransport(self, next(self._ids))

    def roster(self, channel: str) -> Dict[str, list]:
        with self._lock:
            members = list(self._members.get(channel, {}).values())
        roster: Dict[str, list] = {}
        for member in members:
            meta = member.metas.get(channel)
            if meta is None:
                continue
            roster.setdefault(member.keys[channel], []).append(dict(meta, presence_ref=member.conn_id))
        return roster

    def _add(self, channel, member):
        with self._lock:
            self._members.setdefault(channel, {})[member.conn_id] = member

    def _remove(self, channel, member) -> bool:
        with self._lock:
            members = self._members.get(channel, {})
            removed = members.pop(member.conn_id, None) is not None
            if not members:
                self._members.pop(channel, None)
        return removed

    def _peers(self, channel, exclude=None):
        with self._lock:
            return [m for cid, m in self._members.get(channel, {}).items() if cid != exclude]

    def _sync_presence(self, channel):
        roster = self.roster(channel)
        for member in self._peers(channel):
            member.deliver_presence(channel, roster)

    def _broadcast(self, channel, sender, event, payload):
        for member in self._peers(channel, exclude=sender.conn_id):
            member.deliver(channel, event, payload)


class LocalTransport:
    """One client connection to a LocalHub."""

    def __init__(self, hub: LocalHub, conn_id: int):
        self.hub = hub
        self.conn_id = conn_id
        self.online = True
        self.listeners: Dict[str, object] = {}
        self.keys: Dict[str, str] = {}
        self.metas: Dict[str, dict] = {}

    def join(self, channel, key, listener):
        self.listeners[channel] = listener
        self.keys[channel] = key
        if self.online:
            self.hub._add(channel, self)
            listener.handle_status(STATUS_SUBSCRIBED)

    def track(self, channel, key, meta):
        if not self.online or channel not in self.listeners:
            return
        self.metas[channel] = dict(meta)
        self.hub._sync_presence(channel)

    def send(self, channel, event, payload):
        if not self.online or channel not in self.listeners:
            return
        self.hub._broadcast(channel, self, event, payload)

    def leave(self, channel):
        self.listeners.pop(channel, None)
        self.keys.pop(channel, None)
        self.metas.pop(channel, None)
        if self.hub._remove(channel, self):
            self.hub._sync_presence(channel)

    def deliver(self, channel, event, payload):
        listener = self.listeners.get(channel)
        if listener is not None and self.online:
            listener.handle_broadcast(event, payload)

    def deliver_presence(self, channel, roster):
        listener = self.listeners.get(channel)
        if listener is not None and self.online:
            listener.handle_presence(roster)

    # ---- connectivity simulation ----

    def drop(self):
        """Lose the connection: leave every channel without telling the listeners first."""
        self.online = False
        for channel in list(self.listeners):
            self.metas.pop(channel, None)
            if self.hub._remove(channel, self):
                self.hub._sync_presence(channel)
        for listener in list(self.listeners.values()):
            listener.handle_status(STATUS_DISCONNECTED)

    def restore(self):
        self.online = True
        for channel, listener in list(self.listeners.items()):
            self.hub._add(channel, self)
            listener.handle_status(STATUS_SUBSCRIBED)


class SocketIOTransport:
    """Client connection to the Flask-SocketIO relay (see bingo.socketio_events)."""

    def __init__(self, url: str, namespace: str = '/ws', client: Optional[socketio.Client] = None):
        self.url = url
        self.namespace = namespace
        self.client = client or socketio.Client(reconnection=True)
        self._lock = threading.Lock()
        self._channels: Dict[str, tuple] = {}  # channel -> (key, listener)
        self.client.on('connect', self._on_connect, namespace=namespace)
        self.client.on('disconnect', self._on_disconnect, namespace=namespace)
        self.client.on('subscribed', self._on_subscribed, namespace=namespace)
        self.client.on('broadcast', self._on_broadcast, namespace=namespace)
        self.client.on('presence_sync', self._on_presence, namespace=namespace)
        self.client.on('error', self._on_error, namespace=namespace)

    def _emit(self, event, data):
        self.client.emit(event, data, namespace=self.namespace)

    def join(self, channel, key, listener):
        with self._lock:
            self._channels[channel] = (key, listener)
        if self.client.connected:
            self._emit('join_channel', {'channel': channel, 'key': key})
        else:
            # the connect handler joins every registered channel
            self.client.connect(self.url, namespaces=[self.namespace])

    def track(self, channel, key, meta):
        self._emit('track', {'channel': channel, 'key': key, 'meta': meta})

    def send(self, channel, event, payload):
        if not self.client.connected:
            return
        self._emit('broadcast', {'channel': channel, 'event': event, 'payload': payload})

    def leave(self, channel):
        with self._lock:
            self._channels.pop(channel, None)
            remaining = bool(self._channels)
        if self.client.connected:
            self._emit('leave_channel', {'channel': channel})
            if not remaining:
                self.client.disconnect()

    def _listener(self, data):
        channel = (data or {}).get('channel')
        with self._lock:
            entry = self._channels.get(channel)
        return entry[1] if entry else None

    def _on_connect(self):
        with self._lock:
            channels = list(self._channels.items())
        for channel, (key, _) in channels:
            self._emit('join_channel', {'channel': channel, 'key': key})

    def _on_disconnect(self, *args):
        with self._lock:
            listeners = [listener for _, listener in self._channels.values()]
        for listener in listeners:
            listener.handle_status(STATUS_DISCONNECTED)

    def _on_subscribed(self, data):
        listener = self._listener(data)
        if listener is not None:
            listener.handle_status(STATUS_SUBSCRIBED)

    def _on_broadcast(self, data):
        listener = self._listener(data)
        if listener is not None:
            listener.handle_broadcast(data.get('event'), data.get('payload'))

    def _on_presence(self, data):
        listener = self._listener(data)
        if listener is not None:
            listener.handle_presence(data.get('roster') or {})

    def _on_error(self, data):
        logger.warning(f"[relay-error] {data}")
