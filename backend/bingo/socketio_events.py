from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from bingo import socketio
from typing import Dict, Any
import threading


def handle_connect():
    emit('connected', {'message': 'Connected to relay'})


def handle_disconnect(reason=None):
    # Dropping the socket removes it from every channel it joined
    sid = _get_sid()
    with _lock:
        channels = list(_sid_channels.pop(sid, {}).keys())
        for channel in channels:
            _untrack(channel, sid)
    for channel in channels:
        _log(f"[relay-disconnect] channel={channel} sid={sid}")
        _emit_presence(channel)


def handle_join_channel(data):
    channel = (data or {}).get('channel')
    key = (data or {}).get('key')
    if not channel or not key:
        emit('error', {'message': 'channel and key are required'})
        return
    join_room(channel)
    with _lock:
        _sid_channels.setdefault(_get_sid(), {})[channel] = str(key)
    _log(f"[relay-join] channel={channel} key={key}")
    emit('subscribed', {'channel': channel})


def handle_track(data):
    channel = (data or {}).get('channel')
    meta = (data or {}).get('meta')
    sid = _get_sid()
    key = _joined_key(sid, channel)
    if key is None:
        emit('error', {'message': 'join the channel before tracking presence'})
        return
    if not isinstance(meta, dict):
        meta = {}
    entry = {
        'role': meta.get('role') or 'player',
        'online_at': meta.get('online_at'),
        'presence_ref': sid,
    }
    if meta.get('username'):
        entry['username'] = str(meta['username'])[:64]
    with _lock:
        _rosters.setdefault(channel, {}).setdefault(key, {})[sid] = entry
    _emit_presence(channel)


def handle_broadcast(data):
    channel = (data or {}).get('channel')
    event = (data or {}).get('event')
    if not event or _joined_key(_get_sid(), channel) is None:
        # Unsubscribed senders are dropped; clients recover through join-sync
        emit('error', {'message': 'not subscribed to channel'})
        return
    emit(
        'broadcast',
        {'channel': channel, 'event': event, 'payload': (data or {}).get('payload')},
        to=channel,
        include_self=False,
    )


def handle_leave_channel(data):
    channel = (data or {}).get('channel')
    if not channel:
        emit('error', {'message': 'channel is required'})
        return
    sid = _get_sid()
    leave_room(channel)
    with _lock:
        _sid_channels.get(sid, {}).pop(channel, None)
        _untrack(channel, sid)
    emit('left', {'channel': channel})
    _emit_presence(channel)


def handle_ping(data):
    emit('pong', data or {})

# ---- Channel membership and presence ----

_lock = threading.RLock()
_sid_channels: Dict[str, Dict[str, str]] = {}  # sid -> {channel: presence key}
_rosters: Dict[str, Dict[str, Dict[str, Any]]] = {}  # channel -> key -> sid -> meta


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _log(message: str) -> None:
    try:
        current_app.logger.info(message)
    except Exception:
        pass


def _joined_key(sid: str, channel):
    if not channel:
        return None
    with _lock:
        return _sid_channels.get(sid, {}).get(channel)


def _untrack(channel: str, sid: str) -> None:
    keys = _rosters.get(channel, {})
    for key in list(keys):
        keys[key].pop(sid, None)
        if not keys[key]:
            del keys[key]
    if not keys:
        _rosters.pop(channel, None)


def roster_for(channel: str) -> Dict[str, list]:
    with _lock:
        return {key: list(conns.values()) for key, conns in _rosters.get(channel, {}).items()}


def _emit_presence(channel: str) -> None:
    namespace = current_app.config.get('SOCKETIO_NAMESPACE', '/ws')
    socketio.emit('presence_sync', {'channel': channel, 'roster': roster_for(channel)}, to=channel, namespace=namespace)


def reset_relay_state() -> None:
    with _lock:
        _sid_channels.clear()
        _rosters.clear()


def register_socketio_handlers(namespace: str = '/ws') -> None:
    """Register the broadcast + presence relay handlers on `namespace`."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_event('join_channel', handle_join_channel, namespace=namespace)
    socketio.on_event('track', handle_track, namespace=namespace)
    socketio.on_event('broadcast', handle_broadcast, namespace=namespace)
    socketio.on_event('leave_channel', handle_leave_channel, namespace=namespace)
    socketio.on_event('ping', handle_ping, namespace=namespace)
