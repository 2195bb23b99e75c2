"""Device-local key/value storage and the keys the room protocol keeps there."""

import json
import logging
import os
import threading
import uuid
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

CLIENT_ID_KEY = 'bingo_client_id'
USERNAME_KEY = 'bingo_username'


def room_cache_key(room_id: str) -> str:
    return f"game:{room_id}"


def punches_key(room_id: str, client_id: str, card_version: int) -> str:
    return f"punched:{room_id}:{client_id}:{card_version}"


def claimed_key(room_id: str, client_id: str, card_version: int) -> str:
    return f"claimed:{room_id}:{client_id}:{card_version}"


def reset_seen_key(room_id: str, client_id: str) -> str:
    return f"reset_seen:{room_id}:{client_id}"


def card_version_key(room_id: str, client_id: str) -> str:
    return f"card_version:{room_id}:{client_id}"


def announced_key(room_id: str) -> str:
    return f"announced:{room_id}"


class KeyValueStore:
    """Minimal string store: get / set / delete by composite key."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key):
        return self._data.get(key)

    def set(self, key, value):
        self._data[key] = value

    def delete(self, key):
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """Whole store kept in one JSON file, rewritten on every change."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        self._data = self._read()

    def _read(self) -> Dict[str, str]:
        try:
            with open(self.path, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning(f"[store-corrupt] path={self.path} error={exc}; starting empty")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        tmp = f"{self.path}.tmp"
        try:
            with open(tmp, 'w', encoding='utf-8') as fh:
                json.dump(self._data, fh)
            os.replace(tmp, self.path)
        except OSError as exc:
            logger.warning(f"[store-write-failed] path={self.path} error={exc}")

    def get(self, key):
        with self._lock:
            return self._data.get(key)

    def set(self, key, value):
        with self._lock:
            self._data[key] = value
            self._flush()

    def delete(self, key):
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()


def load_json(store: KeyValueStore, key: str, default: Any = None,
              validate: Optional[Callable[[Any], bool]] = None) -> Any:
    """Decode a stored JSON value; corrupt or unexpected content yields `default`."""
    raw = store.get(key)
    if raw is None:
        return default
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning(f"[store-malformed] key={key}; using default")
        return default
    if validate is not None and not validate(value):
        logger.warning(f"[store-unexpected] key={key}; using default")
        return default
    return value


def save_json(store: KeyValueStore, key: str, value: Any) -> None:
    store.set(key, json.dumps(value))


def ensure_client_id(store: KeyValueStore) -> str:
    """Stable per-device identity, created on first use."""
    existing = store.get(CLIENT_ID_KEY)
    if existing:
        return existing
    client_id = str(uuid.uuid4())
    store.set(CLIENT_ID_KEY, client_id)
    return client_id


def get_username(store: KeyValueStore) -> Optional[str]:
    return store.get(USERNAME_KEY) or None


def set_username(store: KeyValueStore, username: str) -> None:
    store.set(USERNAME_KEY, username.strip())
