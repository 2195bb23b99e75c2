"""Best-effort durable mirror of room state.

Adapters implement the underscored hooks; the public methods swallow and log
every failure so callers only ever see a degraded result (None / False / []).
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .state import RoomState, WinnerClaim

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallRecord:
    room_id: str
    username: str
    card_version: int
    pattern: Optional[str]
    called_at: float = field(default_factory=time.time)

    def to_dict(self):
        return {
            'room_id': self.room_id,
            'username': self.username,
            'card_version': self.card_version,
            'pattern': self.pattern,
            'called_at': self.called_at,
        }


class RoomPersistence:
    """Local-only persistence: nothing is stored, every read misses."""

    def fetch(self, room_id: str) -> Optional[RoomState]:
        try:
            return self._fetch(room_id)
        except Exception as exc:
            logger.warning(f"[persist-fetch-failed] room={room_id} error={exc}")
            return None

    def save(self, room_id: str, state: RoomState) -> bool:
        try:
            self._save(room_id, state)
            return True
        except Exception as exc:
            logger.warning(f"[persist-save-failed] room={room_id} error={exc}")
            return False

    def clear(self, room_id: str) -> bool:
        try:
            self._clear(room_id)
            return True
        except Exception as exc:
            logger.warning(f"[persist-clear-failed] room={room_id} error={exc}")
            return False

    def exists(self, room_id: str) -> bool:
        try:
            return bool(self._exists(room_id))
        except Exception as exc:
            logger.warning(f"[persist-exists-failed] room={room_id} error={exc}")
            return False

    def record_call(self, room_id: str, claim: WinnerClaim) -> bool:
        record = CallRecord(
            room_id=room_id,
            username=claim.username,
            card_version=claim.card_version,
            pattern=claim.pattern,
        )
        try:
            self._record_call(record)
            return True
        except Exception as exc:
            logger.warning(f"[persist-call-failed] room={room_id} error={exc}")
            return False

    def fetch_calls(self, room_id: str) -> List[CallRecord]:
        try:
            return list(self._fetch_calls(room_id))
        except Exception as exc:
            logger.warning(f"[persist-calls-failed] room={room_id} error={exc}")
            return []

    # ---- adapter hooks ----

    def _fetch(self, room_id):
        return None

    def _save(self, room_id, state):
        pass

    def _clear(self, room_id):
        pass

    def _exists(self, room_id):
        return False

    def _record_call(self, record):
        pass

    def _fetch_calls(self, room_id):
        return []


class MemoryPersistence(RoomPersistence):
    """Process-local store, handy for tests and single-process games."""

    def __init__(self):
        self.rooms: Dict[str, dict] = {}
        self.calls: List[CallRecord] = []

    def _fetch(self, room_id):
        data = self.rooms.get(room_id)
        return RoomState.from_dict(data) if data is not None else None

    def _save(self, room_id, state):
        self.rooms[room_id] = state.to_dict()

    def _clear(self, room_id):
        self.rooms.pop(room_id, None)

    def _exists(self, room_id):
        return room_id in self.rooms

    def _record_call(self, record):
        self.calls.append(record)

    def _fetch_calls(self, room_id):
        return sorted((c for c in self.calls if c.room_id == room_id), key=lambda c: c.called_at)
