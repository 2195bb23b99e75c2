"""Roster bookkeeping for a room channel.

The transport delivers full roster snapshots (key -> list of metas, one meta per
live connection). Departure is eventually consistent: a reconnecting device can
briefly vanish from a snapshot, so player names linger for a grace period
before they are dropped. The online count is never smoothed.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

ROLE_HOST = 'host'
ROLE_PLAYER = 'player'

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PresenceEntry:
    key: str
    role: str
    username: Optional[str] = None
    online_at: Optional[str] = None

    @classmethod
    def from_meta(cls, key: str, meta) -> 'PresenceEntry':
        meta = meta if isinstance(meta, dict) else {}
        role = meta.get('role') if meta.get('role') in (ROLE_HOST, ROLE_PLAYER) else ROLE_PLAYER
        username = meta.get('username')
        return cls(
            key=key,
            role=role,
            username=username.strip() or None if isinstance(username, str) else None,
            online_at=meta.get('online_at'),
        )

    def to_meta(self) -> Dict[str, Optional[str]]:
        meta = {'role': self.role, 'online_at': self.online_at}
        if self.username:
            meta['username'] = self.username
        return meta


class PresenceTracker:
    def __init__(self, grace_sec: float = 2.0, clock: Callable[[], float] = time.monotonic):
        self.grace_sec = grace_sec
        self._clock = clock
        self._roster: Dict[str, List[PresenceEntry]] = {}
        self._departed: Dict[str, tuple] = {}  # key -> (names, expires_at)

    @property
    def roster(self) -> Dict[str, List[PresenceEntry]]:
        return {k: list(v) for k, v in self._roster.items()}

    @property
    def online_count(self) -> int:
        return sum(len(entries) for entries in self._roster.values())

    def has_host(self) -> bool:
        return any(e.role == ROLE_HOST for entries in self._roster.values() for e in entries)

    def sync(self, roster: Mapping) -> None:
        """Replace the roster with a fresh snapshot from the transport."""
        fresh: Dict[str, List[PresenceEntry]] = {}
        for key, metas in (roster or {}).items():
            if not isinstance(metas, (list, tuple)):
                metas = [metas]
            entries = [PresenceEntry.from_meta(str(key), m) for m in metas]
            if entries:
                fresh[str(key)] = entries

        now = self._clock()
        for key, entries in self._roster.items():
            if key not in fresh:
                names = [e.username for e in entries if e.role == ROLE_PLAYER and e.username]
                if names and self.grace_sec > 0:
                    self._departed[key] = (names, now + self.grace_sec)
        for key in fresh:
            self._departed.pop(key, None)

        self._roster = fresh
        logger.debug(f"[presence-sync] keys={len(fresh)} online={self.online_count}")

    def player_names(self) -> List[str]:
        """Player display names in join order, including recently departed ones."""
        now = self._clock()
        for key in [k for k, (_, expires) in self._departed.items() if expires <= now]:
            self._departed.pop(key, None)

        players = [e for entries in self._roster.values() for e in entries if e.role == ROLE_PLAYER and e.username]
        players.sort(key=lambda e: e.online_at or '')
        names: List[str] = []
        for entry in players:
            if entry.username not in names:
                names.append(entry.username)
        for departed_names, _ in self._departed.values():
            for name in departed_names:
                if name not in names:
                    names.append(name)
        return names
