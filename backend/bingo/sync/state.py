"""Value types for the replicated room document.

`RoomState` is immutable: the host produces a new snapshot for every mutation
and broadcasts it whole; replicas swap their snapshot, they never merge fields.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from .cards import MAX_BALL
from .errors import MessageError
from .patterns import CELL_COUNT, normalize_custom

STATUS_PENDING = 'pending'
STATUS_APPROVED = 'approved'
STATUS_REJECTED = 'rejected'
CLAIM_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _optional_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if not _is_int(value):
        raise MessageError(f"{key} must be an integer")
    return value


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MessageError(f"{key} must be a string")
    return value


def _int_list(data: Dict[str, Any], key: str) -> Tuple[int, ...]:
    value = data.get(key)
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)) or not all(_is_int(v) for v in value):
        raise MessageError(f"{key} must be a list of integers")
    return tuple(value)


@dataclass(frozen=True)
class WinnerClaim:
    username: str
    client_id: str
    card_version: int
    ball_number: Optional[int]
    pattern: Optional[str]
    card_numbers: Tuple[Optional[int], ...]
    punched_indexes: Tuple[int, ...]
    custom_pattern: Optional[Tuple[int, ...]] = None
    claimed_at: str = field(default_factory=utc_now_iso)
    id: Optional[str] = None
    status: str = STATUS_PENDING

    @property
    def fence_key(self) -> Tuple[str, int]:
        return (self.client_id, self.card_version)

    def to_dict(self, include_identity: bool = True) -> Dict[str, Any]:
        data = {
            'username': self.username,
            'clientId': self.client_id,
            'cardVersion': self.card_version,
            'claimedAt': self.claimed_at,
            'ballNumber': self.ball_number,
            'pattern': self.pattern,
            'customPattern': list(self.custom_pattern) if self.custom_pattern is not None else None,
            'cardNumbers': list(self.card_numbers),
            'punchedIndexes': list(self.punched_indexes),
        }
        if include_identity:
            data['id'] = self.id
            data['status'] = self.status
        return data

    @classmethod
    def from_dict(cls, data: Any) -> 'WinnerClaim':
        if not isinstance(data, dict):
            raise MessageError('claim must be an object')
        client_id = data.get('clientId')
        if not isinstance(client_id, str) or not client_id:
            raise MessageError('clientId is required')
        card_version = data.get('cardVersion')
        if not _is_int(card_version):
            raise MessageError('cardVersion must be an integer')

        cells = data.get('cardNumbers')
        if not isinstance(cells, (list, tuple)) or len(cells) != CELL_COUNT:
            raise MessageError(f"cardNumbers must hold {CELL_COUNT} cells")
        if not all(c is None or _is_int(c) for c in cells):
            raise MessageError('cardNumbers must be integers or null')

        punched = _int_list(data, 'punchedIndexes')
        if any(not 0 <= i < CELL_COUNT for i in punched):
            raise MessageError('punchedIndexes out of range')

        status = data.get('status') or STATUS_PENDING
        if status not in CLAIM_STATUSES:
            raise MessageError(f"unknown claim status {status!r}")

        custom = data.get('customPattern')
        return cls(
            id=_optional_str(data, 'id'),
            username=str(data.get('username') or ''),
            client_id=client_id,
            card_version=card_version,
            claimed_at=_optional_str(data, 'claimedAt') or utc_now_iso(),
            ball_number=_optional_int(data, 'ballNumber'),
            pattern=_optional_str(data, 'pattern'),
            custom_pattern=tuple(normalize_custom(custom)) if custom is not None else None,
            status=status,
            card_numbers=tuple(cells),
            punched_indexes=tuple(sorted(set(punched))),
        )


@dataclass(frozen=True)
class RoomState:
    drawn_balls: Tuple[int, ...] = ()
    current_ball: Optional[int] = None
    pattern: Optional[str] = None
    custom_pattern: Tuple[int, ...] = ()
    winners: Tuple[WinnerClaim, ...] = ()
    is_drawing: bool = False
    reset_count: int = 0

    @property
    def is_complete(self) -> bool:
        return len(self.drawn_balls) >= MAX_BALL

    def find_claim(self, client_id: str, card_version: int) -> Optional[WinnerClaim]:
        for claim in self.winners:
            if claim.fence_key == (client_id, card_version):
                return claim
        return None

    def find_claim_by_id(self, claim_id: str) -> Optional[WinnerClaim]:
        for claim in self.winners:
            if claim.id == claim_id:
                return claim
        return None

    # ---- snapshot transitions (host only) ----

    def drawing(self) -> 'RoomState':
        return replace(self, is_drawing=True)

    def with_ball(self, number: int) -> 'RoomState':
        return replace(self, drawn_balls=self.drawn_balls + (number,), current_ball=number, is_drawing=False)

    def with_pattern(self, pattern: str, custom_pattern=None) -> 'RoomState':
        return replace(self, pattern=pattern, custom_pattern=tuple(normalize_custom(custom_pattern)))

    def with_winner(self, claim: WinnerClaim) -> 'RoomState':
        return replace(self, winners=self.winners + (claim,))

    def with_claim_status(self, claim_id: str, status: str) -> 'RoomState':
        winners = tuple(replace(c, status=status) if c.id == claim_id else c for c in self.winners)
        return replace(self, winners=winners)

    def reset(self) -> 'RoomState':
        return RoomState(
            pattern=self.pattern,
            custom_pattern=self.custom_pattern,
            reset_count=self.reset_count + 1,
        )

    # ---- wire format ----

    def to_dict(self) -> Dict[str, Any]:
        return {
            'drawnBalls': list(self.drawn_balls),
            'currentBall': self.current_ball,
            'pattern': self.pattern,
            'customPattern': list(self.custom_pattern),
            'winners': [w.to_dict() for w in self.winners],
            'isDrawing': self.is_drawing,
            'resetCount': self.reset_count,
        }

    @classmethod
    def from_dict(cls, data: Any) -> 'RoomState':
        if not isinstance(data, dict):
            raise MessageError('state must be an object')
        drawn = _int_list(data, 'drawnBalls')
        if len(drawn) > MAX_BALL or len(set(drawn)) != len(drawn):
            raise MessageError('drawnBalls must be distinct and at most 75')
        if any(not 1 <= n <= MAX_BALL for n in drawn):
            raise MessageError('drawnBalls out of range')
        reset_count = data.get('resetCount') or 0
        if not _is_int(reset_count) or reset_count < 0:
            raise MessageError('resetCount must be a non-negative integer')
        winners = data.get('winners') or []
        if not isinstance(winners, list):
            raise MessageError('winners must be a list')
        return cls(
            drawn_balls=drawn,
            current_ball=_optional_int(data, 'currentBall'),
            pattern=_optional_str(data, 'pattern'),
            custom_pattern=tuple(normalize_custom(data.get('customPattern'))),
            winners=tuple(WinnerClaim.from_dict(w) for w in winners),
            is_drawing=bool(data.get('isDrawing', False)),
            reset_count=reset_count,
        )
