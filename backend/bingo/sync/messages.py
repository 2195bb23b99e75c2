"""The closed set of messages exchanged on a room channel."""

from dataclasses import dataclass
from typing import Any, Dict, Tuple, Union

from .errors import MessageError
from .state import RoomState, WinnerClaim

EVENT_STATE = 'state'
EVENT_REQUEST_STATE = 'request_state'
EVENT_CLAIM_BINGO = 'claim_bingo'

EVENTS = (EVENT_STATE, EVENT_REQUEST_STATE, EVENT_CLAIM_BINGO)


@dataclass(frozen=True)
class StateMessage:
    state: RoomState


@dataclass(frozen=True)
class RequestStateMessage:
    requester: str


@dataclass(frozen=True)
class ClaimBingoMessage:
    claim: WinnerClaim


Message = Union[StateMessage, RequestStateMessage, ClaimBingoMessage]


def channel_name(room_id: str) -> str:
    return f"bingo:room-{room_id}"


def encode(message: Message) -> Tuple[str, Dict[str, Any]]:
    if isinstance(message, StateMessage):
        return EVENT_STATE, message.state.to_dict()
    if isinstance(message, RequestStateMessage):
        return EVENT_REQUEST_STATE, {'requester': message.requester}
    if isinstance(message, ClaimBingoMessage):
        # the host assigns id and status on acceptance
        return EVENT_CLAIM_BINGO, message.claim.to_dict(include_identity=False)
    raise TypeError(f"not a channel message: {message!r}")


def decode(event: str, payload: Any) -> Message:
    if event == EVENT_STATE:
        return StateMessage(RoomState.from_dict(payload))
    if event == EVENT_REQUEST_STATE:
        requester = (payload or {}).get('requester') if isinstance(payload, dict) else None
        if not isinstance(requester, str) or not requester:
            raise MessageError('request_state requires a requester')
        return RequestStateMessage(requester)
    if event == EVENT_CLAIM_BINGO:
        if not isinstance(payload, dict):
            raise MessageError('claim must be an object')
        # identity fields are host-owned
        claim = WinnerClaim.from_dict({**payload, 'id': None, 'status': 'pending'})
        return ClaimBingoMessage(claim)
    raise MessageError(f"unknown event {event!r}")
