"""Host side: the single writer of the room document."""

import logging
import threading
import uuid
from dataclasses import replace
from typing import List, Optional

from .animation import DrawAnimation, animation_from_config
from .errors import MessageError
from .local_store import load_json, room_cache_key, save_json
from .messages import ClaimBingoMessage, RequestStateMessage, StateMessage
from .patterns import PATTERN_CUSTOM, is_known_pattern
from .persistence import CallRecord, RoomPersistence
from .presence import ROLE_HOST
from .session import PHASE_CONVERGED, RoomSession
from .state import STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED, RoomState, WinnerClaim
from .verifier import punched_from_indexes, verify

logger = logging.getLogger(__name__)


class HostSession(RoomSession):
    """Authoritative room owner.

    Every mutation builds a new RoomState, broadcasts it whole, and only then
    mirrors it to the local cache and the durable store.
    """

    role = ROLE_HOST

    def __init__(self, transport, room_id, persistence: Optional[RoomPersistence] = None,
                 animation: Optional[DrawAnimation] = None, **kwargs):
        super().__init__(transport, room_id, **kwargs)
        self.persistence = persistence or RoomPersistence()
        self.animation = animation or DrawAnimation()
        self.display_ball: Optional[int] = None
        self._draw_lock = threading.Lock()

    @classmethod
    def from_config(cls, transport, room_id, config, **kwargs):
        kwargs.setdefault('animation', animation_from_config(config))
        return super().from_config(transport, room_id, config, **kwargs)

    # ---- join / convergence ----

    def _before_open(self):
        self._state = self.load_state()
        self.display_ball = self._state.current_ball

    def load_state(self) -> RoomState:
        """Durable store first, then the local cache, then an empty room."""
        state = self.persistence.fetch(self.room_id)
        source = 'durable'
        if state is None:
            cached = load_json(self.store, room_cache_key(self.room_id), None, validate=lambda v: isinstance(v, dict))
            state, source = None, 'empty'
            if cached is not None:
                try:
                    state, source = RoomState.from_dict(cached), 'cache'
                except MessageError:
                    logger.warning(f"[host-cache-malformed] room={self.room_id}; starting empty")
        if state is None:
            state = RoomState()
        logger.info(f"[host-load] room={self.room_id} source={source} drawn={len(state.drawn_balls)} reset_count={state.reset_count}")
        # a draw is never persisted mid-flight, but an older cache might say otherwise
        return replace(state, is_drawing=False)

    def _on_subscribed(self):
        with self._lock:
            self.phase = PHASE_CONVERGED
            self._send(StateMessage(self._state))

    def _on_request_state(self, message: RequestStateMessage):
        if not self.is_converged:
            return
        logger.debug(f"[host-resync] room={self.room_id} requester={message.requester}")
        with self._lock:
            self._send(StateMessage(self._state))

    def _on_presence(self, roster):
        super()._on_presence(roster)
        # covers newcomers whose request_state raced our subscription
        if self.is_converged:
            with self._lock:
                self._send(StateMessage(self._state))

    def _on_state(self, message: StateMessage):
        logger.warning(f"[host-foreign-state] room={self.room_id} ignoring state from another writer")

    # ---- mutation ----

    def _publish(self, state: RoomState) -> None:
        with self._lock:
            self._state = state
            if not state.is_drawing:
                self.display_ball = state.current_ball
            self._send(StateMessage(state))
        self._notify('state', state)

    def _persist(self, state: RoomState) -> None:
        self._cache(state)
        self.persistence.save(self.room_id, state)

    def _cache(self, state: RoomState) -> None:
        try:
            save_json(self.store, room_cache_key(self.room_id), state.to_dict())
        except Exception as exc:
            logger.warning(f"[host-cache-failed] room={self.room_id} error={exc}")

    def draw_ball(self) -> Optional[int]:
        """Spin, then commit one new ball. Returns it, or None when the draw was refused or cancelled."""
        if not self._draw_lock.acquire(blocking=False):
            return None
        try:
            with self._lock:
                if self._state.is_drawing or self._state.is_complete:
                    logger.info(f"[draw-refused] room={self.room_id} drawing={self._state.is_drawing} drawn={len(self._state.drawn_balls)}")
                    return None
                # players start their own spin from this, it is never persisted
                self._publish(self._state.drawing())
                drawn = self._state.drawn_balls
                game = self._state.reset_count

            ball = self.animation.run(drawn, self._show_frame, self._closed)
            if ball is None:
                logger.info(f"[draw-cancelled] room={self.room_id}")
                with self._lock:
                    if self._state.is_drawing:
                        self._state = replace(self._state, is_drawing=False)
                return None

            with self._lock:
                if self._state.reset_count != game:
                    # reset while spinning; the ball belongs to the previous game
                    logger.info(f"[draw-discarded] room={self.room_id} ball={ball} reset_count={self._state.reset_count}")
                    self.display_ball = self._state.current_ball
                    return None
                state = self._state.with_ball(ball)
                self._publish(state)
            self._persist(state)
            logger.info(f"[draw] room={self.room_id} ball={ball} count={len(self._state.drawn_balls)}")
            return ball
        finally:
            self._draw_lock.release()

    def _show_frame(self, ball: int) -> None:
        self.display_ball = ball
        self._notify('frame', ball)

    def set_pattern(self, pattern: str, custom_pattern=None) -> bool:
        if not is_known_pattern(pattern):
            logger.info(f"[pattern-refused] room={self.room_id} pattern={pattern!r}")
            return False
        with self._lock:
            custom = custom_pattern if pattern == PATTERN_CUSTOM else None
            state = self._state.with_pattern(pattern, custom)
            self._publish(state)
        self._persist(state)
        return True

    def reset(self) -> RoomState:
        with self._lock:
            state = self._state.reset()
            self._publish(state)
        # the cache keeps the bumped reset count so a reload cannot rewind it
        self._cache(state)
        self.persistence.clear(self.room_id)
        logger.info(f"[reset] room={self.room_id} reset_count={state.reset_count}")
        return state

    # ---- claims ----

    def _on_claim(self, message: ClaimBingoMessage):
        claim = message.claim
        with self._lock:
            state = self._state
            if state.find_claim(*claim.fence_key) is not None:
                logger.info(f"[claim-duplicate] room={self.room_id} client={claim.client_id} card_version={claim.card_version}")
                return
            result = verify(
                claim.card_numbers,
                punched_from_indexes(claim.punched_indexes),
                state.drawn_balls,
                state.pattern,
                state.custom_pattern,
            )
            if not result:
                logger.warning(f"[claim-rejected] room={self.room_id} client={claim.client_id} reason={result.reason}")
                return
            accepted = replace(claim, id=uuid.uuid4().hex, status=STATUS_PENDING)
            state = state.with_winner(accepted)
            self._publish(state)
        self._persist(state)
        logger.info(f"[claim-pending] room={self.room_id} claim={accepted.id} user={accepted.username}")
        self._notify('claim', accepted)

    def pending_claims(self) -> List[WinnerClaim]:
        return [c for c in self._state.winners if c.status == STATUS_PENDING]

    def approve(self, claim_id: str) -> bool:
        claim = self._transition(claim_id, STATUS_APPROVED)
        if claim is None:
            return False
        self.persistence.record_call(self.room_id, claim)
        return True

    def reject(self, claim_id: str) -> bool:
        return self._transition(claim_id, STATUS_REJECTED) is not None

    def _transition(self, claim_id: str, status: str) -> Optional[WinnerClaim]:
        with self._lock:
            claim = self._state.find_claim_by_id(claim_id)
            if claim is None or claim.status != STATUS_PENDING:
                logger.info(f"[claim-transition-refused] room={self.room_id} claim={claim_id} to={status}")
                return None
            state = self._state.with_claim_status(claim_id, status)
            self._publish(state)
        self._persist(state)
        logger.info(f"[claim-{status}] room={self.room_id} claim={claim_id} user={claim.username}")
        return claim

    def call_log(self) -> List[CallRecord]:
        return self.persistence.fetch_calls(self.room_id)
