"""Player side: read-only replica, private card, and the claim flow."""

import logging
import threading
from typing import Callable, List, Optional

from .animation import DrawAnimation, animation_from_config
from .cards import card_seed, generate_card_numbers
from .local_store import (
    announced_key,
    card_version_key,
    claimed_key,
    load_json,
    punches_key,
    reset_seen_key,
    save_json,
)
from .messages import ClaimBingoMessage, RequestStateMessage, StateMessage
from .patterns import CELL_COUNT, FREE_INDEX, PATTERN_CUSTOM
from .presence import ROLE_PLAYER
from .session import PHASE_CONVERGED, RoomSession
from .state import STATUS_APPROVED, WinnerClaim
from .verifier import VerificationResult, punched_indexes, verify

logger = logging.getLogger(__name__)

REASON_ALREADY_CLAIMED = 'already claimed'


def _is_punch_vector(value) -> bool:
    return isinstance(value, list) and len(value) == CELL_COUNT and all(isinstance(v, bool) for v in value)


def _is_card_version(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


class PlayerSession(RoomSession):
    role = ROLE_PLAYER

    def __init__(self, transport, room_id,
                 card_generator: Callable[[str], List[Optional[int]]] = generate_card_numbers,
                 animation: Optional[DrawAnimation] = None, **kwargs):
        super().__init__(transport, room_id, **kwargs)
        self._card_generator = card_generator
        self.animation = animation or DrawAnimation()
        self.display_ball: Optional[int] = None
        self._spin_lock = threading.Lock()
        self._spin_stop: Optional[threading.Event] = None
        self._spin_thread: Optional[threading.Thread] = None
        self.card_version: int = load_json(self.store, card_version_key(room_id, self.client_id), 1,
                                           validate=_is_card_version)
        self.card_numbers: List[Optional[int]] = []
        self._punched: List[bool] = []
        self._load_card()

    @classmethod
    def from_config(cls, transport, room_id, config, **kwargs):
        kwargs.setdefault('animation', animation_from_config(config))
        return super().from_config(transport, room_id, config, **kwargs)

    # ---- card ----

    def _load_card(self) -> None:
        self.card_numbers = list(self._card_generator(card_seed(self.room_id, self.client_id, self.card_version)))
        punched = load_json(self.store, self._punches_key, None, validate=_is_punch_vector)
        self._punched = punched if punched is not None else [False] * CELL_COUNT
        self._punched[FREE_INDEX] = True

    @property
    def _punches_key(self) -> str:
        return punches_key(self.room_id, self.client_id, self.card_version)

    @property
    def _claimed_key(self) -> str:
        return claimed_key(self.room_id, self.client_id, self.card_version)

    @property
    def punched(self) -> List[bool]:
        return list(self._punched)

    def toggle_punch(self, index: int) -> bool:
        """Flip a cell and return its new value.

        The free center always stays punched; an index off the card is ignored
        and reads as unpunched.
        """
        if not 0 <= index < CELL_COUNT:
            logger.debug(f"[punch-ignored] room={self.room_id} index={index}")
            return False
        if index != FREE_INDEX:
            self._punched[index] = not self._punched[index]
        save_json(self.store, self._punches_key, self._punched)
        return self._punched[index]

    def _clear_punches(self) -> None:
        self._punched = [False] * CELL_COUNT
        self._punched[FREE_INDEX] = True
        save_json(self.store, self._punches_key, self._punched)

    def refresh_card(self) -> bool:
        """Deal a new card (next cardVersion). Only allowed before the first draw."""
        if self.state.drawn_balls:
            logger.info(f"[card-refresh-refused] room={self.room_id} drawn={len(self.state.drawn_balls)}")
            return False
        self.card_version += 1
        save_json(self.store, card_version_key(self.room_id, self.client_id), self.card_version)
        self._load_card()
        self._clear_punches()
        return True

    # ---- join / convergence ----

    def _on_subscribed(self):
        self._send(RequestStateMessage(self.client_id))

    def _on_state(self, message: StateMessage):
        state = message.state
        self._state = state
        self.phase = PHASE_CONVERGED
        if state.is_drawing:
            self._start_spin(state.drawn_balls)
        else:
            self._stop_spin(state.current_ball)
        self._apply_reset_fence(state.reset_count)
        self._announce_winners(state.winners)
        self._notify('state', state)

    def close(self) -> None:
        self._stop_spin(self.display_ball)
        super().close()

    # ---- decorative spin ----

    def _start_spin(self, drawn) -> None:
        with self._spin_lock:
            if self._spin_stop is not None:
                return
            stop = threading.Event()
            self._spin_stop = stop
            self._spin_thread = threading.Thread(target=self._spin, args=(drawn, stop), daemon=True)
            self._spin_thread.start()

    def _spin(self, drawn, stop: threading.Event) -> None:
        def show(ball):
            with self._spin_lock:
                if stop.is_set():
                    return
                self.display_ball = ball
            self._notify('frame', ball)
        self.animation.run(drawn, show, stop)

    def _stop_spin(self, ball: Optional[int]) -> None:
        with self._spin_lock:
            if self._spin_stop is not None:
                self._spin_stop.set()
                self._spin_stop = None
            self.display_ball = ball

    def _apply_reset_fence(self, reset_count: int) -> None:
        key = reset_seen_key(self.room_id, self.client_id)
        seen = load_json(self.store, key, None, validate=lambda v: isinstance(v, int) and not isinstance(v, bool))
        if seen == reset_count:
            return
        if seen is not None:
            for version in range(1, self.card_version + 1):
                self.store.delete(claimed_key(self.room_id, self.client_id, version))
            self._clear_punches()
            logger.info(f"[reset-observed] room={self.room_id} client={self.client_id} {seen}->{reset_count}")
        save_json(self.store, key, reset_count)

    def _announce_winners(self, winners) -> None:
        key = announced_key(self.room_id)
        shown = set(load_json(self.store, key, [], validate=lambda v: isinstance(v, list)))
        fresh = [
            w for w in winners
            if w.status == STATUS_APPROVED and w.id and w.client_id != self.client_id and w.id not in shown
        ]
        if not fresh:
            return
        for claim in fresh:
            shown.add(claim.id)
        save_json(self.store, key, sorted(shown))
        for claim in fresh:
            self._notify('winner', claim)

    # ---- claims ----

    @property
    def already_claimed(self) -> bool:
        return load_json(self.store, self._claimed_key, False) is True

    def check_claim(self) -> VerificationResult:
        """The local gate behind the claim button."""
        if self.already_claimed:
            return VerificationResult(False, REASON_ALREADY_CLAIMED)
        state = self.state
        return verify(self.card_numbers, self._punched, state.drawn_balls, state.pattern, state.custom_pattern)

    def can_claim(self) -> bool:
        return self.check_claim().valid

    def submit_claim(self) -> Optional[WinnerClaim]:
        if not self.channel.is_subscribed:
            # the claim would be dropped; keep the button usable for after the resync
            logger.info(f"[claim-deferred] room={self.room_id} client={self.client_id} status={self.channel.status}")
            return None
        result = self.check_claim()
        if not result:
            logger.info(f"[claim-blocked] room={self.room_id} client={self.client_id} reason={result.reason}")
            return None
        state = self.state
        claim = WinnerClaim(
            username=self.username or 'Player',
            client_id=self.client_id,
            card_version=self.card_version,
            ball_number=state.current_ball,
            pattern=state.pattern,
            custom_pattern=tuple(state.custom_pattern) if state.pattern == PATTERN_CUSTOM else None,
            card_numbers=tuple(self.card_numbers),
            punched_indexes=tuple(punched_indexes(self._punched)),
        )
        # lock the button before the host has answered
        save_json(self.store, self._claimed_key, True)
        if not self._send(ClaimBingoMessage(claim)):
            self.store.delete(self._claimed_key)
            logger.warning(f"[claim-send-failed] room={self.room_id} client={self.client_id} card_version={self.card_version}")
            return None
        logger.info(f"[claim-submitted] room={self.room_id} client={self.client_id} card_version={self.card_version}")
        return claim

    def my_claim(self) -> Optional[WinnerClaim]:
        return self.state.find_claim(self.client_id, self.card_version)
