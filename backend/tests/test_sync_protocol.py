from dataclasses import replace

from bingo.sync import DrawAnimation, MemoryStore, RoomPersistence
from bingo.sync.local_store import claimed_key, load_json, room_cache_key, save_json
from bingo.sync.messages import ClaimBingoMessage
from bingo.sync.session import PHASE_CONNECTING, PHASE_CONVERGED, PHASE_SUBSCRIBED
from bingo.sync.state import STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED, WinnerClaim


class ScriptedAnimation(DrawAnimation):
    """Draws a fixed sequence so tests can steer a card to a win."""

    def __init__(self, balls):
        super().__init__(steps=1, step_delay=0)
        self.balls = list(balls)

    def run(self, drawn, on_frame, cancelled=None):
        if cancelled is not None and cancelled.is_set():
            return None
        ball = self.balls.pop(0)
        on_frame(ball)
        return ball


class BrokenPersistence(RoomPersistence):
    def _fetch(self, room_id):
        raise RuntimeError('database unavailable')

    def _save(self, room_id, state):
        raise RuntimeError('database unavailable')

    def _clear(self, room_id):
        raise RuntimeError('database unavailable')

    def _record_call(self, record):
        raise RuntimeError('database unavailable')


def top_row(player):
    return list(player.card_numbers[:5])


def win_top_row(host, player):
    """Draw the player's first row, punch it, and claim."""
    host.animation = ScriptedAnimation(top_row(player))
    for _ in range(5):
        assert host.draw_ball() is not None
    for idx in range(5):
        player.toggle_punch(idx)
    return player.submit_claim()


# ---- joining and convergence ----

def test_host_converges_alone_on_empty_room(make_host):
    host = make_host().open()
    assert host.phase == PHASE_CONVERGED
    assert host.state.drawn_balls == ()
    assert host.state.reset_count == 0


def test_late_joiner_receives_current_state(make_host, make_player):
    host = make_host().open()
    host.set_pattern('horizontal')
    host.draw_ball()
    host.draw_ball()

    player = make_player('ann').open()
    assert player.phase == PHASE_CONVERGED
    assert player.state == host.state
    assert player.state.pattern == 'horizontal'
    assert len(player.state.drawn_balls) == 2


def test_player_without_host_stays_subscribed(make_player):
    first = make_player('ann').open()
    second = make_player('bo').open()
    assert first.phase == PHASE_SUBSCRIBED
    assert second.phase == PHASE_SUBSCRIBED
    assert second.state.drawn_balls == ()


def test_host_arriving_later_brings_waiting_players_up_to_date(make_host, make_player, persistence):
    persistence.rooms['abc123'] = {'drawnBalls': [7, 22], 'currentBall': 22, 'resetCount': 3}
    player = make_player('ann').open()
    make_host().open()
    assert player.phase == PHASE_CONVERGED
    assert player.state.drawn_balls == (7, 22)
    assert player.state.reset_count == 3


def test_presence_roster_is_shared(make_host, make_player):
    host = make_host().open()
    player = make_player('ann').open()
    assert player.presence.has_host()
    assert host.presence.player_names() == ['Ann']
    assert host.presence.online_count == 2


def test_repeated_state_is_idempotent(make_host, make_player):
    host = make_host().open()
    player = make_player('ann').open()
    host.draw_ball()
    payload = host.state.to_dict()

    player._receive('state', payload)
    snapshot = (player.state, player.punched, dict(player.store._data))
    player._receive('state', payload)
    assert (player.state, player.punched, dict(player.store._data)) == snapshot


def test_malformed_state_is_dropped(make_host, make_player):
    host = make_host().open()
    player = make_player('ann').open()
    host.draw_ball()
    before = player.state

    player._receive('state', {'drawnBalls': [5, 5]})
    player._receive('state', 'not a document')
    assert player.state == before


def test_host_ignores_state_from_another_writer(make_host):
    host = make_host().open()
    host._receive('state', {'drawnBalls': [1, 2, 3]})
    assert host.state.drawn_balls == ()


def test_reconnect_resyncs_missed_draws(make_host, make_player):
    host = make_host().open()
    player = make_player('ann').open()
    transport = player.channel.transport

    transport.drop()
    assert player.phase == PHASE_CONNECTING
    ball = host.draw_ball()
    assert player.state.drawn_balls == ()

    transport.restore()
    assert player.phase == PHASE_CONVERGED
    assert player.state.drawn_balls == (ball,)


def test_send_before_subscribe_is_dropped(make_player):
    player = make_player('ann')
    assert player.channel.send('request_state', {'requester': 'ann'}) is False


# ---- drawing ----

def test_draw_until_exhausted(make_host, make_player):
    host = make_host().open()
    player = make_player('ann').open()
    seen = []
    player.add_listener('state', lambda state: seen.append(state))

    balls = [host.draw_ball() for _ in range(75)]
    assert sorted(balls) == list(range(1, 76))
    assert host.state.is_complete
    assert host.draw_ball() is None
    assert len(host.state.drawn_balls) == 75

    assert player.state.drawn_balls == host.state.drawn_balls
    lengths = [len(s.drawn_balls) for s in seen]
    assert lengths == sorted(lengths)
    for state in seen:
        assert len(set(state.drawn_balls)) == len(state.drawn_balls)


def test_draw_broadcasts_spin_then_commit(make_host, make_player):
    host = make_host().open()
    player = make_player('ann').open()
    flags = []
    frames = []
    player.add_listener('state', lambda state: flags.append(state.is_drawing))
    host.add_listener('frame', frames.append)

    ball = host.draw_ball()
    assert flags[-2:] == [True, False]
    assert len(frames) == 3
    assert frames[-1] == ball
    assert host.display_ball == ball
    assert player.state.current_ball == ball


def test_drawing_flag_is_never_persisted(make_host, persistence):
    host = make_host().open()
    host.draw_ball()
    assert persistence.rooms['abc123']['isDrawing'] is False


def test_draw_refused_while_drawing(make_host):
    host = make_host().open()
    host._state = host.state.drawing()
    assert host.draw_ball() is None


def test_closing_mid_draw_cancels_without_commit(make_host, persistence):
    host = make_host(animation=DrawAnimation(steps=5, step_delay=0)).open()
    host.add_listener('frame', lambda ball: host.close())

    assert host.draw_ball() is None
    assert host.state.drawn_balls == ()
    assert host.state.is_drawing is False
    assert 'abc123' not in persistence.rooms

    reloaded = make_host().open()
    assert reloaded.state.is_drawing is False


def test_set_pattern(make_host, make_player):
    host = make_host().open()
    player = make_player('ann').open()

    assert host.set_pattern('custom', [24, 0, 0, 99])
    assert player.state.pattern == 'custom'
    assert player.state.custom_pattern == (0, 24)

    assert host.set_pattern('zigzag') is False
    assert player.state.pattern == 'custom'


# ---- claims ----

def test_valid_claim_goes_pending_then_approved(make_host, make_player, persistence):
    host = make_host().open()
    host.set_pattern('horizontal')
    player = make_player('ann').open()
    claims = []
    host.add_listener('claim', claims.append)

    sent = win_top_row(host, player)
    assert sent is not None
    assert player.already_claimed

    [pending] = host.pending_claims()
    assert claims == [pending]
    assert pending.id
    assert pending.status == STATUS_PENDING
    assert pending.username == 'Ann'
    assert pending.card_version == 1
    assert player.my_claim() == pending

    assert host.approve(pending.id)
    assert player.my_claim().status == STATUS_APPROVED
    assert host.pending_claims() == []
    [record] = host.call_log()
    assert record.username == 'Ann'
    assert record.pattern == 'horizontal'
    assert len(persistence.calls) == 1


def test_approving_twice_is_refused(make_host, make_player):
    host = make_host().open()
    host.set_pattern('horizontal')
    player = make_player('ann').open()
    win_top_row(host, player)
    claim_id = host.pending_claims()[0].id

    assert host.approve(claim_id)
    assert host.approve(claim_id) is False
    assert host.reject(claim_id) is False
    assert host.approve('missing') is False


def test_reject_claim(make_host, make_player, persistence):
    host = make_host().open()
    host.set_pattern('horizontal')
    player = make_player('ann').open()
    win_top_row(host, player)
    claim_id = host.pending_claims()[0].id

    assert host.reject(claim_id)
    assert player.my_claim().status == STATUS_REJECTED
    assert persistence.calls == []
    # a rejected claim still blocks this card version
    assert player.submit_claim() is None


def test_claim_blocked_locally_without_pattern(make_host, make_player):
    host = make_host().open()
    player = make_player('ann').open()
    host.animation = ScriptedAnimation(top_row(player))
    for _ in range(5):
        host.draw_ball()
    for idx in range(5):
        player.toggle_punch(idx)

    assert player.can_claim() is False
    assert player.check_claim().reason == 'no pattern selected'
    assert player.submit_claim() is None
    assert host.state.winners == ()


def test_claim_with_undrawn_punch_is_dropped_by_host(make_host, make_player):
    host = make_host().open()
    host.set_pattern('horizontal')
    player = make_player('ann').open()
    forged = WinnerClaim(
        username='Ann',
        client_id='ann',
        card_version=1,
        ball_number=None,
        pattern='horizontal',
        card_numbers=tuple(player.card_numbers),
        punched_indexes=(0, 1, 2, 3, 4, 12),
    )
    player._send(ClaimBingoMessage(forged))
    assert host.state.winners == ()


def test_host_verifies_against_its_own_pattern(make_host, make_player):
    host = make_host().open()
    host.set_pattern('horizontal')
    player = make_player('ann').open()
    host.animation = ScriptedAnimation(top_row(player))
    for _ in range(5):
        host.draw_ball()
    for idx in range(5):
        player.toggle_punch(idx)
    claim = WinnerClaim(
        username='Ann',
        client_id='ann',
        card_version=1,
        ball_number=host.state.current_ball,
        pattern='blackout',
        card_numbers=tuple(player.card_numbers),
        punched_indexes=(0, 1, 2, 3, 4, 12),
    )
    player._send(ClaimBingoMessage(claim))
    [accepted] = host.state.winners
    assert accepted.pattern == 'blackout'

    host.set_pattern('vertical')
    player._send(ClaimBingoMessage(replace(claim, client_id='bo')))
    assert len(host.state.winners) == 1


def test_duplicate_claims_collapse_to_one(make_host, make_player):
    host = make_host().open()
    host.set_pattern('horizontal')
    player = make_player('ann').open()
    sent = win_top_row(host, player)

    # resend straight onto the channel, bypassing the local lock
    player._send(ClaimBingoMessage(sent))
    player._send(ClaimBingoMessage(sent))
    assert len(host.state.winners) == 1

    # same device identity from another tab
    twin = make_player('ann').open()
    for idx in range(5):
        twin.toggle_punch(idx)
    twin.submit_claim()
    assert len(host.state.winners) == 1

    host.approve(host.state.winners[0].id)
    player._send(ClaimBingoMessage(sent))
    assert len(host.state.winners) == 1


def test_winner_announced_once_to_other_players(make_host, make_player):
    host = make_host().open()
    host.set_pattern('horizontal')
    winner = make_player('ann').open()
    bo_store = MemoryStore()
    watcher = make_player('bo', store=bo_store).open()
    heard_by_winner, heard_by_watcher = [], []
    winner.add_listener('winner', heard_by_winner.append)
    watcher.add_listener('winner', heard_by_watcher.append)

    win_top_row(host, winner)
    assert heard_by_watcher == []

    host.approve(host.pending_claims()[0].id)
    assert [c.username for c in heard_by_watcher] == ['Ann']
    assert heard_by_winner == []

    watcher._receive('state', host.state.to_dict())
    assert len(heard_by_watcher) == 1

    # reopening with the same device store does not replay the banner
    watcher.close()
    again = []
    rejoined = make_player('bo', store=bo_store)
    rejoined.add_listener('winner', again.append)
    rejoined.open()
    assert again == []


# ---- reset ----

def test_reset_fences_old_claims(make_host, make_player, persistence):
    host = make_host().open()
    host.set_pattern('horizontal')
    player = make_player('ann').open()
    win_top_row(host, player)
    host.approve(host.pending_claims()[0].id)
    assert player.already_claimed

    state = host.reset()
    assert state.reset_count == 1
    assert state.winners == ()
    assert state.drawn_balls == ()
    assert state.pattern == 'horizontal'
    assert 'abc123' not in persistence.rooms

    assert player.state.reset_count == 1
    assert player.already_claimed is False
    assert player.punched == [i == 12 for i in range(25)]

    # the same card version may win the new game
    assert win_top_row(host, player) is not None
    assert len(host.state.winners) == 1
    assert host.state.winners[0].status == STATUS_PENDING


def test_reset_clears_flags_for_every_card_version(make_host, make_player):
    host = make_host().open()
    player = make_player('ann').open()
    assert player.refresh_card()
    assert player.refresh_card()
    assert player.card_version == 3
    for version in (1, 2, 3):
        save_json(player.store, claimed_key('abc123', 'ann', version), True)

    host.reset()
    for version in (1, 2, 3):
        assert load_json(player.store, claimed_key('abc123', 'ann', version), False) is False


def test_first_state_records_reset_without_clearing(make_host, make_player, persistence):
    persistence.rooms['abc123'] = {'drawnBalls': [3], 'currentBall': 3, 'resetCount': 4}
    store = MemoryStore()
    save_json(store, claimed_key('abc123', 'ann', 1), True)
    make_host().open()
    player = make_player('ann', store=store).open()
    assert player.state.reset_count == 4
    assert player.already_claimed


def test_reset_count_survives_host_reload(make_host):
    store = MemoryStore()
    host = make_host(store=store).open()
    host.draw_ball()
    host.reset()
    host.reset()
    host.close()

    reloaded = make_host(store=store).open()
    assert reloaded.state.reset_count == 2
    assert reloaded.state.drawn_balls == ()


# ---- persistence ----

def test_host_reload_prefers_durable_store(make_host, persistence):
    host = make_host().open()
    host.set_pattern('x')
    balls = [host.draw_ball() for _ in range(4)]
    host.close()

    reloaded = make_host(store=MemoryStore()).open()
    assert reloaded.state.drawn_balls == tuple(balls)
    assert reloaded.state.pattern == 'x'
    assert reloaded.display_ball == balls[-1]


def test_persistence_failure_does_not_block_play(make_host, make_player):
    store = MemoryStore()
    host = make_host(store=store, persistence=BrokenPersistence()).open()
    host.set_pattern('horizontal')
    player = make_player('ann').open()

    assert win_top_row(host, player) is not None
    assert player.state.drawn_balls == tuple(top_row(player))
    assert load_json(store, room_cache_key('abc123'))['drawnBalls'] == top_row(player)

    assert host.approve(host.pending_claims()[0].id)
    assert host.call_log() == []

    host.close()
    reloaded = make_host(store=store, persistence=BrokenPersistence()).open()
    assert reloaded.state.drawn_balls == host.state.drawn_balls


# ---- cards ----

def test_card_is_stable_per_version(make_player):
    store = MemoryStore()
    first = make_player('ann', store=store)
    again = make_player('ann', store=store)
    assert first.card_numbers == again.card_numbers
    assert first.card_numbers[12] is None


def test_refresh_only_before_first_draw(make_host, make_player):
    host = make_host().open()
    player = make_player('ann').open()
    original = player.card_numbers
    player.toggle_punch(0)

    assert player.refresh_card()
    assert player.card_version == 2
    assert player.card_numbers != original
    assert player.punched == [i == 12 for i in range(25)]

    host.draw_ball()
    assert player.refresh_card() is False
    assert player.card_version == 2


def test_toggle_punch(make_player):
    player = make_player('ann')
    assert player.toggle_punch(3) is True
    assert player.toggle_punch(3) is False
    assert player.toggle_punch(12) is True
    assert player.punched[12] is True

    player.toggle_punch(7)
    reopened = make_player('ann', store=player.store)
    assert reopened.punched[7] is True


def test_player_spin_settles_on_committed_ball(make_host, make_player):
    host = make_host().open()
    player = make_player('ann', animation=DrawAnimation(steps=500, step_delay=0.01)).open()

    player._receive('state', host.state.drawing().to_dict())
    spin = player._spin_thread
    assert spin is not None and spin.is_alive()

    ball = host.draw_ball()
    spin.join(timeout=2)
    assert not spin.is_alive()
    assert player.display_ball == ball
    assert player.state.is_drawing is False


def test_closing_player_stops_spin(make_player):
    player = make_player('ann', animation=DrawAnimation(steps=500, step_delay=0.01))
    player._receive('state', {'drawnBalls': [], 'isDrawing': True})
    spin = player._spin_thread

    player.close()
    spin.join(timeout=2)
    assert not spin.is_alive()


def test_reset_during_draw_discards_the_spinning_ball(make_host, make_player, persistence):
    host = make_host().open()
    player = make_player('ann').open()
    resets = []

    def reset_once(ball):
        if not resets:
            resets.append(host.reset())
    host.add_listener('frame', reset_once)

    assert host.draw_ball() is None
    assert host.state.drawn_balls == ()
    assert host.state.current_ball is None
    assert host.state.reset_count == 1
    assert host.display_ball is None
    assert player.state.drawn_balls == ()
    assert player.state.is_drawing is False
    assert 'abc123' not in persistence.rooms

    ball = host.draw_ball()
    assert ball is not None
    assert player.state.drawn_balls == (ball,)


def test_claim_while_disconnected_stays_available(make_host, make_player):
    host = make_host().open()
    host.set_pattern('horizontal')
    player = make_player('ann').open()
    host.animation = ScriptedAnimation(top_row(player))
    for _ in range(5):
        host.draw_ball()
    for idx in range(5):
        player.toggle_punch(idx)
    transport = player.channel.transport

    transport.drop()
    assert player.submit_claim() is None
    assert player.already_claimed is False
    assert host.state.winners == ()

    transport.restore()
    assert player.can_claim()
    assert player.submit_claim() is not None
    assert len(host.state.winners) == 1


def test_off_card_punch_is_ignored(make_player):
    player = make_player('ann')
    before = player.punched
    assert player.toggle_punch(25) is False
    assert player.toggle_punch(-1) is False
    assert player.punched == before
