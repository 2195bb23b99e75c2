from bingo import db
from bingo.models import BingoCall, BingoRoom
from bingo.sync.persistence import CallRecord, RoomPersistence


class SqlRoomPersistence(RoomPersistence):
    """Durable room mirror backed by the app database.

    Every hook runs inside the app context and rolls the session back on
    failure; the base class turns the exception into a degraded result.
    """

    def __init__(self, app):
        self.app = app

    def _run(self, fn):
        with self.app.app_context():
            try:
                return fn()
            except Exception:
                db.session.rollback()
                raise

    def _fetch(self, room_id):
        def fetch():
            room = db.session.get(BingoRoom, room_id)
            return room.to_state() if room else None
        return self._run(fetch)

    def _save(self, room_id, state):
        def save():
            room = db.session.get(BingoRoom, room_id)
            if room is None:
                room = BingoRoom(id=room_id)
            room.apply_state(state)
            db.session.add(room)
            db.session.commit()
            self.app.logger.info(f"[room-save] room={room_id} drawn={len(state.drawn_balls)} winners={len(state.winners)}")
        self._run(save)

    def _clear(self, room_id):
        def clear():
            BingoRoom.query.filter_by(id=room_id).delete()
            db.session.commit()
            self.app.logger.info(f"[room-clear] room={room_id}")
        self._run(clear)

    def _exists(self, room_id):
        return self._run(lambda: db.session.get(BingoRoom, room_id) is not None)

    def _record_call(self, record):
        def insert():
            db.session.add(BingoCall(
                room_id=record.room_id,
                username=record.username,
                card_version=record.card_version,
                pattern=record.pattern,
                called_at=record.called_at,
            ))
            db.session.commit()
        self._run(insert)

    def _fetch_calls(self, room_id):
        def fetch():
            rows = BingoCall.query.filter_by(room_id=room_id).order_by(BingoCall.called_at.asc()).all()
            return [
                CallRecord(
                    room_id=row.room_id,
                    username=row.username or '',
                    card_version=row.card_version or 0,
                    pattern=row.pattern,
                    called_at=row.called_at,
                )
                for row in rows
            ]
        return self._run(fetch)
