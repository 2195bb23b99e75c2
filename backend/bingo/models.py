import json
import random
import string
import time

from bingo import db
from bingo.sync.state import RoomState

ROOM_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_room_id(length=6):
    """Generate an unused, short base36 room id."""
    while True:
        room_id = ''.join(random.choices(ROOM_ID_ALPHABET, k=length))
        if not db.session.get(BingoRoom, room_id):
            return room_id


def _loads(raw, default):
    try:
        value = json.loads(raw) if raw else default
    except ValueError:
        return default
    return value if isinstance(value, type(default)) else default


class BingoRoom(db.Model):
    __tablename__ = 'bingo_room'
    id = db.Column(db.String(32), primary_key=True)
    drawn_balls = db.Column(db.Text, nullable=True)  # JSON-encoded list of ints, call order
    current_ball = db.Column(db.Integer, nullable=True)
    pattern = db.Column(db.String(32), nullable=True)
    custom_pattern = db.Column(db.Text, nullable=True)  # JSON-encoded list of cell indexes
    winners = db.Column(db.Text, nullable=True)  # JSON-encoded list of claims
    reset_count = db.Column(db.Integer, default=0, nullable=False)
    updated_at = db.Column(db.Float, default=time.time, onupdate=time.time)

    def apply_state(self, state: RoomState):
        data = state.to_dict()
        self.drawn_balls = json.dumps(data['drawnBalls'])
        self.current_ball = data['currentBall']
        self.pattern = data['pattern']
        self.custom_pattern = json.dumps(data['customPattern'])
        self.winners = json.dumps(data['winners'])
        self.reset_count = data['resetCount']
        self.updated_at = time.time()

    def to_state_dict(self):
        return {
            'drawnBalls': _loads(self.drawn_balls, []),
            'currentBall': self.current_ball,
            'pattern': self.pattern,
            'customPattern': _loads(self.custom_pattern, []),
            'winners': _loads(self.winners, []),
            # a draw in flight is never stored
            'isDrawing': False,
            'resetCount': self.reset_count or 0,
        }

    def to_state(self) -> RoomState:
        return RoomState.from_dict(self.to_state_dict())

    def to_dict(self):
        payload = self.to_state_dict()
        payload['id'] = self.id
        payload['updated_at'] = self.updated_at
        return payload


class BingoCall(db.Model):
    __tablename__ = 'bingo_call'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.String(32), index=True, nullable=False)
    username = db.Column(db.String(64), nullable=True)
    card_version = db.Column(db.Integer, nullable=True)
    pattern = db.Column(db.String(32), nullable=True)
    called_at = db.Column(db.Float, default=time.time, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'username': self.username,
            'card_version': self.card_version,
            'pattern': self.pattern,
            'called_at': self.called_at,
        }
