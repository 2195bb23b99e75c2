from flask import Blueprint, jsonify, request, current_app
from bingo import db
from bingo.models import BingoCall, BingoRoom, generate_room_id
from bingo.sync.errors import MessageError
from bingo.sync.state import RoomState


rooms = Blueprint('rooms', __name__)


@rooms.route('', methods=['POST'])
def create_room():
    length = int(current_app.config.get('ROOM_ID_LENGTH', 6))
    room = BingoRoom(id=generate_room_id(length))
    room.apply_state(RoomState())
    db.session.add(room)
    db.session.commit()
    current_app.logger.info(f"[room-create] room={room.id}")
    return jsonify({'room_id': room.id}), 201


@rooms.route('/<string:room_id>', methods=['GET'])
def get_room(room_id):
    room = db.get_or_404(BingoRoom, room_id)
    return jsonify(room.to_dict())


@rooms.route('/<string:room_id>', methods=['PUT'])
def save_room(room_id):
    data = request.get_json(silent=True)
    try:
        state = RoomState.from_dict(data)
    except MessageError as exc:
        return jsonify({'error': str(exc)}), 400
    room = db.session.get(BingoRoom, room_id)
    if room is None:
        room = BingoRoom(id=room_id)
    room.apply_state(state)
    db.session.add(room)
    db.session.commit()
    return jsonify(room.to_dict())


@rooms.route('/<string:room_id>', methods=['DELETE'])
def clear_room(room_id):
    deleted = BingoRoom.query.filter_by(id=room_id).delete()
    db.session.commit()
    current_app.logger.info(f"[room-clear] room={room_id} deleted={deleted}")
    return jsonify({'ok': True, 'deleted': bool(deleted)})


@rooms.route('/<string:room_id>/exists', methods=['GET'])
def room_exists(room_id):
    return jsonify({'exists': db.session.get(BingoRoom, room_id) is not None})


@rooms.route('/<string:room_id>/calls', methods=['GET'])
def list_calls(room_id):
    calls = BingoCall.query.filter_by(room_id=room_id).order_by(BingoCall.called_at.asc()).all()
    return jsonify([c.to_dict() for c in calls])
