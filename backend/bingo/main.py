from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from bingo import db

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the bingo room server!'})


@main.route('/api/health')
def health():
    # Rooms degrade to local-only play when the database is unreachable
    try:
        db.session.execute(text('SELECT 1'))
        database = True
    except Exception as exc:
        db.session.rollback()
        current_app.logger.warning(f"[health] database unavailable: {exc}")
        database = False
    return jsonify({'ok': True, 'database': database})
