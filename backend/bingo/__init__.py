from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
import json
from bingo.config import Config, parse_origins

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    allowed_origins = parse_origins(flask_app.config.get('CORS_ORIGINS', '*'))
    namespace = flask_app.config.get('SOCKETIO_NAMESPACE', '/ws')

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, resources={r"/api/*": {"origins": allowed_origins}})

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from bingo.main import main
    flask_app.register_blueprint(main)

    from bingo.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    # Channel relay used by host and player clients
    from bingo.socketio_events import register_socketio_handlers
    register_socketio_handlers(namespace=namespace)

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the room tables."""
        from bingo import models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            click.echo('Database has been reset!')

    @click.command('room-clear')
    @click.argument('room_id')
    def room_clear_command(room_id):
        """Purges the stored state of ROOM_ID."""
        from bingo.services.persistence import SqlRoomPersistence
        ok = SqlRoomPersistence(flask_app).clear(room_id)
        click.echo(f"Room {room_id} cleared." if ok else f"Could not clear room {room_id}.")

    @click.command('room-show')
    @click.argument('room_id')
    def room_show_command(room_id):
        """Prints the stored state of ROOM_ID as JSON."""
        from bingo.services.persistence import SqlRoomPersistence
        state = SqlRoomPersistence(flask_app).fetch(room_id)
        if state is None:
            click.echo(f"Room {room_id} not found.")
            return
        click.echo(json.dumps(state.to_dict(), indent=2))

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(room_clear_command)
    flask_app.cli.add_command(room_show_command)

    return flask_app
