import os
import sys
import pytest

# Ensure the backend root (containing the `bingo` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from bingo import create_app, db, socketio
from bingo.sync import DrawAnimation, HostSession, LocalHub, MemoryPersistence, MemoryStore, PlayerSession


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = '*'
    SOCKETIO_NAMESPACE = '/ws'
    DRAW_ANIMATION_STEPS = 3
    DRAW_STEP_MS = 0
    PRESENCE_GRACE_SEC = 0
    ROOM_ID_LENGTH = 6


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import bingo.models  # noqa: F401
        db.create_all()
        from bingo.socketio_events import reset_relay_state
        reset_relay_state()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


# ---- in-process room fixtures ----

@pytest.fixture()
def hub():
    return LocalHub()


@pytest.fixture()
def persistence():
    return MemoryPersistence()


@pytest.fixture()
def make_host(hub, persistence):
    def _make(room_id='abc123', store=None, **kwargs):
        kwargs.setdefault('animation', DrawAnimation(steps=3, step_delay=0))
        kwargs.setdefault('persistence', persistence)
        session = HostSession(hub.connect(), room_id, store=store or MemoryStore(),
                              client_id=kwargs.pop('client_id', 'host-device'), **kwargs)
        return session
    return _make


@pytest.fixture()
def make_player(hub):
    def _make(client_id, room_id='abc123', store=None, username=None, **kwargs):
        kwargs.setdefault('animation', DrawAnimation(steps=3, step_delay=0))
        return PlayerSession(hub.connect(), room_id, store=store or MemoryStore(), client_id=client_id,
                             username=username or client_id.title(), **kwargs)
    return _make
