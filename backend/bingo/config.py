import os


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///bingo.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Comma separated; '*' allows any origin
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000')
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/ws')
    # Draw spin: number of frames and delay between frames (ms)
    DRAW_ANIMATION_STEPS = int(os.environ.get('DRAW_ANIMATION_STEPS', '10'))
    DRAW_STEP_MS = int(os.environ.get('DRAW_STEP_MS', '100'))
    # How long a departed player's name stays in the roster (sec). 0 disables.
    PRESENCE_GRACE_SEC = float(os.environ.get('PRESENCE_GRACE_SEC', '2'))
    ROOM_ID_LENGTH = int(os.environ.get('ROOM_ID_LENGTH', '6'))


def parse_origins(value):
    if not value or value.strip() == '*':
        return '*'
    return [o.strip() for o in value.split(',') if o.strip()]
