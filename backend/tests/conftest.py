import os
import random
import sys
import pytest

# Ensure the backend root (containing the `cranegame` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from cranegame import create_app, db, socketio
from cranegame.services.crane.engine import RoundEngine
from cranegame.services.crane.registry import sessions
from cranegame.services.crane.round_config import RoundConfig
from cranegame.services.crane.timers import ManualClock, TaskScheduler


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ALLOWED_ORIGINS = ['http://localhost:5173']
    GRID_SIZE = 6
    GAME_DURATION_SEC = 100
    VISIBLE_NORMAL_SEC = 1.0
    VISIBLE_LOW_TIER_SEC = 0.5
    CLEAR_DURATION_SEC = 0.75
    DROP_DELAY_SEC = 0.3
    CATCH_DISPLAY_SEC = 0.8
    LEADERBOARD_LIMIT = 10
    PLAYER_NAME_MAX_LEN = 20


@pytest.fixture()
def clock(monkeypatch):
    manual = ManualClock()
    # Sessions created through the app share the test's clock
    monkeypatch.setattr(sessions, 'clock', manual)
    return manual


@pytest.fixture()
def flask_app(clock):
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import cranegame.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()
    sessions.clear()


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


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, engine, event):
        self.events.append(event)


@pytest.fixture()
def scheduler():
    return TaskScheduler(ManualClock())


@pytest.fixture()
def events():
    return Recorder()


@pytest.fixture()
def engine(scheduler, events):
    return RoundEngine(RoundConfig(), scheduler, rng=random.Random(1234), on_change=events)


def advance(scheduler, seconds):
    """Move a manual-clock scheduler forward and run whatever fell due."""
    scheduler.clock.advance(seconds)
    return scheduler.run_due()
