import os
import sys
import pytest

# Ensure the backend root (containing the `blindheist` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from blindheist import create_app, room_manager, socketio
from blindheist.services.heist.simulator import MatchSimulator
from blindheist.services.heist.state import MatchState


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    CORS_ORIGINS = ['http://localhost:5173']
    TICK_INTERVAL_SEC = 0.5
    ROOM_MAX_AGE_SEC = 1800
    CLEANUP_INTERVAL_SEC = 0
    EVENT_LOG_LIMIT = 50
    EVENT_VIEW_LIMIT = 15
    DEFAULT_MAP_ID = 'bank'
    DEFAULT_DIFFICULTY = 'medium'


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start=1_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FixedRandom:
    """Stand-in for random.Random with a fixed roll.

    randint/choice always pick the low end, so results are predictable.
    """

    def __init__(self, roll=0.99):
        self.roll = roll

    def random(self):
        return self.roll

    def randint(self, a, b):
        return a

    def choice(self, seq):
        return seq[0]


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def quiet_rng():
    # 0.99 never triggers spikes, close calls or high alerts
    return FixedRandom(0.99)


@pytest.fixture()
def make_match(clock, quiet_rng):
    def _make(map_id='bank', difficulty='easy', rng=None, start=True):
        state = MatchState(map_id, difficulty, clock=clock, rng=rng or quiet_rng)
        simulator = MatchSimulator(state)
        if start:
            simulator.start()
        return state, simulator
    return _make


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    from blindheist.socketio_events import _sid_to_ctx
    room_manager.rooms.clear()
    _sid_to_ctx.clear()
    with application.app_context():
        yield application
    room_manager.rooms.clear()
    _sid_to_ctx.clear()


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


@pytest.fixture()
def sio_factory(flask_app):
    """Build extra Socket.IO clients; all are disconnected at teardown."""
    clients = []

    def _make():
        c = socketio.test_client(flask_app, namespace='/ws')
        clients.append(c)
        return c

    yield _make
    for c in clients:
        try:
            c.disconnect(namespace='/ws')
        except Exception:
            pass
