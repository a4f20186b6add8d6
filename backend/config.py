import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Allowed browser origins for HTTP and Socket.IO (comma-separated)
    CORS_ORIGINS = [o.strip() for o in os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000',
    ).split(',') if o.strip()]
    # Simulation tick period (seconds)
    TICK_INTERVAL_SEC = float(os.environ.get('TICK_INTERVAL_SEC', '0.5'))
    # Rooms still waiting after this long are swept (seconds)
    ROOM_MAX_AGE_SEC = int(os.environ.get('ROOM_MAX_AGE_SEC', '1800'))
    # Interval between stale-room sweeps (seconds). 0 disables the sweep.
    CLEANUP_INTERVAL_SEC = int(os.environ.get('CLEANUP_INTERVAL_SEC', '300'))
    # Event log retention and the slice shown to the alarm controller
    EVENT_LOG_LIMIT = int(os.environ.get('EVENT_LOG_LIMIT', '50'))
    EVENT_VIEW_LIMIT = int(os.environ.get('EVENT_VIEW_LIMIT', '15'))
    # Lobby defaults for newly created rooms
    DEFAULT_MAP_ID = os.environ.get('DEFAULT_MAP_ID', 'bank')
    DEFAULT_DIFFICULTY = os.environ.get('DEFAULT_DIFFICULTY', 'medium')
