import time
from typing import Set, Tuple

from blindheist import room_manager, socketio


_ticking: Set[Tuple[str, int]] = set()
_sweep_started = False


def _scheduler_disabled(app) -> bool:
    return bool(app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'))


def schedule_ticks(app, code: str) -> bool:
    """Start the fixed-rate tick loop for a room's current match.

    - No-ops in TESTING mode (tests call ``room_manager.tick`` directly)
    - Ensures a single loop per (room, match)
    - Exits once the match stops or the room disappears
    """
    if _scheduler_disabled(app):
        return False

    room = room_manager.get_room(code)
    if room is None or room.simulator is None:
        return False

    key = (room.code, id(room.simulator))
    if key in _ticking:
        app.logger.info(f"[tick-skip] room={room.code} already ticking")
        return False
    _ticking.add(key)

    interval = float(app.config.get('TICK_INTERVAL_SEC', 0.5))

    def _worker(room_code: str, loop_key: Tuple[str, int]):
        app.logger.info(f"[tick-start] room={room_code} interval={interval}s")
        ticks = 0
        try:
            while True:
                socketio.sleep(interval)
                try:
                    keep_going = room_manager.tick(room_code)
                except Exception:
                    app.logger.error(f"[tick-error] room={room_code}", exc_info=True)
                    break
                ticks += 1
                if not keep_going:
                    break
        finally:
            _ticking.discard(loop_key)
            app.logger.info(f"[tick-stop] room={room_code} ticks={ticks}")

    socketio.start_background_task(_worker, room.code, key)
    return True


def schedule_room_sweep(app) -> bool:
    """Start the periodic sweep that deletes stale waiting rooms."""
    global _sweep_started
    if _scheduler_disabled(app) or _sweep_started:
        return False
    every = int(app.config.get('CLEANUP_INTERVAL_SEC', 300))
    if every <= 0:
        return False
    _sweep_started = True

    def _worker():
        while True:
            socketio.sleep(every)
            started = time.time()
            try:
                removed = room_manager.cleanup()
            except Exception:
                app.logger.error("[sweep-error]", exc_info=True)
                continue
            app.logger.info(
                f"[sweep] removed={removed} rooms={len(room_manager.rooms)} took={time.time() - started:.3f}s"
            )

    socketio.start_background_task(_worker)
    return True
