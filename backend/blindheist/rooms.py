"""Session coordinator: room lifecycle, role assignment and action routing.

Each ``Room`` owns an ``RLock``; every mutation of a room (and of its match)
happens under it. The registry lock below only guards the code -> room map
and is never held while a tick or action runs.
"""
import logging
import random
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from blindheist.errors import (
    AlreadyInRoom,
    GameNotInProgress,
    InvalidPlayerCount,
    PlayerNotInRoom,
    ProtocolError,
    RoleNotPermitted,
    RoomFull,
    RoomNotAcceptingPlayers,
    RoomNotFound,
    SettingsLocked,
    UnknownAction,
)
from blindheist.models import (
    MAX_PARTICIPANTS,
    NAVIGATOR,
    ROOM_CLOSED,
    ROOM_PLAYING,
    ROOM_WAITING,
    Participant,
    Room,
)
from blindheist.services.heist import catalogue
from blindheist.services.heist.simulator import MatchSimulator
from blindheist.services.heist.state import MatchState

logger = logging.getLogger(__name__)

# No 0/O or 1/I
CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
CODE_LENGTH = 6


def generate_room_code(existing_codes, rng=random) -> str:
    """Generate a 6-character code not present in ``existing_codes``."""
    while True:
        code = ''.join(rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
        if code not in existing_codes:
            return code


class RoomManager:
    def __init__(self, clock: Callable[[], float] = time.time, rng=None):
        self.clock = clock
        self.rng = rng or random.Random()
        self.rooms: Dict[str, Room] = {}
        self._registry_lock = threading.Lock()
        self.default_settings = {'mapId': 'bank', 'difficulty': 'medium'}
        self.max_room_age = 30 * 60
        self.tick_interval = 0.5
        self.event_limit = 50
        self.event_view_limit = 15

    def init_app(self, app) -> None:
        cfg = app.config
        self.default_settings = {
            'mapId': cfg.get('DEFAULT_MAP_ID', 'bank'),
            'difficulty': cfg.get('DEFAULT_DIFFICULTY', 'medium'),
        }
        catalogue.validate(self.default_settings['mapId'], self.default_settings['difficulty'])
        self.max_room_age = int(cfg.get('ROOM_MAX_AGE_SEC', self.max_room_age))
        self.tick_interval = float(cfg.get('TICK_INTERVAL_SEC', self.tick_interval))
        self.event_limit = int(cfg.get('EVENT_LOG_LIMIT', self.event_limit))
        self.event_view_limit = int(cfg.get('EVENT_VIEW_LIMIT', self.event_view_limit))
        app.extensions['room_manager'] = self

    # ---- lookup ----

    @staticmethod
    def _normalize(code) -> str:
        if not isinstance(code, str) or not code.strip():
            raise ProtocolError('code is required')
        return code.strip().upper()

    def get_room(self, code) -> Optional[Room]:
        try:
            code = self._normalize(code)
        except ProtocolError:
            return None
        with self._registry_lock:
            return self.rooms.get(code)

    def _require_room(self, code) -> Room:
        room = self.get_room(code)
        if room is None:
            raise RoomNotFound(code)
        return room

    def maps(self) -> List[dict]:
        return catalogue.list_maps()

    # ---- lobby ----

    def create_room(self, player_id: str, sid: Optional[str] = None) -> Tuple[Room, Participant]:
        """Create a waiting room and seat its creator in the first role."""
        with self._registry_lock:
            code = generate_room_code(self.rooms, self.rng)
            room = Room(code=code, created_at=self.clock(), settings=dict(self.default_settings))
            self.rooms[code] = room
        logger.info(f"[room-created] code={code} by={player_id}")
        participant = self.join_room(code, player_id, sid)
        return room, participant

    def join_room(self, code, player_id: str, sid: Optional[str] = None) -> Participant:
        room = self._require_room(code)
        with room.lock:
            if room.status != ROOM_WAITING:
                raise RoomNotAcceptingPlayers()
            if room.is_full:
                raise RoomFull()
            if player_id in room.participants:
                raise AlreadyInRoom()

            role = room.available_roles.popleft()
            participant = Participant(id=player_id, role=role, sid=sid, joined_at=self.clock())
            room.participants[player_id] = participant
            logger.info(f"[room-join] code={room.code} player={player_id} role={role} count={len(room.participants)}")
            return participant

    def leave_room(self, code, player_id: str) -> Tuple[Optional[Participant], bool]:
        """Remove a participant. Returns ``(participant, room_deleted)``."""
        room = self.get_room(code)
        if room is None:
            return None, False
        with room.lock:
            participant = room.participants.pop(player_id, None)
            if participant is None:
                return None, False
            room.available_roles.appendleft(participant.role)
            logger.info(f"[room-leave] code={room.code} player={player_id} role={participant.role}")
            if room.participants:
                return participant, False
            self._close(room)
        self._forget(room)
        return participant, True

    def update_settings(self, code, settings: Dict[str, Any]) -> Dict[str, str]:
        room = self._require_room(code)
        if not isinstance(settings, dict):
            raise ProtocolError('settings must be an object')
        map_id = settings.get('mapId') or None
        difficulty = settings.get('difficulty') or None
        with room.lock:
            if room.status != ROOM_WAITING:
                raise SettingsLocked()
            catalogue.validate(map_id, difficulty)
            if map_id:
                room.settings['mapId'] = map_id
            if difficulty:
                room.settings['difficulty'] = difficulty
            logger.info(f"[room-settings] code={room.code} settings={room.settings}")
            return dict(room.settings)

    def players(self, code) -> List[Dict[str, Any]]:
        room = self.get_room(code)
        if room is None:
            return []
        with room.lock:
            return [p.to_dict() for p in room.participants.values()]

    def room_summary(self, code) -> Dict[str, Any]:
        room = self._require_room(code)
        with room.lock:
            return room.to_dict()

    # ---- match ----

    def start_game(self, code, on_state_change: Optional[Callable[[str], None]] = None) -> Room:
        room = self._require_room(code)
        with room.lock:
            if room.status != ROOM_WAITING:
                raise RoomNotAcceptingPlayers()
            if len(room.participants) != MAX_PARTICIPANTS:
                raise InvalidPlayerCount(MAX_PARTICIPANTS)

            state = MatchState(
                room.settings['mapId'],
                room.settings['difficulty'],
                clock=self.clock,
                rng=self.rng,
                event_limit=self.event_limit,
                event_view_limit=self.event_view_limit,
            )
            simulator = MatchSimulator(state, tick_interval=self.tick_interval)
            room.simulator = simulator
            room.status = ROOM_PLAYING

            callback = None
            if on_state_change is not None:
                room_code = room.code

                def callback():
                    on_state_change(room_code)

            simulator.start(callback)
            logger.info(
                f"[game-start] code={room.code} map={room.settings['mapId']} difficulty={room.settings['difficulty']}"
            )
            return room

    def route_action(self, code, player_id: str, action: Dict[str, Any]) -> Dict[str, Any]:
        """Apply one participant action to the room's match."""
        room = self._require_room(code)
        if not isinstance(action, dict):
            raise ProtocolError('action must be an object')
        with room.lock:
            if room.status != ROOM_PLAYING or room.simulator is None:
                raise GameNotInProgress()
            participant = room.participants.get(player_id)
            if participant is None:
                raise PlayerNotInRoom()

            kind = action.get('type')
            if kind == 'move':
                if participant.role != NAVIGATOR:
                    raise RoleNotPermitted('Only Navigator can move')
                moved = room.simulator.move_player(action.get('direction'))
                return {'type': 'move', 'moved': moved}
            if kind == 'ability':
                params = action.get('params') or {}
                if not isinstance(params, dict):
                    raise ProtocolError('params must be an object')
                room.simulator.use_ability(participant.role, action.get('abilityName'), params)
                return {'type': 'ability', 'abilityName': action.get('abilityName')}
            raise UnknownAction()

    def tick(self, code) -> bool:
        """Advance one room by one tick. Returns False once the room should stop ticking."""
        room = self.get_room(code)
        if room is None:
            return False
        with room.lock:
            simulator = room.simulator
            if simulator is None or not simulator.running:
                return False
            simulator.tick()
            return simulator.running

    def player_state(self, code, player_id: str, sound_events=None) -> Optional[Dict[str, Any]]:
        room = self.get_room(code)
        if room is None:
            return None
        with room.lock:
            participant = room.participants.get(player_id)
            if participant is None or room.simulator is None:
                return None
            return room.simulator.state.state_for_role(participant.role, sound_events=sound_events)

    def snapshots(self, code) -> List[Tuple[Participant, Dict[str, Any]]]:
        """One projection per participant, sharing a single drained sound batch."""
        room = self.get_room(code)
        if room is None:
            return []
        with room.lock:
            if room.simulator is None:
                return []
            state = room.simulator.state
            now = state.clock()
            batch = state.consume_sound_events()
            return [
                (p, state.state_for_role(p.role, now=now, sound_events=batch))
                for p in room.participants.values()
            ]

    # ---- teardown ----

    def _close(self, room: Room) -> None:
        # caller holds room.lock
        if room.simulator is not None:
            room.simulator.stop()
        room.status = ROOM_CLOSED
        logger.info(f"[room-closed] code={room.code}")

    def _forget(self, room: Room) -> None:
        with self._registry_lock:
            if self.rooms.get(room.code) is room:
                del self.rooms[room.code]

    def cleanup(self, now: Optional[float] = None) -> int:
        """Delete rooms still waiting after ``max_room_age``. Returns the count removed."""
        now = self.clock() if now is None else now
        with self._registry_lock:
            candidates = list(self.rooms.values())
        removed = 0
        for room in candidates:
            with room.lock:
                if room.status != ROOM_WAITING or now - room.created_at <= self.max_room_age:
                    continue
                self._close(room)
            self._forget(room)
            removed += 1
        if removed:
            logger.info(f"[room-sweep] removed={removed} remaining={len(self.rooms)}")
        return removed
