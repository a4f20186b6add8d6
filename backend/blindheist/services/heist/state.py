"""Authoritative match state for one room, plus per-role projections.

``MatchState`` is plain data with a few read helpers. Only the owning
``MatchSimulator`` mutates it; everything a participant sees comes out of
``project``.
"""
import random
import time
from typing import Any, Callable, Dict, List, Optional

from blindheist.models import (
    ALARM_CONTROLLER,
    LOOTMASTER,
    MATCH_PLAYING,
    NAVIGATOR,
    SECURITY,
    Ability,
    Alarm,
    GameEvent,
    Stats,
)
from .catalogue import CellKind, build_layout
from .scoring import calculate_final_score

# Per-role ability timers (seconds)
ABILITY_SPECS = {
    NAVIGATOR: {
        'peek': {'duration': 5, 'cooldown': 30},
    },
    SECURITY: {
        'disableCamera': {'duration': 10, 'cooldown': 45},
    },
    LOOTMASTER: {
        'pingLoot': {'duration': 8, 'cooldown': 20},
    },
    ALARM_CONTROLLER: {
        'silenceAlarm': {'reduction': 25, 'cooldown': 60},
    },
}

DEFAULT_EVENT_LIMIT = 50
DEFAULT_EVENT_VIEW_LIMIT = 15


class MatchState:
    def __init__(
        self,
        map_id: str = 'bank',
        difficulty: str = 'medium',
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        event_limit: int = DEFAULT_EVENT_LIMIT,
        event_view_limit: int = DEFAULT_EVENT_VIEW_LIMIT,
    ):
        self.map_id = map_id
        self.difficulty = difficulty
        self.clock = clock
        self.rng = rng or random.Random()
        self.event_limit = event_limit
        self.event_view_limit = event_view_limit
        self.reset()

    def reset(self) -> None:
        layout = build_layout(self.map_id, self.difficulty)

        self.map_name = layout.name
        self.width = layout.width
        self.height = layout.height
        self.grid = layout.grid
        self.entry = {'x': layout.entry[0], 'y': layout.entry[1]}
        self.exit = {'x': layout.exit[0], 'y': layout.exit[1]}
        self.player = dict(self.entry)
        self.cameras = layout.cameras
        self.loot = layout.loot
        self.tuning = layout.tuning

        self.alarm = Alarm(
            countdown=layout.tuning.countdown_seconds,
            start_countdown=layout.tuning.countdown_seconds,
        )
        self.abilities: Dict[str, Dict[str, Ability]] = {
            role: {name: Ability(**spec) for name, spec in specs.items()}
            for role, specs in ABILITY_SPECS.items()
        }

        self.events: List[GameEvent] = []
        self._next_event_id = 0
        self.sound_events: List[Dict[str, Any]] = []

        self.status = MATCH_PLAYING
        self.end_reason: Optional[str] = None
        self.final_score: Optional[Dict[str, Any]] = None
        self.collected_loot = []
        self.score = 0
        self.stats = Stats()
        self.tick = 0
        self.started_at = self.clock()

    # ---- grid ----

    def cell_at(self, x: int, y: int) -> CellKind:
        if x < 0 or x >= self.width or y < 0 or y >= self.height:
            return CellKind.WALL
        return self.grid[y][x]

    def is_walkable(self, x: int, y: int) -> bool:
        return self.cell_at(x, y) != CellKind.WALL

    @property
    def on_exit(self) -> bool:
        return self.player['x'] == self.exit['x'] and self.player['y'] == self.exit['y']

    @property
    def is_over(self) -> bool:
        return self.status != MATCH_PLAYING

    @property
    def elapsed_seconds(self) -> int:
        return self.alarm.start_countdown - self.alarm.countdown

    @property
    def total_loot_value(self) -> int:
        return sum(item.value for item in self.loot)

    # ---- logs and notifications ----

    def add_event(self, kind: str, message: str) -> GameEvent:
        event = GameEvent(
            id=self._next_event_id,
            type=kind,
            message=message,
            timestamp=self.clock(),
            tick=self.tick,
        )
        self._next_event_id += 1
        self.events.append(event)
        if len(self.events) > self.event_limit:
            del self.events[:-self.event_limit]
        return event

    def add_sound_event(self, kind: str) -> None:
        self.sound_events.append({'type': kind, 'timestamp': self.clock()})

    def consume_sound_events(self) -> List[Dict[str, Any]]:
        drained, self.sound_events = self.sound_events, []
        return drained

    # ---- scoring and views ----

    def calculate_final_score(self) -> Dict[str, Any]:
        return calculate_final_score(self)

    def ability_view(self, role: str, now: float) -> Dict[str, Any]:
        return {name: ability.view(now) for name, ability in self.abilities.get(role, {}).items()}

    def state_for_role(self, role: str, now: Optional[float] = None, sound_events=None) -> Dict[str, Any]:
        return project(self, role, now=now, sound_events=sound_events)

    def to_dict(self) -> Dict[str, Any]:
        """Unfiltered snapshot, for debugging and tests only."""
        return {
            'mapId': self.map_id,
            'difficulty': self.difficulty,
            'map': self._map_dict(),
            'player': dict(self.player),
            'entry': dict(self.entry),
            'exit': dict(self.exit),
            'cameras': [c.to_dict() for c in self.cameras],
            'loot': [item.to_dict() for item in self.loot],
            'alarm': self.alarm.to_dict(),
            'events': [e.to_dict() for e in self.events],
            'status': self.status,
            'score': self.score,
            'tick': self.tick,
            'stats': self.stats.to_dict(),
        }

    def _map_dict(self) -> Dict[str, Any]:
        return {
            'width': self.width,
            'height': self.height,
            'cells': [[int(cell) for cell in row] for row in self.grid],
            'name': self.map_name,
        }


def project(state: MatchState, role: str, now: Optional[float] = None, sound_events=None) -> Dict[str, Any]:
    """Role-specific view of ``state``.

    ``sound_events`` lets a broadcaster drain the queue once and hand the same
    batch to every participant; when omitted, this projection drains it.
    """
    if now is None:
        now = state.clock()
    if role not in ABILITY_SPECS:
        raise ValueError(f'Unknown role: {role}')

    view: Dict[str, Any] = {
        'status': state.status,
        'tick': state.tick,
        'mapId': state.map_id,
        'difficulty': state.difficulty,
        'role': role,
        'ability': state.ability_view(role, now),
    }
    map_size = {'width': state.width, 'height': state.height}

    if role == NAVIGATOR:
        peek = state.abilities[NAVIGATOR]['peek']
        view.update({
            'map': state._map_dict(),
            'player': dict(state.player),
            'entry': dict(state.entry),
            'exit': dict(state.exit),
            'score': state.score,
            'collectedCount': len(state.collected_loot),
            'totalLoot': len(state.loot),
            'peekActive': peek.active and peek.active_until > now,
            'pingedLoot': [
                {'x': item.x, 'y': item.y, 'type': item.type}
                for item in state.loot if item.is_pinged(now)
            ],
        })
    elif role == SECURITY:
        view.update({
            'cameras': [camera.to_dict(now) for camera in state.cameras],
            'mapSize': map_size,
        })
    elif role == LOOTMASTER:
        view.update({
            'loot': [item.to_dict() for item in state.loot],
            'collectedLoot': [item.to_dict() for item in state.collected_loot],
            'mapSize': map_size,
            'score': state.score,
        })
    else:
        view.update({
            'alarm': state.alarm.to_dict(),
            'events': [e.to_dict() for e in state.events[-state.event_view_limit:]],
            'stats': state.stats.to_dict(),
        })

    view['soundEvents'] = state.consume_sound_events() if sound_events is None else list(sound_events)

    if state.is_over and state.final_score is not None:
        view['finalScore'] = dict(state.final_score)
        view['endReason'] = state.end_reason

    return view
