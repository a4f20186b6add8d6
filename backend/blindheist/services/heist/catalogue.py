"""Layout catalogue: map presets and per-difficulty tuning.

Pure data. ``build_layout`` turns a preset into a fresh grid plus entity
lists; callers own the returned cameras and loot and may mutate them.
"""
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Tuple

from blindheist.errors import InvalidSettings
from blindheist.models import Camera, Loot


class CellKind(IntEnum):
    FLOOR = 0
    WALL = 1
    DOOR = 2
    ENTRY = 3
    EXIT = 4


class UnknownMap(InvalidSettings):
    def __init__(self, map_id):
        self.map_id = map_id
        super().__init__('Unknown map')


class UnknownDifficulty(InvalidSettings):
    def __init__(self, difficulty):
        self.difficulty = difficulty
        super().__init__('Unknown difficulty')


DIFFICULTIES = ('easy', 'medium', 'hard')


@dataclass(frozen=True)
class Tuning:
    countdown_seconds: int
    alarm_decay_per_tick: float
    alarm_spike_probability_per_tick: float
    camera_detect_increment: float
    loot_alarm_base_increment: float

    def to_dict(self):
        return {
            'countdownSeconds': self.countdown_seconds,
            'alarmDecayPerTick': self.alarm_decay_per_tick,
            'alarmSpikeProbabilityPerTick': self.alarm_spike_probability_per_tick,
            'cameraDetectIncrement': self.camera_detect_increment,
            'lootAlarmBaseIncrement': self.loot_alarm_base_increment,
        }


TUNING: Dict[str, Tuning] = {
    # 4 minutes, fast decay, rare spikes
    'easy': Tuning(240, 2, 0.03, 3, 5),
    'medium': Tuning(180, 1, 0.05, 5, 10),
    # 2 minutes, slow decay, frequent spikes
    'hard': Tuning(120, 0.5, 0.08, 8, 15),
}

# Camera sweep speed (deg/s), cone width (deg) and reach (cells)
CAMERA_TUNING = {
    'easy': {'rotation_speed': 15, 'fov_angle': 50, 'fov_range': 3},
    'medium': {'rotation_speed': 25, 'fov_angle': 60, 'fov_range': 4},
    'hard': {'rotation_speed': 40, 'fov_angle': 70, 'fov_range': 5},
}

SWEEP_HALF_WIDTH = 45

LOOT_VALUES = {
    'diamond': 150,
    'gold': 100,
    'cash': 50,
    'artifact': 200,
    'jewel': 75,
}

FACING_ANGLES = {
    'right': 0,
    'down': 90,
    'left': 180,
    'up': 270,
}

MAP_PRESETS = {
    'bank': {
        'name': 'The Bank',
        'difficulty': 'easy',
        'width': 20,
        'height': 15,
        'rooms': [
            (1, 10, 5, 4),   # entry
            (13, 1, 6, 5),   # vault
            (7, 3, 5, 4),
            (7, 9, 6, 4),
            (1, 2, 4, 4),
        ],
        'corridors': [
            (5, 12, 7, 12),
            (7, 7, 7, 9),
            (4, 4, 7, 4),
            (12, 5, 12, 9),
            (12, 5, 13, 5),
            (10, 11, 15, 11),
        ],
        'doors': [(6, 12), (7, 7), (12, 6), (13, 3)],
        'entry': (2, 12),
        'exit': (16, 3),
        'cameras': [
            (10, 5, 'down', False),
            (15, 2, 'left', False),
            (5, 4, 'right', False),
            (13, 10, 'up', False),
        ],
        'loot': [
            (17, 2, 'diamond'),
            (15, 4, 'gold'),
            (9, 4, 'cash'),
            (8, 11, 'jewel'),
            (3, 3, 'artifact'),
        ],
    },
    'museum': {
        'name': 'The Museum',
        'difficulty': 'medium',
        'width': 24,
        'height': 16,
        'rooms': [
            (1, 12, 4, 3),   # entry
            (19, 1, 4, 4),   # vault
            (8, 1, 6, 4),
            (1, 1, 5, 5),
            (8, 8, 8, 5),    # main hall
            (18, 8, 5, 6),
        ],
        'corridors': [
            (3, 12, 3, 8),
            (3, 8, 8, 8),
            (5, 3, 8, 3),
            (14, 3, 19, 3),
            (14, 3, 14, 8),
            (16, 10, 18, 10),
            (20, 5, 20, 8),
        ],
        'doors': [(3, 11), (6, 3), (17, 3), (17, 10), (20, 6)],
        'entry': (2, 13),
        'exit': (21, 2),
        'cameras': [
            (11, 2, 'down', True),
            (3, 2, 'right', True),
            (12, 10, 'left', True),
            (20, 10, 'up', False),
            (18, 4, 'down', True),
        ],
        'loot': [
            (21, 3, 'diamond'),
            (10, 2, 'artifact'),
            (2, 3, 'artifact'),
            (12, 11, 'gold'),
            (20, 12, 'jewel'),
            (21, 9, 'gold'),
        ],
    },
    'fortress': {
        'name': 'The Fortress',
        'difficulty': 'hard',
        'width': 26,
        'height': 18,
        'rooms': [
            (1, 14, 4, 3),   # entry
            (21, 1, 4, 4),   # vault
            (11, 7, 4, 4),
            (1, 1, 5, 5),
            (1, 7, 4, 5),
            (7, 1, 5, 4),
            (14, 1, 5, 4),
            (17, 7, 4, 5),
            (7, 13, 6, 4),
            (17, 13, 5, 4),
        ],
        'corridors': [
            (4, 14, 7, 14),
            (3, 6, 3, 7),
            (3, 12, 3, 14),
            (5, 3, 7, 3),
            (12, 3, 14, 3),
            (19, 3, 21, 3),
            (15, 9, 17, 9),
            (11, 9, 11, 11),
            (9, 11, 11, 11),
            (9, 11, 9, 13),
            (13, 15, 17, 15),
            (19, 12, 19, 13),
            (21, 5, 21, 7),
            (19, 7, 21, 7),
        ],
        'doors': [
            (5, 14), (3, 6), (6, 3), (13, 3), (20, 3),
            (16, 9), (10, 14), (19, 12), (21, 6),
        ],
        'entry': (2, 15),
        'exit': (23, 2),
        'cameras': [
            (9, 2, 'down', True),
            (16, 2, 'down', True),
            (13, 9, 'right', True),
            (3, 9, 'right', True),
            (19, 9, 'left', True),
            (10, 15, 'up', True),
            (22, 4, 'left', False),
        ],
        'loot': [
            (23, 3, 'diamond'),
            (22, 2, 'diamond'),
            (13, 9, 'artifact'),
            (2, 2, 'gold'),
            (9, 14, 'gold'),
            (19, 15, 'jewel'),
            (2, 9, 'cash'),
        ],
    },
}

Grid = Tuple[Tuple[CellKind, ...], ...]


@dataclass
class Layout:
    map_id: str
    name: str
    width: int
    height: int
    grid: Grid
    entry: Tuple[int, int]
    exit: Tuple[int, int]
    cameras: List[Camera]
    loot: List[Loot]
    tuning: Tuning


def _preset(map_id: str) -> dict:
    try:
        return MAP_PRESETS[map_id]
    except (KeyError, TypeError):
        raise UnknownMap(map_id) from None


def get_tuning(difficulty: str) -> Tuning:
    try:
        return TUNING[difficulty]
    except (KeyError, TypeError):
        raise UnknownDifficulty(difficulty) from None


def validate(map_id=None, difficulty=None) -> None:
    """Raise ``UnknownMap``/``UnknownDifficulty`` for ids the catalogue lacks."""
    if map_id is not None:
        _preset(map_id)
    if difficulty is not None:
        get_tuning(difficulty)


def _carve_grid(config: dict) -> Grid:
    width, height = config['width'], config['height']
    cells = [[CellKind.WALL] * width for _ in range(height)]

    def inside(x, y):
        return 0 <= x < width and 0 <= y < height

    for rx, ry, rw, rh in config['rooms']:
        for y in range(ry, ry + rh):
            for x in range(rx, rx + rw):
                if inside(x, y):
                    cells[y][x] = CellKind.FLOOR

    # L-shaped: horizontal along y1, then vertical along x2
    for x1, y1, x2, y2 in config['corridors']:
        for x in range(min(x1, x2), max(x1, x2) + 1):
            if inside(x, y1) and cells[y1][x] == CellKind.WALL:
                cells[y1][x] = CellKind.FLOOR
        for y in range(min(y1, y2), max(y1, y2) + 1):
            if inside(x2, y) and cells[y][x2] == CellKind.WALL:
                cells[y][x2] = CellKind.FLOOR

    for x, y in config['doors']:
        if inside(x, y):
            cells[y][x] = CellKind.DOOR

    ex, ey = config['entry']
    cells[ey][ex] = CellKind.ENTRY
    xx, xy = config['exit']
    cells[xy][xx] = CellKind.EXIT

    return tuple(tuple(row) for row in cells)


def _build_cameras(config: dict, difficulty: str) -> List[Camera]:
    mods = CAMERA_TUNING[difficulty]
    cameras = []
    for i, (x, y, direction, rotates) in enumerate(config['cameras']):
        facing = FACING_ANGLES.get(direction, 0)
        cameras.append(Camera(
            id=i,
            x=x,
            y=y,
            direction=direction,
            rotates=rotates,
            fov_angle=mods['fov_angle'],
            fov_range=mods['fov_range'],
            rotation_speed=mods['rotation_speed'] if rotates else 0,
            current_angle=facing,
            min_angle=facing - SWEEP_HALF_WIDTH,
            max_angle=facing + SWEEP_HALF_WIDTH,
        ))
    return cameras


def _build_loot(config: dict) -> List[Loot]:
    return [
        Loot(id=i, x=x, y=y, type=kind, value=LOOT_VALUES[kind])
        for i, (x, y, kind) in enumerate(config['loot'])
    ]


def build_layout(map_id: str, difficulty: str) -> Layout:
    config = _preset(map_id)
    tuning = get_tuning(difficulty)
    return Layout(
        map_id=map_id,
        name=config['name'],
        width=config['width'],
        height=config['height'],
        grid=_carve_grid(config),
        entry=tuple(config['entry']),
        exit=tuple(config['exit']),
        cameras=_build_cameras(config, difficulty),
        loot=_build_loot(config),
        tuning=tuning,
    )


def list_maps() -> List[dict]:
    """Catalogue listing for lobby display."""
    return [
        {
            'id': map_id,
            'name': config['name'],
            'difficulty': config['difficulty'],
            'size': f"{config['width']}x{config['height']}",
            'width': config['width'],
            'height': config['height'],
            'lootCount': len(config['loot']),
            'cameraCount': len(config['cameras']),
        }
        for map_id, config in MAP_PRESETS.items()
    ]
