import math
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Optional

NAVIGATOR = 'navigator'
SECURITY = 'security'
LOOTMASTER = 'lootmaster'
ALARM_CONTROLLER = 'alarmcontroller'

# Pool order is the order roles are handed out to joiners
ROLES = (NAVIGATOR, SECURITY, LOOTMASTER, ALARM_CONTROLLER)
ROLE_NAMES = {
    NAVIGATOR: 'Navigator',
    SECURITY: 'Security',
    LOOTMASTER: 'Loot Master',
    ALARM_CONTROLLER: 'Alarm Controller',
}

MAX_PARTICIPANTS = len(ROLES)

ROOM_WAITING = 'waiting'
ROOM_PLAYING = 'playing'
ROOM_CLOSED = 'closed'

MATCH_PLAYING = 'playing'
MATCH_WON = 'won'
MATCH_LOST = 'lost'


@dataclass
class Camera:
    id: int
    x: int
    y: int
    direction: str
    rotates: bool
    fov_angle: float
    fov_range: float
    rotation_speed: float
    current_angle: float
    min_angle: float
    max_angle: float
    rotation_direction: int = 1  # 1 clockwise, -1 counter-clockwise
    disabled: bool = False
    disabled_until: float = 0.0

    def is_disabled(self, now: float) -> bool:
        return self.disabled and self.disabled_until > now

    def to_dict(self, now: Optional[float] = None) -> Dict[str, Any]:
        disabled = self.disabled if now is None else self.is_disabled(now)
        return {
            'id': self.id,
            'x': self.x,
            'y': self.y,
            'direction': self.direction,
            'rotates': self.rotates,
            'fovAngle': self.fov_angle,
            'fovRange': self.fov_range,
            'rotationSpeed': self.rotation_speed,
            'currentAngle': self.current_angle % 360,
            'rotationDirection': self.rotation_direction,
            'minAngle': self.min_angle,
            'maxAngle': self.max_angle,
            'disabled': disabled,
            'disabledUntil': self.disabled_until,
        }


@dataclass
class Loot:
    id: int
    x: int
    y: int
    type: str
    value: int
    collected: bool = False
    pinged: bool = False
    ping_until: float = 0.0

    def is_pinged(self, now: float) -> bool:
        return self.pinged and self.ping_until > now

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'x': self.x,
            'y': self.y,
            'type': self.type,
            'value': self.value,
            'collected': self.collected,
            'pinged': self.pinged,
            'pingUntil': self.ping_until,
        }


@dataclass
class Alarm:
    countdown: int
    start_countdown: int
    level: float = 0
    max_level: float = 100
    is_triggered: bool = False

    def raise_by(self, amount: float) -> float:
        """Raise the level, clamped to max. Returns the new level."""
        self.level = min(self.max_level, self.level + amount)
        return self.level

    def lower_by(self, amount: float) -> float:
        self.level = max(0, self.level - amount)
        return self.level

    @property
    def maxed(self) -> bool:
        return self.level >= self.max_level

    def to_dict(self) -> Dict[str, Any]:
        return {
            'level': self.level,
            'maxLevel': self.max_level,
            'countdown': self.countdown,
            'startCountdown': self.start_countdown,
            'isTriggered': self.is_triggered,
        }


@dataclass
class Ability:
    cooldown: float
    duration: float = 0.0
    reduction: float = 0.0
    cooldown_end: float = 0.0
    active: bool = False
    active_until: float = 0.0

    def ready(self, now: float) -> bool:
        return self.cooldown_end <= now

    def view(self, now: float) -> Dict[str, Any]:
        return {
            'available': self.ready(now),
            'cooldownRemaining': _ceil_seconds(self.cooldown_end - now),
            'active': self.active and self.active_until > now,
            'activeRemaining': _ceil_seconds(self.active_until - now) if self.active_until else 0,
        }


def _ceil_seconds(delta: float) -> int:
    return max(0, math.ceil(delta))


@dataclass
class GameEvent:
    id: int
    type: str  # info, success, warning, danger
    message: str
    timestamp: float
    tick: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'message': self.message,
            'timestamp': self.timestamp,
            'tick': self.tick,
        }


@dataclass
class Stats:
    times_detected: int = 0
    close_call_count: int = 0
    peak_alarm: float = 0
    movement_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timesDetected': self.times_detected,
            'closeCallCount': self.close_call_count,
            'peakAlarm': self.peak_alarm,
            'movementCount': self.movement_count,
        }


@dataclass
class Participant:
    id: str
    role: str
    sid: Optional[str] = None
    ready: bool = False
    joined_at: float = 0.0

    @property
    def role_name(self) -> str:
        return ROLE_NAMES[self.role]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'role': self.role,
            'roleName': self.role_name,
            'ready': self.ready,
        }


@dataclass
class Room:
    code: str
    created_at: float
    settings: Dict[str, str]
    status: str = ROOM_WAITING
    participants: Dict[str, Participant] = field(default_factory=dict)
    available_roles: Deque[str] = field(default_factory=lambda: deque(ROLES))
    simulator: Any = None
    lock: Any = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def is_full(self) -> bool:
        return len(self.participants) >= MAX_PARTICIPANTS

    @property
    def can_start(self) -> bool:
        return self.status == ROOM_WAITING and len(self.participants) == MAX_PARTICIPANTS

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'status': self.status,
            'players': [p.to_dict() for p in self.participants.values()],
            'settings': dict(self.settings),
            'createdAt': self.created_at,
            'canStart': self.can_start,
        }
