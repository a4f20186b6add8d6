"""Match simulator: the only writer of a room's ``MatchState``.

Callers serialize access (the room lock); nothing in here blocks or sleeps.
The fixed-rate loop that calls ``tick`` lives in ``scheduler``.
"""
import logging
import math
from typing import Any, Callable, Dict, Optional

from blindheist.errors import (
    AbilityOnCooldown,
    InvalidDirection,
    InvalidTarget,
    MatchOver,
    TargetAlreadyCollected,
    UnknownAbility,
)
from blindheist.models import (
    ALARM_CONTROLLER,
    LOOTMASTER,
    MATCH_LOST,
    MATCH_PLAYING,
    MATCH_WON,
    NAVIGATOR,
    SECURITY,
    Camera,
)

logger = logging.getLogger(__name__)

DIRECTIONS = {
    'up': (0, -1),
    'down': (0, 1),
    'left': (-1, 0),
    'right': (1, 0),
}

# countdown value -> (event type, message, sound)
TIME_WARNINGS = {
    60: ('warning', '⏱️ 60 seconds remaining!', 'warning'),
    30: ('danger', '⚠️ 30 seconds remaining!', 'warning_urgent'),
    10: ('danger', '🚨 FINAL 10 SECONDS!', 'alarm_critical'),
}

SPIKE_MESSAGES = (
    '👮 Security patrol passing by...',
    '🔊 Suspicious noise detected!',
    '📡 Motion sensor triggered!',
    '🚶 Guard checking area...',
    '🐀 Rats triggered motion detector!',
    '💨 Ventilation anomaly detected!',
)

COUNTDOWN_EVERY_TICKS = 2
DECAY_EVERY_TICKS = 4
SPIKE_MIN, SPIKE_MAX = 3, 10
LOOT_ALARM_JITTER = 4
CLOSE_CALL_CHANCE = 0.3
NEAR_MISS_ANGLE = 15
NEAR_MISS_RANGE = 1
ESCALATE_AFTER_SECONDS = 30
ESCALATE_EVERY_TICKS = 60
ESCALATE_FACTOR = 1.05
MAX_ROTATION_SPEED = 60
ALERT_WINDOW_SECONDS = 60
ALERT_EVERY_TICKS = 30
ALERT_CHANCE = 0.3

REASON_TIME = 'Time ran out!'
REASON_DETECTED = 'Alarm reached maximum! Security arrived!'
REASON_ALARM = 'Alarm reached maximum!'


def _bearing(dx: float, dy: float) -> float:
    angle = math.degrees(math.atan2(dy, dx))
    return angle + 360 if angle < 0 else angle


def _angle_between(a: float, b: float) -> float:
    diff = abs(a - b) % 360
    return 360 - diff if diff > 180 else diff


def is_in_camera_fov(px: int, py: int, camera: Camera) -> bool:
    dx = px - camera.x
    dy = py - camera.y
    dist = math.hypot(dx, dy)
    if dist == 0 or dist > camera.fov_range:
        return False
    return _angle_between(camera.current_angle, _bearing(dx, dy)) <= camera.fov_angle / 2


def is_near_camera_fov(px: int, py: int, camera: Camera) -> bool:
    """True in the band just outside the cone: wider by 15 deg a side, one cell longer."""
    dx = px - camera.x
    dy = py - camera.y
    dist = math.hypot(dx, dy)
    if dist == 0 or dist > camera.fov_range + NEAR_MISS_RANGE:
        return False
    diff = _angle_between(camera.current_angle, _bearing(dx, dy))
    half = camera.fov_angle / 2
    if diff > half + NEAR_MISS_ANGLE:
        return False
    # Inside the cone angle but beyond range is still a near miss
    return diff > half or dist > camera.fov_range


class MatchSimulator:
    def __init__(self, state, tick_interval: float = 0.5):
        self.state = state
        self.tick_interval = tick_interval
        self.running = False
        self.on_state_change: Optional[Callable[[], None]] = None
        self._warnings_fired = set()
        self._exit_refusal_logged = False

    # ---- lifecycle ----

    def start(self, on_state_change: Optional[Callable[[], None]] = None) -> None:
        state = self.state
        self.on_state_change = on_state_change
        self.running = True
        state.status = MATCH_PLAYING
        state.add_event('info', f'🎭 Heist started on {state.map_name}!')
        state.add_event('info', f'Difficulty: {state.difficulty.upper()}')
        state.add_sound_event('game_start')
        logger.info(f"[match-start] map={state.map_id} difficulty={state.difficulty}")

    def stop(self) -> None:
        self.running = False

    def _notify(self) -> None:
        if self.on_state_change:
            self.on_state_change()

    # ---- tick ----

    def tick(self) -> None:
        state = self.state
        if state.status != MATCH_PLAYING:
            self.stop()
            return

        state.tick += 1
        self._advance(state.clock())
        self._notify()

    def _advance(self, now: float) -> None:
        state = self.state
        self._update_cameras(now)

        if state.tick % COUNTDOWN_EVERY_TICKS == 0:
            state.alarm.countdown -= 1
            if state.alarm.countdown <= 0:
                state.alarm.countdown = 0
                self._lose(REASON_TIME)
                return
            self._check_time_warnings()

        self._check_camera_detection(now)
        if state.is_over:
            return

        if state.rng.random() < state.tuning.alarm_spike_probability_per_tick:
            self._random_alarm_spike()

        if state.tick % DECAY_EVERY_TICKS == 0 and state.alarm.level > 0:
            state.alarm.lower_by(state.tuning.alarm_decay_per_tick)

        self._track_peak_alarm()

        self.check_win_lose()
        if state.is_over:
            return

        self._escalate_difficulty()

    def _update_cameras(self, now: float) -> None:
        for camera in self.state.cameras:
            if camera.is_disabled(now):
                continue
            if camera.disabled:
                camera.disabled = False

            if not (camera.rotates and camera.rotation_speed > 0):
                continue
            camera.current_angle += camera.rotation_speed * camera.rotation_direction * self.tick_interval
            if camera.current_angle >= camera.max_angle:
                camera.current_angle = camera.max_angle
                camera.rotation_direction = -1
            elif camera.current_angle <= camera.min_angle:
                camera.current_angle = camera.min_angle
                camera.rotation_direction = 1

    def _check_time_warnings(self) -> None:
        countdown = self.state.alarm.countdown
        warning = TIME_WARNINGS.get(countdown)
        if warning is None or countdown in self._warnings_fired:
            return
        self._warnings_fired.add(countdown)
        kind, message, sound = warning
        self.state.add_event(kind, message)
        self.state.add_sound_event(sound)

    def _check_camera_detection(self, now: float) -> None:
        state = self.state
        px, py = state.player['x'], state.player['y']
        close_call = False

        for camera in state.cameras:
            if camera.is_disabled(now):
                continue
            if is_in_camera_fov(px, py, camera):
                state.alarm.raise_by(state.tuning.camera_detect_increment)
                state.alarm.is_triggered = True
                state.add_event('danger', f'🚨 Camera {camera.id + 1} detected movement!')
                state.add_sound_event('detected')
                state.stats.times_detected += 1
                self._track_peak_alarm()
                if state.alarm.maxed:
                    self._lose(REASON_DETECTED)
                return
            if is_near_camera_fov(px, py, camera):
                close_call = True

        if close_call and state.rng.random() < CLOSE_CALL_CHANCE:
            state.add_event('warning', '😰 Close call! Camera almost spotted you!')
            state.add_sound_event('close_call')
            state.stats.close_call_count += 1

    def _random_alarm_spike(self) -> None:
        state = self.state
        amount = state.rng.randint(SPIKE_MIN, SPIKE_MAX)
        state.alarm.raise_by(amount)
        state.add_event('warning', state.rng.choice(SPIKE_MESSAGES))
        state.add_sound_event('alarm_spike')

    def _track_peak_alarm(self) -> None:
        stats = self.state.stats
        if self.state.alarm.level > stats.peak_alarm:
            stats.peak_alarm = self.state.alarm.level

    def _escalate_difficulty(self) -> None:
        state = self.state
        if state.elapsed_seconds > ESCALATE_AFTER_SECONDS and state.tick % ESCALATE_EVERY_TICKS == 0:
            for camera in state.cameras:
                if camera.rotates:
                    camera.rotation_speed = min(camera.rotation_speed * ESCALATE_FACTOR, MAX_ROTATION_SPEED)

        if state.alarm.countdown <= ALERT_WINDOW_SECONDS and state.tick % ALERT_EVERY_TICKS == 0:
            if state.rng.random() < ALERT_CHANCE:
                state.add_event('danger', '🚨 Security on high alert!')
                state.add_sound_event('alert_escalate')

    # ---- win / lose ----

    def check_win_lose(self) -> None:
        state = self.state
        if state.is_over:
            return

        if state.on_exit:
            if state.collected_loot:
                self._win()
                return
            if not self._exit_refusal_logged:
                self._exit_refusal_logged = True
                state.add_event('info', '❌ You need at least one loot item to escape!')
        else:
            self._exit_refusal_logged = False

        if state.alarm.maxed:
            self._lose(REASON_ALARM)

    def _win(self) -> None:
        state = self.state
        state.status = MATCH_WON
        state.final_score = state.calculate_final_score()
        state.add_event('success', '🏆 HEIST SUCCESSFUL!')
        state.add_event('success', f"⭐ Rating: {'⭐' * state.final_score['stars']}")
        state.add_event('success', f"💰 Final Score: ${state.final_score['total']}")
        state.add_sound_event('victory')
        self._finish()

    def _lose(self, reason: str) -> None:
        state = self.state
        state.status = MATCH_LOST
        state.end_reason = reason
        state.final_score = state.calculate_final_score()
        state.add_event('danger', f'💀 HEIST FAILED: {reason}')
        state.add_sound_event('game_over')
        self._finish()

    def _finish(self) -> None:
        state = self.state
        logger.info(
            f"[match-end] map={state.map_id} status={state.status} reason={state.end_reason} "
            f"total={state.final_score['total']} tick={state.tick}"
        )
        self.stop()

    # ---- actions ----

    def move_player(self, direction: str) -> bool:
        """Move the shared avatar one cell. Returns False on a bump."""
        state = self.state
        if state.is_over:
            raise MatchOver()
        if not isinstance(direction, str) or direction not in DIRECTIONS:
            raise InvalidDirection(direction)

        dx, dy = DIRECTIONS[direction]
        nx, ny = state.player['x'] + dx, state.player['y'] + dy
        if not state.is_walkable(nx, ny):
            state.add_sound_event('bump')
            return False

        state.player['x'] = nx
        state.player['y'] = ny
        state.stats.movement_count += 1
        state.add_sound_event('footstep')

        self._check_loot_pickup()
        self._track_peak_alarm()
        self.check_win_lose()
        return True

    def _check_loot_pickup(self) -> None:
        state = self.state
        x, y = state.player['x'], state.player['y']
        for item in state.loot:
            if item.collected or item.x != x or item.y != y:
                continue
            item.collected = True
            state.collected_loot.append(item)
            state.score += item.value
            state.add_event('success', f'💎 Collected {item.type}! (+${item.value})')
            state.add_sound_event('loot_pickup')

            increase = state.tuning.loot_alarm_base_increment + state.rng.randint(0, LOOT_ALARM_JITTER)
            state.alarm.raise_by(increase)
            state.add_event('warning', f'⚠️ Alarm increased by {increase}%')

    def use_ability(self, role: str, ability_name: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Run one role ability. Raises an ``AbilityError`` without side effects on failure."""
        state = self.state
        if state.is_over:
            raise MatchOver()
        if not isinstance(ability_name, str):
            raise UnknownAbility()
        ability = state.abilities.get(role, {}).get(ability_name)
        if ability is None:
            raise UnknownAbility()

        now = state.clock()
        if not ability.ready(now):
            raise AbilityOnCooldown()

        handler = self._ability_handlers[(role, ability_name)]
        handler(ability, params or {}, now)
        logger.info(f"[ability] role={role} ability={ability_name} tick={state.tick}")

    @property
    def _ability_handlers(self):
        return {
            (NAVIGATOR, 'peek'): self._peek,
            (SECURITY, 'disableCamera'): self._disable_camera,
            (LOOTMASTER, 'pingLoot'): self._ping_loot,
            (ALARM_CONTROLLER, 'silenceAlarm'): self._silence_alarm,
        }

    def _peek(self, ability, params, now):
        ability.active = True
        ability.active_until = now + ability.duration
        ability.cooldown_end = now + ability.cooldown
        self.state.add_event('info', '👁️ Navigator activated Peek!')
        self.state.add_sound_event('ability_activate')

    def _disable_camera(self, ability, params, now):
        camera = _lookup(self.state.cameras, params.get('cameraId'))
        if camera is None:
            raise InvalidTarget('Invalid camera ID')
        camera.disabled = True
        camera.disabled_until = now + ability.duration
        ability.cooldown_end = now + ability.cooldown
        self.state.add_event('success', f'📹 Camera {camera.id + 1} disabled for {int(ability.duration)} seconds!')
        self.state.add_sound_event('camera_disable')

    def _ping_loot(self, ability, params, now):
        item = _lookup(self.state.loot, params.get('lootId'))
        if item is None:
            raise InvalidTarget('Invalid loot ID')
        if item.collected:
            raise TargetAlreadyCollected()
        item.pinged = True
        item.ping_until = now + ability.duration
        ability.cooldown_end = now + ability.cooldown
        self.state.add_event('info', f'📍 Loot Master pinged {item.type} location!')
        self.state.add_sound_event('ping')

    def _silence_alarm(self, ability, params, now):
        alarm = self.state.alarm
        reduction = min(ability.reduction, alarm.level)
        alarm.lower_by(reduction)
        ability.cooldown_end = now + ability.cooldown
        self.state.add_event('success', f'🔇 Alarm silenced! Reduced by {reduction:g}%')
        self.state.add_sound_event('alarm_silence')


def _lookup(entities, target_id):
    # bool is an int subclass; reject it as an id
    if isinstance(target_id, bool) or not isinstance(target_id, int):
        return None
    if 0 <= target_id < len(entities):
        return entities[target_id]
    return None
