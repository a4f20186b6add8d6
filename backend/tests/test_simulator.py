import pytest

from conftest import FixedRandom
from blindheist.errors import (
    AbilityOnCooldown,
    InvalidDirection,
    InvalidTarget,
    MatchOver,
    TargetAlreadyCollected,
    UnknownAbility,
)
from blindheist.models import ALARM_CONTROLLER, LOOTMASTER, NAVIGATOR, SECURITY, Camera
from blindheist.services.heist.simulator import (
    is_in_camera_fov,
    is_near_camera_fov,
)


def _camera(**overrides):
    fields = dict(
        id=0, x=5, y=5, direction='right', rotates=False,
        fov_angle=60, fov_range=4, rotation_speed=0,
        current_angle=0, min_angle=-45, max_angle=45,
    )
    fields.update(overrides)
    return Camera(**fields)


def _sounds(state):
    return [s['type'] for s in state.consume_sound_events()]


# ---- geometry ----

def test_fov_cone():
    cam = _camera()
    assert is_in_camera_fov(7, 5, cam)
    assert is_in_camera_fov(8, 6, cam)       # ~18 deg off axis
    assert not is_in_camera_fov(5, 5, cam)   # own cell
    assert not is_in_camera_fov(10, 5, cam)  # out of range
    assert not is_in_camera_fov(3, 5, cam)   # behind


def test_fov_wraps_around_zero():
    cam = _camera(current_angle=350)
    assert is_in_camera_fov(7, 4, cam)  # bearing ~333
    assert is_in_camera_fov(8, 6, cam)  # bearing ~18


def test_near_miss_band():
    cam = _camera()
    assert is_near_camera_fov(7, 7, cam)      # 45 deg, just outside 30
    assert is_near_camera_fov(10, 5, cam)     # one past range on axis
    assert not is_near_camera_fov(7, 5, cam)  # inside the cone
    assert not is_near_camera_fov(5, 8, cam)  # 90 deg off


# ---- lifecycle ----

def test_start_logs_and_queues_start_sound(make_match):
    state, sim = make_match()
    assert sim.running
    assert state.events[0].message.startswith('🎭 Heist started on The Bank')
    assert _sounds(state) == ['game_start']


def test_countdown_drops_every_second_tick(make_match):
    state, sim = make_match()
    sim.tick()
    assert state.alarm.countdown == 240
    sim.tick()
    assert state.alarm.countdown == 239
    assert state.tick == 2


def test_countdown_expiry_loses(make_match):
    state, sim = make_match()
    state.alarm.countdown = 1
    sim.tick()
    sim.tick()
    assert state.status == 'lost'
    assert state.end_reason == 'Time ran out!'
    assert state.alarm.countdown == 0
    assert state.final_score is not None
    assert not sim.running


def test_time_warning_fires_once(make_match):
    state, sim = make_match()
    state.alarm.countdown = 61
    sim.tick()
    sim.tick()
    assert state.alarm.countdown == 60
    assert any(e.message == '⏱️ 60 seconds remaining!' for e in state.events)
    assert 'warning' in _sounds(state)
    state.alarm.countdown = 61
    sim.tick()
    sim.tick()
    assert sum(e.message == '⏱️ 60 seconds remaining!' for e in state.events) == 1


def test_rotating_camera_bounces_inside_sweep(make_match):
    state, sim = make_match('museum', 'medium')
    cam = state.cameras[1]  # faces right, sweeps -45..45 at 25 deg/s
    state.player.update(x=22, y=13)
    seen = []
    for _ in range(20):
        sim.tick()
        seen.append(cam.current_angle)
    assert max(seen) == 45
    assert min(seen) >= -45
    assert cam.rotation_direction in (1, -1)
    assert all(-45 <= a <= 45 for a in seen)


def test_tick_after_end_is_a_no_op(make_match):
    state, sim = make_match()
    state.alarm.countdown = 1
    sim.tick()
    sim.tick()
    events = len(state.events)
    sim.tick()
    assert state.tick == 2
    assert len(state.events) == events


def test_state_change_callback_fires_each_tick(clock, quiet_rng):
    from blindheist.services.heist.simulator import MatchSimulator
    from blindheist.services.heist.state import MatchState

    calls = []
    sim = MatchSimulator(MatchState('bank', 'easy', clock=clock, rng=quiet_rng))
    sim.start(lambda: calls.append(1))
    sim.tick()
    sim.tick()
    assert len(calls) == 2


# ---- detection ----

def test_camera_detection_raises_alarm(make_match):
    state, sim = make_match()
    # camera 0 sits at (10, 5) looking down
    state.player.update(x=10, y=7)
    sim.tick()
    assert state.alarm.level == 3
    assert state.alarm.is_triggered
    assert state.stats.times_detected == 1
    assert state.stats.peak_alarm == 3
    assert any('Camera 1 detected movement' in e.message for e in state.events)
    assert 'detected' in _sounds(state)


def test_detection_at_max_loses_with_security_reason(make_match):
    state, sim = make_match()
    state.player.update(x=10, y=7)
    state.alarm.level = 98
    sim.tick()
    assert state.alarm.level == 100
    assert state.status == 'lost'
    assert state.end_reason == 'Alarm reached maximum! Security arrived!'


def test_maxed_alarm_without_detection_loses(make_match):
    state, sim = make_match()
    state.alarm.level = 100
    sim.tick()
    assert state.status == 'lost'
    assert state.end_reason == 'Alarm reached maximum!'


def test_disabled_camera_cannot_detect(make_match, clock):
    state, sim = make_match()
    # camera 2 sits at (5, 4) looking right
    state.player.update(x=7, y=4)
    sim.use_ability(SECURITY, 'disableCamera', {'cameraId': 2})
    assert state.cameras[2].disabled
    sim.tick()
    assert state.alarm.level == 0

    clock.advance(10)
    sim.tick()
    assert state.cameras[2].disabled is False
    assert state.stats.times_detected == 1


def test_close_call_counts_with_low_roll(make_match):
    state, sim = make_match(rng=FixedRandom(0.1))
    state.player.update(x=7, y=5)  # just outside camera 2's cone
    sim.tick()
    assert state.alarm.level == 0
    assert state.stats.close_call_count == 1
    assert 'close_call' in _sounds(state)


def test_random_spike(make_match):
    state, sim = make_match(rng=FixedRandom(0.0))
    sim.tick()
    assert state.alarm.level == 3
    assert any(e.message == '👮 Security patrol passing by...' for e in state.events)


def test_alarm_decays_every_fourth_tick(make_match):
    state, sim = make_match()
    state.alarm.level = 10
    for _ in range(4):
        sim.tick()
    assert state.alarm.level == 8


# ---- movement ----

def test_move_into_wall_is_a_bump(make_match):
    state, sim = make_match()
    state.player.update(x=1, y=10)
    assert sim.move_player('left') is False
    assert state.player == {'x': 1, 'y': 10}
    assert state.stats.movement_count == 0
    assert _sounds(state)[-1] == 'bump'


def test_move_commits_and_counts(make_match):
    state, sim = make_match()
    assert sim.move_player('right') is True
    assert state.player == {'x': 3, 'y': 12}
    assert state.stats.movement_count == 1
    assert _sounds(state)[-1] == 'footstep'


def test_invalid_direction(make_match):
    state, sim = make_match()
    with pytest.raises(InvalidDirection):
        sim.move_player('sideways')
    assert state.player == {'x': 2, 'y': 12}


def test_loot_pickup(make_match):
    state, sim = make_match()
    state.player.update(x=9, y=5)
    sim.move_player('up')  # cash at (9, 4)
    assert state.score == 50
    assert [item.type for item in state.collected_loot] == ['cash']
    assert state.loot[2].collected
    assert state.alarm.level == 5
    assert any(e.message == '⚠️ Alarm increased by 5%' for e in state.events)


def test_exit_needs_loot(make_match):
    state, sim = make_match()
    state.player.update(x=16, y=4)
    sim.move_player('up')
    assert state.status == 'playing'
    refusal = '❌ You need at least one loot item to escape!'
    assert sum(e.message == refusal for e in state.events) == 1
    sim.tick()
    assert sum(e.message == refusal for e in state.events) == 1
    sim.move_player('down')
    sim.move_player('up')
    assert sum(e.message == refusal for e in state.events) == 2


def test_full_heist_on_bank(make_match):
    state, sim = make_match('bank', 'easy')
    state.player.update(x=17, y=3)
    sim.move_player('up')      # diamond
    sim.move_player('left')
    sim.move_player('down')    # exit at (16, 3)
    assert state.status == 'won'
    score = state.final_score
    assert score['lootScore'] == 150
    assert score['timeBonus'] == 480
    assert score['stealthBonus'] == 100
    assert score['total'] == 730
    assert score['stars'] == 1
    assert _sounds(state)[-1] == 'victory'
    with pytest.raises(MatchOver):
        sim.move_player('up')


# ---- abilities ----

def test_peek_goes_on_cooldown(make_match, clock):
    state, sim = make_match()
    sim.use_ability(NAVIGATOR, 'peek')
    peek = state.abilities[NAVIGATOR]['peek']
    assert peek.active and peek.active_until == clock() + 5
    with pytest.raises(AbilityOnCooldown):
        sim.use_ability(NAVIGATOR, 'peek')
    clock.advance(30)
    sim.use_ability(NAVIGATOR, 'peek')


def test_unknown_ability_for_role(make_match):
    state, sim = make_match()
    with pytest.raises(UnknownAbility):
        sim.use_ability(NAVIGATOR, 'disableCamera', {'cameraId': 0})
    with pytest.raises(UnknownAbility):
        sim.use_ability('driver', 'peek')


def test_disable_camera_rejects_bad_ids(make_match):
    state, sim = make_match()
    for bad in (None, 99, -1, True, '1'):
        with pytest.raises(InvalidTarget):
            sim.use_ability(SECURITY, 'disableCamera', {'cameraId': bad})
    # failed attempts do not start the cooldown
    assert state.abilities[SECURITY]['disableCamera'].cooldown_end == 0


def test_ping_loot(make_match, clock):
    state, sim = make_match()
    sim.use_ability(LOOTMASTER, 'pingLoot', {'lootId': 1})
    assert state.loot[1].is_pinged(clock())
    clock.advance(8)
    assert not state.loot[1].is_pinged(clock())


def test_ping_collected_loot_is_rejected(make_match):
    state, sim = make_match()
    state.loot[0].collected = True
    with pytest.raises(TargetAlreadyCollected):
        sim.use_ability(LOOTMASTER, 'pingLoot', {'lootId': 0})
    with pytest.raises(InvalidTarget):
        sim.use_ability(LOOTMASTER, 'pingLoot', {'lootId': 5})


def test_silence_alarm_never_goes_negative(make_match):
    state, sim = make_match()
    state.alarm.level = 10
    sim.use_ability(ALARM_CONTROLLER, 'silenceAlarm')
    assert state.alarm.level == 0
    assert any(e.message == '🔇 Alarm silenced! Reduced by 10%' for e in state.events)
    with pytest.raises(AbilityOnCooldown):
        sim.use_ability(ALARM_CONTROLLER, 'silenceAlarm')


def test_abilities_refused_after_match_end(make_match):
    state, sim = make_match()
    state.alarm.level = 100
    sim.tick()
    with pytest.raises(MatchOver):
        sim.use_ability(NAVIGATOR, 'peek')


def test_non_string_direction_or_ability_is_rejected(make_match):
    state, sim = make_match()
    for bad in (['up'], {'dir': 'up'}, None):
        with pytest.raises(InvalidDirection):
            sim.move_player(bad)
        with pytest.raises(UnknownAbility):
            sim.use_ability(NAVIGATOR, bad)
    assert state.player == {'x': 2, 'y': 12}


# ---- escalation ----

def test_rotating_cameras_speed_up_after_thirty_seconds(make_match):
    state, sim = make_match('museum', 'medium')
    state.tick = 59
    state.alarm.countdown = 100
    sim.tick()
    assert [c.rotation_speed for c in state.cameras] == [
        pytest.approx(26.25), pytest.approx(26.25), pytest.approx(26.25), 0, pytest.approx(26.25),
    ]


def test_rotation_speed_is_capped(make_match):
    state, sim = make_match('museum', 'medium')
    for camera in state.cameras:
        if camera.rotates:
            camera.rotation_speed = 59
    state.tick = 59
    state.alarm.countdown = 100
    sim.tick()
    assert max(c.rotation_speed for c in state.cameras) == 60
    state.tick = 119
    sim.tick()
    assert max(c.rotation_speed for c in state.cameras) == 60


def test_no_speed_up_in_first_thirty_seconds(make_match):
    state, sim = make_match('museum', 'medium')
    state.tick = 59
    state.alarm.countdown = 170
    sim.tick()
    assert state.cameras[0].rotation_speed == 25


def test_high_alert_in_final_minute(make_match):
    state, sim = make_match(rng=FixedRandom(0.1))
    _sounds(state)
    state.tick = 29
    state.alarm.countdown = 50
    sim.tick()
    assert any(e.message == '🚨 Security on high alert!' for e in state.events)
    assert 'alert_escalate' in _sounds(state)


def test_no_high_alert_before_final_minute(make_match):
    state, sim = make_match(rng=FixedRandom(0.1))
    state.tick = 29
    state.alarm.countdown = 100
    sim.tick()
    assert not any(e.message == '🚨 Security on high alert!' for e in state.events)


def test_disabled_camera_gives_no_close_call(make_match, clock):
    state, sim = make_match(rng=FixedRandom(0.1))
    state.player.update(x=7, y=5)  # camera 2's near-miss band
    sim.use_ability(SECURITY, 'disableCamera', {'cameraId': 2})
    _sounds(state)
    sim.tick()
    assert state.stats.close_call_count == 0
    assert 'close_call' not in _sounds(state)

    clock.advance(10)
    sim.tick()
    assert state.stats.close_call_count == 1
    assert 'close_call' in _sounds(state)
