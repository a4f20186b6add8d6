from functools import wraps
from typing import Any, Dict
from uuid import uuid4

from flask import current_app, request
from flask_socketio import emit

from blindheist import room_manager, socketio
from blindheist.errors import HeistError, PlayerNotInRoom, ProtocolError
from blindheist.services.heist.scheduler import schedule_ticks

DEFAULT_NAMESPACE = '/ws'

# sid -> {'player_id', 'room_code', 'namespace'}
_sid_to_ctx: Dict[str, Dict[str, Any]] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _ctx() -> Dict[str, Any]:
    sid = _get_sid()
    ctx = _sid_to_ctx.get(sid)
    if ctx is None:
        ctx = {
            'player_id': str(uuid4()),
            'room_code': None,
            'namespace': getattr(request, 'namespace', DEFAULT_NAMESPACE) or DEFAULT_NAMESPACE,
        }
        _sid_to_ctx[sid] = ctx
    return ctx


def _payload(data) -> Dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ProtocolError('Invalid message format')
    return data


def _require_code(data) -> str:
    code = _payload(data).get('code')
    if not isinstance(code, str) or not code.strip():
        raise ProtocolError('code is required')
    return code.strip().upper()


def _namespace_for(sid: str) -> str:
    ctx = _sid_to_ctx.get(sid)
    return ctx['namespace'] if ctx else DEFAULT_NAMESPACE


def _emit_to_room(code: str, event: str, payload: Dict[str, Any]) -> None:
    room = room_manager.get_room(code)
    if room is None:
        return
    with room.lock:
        sids = [p.sid for p in room.participants.values() if p.sid]
    for sid in sids:
        socketio.emit(event, payload, to=sid, namespace=_namespace_for(sid))


def broadcast_state(code: str) -> None:
    """Send each participant its own projection. Fire-and-forget per connection."""
    for participant, view in room_manager.snapshots(code):
        if participant.sid:
            socketio.emit('state_update', {'state': view}, to=participant.sid, namespace=_namespace_for(participant.sid))


def _guarded(failure_event: str = 'error'):
    """Turn ``HeistError`` into a reply; log anything unexpected."""
    def decorator(handler):
        @wraps(handler)
        def wrapper(data=None):
            try:
                return handler(data)
            except HeistError as exc:
                current_app.logger.info(f"[rejected] handler={handler.__name__} reason={exc.message}")
                emit(failure_event, {'message': exc.message})
            except Exception:
                current_app.logger.error(f"[handler-error] handler={handler.__name__}", exc_info=True)
                emit('error', {'message': 'Internal error'})
        return wrapper
    return decorator


def _leave_current_room(ctx: Dict[str, Any]) -> None:
    code = ctx.get('room_code')
    if not code:
        return
    ctx['room_code'] = None
    participant, deleted = room_manager.leave_room(code, ctx['player_id'])
    if participant is None or deleted:
        return
    _emit_to_room(code, 'player_left', {
        'playerId': ctx['player_id'],
        'players': room_manager.players(code),
    })


# ---- lifecycle ----

def handle_connect(auth=None):
    ctx = _ctx()
    emit('connected', {'playerId': ctx['player_id'], 'maps': room_manager.maps()})


def handle_disconnect(reason=None):
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return
    try:
        _leave_current_room(ctx)
    except Exception:
        current_app.logger.error(f"[disconnect-error] player={ctx.get('player_id')}", exc_info=True)


# ---- lobby ----

@_guarded()
def handle_create_room(data=None):
    _payload(data)
    ctx = _ctx()
    _leave_current_room(ctx)
    room, participant = room_manager.create_room(ctx['player_id'], _get_sid())
    ctx['room_code'] = room.code
    emit('room_created', {
        'code': room.code,
        'role': participant.role,
        'roleName': participant.role_name,
        'playerCount': len(room.participants),
        'settings': dict(room.settings),
        'maps': room_manager.maps(),
    })


@_guarded()
def handle_join_room(data=None):
    code = _require_code(data)
    ctx = _ctx()
    if ctx.get('room_code') and ctx['room_code'] != code:
        _leave_current_room(ctx)
    participant = room_manager.join_room(code, ctx['player_id'], _get_sid())
    ctx['room_code'] = code
    summary = room_manager.room_summary(code)
    emit('room_joined', {
        'code': code,
        'role': participant.role,
        'roleName': participant.role_name,
        'playerCount': len(summary['players']),
        'canStart': summary['canStart'],
        'settings': summary['settings'],
        'maps': room_manager.maps(),
    })
    _emit_to_room(code, 'player_joined', {
        'players': summary['players'],
        'canStart': summary['canStart'],
    })


@_guarded()
def handle_leave_room(data=None):
    code = _require_code(data)
    ctx = _ctx()
    if ctx.get('room_code') != code:
        raise PlayerNotInRoom()
    _leave_current_room(ctx)
    emit('left_room', {'code': code})


@_guarded()
def handle_update_settings(data=None):
    payload = _payload(data)
    code = _require_code(payload)
    settings = room_manager.update_settings(code, payload.get('settings') or {})
    _emit_to_room(code, 'settings_updated', {'settings': settings, 'maps': room_manager.maps()})


@_guarded()
def handle_start_game(data=None):
    code = _require_code(data)
    ctx = _ctx()
    if ctx.get('room_code') != code:
        raise PlayerNotInRoom()
    room = room_manager.start_game(code, on_state_change=broadcast_state)
    _emit_to_room(code, 'game_started', {
        'mapId': room.settings['mapId'],
        'difficulty': room.settings['difficulty'],
    })
    broadcast_state(code)
    schedule_ticks(current_app._get_current_object(), code)


@_guarded()
def handle_get_maps(data=None):
    emit('maps_list', {'maps': room_manager.maps()})


# ---- match ----

@_guarded(failure_event='action_failed')
def handle_action(data=None):
    payload = _payload(data)
    code = _require_code(payload)
    ctx = _ctx()
    room_manager.route_action(code, ctx['player_id'], payload.get('action'))
    broadcast_state(code)


@_guarded()
def handle_get_state(data=None):
    code = _require_code(data)
    ctx = _ctx()
    state = room_manager.player_state(code, ctx['player_id'])
    if state is not None:
        emit('state_update', {'state': state})


MESSAGE_HANDLERS = {
    'create_room': handle_create_room,
    'join_room': handle_join_room,
    'leave_room': handle_leave_room,
    'update_settings': handle_update_settings,
    'start_game': handle_start_game,
    'action': handle_action,
    'get_state': handle_get_state,
    'get_maps': handle_get_maps,
}


@_guarded()
def handle_message(data=None):
    """Tagged-object form: ``{'type': <event>, ...fields}``."""
    payload = _payload(data)
    handler = MESSAGE_HANDLERS.get(payload.get('type'))
    if handler is None:
        raise ProtocolError('Unknown message type')
    handler(payload)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [DEFAULT_NAMESPACE]
    if testing:
        namespaces.append('/')
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('message', handle_message, namespace=namespace)
        for event, handler in MESSAGE_HANDLERS.items():
            socketio.on_event(event, handler, namespace=namespace)
