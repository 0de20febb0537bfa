from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from cranegame.services.crane.broadcast import open_session, session_room
from cranegame.services.crane.engine import GridBounds, finite_float
from cranegame.services.crane.registry import sessions
from cranegame.services.crane.scheduler import schedule_session_timers


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _live_from(data):
    session_id = (data or {}).get('session_id')
    if not session_id:
        emit('error', {'message': 'session_id is required'})
        return None
    live = sessions.get(session_id)
    if live is None:
        emit('error', {'message': 'Session not found', 'session_id': session_id})
        return None
    return live


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*_args):
    # Sessions opened over this socket die with it
    for live in sessions.owned_by(_get_sid()):
        sessions.remove(live.session_id)
        current_app.logger.info(f"[session-close] session={live.session_id} owner disconnected")


def handle_create_session(_data=None):
    live = open_session(current_app._get_current_object(), owner_sid=_get_sid())
    join_room(session_room(live.session_id))
    emit('session_created', live.snapshot())


def handle_join_session(data):
    live = _live_from(data)
    if live is None:
        return
    room = session_room(live.session_id)
    join_room(room)
    with live.lock:
        emit('joined', {'room': room, 'session': live.snapshot()})


def handle_leave_session(data):
    session_id = (data or {}).get('session_id')
    if not session_id:
        emit('error', {'message': 'session_id is required'})
        return
    room = session_room(session_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_start_session(data):
    live = _live_from(data)
    if live is None:
        return
    with live.lock:
        live.restart()
    schedule_session_timers(current_app._get_current_object(), live.session_id)


def handle_grab(data):
    live = _live_from(data)
    if live is None:
        return
    with live.lock:
        accepted = live.engine.attempt_grab()
    emit('grab_ack', {'session_id': live.session_id, 'accepted': accepted})


def handle_move_cursor(data):
    live = _live_from(data)
    if live is None:
        return
    try:
        client_x = finite_float(data['client_x'])
        client_y = finite_float(data['client_y'])
        grid_bounds = GridBounds.from_dict(data.get('bounds'))
    except (KeyError, ValueError):
        emit('error', {'message': 'finite client_x, client_y and bounds are required'})
        return
    with live.lock:
        live.engine.move_cursor(client_x, client_y, grid_bounds)


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    from cranegame import socketio

    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'create_session': handle_create_session,
        'join_session': handle_join_session,
        'leave_session': handle_leave_session,
        'start_session': handle_start_session,
        'grab': handle_grab,
        'move_cursor': handle_move_cursor,
        'ping': handle_ping,
    }
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        for event, handler in handlers.items():
            socketio.on_event(event, handler, namespace=namespace)
