from typing import Optional

from cranegame import socketio
from .engine import ChangeListener, RoundEngine
from .registry import LiveSession, sessions
from .round_config import RoundConfig

NAMESPACE = '/ws'


def session_room(session_id: str) -> str:
    return f"session:{session_id}"


def broadcast_changes(session_id: str) -> ChangeListener:
    """Listener that pushes every engine change to the session's room."""
    room = session_room(session_id)

    def _emit(engine: RoundEngine, event: str) -> None:
        payload = engine.snapshot()
        payload['session_id'] = session_id
        socketio.emit('state_update', {'event': event, 'session': payload}, to=room, namespace=NAMESPACE)
        if event == 'ended':
            socketio.emit('session_ended', {'session_id': session_id, 'score': engine.score}, to=room, namespace=NAMESPACE)

    return _emit


def open_session(app, owner_sid: Optional[str] = None) -> LiveSession:
    config = RoundConfig.from_mapping(app.config)
    live = sessions.create(config, owner_sid=owner_sid)
    live.engine.on_change = broadcast_changes(live.session_id)
    app.logger.info(f"[session-open] session={live.session_id} owner={owner_sid}")
    return live
