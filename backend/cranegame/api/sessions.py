from flask import Blueprint, jsonify, request, current_app
from cranegame.services.crane.broadcast import open_session
from cranegame.services.crane.engine import GridBounds, Phase, finite_float
from cranegame.services.crane.leaderboard import InvalidSubmission, submit_score
from cranegame.services.crane.registry import sessions
from cranegame.services.crane.scheduler import schedule_session_timers


sessions_bp = Blueprint('sessions', __name__)


def _session_or_404(session_id):
    live = sessions.get(session_id)
    if live is None:
        return None, (jsonify({'error': 'Session not found'}), 404)
    return live, None


def _parse_pointer(data):
    try:
        return (
            finite_float(data['client_x']),
            finite_float(data['client_y']),
            GridBounds.from_dict(data.get('bounds')),
        )
    except (KeyError, ValueError):
        return None


@sessions_bp.route('', methods=['POST'])
def create_session():
    live = open_session(current_app._get_current_object())
    return jsonify(live.snapshot()), 201


@sessions_bp.route('/<string:session_id>', methods=['GET'])
def get_session(session_id):
    live, err = _session_or_404(session_id)
    if err:
        return err
    with live.lock:
        return jsonify(live.snapshot())


@sessions_bp.route('/<string:session_id>', methods=['DELETE'])
def delete_session(session_id):
    live = sessions.remove(session_id)
    if live is None:
        return jsonify({'error': 'Session not found'}), 404
    current_app.logger.info(f"[session-close] session={session_id}")
    return jsonify({'message': 'Session closed'})


@sessions_bp.route('/<string:session_id>/start', methods=['POST'])
def start_session(session_id):
    live, err = _session_or_404(session_id)
    if err:
        return err
    with live.lock:
        live.restart()
        payload = live.snapshot()
    schedule_session_timers(current_app._get_current_object(), session_id)
    return jsonify(payload)


@sessions_bp.route('/<string:session_id>/grab', methods=['POST'])
def grab(session_id):
    live, err = _session_or_404(session_id)
    if err:
        return err
    with live.lock:
        accepted = live.engine.attempt_grab()
        return jsonify({'accepted': accepted, 'session': live.snapshot()})


@sessions_bp.route('/<string:session_id>/cursor', methods=['POST'])
def move_cursor(session_id):
    live, err = _session_or_404(session_id)
    if err:
        return err
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    pointer = _parse_pointer(data)
    if pointer is None:
        return jsonify({'error': 'finite client_x, client_y and bounds{left,top,width,height} are required'}), 400
    client_x, client_y, bounds = pointer
    with live.lock:
        moved = live.engine.move_cursor(client_x, client_y, bounds)
        return jsonify({'moved': moved, 'session': live.snapshot()})


@sessions_bp.route('/<string:session_id>/submit', methods=['POST'])
def submit_session_score(session_id):
    live, err = _session_or_404(session_id)
    if err:
        return err
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    with live.lock:
        if live.engine.phase is not Phase.ENDED:
            return jsonify({'error': 'Scores can only be submitted after the session has ended'}), 400
        if live.score_submitted:
            return jsonify({'error': 'Score already submitted for this session'}), 409
        # Claim the submission before touching the database; released on failure
        live.score_submitted = True
        final_score = live.engine.score
    try:
        result = submit_score(data.get('player_name') or data.get('playerName'), final_score)
    except InvalidSubmission as exc:
        live.score_submitted = False
        return jsonify({'error': 'Invalid input', 'detail': str(exc)}), 400
    if not result.success:
        live.score_submitted = False
        return jsonify({'error': result.error}), 500
    return jsonify({'success': True, 'data': [result.row]})
