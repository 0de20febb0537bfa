from flask import Blueprint, jsonify, request
from cranegame.services.crane.leaderboard import InvalidSubmission, fetch_top_scores, submit_score


scores = Blueprint('scores', __name__)


@scores.route('', methods=['GET'])
def get_scores():
    rows = fetch_top_scores()
    if rows is None:
        return jsonify({'error': 'Failed to fetch scores'}), 500
    return jsonify(rows)


@scores.route('', methods=['POST'])
def post_score():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    # The browser client sends camelCase
    player_name = data.get('playerName', data.get('player_name'))
    try:
        result = submit_score(player_name, data.get('score'))
    except InvalidSubmission as exc:
        return jsonify({'error': 'Invalid input', 'detail': str(exc)}), 400
    if not result.success:
        return jsonify({'error': result.error}), 500
    return jsonify({'success': True, 'data': [result.row]})
