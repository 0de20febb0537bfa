from dataclasses import dataclass
from typing import Any, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from cranegame import db
from cranegame.models import HighScore


class InvalidSubmission(ValueError):
    pass


@dataclass
class SubmitResult:
    success: bool
    row: Optional[dict] = None
    error: Optional[str] = None


def validate_submission(player_name: Any, score: Any) -> tuple:
    """Return the cleaned (name, score) pair or raise InvalidSubmission."""
    max_len = int(current_app.config.get('PLAYER_NAME_MAX_LEN', 20))
    if not isinstance(player_name, str) or not player_name.strip():
        raise InvalidSubmission('player name is required')
    name = player_name.strip()
    if len(name) > max_len:
        raise InvalidSubmission(f"player name must be at most {max_len} characters")
    # bool is an int subclass; a JSON true is not a score
    if isinstance(score, bool) or not isinstance(score, int):
        raise InvalidSubmission('score must be an integer')
    if score < 0:
        raise InvalidSubmission('score cannot be negative')
    return name, score


def submit_score(player_name: str, score: int) -> SubmitResult:
    """Append a record to the ranked store.

    Storage problems are logged and reported, never raised, so a broken
    database can't keep a player stuck on the game-over screen.
    """
    name, score = validate_submission(player_name, score)
    entry = HighScore(player_name=name, score=score)
    try:
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[leaderboard] submit failed name={name!r} score={score}: {exc}")
        return SubmitResult(success=False, error='Failed to submit score')
    current_app.logger.info(f"[leaderboard] submitted name={name!r} score={score} id={entry.id}")
    return SubmitResult(success=True, row=entry.to_dict())


def fetch_top_scores(limit: Optional[int] = None) -> Optional[List[dict]]:
    """Top scores, highest first. None means the store could not be read."""
    if limit is None:
        limit = int(current_app.config.get('LEADERBOARD_LIMIT', 10))
    try:
        rows = (
            HighScore.query
            .order_by(HighScore.score.desc(), HighScore.created_at.asc(), HighScore.id.asc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[leaderboard] fetch failed: {exc}")
        return None
    return [r.to_dict() for r in rows]
