from cranegame import db


class HighScore(db.Model):
    __tablename__ = 'high_score'
    id = db.Column(db.Integer, primary_key=True)
    player_name = db.Column(db.String(20), nullable=False)
    score = db.Column(db.Integer, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now(), nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'player_name': self.player_name,
            'score': self.score,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
