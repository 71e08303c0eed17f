from datetime import datetime

from salon_api.extensions import db


class Branch(db.Model):
    """
    A physical salon / shop location.

    Owns its employees and its daily revenue sheets; weekly bonuses are
    computed per branch.
    """

    __tablename__ = "branches"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Branch id={self.id} code={self.code!r}>"
