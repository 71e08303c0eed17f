from datetime import datetime
from salon_api.extensions import db

class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id", ondelete="RESTRICT"), nullable=False)
    user_id   = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True)

    code  = db.Column(db.String(32), nullable=False)    # unique per branch
    name  = db.Column(db.String(160), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)

    is_active  = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("branch_id", "code", name="uq_employee_branch_code"),
        db.Index("ix_emp_branch_active", "branch_id", "is_active"),
    )

    branch = db.relationship("Branch", backref=db.backref("employees", lazy="dynamic"))
