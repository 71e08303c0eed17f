from datetime import datetime
from salon_api.extensions import db


class DailyRevenue(db.Model):
    """One revenue sheet per branch per day; employee lines hang off it."""
    __tablename__ = "daily_revenues"

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id", ondelete="RESTRICT"), nullable=False)
    date = db.Column(db.Date, nullable=False)

    cash    = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    network = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total   = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("branch_id", "date", name="uq_daily_revenue_branch_date"),
        db.Index("ix_daily_revenue_date", "date"),
    )

    branch = db.relationship("Branch")
    lines = db.relationship(
        "EmployeeRevenue",
        back_populates="daily_revenue",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class EmployeeRevenue(db.Model):
    __tablename__ = "employee_revenues"

    id = db.Column(db.Integer, primary_key=True)
    daily_revenue_id = db.Column(db.Integer, db.ForeignKey("daily_revenues.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False, index=True)

    cash    = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    network = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total   = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    daily_revenue = db.relationship("DailyRevenue", back_populates="lines")
    employee = db.relationship("Employee")
