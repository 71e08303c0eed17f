from datetime import datetime

from sqlalchemy import event

from salon_api.extensions import db

BONUS_STATUSES = ("pending", "requested", "approved", "rejected", "paid")
AUDIT_ACTIONS = ("sync", "discrepancy_alert_sent", "request", "approve", "reject", "pay")


class WeeklyBonus(db.Model):
    """Bonus sheet for one branch and one week of a month (weeks 1-5)."""
    __tablename__ = "weekly_bonuses"

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id", ondelete="RESTRICT"), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)
    week_number = db.Column(db.Integer, nullable=False)
    week_start = db.Column(db.Date, nullable=False)
    week_end = db.Column(db.Date, nullable=False)

    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="pending")  # pending|requested|approved|rejected|paid

    requested_at = db.Column(db.DateTime)
    requested_by = db.Column(db.Integer, db.ForeignKey("users.id"))
    approved_at = db.Column(db.DateTime)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"))
    rejected_at = db.Column(db.DateTime)
    rejected_by = db.Column(db.Integer, db.ForeignKey("users.id"))
    rejection_reason = db.Column(db.Text)
    paid_at = db.Column(db.DateTime)
    paid_by = db.Column(db.Integer, db.ForeignKey("users.id"))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("branch_id", "year", "month", "week_number", name="uq_weekly_bonus_branch_week"),
        db.CheckConstraint("week_number BETWEEN 1 AND 5", name="ck_weekly_bonus_week_number"),
        db.Index("ix_weekly_bonus_status", "status"),
    )

    branch = db.relationship("Branch", lazy="joined")
    details = db.relationship(
        "BonusDetail",
        back_populates="weekly_bonus",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BonusDetail.employee_id",
    )

    @property
    def period_label(self) -> str:
        return f"W{self.week_number} {self.month:02d}/{self.year}"


class BonusDetail(db.Model):
    __tablename__ = "bonus_details"

    id = db.Column(db.Integer, primary_key=True)
    weekly_bonus_id = db.Column(db.Integer, db.ForeignKey("weekly_bonuses.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False, index=True)

    weekly_revenue = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    bonus_tier = db.Column(db.String(16), nullable=False, default="none")
    bonus_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    is_eligible = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("weekly_bonus_id", "employee_id", name="uq_bonus_detail_bonus_employee"),
    )

    weekly_bonus = db.relationship("WeeklyBonus", back_populates="details")
    employee = db.relationship("Employee", lazy="joined")


class BonusAuditLog(db.Model):
    """
    Append-only trail of everything that happens to a weekly bonus.

    weekly_bonus_id is a plain indexed column (no FK) so the trail outlives a
    maintenance delete of the bonus it describes. Status history is rebuilt by
    replaying rows with old_status/new_status set.
    """
    __tablename__ = "bonus_audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    weekly_bonus_id = db.Column(db.Integer, nullable=False, index=True)
    action = db.Column(db.String(32), nullable=False)
    old_status = db.Column(db.String(16))
    new_status = db.Column(db.String(16))
    performed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    performed_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    details = db.Column(db.Text)

    user = db.relationship("User")


@event.listens_for(BonusAuditLog, "before_update")
def _audit_no_update(mapper, connection, target):
    raise ValueError("bonus_audit_logs is append-only")


@event.listens_for(BonusAuditLog, "before_delete")
def _audit_no_delete(mapper, connection, target):
    raise ValueError("bonus_audit_logs is append-only")
