# salon_api/services/bonus_workflow.py
"""
Status machine for weekly bonuses:

    pending --request--> requested --approve--> approved --pay--> paid
                                   `--reject--> rejected

paid and rejected are terminal; a rejected week needs a fresh computation
cycle, not a transition. Every transition appends one BonusAuditLog row.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from salon_api.common.errors import InvalidTransition, NotFound, ValidationError
from salon_api.extensions import db
from salon_api.models.bonus import AUDIT_ACTIONS, BonusAuditLog, WeeklyBonus
from salon_api.models.master import Branch
from salon_api.models.user import User

log = logging.getLogger(__name__)

# action -> (required current status, new status, timestamp/actor column prefix)
TRANSITIONS = {
    "request": ("pending", "requested", "requested"),
    "approve": ("requested", "approved", "approved"),
    "reject":  ("requested", "rejected", "rejected"),
    "pay":     ("approved", "paid", "paid"),
}
TERMINAL_STATUSES = ("paid", "rejected")


def get_weekly_bonus(weekly_bonus_id: int) -> WeeklyBonus:
    wb = db.session.get(WeeklyBonus, weekly_bonus_id)
    if wb is None:
        raise NotFound(f"Weekly bonus {weekly_bonus_id} not found", payload={"weekly_bonus_id": weekly_bonus_id})
    return wb


def write_audit(weekly_bonus_id: int, action: str, performed_by: Optional[int] = None,
                old_status: Optional[str] = None, new_status: Optional[str] = None,
                details: Optional[str] = None) -> BonusAuditLog:
    if action not in AUDIT_ACTIONS:
        raise ValidationError(f"unknown audit action {action!r}")
    row = BonusAuditLog(
        weekly_bonus_id=weekly_bonus_id,
        action=action,
        old_status=old_status,
        new_status=new_status,
        performed_by=performed_by,
        performed_at=datetime.utcnow(),
        details=details,
    )
    db.session.add(row)
    return row


def allowed_actions(status: str) -> List[str]:
    return [a for a, (src, _, _) in TRANSITIONS.items() if src == status]


def transition_bonus_status(weekly_bonus_id: int, action: str, performed_by: int,
                            details: Optional[str] = None) -> WeeklyBonus:
    """
    Apply one workflow action. Validation happens before anything is written;
    the caller commits.
    """
    action = (action or "").strip().lower()
    if action not in TRANSITIONS:
        raise ValidationError(f"unknown action {action!r}", payload={"allowed": sorted(TRANSITIONS)})
    if performed_by is None:
        raise ValidationError("performed_by is required")
    note = (details or "").strip() or None
    if action == "reject" and not note:
        raise ValidationError("a rejection reason is required")

    wb = get_weekly_bonus(weekly_bonus_id)
    required, new_status, col = TRANSITIONS[action]
    old_status = wb.status
    if old_status != required:
        raise InvalidTransition(action, old_status, required)

    now = datetime.utcnow()
    wb.status = new_status
    setattr(wb, f"{col}_at", now)
    setattr(wb, f"{col}_by", performed_by)
    if action == "reject":
        wb.rejection_reason = note

    write_audit(
        wb.id, action,
        performed_by=performed_by,
        old_status=old_status,
        new_status=new_status,
        details=note or f"{action} {wb.period_label}",
    )
    db.session.flush()
    log.info("bonus %s: %s -> %s by user %s", wb.id, old_status, new_status, performed_by)
    return wb


def _audit_row(a: BonusAuditLog, year, month, week_number, branch_id, branch_name, user_name) -> Dict[str, Any]:
    return {
        "id": a.id,
        "weekly_bonus_id": a.weekly_bonus_id,
        "action": a.action,
        "old_status": a.old_status,
        "new_status": a.new_status,
        "performed_by": a.performed_by,
        "performed_at": a.performed_at.isoformat() if a.performed_at else None,
        "details": a.details,
        "user_name": user_name,
        "year": year,
        "month": month,
        "week_number": week_number,
        "branch_id": branch_id,
        "branch_name": branch_name,
    }


def get_bonus_audit_logs(branch_id: Optional[int] = None, weekly_bonus_id: Optional[int] = None,
                         limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
    """Newest first. Rows whose bonus was purged still show, without week info."""
    q = (
        db.session.query(
            BonusAuditLog,
            WeeklyBonus.year, WeeklyBonus.month, WeeklyBonus.week_number,
            WeeklyBonus.branch_id, Branch.name, User.full_name,
        )
        .outerjoin(WeeklyBonus, WeeklyBonus.id == BonusAuditLog.weekly_bonus_id)
        .outerjoin(Branch, Branch.id == WeeklyBonus.branch_id)
        .outerjoin(User, User.id == BonusAuditLog.performed_by)
    )
    if branch_id is not None:
        q = q.filter(WeeklyBonus.branch_id == branch_id)
    if weekly_bonus_id is not None:
        q = q.filter(BonusAuditLog.weekly_bonus_id == weekly_bonus_id)

    rows = (
        q.order_by(BonusAuditLog.performed_at.desc(), BonusAuditLog.id.desc())
        .limit(max(1, int(limit)))
        .offset(max(0, int(offset)))
        .all()
    )
    return [_audit_row(*r) for r in rows]


def bonus_status_history(weekly_bonus_id: int) -> List[Dict[str, Any]]:
    """Replay the status changes of a bonus from its audit trail, oldest first."""
    rows = (
        BonusAuditLog.query
        .filter(
            BonusAuditLog.weekly_bonus_id == weekly_bonus_id,
            BonusAuditLog.action.in_(tuple(TRANSITIONS)),
        )
        .order_by(BonusAuditLog.performed_at.asc(), BonusAuditLog.id.asc())
        .all()
    )
    return [{
        "action": r.action,
        "from": r.old_status,
        "to": r.new_status,
        "by": r.performed_by,
        "at": r.performed_at.isoformat() if r.performed_at else None,
        "details": r.details,
    } for r in rows]
