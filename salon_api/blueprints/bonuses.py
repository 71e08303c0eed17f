from datetime import date, datetime

from flask import Blueprint, request, current_app

from salon_api.common.auth import current_user_id, requires_perms
from salon_api.common.errors import ValidationError
from salon_api.common.http import ok, fail, money, iso
from salon_api.common.paging import page_limit, limit_offset, int_arg
from salon_api.extensions import db
from salon_api.models.bonus import BONUS_STATUSES, WeeklyBonus
from salon_api.services.bonus_calendar import week_info
from salon_api.services.bonus_engine import find_weekly_bonus, sync_weekly_bonus_for_branch
from salon_api.services.bonus_reconcile import detect_bonus_discrepancies, send_discrepancy_alert
from salon_api.services.bonus_tiers import ladder_from_config
from salon_api.services.bonus_workflow import (
    allowed_actions,
    bonus_status_history,
    get_bonus_audit_logs,
    get_weekly_bonus,
    transition_bonus_status,
)

bp = Blueprint("bonuses", __name__, url_prefix="/api/v1/bonuses")


# ---------- helpers ----------

def _parse_date(s):
    if not s:
        return None
    for fmt in ("%Y-%m-%d", "%d-%m-%Y"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            pass
    raise ValidationError(f"invalid date {s!r}; use YYYY-MM-DD")


def _req_int(d: dict, key: str) -> int:
    v = d.get(key)
    if v is None or v == "":
        raise ValidationError(f"{key} is required")
    try:
        return int(v)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer")


def _bonus_row(wb: WeeklyBonus):
    return {
        "id": wb.id,
        "branch_id": wb.branch_id,
        "branch_name": wb.branch.name if wb.branch else None,
        "year": wb.year,
        "month": wb.month,
        "week_number": wb.week_number,
        "week_start": iso(wb.week_start),
        "week_end": iso(wb.week_end),
        "total_amount": money(wb.total_amount),
        "status": wb.status,
        "allowed_actions": allowed_actions(wb.status),
        "requested_at": iso(wb.requested_at), "requested_by": wb.requested_by,
        "approved_at": iso(wb.approved_at), "approved_by": wb.approved_by,
        "rejected_at": iso(wb.rejected_at), "rejected_by": wb.rejected_by,
        "rejection_reason": wb.rejection_reason,
        "paid_at": iso(wb.paid_at), "paid_by": wb.paid_by,
        "created_at": iso(wb.created_at),
        "updated_at": iso(wb.updated_at),
    }


def _detail_row(d):
    return {
        "id": d.id,
        "employee_id": d.employee_id,
        "employee_code": d.employee.code if d.employee else None,
        "employee_name": d.employee.name if d.employee else None,
        "weekly_revenue": money(d.weekly_revenue),
        "bonus_tier": d.bonus_tier,
        "bonus_amount": money(d.bonus_amount),
        "is_eligible": d.is_eligible,
    }


def _committed(fn, *args, **kwargs):
    """Run a service call in the request transaction; commit or roll back."""
    try:
        out = fn(*args, **kwargs)
        db.session.commit()
        return out
    except Exception:
        db.session.rollback()
        raise


# ---------- read ----------

@bp.get("/tiers")
@requires_perms("bonus.read")
def tiers():
    ladder = ladder_from_config()
    return ok([{
        "tier": t["tier"],
        "min_revenue": money(t["min_revenue"]),
        "max_revenue": money(t["max_revenue"]),
        "amount": money(t["amount"]),
    } for t in ladder.thresholds()])


@bp.get("/current-week")
@requires_perms("bonus.read")
def current_week():
    on = _parse_date(request.args.get("date")) or date.today()
    info = week_info(on)
    data = info.as_dict()
    branch_id = int_arg("branch_id")
    if branch_id:
        wb = find_weekly_bonus(branch_id, info.year, info.month, info.week_number)
        data["weekly_bonus"] = _bonus_row(wb) if wb else None
    return ok(data)


@bp.get("")
@requires_perms("bonus.read")
def list_bonuses():
    page, size = page_limit()
    q = WeeklyBonus.query
    branch_id = int_arg("branch_id")
    if branch_id:
        q = q.filter(WeeklyBonus.branch_id == branch_id)
    status = (request.args.get("status") or "").strip().lower()
    if status:
        if status not in BONUS_STATUSES:
            return fail(f"status must be one of {', '.join(BONUS_STATUSES)}", 422)
        q = q.filter(WeeklyBonus.status == status)
    year = int_arg("year")
    if year:
        q = q.filter(WeeklyBonus.year == year)
    month = int_arg("month")
    if month:
        q = q.filter(WeeklyBonus.month == month)

    total = q.count()
    rows = (
        q.order_by(WeeklyBonus.year.desc(), WeeklyBonus.month.desc(),
                   WeeklyBonus.week_number.desc(), WeeklyBonus.id.desc())
        .offset((page - 1) * size).limit(size).all()
    )
    return ok([_bonus_row(r) for r in rows], page=page, size=size, total=total)


@bp.get("/<int:bonus_id>")
@requires_perms("bonus.read")
def get_bonus(bonus_id: int):
    wb = get_weekly_bonus(bonus_id)
    data = _bonus_row(wb)
    data["details"] = [_detail_row(d) for d in wb.details]
    return ok(data)


@bp.get("/<int:bonus_id>/history")
@requires_perms("bonus.read")
def history(bonus_id: int):
    get_weekly_bonus(bonus_id)
    return ok(bonus_status_history(bonus_id))


@bp.get("/audit-logs")
@requires_perms("bonus.audit.read")
def audit_logs():
    limit, offset = limit_offset()
    rows = get_bonus_audit_logs(
        branch_id=int_arg("branch_id"),
        weekly_bonus_id=int_arg("weekly_bonus_id"),
        limit=limit,
        offset=offset,
    )
    return ok(rows, limit=limit, offset=offset)


# ---------- compute / reconcile ----------

@bp.post("/compute")
@requires_perms("bonus.sync")
def compute():
    d = request.get_json(silent=True) or {}
    branch_id = _req_int(d, "branch_id")
    year = _req_int(d, "year")
    month = _req_int(d, "month")
    week_number = _req_int(d, "week_number")
    force = bool(d.get("force", False))

    try:
        res = sync_weekly_bonus_for_branch(
            branch_id, year, month, week_number,
            performed_by=current_user_id(), force=force,
        )
        if not res.success:
            db.session.rollback()
            return fail(res.message, 422, code="PREVALIDATION_FAILED", detail=res.as_dict())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("bonus compute by user %s: branch=%s W%s %s/%s",
                            current_user_id(), branch_id, week_number, month, year)
    data = res.as_dict()
    data["weekly_bonus"] = _bonus_row(res.weekly_bonus)
    return ok(data)


@bp.get("/<int:bonus_id>/discrepancies")
@requires_perms("bonus.read")
def discrepancies(bonus_id: int):
    return ok(detect_bonus_discrepancies(bonus_id).as_dict())


@bp.post("/<int:bonus_id>/discrepancies/alert")
@requires_perms("bonus.sync")
def discrepancy_alert(bonus_id: int):
    res = _committed(send_discrepancy_alert, bonus_id, performed_by=current_user_id())
    return ok(res.as_dict())


# ---------- workflow ----------

def _transition(bonus_id: int, action: str, details=None):
    wb = _committed(transition_bonus_status, bonus_id, action, current_user_id(), details=details)
    return ok(_bonus_row(wb))


@bp.post("/<int:bonus_id>/request")
@requires_perms("bonus.request")
def request_bonus(bonus_id: int):
    d = request.get_json(silent=True) or {}
    return _transition(bonus_id, "request", d.get("note"))


@bp.post("/<int:bonus_id>/approve")
@requires_perms("bonus.approve")
def approve_bonus(bonus_id: int):
    d = request.get_json(silent=True) or {}
    return _transition(bonus_id, "approve", d.get("note"))


@bp.post("/<int:bonus_id>/reject")
@requires_perms("bonus.approve")
def reject_bonus(bonus_id: int):
    d = request.get_json(silent=True) or {}
    return _transition(bonus_id, "reject", d.get("reason"))


@bp.post("/<int:bonus_id>/pay")
@requires_perms("bonus.approve")
def pay_bonus(bonus_id: int):
    d = request.get_json(silent=True) or {}
    return _transition(bonus_id, "pay", d.get("note"))
