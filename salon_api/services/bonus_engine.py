# salon_api/services/bonus_engine.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from flask import current_app, has_app_context
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from salon_api.common.errors import APIError, ConstraintViolation, NotFound, ValidationError
from salon_api.extensions import db
from salon_api.models.bonus import BonusDetail, WeeklyBonus
from salon_api.models.master import Branch
from salon_api.services.bonus_calendar import validate_week_data, week_date_range
from salon_api.services.bonus_revenue import (
    active_employees,
    aggregate_weekly_revenue,
    branch_lines_total,
    branch_weekly_revenue,
    money,
    validate_revenue_match,
)
from salon_api.services.bonus_tiers import BonusCalculation, TierLadder, ladder_from_config
from salon_api.services.bonus_workflow import get_weekly_bonus, write_audit

log = logging.getLogger(__name__)


@dataclass
class SyncResult:
    success: bool
    message: str
    weekly_bonus: Optional[WeeklyBonus] = None
    summary: Optional[Dict[str, Any]] = None
    validation: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def as_dict(self):
        return {
            "success": self.success,
            "message": self.message,
            "weekly_bonus_id": self.weekly_bonus.id if self.weekly_bonus is not None else None,
            "summary": self.summary,
            "validation": self.validation,
            "warnings": self.warnings,
            "errors": self.errors,
        }


# ---------- persistence helpers ----------

def find_weekly_bonus(branch_id: int, year: int, month: int, week_number: int) -> Optional[WeeklyBonus]:
    return WeeklyBonus.query.filter_by(
        branch_id=branch_id, year=year, month=month, week_number=week_number,
    ).first()


def _get_or_create_weekly_bonus(branch_id, year, month, week_number, week_start, week_end) -> Tuple[WeeklyBonus, bool]:
    wb = find_weekly_bonus(branch_id, year, month, week_number)
    if wb is not None:
        return wb, False
    try:
        with db.session.begin_nested():
            wb = WeeklyBonus(
                branch_id=branch_id, year=year, month=month, week_number=week_number,
                week_start=week_start, week_end=week_end,
                total_amount=money(0), status="pending",
            )
            db.session.add(wb)
        return wb, True
    except IntegrityError:
        # another run created the week between our lookup and insert
        wb = find_weekly_bonus(branch_id, year, month, week_number)
        if wb is None:
            raise
        log.warning("weekly bonus %s/%s/%s W%s created concurrently; reusing id=%s",
                    branch_id, year, month, week_number, wb.id)
        return wb, False


def _apply(detail: BonusDetail, revenue: Decimal, calc: BonusCalculation) -> bool:
    """Copy computed values onto the row; True when anything changed."""
    new = (money(revenue), calc.tier, money(calc.amount), calc.is_eligible)
    old = (
        money(detail.weekly_revenue) if detail.weekly_revenue is not None else None,
        detail.bonus_tier,
        money(detail.bonus_amount) if detail.bonus_amount is not None else None,
        detail.is_eligible,
    )
    if new == old:
        return False
    detail.weekly_revenue, detail.bonus_tier, detail.bonus_amount, detail.is_eligible = new
    return True


def _upsert_detail(wb: WeeklyBonus, existing: Optional[BonusDetail], employee_id: int,
                   revenue: Decimal, calc: BonusCalculation) -> str:
    if existing is not None:
        return "updated" if _apply(existing, revenue, calc) else "unchanged"

    try:
        with db.session.begin_nested():
            d = BonusDetail(weekly_bonus_id=wb.id, employee_id=employee_id)
            _apply(d, revenue, calc)
            db.session.add(d)
        return "created"
    except IntegrityError:
        log.warning("bonus detail (%s, %s) inserted concurrently; retrying as update", wb.id, employee_id)

    # single retry as update-in-place
    try:
        with db.session.begin_nested():
            d = BonusDetail.query.filter_by(weekly_bonus_id=wb.id, employee_id=employee_id).first()
            if d is None:
                raise ConstraintViolation(
                    f"bonus detail for employee {employee_id} conflicts but cannot be found",
                    payload={"weekly_bonus_id": wb.id, "employee_id": employee_id},
                )
            _apply(d, revenue, calc)
        return "updated"
    except IntegrityError as e:
        raise ConstraintViolation(
            f"bonus detail for employee {employee_id} failed twice on unique key",
            payload={"weekly_bonus_id": wb.id, "employee_id": employee_id},
        ) from e


def recompute_total(wb: WeeklyBonus) -> Decimal:
    """total_amount := SUM(details.bonus_amount), read back from the database."""
    db.session.flush()
    total = money(
        db.session.query(func.coalesce(func.sum(BonusDetail.bonus_amount), 0))
        .filter(BonusDetail.weekly_bonus_id == wb.id)
        .scalar()
    )
    if wb.total_amount is None or money(wb.total_amount) != total:
        wb.total_amount = total
    return total


# ---------- core ----------

def compute_weekly_bonus(branch_id: int, year: int, month: int, week_number: int,
                         week_start: date, week_end: date,
                         performed_by: Optional[int] = None,
                         ladder: Optional[TierLadder] = None) -> WeeklyBonus:
    """
    Aggregate, classify and persist one branch-week.

    Creates the WeeklyBonus on first run and updates details in place on later
    runs; details of employees no longer in the branch are left as they are.
    week_start/week_end must be exactly the calendar days of the week key.
    Only flushes; the caller owns the transaction.
    """
    expected = week_date_range(year, month, week_number)
    if (week_start, week_end) != expected:
        raise ValidationError(
            f"week {week_number} of {month}/{year} runs {expected[0]} to {expected[1]}",
            payload={"week_start": week_start.isoformat(), "week_end": week_end.isoformat(),
                     "expected_start": expected[0].isoformat(), "expected_end": expected[1].isoformat()},
        )
    ladder = ladder or ladder_from_config()

    revenues = aggregate_weekly_revenue(branch_id, week_start, week_end)
    calcs = {emp_id: ladder.classify(rev) for emp_id, rev in revenues.items()}

    wb, created = _get_or_create_weekly_bonus(branch_id, year, month, week_number, week_start, week_end)
    existing = {d.employee_id: d for d in BonusDetail.query.filter_by(weekly_bonus_id=wb.id).all()}

    counts = {"created": 0, "updated": 0, "unchanged": 0}
    for emp_id, revenue in revenues.items():
        outcome = _upsert_detail(wb, existing.get(emp_id), emp_id, revenue, calcs[emp_id])
        counts[outcome] += 1

    total = recompute_total(wb)
    eligible = sum(1 for c in calcs.values() if c.is_eligible)

    write_audit(
        wb.id, "sync",
        performed_by=performed_by,
        old_status=wb.status,
        new_status=wb.status,
        details=(
            f"{'created' if created else 'synced'} {wb.period_label}: "
            f"{len(revenues)} employees, {eligible} eligible, total {total} "
            f"(new {counts['created']}, changed {counts['updated']}, unchanged {counts['unchanged']})"
        ),
    )
    db.session.flush()
    log.info("bonus sync branch=%s %s: employees=%s eligible=%s total=%s",
             branch_id, wb.period_label, len(revenues), eligible, total)
    return wb


def week_summary(wb: WeeklyBonus, branch_total: Decimal, employees_total: Decimal,
                 days_validation, revenue_validation) -> Dict[str, Any]:
    details = BonusDetail.query.filter_by(weekly_bonus_id=wb.id).all()
    return {
        "week_number": wb.week_number,
        "month": wb.month,
        "year": wb.year,
        "week_start": wb.week_start.isoformat(),
        "week_end": wb.week_end.isoformat(),
        "total_branch_revenue": float(branch_total),
        "total_employees_revenue": float(employees_total),
        "total_bonus": float(wb.total_amount or 0),
        "employee_count": len(details),
        "eligible_count": sum(1 for d in details if d.is_eligible),
        "validation": {
            "days_complete": days_validation.as_dict(),
            "revenue_match": revenue_validation.as_dict(),
        },
    }


def _tolerance() -> Decimal:
    raw = current_app.config.get("BONUS_REVENUE_TOLERANCE", "0.01") if has_app_context() else "0.01"
    return Decimal(str(raw))


def sync_weekly_bonus_for_branch(branch_id: int, year: int, month: int, week_number: int,
                                 performed_by: Optional[int] = None,
                                 force: bool = False,
                                 skip_validation: bool = False,
                                 ladder: Optional[TierLadder] = None) -> SyncResult:
    """
    Calendar-driven sync with pre-validation.

    Missing daily sheets only warn. A gap between the branch sheets and the
    employee lines blocks the sync unless `force` is set; nothing is written
    in that case.
    """
    start, end = week_date_range(year, month, week_number)
    if not active_employees(branch_id):
        raise NotFound(f"No active employees in branch {branch_id}", payload={"branch_id": branch_id})

    branch_rev = branch_weekly_revenue(branch_id, start, end)
    days_val = validate_week_data(year, month, week_number, branch_rev.entered_dates)
    rev_val = validate_revenue_match(branch_rev.total, branch_lines_total(branch_id, start, end), _tolerance())

    warnings: List[str] = []
    errors: List[str] = []
    if not skip_validation:
        if not days_val.is_valid:
            warnings.append(days_val.message)
        if not rev_val.is_matching:
            errors.append(rev_val.message)
        if errors and not force:
            log.error("bonus pre-validation failed branch=%s W%s %s/%s: %s",
                      branch_id, week_number, month, year, "; ".join(errors))
            return SyncResult(
                success=False,
                message="Pre-validation failed: " + "; ".join(errors),
                validation={"days_complete": days_val.as_dict(), "revenue_match": rev_val.as_dict()},
                warnings=warnings,
                errors=errors,
            )
        if warnings:
            log.warning("bonus sync warnings branch=%s: %s", branch_id, "; ".join(warnings))

    wb = compute_weekly_bonus(branch_id, year, month, week_number, start, end,
                              performed_by=performed_by, ladder=ladder)
    employees_total = sum(
        (money(d.weekly_revenue) for d in BonusDetail.query.filter_by(weekly_bonus_id=wb.id).all()),
        money(0),
    )
    summary = week_summary(wb, branch_rev.total, employees_total, days_val, rev_val)

    msg = f"Bonus synced for {summary['employee_count']} employees"
    if warnings or errors:
        msg += " (with warnings)"
    return SyncResult(
        success=True,
        message=msg,
        weekly_bonus=wb,
        summary=summary,
        validation=summary["validation"],
        warnings=warnings + errors,
    )


def sync_all_branches(year: int, month: int, week_number: int,
                      performed_by: Optional[int] = None,
                      force: bool = False) -> List[Tuple[Branch, SyncResult]]:
    """
    Scheduled end-of-week pass. Each branch commits or rolls back on its own
    so one bad branch does not hold up the rest.
    """
    out = []
    branches = Branch.query.filter_by(is_active=True).order_by(Branch.id.asc()).all()
    for branch in branches:
        try:
            res = sync_weekly_bonus_for_branch(branch.id, year, month, week_number,
                                               performed_by=performed_by, force=force)
            if res.success:
                db.session.commit()
            else:
                db.session.rollback()
        except APIError as e:
            db.session.rollback()
            log.warning("bonus sync skipped branch=%s: %s", branch.id, e.message)
            res = SyncResult(success=False, message=e.message, errors=[e.message])
        except Exception:
            db.session.rollback()
            log.exception("bonus sync failed branch=%s", branch.id)
            res = SyncResult(success=False, message="unexpected error", errors=["unexpected error"])
        out.append((branch, res))
    return out


def delete_weekly_bonus(weekly_bonus_id: int) -> Dict[str, Any]:
    """Maintenance delete; details cascade, the audit trail stays."""
    wb = get_weekly_bonus(weekly_bonus_id)
    n_details = len(wb.details)
    info = {"id": wb.id, "branch_id": wb.branch_id, "period": wb.period_label, "details_deleted": n_details}
    db.session.delete(wb)
    db.session.flush()
    log.warning("weekly bonus %s (%s) purged with %s details", info["id"], info["period"], n_details)
    return info
