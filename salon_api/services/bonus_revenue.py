# salon_api/services/bonus_revenue.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Tuple

from sqlalchemy import func

from salon_api.common.errors import NotFound
from salon_api.extensions import db
from salon_api.models.employee import Employee
from salon_api.models.master import Branch
from salon_api.models.revenue import DailyRevenue, EmployeeRevenue
from salon_api.services.bonus_tiers import CENT, ZERO, to_decimal


@dataclass
class BranchRevenue:
    total: Decimal
    entered_dates: List[date] = field(default_factory=list)
    daily_breakdown: List[Tuple[date, Decimal]] = field(default_factory=list)


@dataclass
class RevenueValidation:
    is_matching: bool
    branch_total: Decimal
    employees_total: Decimal
    difference: Decimal
    message: str

    def as_dict(self):
        return {
            "is_matching": self.is_matching,
            "branch_total": float(self.branch_total),
            "employees_total": float(self.employees_total),
            "difference": float(self.difference),
            "message": self.message,
        }


def money(x) -> Decimal:
    if x is None:
        return ZERO.quantize(CENT)
    return to_decimal(x).quantize(CENT)


def get_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFound(f"Branch {branch_id} not found", payload={"branch_id": branch_id})
    return branch


def active_employees(branch_id: int) -> List[Employee]:
    return (
        Employee.query
        .filter(Employee.branch_id == branch_id, Employee.is_active.is_(True))
        .order_by(Employee.id.asc())
        .all()
    )


def aggregate_weekly_revenue(branch_id: int, week_start: date, week_end: date) -> Dict[int, Decimal]:
    """
    {employee_id: weekly revenue} for every active employee of the branch.

    Employees with no revenue lines get 0. Lines are matched by employee and
    by the date of their daily sheet; the sheet's own branch_id is not
    checked, so revenue an employee booked while helping at another branch
    still counts toward their week.
    """
    get_branch(branch_id)
    emp_ids = [e.id for e in active_employees(branch_id)]
    out: Dict[int, Decimal] = {eid: money(0) for eid in emp_ids}
    if not emp_ids:
        return out

    rows = (
        db.session.query(EmployeeRevenue.employee_id, func.coalesce(func.sum(EmployeeRevenue.total), 0))
        .join(DailyRevenue, DailyRevenue.id == EmployeeRevenue.daily_revenue_id)
        .filter(
            EmployeeRevenue.employee_id.in_(emp_ids),
            DailyRevenue.date >= week_start,
            DailyRevenue.date <= week_end,
        )
        .group_by(EmployeeRevenue.employee_id)
        .all()
    )
    for emp_id, total in rows:
        out[emp_id] = money(total)
    return out


def branch_weekly_revenue(branch_id: int, week_start: date, week_end: date) -> BranchRevenue:
    """Branch-level daily sheets for the range (what the cashier entered)."""
    rows = (
        db.session.query(DailyRevenue.date, DailyRevenue.total)
        .filter(
            DailyRevenue.branch_id == branch_id,
            DailyRevenue.date >= week_start,
            DailyRevenue.date <= week_end,
        )
        .order_by(DailyRevenue.date.asc())
        .all()
    )
    breakdown = [(d, money(t)) for d, t in rows]
    return BranchRevenue(
        total=sum((t for _, t in breakdown), money(0)),
        entered_dates=[d for d, _ in breakdown],
        daily_breakdown=breakdown,
    )


def validate_revenue_match(branch_total, employees_total, tolerance=Decimal("0.01")) -> RevenueValidation:
    branch = money(branch_total)
    employees = money(employees_total)
    diff = abs(branch - employees)
    matching = diff <= to_decimal(tolerance, "tolerance")
    if matching:
        msg = f"Revenue matches: {branch}"
    else:
        msg = f"Revenue mismatch: branch {branch} vs employees {employees} (difference {diff})"
    return RevenueValidation(
        is_matching=matching,
        branch_total=branch,
        employees_total=employees,
        difference=diff,
        message=msg,
    )


def branch_lines_total(branch_id: int, week_start: date, week_end: date) -> Decimal:
    """Sum of employee lines booked on this branch's own daily sheets."""
    total = (
        db.session.query(func.coalesce(func.sum(EmployeeRevenue.total), 0))
        .join(DailyRevenue, DailyRevenue.id == EmployeeRevenue.daily_revenue_id)
        .filter(
            DailyRevenue.branch_id == branch_id,
            DailyRevenue.date >= week_start,
            DailyRevenue.date <= week_end,
        )
        .scalar()
    )
    return money(total)
