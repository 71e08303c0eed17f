# salon_api/services/bonus_reconcile.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from salon_api.common.errors import DispatchFailure
from salon_api.extensions import db
from salon_api.models.bonus import BonusDetail
from salon_api.models.employee import Employee
from salon_api.services.bonus_revenue import aggregate_weekly_revenue, money
from salon_api.services.bonus_tiers import NO_TIER, TierLadder, ladder_from_config
from salon_api.services.bonus_workflow import get_weekly_bonus, write_audit
from salon_api.services.notify import Dispatcher, default_dispatcher

log = logging.getLogger(__name__)


@dataclass
class DiscrepancyEntry:
    employee_id: int
    employee_name: Optional[str]
    registered_revenue: Decimal
    actual_revenue: Decimal
    registered_tier: str
    expected_tier: str
    registered_bonus: Decimal
    expected_bonus: Decimal
    kind: str  # changed | unregistered | stale

    @property
    def revenue_diff(self) -> Decimal:
        return self.actual_revenue - self.registered_revenue

    @property
    def bonus_diff(self) -> Decimal:
        return self.expected_bonus - self.registered_bonus

    def as_dict(self):
        return {
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "registered_revenue": float(self.registered_revenue),
            "actual_revenue": float(self.actual_revenue),
            "revenue_diff": float(self.revenue_diff),
            "registered_tier": self.registered_tier,
            "expected_tier": self.expected_tier,
            "registered_bonus": float(self.registered_bonus),
            "expected_bonus": float(self.expected_bonus),
            "bonus_diff": float(self.bonus_diff),
            "kind": self.kind,
        }


@dataclass
class DiscrepancyReport:
    weekly_bonus_id: int
    branch_id: int
    year: int
    month: int
    week_number: int
    total_registered_bonus: Decimal
    total_expected_bonus: Decimal
    discrepancies: List[DiscrepancyEntry] = field(default_factory=list)

    @property
    def has_discrepancy(self) -> bool:
        return len(self.discrepancies) > 0

    def summary(self) -> Dict[str, Any]:
        return {
            "weekly_bonus_id": self.weekly_bonus_id,
            "branch_id": self.branch_id,
            "year": self.year,
            "month": self.month,
            "week_number": self.week_number,
            "total_registered_bonus": float(self.total_registered_bonus),
            "total_expected_bonus": float(self.total_expected_bonus),
            "discrepancy_count": len(self.discrepancies),
        }

    def as_dict(self):
        return {
            "has_discrepancy": self.has_discrepancy,
            "discrepancies": [d.as_dict() for d in self.discrepancies],
            "summary": self.summary(),
        }


@dataclass
class AlertResult:
    sent: bool
    report: DiscrepancyReport
    message: str
    error: Optional[DispatchFailure] = None

    def as_dict(self):
        return {
            "sent": self.sent,
            "message": self.message,
            "error": {"code": self.error.code, "message": self.error.message} if self.error else None,
            "report": self.report.as_dict(),
        }


def detect_bonus_discrepancies(weekly_bonus_id: int, ladder: Optional[TierLadder] = None) -> DiscrepancyReport:
    """
    Compare the stored details of a weekly bonus with a fresh recomputation.

    Reports employees whose revenue or bonus moved, employees with revenue but
    no stored row ("unregistered") and stored rows for employees no longer
    active in the branch ("stale"). Read-only; fixing is a separate sync.
    """
    wb = get_weekly_bonus(weekly_bonus_id)
    ladder = ladder or ladder_from_config()

    registered = {d.employee_id: d for d in BonusDetail.query.filter_by(weekly_bonus_id=wb.id).all()}
    actual = aggregate_weekly_revenue(wb.branch_id, wb.week_start, wb.week_end)

    ids = sorted(set(registered) | set(actual))
    names = dict(
        db.session.query(Employee.id, Employee.name).filter(Employee.id.in_(ids)).all()
    ) if ids else {}

    entries: List[DiscrepancyEntry] = []
    total_registered = money(0)
    total_expected = money(0)
    for emp_id in ids:
        reg = registered.get(emp_id)
        reg_revenue = money(reg.weekly_revenue) if reg else money(0)
        reg_bonus = money(reg.bonus_amount) if reg else money(0)
        reg_tier = reg.bonus_tier if reg else NO_TIER
        total_registered += reg_bonus

        if emp_id in actual:
            act_revenue = actual[emp_id]
            calc = ladder.classify(act_revenue)
            exp_tier, exp_bonus = calc.tier, money(calc.amount)
        else:
            act_revenue, exp_tier, exp_bonus = money(0), NO_TIER, money(0)
        total_expected += exp_bonus

        if reg is None:
            kind = "unregistered"
        elif emp_id not in actual:
            kind = "stale"
        elif act_revenue != reg_revenue or exp_bonus != reg_bonus:
            kind = "changed"
        else:
            continue

        entries.append(DiscrepancyEntry(
            employee_id=emp_id,
            employee_name=names.get(emp_id),
            registered_revenue=reg_revenue,
            actual_revenue=act_revenue,
            registered_tier=reg_tier,
            expected_tier=exp_tier,
            registered_bonus=reg_bonus,
            expected_bonus=exp_bonus,
            kind=kind,
        ))

    report = DiscrepancyReport(
        weekly_bonus_id=wb.id,
        branch_id=wb.branch_id,
        year=wb.year,
        month=wb.month,
        week_number=wb.week_number,
        total_registered_bonus=total_registered,
        total_expected_bonus=total_expected,
        discrepancies=entries,
    )
    if report.has_discrepancy:
        log.info("bonus %s (%s): %s discrepancies", wb.id, wb.period_label, len(entries))
    return report


def send_discrepancy_alert(weekly_bonus_id: int, performed_by: Optional[int] = None,
                           dispatcher: Optional[Dispatcher] = None) -> AlertResult:
    """
    Detect and, when something is off, hand the report to the dispatcher.
    A failed send is logged and written to the audit row, never raised.
    """
    report = detect_bonus_discrepancies(weekly_bonus_id)
    if not report.has_discrepancy:
        return AlertResult(sent=False, report=report, message="No discrepancies; nothing to send")

    dispatcher = dispatcher or default_dispatcher()
    payload = report.as_dict()
    error = None
    try:
        sent = bool(dispatcher(payload))
        if not sent:
            error = DispatchFailure("dispatcher reported failure")
    except Exception as e:
        log.exception("bonus alert dispatch raised for weekly bonus %s", weekly_bonus_id)
        sent = False
        error = DispatchFailure(str(e) or e.__class__.__name__)

    n = len(report.discrepancies)
    if sent:
        message = f"Alert sent: {n} discrepancies"
    else:
        message = f"Alert failed: {n} discrepancies ({error.message})"
        log.error("bonus alert for weekly bonus %s failed: %s", weekly_bonus_id, error.message)

    write_audit(
        weekly_bonus_id, "discrepancy_alert_sent",
        performed_by=performed_by,
        details=message,
    )
    db.session.flush()
    return AlertResult(sent=sent, report=report, message=message, error=error)
