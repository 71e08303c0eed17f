import os
from datetime import date
from decimal import Decimal

import pytest

from salon_api import create_app
from salon_api.extensions import db
from salon_api.models.bonus import BonusAuditLog, BonusDetail
from salon_api.models.employee import Employee
from salon_api.models.master import Branch
from salon_api.models.revenue import DailyRevenue, EmployeeRevenue
from salon_api.services.bonus_engine import compute_weekly_bonus
from salon_api.services.bonus_reconcile import detect_bonus_discrepancies, send_discrepancy_alert
from salon_api.services.notify import WebhookDispatcher, default_dispatcher, log_only_dispatcher


@pytest.fixture(scope="function")
def app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    with app.app_context():
        db.create_all()
        yield app


@pytest.fixture(scope="function")
def computed(app):
    """Branch with Alice (2500) and Carla (1300), week 1 of March 2025 computed."""
    b = Branch(code="B1", name="Main")
    db.session.add(b); db.session.commit()
    a = Employee(branch_id=b.id, code="E1", name="Alice")
    c = Employee(branch_id=b.id, code="E2", name="Carla")
    db.session.add_all([a, c]); db.session.commit()
    _sheet(b, date(2025, 3, 3), {a: 2500, c: 1300})
    wb = compute_weekly_bonus(b.id, 2025, 3, 1, date(2025, 3, 1), date(2025, 3, 7))
    db.session.commit()
    return b, a, c, wb


def _sheet(branch, day, lines):
    dr = DailyRevenue(branch_id=branch.id, date=day, total=sum(Decimal(str(v)) for v in lines.values()))
    db.session.add(dr); db.session.flush()
    for emp, amount in lines.items():
        db.session.add(EmployeeRevenue(daily_revenue_id=dr.id, employee_id=emp.id, total=Decimal(str(amount))))
    db.session.commit()


def test_no_discrepancy_right_after_compute(computed):
    b, a, c, wb = computed
    report = detect_bonus_discrepancies(wb.id)
    assert report.has_discrepancy is False
    assert report.discrepancies == []
    s = report.summary()
    assert s["weekly_bonus_id"] == wb.id
    assert s["total_registered_bonus"] == s["total_expected_bonus"] == 215.0


def test_unregistered_employee_reported_with_full_revenue(computed):
    b, a, c, wb = computed
    newcomer = Employee(branch_id=b.id, code="E3", name="Nora")
    db.session.add(newcomer); db.session.commit()
    _sheet(b, date(2025, 3, 4), {newcomer: 1500})

    report = detect_bonus_discrepancies(wb.id)
    assert report.has_discrepancy
    assert len(report.discrepancies) == 1
    entry = report.discrepancies[0]
    assert entry.kind == "unregistered"
    assert entry.employee_name == "Nora"
    assert entry.registered_revenue == Decimal("0")
    assert entry.registered_bonus == Decimal("0")
    assert entry.revenue_diff == Decimal("1500.00")
    assert entry.expected_tier == "tier_2"
    assert entry.bonus_diff == Decimal("60.00")


def test_changed_revenue_reported(computed):
    b, a, c, wb = computed
    _sheet(b, date(2025, 3, 6), {c: 50})

    report = detect_bonus_discrepancies(wb.id)
    (entry,) = report.discrepancies
    assert entry.employee_id == c.id
    assert entry.kind == "changed"
    assert entry.revenue_diff == Decimal("50.00")
    # still tier_1, so the bonus itself did not move
    assert entry.bonus_diff == Decimal("0.00")


def test_stale_row_reported(computed):
    b, a, c, wb = computed
    c.is_active = False
    db.session.commit()

    report = detect_bonus_discrepancies(wb.id)
    (entry,) = report.discrepancies
    assert entry.kind == "stale"
    assert entry.employee_id == c.id
    assert entry.expected_bonus == Decimal("0.00")
    assert entry.bonus_diff == Decimal("-35.00")


def test_detection_does_not_touch_stored_rows(computed):
    b, a, c, wb = computed
    _sheet(b, date(2025, 3, 6), {c: 900})
    before = [(d.id, d.weekly_revenue, d.bonus_amount) for d in BonusDetail.query.order_by(BonusDetail.id).all()]
    detect_bonus_discrepancies(wb.id)
    db.session.commit()
    after = [(d.id, d.weekly_revenue, d.bonus_amount) for d in BonusDetail.query.order_by(BonusDetail.id).all()]
    assert before == after


def test_alert_sent_is_audited(computed):
    b, a, c, wb = computed
    _sheet(b, date(2025, 3, 6), {c: 900})
    seen = []

    def dispatcher(report):
        seen.append(report)
        return True

    res = send_discrepancy_alert(wb.id, dispatcher=dispatcher)
    db.session.commit()
    assert res.sent is True
    assert seen[0]["summary"]["discrepancy_count"] == 1
    row = BonusAuditLog.query.filter_by(weekly_bonus_id=wb.id, action="discrepancy_alert_sent").one()
    assert row.details.startswith("Alert sent")


def test_alert_failure_is_recorded_not_raised(computed):
    b, a, c, wb = computed
    _sheet(b, date(2025, 3, 6), {c: 900})

    def broken(report):
        raise RuntimeError("smtp relay down")

    res = send_discrepancy_alert(wb.id, dispatcher=broken)
    db.session.commit()
    assert res.sent is False
    assert res.report.has_discrepancy
    row = BonusAuditLog.query.filter_by(weekly_bonus_id=wb.id, action="discrepancy_alert_sent").one()
    assert "Alert failed" in row.details
    assert "smtp relay down" in row.details
    assert res.error.code == "DISPATCH_FAILURE"


def test_no_alert_without_discrepancy(computed):
    b, a, c, wb = computed
    calls = []
    res = send_discrepancy_alert(wb.id, dispatcher=lambda r: calls.append(r) or True)
    assert res.sent is False
    assert calls == []
    assert BonusAuditLog.query.filter_by(action="discrepancy_alert_sent").count() == 0


def test_default_dispatcher_follows_config(app):
    assert default_dispatcher() is log_only_dispatcher
    assert log_only_dispatcher({"summary": {}}) is False

    app.config["BONUS_ALERT_WEBHOOK_URL"] = "https://relay.example/hooks/bonus"
    d = default_dispatcher()
    assert isinstance(d, WebhookDispatcher)
    assert d.url == "https://relay.example/hooks/bonus"


class _Resp:
    def __init__(self, status_code):
        self.status_code = status_code
        self.text = ""


class _Session:
    def __init__(self, status_code):
        self.status_code = status_code
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json, timeout))
        return _Resp(self.status_code)


def test_webhook_dispatcher_posts_report():
    s = _Session(202)
    d = WebhookDispatcher("https://relay.example/x", timeout=3, session=s)
    assert d({"summary": {"branch_id": 1, "week_number": 2, "month": 3, "year": 2025}}) is True
    url, body, timeout = s.calls[0]
    assert url == "https://relay.example/x"
    assert timeout == 3
    assert body["type"] == "bonus_discrepancy"
    assert "W2 3/2025" in body["subject"]

    assert WebhookDispatcher("https://relay.example/x", session=_Session(500))({"summary": {}}) is False
