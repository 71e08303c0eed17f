import os
from datetime import date
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from salon_api import create_app
from salon_api.extensions import db
from salon_api.models.employee import Employee
from salon_api.models.master import Branch
from salon_api.models.revenue import DailyRevenue, EmployeeRevenue
from salon_api.models.security import Permission, Role, RolePermission, UserRole
from salon_api.models.user import User


@pytest.fixture(scope="function")
def app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    with app.app_context():
        db.create_all()
        yield app


@pytest.fixture(scope="function")
def client(app):
    return app.test_client()


@pytest.fixture(scope="function")
def data(app):
    admin = User(email="admin@demo.local", full_name="Demo Admin", status="active")
    admin.set_password("4445")
    sup = User(email="sup@demo.local", full_name="Supervisor", status="active")
    sup.set_password("4445")
    db.session.add_all([admin, sup]); db.session.commit()

    role = Role(code="supervisor")
    db.session.add(role); db.session.flush()
    for code in ("bonus.read", "bonus.request"):
        p = Permission(code=code)
        db.session.add(p); db.session.flush()
        db.session.add(RolePermission(role_id=role.id, permission_id=p.id))
    db.session.add(UserRole(user_id=sup.id, role_id=role.id))

    b = Branch(code="B1", name="Main")
    db.session.add(b); db.session.commit()
    a = Employee(branch_id=b.id, code="E1", name="Alice")
    c = Employee(branch_id=b.id, code="E2", name="Carla")
    db.session.add_all([a, c]); db.session.commit()
    for d in range(1, 8):
        lines = {a: Decimal("350"), c: Decimal("190")}  # 2450 and 1330 for the week
        dr = DailyRevenue(branch_id=b.id, date=date(2025, 3, d), total=sum(lines.values()))
        db.session.add(dr); db.session.flush()
        for e, v in lines.items():
            db.session.add(EmployeeRevenue(daily_revenue_id=dr.id, employee_id=e.id, total=v))
    db.session.commit()

    admin_token = create_access_token(identity=str(admin.id), additional_claims={"roles": ["admin"]})
    sup_token = create_access_token(identity=str(sup.id), additional_claims={"roles": ["supervisor"]})
    return {
        "branch": b,
        "admin": {"Authorization": f"Bearer {admin_token}"},
        "sup": {"Authorization": f"Bearer {sup_token}"},
    }


def _compute(client, headers, branch_id, **extra):
    body = {"branch_id": branch_id, "year": 2025, "month": 3, "week_number": 1}
    body.update(extra)
    return client.post("/api/v1/bonuses/compute", json=body, headers=headers)


def test_login(client, data):
    r = client.post("/api/v1/auth/login", json={"email": "ADMIN@demo.local", "password": "4445"})
    assert r.status_code == 200
    body = r.get_json()
    assert body["success"] is True
    assert body["data"]["access"]
    assert body["data"]["user"]["email"] == "admin@demo.local"

    r = client.post("/api/v1/auth/login", json={"email": "admin@demo.local", "password": "nope"})
    assert r.status_code == 401
    assert r.get_json()["success"] is False


def test_requires_token_and_permission(client, data):
    assert client.get("/api/v1/bonuses").status_code == 401
    # supervisor may read but not compute
    assert client.get("/api/v1/bonuses", headers=data["sup"]).status_code == 200
    r = _compute(client, data["sup"], data["branch"].id)
    assert r.status_code == 403


def test_compute_and_read(client, data):
    r = _compute(client, data["admin"], data["branch"].id)
    assert r.status_code == 200, r.get_json()
    body = r.get_json()["data"]
    assert body["success"] is True
    wb = body["weekly_bonus"]
    assert wb["total_amount"] == 215.0
    assert wb["status"] == "pending"
    assert wb["allowed_actions"] == ["request"]

    r = client.get(f"/api/v1/bonuses/{wb['id']}", headers=data["sup"])
    assert r.status_code == 200
    detail = r.get_json()["data"]
    assert [d["employee_name"] for d in detail["details"]] == ["Alice", "Carla"]
    assert detail["total_amount"] == sum(d["bonus_amount"] for d in detail["details"])

    r = client.get(f"/api/v1/bonuses?branch_id={data['branch'].id}&status=pending", headers=data["sup"])
    listing = r.get_json()
    assert listing["meta"]["total"] == 1
    assert listing["data"][0]["id"] == wb["id"]

    assert client.get("/api/v1/bonuses?status=bogus", headers=data["sup"]).status_code == 422


def test_compute_validation_errors(client, data):
    r = client.post("/api/v1/bonuses/compute", json={"branch_id": data["branch"].id}, headers=data["admin"])
    assert r.status_code == 422
    assert r.get_json()["error"]["code"] == "VALIDATION_ERROR"

    r = _compute(client, data["admin"], 999)
    assert r.status_code == 404
    assert r.get_json()["error"]["code"] == "NOT_FOUND"


def test_compute_blocked_on_mismatch(client, data, app):
    dr = DailyRevenue.query.filter_by(date=date(2025, 3, 3)).one()
    dr.total = dr.total + 500
    db.session.commit()

    r = _compute(client, data["admin"], data["branch"].id)
    assert r.status_code == 422
    assert r.get_json()["error"]["code"] == "PREVALIDATION_FAILED"
    assert client.get("/api/v1/bonuses", headers=data["admin"]).get_json()["meta"]["total"] == 0

    r = _compute(client, data["admin"], data["branch"].id, force=True)
    assert r.status_code == 200
    assert r.get_json()["data"]["warnings"]


def test_workflow_over_http(client, data):
    wb_id = _compute(client, data["admin"], data["branch"].id).get_json()["data"]["weekly_bonus"]["id"]
    base = f"/api/v1/bonuses/{wb_id}"

    r = client.post(f"{base}/approve", headers=data["admin"])
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "INVALID_TRANSITION"

    assert client.post(f"{base}/request", headers=data["sup"]).status_code == 200
    # supervisor cannot approve
    assert client.post(f"{base}/approve", headers=data["sup"]).status_code == 403

    r = client.post(f"{base}/reject", json={}, headers=data["admin"])
    assert r.status_code == 422

    r = client.post(f"{base}/approve", headers=data["admin"])
    assert r.get_json()["data"]["status"] == "approved"
    r = client.post(f"{base}/pay", headers=data["admin"])
    assert r.get_json()["data"]["status"] == "paid"

    history = client.get(f"{base}/history", headers=data["sup"]).get_json()["data"]
    assert [h["action"] for h in history] == ["request", "approve", "pay"]

    logs = client.get(f"/api/v1/bonuses/audit-logs?weekly_bonus_id={wb_id}", headers=data["admin"]).get_json()
    assert [row["action"] for row in logs["data"]] == ["pay", "approve", "request", "sync"]
    # supervisor has no audit permission
    assert client.get("/api/v1/bonuses/audit-logs", headers=data["sup"]).status_code == 403


def test_reject_over_http(client, data):
    wb_id = _compute(client, data["admin"], data["branch"].id).get_json()["data"]["weekly_bonus"]["id"]
    client.post(f"/api/v1/bonuses/{wb_id}/request", headers=data["admin"])
    r = client.post(f"/api/v1/bonuses/{wb_id}/reject", json={"reason": "recount"}, headers=data["admin"])
    body = r.get_json()["data"]
    assert body["status"] == "rejected"
    assert body["rejection_reason"] == "recount"
    assert body["allowed_actions"] == []


def test_discrepancies_endpoints(client, data):
    wb_id = _compute(client, data["admin"], data["branch"].id).get_json()["data"]["weekly_bonus"]["id"]
    r = client.get(f"/api/v1/bonuses/{wb_id}/discrepancies", headers=data["sup"])
    assert r.get_json()["data"]["has_discrepancy"] is False

    newcomer = Employee(branch_id=data["branch"].id, code="E3", name="Nora")
    db.session.add(newcomer); db.session.commit()

    r = client.get(f"/api/v1/bonuses/{wb_id}/discrepancies", headers=data["sup"])
    report = r.get_json()["data"]
    assert report["has_discrepancy"] is True
    assert report["discrepancies"][0]["kind"] == "unregistered"

    r = client.post(f"/api/v1/bonuses/{wb_id}/discrepancies/alert", headers=data["admin"])
    assert r.status_code == 200
    # no webhook configured -> logged only
    assert r.get_json()["data"]["sent"] is False

    assert client.get("/api/v1/bonuses/999/discrepancies", headers=data["sup"]).status_code == 404


def test_tiers_and_current_week(client, data):
    tiers = client.get("/api/v1/bonuses/tiers", headers=data["sup"]).get_json()["data"]
    assert tiers[0] == {"tier": "tier_5", "min_revenue": 2400.0, "max_revenue": None, "amount": 180.0}
    assert tiers[-1]["tier"] == "none"

    r = client.get(f"/api/v1/bonuses/current-week?date=2025-03-30&branch_id={data['branch'].id}", headers=data["sup"])
    week = r.get_json()["data"]
    assert week["week_number"] == 5
    assert (week["week_start"], week["week_end"]) == ("2025-03-29", "2025-03-31")
    assert week["weekly_bonus"] is None

    assert client.get("/api/v1/bonuses/current-week?date=garbage", headers=data["sup"]).status_code == 422
