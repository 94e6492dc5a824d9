from datetime import datetime

from app.umbra.db import session_scope
from app.umbra.models import User
from app.umbra.modules.bonuses.service import ensure_default_grid
from app.umbra.modules.deposits.models import Deposit
from app.umbra.modules.deposits.service import create_deposit
from app.umbra.modules.salary.service import validate_salary_request
from tests.conftest import PROCESSOR

NOW = datetime(2024, 6, 15, 12, 0)


def _admin_client(client):
    admin = client.application.test_client()
    r = admin.post("/api/auth/login", json={"email": "admin@example.com", "password": "admin123"})
    assert r.status_code == 200
    return admin


def test_validate_salary_request():
    assert validate_salary_request({}, NOW) == ["periodStart and periodEnd are required."]
    assert validate_salary_request({"periodStart": "garbage", "periodEnd": "2024-06-01"}, NOW) == [
        "periodStart and periodEnd must be ISO dates."
    ]
    errors = validate_salary_request({"periodStart": "2024-06-10T00:00:00", "periodEnd": "2024-07-01T00:00:00"}, NOW)
    assert "periodEnd cannot be in the future." in errors
    errors = validate_salary_request(
        {"periodStart": "2024-06-10T00:00:00Z", "periodEnd": "2024-06-01T00:00:00Z", "requestedAmount": -1}, NOW
    )
    assert "periodStart must be before periodEnd." in errors
    assert "requestedAmount must be a non-negative number." in errors
    assert validate_salary_request({"periodStart": "2024-06-01T00:00:00", "periodEnd": "2024-06-14T00:00:00"}, NOW) == []


def test_salary_settings_replace(client, login):
    login()
    r = client.get("/api/admin/salary-settings")
    assert r.json["salarySettings"]["hourlyRate"] == 2.0

    r = client.post("/api/admin/salary-settings", json={"hourlyRate": "abc"})
    assert r.status_code == 400

    r = client.post("/api/admin/salary-settings", json={"hourlyRate": 3.5})
    assert r.status_code == 201
    assert r.json["salarySettings"]["isActive"] is True

    r = client.get("/api/admin/salary-settings")
    assert r.json["salarySettings"]["hourlyRate"] == 3.5


def test_salary_request_flow(client, login):
    login(PROCESSOR)
    payload = {
        "periodStart": "2024-01-01T00:00:00Z",
        "periodEnd": "2024-01-31T23:59:59Z",
        "requestedAmount": 120,
        "paymentDetails": "USDT TRC20 wallet",
    }
    r = client.post("/api/processor/salary-requests", json=payload)
    assert r.status_code == 201
    req = r.json["request"]
    assert req["status"] == "PENDING"
    assert req["requestedAmount"] == 120.0
    assert req["calculatedAmount"] == 0.0

    overlap = dict(payload, periodStart="2024-01-15T00:00:00Z", periodEnd="2024-02-10T00:00:00Z")
    r = client.post("/api/processor/salary-requests", json=overlap)
    assert r.status_code == 400

    r = client.get("/api/processor/salary-requests")
    assert len(r.json["requests"]) == 1

    admin = _admin_client(client)
    r = admin.put(f"/api/admin/salary-requests/{req['id']}", json={"action": "pay"})
    assert r.status_code == 400

    r = admin.put(f"/api/admin/salary-requests/{req['id']}", json={"action": "approve", "comment": "ok"})
    assert r.status_code == 200
    assert r.json["request"]["status"] == "APPROVED"
    assert r.json["request"]["adminComment"] == "ok"

    r = admin.put(f"/api/admin/salary-requests/{req['id']}", json={"action": "pay"})
    assert r.status_code == 200
    assert r.json["request"]["paidAt"]

    r = client.get("/api/processor/stats")
    assert r.json["balance"]["paid"] == 120.0
    assert r.json["balance"]["available"] == -120.0

    r = admin.get("/api/admin/salary-requests?status=paid")
    assert len(r.json["requests"]) == 1


def test_rejected_request_does_not_block_new_one(client, login):
    login(PROCESSOR)
    payload = {"periodStart": "2024-03-01T00:00:00", "periodEnd": "2024-03-31T00:00:00"}
    req_id = client.post("/api/processor/salary-requests", json=payload).json["request"]["id"]

    admin = _admin_client(client)
    r = admin.put(f"/api/admin/salary-requests/{req_id}", json={"action": "reject"})
    assert r.status_code == 200

    r = client.post("/api/processor/salary-requests", json=payload)
    assert r.status_code == 201

    assert admin.put("/api/admin/salary-requests/9999", json={"action": "approve"}).status_code == 404


def test_calculated_amount_counts_approved_bonuses(app, client, login):
    with session_scope(app) as s:
        ensure_default_grid(s)
        processor = s.query(User).filter(User.email == PROCESSOR[0]).one()
        approved, _ = create_deposit(
            s,
            {"amount": 2000, "currency": "USDT", "playerEmail": "p@example.com"},
            processor,
            now=datetime(2024, 2, 10, 12, 0),
        )
        approved.status = "APPROVED"
        # Still PENDING, so not part of the calculation
        create_deposit(
            s,
            {"amount": 1000, "currency": "USDT", "playerEmail": "p@example.com"},
            processor,
            now=datetime(2024, 2, 12, 12, 0),
        )

    with session_scope(app) as s:
        assert s.query(Deposit).filter(Deposit.status == "APPROVED").one().bonus_amount == 50.0

    login(PROCESSOR)
    r = client.post(
        "/api/processor/salary-requests",
        json={"periodStart": "2024-02-01T00:00:00Z", "periodEnd": "2024-02-28T23:59:59Z"},
    )
    assert r.status_code == 201
    assert r.json["request"]["calculatedAmount"] == 50.0
    # Without requestedAmount the calculated value is requested
    assert r.json["request"]["requestedAmount"] == 50.0
