from datetime import datetime

import pytest

from app.umbra.db import session_scope
from app.umbra.models import User
from app.umbra.modules.bonuses.models import BonusPayment
from app.umbra.modules.bonuses.service import ensure_default_grid, process_held_payments
from app.umbra.modules.deposits.models import Deposit
from app.umbra.modules.deposits.service import (
    create_deposit,
    currency_type_for,
    day_total,
    processor_stats,
    validate_deposit_payload,
)
from tests.conftest import PENDING, PROCESSOR, PROCESSOR_2


@pytest.fixture()
def seeded_grid(app):
    with session_scope(app) as s:
        ensure_default_grid(s)
    return app


def _deposit(client, amount, email="player@example.com", currency="USDT"):
    return client.post(
        "/api/processor/deposits",
        json={"amount": amount, "currency": currency, "playerEmail": email, "playerNick": "nick"},
    )


def test_currency_type_for():
    assert currency_type_for("usdt") == "CRYPTO"
    assert currency_type_for("EUR") == "FIAT"


def test_validate_deposit_payload():
    assert validate_deposit_payload({"amount": 10}) == ["amount, currency and playerEmail are required."]
    errors = validate_deposit_payload({"amount": "-5", "currency": "USD", "playerEmail": "bad"})
    assert "Invalid player email." in errors
    assert "amount must be greater than 0." in errors
    assert validate_deposit_payload({"amount": "10,5", "currency": "USD", "playerEmail": "a@b.co"}) == []


def test_create_deposit_uses_running_day_total(client, login, seeded_grid):
    login(PROCESSOR)
    r = _deposit(client, 1200)
    assert r.status_code == 201
    d = r.json["deposit"]
    assert d["status"] == "PENDING"
    assert d["currencyType"] == "CRYPTO"
    assert d["bonusRate"] == 1.5
    assert d["bonusAmount"] == 18.0
    assert d["platformCommissionAmount"] == 60.0
    assert d["processorEarnings"] == 1140.0
    assert r.json["bonusPayment"]["status"] == "HELD"
    assert r.json["bonusPayment"]["amount"] == 18.0

    # Day total 1600 lands in the 2% tier, applied to this deposit only
    r = _deposit(client, 400, email="other@example.com")
    assert r.status_code == 201
    assert r.json["deposit"]["bonusRate"] == 2.0
    assert r.json["deposit"]["bonusAmount"] == 8.0


def test_small_deposit_has_no_bonus_payment(client, login, seeded_grid):
    login(PROCESSOR)
    r = _deposit(client, 100)
    assert r.status_code == 201
    assert r.json["deposit"]["bonusAmount"] == 0.0
    assert r.json["bonusPayment"] is None


def test_duplicate_deposit_within_hour_rejected(client, login):
    login(PROCESSOR)
    assert _deposit(client, 100).status_code == 201
    r = _deposit(client, 100, email="PLAYER@example.com", currency="usdt")
    assert r.status_code == 400
    assert _deposit(client, 101).status_code == 201


def test_deposit_list_and_stats(client, login, seeded_grid):
    login(PROCESSOR)
    _deposit(client, 600)
    _deposit(client, 50, email="b@example.com")

    r = client.get("/api/processor/deposits")
    assert r.status_code == 200
    assert r.json["pagination"]["total"] == 2

    r = client.get("/api/processor/stats")
    assert r.status_code == 200
    assert r.json["today"]["count"] == 2
    assert r.json["today"]["amount"] == 650.0
    # Bonuses only count as earned once the deposit is approved
    assert r.json["balance"]["earned"] == 0.0
    assert r.json["currentShift"] is None
    assert "businessDate" in r.json


def test_admin_updates_and_deletes_deposit(client, login, seeded_grid):
    login(PROCESSOR)
    deposit_id = _deposit(client, 1200).json["deposit"]["id"]

    admin = client.application.test_client()
    admin.post("/api/auth/login", json={"email": "admin@example.com", "password": "admin123"})

    r = admin.put(f"/api/admin/deposits/{deposit_id}", json={"status": "nope"})
    assert r.status_code == 400

    r = admin.put(f"/api/admin/deposits/{deposit_id}", json={"status": "approved", "amount": 2500})
    assert r.status_code == 200
    assert r.json["deposit"]["status"] == "APPROVED"
    assert r.json["deposit"]["bonusRate"] == 2.5
    assert r.json["deposit"]["bonusAmount"] == 62.5

    r = admin.get("/api/admin/bonus-payments")
    assert [(p["amount"], p["status"]) for p in r.json["payments"]] == [(62.5, "HELD")]

    r = client.get("/api/processor/stats")
    assert r.json["balance"]["earned"] == 62.5

    r = admin.delete(f"/api/admin/deposits/{deposit_id}")
    assert r.status_code == 200
    r = admin.get("/api/admin/bonus-payments?status=cancelled")
    assert len(r.json["payments"]) == 1
    assert admin.put("/api/admin/deposits/9999", json={}).status_code == 404


def test_admin_reassigns_deposit(client, login, user_id, seeded_grid):
    login(PROCESSOR)
    deposit_id = _deposit(client, 1200).json["deposit"]["id"]

    admin = client.application.test_client()
    admin.post("/api/auth/login", json={"email": "admin@example.com", "password": "admin123"})

    r = admin.patch(f"/api/admin/deposits/{deposit_id}", json={"processorId": user_id(PENDING[0])})
    assert r.status_code == 400

    target = user_id(PROCESSOR_2[0])
    r = admin.patch(f"/api/admin/deposits/{deposit_id}", json={"processorId": target})
    assert r.status_code == 200
    assert r.json["deposit"]["processorId"] == target

    r = admin.get(f"/api/admin/bonus-payments?processor_id={target}")
    assert len(r.json["payments"]) == 1


def test_held_bonus_released_next_business_day(app, seeded_grid):
    created_at = datetime(2024, 5, 1, 10, 0)  # 13:00 local
    with session_scope(app) as s:
        processor = s.query(User).filter(User.email == PROCESSOR[0]).one()
        deposit, payment = create_deposit(
            s, {"amount": 1000, "currency": "USD", "playerEmail": "p@example.com"}, processor, now=created_at
        )
        assert payment.held_until == datetime(2024, 5, 2, 3, 0)
        assert day_total(s, processor.id, created_at) == 1000.0

    with session_scope(app) as s:
        assert process_held_payments(s, now=datetime(2024, 5, 2, 2, 59)) == {"released": 0, "burned": 0}
        assert process_held_payments(s, now=datetime(2024, 5, 2, 3, 0)) == {"released": 1, "burned": 0}
        assert s.query(BonusPayment).one().status == "PENDING"


def _admin_client(client):
    admin = client.application.test_client()
    admin.post("/api/auth/login", json={"email": "admin@example.com", "password": "admin123"})
    return admin


def _payments(admin):
    return [(p["amount"], p["status"]) for p in admin.get("/api/admin/bonus-payments").json["payments"]]


def test_rejecting_deposit_cancels_its_bonus_payment(client, login, seeded_grid):
    login(PROCESSOR)
    deposit_id = _deposit(client, 1200).json["deposit"]["id"]
    admin = _admin_client(client)

    assert admin.put(f"/api/admin/deposits/{deposit_id}", json={"amount": 2500}).status_code == 200
    assert _payments(admin) == [(62.5, "HELD")]

    r = admin.put(f"/api/admin/deposits/{deposit_id}", json={"status": "REJECTED"})
    assert r.status_code == 200
    assert _payments(admin) == [(62.5, "CANCELLED")]
    assert admin.post("/api/admin/bonus-payments/release").json == {"released": 0, "burned": 0}

    # Re-approving brings the bonus back as a fresh held payment
    admin.put(f"/api/admin/deposits/{deposit_id}", json={"status": "APPROVED"})
    assert sorted(_payments(admin)) == [(62.5, "CANCELLED"), (62.5, "HELD")]


def test_amount_edit_creates_or_cancels_bonus_payment(client, login, seeded_grid):
    login(PROCESSOR)
    deposit_id = _deposit(client, 100).json["deposit"]["id"]
    admin = _admin_client(client)
    assert _payments(admin) == []

    r = admin.put(f"/api/admin/deposits/{deposit_id}", json={"amount": 1200})
    assert r.json["deposit"]["bonusAmount"] == 18.0
    assert _payments(admin) == [(18.0, "HELD")]

    r = admin.put(f"/api/admin/deposits/{deposit_id}", json={"amount": 100})
    assert r.json["deposit"]["bonusAmount"] == 0.0
    assert _payments(admin) == [(18.0, "CANCELLED")]


def test_held_bonus_burns_after_collapsed_day(app, seeded_grid):
    with session_scope(app) as s:
        first = s.query(User).filter(User.email == PROCESSOR[0]).one()
        second = s.query(User).filter(User.email == PROCESSOR_2[0]).one()
        # April 30: 2000 and 1000; May 1: 600 each (below half for the first processor only)
        for processor, amount in ((first, 2000), (second, 1000)):
            create_deposit(
                s,
                {"amount": amount, "currency": "USD", "playerEmail": "a@example.com"},
                processor,
                now=datetime(2024, 4, 30, 10, 0),
            )
            create_deposit(
                s,
                {"amount": 600, "currency": "USD", "playerEmail": "b@example.com"},
                processor,
                now=datetime(2024, 5, 1, 10, 0),
            )
        first_id, second_id = first.id, second.id

    with session_scope(app) as s:
        # April 30 had no predecessor, so its bonuses are released
        assert process_held_payments(s, now=datetime(2024, 5, 1, 3, 0)) == {"released": 2, "burned": 0}

    with session_scope(app) as s:
        assert process_held_payments(s, now=datetime(2024, 5, 2, 3, 0)) == {"released": 1, "burned": 1}
        s.flush()
        burned = s.query(BonusPayment).filter(BonusPayment.status == "BURNED").one()
        assert burned.processor_id == first_id
        assert burned.amount == 3.0
        assert burned.burned_at == datetime(2024, 5, 2, 3, 0)
        assert "2024-05-01" in burned.burn_reason
        kept = s.query(BonusPayment).filter(BonusPayment.processor_id == second_id).all()
        assert {p.status for p in kept} == {"PENDING"}

    with session_scope(app) as s:
        for deposit in s.query(Deposit).all():
            deposit.status = "APPROVED"

    with session_scope(app) as s:
        first = s.get(User, first_id)
        # 2000 at 2.5% is kept, the burned 3.0 from May 1 is not earned
        stats = processor_stats(s, first, now=datetime(2024, 5, 2, 4, 0))
        assert stats["balance"]["earned"] == 50.0


def test_burned_payment_cannot_be_paid(app, client, login, seeded_grid):
    with session_scope(app) as s:
        processor = s.query(User).filter(User.email == PROCESSOR[0]).one()
        create_deposit(s, {"amount": 2000, "currency": "USD", "playerEmail": "a@example.com"}, processor, now=datetime(2024, 4, 30, 10, 0))
        create_deposit(s, {"amount": 600, "currency": "USD", "playerEmail": "b@example.com"}, processor, now=datetime(2024, 5, 1, 10, 0))
    with session_scope(app) as s:
        process_held_payments(s, now=datetime(2024, 5, 2, 3, 0))
        s.flush()
        payment_id = s.query(BonusPayment).filter(BonusPayment.status == "BURNED").one().id

    login()
    r = client.get("/api/admin/bonus-payments?status=burned")
    assert [p["id"] for p in r.json["payments"]] == [payment_id]
    assert r.json["payments"][0]["burnReason"]
    r = client.put(f"/api/admin/bonus-payments/{payment_id}", json={"status": "PAID"})
    assert r.status_code == 400


def test_non_string_fields_are_rejected(client, login):
    login(PROCESSOR)
    r = client.post(
        "/api/processor/deposits",
        json={"amount": 100, "currency": "USDT", "playerEmail": ["player@example.com"]},
    )
    assert r.status_code == 400
    r = client.post("/api/processor/deposits", json={"amount": 100, "currency": {"code": "USDT"}, "playerEmail": "p@x.io"})
    assert r.status_code == 400
