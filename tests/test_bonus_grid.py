from datetime import datetime

import pytest

from app.umbra.db import session_scope
from app.umbra.models import User
from app.umbra.modules.bonuses.models import BonusGrid, MonthlyBonusPlan
from app.umbra.modules.bonuses.service import (
    calculate_deposit_bonus,
    ensure_default_grid,
    select_monthly_plan,
    select_tier,
)
from app.umbra.modules.deposits.service import create_deposit
from tests.conftest import PROCESSOR


def _tier(min_amount, max_amount, pct, **kw):
    return BonusGrid(min_amount=min_amount, max_amount=max_amount, bonus_percentage=pct, is_active=True, **kw)


@pytest.fixture()
def seeded_grid(app):
    with session_scope(app) as s:
        ensure_default_grid(s)
    return app


def test_select_tier_range_is_half_open():
    tiers = [_tier(0, 500, 0.0), _tier(500, 1000, 0.5), _tier(1000, None, 1.5)]
    assert select_tier(tiers, 499.99).bonus_percentage == 0.0
    assert select_tier(tiers, 500).bonus_percentage == 0.5
    assert select_tier(tiers, 1000).bonus_percentage == 1.5
    assert select_tier(tiers, 10**6).bonus_percentage == 1.5


def test_select_tier_prefers_highest_percentage_then_larger_min():
    tiers = [_tier(0, None, 1.0), _tier(100, 1000, 2.0), _tier(200, 1000, 2.0, description="later")]
    assert select_tier(tiers, 300).description == "later"
    assert select_tier(tiers, 50).bonus_percentage == 1.0


def test_select_tier_skips_inactive_and_empty():
    inactive = _tier(0, None, 5.0)
    inactive.is_active = False
    assert select_tier([inactive], 100) is None
    assert select_tier([], 100) is None


def test_calculate_deposit_bonus_with_fixed_bonus():
    tier = _tier(1000, 1500, 1.5, fixed_bonus=10.0, fixed_bonus_min=1200.0)
    result = calculate_deposit_bonus(tier, 200.0, 1250.0, 5.0)
    assert result.bonus_rate == 1.5
    assert result.bonus_amount == 13.0
    assert result.commission_amount == 10.0
    assert result.processor_earnings == 190.0

    result = calculate_deposit_bonus(tier, 200.0, 1100.0, 5.0)
    assert result.bonus_amount == 3.0


def test_calculate_deposit_bonus_without_tier():
    result = calculate_deposit_bonus(None, 100.0, 100.0, 0.0)
    assert result.bonus_rate == 0.0
    assert result.bonus_amount == 0.0
    assert result.processor_earnings == 100.0


def test_select_monthly_plan_highest_threshold_reached():
    plans = [
        MonthlyBonusPlan(name="Bronze", min_amount=1000, bonus_percent=1, is_active=True),
        MonthlyBonusPlan(name="Silver", min_amount=5000, bonus_percent=2, is_active=True),
    ]
    assert select_monthly_plan(plans, 999) is None
    assert select_monthly_plan(plans, 4000).name == "Bronze"
    assert select_monthly_plan(plans, 5000).name == "Silver"


def test_default_grid_is_seeded_once(seeded_grid):
    with session_scope(seeded_grid) as s:
        assert s.query(BonusGrid).count() == 6
        assert ensure_default_grid(s) == 0


def test_grid_lookup(client, login, seeded_grid):
    login()
    r = client.get("/api/admin/bonus-grid")
    assert len(r.json["tiers"]) == 6

    r = client.get("/api/admin/bonus-grid/lookup?amount=1000")
    assert r.json["percentage"] == 1.5
    r = client.get("/api/admin/bonus-grid/lookup?amount=999.99")
    assert r.json["percentage"] == 0.5
    r = client.get("/api/admin/bonus-grid/lookup?amount=50000")
    assert r.json["percentage"] == 3.0
    r = client.get("/api/admin/bonus-grid/lookup?amount=-1")
    assert r.status_code == 400


def test_grid_crud(client, login):
    login()
    r = client.post("/api/admin/bonus-grid", json={"minAmount": 100, "maxAmount": 50, "bonusPercentage": 1})
    assert r.status_code == 400

    r = client.post("/api/admin/bonus-grid", json={"minAmount": 100, "maxAmount": 500, "bonusPercentage": 1})
    assert r.status_code == 201
    tier_id = r.json["tier"]["id"]

    r = client.put(f"/api/admin/bonus-grid/{tier_id}", json={"minAmount": 100, "bonusPercentage": 2})
    assert r.status_code == 200
    assert r.json["tier"]["maxAmount"] is None
    assert r.json["tier"]["bonusPercentage"] == 2.0

    r = client.put(
        f"/api/admin/bonus-grid/{tier_id}", json={"minAmount": 100, "bonusPercentage": 2, "isActive": "false"}
    )
    assert r.status_code == 200
    assert r.json["tier"]["isActive"] is False

    r = client.delete(f"/api/admin/bonus-grid/{tier_id}")
    assert r.status_code == 200
    assert client.get("/api/admin/bonus-grid").json["tiers"] == []


def test_platform_commission_replace(client, login):
    login()
    r = client.get("/api/admin/platform-commission")
    assert r.json["commission"]["commissionPercent"] == 5.0
    assert r.json["commission"]["id"] is None

    r = client.post("/api/admin/platform-commission", json={"name": "Platform", "commissionPercent": 80})
    assert r.status_code == 400

    r = client.post("/api/admin/platform-commission", json={"name": "Platform", "commissionPercent": 7})
    assert r.status_code == 201
    r = client.post("/api/admin/platform-commission", json={"name": "Platform", "commissionPercent": 8})
    assert r.status_code == 201

    r = client.get("/api/admin/platform-commission")
    assert r.json["commission"]["commissionPercent"] == 8.0


def test_monthly_plans(client, login):
    login()
    r = client.post("/api/admin/monthly-bonus", json={"name": "Bronze", "minAmount": 1000, "bonusPercent": 1})
    assert r.status_code == 201
    plan_id = r.json["plan"]["id"]

    r = client.put(f"/api/admin/monthly-bonus/{plan_id}", json={"bonusPercent": 150})
    assert r.status_code == 400

    r = client.put(f"/api/admin/monthly-bonus/{plan_id}", json={"isActive": "false"})
    assert r.status_code == 200
    assert r.json["plan"]["isActive"] is False
    assert client.put(f"/api/admin/monthly-bonus/{plan_id}", json={"isActive": "yes"}).json["plan"]["isActive"] is True

    r = client.post("/api/admin/monthly-bonus/calculate", json={"month": 13})
    assert r.status_code == 400

    r = client.post("/api/admin/monthly-bonus/calculate", json={})
    assert r.status_code == 200
    assert r.json["statistics"]["dryRun"] is True
    assert r.json["statistics"]["created"] == 0

    r = client.delete(f"/api/admin/monthly-bonus/{plan_id}")
    assert r.status_code == 200
    assert client.get("/api/admin/monthly-bonus").json["plans"] == []
    assert len(client.get("/api/admin/monthly-bonus?include_inactive=1").json["plans"]) == 1


def test_bonus_payments_empty_release(client, login):
    login()
    r = client.post("/api/admin/bonus-payments/release")
    assert r.json["released"] == 0
    assert r.json["burned"] == 0
    r = client.get("/api/admin/bonus-payments")
    assert r.json["payments"] == []


def test_monthly_calculation_stores_payments_once(app, client, login):
    with session_scope(app) as s:
        processor = s.query(User).filter(User.email == PROCESSOR[0]).one()
        for day, amount in ((5, 1500), (20, 700)):
            create_deposit(
                s,
                {"amount": amount, "currency": "USDT", "playerEmail": "p@example.com"},
                processor,
                now=datetime(2024, 3, day, 12, 0),
            )
        # Outside March, not counted
        create_deposit(
            s,
            {"amount": 5000, "currency": "USDT", "playerEmail": "p@example.com"},
            processor,
            now=datetime(2024, 4, 2, 12, 0),
        )

    login()
    client.post("/api/admin/monthly-bonus", json={"name": "Bronze", "minAmount": 2000, "bonusPercent": 1})
    body = {"month": 3, "year": 2024, "dryRun": False}

    r = client.post("/api/admin/monthly-bonus/calculate", json=body)
    assert r.status_code == 200
    assert r.json["statistics"]["dryRun"] is False
    assert r.json["statistics"]["created"] == 1
    assert r.json["statistics"]["totalBonus"] == 22.0

    payments = client.get("/api/admin/bonus-payments").json["payments"]
    assert [(p["type"], p["status"], p["amount"]) for p in payments] == [("MONTHLY_PLAN_BONUS", "PENDING", 22.0)]

    r = client.post("/api/admin/monthly-bonus/calculate", json=body)
    assert r.json["statistics"]["created"] == 0
    assert r.json["statistics"]["skipped"] == 1
    assert len(client.get("/api/admin/bonus-payments").json["payments"]) == 1
