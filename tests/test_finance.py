import csv
import io
from datetime import date, datetime

import pytest

from app.umbra.modules.finance.service import compute_commission, period_bounds, validate_account_payload

BASE = "/api/admin/finance"


@pytest.fixture()
def admin(client, login):
    login()
    return client


def _account(admin, **overrides):
    payload = {"name": "Main wallet", "type": "crypto", "currency": "usdt", "commission": 2, "cryptocurrencies": ["usdt", "btc"]}
    payload.update(overrides)
    r = admin.post(f"{BASE}/accounts", json=payload)
    assert r.status_code == 201, r.json
    return r.json["account"]


def test_compute_commission():
    assert compute_commission("INCOME", 100.0, 2.0) == (2.0, 98.0, 98.0)
    assert compute_commission("EXPENSE", 100.0, 2.0) == (2.0, 102.0, -102.0)
    assert compute_commission("INCOME", 10.0, 0.0) == (0.0, 10.0, 10.0)


def test_period_bounds_cover_local_days():
    start, end = period_bounds(date(2024, 5, 1), date(2024, 5, 31))
    assert start == datetime(2024, 4, 30, 21, 0)
    assert end == datetime(2024, 5, 31, 21, 0)
    assert period_bounds(None, None) == (None, None)


def test_validate_account_payload():
    assert validate_account_payload({}) == ["Name is required."]
    errors = validate_account_payload({"name": "x", "type": "vault", "commission": 150, "cryptocurrencies": "BTC"})
    assert len(errors) == 3
    assert validate_account_payload({"commission": 5}, partial=True) == []


def test_finance_requires_admin(client, login):
    r = client.get(f"{BASE}/accounts")
    assert r.status_code == 401


def test_account_crud_and_archive(admin):
    account = _account(admin)
    assert account["type"] == "CRYPTO"
    assert account["currency"] == "USDT"
    assert account["cryptocurrencies"] == ["USDT", "BTC"]
    assert account["balance"] == 0.0

    r = admin.put(f"{BASE}/accounts/{account['id']}", json={"isArchived": True})
    assert r.status_code == 200
    assert r.json["account"]["isArchived"] is True

    assert admin.get(f"{BASE}/accounts").json["accounts"] == []
    assert len(admin.get(f"{BASE}/accounts?status=archived").json["accounts"]) == 1
    assert len(admin.get(f"{BASE}/accounts?status=all").json["accounts"]) == 1

    r = admin.post(f"{BASE}/transactions", json={"accountId": account["id"], "type": "INCOME", "amount": 10})
    assert r.status_code == 400

    r = admin.delete(f"{BASE}/accounts/{account['id']}")
    assert r.status_code == 200
    assert admin.get(f"{BASE}/accounts/{account['id']}").status_code == 404


def test_reference_entities(admin):
    r = admin.post(f"{BASE}/categories", json={"name": "Hosting", "type": "expense"})
    assert r.status_code == 201
    assert r.json["category"]["color"] == "#3B82F6"
    category_id = r.json["category"]["id"]
    admin.post(f"{BASE}/categories", json={"name": "Sales", "type": "INCOME"})
    assert [c["name"] for c in admin.get(f"{BASE}/categories?type=expense").json["categories"]] == ["Hosting"]

    r = admin.put(f"{BASE}/categories/{category_id}", json={"name": "Servers"})
    assert r.json["category"]["name"] == "Servers"

    r = admin.post(f"{BASE}/counterparties", json={"name": "Acme", "email": "not-an-email"})
    assert r.status_code == 400
    r = admin.post(f"{BASE}/counterparties", json={"name": "Acme", "taxNumber": "123", "type": "supplier"})
    assert r.status_code == 201
    assert r.json["counterparty"]["taxNumber"] == "123"
    assert r.json["counterparty"]["type"] == "SUPPLIER"

    r = admin.post(f"{BASE}/projects", json={"name": "Launch", "status": "stalled"})
    assert r.status_code == 400
    r = admin.post(f"{BASE}/projects", json={"name": "Launch"})
    assert r.status_code == 201
    project_id = r.json["project"]["id"]
    assert r.json["project"]["status"] == "ACTIVE"

    assert admin.delete(f"{BASE}/projects/{project_id}").status_code == 200
    assert admin.get(f"{BASE}/projects").json["projects"] == []


def test_transactions_move_balance(admin):
    account = _account(admin)
    project_id = admin.post(f"{BASE}/projects", json={"name": "Launch"}).json["project"]["id"]

    r = admin.post(
        f"{BASE}/transactions",
        json={"accountId": account["id"], "type": "income", "amount": 1000, "projectId": project_id},
    )
    assert r.status_code == 201
    assert r.json["transaction"]["commissionAmount"] == 20.0
    assert r.json["transaction"]["netAmount"] == 980.0
    assert r.json["balance"] == 980.0

    r = admin.post(f"{BASE}/transactions", json={"accountId": account["id"], "type": "EXPENSE", "amount": 100})
    assert r.status_code == 201
    expense_id = r.json["transaction"]["id"]
    assert r.json["balance"] == 878.0

    r = admin.delete(f"{BASE}/transactions/{expense_id}")
    assert r.status_code == 200
    assert r.json["balance"] == 980.0

    r = admin.get(f"{BASE}/transactions?accountId={account['id']}")
    assert len(r.json["transactions"]) == 1
    assert r.json["transactions"][0]["project"]["name"] == "Launch"

    # Account with transactions cannot be deleted
    assert admin.delete(f"{BASE}/accounts/{account['id']}").status_code == 400


def test_transaction_errors(admin):
    r = admin.post(f"{BASE}/transactions", json={"type": "GIFT", "amount": 0})
    assert r.status_code == 400
    assert len(r.json["errors"]) == 3

    r = admin.post(f"{BASE}/transactions", json={"accountId": 999, "type": "INCOME", "amount": 5})
    assert r.status_code == 404

    account = _account(admin)
    r = admin.post(
        f"{BASE}/transactions", json={"accountId": account["id"], "type": "INCOME", "amount": 5, "categoryId": 999}
    )
    assert r.status_code == 404
    assert admin.get(f"{BASE}/accounts/{account['id']}").json["account"]["balance"] == 0.0


def test_summary_and_export(admin):
    main = _account(admin, commission=0)
    cash = _account(admin, name="Cash", type="CASH", currency="USD", commission=0, cryptocurrencies=[])
    admin.post(
        f"{BASE}/transactions",
        json={"accountId": main["id"], "type": "INCOME", "amount": 500, "date": "2024-05-10T12:00:00Z"},
    )
    admin.post(
        f"{BASE}/transactions",
        json={"accountId": cash["id"], "type": "EXPENSE", "amount": 120.5, "date": "2024-05-20T12:00:00Z"},
    )
    admin.post(
        f"{BASE}/transactions",
        json={"accountId": cash["id"], "type": "INCOME", "amount": 70, "date": "2024-06-02T12:00:00Z"},
    )

    r = admin.get(f"{BASE}/reports/summary?from=2024-05-01&to=2024-05-31")
    assert r.status_code == 200
    assert r.json["totalIncome"] == "500.00"
    assert r.json["totalExpense"] == "120.50"
    assert r.json["profit"] == "379.50"
    assert r.json["transactionCount"] == 2
    assert {row["account"] for row in r.json["byAccount"]} == {"Main wallet", "Cash"}
    assert r.json["byProject"] == [{"projectId": None, "project": "-", "income": "500.00", "expense": "120.50"}]

    r = admin.get(f"{BASE}/reports/summary?from=2024-06-01&to=2024-05-01")
    assert r.status_code == 400
    r = admin.get(f"{BASE}/reports/summary?from=yesterday")
    assert r.status_code == 400

    r = admin.get(f"{BASE}/reports/export?from=2024-05-01&to=2024-05-31")
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert "finance_20240501_20240531.csv" in r.headers["Content-Disposition"]
    rows = list(csv.reader(io.StringIO(r.data.decode("utf-8"))))
    assert rows[0][0] == "Date"
    assert len(rows) == 3

    r = admin.get("/api/admin/audit?action=finance_report.export")
    assert len(r.json["events"]) == 1


def test_summary_keeps_same_named_accounts_apart(admin):
    first = _account(admin, name="Wallet", commission=0)
    second = _account(admin, name="Wallet", commission=0)
    for account, amount in ((first, 300), (second, 50)):
        admin.post(
            f"{BASE}/transactions",
            json={"accountId": account["id"], "type": "INCOME", "amount": amount, "date": "2024-05-10T12:00:00Z"},
        )

    r = admin.get(f"{BASE}/reports/summary?from=2024-05-01&to=2024-05-31")
    rows = sorted(r.json["byAccount"], key=lambda row: row["accountId"])
    assert rows == [
        {"accountId": first["id"], "account": "Wallet", "income": "300.00", "expense": "0.00"},
        {"accountId": second["id"], "account": "Wallet", "income": "50.00", "expense": "0.00"},
    ]
