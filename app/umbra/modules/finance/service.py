from __future__ import annotations

import csv
import io
import logging
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from app.umbra.audit import record_event
from app.umbra.timeutil import isoformat, parse_datetime, to_utc
from app.umbra.utils import is_valid_email, money, parse_bool, parse_float, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.umbra.models import User
    from app.umbra.modules.finance.models import FinanceAccount, FinanceTransaction

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ("INCOME", "EXPENSE")
ACCOUNT_TYPES = ("BANK", "CRYPTO", "CASH", "CARD", "OTHER")
COUNTERPARTY_TYPES = ("CLIENT", "SUPPLIER", "PARTNER", "EMPLOYEE", "OTHER")
PROJECT_STATUSES = ("ACTIVE", "PAUSED", "COMPLETED")


class FinanceError(ValueError):
    def __init__(self, message: str, status: int = 400) -> None:
        super().__init__(message)
        self.status = status


def _text(payload: dict, key: str) -> str | None:
    return (str(payload.get(key) or "")).strip() or None


def _upper(payload: dict, key: str) -> str:
    return (str(payload.get(key) or "")).strip().upper()


# ---------- Reference entities ----------
def validate_account_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial or "name" in payload:
        if not _text(payload, "name"):
            errors.append("Name is required.")
    if "type" in payload and _upper(payload, "type") not in ACCOUNT_TYPES:
        errors.append(f"type must be one of: {', '.join(ACCOUNT_TYPES)}.")
    if payload.get("commission") not in (None, ""):
        commission = parse_float(payload.get("commission"))
        if commission is None or commission < 0 or commission > 100:
            errors.append("commission must be a percentage between 0 and 100.")
    if payload.get("balance") not in (None, "") and parse_float(payload.get("balance")) is None:
        errors.append("balance must be a number.")
    cryptos = payload.get("cryptocurrencies")
    if cryptos is not None and not isinstance(cryptos, list):
        errors.append("cryptocurrencies must be a list.")
    return errors


def apply_account_payload(account: "FinanceAccount", payload: dict) -> None:
    if "name" in payload:
        account.name = _text(payload, "name")
    if "type" in payload:
        account.type = _upper(payload, "type")
    if "currency" in payload:
        account.currency = _upper(payload, "currency") or "USD"
    if "balance" in payload:
        account.balance = money(parse_float(payload.get("balance")))
    if "commission" in payload:
        account.commission = parse_float(payload.get("commission")) or 0.0
    if "cryptocurrencies" in payload:
        account.cryptocurrencies = [str(c).strip().upper() for c in (payload.get("cryptocurrencies") or []) if str(c).strip()]
    if "description" in payload:
        account.description = _text(payload, "description")
    if "isArchived" in payload:
        account.is_archived = parse_bool(payload.get("isArchived"))


def validate_category_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial or "name" in payload:
        if not _text(payload, "name"):
            errors.append("Name is required.")
    if "type" in payload and _upper(payload, "type") not in TRANSACTION_TYPES:
        errors.append("type must be INCOME or EXPENSE.")
    return errors


def validate_counterparty_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial or "name" in payload:
        if not _text(payload, "name"):
            errors.append("Name is required.")
    if "type" in payload and _upper(payload, "type") not in COUNTERPARTY_TYPES:
        errors.append(f"type must be one of: {', '.join(COUNTERPARTY_TYPES)}.")
    email = _text(payload, "email")
    if email and not is_valid_email(email):
        errors.append("Invalid email address.")
    return errors


def validate_project_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial or "name" in payload:
        if not _text(payload, "name"):
            errors.append("Name is required.")
    if "status" in payload and _upper(payload, "status") not in PROJECT_STATUSES:
        errors.append(f"status must be one of: {', '.join(PROJECT_STATUSES)}.")
    return errors


# Payload key -> (column, normalizer) for the simple reference entities
CATEGORY_FIELDS = {
    "name": ("name", _text),
    "type": ("type", _upper),
    "color": ("color", _text),
    "description": ("description", _text),
}
COUNTERPARTY_FIELDS = {
    "name": ("name", _text),
    "type": ("type", _upper),
    "email": ("email", _text),
    "phone": ("phone", _text),
    "address": ("address", _text),
    "taxNumber": ("tax_number", _text),
    "bankDetails": ("bank_details", _text),
}
PROJECT_FIELDS = {
    "name": ("name", _text),
    "description": ("description", _text),
    "status": ("status", _upper),
}


def apply_fields(obj: Any, payload: dict, fields: dict) -> dict:
    """Copy known payload keys onto obj. Returns {column: {old, new}} for what changed."""
    changes = {}
    for key, (column, normalize) in fields.items():
        if key not in payload:
            continue
        new = normalize(payload, key)
        if new is None and column in ("name", "type", "status", "color"):
            continue
        old = getattr(obj, column)
        if old != new:
            changes[column] = {"old": old, "new": new}
            setattr(obj, column, new)
    if "isArchived" in payload:
        archived = parse_bool(payload.get("isArchived"))
        if archived != obj.is_archived:
            changes["is_archived"] = {"old": obj.is_archived, "new": archived}
            obj.is_archived = archived
    return changes


# ---------- Transactions ----------
def compute_commission(tx_type: str, amount: float, commission_percent: float) -> tuple[float, float, float]:
    """
    Returns (commission_amount, net_amount, balance_delta).

    Income is credited net of the account commission; an expense is debited
    together with it.
    """
    commission_amount = money(amount * (commission_percent or 0.0) / 100)
    if tx_type == "INCOME":
        net = money(amount - commission_amount)
        return commission_amount, net, net
    net = money(amount + commission_amount)
    return commission_amount, net, -net


def validate_transaction_payload(payload: dict) -> list[str]:
    errors = []
    if not parse_int(payload.get("accountId")):
        errors.append("accountId is required.")
    amount = parse_float(payload.get("amount"))
    if amount is None or amount <= 0:
        errors.append("amount must be greater than 0.")
    if _upper(payload, "type") not in TRANSACTION_TYPES:
        errors.append("type must be INCOME or EXPENSE.")
    if payload.get("date"):
        try:
            parse_datetime(payload.get("date"))
        except ValueError:
            errors.append("date must be an ISO date or timestamp.")
    return errors


def _optional_ref(s: "Session", model, value: Any, label: str):
    ref_id = parse_int(value)
    if ref_id is None:
        return None
    if not s.get(model, ref_id):
        raise FinanceError(f"{label} not found.", 404)
    return ref_id


def create_transaction(s: "Session", payload: dict, user: "User") -> "FinanceTransaction":
    """
    Record a transaction and move the account balance in the same unit of work.
    Caller commits.
    """
    from app.umbra.modules.finance.models import (
        Counterparty,
        FinanceAccount,
        FinanceCategory,
        FinanceProject,
        FinanceTransaction,
    )

    account = s.get(FinanceAccount, parse_int(payload.get("accountId")))
    if not account:
        raise FinanceError("Account not found.", 404)
    if account.is_archived:
        raise FinanceError("Account is archived.")

    tx_type = _upper(payload, "type")
    amount = money(parse_float(payload.get("amount")))
    commission_amount, net_amount, delta = compute_commission(tx_type, amount, account.commission)

    now = datetime.utcnow()
    tx = FinanceTransaction(
        account_id=account.id,
        category_id=_optional_ref(s, FinanceCategory, payload.get("categoryId"), "Category"),
        counterparty_id=_optional_ref(s, Counterparty, payload.get("counterpartyId"), "Counterparty"),
        project_id=_optional_ref(s, FinanceProject, payload.get("projectId"), "Project"),
        type=tx_type,
        amount=amount,
        commission_percent=account.commission or 0.0,
        commission_amount=commission_amount,
        net_amount=net_amount,
        description=_text(payload, "description"),
        date=parse_datetime(payload.get("date")) or now,
        created_at=now,
        created_by_user_id=user.id,
    )
    s.add(tx)
    account.balance = money((account.balance or 0.0) + delta)
    account.updated_at = now
    s.flush()

    record_event(
        s,
        actor=user,
        action="finance_transaction.create",
        entity_type="FinanceTransaction",
        entity_id=str(tx.id),
        metadata={
            "account_id": account.id,
            "type": tx_type,
            "amount": amount,
            "commission_amount": commission_amount,
            "balance_delta": delta,
            "balance_after": account.balance,
        },
    )
    return tx


def delete_transaction(s: "Session", tx: "FinanceTransaction", user: "User") -> float:
    """Remove a transaction and undo its balance effect. Returns the reversal applied."""
    account = tx.account
    reversal = -tx.net_amount if tx.type == "INCOME" else tx.net_amount
    account.balance = money((account.balance or 0.0) + reversal)
    account.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="finance_transaction.delete",
        entity_type="FinanceTransaction",
        entity_id=str(tx.id),
        metadata={
            "account_id": account.id,
            "type": tx.type,
            "amount": tx.amount,
            "balance_delta": reversal,
            "balance_after": account.balance,
        },
    )
    s.delete(tx)
    return reversal


# ---------- Reports ----------
def period_bounds(date_from: date | None, date_to: date | None) -> tuple[datetime | None, datetime | None]:
    """UTC [start, end) covering whole business-calendar days; `to` is inclusive."""
    start = to_utc(datetime.combine(date_from, datetime.min.time())) if date_from else None
    end = to_utc(datetime.combine(date_to + timedelta(days=1), datetime.min.time())) if date_to else None
    return start, end


def transactions_in_period(s: "Session", start: datetime | None, end: datetime | None) -> list["FinanceTransaction"]:
    from app.umbra.modules.finance.models import FinanceTransaction

    q = s.query(FinanceTransaction)
    if start is not None:
        q = q.filter(FinanceTransaction.date >= start)
    if end is not None:
        q = q.filter(FinanceTransaction.date < end)
    return q.order_by(FinanceTransaction.date.asc(), FinanceTransaction.id.asc()).all()


def _fmt(value: float) -> str:
    return f"{value:.2f}"


def summarize(transactions: list["FinanceTransaction"]) -> dict:
    """Gross totals plus per-account and per-project breakdowns, keyed by id so same-named rows stay apart."""
    total_income = 0.0
    total_expense = 0.0
    by_account: dict[int, dict] = {}
    by_project: dict[int | None, dict] = {}

    for tx in transactions:
        key = "income" if tx.type == "INCOME" else "expense"
        if key == "income":
            total_income += tx.amount
        else:
            total_expense += tx.amount
        account_row = by_account.setdefault(
            tx.account_id,
            {"name": tx.account.name if tx.account else str(tx.account_id), "income": 0.0, "expense": 0.0},
        )
        account_row[key] += tx.amount
        project_row = by_project.setdefault(
            tx.project_id,
            {"name": tx.project.name if tx.project else "-", "income": 0.0, "expense": 0.0},
        )
        project_row[key] += tx.amount

    def _sort_key(item):
        obj_id, row = item
        return (row["name"], obj_id or 0)

    return {
        "totalIncome": _fmt(total_income),
        "totalExpense": _fmt(total_expense),
        "profit": _fmt(total_income - total_expense),
        "transactionCount": len(transactions),
        "byAccount": [
            {"accountId": obj_id, "account": row["name"], "income": _fmt(row["income"]), "expense": _fmt(row["expense"])}
            for obj_id, row in sorted(by_account.items(), key=_sort_key)
        ],
        "byProject": [
            {"projectId": obj_id, "project": row["name"], "income": _fmt(row["income"]), "expense": _fmt(row["expense"])}
            for obj_id, row in sorted(by_project.items(), key=_sort_key)
        ],
    }


def transactions_csv(transactions: list["FinanceTransaction"]) -> bytes:
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(
        [
            "Date",
            "Type",
            "Account",
            "Currency",
            "Category",
            "Counterparty",
            "Project",
            "Amount",
            "Commission %",
            "Commission",
            "Net",
            "Description",
        ]
    )
    for tx in transactions:
        w.writerow(
            [
                isoformat(tx.date),
                tx.type,
                tx.account.name if tx.account else "",
                tx.account.currency if tx.account else "",
                tx.category.name if tx.category else "",
                tx.counterparty.name if tx.counterparty else "",
                tx.project.name if tx.project else "",
                _fmt(tx.amount),
                _fmt(tx.commission_percent or 0.0),
                _fmt(tx.commission_amount or 0.0),
                _fmt(tx.net_amount or 0.0),
                tx.description or "",
            ]
        )
    return out.getvalue().encode("utf-8")
