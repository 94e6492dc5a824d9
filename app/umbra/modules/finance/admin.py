from __future__ import annotations

import io
from datetime import datetime

from flask import Blueprint, abort, jsonify, request, send_file

from app.umbra.audit import record_event
from app.umbra.db import db_session
from app.umbra.modules.finance.models import (
    Counterparty,
    FinanceAccount,
    FinanceCategory,
    FinanceProject,
    FinanceTransaction,
)
from app.umbra.modules.finance.service import (
    CATEGORY_FIELDS,
    COUNTERPARTY_FIELDS,
    PROJECT_FIELDS,
    TRANSACTION_TYPES,
    FinanceError,
    apply_account_payload,
    apply_fields,
    create_transaction,
    delete_transaction,
    period_bounds,
    summarize,
    transactions_csv,
    transactions_in_period,
    validate_account_payload,
    validate_category_payload,
    validate_counterparty_payload,
    validate_project_payload,
    validate_transaction_payload,
)
from app.umbra.rbac import require_admin
from app.umbra.timeutil import parse_date
from app.umbra.utils import current_user, get_payload, json_error, parse_int, validation_error

bp = Blueprint("finance", __name__)


def _get_or_404(model, obj_id: int):
    obj = db_session().get(model, obj_id)
    if not obj:
        abort(404)
    return obj


def _archived_filter(q, model):
    """Active rows by default; `status=archived` lists the archive, `status=all` both."""
    status = (request.args.get("status") or "").strip().lower()
    if status == "archived":
        return q.filter(model.is_archived.is_(True))
    if status == "all":
        return q
    return q.filter(model.is_archived.is_(False))


def _period_args():
    try:
        date_from = parse_date(request.args.get("from"))
        date_to = parse_date(request.args.get("to"))
    except ValueError:
        raise FinanceError("from/to must be dates in YYYY-MM-DD format.")
    if date_from and date_to and date_to < date_from:
        raise FinanceError("'to' must not be before 'from'.")
    return date_from, date_to


# ---------- Accounts ----------
@bp.get("/accounts")
@require_admin
def accounts_list():
    s = db_session()
    q = _archived_filter(s.query(FinanceAccount), FinanceAccount)
    accounts = q.order_by(FinanceAccount.created_at.asc(), FinanceAccount.id.asc()).all()
    return jsonify({"accounts": [a.to_dict() for a in accounts]})


@bp.get("/accounts/<int:account_id>")
@require_admin
def accounts_detail(account_id: int):
    account = _get_or_404(FinanceAccount, account_id)
    return jsonify({"account": account.to_dict()})


@bp.post("/accounts")
@require_admin
def accounts_create():
    s = db_session()
    payload = get_payload()
    errors = validate_account_payload(payload)
    if errors:
        return validation_error(errors)

    now = datetime.utcnow()
    account = FinanceAccount(type="OTHER", currency="USD", balance=0.0, commission=0.0, created_at=now, updated_at=now)
    apply_account_payload(account, payload)
    s.add(account)
    s.flush()
    record_event(
        s,
        actor=current_user(),
        action="finance_account.create",
        entity_type="FinanceAccount",
        entity_id=str(account.id),
        metadata=account.to_dict(),
    )
    s.commit()
    return jsonify({"account": account.to_dict()}), 201


@bp.put("/accounts/<int:account_id>")
@require_admin
def accounts_update(account_id: int):
    s = db_session()
    account = _get_or_404(FinanceAccount, account_id)
    payload = get_payload()
    errors = validate_account_payload(payload, partial=True)
    if errors:
        return validation_error(errors)

    before = account.to_dict()
    apply_account_payload(account, payload)
    account.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=current_user(),
        action="finance_account.edit",
        entity_type="FinanceAccount",
        entity_id=str(account.id),
        metadata={"before": before, "after": account.to_dict()},
    )
    s.commit()
    return jsonify({"account": account.to_dict()})


@bp.delete("/accounts/<int:account_id>")
@require_admin
def accounts_delete(account_id: int):
    s = db_session()
    account = _get_or_404(FinanceAccount, account_id)
    if s.query(FinanceTransaction).filter(FinanceTransaction.account_id == account.id).first():
        return json_error("Account has transactions. Archive it instead.", 400)
    record_event(
        s,
        actor=current_user(),
        action="finance_account.delete",
        entity_type="FinanceAccount",
        entity_id=str(account.id),
        metadata={"name": account.name},
    )
    s.delete(account)
    s.commit()
    return jsonify({"success": True})


# ---------- Categories / counterparties / projects ----------
def _create_simple(model, payload: dict, fields: dict, entity_type: str, **defaults):
    s = db_session()
    now = datetime.utcnow()
    obj = model(created_at=now, updated_at=now, **defaults)
    apply_fields(obj, payload, fields)
    s.add(obj)
    s.flush()
    record_event(
        s,
        actor=current_user(),
        action=f"{entity_type}.create",
        entity_type=model.__name__,
        entity_id=str(obj.id),
        metadata=obj.to_dict(),
    )
    s.commit()
    return obj


def _update_simple(obj, payload: dict, fields: dict, entity_type: str):
    s = db_session()
    changes = apply_fields(obj, payload, fields)
    obj.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=current_user(),
        action=f"{entity_type}.edit",
        entity_type=type(obj).__name__,
        entity_id=str(obj.id),
        metadata={"changes": changes},
    )
    s.commit()
    return obj


def _delete_simple(obj, entity_type: str):
    s = db_session()
    record_event(
        s,
        actor=current_user(),
        action=f"{entity_type}.delete",
        entity_type=type(obj).__name__,
        entity_id=str(obj.id),
        metadata={"name": obj.name},
    )
    s.delete(obj)
    s.commit()


@bp.get("/categories")
@require_admin
def categories_list():
    s = db_session()
    q = _archived_filter(s.query(FinanceCategory), FinanceCategory)
    tx_type = (request.args.get("type") or "").strip().upper()
    if tx_type in TRANSACTION_TYPES:
        q = q.filter(FinanceCategory.type == tx_type)
    categories = q.order_by(FinanceCategory.name.asc()).all()
    return jsonify({"categories": [c.to_dict() for c in categories]})


@bp.post("/categories")
@require_admin
def categories_create():
    payload = get_payload()
    errors = validate_category_payload(payload)
    if errors:
        return validation_error(errors)
    category = _create_simple(
        FinanceCategory, payload, CATEGORY_FIELDS, "finance_category", type="EXPENSE", color="#3B82F6"
    )
    return jsonify({"category": category.to_dict()}), 201


@bp.put("/categories/<int:category_id>")
@require_admin
def categories_update(category_id: int):
    category = _get_or_404(FinanceCategory, category_id)
    payload = get_payload()
    errors = validate_category_payload(payload, partial=True)
    if errors:
        return validation_error(errors)
    _update_simple(category, payload, CATEGORY_FIELDS, "finance_category")
    return jsonify({"category": category.to_dict()})


@bp.delete("/categories/<int:category_id>")
@require_admin
def categories_delete(category_id: int):
    _delete_simple(_get_or_404(FinanceCategory, category_id), "finance_category")
    return jsonify({"success": True})


@bp.get("/counterparties")
@require_admin
def counterparties_list():
    s = db_session()
    q = _archived_filter(s.query(Counterparty), Counterparty)
    cp_type = (request.args.get("type") or "").strip().upper()
    if cp_type:
        q = q.filter(Counterparty.type == cp_type)
    counterparties = q.order_by(Counterparty.name.asc()).all()
    return jsonify({"counterparties": [c.to_dict() for c in counterparties]})


@bp.post("/counterparties")
@require_admin
def counterparties_create():
    payload = get_payload()
    errors = validate_counterparty_payload(payload)
    if errors:
        return validation_error(errors)
    counterparty = _create_simple(Counterparty, payload, COUNTERPARTY_FIELDS, "finance_counterparty", type="CLIENT")
    return jsonify({"counterparty": counterparty.to_dict()}), 201


@bp.put("/counterparties/<int:counterparty_id>")
@require_admin
def counterparties_update(counterparty_id: int):
    counterparty = _get_or_404(Counterparty, counterparty_id)
    payload = get_payload()
    errors = validate_counterparty_payload(payload, partial=True)
    if errors:
        return validation_error(errors)
    _update_simple(counterparty, payload, COUNTERPARTY_FIELDS, "finance_counterparty")
    return jsonify({"counterparty": counterparty.to_dict()})


@bp.delete("/counterparties/<int:counterparty_id>")
@require_admin
def counterparties_delete(counterparty_id: int):
    _delete_simple(_get_or_404(Counterparty, counterparty_id), "finance_counterparty")
    return jsonify({"success": True})


@bp.get("/projects")
@require_admin
def projects_list():
    s = db_session()
    q = _archived_filter(s.query(FinanceProject), FinanceProject)
    projects = q.order_by(FinanceProject.created_at.desc(), FinanceProject.id.desc()).all()
    return jsonify({"projects": [p.to_dict() for p in projects]})


@bp.post("/projects")
@require_admin
def projects_create():
    payload = get_payload()
    errors = validate_project_payload(payload)
    if errors:
        return validation_error(errors)
    project = _create_simple(FinanceProject, payload, PROJECT_FIELDS, "finance_project", status="ACTIVE")
    return jsonify({"project": project.to_dict()}), 201


@bp.put("/projects/<int:project_id>")
@require_admin
def projects_update(project_id: int):
    project = _get_or_404(FinanceProject, project_id)
    payload = get_payload()
    errors = validate_project_payload(payload, partial=True)
    if errors:
        return validation_error(errors)
    _update_simple(project, payload, PROJECT_FIELDS, "finance_project")
    return jsonify({"project": project.to_dict()})


@bp.delete("/projects/<int:project_id>")
@require_admin
def projects_delete(project_id: int):
    _delete_simple(_get_or_404(FinanceProject, project_id), "finance_project")
    return jsonify({"success": True})


# ---------- Transactions ----------
@bp.get("/transactions")
@require_admin
def transactions_list():
    s = db_session()
    limit = min(max(parse_int(request.args.get("limit"), 50) or 50, 1), 500)
    q = s.query(FinanceTransaction)
    account_id = parse_int(request.args.get("accountId"))
    if account_id:
        q = q.filter(FinanceTransaction.account_id == account_id)
    tx_type = (request.args.get("type") or "").strip().upper()
    if tx_type in TRANSACTION_TYPES:
        q = q.filter(FinanceTransaction.type == tx_type)
    transactions = q.order_by(FinanceTransaction.date.desc(), FinanceTransaction.id.desc()).limit(limit).all()
    return jsonify({"transactions": [t.to_dict() for t in transactions]})


@bp.post("/transactions")
@require_admin
def transactions_create():
    s = db_session()
    payload = get_payload()
    errors = validate_transaction_payload(payload)
    if errors:
        return validation_error(errors)
    try:
        tx = create_transaction(s, payload, current_user())
    except FinanceError as e:
        s.rollback()
        return json_error(str(e), e.status)
    s.commit()
    return jsonify({"transaction": tx.to_dict(), "balance": tx.account.to_dict()["balance"]}), 201


@bp.delete("/transactions/<int:transaction_id>")
@require_admin
def transactions_delete(transaction_id: int):
    s = db_session()
    tx = _get_or_404(FinanceTransaction, transaction_id)
    account = tx.account
    delete_transaction(s, tx, current_user())
    s.commit()
    return jsonify({"success": True, "balance": account.to_dict()["balance"]})


# ---------- Reports ----------
@bp.get("/reports/summary")
@require_admin
def reports_summary():
    s = db_session()
    try:
        date_from, date_to = _period_args()
    except FinanceError as e:
        return json_error(str(e), e.status)
    start, end = period_bounds(date_from, date_to)
    body = summarize(transactions_in_period(s, start, end))
    body["from"] = str(date_from) if date_from else None
    body["to"] = str(date_to) if date_to else None
    return jsonify(body)


@bp.get("/reports/export")
@require_admin
def reports_export():
    s = db_session()
    try:
        date_from, date_to = _period_args()
    except FinanceError as e:
        return json_error(str(e), e.status)
    start, end = period_bounds(date_from, date_to)
    transactions = transactions_in_period(s, start, end)
    data_bytes = transactions_csv(transactions)

    record_event(
        s,
        actor=current_user(),
        action="finance_report.export",
        entity_type="FinanceTransaction",
        entity_id="export",
        metadata={"from": str(date_from) if date_from else None, "to": str(date_to) if date_to else None, "row_count": len(transactions)},
    )
    s.commit()

    filename = f"finance_{date_from or 'all'}_{date_to or 'all'}.csv".replace("-", "")
    return send_file(
        io.BytesIO(data_bytes),
        mimetype="text/csv",
        as_attachment=True,
        download_name=filename,
        max_age=0,
    )
