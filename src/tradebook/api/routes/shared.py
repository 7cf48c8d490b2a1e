"""Shared serializers and filter parsing for API route handlers."""

from __future__ import annotations

from datetime import date

from fastapi import HTTPException

from tradebook.models.account import Account
from tradebook.models.transaction import Action, Transaction
from tradebook.registry.queries import TransactionFilter

# Query-string value meaning "no filter"
ANY = "all"


def account_to_dict(account: Account) -> dict:
    return {
        "id": account.id,
        "userid": account.userid,
        "name": account.name,
        "active": account.active,
    }


def transaction_to_dict(txn: Transaction, accounts: dict[str, Account] | None = None) -> dict:
    data = {
        "id": txn.id,
        "accountId": txn.account_id,
        "date": txn.date.isoformat(),
        "instrument": txn.instrument,
        "action": txn.action.value,
        "quantity": float(txn.quantity),
        "price": float(txn.price),
        "tradeValue": float(txn.trade_value),
        "brokerage": float(txn.brokerage),
        "source": txn.source,
        "orderRef": txn.order_ref,
        "remarks": txn.remarks,
    }
    if accounts is not None:
        account = accounts.get(txn.account_id)
        data["account"] = {
            "userid": txn.account_id,
            "name": account.name if account else txn.account_id,
        }
    return data


def parse_date(value: str | None, field: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {field}, use YYYY-MM-DD") from None


def build_filter(
    account: str | None = None,
    action: str | None = None,
    instrument: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
) -> TransactionFilter:
    """Translate query-string filters, treating ``all`` as unset."""
    parsed_action = None
    if action and action != ANY:
        try:
            parsed_action = Action(action)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unsupported action: {action}") from None
    return TransactionFilter(
        account_id=account.upper() if account and account != ANY else None,
        action=parsed_action,
        instrument=instrument or None,
        date_from=parse_date(date_from, "dateFrom"),
        date_to=parse_date(date_to, "dateTo"),
    )
