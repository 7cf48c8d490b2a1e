"""Transaction ledger endpoints."""

from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from tradebook.api.deps import get_config, get_registry
from tradebook.api.routes.shared import build_filter, transaction_to_dict
from tradebook.config import AppConfig
from tradebook.models.transaction import InvalidTransactionError, Transaction
from tradebook.registry.errors import ConstraintViolationError, NotFoundError, StoreConflictError
from tradebook.registry.queries import Registry

logger = logging.getLogger(__name__)

router = APIRouter()


class TransactionRequest(BaseModel):
    account_id: str
    date: dt.date
    instrument: str
    action: str
    quantity: Decimal
    price: Decimal
    brokerage: Decimal = Decimal(0)
    source: str | None = None
    order_ref: str | None = None
    remarks: str | None = None

    def to_transaction(self) -> Transaction:
        """Validate and build the record; trade value is always quantity * price."""
        try:
            return Transaction.create(
                account_id=self.account_id.strip().upper(),
                date=self.date,
                instrument=self.instrument,
                action=self.action,
                quantity=self.quantity,
                price=self.price,
                brokerage=self.brokerage,
                source=self.source,
                order_ref=self.order_ref,
                remarks=self.remarks,
            )
        except InvalidTransactionError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/transactions")
def list_transactions(
    account: str | None = None,
    action: str | None = None,
    instrument: str | None = None,
    dateFrom: str | None = None,
    dateTo: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=1000),
    mode: str = Query(default="paginated", pattern="^(paginated|all)$"),
    registry: Registry = Depends(get_registry),
    config: AppConfig = Depends(get_config),
) -> dict | list:
    """Transactions newest first, filtered and paginated.

    ``mode=all`` returns every match as a bare list.
    """
    filters = build_filter(account, action, instrument, dateFrom, dateTo)
    accounts = {a.userid: a for a in registry.list_accounts()}

    if mode == "all":
        return [transaction_to_dict(t, accounts) for t in registry.list_all_transactions(filters)]

    result = registry.list_transactions(filters, page=page, limit=limit or config.default_page_size)
    return {
        "data": [transaction_to_dict(t, accounts) for t in result.transactions],
        "pagination": result.pagination(),
    }


@router.get("/transactions/instruments")
def unique_instruments(registry: Registry = Depends(get_registry)) -> list[str]:
    return registry.unique_instruments()


@router.get("/transactions/{transaction_id}")
def get_transaction(transaction_id: int, registry: Registry = Depends(get_registry)) -> dict:
    txn = registry.get_transaction(transaction_id)
    if txn is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return transaction_to_dict(txn)


@router.post("/transactions")
def create_transaction(body: TransactionRequest, registry: Registry = Depends(get_registry)) -> dict:
    txn = body.to_transaction()
    try:
        created = registry.create_transaction(txn)
    except ConstraintViolationError as e:
        raise HTTPException(
            status_code=409, detail="A constraint violation occurred. Please try again.",
        ) from e
    except StoreConflictError as e:
        logger.warning("Transaction create gave up: %s", e)
        raise HTTPException(
            status_code=503,
            detail="The operation timed out due to high concurrency. Please try again.",
        ) from e
    return transaction_to_dict(created)


@router.put("/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int, body: TransactionRequest, registry: Registry = Depends(get_registry),
) -> dict:
    txn = body.to_transaction()
    try:
        updated = registry.update_transaction(transaction_id, txn)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail="Transaction not found") from e
    return transaction_to_dict(updated)


@router.delete("/transactions/{transaction_id}")
def delete_transaction(transaction_id: int, registry: Registry = Depends(get_registry)) -> dict:
    try:
        registry.delete_transaction(transaction_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail="Transaction not found") from e
    return {"success": True, "message": "Transaction deleted successfully"}
