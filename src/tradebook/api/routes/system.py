"""System health endpoint."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends

from tradebook.api.deps import get_registry
from tradebook.registry.queries import Registry

router = APIRouter()

_start_time = time.time()


@router.get("/system/health")
def health_check(registry: Registry = Depends(get_registry)) -> dict:
    """Database connectivity plus row counts.

    Response shape: {status, database, accounts, transactions, uptime}
    """
    db_ok = registry._db.health_check()
    accounts = transactions = 0
    if db_ok:
        accounts = len(registry.list_accounts())
        transactions = registry.list_transactions(limit=1).total_count

    return {
        "status": "healthy" if db_ok else "degraded",
        "database": db_ok,
        "accounts": accounts,
        "transactions": transactions,
        "uptime": int(time.time() - _start_time),
    }
