"""Trading account endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from tradebook.api.deps import get_registry
from tradebook.api.routes.shared import account_to_dict
from tradebook.models.account import Account
from tradebook.registry.errors import AccountInUseError, DuplicateAccountError, NotFoundError
from tradebook.registry.queries import Registry

router = APIRouter()


class CreateAccountRequest(BaseModel):
    userid: str
    name: str


class UpdateAccountRequest(BaseModel):
    name: str = ""
    active: bool | None = None


@router.get("/accounts")
def list_accounts(registry: Registry = Depends(get_registry)) -> list[dict]:
    return [account_to_dict(a) for a in registry.list_accounts()]


@router.get("/accounts/active")
def list_active_accounts(registry: Registry = Depends(get_registry)) -> list[dict]:
    """Active accounts only, for pickers."""
    return [account_to_dict(a) for a in registry.list_active_accounts()]


@router.post("/accounts")
def create_account(body: CreateAccountRequest, registry: Registry = Depends(get_registry)) -> dict:
    account = Account(userid=body.userid, name=body.name)
    if not account.userid or not account.name:
        raise HTTPException(status_code=400, detail="Account ID and name are required")
    try:
        created = registry.create_account(account)
    except DuplicateAccountError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return account_to_dict(created)


@router.put("/accounts/{account_id}")
def update_account(
    account_id: int, body: UpdateAccountRequest, registry: Registry = Depends(get_registry),
) -> dict:
    if not body.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    try:
        updated = registry.update_account(account_id, body.name, active=body.active)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail="Account not found") from e
    return account_to_dict(updated)


@router.delete("/accounts/{account_id}")
def delete_account(account_id: int, registry: Registry = Depends(get_registry)) -> dict:
    try:
        registry.delete_account(account_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail="Account not found") from e
    except AccountInUseError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"success": True, "message": "Account deleted successfully"}
