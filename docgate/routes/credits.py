"""
Account and Credits Endpoints
=============================

Registration and credit balance management for signed-token callers.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, status

from docgate.auth import current_account, require_admin, require_signed_token
from docgate.dependencies import Services, get_services
from docgate.models.db_models import Account
from docgate.models.schemas import (
    AccountResponse,
    AddCreditsRequest,
    CreditsResponse,
    DeductCreditsRequest,
    RegisterRequest,
)
from docgate.services.identity import Identity


router = APIRouter(prefix="/api/v1", tags=["Credits"])


@router.post(
    "/register",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="Create the caller's account with the starting credit balance.",
)
async def register(
    body: Optional[RegisterRequest] = Body(None),
    identity: Identity = Depends(require_signed_token),
    services: Services = Depends(get_services),
) -> AccountResponse:
    account = await services.accounts.register(identity, user_id=body.user_id if body else None)
    return AccountResponse(
        message="User registered successfully",
        user_id=account.user_id,
        email=account.email,
        credits=account.balance,
        created_at=account.created_at,
    )


@router.get(
    "/credits/balance",
    response_model=CreditsResponse,
    summary="Get Balance",
)
async def get_balance(account: Account = Depends(current_account)) -> CreditsResponse:
    return CreditsResponse(
        message="Credits retrieved successfully",
        user_id=account.user_id,
        credits=account.balance,
    )


@router.post(
    "/credits/deduct",
    response_model=CreditsResponse,
    summary="Deduct Credits",
    description="Debit the caller's own balance. Fails without change if the balance is too low.",
)
async def deduct_credits(
    body: DeductCreditsRequest,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> CreditsResponse:
    balance = await services.ledger.debit(account.user_id, body.amount)
    return CreditsResponse(
        message="Credits deducted successfully",
        user_id=account.user_id,
        credits=balance,
    )


@router.post(
    "/credits/add",
    response_model=CreditsResponse,
    summary="Add Credits (Admin)",
)
async def add_credits(
    body: AddCreditsRequest,
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> CreditsResponse:
    balance = await services.ledger.credit(body.user_id, body.amount)
    return CreditsResponse(
        message="Credits added successfully",
        user_id=body.user_id,
        credits=balance,
    )
