"""
Credit Token Endpoints
======================

Admins generate single-use credit tokens; any signed-token caller can
redeem one.
"""

from typing import List

from fastapi import APIRouter, Depends, status

from docgate.auth import current_account, require_admin
from docgate.dependencies import Services, get_services
from docgate.models.db_models import Account, CreditToken
from docgate.models.schemas import (
    CreditTokenInfo,
    GenerateTokenRequest,
    RedeemTokenRequest,
    TokenListResponse,
    TokenResponse,
)
from docgate.services.identity import Identity


router = APIRouter(prefix="/api/v1/tokens", tags=["Credit Tokens"])


def _listing(message: str, tokens: List[CreditToken]) -> TokenListResponse:
    return TokenListResponse(
        message=message,
        tokens=[CreditTokenInfo.model_validate(t) for t in tokens],
        total=len(tokens),
    )


@router.post(
    "/generate",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate Token (Admin)",
    description="Create a redeemable credit token valid for 30 days.",
)
async def generate_token(
    body: GenerateTokenRequest,
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> TokenResponse:
    token = await services.tokens.generate(admin.email, body.credits, body.description)
    return TokenResponse(
        message="Token generated successfully",
        token=token.code,
        credits=token.credits,
        expires_at=token.expires_at,
        description=token.description,
    )


@router.post(
    "/redeem",
    response_model=TokenResponse,
    summary="Redeem Token",
    description="Add a token's credits to the caller's balance. Each token works once.",
)
async def redeem_token(
    body: RedeemTokenRequest,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> TokenResponse:
    token, balance = await services.tokens.redeem(body.token, account.user_id)
    return TokenResponse(
        message="Token redeemed successfully",
        credits=token.credits,
        remaining_credits=balance,
        used_at=token.used_at,
        description=token.description,
    )


@router.get("/my-tokens", response_model=TokenListResponse, summary="My Tokens (Admin)")
async def my_tokens(
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> TokenListResponse:
    tokens = await services.tokens.list_tokens(created_by=admin.email)
    return _listing("Tokens retrieved successfully", tokens)


@router.get("/all", response_model=TokenListResponse, summary="All Tokens (Admin)")
async def all_tokens(
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> TokenListResponse:
    return _listing("All tokens retrieved successfully", await services.tokens.list_tokens())


@router.get("/used", response_model=TokenListResponse, summary="Used Tokens (Admin)")
async def used_tokens(
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> TokenListResponse:
    return _listing("Used tokens retrieved successfully", await services.tokens.list_tokens(is_used=True))


@router.get("/unused", response_model=TokenListResponse, summary="Unused Tokens (Admin)")
async def unused_tokens(
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> TokenListResponse:
    return _listing("Unused tokens retrieved successfully", await services.tokens.list_tokens(is_used=False))


@router.delete(
    "/{token_id}",
    summary="Delete Token (Admin)",
    description="Delete an unused token you created.",
)
async def delete_token(
    token_id: int,
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    await services.tokens.delete(token_id, requested_by=admin.email)
    return {"message": "Token deleted successfully"}
