"""
Admin Account Endpoints
=======================
"""

from fastapi import APIRouter, Depends

from docgate.auth import require_admin
from docgate.dependencies import Services, get_services
from docgate.models.schemas import (
    AdminStatsResponse,
    AdminUser,
    AdminUserDetailResponse,
    AdminUserListResponse,
)
from docgate.services.identity import Identity


router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.get("/users", response_model=AdminUserListResponse, summary="List Users")
async def list_users(
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> AdminUserListResponse:
    accounts = await services.accounts.list_accounts()
    return AdminUserListResponse(
        message="Users retrieved successfully",
        users=[AdminUser.model_validate(a) for a in accounts],
        total=len(accounts),
    )


@router.get("/users/{user_id}", response_model=AdminUserDetailResponse, summary="Get User")
async def get_user(
    user_id: str,
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> AdminUserDetailResponse:
    account = await services.accounts.get(user_id)
    return AdminUserDetailResponse(
        message="User retrieved successfully",
        user=AdminUser.model_validate(account),
    )


@router.get("/stats", response_model=AdminStatsResponse, summary="Account Stats")
async def stats(
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> AdminStatsResponse:
    totals = await services.accounts.stats()
    return AdminStatsResponse(message="Stats retrieved successfully", **totals)
