"""
Usage Analytics Endpoints
=========================

Admin-only aggregates and history over recorded operation usage.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, Query

from docgate.auth import require_admin
from docgate.dependencies import Services, get_services
from docgate.errors import ValidationError
from docgate.models.schemas import (
    ServiceUsageStats,
    ServiceUserUsageStats,
    UsageHistoryResponse,
    UsageRecordOut,
    UsageStatsResponse,
    UserUsageStats,
)
from docgate.services.identity import Identity


router = APIRouter(prefix="/api/v1/admin/usage", tags=["Usage"])


def parse_date_range(start_date: Optional[str], end_date: Optional[str]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Parse YYYY-MM-DD bounds. The end date is inclusive, so the returned
    upper bound is midnight of the following day (exclusive).
    """
    def parse(value: str, name: str) -> date:
        try:
            return date.fromisoformat(value)
        except ValueError:
            raise ValidationError(f"Invalid {name} format. Use YYYY-MM-DD")

    start = datetime.combine(parse(start_date, "start_date"), time.min) if start_date else None
    end = datetime.combine(parse(end_date, "end_date") + timedelta(days=1), time.min) if end_date else None
    if start and end and start >= end:
        raise ValidationError("start_date must not be after end_date")
    return start, end


@router.get("/services", response_model=UsageStatsResponse, summary="Usage by Operation")
async def usage_by_service(
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> UsageStatsResponse:
    start, end = parse_date_range(start_date, end_date)
    rows = await services.usage_store.aggregate_by("operation", start, end)
    return UsageStatsResponse(
        message="Service usage statistics retrieved successfully",
        start_date=start,
        end_date=end,
        stats=[ServiceUsageStats(**row) for row in rows],
    )


@router.get("/users", response_model=UsageStatsResponse, summary="Usage by User")
async def usage_by_user(
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> UsageStatsResponse:
    start, end = parse_date_range(start_date, end_date)
    rows = await services.usage_store.aggregate_by("user", start, end)
    return UsageStatsResponse(
        message="User usage statistics retrieved successfully",
        start_date=start,
        end_date=end,
        stats=[UserUsageStats(**row) for row in rows],
    )


@router.get("/service-users", response_model=UsageStatsResponse, summary="Usage by User and Operation")
async def usage_by_service_user(
    service: Optional[str] = Query(None, description="Restrict to one operation"),
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> UsageStatsResponse:
    start, end = parse_date_range(start_date, end_date)
    rows = await services.usage_store.aggregate_by("user_operation", start, end, operation=service)
    return UsageStatsResponse(
        message="Service user usage statistics retrieved successfully",
        start_date=start,
        end_date=end,
        stats=[ServiceUserUsageStats(**row) for row in rows],
    )


@router.get("/users/{user_id}/history", response_model=UsageHistoryResponse, summary="User History")
async def user_history(
    user_id: str,
    limit: int = Query(50, ge=1, le=100),
    skip: int = Query(0, ge=0),
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> UsageHistoryResponse:
    records = await services.usage_store.history(user_id=user_id, limit=limit, skip=skip)
    return UsageHistoryResponse(
        message="User usage history retrieved successfully",
        limit=limit,
        skip=skip,
        history=[UsageRecordOut.model_validate(r) for r in records],
    )


@router.get("/services/{service}/history", response_model=UsageHistoryResponse, summary="Operation History")
async def service_history(
    service: str,
    limit: int = Query(50, ge=1, le=100),
    skip: int = Query(0, ge=0),
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> UsageHistoryResponse:
    records = await services.usage_store.history(operation=service, limit=limit, skip=skip)
    return UsageHistoryResponse(
        message="Service usage history retrieved successfully",
        limit=limit,
        skip=skip,
        history=[UsageRecordOut.model_validate(r) for r in records],
    )
