"""
API Key Management Endpoints
============================

Endpoints for creating and managing the caller's API key.
An account holds at most one key; creating a new one revokes the old.
"""

from fastapi import APIRouter, Depends, status

from docgate.auth import current_account, require_signed_token
from docgate.dependencies import Services, get_services
from docgate.models.db_models import Account
from docgate.models.schemas import (
    APIKeyCreate,
    APIKeyCreated,
    APIKeyInfo,
    APIKeyResponse,
    APIKeyStats,
    APIKeyStatsResponse,
    APIKeyUpdate,
    APIKeyValidateRequest,
    APIKeyValidateResponse,
)
from docgate.services.identity import Identity


router = APIRouter(prefix="/api/v1", tags=["API Keys"])


@router.post(
    "/api-keys",
    response_model=APIKeyCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create API Key",
    description="Create a new API key, replacing any existing one. The key is only shown once.",
)
async def create_key(
    body: APIKeyCreate,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> APIKeyCreated:
    """
    Create a new API key.

    **Important**: The API key value is only returned once upon creation.
    Store it securely - it cannot be retrieved later.
    """
    api_key, full_key = await services.keys.create_key(
        user_id=account.user_id,
        email=account.email,
        key_name=body.key_name,
        expires_at=body.expires_at,
    )

    return APIKeyCreated(
        message="API key created successfully. Store it securely, it will not be shown again.",
        api_key=full_key,
        key_name=api_key.key_name,
        key_prefix=api_key.key_prefix,
        expires_at=api_key.expires_at,
        created_at=api_key.created_at,
    )


@router.get(
    "/api-keys",
    response_model=APIKeyResponse,
    summary="Get API Key",
)
async def get_key(
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> APIKeyResponse:
    api_key = await services.keys.get_key(account.user_id)
    return APIKeyResponse(message="API key retrieved successfully", key=APIKeyInfo.model_validate(api_key))


@router.put(
    "/api-keys",
    response_model=APIKeyResponse,
    summary="Update API Key",
    description="Rename the key or toggle whether it is active.",
)
async def update_key(
    body: APIKeyUpdate,
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> APIKeyResponse:
    api_key = await services.keys.update_key(account.user_id, key_name=body.key_name, is_active=body.is_active)
    return APIKeyResponse(message="API key updated successfully", key=APIKeyInfo.model_validate(api_key))


@router.delete(
    "/api-keys",
    response_model=APIKeyResponse,
    summary="Revoke API Key",
)
async def revoke_key(
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> APIKeyResponse:
    await services.keys.revoke_key(account.user_id)
    return APIKeyResponse(message="API key revoked successfully")


@router.get(
    "/api-keys/stats",
    response_model=APIKeyStatsResponse,
    summary="API Key Stats",
)
async def key_stats(
    account: Account = Depends(current_account),
    services: Services = Depends(get_services),
) -> APIKeyStatsResponse:
    stats = await services.keys.get_stats(account.user_id)
    return APIKeyStatsResponse(message="API key stats retrieved successfully", stats=APIKeyStats(**stats))


@router.post(
    "/validate/api-key",
    response_model=APIKeyValidateResponse,
    summary="Validate API Key",
    description="Check whether an API key is well-formed, known, active and unexpired.",
)
async def validate_key(
    body: APIKeyValidateRequest,
    _: Identity = Depends(require_signed_token),
    services: Services = Depends(get_services),
) -> APIKeyValidateResponse:
    valid, message, api_key = await services.keys.validate_key(body.api_key)
    return APIKeyValidateResponse(
        valid=valid,
        message=message,
        key_prefix=api_key.key_prefix if api_key else None,
        user_id=api_key.user_id if api_key else None,
    )
