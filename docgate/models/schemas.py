"""
Pydantic Schemas for API Request/Response Models
=================================================
"""

from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


MIN_BASE64_LENGTH = 10
MAX_SIGNATURE_IMAGES = 10
MAX_SIGNATURE_IMAGE_BYTES = 10 * 1024 * 1024


class CamelModel(BaseModel):
    """Model serialized with camelCase keys, accepting either form on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _require_text(value: str, field: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{field} is required and cannot be empty")
    return value


def _require_base64(value: str, field: str) -> str:
    _require_text(value, field)
    if len(value) < MIN_BASE64_LENGTH:
        raise ValueError(f"{field} appears to be too short to be a valid document")
    return value


# =============================================================================
# Operation Request Models (validated inside the metered pipeline)
# =============================================================================

class OperationRequest(BaseModel):
    """Fields every upstream operation shares."""
    req_id: str = Field(..., description="Caller-supplied request identifier")

    @field_validator("req_id")
    @classmethod
    def _req_id(cls, v: str) -> str:
        return _require_text(v, "req_id")


class QRMaskingRequest(OperationRequest):
    base64_str: str

    @field_validator("base64_str")
    @classmethod
    def _image(cls, v: str) -> str:
        return _require_base64(v, "base64_str")


class DocumentRequest(OperationRequest):
    """QR extraction, ID cropping and face detection all take one document."""
    doc_base64: str

    @field_validator("doc_base64")
    @classmethod
    def _document(cls, v: str) -> str:
        return _require_base64(v, "doc_base64")


class SignatureVerificationRequest(OperationRequest):
    doc_base64: List[str]

    @field_validator("doc_base64")
    @classmethod
    def _images(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("doc_base64 array cannot be empty")
        if len(v) > MAX_SIGNATURE_IMAGES:
            raise ValueError(f"doc_base64 array cannot contain more than {MAX_SIGNATURE_IMAGES} images")
        for image in v:
            if not image:
                raise ValueError("doc_base64 array cannot contain empty base64 strings")
            if len(image) > MAX_SIGNATURE_IMAGE_BYTES:
                raise ValueError("base64 string too large (max 10MB per image)")
        return v


class FaceVerificationRequest(OperationRequest):
    doc_base64_1: str
    doc_base64_2: str
    doc_type: str

    @field_validator("doc_base64_1", "doc_base64_2")
    @classmethod
    def _faces(cls, v: str, info) -> str:
        return _require_base64(v, info.field_name)

    @field_validator("doc_type")
    @classmethod
    def _doc_type(cls, v: str) -> str:
        _require_text(v, "doc_type")
        if v.strip().lower() != "face":
            raise ValueError("doc_type must be 'face'")
        return v


class OperationResponse(CamelModel):
    """Envelope returned to signed-token callers on success."""
    message: str
    user_id: str
    remaining_credits: int
    result: Any
    processed_at: datetime


# =============================================================================
# Account and Credits Models
# =============================================================================

class RegisterRequest(CamelModel):
    """Registration body; the email always comes from the signed token."""
    user_id: Optional[str] = Field(None, max_length=255, description="Account id (defaults to email)")


class AccountResponse(CamelModel):
    message: str
    user_id: str
    email: str
    credits: int
    created_at: datetime


class CreditsResponse(CamelModel):
    message: str
    user_id: str
    credits: int


class AddCreditsRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0, description="Credits to add")


class DeductCreditsRequest(CamelModel):
    amount: int = Field(..., gt=0, description="Credits to deduct")


# =============================================================================
# API Key Models
# =============================================================================

class APIKeyCreate(CamelModel):
    """Request model for creating a new API key."""
    key_name: str = Field(..., description="Name for the API key")
    expires_at: Optional[datetime] = Field(None, description="Optional expiry (at most one year ahead)")

    @field_validator("key_name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("keyName is required")
        if len(v) > 50:
            raise ValueError("keyName must be 50 characters or less")
        return v


class APIKeyUpdate(CamelModel):
    key_name: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("key_name")
    @classmethod
    def _name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("keyName must be at least 1 character long")
        if len(v) > 50:
            raise ValueError("keyName must be 50 characters or less")
        return v


class APIKeyCreated(CamelModel):
    """The full key appears here and nowhere else."""
    message: str
    api_key: str
    key_name: str
    key_prefix: str
    expires_at: Optional[datetime] = None
    created_at: datetime


class APIKeyInfo(CamelModel):
    """Sanitized view of a stored key (never includes the hash)."""
    user_id: str
    email: str
    key_name: str
    key_prefix: str
    is_active: bool
    usage_count: int
    last_used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class APIKeyResponse(CamelModel):
    message: str
    key: Optional[APIKeyInfo] = None


class APIKeyStats(CamelModel):
    total_keys: int
    active_keys: int
    inactive_keys: int
    expired_keys: int
    total_usage: int
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    days_until_expiry: Optional[int] = None


class APIKeyStatsResponse(CamelModel):
    message: str
    stats: APIKeyStats


class APIKeyValidateRequest(CamelModel):
    api_key: str


class APIKeyValidateResponse(CamelModel):
    valid: bool
    message: str
    key_prefix: Optional[str] = None
    user_id: Optional[str] = None


# =============================================================================
# Credit Token Models
# =============================================================================

class GenerateTokenRequest(CamelModel):
    credits: int = Field(..., gt=0, description="Credits granted on redemption")
    description: Optional[str] = Field(None, max_length=500)


class RedeemTokenRequest(CamelModel):
    token: str = Field(..., min_length=1)


class TokenResponse(CamelModel):
    message: str
    token: Optional[str] = None
    credits: int
    remaining_credits: Optional[int] = None
    expires_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    description: Optional[str] = None


class CreditTokenInfo(CamelModel):
    id: int
    token: str = Field(..., validation_alias="code")
    credits: int
    description: Optional[str] = None
    created_by: str
    created_at: datetime
    expires_at: datetime
    is_used: bool
    used_by: Optional[str] = None
    used_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class TokenListResponse(CamelModel):
    message: str
    tokens: List[CreditTokenInfo]
    total: int


# =============================================================================
# Usage Models
# =============================================================================

class ServiceUsageStats(BaseModel):
    service_name: str
    total_calls: int
    success_calls: int
    failed_calls: int
    total_credits: int


class UserUsageStats(BaseModel):
    user_id: str
    email: str
    total_calls: int
    success_calls: int
    failed_calls: int
    total_credits: int


class ServiceUserUsageStats(BaseModel):
    user_id: str
    email: str
    service_name: str
    total_calls: int
    success_calls: int
    failed_calls: int
    total_credits: int
    last_used: Optional[datetime] = None


class UsageRecordOut(BaseModel):
    user_id: str
    email: str
    service_name: str = Field(..., validation_alias="operation_name")
    endpoint: str
    method: str
    success: bool
    error_msg: Optional[str] = Field(None, validation_alias="error_message")
    credits_used: int = Field(..., validation_alias="credits_charged")
    request_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    auth_method: str
    process_time_ms: int = Field(..., validation_alias="processing_time_ms")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class UsageStatsResponse(BaseModel):
    message: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    stats: List[Any]


class UsageHistoryResponse(BaseModel):
    message: str
    limit: int
    skip: int
    history: List[UsageRecordOut]


# =============================================================================
# Admin Models
# =============================================================================

class AdminUser(CamelModel):
    user_id: str
    email: str
    credits: int = Field(..., validation_alias="balance")
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class AdminUserListResponse(CamelModel):
    message: str
    users: List[AdminUser]
    total: int


class AdminUserDetailResponse(CamelModel):
    message: str
    user: AdminUser


class AdminStatsResponse(CamelModel):
    message: str
    total_users: int
    total_credits: int
    avg_credits: float


# =============================================================================
# Common Models
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(default="healthy")
    version: str
    database: str = Field(default="unknown")
    timestamp: datetime

