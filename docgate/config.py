"""
Configuration Management
========================

Centralized configuration using Pydantic Settings with environment variable support.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # API Service Configuration
    # -------------------------------------------------------------------------
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_debug: bool = Field(default=False, description="Debug mode")
    api_title: str = Field(default="DocGate API", description="API title")
    api_version: str = Field(default="1.0.0", description="API version")

    # -------------------------------------------------------------------------
    # Signed Token (JWT) Authentication
    # -------------------------------------------------------------------------
    auth_issuer_url: Optional[str] = Field(
        default=None,
        description="Trusted token issuer; the 'iss' claim must match exactly",
    )
    auth_jwks_url: Optional[str] = Field(
        default=None,
        description="JWKS location override (defaults to <issuer>/.well-known/jwks.json)",
    )
    auth_jwks_cache_ttl: int = Field(
        default=3600,
        description="Seconds a fetched key set stays fresh",
    )
    auth_jwks_timeout: float = Field(
        default=10.0,
        description="Timeout for key set fetches (seconds)",
    )
    auth_algorithms: List[str] = Field(
        default=["RS256", "RS384", "RS512", "ES256", "ES384", "PS256"],
        description="Accepted asymmetric signing algorithms",
    )
    auth_admin_role: str = Field(default="admin", description="Role key that grants admin access")
    auth_email_claim: str = Field(default="email", description="Claim holding the subject email")
    auth_roles_claim: str = Field(default="roles", description="Claim holding the role list")

    # -------------------------------------------------------------------------
    # API Keys
    # -------------------------------------------------------------------------
    api_key_prefix: str = Field(default="ak_live_", description="Fixed API key prefix")
    api_key_max_lifetime_days: int = Field(
        default=365,
        description="Furthest allowed API key expiry, in days from creation",
    )

    # -------------------------------------------------------------------------
    # Accounts and Credits
    # -------------------------------------------------------------------------
    starting_balance: int = Field(
        default=10,
        description="Credits granted to a newly provisioned account",
    )
    credit_token_ttl_days: int = Field(
        default=30,
        description="Lifetime of a redeemable credit token",
    )

    # -------------------------------------------------------------------------
    # Upstream Operations
    # -------------------------------------------------------------------------
    qr_masking_api_url: Optional[str] = Field(default=None, description="QR masking endpoint")
    qr_extraction_api_url: Optional[str] = Field(default=None, description="QR extraction endpoint")
    id_cropping_api_url: Optional[str] = Field(default=None, description="ID cropping endpoint")
    signature_verification_api_url: Optional[str] = Field(
        default=None,
        description="Signature verification endpoint",
    )
    face_detection_api_url: Optional[str] = Field(default=None, description="Face detection endpoint")
    face_verification_api_url: Optional[str] = Field(
        default=None,
        description="Face verification endpoint",
    )

    # -------------------------------------------------------------------------
    # Usage Recording
    # -------------------------------------------------------------------------
    usage_queue_size: int = Field(default=1000, description="Pending usage records before dropping")
    usage_workers: int = Field(default=2, description="Background usage writer tasks")
    usage_write_timeout: float = Field(default=5.0, description="Per-record write timeout (seconds)")
    usage_drain_timeout: float = Field(
        default=10.0,
        description="Time allowed to flush pending usage records on shutdown (seconds)",
    )

    # -------------------------------------------------------------------------
    # Database Configuration
    # -------------------------------------------------------------------------
    database_url: str = Field(
        default="sqlite:///./docgate.db",
        description="Database connection URL",
    )

    # -------------------------------------------------------------------------
    # Redis Configuration
    # -------------------------------------------------------------------------
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL for rate limiting",
    )

    # -------------------------------------------------------------------------
    # Rate Limiting
    # -------------------------------------------------------------------------
    rate_limit_enabled: bool = Field(
        default=True,
        description="Enable rate limiting",
    )
    rate_limit_requests_per_minute: int = Field(
        default=60,
        description="Maximum requests per minute per caller",
    )

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json or console)")

    # -------------------------------------------------------------------------
    # CORS
    # -------------------------------------------------------------------------
    cors_origins: List[str] = Field(
        default=["*"],
        description="Allowed CORS origins",
    )
    cors_allow_credentials: bool = Field(
        default=True,
        description="Allow credentials in CORS",
    )

    @property
    def jwks_url(self) -> Optional[str]:
        """Key set location, derived from the issuer unless overridden."""
        if self.auth_jwks_url:
            return self.auth_jwks_url
        if self.auth_issuer_url:
            return f"{self.auth_issuer_url.rstrip('/')}/.well-known/jwks.json"
        return None


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
