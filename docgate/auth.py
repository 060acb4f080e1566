"""
Authentication Dependencies
===========================

FastAPI dependencies that resolve the caller's identity.

Operation endpoints accept either credential and resolve it inside the
metered pipeline. Everything else here is signed-token only, and admin
routes additionally need the admin role.
"""

from typing import Optional

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from docgate.dependencies import Services, get_services
from docgate.errors import AuthorizationError
from docgate.models.db_models import Account
from docgate.services.identity import Identity


# Declared for the OpenAPI schema; the raw header is parsed by IdentityResolver
# so that a wrong scheme is reported as malformed rather than missing.
security = HTTPBearer(
    scheme_name="Bearer",
    description="Signed token from the identity provider, or an API key on operation endpoints.",
    auto_error=False,
)


async def require_signed_token(
    request: Request,
    _: Optional[HTTPAuthorizationCredentials] = Security(security),
    services: Services = Depends(get_services),
) -> Identity:
    """Resolve a signed-token caller; API keys are rejected."""
    return await services.identity.resolve(request.headers.get("Authorization"), allow_api_key=False)


async def require_admin(identity: Identity = Depends(require_signed_token)) -> Identity:
    if not identity.is_admin:
        raise AuthorizationError("Admin access required")
    return identity


async def current_account(
    identity: Identity = Depends(require_signed_token),
    services: Services = Depends(get_services),
) -> Account:
    """The caller's account, auto-provisioned on first contact."""
    return await services.accounts.get_or_provision(identity)
