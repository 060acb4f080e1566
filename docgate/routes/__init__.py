"""API route modules."""

from docgate.routes.health import router as health_router
from docgate.routes.operations import router as operations_router
from docgate.routes.credits import router as credits_router
from docgate.routes.tokens import router as tokens_router
from docgate.routes.keys import router as keys_router
from docgate.routes.usage import router as usage_router
from docgate.routes.admin import router as admin_router

__all__ = [
    "health_router",
    "operations_router",
    "credits_router",
    "tokens_router",
    "keys_router",
    "usage_router",
    "admin_router",
]
