"""
Metered Operation Endpoints
===========================

One endpoint per upstream operation, all served by the metered pipeline.
Accepts a signed token or an API key.
"""

from fastapi import APIRouter, Depends, Request, Security
from fastapi.responses import JSONResponse

from docgate.auth import security
from docgate.dependencies import Services, get_services, request_context


router = APIRouter(prefix="/api/v1/operations", tags=["Operations"])


@router.get(
    "",
    summary="List Operations",
    description="Metered operations with their credit cost and billing policy.",
)
async def list_operations(services: Services = Depends(get_services)):
    orchestrator = services.orchestrator
    return {
        "operations": [
            {
                "name": d.name,
                "description": d.description,
                "cost": d.cost,
                "chargeOnUpstreamResponse": d.charge_on_upstream_response,
                "timeoutSeconds": d.timeout,
            }
            for d in orchestrator.descriptors.values()
            if d.name in orchestrator.adapters
        ]
    }


@router.post(
    "/{op_name}",
    summary="Run Operation",
    description="""
Run a document-processing operation and charge its credit cost.

Signed-token callers receive `{message, userId, remainingCredits, result, processedAt}`.
API key callers receive the upstream response unchanged.
    """,
)
async def run_operation(
    op_name: str,
    request: Request,
    _=Security(security),
    services: Services = Depends(get_services),
) -> JSONResponse:
    body = await request.body()
    result = await services.orchestrator.execute(
        op_name,
        request.headers.get("Authorization"),
        body,
        request_context(request),
    )
    return JSONResponse(content=result)
