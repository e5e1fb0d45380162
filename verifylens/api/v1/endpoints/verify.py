"""
Billed verification endpoints
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from verifylens.api.dependencies import get_client_ip, get_pipeline
from verifylens.core.config import settings
from verifylens.services.pipeline import (
    AdmissionPipeline,
    EndpointPolicy,
    PipelineRequest,
    build_endpoint_policies,
)

router = APIRouter()

POLICIES = build_endpoint_policies(settings)


async def _verify(policy: EndpointPolicy, request: Request, pipeline: AdmissionPipeline) -> JSONResponse:
    result = await pipeline.handle(
        policy,
        PipelineRequest(
            api_key=request.headers.get("x-api-key"),
            body=await request.body(),
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        ),
    )
    return JSONResponse(status_code=result.status_code, content=result.content, headers=result.headers)


@router.post("/exact")
async def exact_verify(
    request: Request,
    pipeline: AdmissionPipeline = Depends(get_pipeline),
):
    """
    Exact username verification

    Body: `username` (required), `userId`, `strictMatch`, `includeProfile`.
    Requires an `X-API-Key` header. Identical repeat queries are served from
    cache free of charge.
    """
    return await _verify(POLICIES["exact"], request, pipeline)


@router.post("/smart")
async def smart_verify(
    request: Request,
    pipeline: AdmissionPipeline = Depends(get_pipeline),
):
    """
    Smart username verification with profile filters

    Body: `username` (required), `filters`, `includeHistory`.
    """
    return await _verify(POLICIES["smart"], request, pipeline)


@router.get("/exact")
async def describe_exact_verify():
    """Describe the exact verification endpoint"""
    return POLICIES["exact"].describe(settings.DOCUMENTATION_URL)


@router.get("/smart")
async def describe_smart_verify():
    """Describe the smart verification endpoint"""
    return POLICIES["smart"].describe(settings.DOCUMENTATION_URL)
