from typing import Literal

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from typing_extensions import TypedDict

from hubproxy.deps.proxy import PolicyDep

router = APIRouter(tags=["Health"])


class HealthResponse(TypedDict):
    status: Literal["pass"]
    allowed_hosts: int
    restrict_paths: bool


@router.get("/health", responses={200: {"model": HealthResponse}})
async def health(policy: PolicyDep):
    if not policy.allowed_hosts:
        return JSONResponse(
            status_code=500,
            content={"status": "fail", "reason": "no allowed hosts configured"},
        )

    return {
        "status": "pass",
        "allowed_hosts": len(policy.allowed_hosts),
        "restrict_paths": policy.restrict_paths,
    }
