"""
Request dependencies.

Authentication happens upstream; the gateway forwards the caller's identity
in headers.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request

from unified_dashboard.models import Identity
from unified_dashboard.pipeline import AggregationOrchestrator


async def get_identity(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
    x_company_id: Optional[str] = Header(default=None),
    x_vendor_id: Optional[str] = Header(default=None),
    x_vendor_name: Optional[str] = Header(default=None),
) -> Identity:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return Identity(
        user_id=x_user_id,
        role=x_user_role or "user",
        company_id=x_company_id or None,
        vendor_id=x_vendor_id or None,
        vendor_name=x_vendor_name or None,
    )


def get_orchestrator(request: Request) -> AggregationOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return orchestrator
