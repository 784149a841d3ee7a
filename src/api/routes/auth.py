"""Authentication routes: resolved context and logout."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from src.api.deps import require_context
from src.api.middleware import clear_session
from src.api.models.schemas import ContextResponse
from src.core.logging import get_logger
from src.saas.context import TenantContext

log = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/context", response_model=ContextResponse)
async def get_context(ctx: TenantContext = Depends(require_context)) -> ContextResponse:
    """Return the acting principal and the organization requests will act on."""
    return ContextResponse(
        user_id=ctx.user_id,
        email=ctx.principal.email,
        role=ctx.principal.role,
        org_id=ctx.org_id,
        org_name=ctx.org_name,
        source=ctx.source.value,
    )


@router.post("/logout")
async def logout() -> Response:
    """Clear the session cookie and the cached organization with it."""
    response = Response(status_code=status.HTTP_200_OK)
    clear_session(response)
    log.info("logout")
    return response
