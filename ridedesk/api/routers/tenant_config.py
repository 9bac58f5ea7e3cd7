from fastapi import APIRouter, Depends, Query, Request

from ridedesk.api.dependencies import get_settings
from ridedesk.api.schemas.tenant_schemas import TenantPublicConfig
from ridedesk.config.settings import Settings
from ridedesk.utils.errors import NotFoundError

router = APIRouter()


@router.get("", response_model=TenantPublicConfig)
async def get_tenant_config(
    request: Request,
    tenant: str = Query(None),
    settings: Settings = Depends(get_settings),
):
    """
    Public tenant info for the browser. Only ``id`` and ``name``; unknown and
    malformed tenant ids get the same 404.
    """
    config = request.app.state.tenant_registry.load(tenant or settings.DEFAULT_TENANT_ID)
    if config is None:
        raise NotFoundError()
    return TenantPublicConfig(id=config.id, name=config.name)
