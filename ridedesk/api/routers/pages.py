from html import escape

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from ridedesk.api.dependencies import get_identity, get_settings
from ridedesk.config.settings import Settings
from ridedesk.services.tenant_service import AccessDecision, route_identity_to_tenant

router = APIRouter()

_PAGE = """<!DOCTYPE html>
<html lang="he" dir="rtl">
<head><meta charset="utf-8"><title>{title}</title></head>
<body{attrs}>
{body}
</body>
</html>
"""


def _page(title: str, body: str, status_code: int = 200, **data: str) -> HTMLResponse:
    attrs = "".join(f' data-{key.replace("_", "-")}="{escape(value)}"' for key, value in data.items())
    return HTMLResponse(
        _PAGE.format(title=escape(title), attrs=attrs, body=body), status_code=status_code
    )


def not_found_page() -> HTMLResponse:
    return _page("Not found", "<h1>404</h1><p>Page not found.</p>", status_code=404)


def no_access_page() -> HTMLResponse:
    return _page(
        "No access",
        "<h1>No access</h1><p>Your account is not a member of this organization.</p>",
        status_code=403,
    )


@router.get("/", include_in_schema=False)
async def home(request: Request, settings: Settings = Depends(get_settings)):
    """Send a signed-in user to the first tenant their organizations give them."""
    identity = get_identity(request)
    if identity is None:
        return RedirectResponse(url="/sign-in", status_code=307)
    tenant_id = await route_identity_to_tenant(
        identity,
        request.app.state.tenant_registry,
        request.app.state.identity_provider,
        settings.DEFAULT_TENANT_ID,
    )
    return RedirectResponse(url=f"/{tenant_id}", status_code=307)


@router.get("/sign-in", include_in_schema=False)
async def sign_in():
    return _page("Sign in", '<div id="sign-in"></div>')


@router.get("/sign-up", include_in_schema=False)
async def sign_up():
    return _page("Sign up", '<div id="sign-up"></div>')


@router.get("/{tenant_id}", include_in_schema=False)
async def tenant_shell(tenant_id: str, request: Request):
    config = request.app.state.tenant_registry.load(tenant_id)
    if config is None:
        return not_found_page()

    decision = await request.app.state.authorization_gate.check(get_identity(request), config)
    if decision is AccessDecision.NOT_FOUND:
        return not_found_page()
    if decision is AccessDecision.NO_ACCESS:
        return no_access_page()

    return _page(
        config.name,
        f'<div id="app"><h1>{escape(config.name)}</h1></div>',
        tenant_id=config.id,
        tenant_name=config.name,
    )
