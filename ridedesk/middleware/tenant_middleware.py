from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ridedesk.services.tenant_service import TENANT_HEADER, resolve_tenant_id

_TENANT_HEADER_BYTES = TENANT_HEADER.encode("latin-1")


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Attaches the resolved tenant id to every request.

    The ``x-tenant-id`` header is only ever written here: any value sent by the
    caller is dropped before the resolved one is set. If this middleware has
    already run for the request, its earlier result is reused.
    """

    def __init__(self, app, default_tenant_id: str):
        super().__init__(app)
        self.default_tenant_id = default_tenant_id

    async def dispatch(self, request: Request, call_next):
        tenant_id = getattr(request.state, "tenant_id", None)
        if not tenant_id:
            tenant_id = resolve_tenant_id(
                request.url.path,
                request.query_params,
                request.headers,
                self.default_tenant_id,
            )
            request.state.tenant_id = tenant_id

        headers = [
            (name, value)
            for name, value in request.scope["headers"]
            if name.lower() != _TENANT_HEADER_BYTES
        ]
        headers.append((_TENANT_HEADER_BYTES, tenant_id.encode("utf-8")))
        request.scope["headers"] = headers

        return await call_next(request)
