from pydantic import BaseModel


class TenantPublicConfig(BaseModel):
    """The only slice of a tenant config exposed to the browser: no table or field ids."""

    id: str
    name: str
