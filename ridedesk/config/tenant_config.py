import json
import os
import re
import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ridedesk.utils.errors import ConfigurationError
from ridedesk.utils.logging_config import app_logger as logger

TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

# Logical link fields per field group. Their wire value is always a list of record ids.
LINK_FIELDS: Dict[str, tuple] = {
    "workSchedule": ("CUSTOMER", "DRIVER", "VEHICLE_TYPE"),
    "drivers": (),
    "customers": (),
    "vehicles": ("VEHICLE_TYPE",),
}


class TenantTables(BaseModel):
    model_config = ConfigDict(frozen=True)

    WORK_SCHEDULE: str
    WORK_SCHEDULE_VIEW: str
    DRIVERS: str
    CUSTOMERS: str
    VEHICLES: str
    VEHICLE_TYPES: str


class _FieldGroup(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")


class WorkScheduleFields(_FieldGroup):
    DATE: Optional[str] = None
    CUSTOMER: Optional[str] = None
    PICKUP_TIME: Optional[str] = None
    DESCRIPTION: Optional[str] = None
    DROPOFF_TIME: Optional[str] = None
    VEHICLE_TYPE: Optional[str] = None
    DRIVER: Optional[str] = None
    VEHICLE_NUM: Optional[str] = None
    SENT: Optional[str] = None
    APPROVED: Optional[str] = None
    PRICE_CLIENT_EXCL: Optional[str] = None
    PRICE_CLIENT_INCL: Optional[str] = None
    PRICE_DRIVER_EXCL: Optional[str] = None
    PRICE_DRIVER_INCL: Optional[str] = None
    PROFIT: Optional[str] = None
    DRIVER_NOTES: Optional[str] = None
    MANAGER_NOTES: Optional[str] = None
    ORDER_NAME: Optional[str] = None
    MOBILE: Optional[str] = None
    ID_NUM: Optional[str] = None
    ORDER_FORM: Optional[str] = None
    ORDER_FORM_DATE: Optional[str] = None
    ORDER_FORM_ATTACHMENT: Optional[str] = None


class DriverFields(_FieldGroup):
    FIRST_NAME: Optional[str] = None
    LAST_NAME: Optional[str] = None
    PHONE: Optional[str] = None
    DRIVER_TYPE: Optional[str] = None
    CAR_NUMBER: Optional[str] = None
    STATUS: Optional[str] = None


class CustomerFields(_FieldGroup):
    NAME: Optional[str] = None
    HP: Optional[str] = None
    CONTACT_NAME: Optional[str] = None
    PHONE: Optional[str] = None
    EMAIL: Optional[str] = None
    PAYMENT_METHOD: Optional[str] = None
    ONGOING_PAYMENT: Optional[str] = None
    ACCOUNTING_KEY: Optional[str] = None
    CREATED_IN_ACCOUNTING: Optional[str] = None
    STATUS: Optional[str] = None


class VehicleFields(_FieldGroup):
    VEHICLE_TYPE: Optional[str] = None


class TenantFields(BaseModel):
    model_config = ConfigDict(frozen=True)

    workSchedule: WorkScheduleFields = WorkScheduleFields()
    drivers: DriverFields = DriverFields()
    customers: CustomerFields = CustomerFields()
    vehicles: VehicleFields = VehicleFields()


class TenantConfig(BaseModel):
    """Per-tenant backend connection and field-id mapping, loaded from one JSON file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    api_url: str = Field("", alias="apiUrl")
    base_id: str = Field("", alias="baseId")
    clerk_org_id: Optional[str] = Field(None, alias="clerkOrgId")
    tables: TenantTables
    fields: TenantFields = TenantFields()

    def field_id(self, group: str, name: str) -> str:
        """Resolve a logical field name to this tenant's backend field id."""
        field_group = getattr(self.fields, group, None)
        if field_group is None:
            raise ConfigurationError(details={"field": group})
        value = getattr(field_group, name, None)
        if not value:
            raise ConfigurationError(details={"field": f"{group}.{name}"})
        return value

    def link_field_ids(self) -> set:
        ids = set()
        for group, names in LINK_FIELDS.items():
            field_group = getattr(self.fields, group)
            for name in names:
                value = getattr(field_group, name, None)
                if value:
                    ids.add(value)
        return ids


class ConfigStore(Protocol):
    def read(self, tenant_id: str) -> Optional[dict]: ...

    def list_ids(self) -> List[str]: ...


class FileConfigStore:
    """One ``<tenant_id>.json`` file per tenant under a directory."""

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def read(self, tenant_id: str) -> Optional[dict]:
        path = self.directory / f"{tenant_id}.json"
        if not path.is_file():
            return None
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def list_ids(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))


class ConfigCache(Protocol):
    def get(self, key: str) -> Optional[TenantConfig]: ...

    def set(self, key: str, value: TenantConfig) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class InMemoryConfigCache:
    def __init__(self):
        self._items: Dict[str, TenantConfig] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[TenantConfig]:
        with self._lock:
            return self._items.get(key)

    def set(self, key: str, value: TenantConfig) -> None:
        with self._lock:
            self._items[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


class TenantRegistry:
    """Loads tenant configs lazily and caches them for the life of the process.

    Unknown, malformed and unreadable tenants all come back as ``None`` so that
    callers can answer with one generic not-found.
    """

    def __init__(self, store: ConfigStore, cache: Optional[ConfigCache] = None):
        self.store = store
        self.cache = cache if cache is not None else InMemoryConfigCache()

    def load(self, tenant_id: str) -> Optional[TenantConfig]:
        if not tenant_id or not TENANT_ID_PATTERN.match(tenant_id):
            return None

        cached = self.cache.get(tenant_id)
        if cached is not None:
            return cached

        try:
            raw = self.store.read(tenant_id)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read config for tenant '{tenant_id}': {e}")
            return None
        if raw is None:
            return None

        try:
            config = TenantConfig.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Invalid config for tenant '{tenant_id}': {e}")
            return None

        self.cache.set(tenant_id, config)
        logger.info(f"Loaded config for tenant '{tenant_id}'")
        return config

    def list_tenants(self) -> List[str]:
        try:
            return self.store.list_ids()
        except OSError as e:
            logger.error(f"Failed to list tenants: {e}")
            return []

    def invalidate(self, tenant_id: Optional[str] = None) -> None:
        """Drop one cached tenant, or all of them."""
        if tenant_id is None:
            self.cache.clear()
        else:
            self.cache.delete(tenant_id)


def credential_env_name(tenant_id: str) -> str:
    return "TEABLE_API_KEY_" + re.sub(r"[^A-Z0-9]", "_", tenant_id.upper())


class CredentialResolver:
    """Finds a tenant's backend API key in the environment.

    Looks up ``TEABLE_API_KEY_<TENANT>`` first, then the global ``TEABLE_API_KEY``
    and ``TEABLE_APP_TOKEN``. Returns an empty string when nothing is set; the
    gateway client refuses to make calls with it.
    """

    GLOBAL_KEYS = ("TEABLE_API_KEY", "TEABLE_APP_TOKEN")

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = environ if environ is not None else os.environ

    def resolve(self, tenant_id: str) -> str:
        specific = self.environ.get(credential_env_name(tenant_id))
        if specific:
            return specific
        for name in self.GLOBAL_KEYS:
            value = self.environ.get(name)
            if value:
                return value
        return ""
