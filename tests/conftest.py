import json
import os
import sys

# Ensure project root is on sys.path so tests can import the `ridedesk` package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

os.environ.setdefault("ENV", "test")
os.environ.setdefault("TEABLE_API_URL", "https://teable.test")

import httpx
import pytest

from ridedesk.config.settings import Settings
from ridedesk.config.tenant_config import (
    CredentialResolver,
    FileConfigStore,
    TenantConfig,
    TenantRegistry,
)
from ridedesk.services.identity_service import Identity
from ridedesk.services.teable_client import TeableClient

API_URL = "https://teable.test"


def tenant_payload(tenant_id="acme", name="Acme Rides", clerk_org_id=None):
    return {
        "id": tenant_id,
        "name": name,
        "apiUrl": API_URL,
        "baseId": f"bse{tenant_id}",
        "clerkOrgId": clerk_org_id,
        "tables": {
            "WORK_SCHEDULE": f"tblWork{tenant_id}",
            "WORK_SCHEDULE_VIEW": f"tblView{tenant_id}",
            "DRIVERS": f"tblDrivers{tenant_id}",
            "CUSTOMERS": f"tblCustomers{tenant_id}",
            "VEHICLES": f"tblVehicles{tenant_id}",
            "VEHICLE_TYPES": f"tblTypes{tenant_id}",
        },
        "fields": {
            "workSchedule": {
                "DATE": "fldDate",
                "CUSTOMER": "fldCustomer",
                "PICKUP_TIME": "fldPickup",
                "DESCRIPTION": "fldDescription",
                "VEHICLE_TYPE": "fldVehicleType",
                "DRIVER": "fldDriver",
                "PRICE_CLIENT_INCL": "fldPrice",
                "ORDER_FORM_ATTACHMENT": "fldOrderForm",
            },
            "drivers": {"FIRST_NAME": "fldFirstName", "STATUS": "fldDriverStatus"},
            "customers": {"NAME": "fldCustomerName", "STATUS": "fldCustomerStatus"},
            "vehicles": {"VEHICLE_TYPE": "fldVehVehicleType"},
        },
    }


class RecordingTransport:
    """httpx.MockTransport wrapper that keeps every request it was sent."""

    def __init__(self, handler=None):
        self.requests = []
        self.handler = handler or (lambda request: httpx.Response(200, json={"records": []}))
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request):
        self.requests.append(request)
        return self.handler(request)

    def json_bodies(self):
        return [json.loads(r.content) for r in self.requests if r.content]


class FakeIdentityProvider:
    """Session cookie value is the user id; memberships come from a dict."""

    def __init__(self, memberships=None, fail=False):
        self.memberships = memberships or {}
        self.fail = fail
        self.lookups = 0

    def get_session_identity(self, headers, cookies):
        user_id = cookies.get("__session")
        if not user_id:
            return None
        return Identity(user_id=user_id, claims={"sub": user_id})

    async def get_organization_ids(self, user_id):
        self.lookups += 1
        if self.fail:
            raise RuntimeError("identity provider unavailable")
        return list(self.memberships.get(user_id, []))


@pytest.fixture
def tenant_dir(tmp_path):
    directory = tmp_path / "tenants"
    directory.mkdir()
    (directory / "acme.json").write_text(json.dumps(tenant_payload("acme")))
    (directory / "globex.json").write_text(
        json.dumps(tenant_payload("globex", name="Globex", clerk_org_id="org_globex"))
    )
    return directory


@pytest.fixture
def registry(tenant_dir):
    return TenantRegistry(FileConfigStore(str(tenant_dir)))


@pytest.fixture
def acme_config():
    return TenantConfig.model_validate(tenant_payload("acme"))


@pytest.fixture
def make_teable_client(acme_config):
    def factory(handler=None, credential="secret-key", config=None):
        recorder = RecordingTransport(handler)
        client = TeableClient(
            config or acme_config, credential, timeout=5, transport=recorder.transport
        )
        return client, recorder

    return factory


@pytest.fixture
def make_test_settings(tenant_dir):
    def factory(**overrides):
        values = {
            "TENANT_CONFIG_DIR": str(tenant_dir),
            "DEFAULT_TENANT_ID": "acme",
            "TEABLE_API_URL": API_URL,
            "REQUIRE_API_SESSION": False,
            "ON_MEMBERSHIP_CHECK_ERROR": "allow",
        }
        values.update(overrides)
        return Settings(**values)

    return factory


@pytest.fixture
def credentials():
    return CredentialResolver({"TEABLE_API_KEY": "global-key"})


@pytest.fixture
def make_client(make_test_settings, registry, credentials):
    """Build a TestClient over a fully wired app with faked collaborators."""
    from fastapi.testclient import TestClient

    from ridedesk.app_factory import create_app
    from ridedesk.services.rate_limiter import RateLimiter

    def factory(handler=None, identity_provider=None, rate_limiter=None, **settings_overrides):
        recorder = RecordingTransport(handler)
        app = create_app(
            settings=make_test_settings(**settings_overrides),
            registry=registry,
            credential_resolver=credentials,
            identity_provider=identity_provider or FakeIdentityProvider(),
            rate_limiter=rate_limiter or RateLimiter(1000, 60),
            teable_transport=recorder.transport,
        )
        return TestClient(app, follow_redirects=False), recorder

    return factory
