import json

import httpx

from ridedesk.services.rate_limiter import RateLimiter


def rides_handler(request):
    if request.method == "GET":
        return httpx.Response(
            200, json={"records": [{"id": "rec1", "fields": {"fldDescription": "Airport"}}]}
        )
    if not request.content:
        return httpx.Response(200, json={})
    body = json.loads(request.content)
    return httpx.Response(200, json={"records": [{"id": "recNew", **body["records"][0]}]})


def test_health(make_client):
    client, _ = make_client()
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "ridedesk"}


def test_tenant_config_exposes_only_id_and_name(make_client):
    client, recorder = make_client()
    response = client.get("/api/tenant-config?tenant=globex")
    assert response.status_code == 200
    assert response.json() == {"id": "globex", "name": "Globex"}
    assert recorder.requests == []


def test_tenant_config_defaults_and_not_found(make_client):
    client, _ = make_client()
    assert client.get("/api/tenant-config").json() == {"id": "acme", "name": "Acme Rides"}

    for tenant in ("missing", "..%2Fetc"):
        response = client.get(f"/api/tenant-config?tenant={tenant}")
        assert response.status_code == 404
        assert response.json() == {"error": "Not found", "details": None}


def test_work_schedule_list_for_one_day(make_client):
    client, recorder = make_client(rides_handler)

    response = client.get("/api/work-schedule?date=2024-05-01")

    assert response.status_code == 200
    data = response.json()
    assert data["records"][0]["id"] == "rec1"
    assert data["truncated"] is False
    request = recorder.requests[0]
    assert request.url.path == "/api/table/tblWorkacme/record"
    assert request.headers["authorization"] == "Bearer global-key"
    flt = json.loads(request.url.params["filter"])
    assert [f["operator"] for f in flt["filterSet"]] == ["isOnOrAfter", "isOnOrBefore"]
    assert flt["filterSet"][0]["value"]["exactDate"] == "2024-05-01"


def test_work_schedule_single_page_has_cursor(make_client):
    def handler(request):
        return httpx.Response(200, json={"records": [{"id": "rec1"}, {"id": "rec2"}]})

    client, recorder = make_client(handler)
    data = client.get("/api/work-schedule?take=2&skip=4").json()

    assert data["nextCursor"] == 6
    assert recorder.requests[0].url.params["take"] == "2"
    assert recorder.requests[0].url.params["skip"] == "4"


def test_work_schedule_bad_date_is_400(make_client):
    client, recorder = make_client()
    response = client.get("/api/work-schedule?date=05/01/2024")
    assert response.status_code == 400
    assert response.json()["details"] == {"field": "date"}
    assert recorder.requests == []


def test_backend_failure_passes_status_through(make_client):
    client, _ = make_client(lambda request: httpx.Response(502, json={"message": "bad gateway"}))

    response = client.get("/api/work-schedule")

    assert response.status_code == 502
    assert response.json() == {"error": "Failed", "details": {"message": "bad gateway"}}


def test_backend_timeout_is_504(make_client):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    client, _ = make_client(handler)
    assert client.get("/api/drivers").status_code == 504


def test_create_ride_sends_link_arrays(make_client):
    client, recorder = make_client(rides_handler)

    response = client.post(
        "/api/work-schedule",
        json={"fields": {"DRIVER": "recDriver1", "CUSTOMER": None, "PRICE_CLIENT_INCL": "150"}},
    )

    assert response.status_code == 200
    assert response.json()["id"] == "recNew"
    body = recorder.json_bodies()[0]
    assert body["typecast"] is True
    assert body["records"][0]["fields"] == {
        "fldDriver": ["recDriver1"],
        "fldCustomer": None,
        "fldPrice": "150",
    }


def test_update_and_delete_ride(make_client):
    client, recorder = make_client(rides_handler)

    assert client.patch("/api/work-schedule/recA", json={"fields": {"PRICE_CLIENT_INCL": "90"}}).status_code == 200
    assert client.patch("/api/work-schedule", json={"recordId": "recB", "fields": {}}).status_code == 200
    response = client.delete("/api/work-schedule?id=recC")
    assert response.json() == {"success": True, "deletedId": "recC"}
    assert recorder.requests[-1].url.path == "/api/table/tblWorkacme/record/recC"


def test_delete_without_id_is_400(make_client):
    client, _ = make_client()
    response = client.delete("/api/work-schedule")
    assert response.status_code == 400
    assert response.json()["error"] == "Missing ID"


def test_bad_record_id_never_reaches_backend(make_client):
    client, recorder = make_client()
    response = client.patch("/api/customers/not-a-record", json={"fields": {}})
    assert response.status_code == 400
    assert recorder.requests == []


def test_numeric_link_value_is_400_naming_field(make_client):
    client, recorder = make_client()
    response = client.post("/api/work-schedule", json={"fields": {"DRIVER": 5}})
    assert response.status_code == 400
    assert response.json()["details"] == {"field": "fldDriver"}
    assert recorder.requests == []


def test_unknown_logical_field_is_400(make_client):
    client, recorder = make_client()
    response = client.post("/api/work-schedule", json={"fields": {"DROPOFF_TIME": "10:00"}})
    assert response.status_code == 400
    assert response.json() == {"error": "Unknown field DROPOFF_TIME", "details": {"field": "DROPOFF_TIME"}}
    assert recorder.requests == []


def test_spoofed_tenant_header_is_ignored(make_client):
    client, recorder = make_client(rides_handler)

    client.get("/api/work-schedule", headers={"x-tenant-id": "globex"})

    assert recorder.requests[0].url.path == "/api/table/tblWorkacme/record"


def test_tenant_query_param_and_referer(make_client):
    client, recorder = make_client(rides_handler)

    client.get("/api/drivers?tenant=globex")
    client.get("/api/drivers", headers={"referer": "http://testserver/globex/drivers"})

    assert [r.url.path for r in recorder.requests] == [
        "/api/table/tblDriversglobex/record",
        "/api/table/tblDriversglobex/record",
    ]


def test_unknown_tenant_api_call_is_404(make_client):
    client, recorder = make_client()
    response = client.get("/api/customers?tenant=nobody")
    assert response.status_code == 404
    assert recorder.requests == []


def test_customer_count_and_fields(make_client):
    def handler(request):
        if request.url.path.endswith("/field"):
            return httpx.Response(
                200,
                json=[
                    {"id": "fldCustomerName", "name": "Name"},
                    {"id": "fldCustomerStatus", "name": "Status"},
                ],
            )
        return httpx.Response(200, json={"records": [{"id": "rec1"}], "total": 17})

    client, _ = make_client(handler)

    assert client.get("/api/customers/count").json() == {"total": 17}
    fields = client.get("/api/customers/fields").json()
    assert fields["statusFieldId"] == "fldCustomerStatus"
    assert fields["statusFieldName"] == "Status"
    assert len(fields["allFields"]) == 2


def test_vehicle_types_listing(make_client):
    client, recorder = make_client(rides_handler)
    assert client.get("/api/vehicle-types").status_code == 200
    assert recorder.requests[0].url.path == "/api/table/tblTypesacme/record"


def test_bulk_create_with_duplicate_check(make_client):
    def handler(request):
        if request.method == "GET":
            return httpx.Response(
                200,
                json={
                    "records": [
                        {
                            "id": "recOld",
                            "fields": {
                                "fldDate": "2024-05-01",
                                "fldDescription": "Airport",
                                "fldPickup": "08:00",
                            },
                        }
                    ]
                },
            )
        return httpx.Response(200, json={"records": [{"id": "recNew"}]})

    client, _ = make_client(handler)
    response = client.post(
        "/api/work-schedule/bulk/create",
        json={
            "checkDuplicates": True,
            "records": [
                {"DATE": "2024-05-01", "DESCRIPTION": "Airport", "PICKUP_TIME": "08:00"},
                {"DATE": "2024-05-01", "DESCRIPTION": "Hotel", "PICKUP_TIME": "09:00"},
            ],
        },
    )

    data = response.json()
    assert response.status_code == 200
    assert data["succeeded"] == 1
    assert data["skipped"] == 1
    assert data["ids"] == ["recNew"]
    assert data["message"] == "1 succeeded, 0 failed, 1 skipped"


def test_bulk_delete_reports_failures(make_client):
    def handler(request):
        if request.url.path.endswith("recB"):
            return httpx.Response(404, json={"message": "not found"})
        return httpx.Response(200, json={})

    client, _ = make_client(handler)
    data = client.post(
        "/api/work-schedule/bulk/delete", json={"recordIds": ["recA", "recB"]}
    ).json()

    assert data["succeeded"] == 1
    assert data["failed"] == 1
    assert data["errors"][0]["key"] == "recB"
    assert data["errors"][0]["statusCode"] == 404


def test_rate_limit_returns_429_with_retry_after(make_client):
    client, _ = make_client(rate_limiter=RateLimiter(2, 60))
    headers = {"x-forwarded-for": "203.0.113.9"}

    first = client.get("/api/tenant-config", headers=headers)
    client.get("/api/tenant-config", headers=headers)
    third = client.get("/api/tenant-config", headers=headers)

    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert third.status_code == 429
    assert third.json()["error"] == "Too many requests"
    assert 1 <= int(third.headers["Retry-After"]) <= 60
    assert third.headers["X-RateLimit-Remaining"] == "0"
    assert client.get("/health").status_code == 200


def test_api_session_can_be_required(make_client):
    client, recorder = make_client(REQUIRE_API_SESSION=True)

    response = client.get("/api/drivers")
    assert response.status_code == 401
    assert recorder.requests == []
    assert client.get("/api/tenant-config").status_code == 200

    client.cookies.set("__session", "user_1")
    assert client.get("/api/drivers").status_code == 200
