import asyncio
import json

import httpx
import pytest

from ridedesk.services.teable_client import (
    first_record,
    normalize_link_value,
    normalize_records,
)
from ridedesk.utils.errors import (
    InputValidationError,
    InternalError,
    MissingCredentialError,
    UpstreamError,
    UpstreamTimeoutError,
)


def test_normalize_records_envelopes():
    assert normalize_records({"records": [{"id": "rec1"}, {"id": "rec2"}]}) == [
        {"id": "rec1"},
        {"id": "rec2"},
    ]
    assert normalize_records({"record": {"id": "rec1"}}) == [{"id": "rec1"}]
    assert normalize_records({"id": "rec1", "fields": {}}) == [{"id": "rec1", "fields": {}}]
    assert normalize_records({"ok": True}) == []
    assert normalize_records(None) == []
    assert first_record({"records": []}) is None


@pytest.mark.parametrize(
    "value, expected",
    [
        ("recA", ["recA"]),
        (["recA", "recB"], ["recA", "recB"]),
        ({"id": "recA", "title": "x"}, ["recA"]),
        ([{"id": "recA"}], ["recA"]),
        ("", None),
        ([], None),
        (None, None),
    ],
)
def test_normalize_link_value(value, expected):
    assert normalize_link_value(value) == expected


def test_normalize_link_value_rejects_numbers():
    with pytest.raises(ValueError):
        normalize_link_value(42)


def test_create_sends_typecast_and_link_arrays(make_teable_client):
    client, recorder = make_teable_client(
        lambda request: httpx.Response(200, json={"records": [{"id": "recNew", "fields": {}}]})
    )

    record = asyncio.run(
        client.create_record(
            "tblWorkacme",
            {"fldDriver": "recDriver1", "fldCustomer": "", "fldPrice": "120"},
        )
    )

    assert record == {"id": "recNew", "fields": {}}
    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/table/tblWorkacme/record"
    assert request.headers["authorization"] == "Bearer secret-key"
    body = json.loads(request.content)
    assert body["typecast"] is True
    assert body["fieldKeyType"] == "id"
    assert body["records"][0]["fields"] == {
        "fldDriver": ["recDriver1"],
        "fldCustomer": None,
        "fldPrice": "120",
    }


def test_update_accepts_bare_record_envelope(make_teable_client):
    client, recorder = make_teable_client(
        lambda request: httpx.Response(200, json={"id": "recA", "fields": {"fldPrice": 10}})
    )

    record = asyncio.run(client.update_record("tblWorkacme", "recA", {"fldPrice": "10"}))

    assert record["id"] == "recA"
    body = json.loads(recorder.requests[0].content)
    assert recorder.requests[0].method == "PATCH"
    assert body["typecast"] is True
    assert body["records"] == [{"id": "recA", "fields": {"fldPrice": "10"}}]


def test_list_records_query(make_teable_client):
    client, recorder = make_teable_client()

    asyncio.run(client.list_records("tblWorkacme", take=50, skip=100, filter={"a": 1}))

    params = recorder.requests[0].url.params
    assert params["fieldKeyType"] == "id"
    assert params["take"] == "50"
    assert params["skip"] == "100"
    assert json.loads(params["filter"]) == {"a": 1}


def test_non_success_raises_upstream_error_with_status_and_body(make_teable_client):
    client, _ = make_teable_client(
        lambda request: httpx.Response(422, json={"message": "bad field"})
    )

    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(client.delete_record("tblWorkacme", "recA"))

    assert exc_info.value.status_code == 422
    assert exc_info.value.details == {"message": "bad field"}


def test_timeout_is_a_distinct_error(make_teable_client):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client, _ = make_teable_client(handler)
    with pytest.raises(UpstreamTimeoutError):
        asyncio.run(client.list_records("tblWorkacme"))


def test_connection_failure_is_internal(make_teable_client):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client, _ = make_teable_client(handler)
    with pytest.raises(InternalError):
        asyncio.run(client.list_records("tblWorkacme"))


def test_missing_credential_fails_before_any_call(make_teable_client):
    client, recorder = make_teable_client(credential="")
    with pytest.raises(MissingCredentialError):
        asyncio.run(client.list_records("tblWorkacme"))
    assert recorder.requests == []


def test_repr_hides_credential(make_teable_client):
    client, _ = make_teable_client(credential="super-secret")
    assert "super-secret" not in repr(client)


def test_upload_signature_flow(make_teable_client):
    def handler(request):
        if request.url.path == "/api/attachments/signature":
            return httpx.Response(
                200,
                json={
                    "url": "https://storage.test/put",
                    "uploadMethod": "PUT",
                    "token": "tok123",
                    "requestHeaders": {"Content-Type": "application/pdf", "Content-Length": "3"},
                },
            )
        if request.url.host == "storage.test":
            return httpx.Response(200)
        if request.url.path == "/api/attachments/notify/tok123":
            return httpx.Response(200, json={"token": "tok123", "size": 3, "mimetype": "application/pdf"})
        return httpx.Response(404)

    client, recorder = make_teable_client(handler)

    async def flow():
        signature = await client.get_upload_signature("application/pdf", 3)
        await client.upload_to_storage(signature, b"abc")
        return await client.notify_upload(signature["token"], "form.pdf")

    attachment = asyncio.run(flow())

    assert attachment["token"] == "tok123"
    signature_body = json.loads(recorder.requests[0].content)
    assert signature_body == {
        "contentType": "application/pdf",
        "contentLength": 3,
        "type": 1,
        "baseId": "bseacme",
    }
    storage_request = recorder.requests[1]
    assert storage_request.method == "PUT"
    assert "authorization" not in storage_request.headers
    assert recorder.requests[2].url.params["filename"] == "form.pdf"


@pytest.mark.parametrize("value", [5, 2.5, True])
def test_scalar_link_value_is_a_validation_error(make_teable_client, value):
    client, recorder = make_teable_client()

    with pytest.raises(InputValidationError) as exc_info:
        asyncio.run(client.create_record("tblWorkacme", {"fldDriver": value}))

    assert exc_info.value.status_code == 400
    assert exc_info.value.details == {"field": "fldDriver"}
    assert recorder.requests == []


def test_configuration_errors_keep_tenant_details_out_of_message(make_teable_client, acme_config):
    client, _ = make_teable_client(credential="")
    with pytest.raises(MissingCredentialError) as exc_info:
        asyncio.run(client.list_records("tblWorkacme"))
    assert exc_info.value.message == MissingCredentialError.default_message
    assert "acme" not in exc_info.value.message

    no_url = acme_config.model_copy(update={"api_url": ""})
    client, _ = make_teable_client(config=no_url)
    with pytest.raises(InternalError) as exc_info:
        asyncio.run(client.list_records("tblWorkacme"))
    assert exc_info.value.message == InternalError.default_message
