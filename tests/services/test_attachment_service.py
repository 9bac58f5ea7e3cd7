import asyncio
import json

import httpx
import pytest

from ridedesk.services.attachment_service import AttachmentService, UploadedFile
from ridedesk.utils.errors import InputValidationError


def pdf(content=b"%PDF-1.4"):
    return UploadedFile(filename="order.pdf", content_type="application/pdf", content=content)


def test_resolve_table_id_only_accepts_own_tables(make_teable_client):
    client, _ = make_teable_client()
    service = AttachmentService(client)
    assert service.resolve_table_id("WORK_SCHEDULE") == "tblWorkacme"
    assert service.resolve_table_id("tblDriversacme") == "tblDriversacme"
    with pytest.raises(InputValidationError):
        service.resolve_table_id("tblWorkglobex")
    with pytest.raises(InputValidationError):
        service.resolve_table_id(None)


def test_resolve_field_id(make_teable_client):
    client, _ = make_teable_client()
    service = AttachmentService(client)
    assert service.resolve_field_id("ORDER_FORM_ATTACHMENT") == "fldOrderForm"
    assert service.resolve_field_id("fldSomething1") == "fldSomething1"
    for bad in ("MOBILE", "fld-bad", "", "x/../y"):
        with pytest.raises(InputValidationError):
            service.resolve_field_id(bad)


def test_upload_to_record_posts_multipart(make_teable_client):
    client, recorder = make_teable_client(
        lambda request: httpx.Response(200, json={"id": "recA", "fields": {}})
    )
    service = AttachmentService(client)

    asyncio.run(service.replace_order_form(pdf(), "recA"))

    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/table/tblWorkacme/record/recA/fldOrderForm/uploadAttachment"
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert b"order.pdf" in request.content


def test_upload_rejects_bad_record_id_and_file(make_teable_client):
    client, recorder = make_teable_client()
    service = AttachmentService(client)
    with pytest.raises(InputValidationError):
        asyncio.run(service.upload_to_record(pdf(), "WORK_SCHEDULE", "nope", "fldOrderForm"))
    with pytest.raises(InputValidationError):
        asyncio.run(
            service.upload_to_record(pdf(b""), "WORK_SCHEDULE", "recA", "fldOrderForm")
        )
    assert recorder.requests == []


def test_clear_attachment_patches_field_to_null(make_teable_client):
    client, recorder = make_teable_client(
        lambda request: httpx.Response(200, json={"records": [{"id": "recA"}]})
    )
    service = AttachmentService(client)

    asyncio.run(service.clear_attachment("recA"))

    body = json.loads(recorder.requests[0].content)
    assert body["records"] == [{"id": "recA", "fields": {"fldOrderForm": None}}]


def test_download_infers_generic_content_type(make_teable_client):
    def handler(request):
        if request.url.path == "/api/attachments/tok1/presignedUrl":
            return httpx.Response(200, json={"presignedUrl": "https://files.test/tok1"})
        return httpx.Response(
            200,
            content=b"png-bytes",
            headers={
                "content-type": "application/octet-stream",
                "content-disposition": 'attachment; filename="scan.png"',
            },
        )

    client, _ = make_teable_client(handler)
    download = asyncio.run(AttachmentService(client).download("tok1"))

    assert download.filename == "scan.png"
    assert download.content_type == "image/png"
    assert download.content == b"png-bytes"


def test_attachment_url_rejects_bad_token(make_teable_client):
    client, recorder = make_teable_client()
    with pytest.raises(InputValidationError):
        asyncio.run(AttachmentService(client).attachment_url("../secret"))
    assert recorder.requests == []
