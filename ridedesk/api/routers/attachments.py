from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response

from ridedesk.api.dependencies import get_teable_client
from ridedesk.api.schemas.attachment_schemas import (
    AttachmentClearRequest,
    AttachmentResponse,
    AttachmentUrlResponse,
    RecordIdRequest,
    UploadResult,
)
from ridedesk.services.attachment_service import AttachmentService, UploadedFile
from ridedesk.services.teable_client import TeableClient
from ridedesk.utils.logging_config import app_logger as logger

router = APIRouter()


def get_attachment_service(client: TeableClient = Depends(get_teable_client)) -> AttachmentService:
    return AttachmentService(client)


async def _read_upload(file: UploadFile) -> UploadedFile:
    content = await file.read()
    return UploadedFile(
        filename=file.filename or "file",
        content_type=file.content_type,
        content=content,
    )


@router.post("/upload-attachment", response_model=AttachmentResponse)
async def upload_attachment(
    file: UploadFile = File(...),
    service: AttachmentService = Depends(get_attachment_service),
):
    """Upload through the signed-storage flow. The result can then be written into any attachment field."""
    upload = await _read_upload(file)
    return AttachmentResponse(**await service.upload_via_signature(upload))


@router.post("/upload-to-record", response_model=UploadResult)
async def upload_to_record(
    file: UploadFile = File(...),
    table_id: str = Form(..., alias="tableId"),
    record_id: str = Form(..., alias="recordId"),
    field_id: str = Form(..., alias="fieldId"),
    service: AttachmentService = Depends(get_attachment_service),
):
    upload = await _read_upload(file)
    data = await service.upload_to_record(upload, table_id, record_id, field_id)
    return UploadResult(data=data)


@router.post("/simple-upload", response_model=UploadResult)
async def simple_upload(
    file: UploadFile = File(...),
    record_id: str = Form(..., alias="recordId"),
    field_id: str = Form("ORDER_FORM_ATTACHMENT", alias="fieldId"),
    table_id: str = Form("WORK_SCHEDULE", alias="tableId"),
    service: AttachmentService = Depends(get_attachment_service),
):
    upload = await _read_upload(file)
    data = await service.upload_to_record(upload, table_id, record_id, field_id)
    return UploadResult(data=data)


@router.post("/replace-file", response_model=UploadResult)
async def replace_file(
    file: UploadFile = File(...),
    record_id: str = Form(..., alias="recordId"),
    service: AttachmentService = Depends(get_attachment_service),
):
    upload = await _read_upload(file)
    data = await service.replace_order_form(upload, record_id)
    return UploadResult(data=data)


@router.post("/delete-file", response_model=UploadResult)
async def delete_file(
    body: RecordIdRequest, service: AttachmentService = Depends(get_attachment_service)
):
    record = await service.clear_attachment(body.record_id)
    return UploadResult(data=record)


@router.post("/delete-attachment", response_model=UploadResult)
async def delete_attachment(
    body: AttachmentClearRequest, service: AttachmentService = Depends(get_attachment_service)
):
    record = await service.clear_attachment(
        body.record_id,
        table=body.table_id or "WORK_SCHEDULE",
        field=body.field_id or "ORDER_FORM_ATTACHMENT",
    )
    return UploadResult(data=record)


@router.post("/simple-delete", response_model=UploadResult)
async def simple_delete(
    body: RecordIdRequest, service: AttachmentService = Depends(get_attachment_service)
):
    # Records opened from the schedule view are cleared through the view's table id
    record = await service.clear_attachment(body.record_id, table="WORK_SCHEDULE_VIEW")
    return UploadResult(data=record)


@router.get("/attachment-url", response_model=AttachmentUrlResponse)
async def attachment_url(
    token: Optional[str] = Query(None),
    service: AttachmentService = Depends(get_attachment_service),
):
    return AttachmentUrlResponse(url=await service.attachment_url(token))


@router.get("/view-file")
async def view_file(
    token: Optional[str] = Query(None),
    service: AttachmentService = Depends(get_attachment_service),
):
    download = await service.download(token)
    logger.info(f"Serving file {download.filename} ({download.content_type})")
    return Response(
        content=download.content,
        media_type=download.content_type,
        headers={
            "Content-Disposition": f"inline; filename*=UTF-8''{quote(download.filename)}",
            "X-Content-Type-Options": "nosniff",
            "Cache-Control": "public, max-age=3600",
        },
    )
