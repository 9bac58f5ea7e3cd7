from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ridedesk.api.dependencies import get_settings, record_service_for
from ridedesk.api.routers.records import (
    batch_response,
    listing_response,
    mutation_response,
    page_response,
    progress_logger,
)
from ridedesk.api.schemas.record_schemas import (
    BatchResponse,
    BulkCreateRequest,
    BulkDeleteRequest,
    BulkUpdateRequest,
    DeleteResponse,
    RecordFieldsRequest,
    RecordListResponse,
    RecordMutationResponse,
    RecordUpdateRequest,
)
from ridedesk.config.settings import Settings
from ridedesk.services.record_service import RecordService, SameRideDuplicateCheck
from ridedesk.services.request_queue import RequestQueue
from ridedesk.utils.cancellation import cancel_on_disconnect
from ridedesk.utils.date_utils import parse_iso_date
from ridedesk.utils.errors import InputValidationError

router = APIRouter()

work_schedule_service = record_service_for("work-schedule")


@router.get("", response_model=RecordListResponse)
async def list_rides(
    request: Request,
    date: Optional[str] = Query(None, description="Exact day, YYYY-MM-DD"),
    take: Optional[int] = Query(None, ge=1, le=1000),
    skip: Optional[int] = Query(None, ge=0),
    service: RecordService = Depends(work_schedule_service),
):
    """
    List rides, optionally for one exact day.

    With ``take``/``skip`` a single page is returned along with ``nextCursor``;
    without them all pages are fetched up to the configured page ceiling.
    """
    day = parse_iso_date(date) if date else None
    if take is not None or skip is not None:
        take = take or service.page_size
        skip = skip or 0
        page = await service.list_page(take=take, skip=skip, day=day)
        return page_response(page, take, skip)

    async with cancel_on_disconnect(request) as cancel_token:
        listing = await service.fetch_all(day=day, cancel_token=cancel_token)
    return listing_response(listing)


@router.post("", response_model=RecordMutationResponse)
async def create_ride(
    body: RecordFieldsRequest, service: RecordService = Depends(work_schedule_service)
):
    record = await service.create(body.fields)
    return mutation_response(record)


@router.patch("", response_model=RecordMutationResponse)
async def update_ride_by_body(
    body: RecordUpdateRequest, service: RecordService = Depends(work_schedule_service)
):
    record = await service.update(body.record_id, body.fields)
    return mutation_response(record)


@router.delete("", response_model=DeleteResponse)
async def delete_ride_by_query(
    id: Optional[str] = Query(None), service: RecordService = Depends(work_schedule_service)
):
    if not id:
        raise InputValidationError("Missing ID", field="id")
    await service.delete(id)
    return DeleteResponse(deleted_id=id)


@router.patch("/{record_id}", response_model=RecordMutationResponse)
async def update_ride(
    record_id: str,
    body: RecordFieldsRequest,
    service: RecordService = Depends(work_schedule_service),
):
    record = await service.update(record_id, body.fields)
    return mutation_response(record)


@router.delete("/{record_id}", response_model=DeleteResponse)
async def delete_ride(record_id: str, service: RecordService = Depends(work_schedule_service)):
    await service.delete(record_id)
    return DeleteResponse(deleted_id=record_id)


@router.post("/bulk/update", response_model=BatchResponse)
async def bulk_update_rides(
    request: Request,
    body: BulkUpdateRequest,
    service: RecordService = Depends(work_schedule_service),
    settings: Settings = Depends(get_settings),
):
    """Apply the same field values to many rides. Partial success is reported, not rolled back."""
    async with cancel_on_disconnect(request) as cancel_token:
        result = await service.bulk_update(
            body.record_ids,
            body.fields,
            RequestQueue(settings.REQUEST_QUEUE_CONCURRENCY),
            on_progress=progress_logger("bulk update", service.config.id),
            cancel_token=cancel_token,
        )
    return batch_response(result)


@router.post("/bulk/delete", response_model=BatchResponse)
async def bulk_delete_rides(
    request: Request,
    body: BulkDeleteRequest,
    service: RecordService = Depends(work_schedule_service),
    settings: Settings = Depends(get_settings),
):
    async with cancel_on_disconnect(request) as cancel_token:
        result = await service.bulk_delete(
            body.record_ids,
            RequestQueue(settings.REQUEST_QUEUE_CONCURRENCY),
            on_progress=progress_logger("bulk delete", service.config.id),
            cancel_token=cancel_token,
        )
    return batch_response(result)


@router.post("/bulk/create", response_model=BatchResponse)
async def bulk_create_rides(
    request: Request,
    body: BulkCreateRequest,
    service: RecordService = Depends(work_schedule_service),
    settings: Settings = Depends(get_settings),
):
    """
    Create many rides (auto-assign / duplicate). Not idempotent: resubmitting a
    partly failed batch creates duplicates unless ``checkDuplicates`` is set, and
    even then the check only sees rides that existed when the batch started.
    """
    async with cancel_on_disconnect(request) as cancel_token:
        duplicate_check = None
        if body.check_duplicates:
            date_field = service.config.field_id("workSchedule", "DATE")
            translated = [service.translate_fields(f) for f in body.records]
            days = [
                parse_iso_date(str(f[date_field])[:10], field="records.DATE")
                for f in translated
                if f.get(date_field)
            ]
            existing = await service.existing_rides_for(days, cancel_token=cancel_token)
            duplicate_check = SameRideDuplicateCheck(service.config, existing)

        result = await service.bulk_create(
            body.records,
            RequestQueue(settings.REQUEST_QUEUE_CONCURRENCY),
            duplicate_check=duplicate_check,
            on_progress=progress_logger("bulk create", service.config.id),
            cancel_token=cancel_token,
        )
    return batch_response(result)

