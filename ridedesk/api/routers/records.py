"""Helpers shared by the per-resource record routers."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from ridedesk.api.dependencies import record_service_for
from ridedesk.api.schemas.record_schemas import (
    BatchItemErrorSchema,
    BatchResponse,
    DeleteResponse,
    RecordFieldsRequest,
    RecordListResponse,
    RecordMutationResponse,
    RecordUpdateRequest,
)
from ridedesk.services.record_service import ListingResult, RecordService
from ridedesk.services.request_queue import BatchResult
from ridedesk.utils.logging_config import app_logger as logger


def mutation_response(record: Optional[Dict[str, Any]]) -> RecordMutationResponse:
    return RecordMutationResponse(id=(record or {}).get("id"), record=record)


def listing_response(listing: ListingResult) -> RecordListResponse:
    return RecordListResponse(
        records=listing.records,
        total=len(listing.records),
        truncated=listing.truncated,
        next_cursor=None,
    )


def page_response(page: Dict[str, Any], take: int, skip: int) -> RecordListResponse:
    records = page.get("records") or []
    next_cursor = skip + len(records) if len(records) >= take else None
    total = page.get("total")
    return RecordListResponse(
        records=records,
        total=total if isinstance(total, int) else None,
        next_cursor=next_cursor,
    )


def batch_response(result: BatchResult) -> BatchResponse:
    return BatchResponse(
        total=result.total,
        succeeded=result.succeeded,
        failed=result.failed,
        skipped=result.skipped,
        cancelled=result.cancelled,
        message=result.summary(),
        ids=[r["id"] for r in result.results if isinstance(r, dict) and r.get("id")],
        errors=[
            BatchItemErrorSchema(
                index=e.index, key=e.key, error=e.error, status_code=e.status_code
            )
            for e in result.errors
        ],
    )


def progress_logger(operation: str, tenant_id: str):
    def on_progress(done: int, total: int) -> None:
        logger.info(f"{operation} tenant={tenant_id}: {done}/{total}")

    return on_progress


def build_record_router(resource_name: str) -> APIRouter:
    """List / create / update / delete routes for a plain record resource."""
    router = APIRouter()
    service_dependency = record_service_for(resource_name)

    @router.get("", response_model=RecordListResponse)
    async def list_records(service: RecordService = Depends(service_dependency)):
        listing = await service.fetch_all()
        return listing_response(listing)

    @router.post("", response_model=RecordMutationResponse)
    async def create_record(
        body: RecordFieldsRequest, service: RecordService = Depends(service_dependency)
    ):
        return mutation_response(await service.create(body.fields))

    @router.patch("", response_model=RecordMutationResponse)
    async def update_record_by_body(
        body: RecordUpdateRequest, service: RecordService = Depends(service_dependency)
    ):
        return mutation_response(await service.update(body.record_id, body.fields))

    @router.patch("/{record_id}", response_model=RecordMutationResponse)
    async def update_record(
        record_id: str,
        body: RecordFieldsRequest,
        service: RecordService = Depends(service_dependency),
    ):
        return mutation_response(await service.update(record_id, body.fields))

    @router.delete("/{record_id}", response_model=DeleteResponse)
    async def delete_record(record_id: str, service: RecordService = Depends(service_dependency)):
        await service.delete(record_id)
        return DeleteResponse(deleted_id=record_id)

    return router
