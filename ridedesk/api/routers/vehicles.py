from fastapi import APIRouter, Depends

from ridedesk.api.dependencies import record_service_for
from ridedesk.api.routers.records import build_record_router, listing_response
from ridedesk.api.schemas.record_schemas import RecordListResponse
from ridedesk.services.record_service import RecordService

router = build_record_router("vehicles")

vehicle_types_router = APIRouter()


@vehicle_types_router.get("", response_model=RecordListResponse)
async def list_vehicle_types(
    service: RecordService = Depends(record_service_for("vehicle-types")),
):
    listing = await service.fetch_all()
    return listing_response(listing)
