from fastapi import Depends

from ridedesk.api.dependencies import record_service_for
from ridedesk.api.routers.records import build_record_router
from ridedesk.api.schemas.record_schemas import CountResponse
from ridedesk.services.record_service import RecordService

router = build_record_router("drivers")


@router.get("/count", response_model=CountResponse)
async def count_drivers(service: RecordService = Depends(record_service_for("drivers"))):
    return CountResponse(total=await service.count())
