from fastapi import Depends

from ridedesk.api.dependencies import record_service_for
from ridedesk.api.routers.records import build_record_router
from ridedesk.api.schemas.record_schemas import CountResponse
from ridedesk.services.record_service import RecordService

router = build_record_router("customers")

customer_service = record_service_for("customers")


@router.get("/count", response_model=CountResponse)
async def count_customers(service: RecordService = Depends(customer_service)):
    return CountResponse(total=await service.count())


@router.get("/fields")
async def customer_fields(service: RecordService = Depends(customer_service)):
    """Field schema of the customers table, plus the id this tenant maps as customer status."""
    fields = await service.client.get_fields(service.table_id)
    status_field_id = service.config.fields.customers.STATUS
    status_field = next((f for f in fields if f.get("id") == status_field_id), None)
    return {
        "statusFieldId": status_field_id if status_field else None,
        "statusFieldName": status_field.get("name") if status_field else None,
        "allFields": fields,
    }
