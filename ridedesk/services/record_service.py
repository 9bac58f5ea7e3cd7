import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from ridedesk.config.tenant_config import TenantConfig
from ridedesk.services.request_queue import BatchResult, ProgressCallback, RequestQueue, run_batch
from ridedesk.services.teable_client import TeableClient
from ridedesk.utils.cancellation import CancellationToken
from ridedesk.utils.date_utils import exact_date_filter
from ridedesk.utils.errors import InputValidationError
from ridedesk.utils.logging_config import app_logger as logger

RECORD_ID_PATTERN = re.compile(r"^rec[a-zA-Z0-9]+$")


@dataclass(frozen=True)
class Resource:
    name: str
    table_key: str
    field_group: Optional[str]


RESOURCES: Dict[str, Resource] = {
    "work-schedule": Resource("work-schedule", "WORK_SCHEDULE", "workSchedule"),
    "customers": Resource("customers", "CUSTOMERS", "customers"),
    "drivers": Resource("drivers", "DRIVERS", "drivers"),
    "vehicles": Resource("vehicles", "VEHICLES", "vehicles"),
    "vehicle-types": Resource("vehicle-types", "VEHICLE_TYPES", None),
}


def validate_record_id(record_id: Any, field_name: str = "recordId") -> str:
    record_id = record_id.strip() if isinstance(record_id, str) else ""
    if not RECORD_ID_PATTERN.match(record_id):
        raise InputValidationError(f"Invalid {field_name}", field=field_name)
    return record_id


@dataclass
class ListingResult:
    records: List[Dict[str, Any]] = field(default_factory=list)
    pages: int = 0
    truncated: bool = False


class DuplicateCheck(Protocol):
    def is_duplicate(self, fields: Dict[str, Any]) -> bool: ...


class SameRideDuplicateCheck:
    """
    Advisory pre-flight check: a ride with the same date, description and pickup
    time already exists in the records fetched before the batch started.

    This only sees what was fetched. Concurrent sessions can still create
    duplicates, since the table service has no uniqueness constraint here.
    """

    def __init__(self, config: TenantConfig, existing_records: List[Dict[str, Any]]):
        self.date_field = config.field_id("workSchedule", "DATE")
        self.description_field = config.field_id("workSchedule", "DESCRIPTION")
        self.pickup_field = config.field_id("workSchedule", "PICKUP_TIME")
        self._seen = {self._key(r.get("fields") or {}) for r in existing_records}

    def _key(self, fields: Dict[str, Any]) -> Tuple[str, str, str]:
        day = str(fields.get(self.date_field) or "")[:10]
        return (
            day,
            str(fields.get(self.description_field) or ""),
            str(fields.get(self.pickup_field) or ""),
        )

    def is_duplicate(self, fields: Dict[str, Any]) -> bool:
        key = self._key(fields)
        if key in self._seen:
            return True
        self._seen.add(key)
        return False


class RecordService:
    """Resource-level operations for one tenant, expressed in logical table and field names."""

    def __init__(
        self,
        client: TeableClient,
        resource: Resource,
        page_size: int = 1000,
        max_pages: int = 50,
        time_zone: str = "UTC",
    ):
        self.client = client
        self.config = client.config
        self.resource = resource
        self.page_size = page_size
        self.max_pages = max_pages
        self.time_zone = time_zone

    @property
    def table_id(self) -> str:
        return getattr(self.config.tables, self.resource.table_key)

    def translate_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Map logical field names (e.g. ``DRIVER``) to field ids; field ids pass through."""
        if not isinstance(fields, dict):
            raise InputValidationError("fields must be an object", field="fields")
        if self.resource.field_group is None:
            return dict(fields)
        group = getattr(self.config.fields, self.resource.field_group)
        translated = {}
        for key, value in fields.items():
            if not key.isupper():
                translated[key] = value
                continue
            mapped = getattr(group, key, None)
            if not mapped:
                raise InputValidationError(f"Unknown field {key}", field=key)
            translated[mapped] = value
        return translated

    def date_filter(self, day: date) -> Dict[str, Any]:
        return exact_date_filter(
            self.config.field_id("workSchedule", "DATE"), day, time_zone=self.time_zone
        )

    async def list_page(
        self, take: Optional[int] = None, skip: Optional[int] = None, day: Optional[date] = None
    ) -> Dict[str, Any]:
        filter = self.date_filter(day) if day is not None else None
        return await self.client.list_records(
            self.table_id, take=take or self.page_size, skip=skip, filter=filter
        )

    async def fetch_all(
        self,
        day: Optional[date] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ListingResult:
        """
        Page through the table until a short page, or until ``max_pages`` pages.

        When the ceiling is reached on a full page, a one-record lookahead decides
        whether anything was left behind; only then is ``truncated`` set.
        """
        result = ListingResult()
        skip = 0
        while True:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            if result.pages >= self.max_pages:
                result.truncated = await self._has_more(skip, day)
                if result.truncated:
                    logger.warning(
                        f"Listing of {self.resource.name} for tenant {self.config.id} "
                        f"truncated at {len(result.records)} records"
                    )
                break

            page = await self.list_page(take=self.page_size, skip=skip, day=day)
            records = page.get("records") or []
            result.pages += 1
            result.records.extend(records)
            skip += len(records)

            if len(records) < self.page_size:
                break
        return result

    async def _has_more(self, skip: int, day: Optional[date]) -> bool:
        page = await self.list_page(take=1, skip=skip, day=day)
        return bool(page.get("records"))

    async def count(self) -> int:
        page = await self.client.list_records(self.table_id, take=1)
        total = page.get("total")
        if isinstance(total, int):
            return total
        return len(page.get("records") or [])

    async def create(self, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self.client.create_record(self.table_id, self.translate_fields(fields))

    async def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record_id = validate_record_id(record_id)
        return await self.client.update_record(
            self.table_id, record_id, self.translate_fields(fields)
        )

    async def delete(self, record_id: str) -> bool:
        record_id = validate_record_id(record_id)
        return await self.client.delete_record(self.table_id, record_id)

    async def bulk_update(
        self,
        record_ids: List[str],
        fields: Dict[str, Any],
        queue: RequestQueue,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BatchResult:
        ids = [validate_record_id(r, "recordIds") for r in record_ids]
        translated = self.translate_fields(fields)

        def make_task(record_id: str) -> Callable:
            return lambda: self.client.update_record(self.table_id, record_id, translated)

        return await run_batch(
            queue,
            [(record_id, make_task(record_id)) for record_id in ids],
            on_progress=on_progress,
            cancel_token=cancel_token,
        )

    async def bulk_delete(
        self,
        record_ids: List[str],
        queue: RequestQueue,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BatchResult:
        ids = [validate_record_id(r, "recordIds") for r in record_ids]

        def make_task(record_id: str) -> Callable:
            return lambda: self.client.delete_record(self.table_id, record_id)

        return await run_batch(
            queue,
            [(record_id, make_task(record_id)) for record_id in ids],
            on_progress=on_progress,
            cancel_token=cancel_token,
        )

    async def bulk_create(
        self,
        field_sets: List[Dict[str, Any]],
        queue: RequestQueue,
        duplicate_check: Optional[DuplicateCheck] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BatchResult:
        """
        Create one record per field set. Not idempotent: resubmitting a batch
        after a partial failure creates the succeeded records again unless a
        duplicate check filters them out.
        """
        translated = [self.translate_fields(f) for f in field_sets]
        to_create = []
        skipped = 0
        for fields in translated:
            if duplicate_check is not None and duplicate_check.is_duplicate(fields):
                skipped += 1
                continue
            to_create.append(fields)

        def make_task(fields: Dict[str, Any]) -> Callable:
            return lambda: self.client.create_record(self.table_id, fields)

        result = await run_batch(
            queue,
            [(None, make_task(fields)) for fields in to_create],
            on_progress=on_progress,
            cancel_token=cancel_token,
        )
        result.skipped = skipped
        result.total += skipped
        return result

    async def existing_rides_for(
        self, days: List[date], cancel_token: Optional[CancellationToken] = None
    ) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        for day in sorted(set(days)):
            listing = await self.fetch_all(day=day, cancel_token=cancel_token)
            records.extend(listing.records)
        return records
