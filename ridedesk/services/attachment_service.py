import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ridedesk.services.record_service import validate_record_id
from ridedesk.services.teable_client import TeableClient
from ridedesk.utils.errors import ConfigurationError, InputValidationError
from ridedesk.utils.file_validation import mime_type_for_filename, validate_upload
from ridedesk.utils.logging_config import app_logger as logger

FIELD_ID_PATTERN = re.compile(r"^fld[a-zA-Z0-9]+$")
TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
FILENAME_PATTERN = re.compile(r'filename="?([^";]+)"?')
GENERIC_CONTENT_TYPES = ("", "application/octet-stream", "binary/octet-stream")


@dataclass
class UploadedFile:
    filename: str
    content_type: Optional[str]
    content: bytes

    def validate(self) -> None:
        validate_upload(self.content_type, len(self.content))


@dataclass
class FileDownload:
    content: bytes
    content_type: str
    filename: str


class AttachmentService:
    """Attachment flows against the table service, always scoped to one tenant's tables."""

    def __init__(self, client: TeableClient):
        self.client = client
        self.config = client.config

    def resolve_table_id(self, table: Optional[str]) -> str:
        """Accept a logical table name (``WORK_SCHEDULE``) or one of this tenant's table ids."""
        if not table:
            raise InputValidationError("Missing tableId", field="tableId")
        tables = self.config.tables.model_dump()
        if table in tables:
            return tables[table]
        if table in tables.values():
            return table
        raise InputValidationError("Unknown tableId", field="tableId")

    def resolve_field_id(self, field: Optional[str], group: str = "workSchedule") -> str:
        if not field:
            raise InputValidationError("Missing fieldId", field="fieldId")
        if field.isupper():
            try:
                return self.config.field_id(group, field)
            except ConfigurationError:
                raise InputValidationError("Unknown fieldId", field="fieldId")
        if not FIELD_ID_PATTERN.match(field):
            raise InputValidationError("Invalid fieldId", field="fieldId")
        return field

    async def upload_via_signature(self, upload: UploadedFile) -> Dict[str, Any]:
        """Signature -> storage upload -> notify. Returns the attachment in table-service form."""
        upload.validate()
        signature = await self.client.get_upload_signature(
            upload.content_type, len(upload.content)
        )
        await self.client.upload_to_storage(signature, upload.content)
        attachment = await self.client.notify_upload(signature["token"], upload.filename)
        logger.info(f"Uploaded attachment {upload.filename} for tenant {self.config.id}")
        return {
            "name": upload.filename,
            "token": attachment.get("token"),
            "size": attachment.get("size"),
            "mimetype": attachment.get("mimetype"),
            "presignedUrl": attachment.get("presignedUrl"),
        }

    async def upload_to_record(
        self, upload: UploadedFile, table: str, record_id: str, field: str
    ) -> Any:
        upload.validate()
        return await self.client.upload_attachment(
            self.resolve_table_id(table),
            validate_record_id(record_id),
            self.resolve_field_id(field),
            upload.filename,
            upload.content,
            upload.content_type,
        )

    async def replace_order_form(self, upload: UploadedFile, record_id: str) -> Any:
        return await self.upload_to_record(
            upload, "WORK_SCHEDULE", record_id, "ORDER_FORM_ATTACHMENT"
        )

    async def clear_attachment(
        self, record_id: Any, table: str = "WORK_SCHEDULE", field: str = "ORDER_FORM_ATTACHMENT"
    ) -> Optional[Dict[str, Any]]:
        record = await self.client.update_record(
            self.resolve_table_id(table),
            validate_record_id(record_id),
            {self.resolve_field_id(field): None},
        )
        logger.info(f"Cleared attachment on {record_id} for tenant {self.config.id}")
        return record

    async def attachment_url(self, token: str) -> str:
        if not token:
            raise InputValidationError("Missing token", field="token")
        if not TOKEN_PATTERN.match(token):
            raise InputValidationError("Invalid token", field="token")
        return await self.client.get_presigned_url(token)

    async def download(self, token: str) -> FileDownload:
        url = await self.attachment_url(token)
        response = await self.client.fetch_file(url)

        match = FILENAME_PATTERN.search(response.headers.get("content-disposition", ""))
        filename = match.group(1) if match else "file"
        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        if content_type in GENERIC_CONTENT_TYPES:
            content_type = mime_type_for_filename(filename)
        return FileDownload(content=response.content, content_type=content_type, filename=filename)

