from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class RecordIdRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    record_id: Any = Field(None, alias="recordId")


class AttachmentClearRequest(RecordIdRequest):
    table_id: Optional[str] = Field(None, alias="tableId")
    field_id: Optional[str] = Field(None, alias="fieldId")


class AttachmentResponse(BaseModel):
    name: str
    token: Optional[str] = None
    size: Optional[int] = None
    mimetype: Optional[str] = None
    presignedUrl: Optional[str] = None


class UploadResult(BaseModel):
    success: bool = True
    data: Any = None


class AttachmentUrlResponse(BaseModel):
    url: str
