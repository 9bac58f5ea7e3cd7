from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RecordFieldsRequest(_CamelModel):
    fields: Dict[str, Any] = Field(
        ..., description="Field values keyed by field id or logical field name."
    )


class RecordUpdateRequest(_CamelModel):
    record_id: str = Field(..., alias="recordId")
    fields: Dict[str, Any]


class RecordListResponse(_CamelModel):
    records: List[Dict[str, Any]] = []
    total: Optional[int] = None
    truncated: bool = False
    next_cursor: Optional[int] = Field(None, alias="nextCursor")


class RecordMutationResponse(_CamelModel):
    id: Optional[str] = None
    record: Optional[Dict[str, Any]] = None


class DeleteResponse(_CamelModel):
    success: bool = True
    deleted_id: str = Field(..., alias="deletedId")


class CountResponse(BaseModel):
    total: int


class BulkUpdateRequest(_CamelModel):
    record_ids: List[str] = Field(..., alias="recordIds", min_length=1)
    fields: Dict[str, Any]


class BulkDeleteRequest(_CamelModel):
    record_ids: List[str] = Field(..., alias="recordIds", min_length=1)


class BulkCreateRequest(_CamelModel):
    records: List[Dict[str, Any]] = Field(
        ..., min_length=1, description="One field map per record to create."
    )
    check_duplicates: bool = Field(
        False,
        alias="checkDuplicates",
        description="Skip rides matching an existing one on date, description and pickup time. "
        "Advisory only: concurrent sessions can still create duplicates.",
    )


class BatchItemErrorSchema(_CamelModel):
    index: int
    key: Optional[str] = None
    error: str
    status_code: Optional[int] = Field(None, alias="statusCode")


class BatchResponse(_CamelModel):
    total: int
    succeeded: int
    failed: int
    skipped: int = 0
    cancelled: bool = False
    message: str
    ids: List[str] = []
    errors: List[BatchItemErrorSchema] = []
