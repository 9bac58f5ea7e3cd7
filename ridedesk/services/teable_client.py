import json
import time
from typing import Any, Dict, List, Optional

import httpx

from ridedesk.config.tenant_config import TenantConfig
from ridedesk.utils.errors import (
    InputValidationError,
    InternalError,
    MissingCredentialError,
    UpstreamError,
    UpstreamTimeoutError,
)
from ridedesk.utils.logging_config import app_logger as logger, log_performance_metric


def normalize_records(payload: Any) -> List[Dict[str, Any]]:
    """
    Collapse the table service's response envelopes into a list of records.

    Bulk endpoints answer ``{"records": [...]}``, some single-record endpoints
    answer the bare record ``{"id": ...}`` and a few wrap it as ``{"record": {...}}``.
    """
    if not isinstance(payload, dict):
        return []
    records = payload.get("records")
    if isinstance(records, list):
        return [r for r in records if isinstance(r, dict)]
    record = payload.get("record")
    if isinstance(record, dict):
        return [record]
    if payload.get("id"):
        return [payload]
    return []


def first_record(payload: Any) -> Optional[Dict[str, Any]]:
    records = normalize_records(payload)
    return records[0] if records else None


def normalize_link_value(value: Any) -> Optional[List[str]]:
    """A link field is always written as a list of record ids, or null when empty."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return [value] if value else None
    if isinstance(value, dict):
        record_id = value.get("id")
        return [record_id] if record_id else None
    if isinstance(value, (list, tuple)):
        ids = []
        for item in value:
            if isinstance(item, dict):
                item = item.get("id")
            if isinstance(item, str) and item.strip():
                ids.append(item.strip())
        return ids or None
    raise ValueError(f"Unsupported link value: {value!r}")


def _parse_body(response: httpx.Response) -> Any:
    text = response.text
    if not text or not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


class TeableClient:
    """
    Table service client bound to one tenant's config and credential.

    Built per request and never shared between tenants. Every write asks the
    service to typecast, and every link field is sent as a list of ids.
    """

    def __init__(
        self,
        config: TenantConfig,
        credential: str,
        timeout: float = 20.0,
        default_api_url: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._credential = credential
        self.timeout = timeout
        self.base_url = (config.api_url or default_api_url).rstrip("/")
        self.api_url = f"{self.base_url}/api"
        self._transport = transport
        self._link_field_ids = config.link_field_ids()

    def __repr__(self) -> str:
        return f"TeableClient(tenant='{self.config.id}', api_url='{self.api_url}')"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _auth_headers(self) -> Dict[str, str]:
        if not self._credential:
            logger.error(f"No table service credential configured for tenant '{self.config.id}'")
            raise MissingCredentialError()
        if not self.base_url:
            logger.error(f"No table service URL configured for tenant '{self.config.id}'")
            raise InternalError()
        return {"Authorization": f"Bearer {self._credential}"}

    async def authenticated_fetch(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        files: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Send an authenticated request to ``/api{path}`` and return the raw response."""
        request_headers = {**(headers or {}), **self._auth_headers()}
        url = f"{self.api_url}{path}"
        started = time.perf_counter()
        try:
            async with self._client() as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    files=files,
                    headers=request_headers,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Table service timeout: {method} {path} tenant={self.config.id}: {e}")
            raise UpstreamTimeoutError()
        except httpx.HTTPError as e:
            logger.error(f"Table service unreachable: {method} {path} tenant={self.config.id}: {e}")
            raise InternalError()
        log_performance_metric(
            logger,
            f"teable {method} {path}",
            (time.perf_counter() - started) * 1000,
            tenant_id=self.config.id,
            status=response.status_code,
        )
        return response

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self.authenticated_fetch(method, path, **kwargs)
        body = _parse_body(response)
        if not response.is_success:
            logger.error(
                f"Table service error {response.status_code} on {method} {path} "
                f"tenant={self.config.id}: {body}"
            )
            raise UpstreamError(response.status_code, body)
        return body

    def prepare_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        prepared = {}
        for key, value in fields.items():
            if key in self._link_field_ids:
                try:
                    prepared[key] = normalize_link_value(value)
                except ValueError:
                    raise InputValidationError(f"Invalid link value for {key}", field=key)
            else:
                prepared[key] = value
        return prepared

    async def list_records(
        self,
        table_id: str,
        take: Optional[int] = None,
        skip: Optional[int] = None,
        filter: Optional[Dict[str, Any]] = None,
        **query: Any,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"fieldKeyType": "id", **query}
        if take is not None:
            params["take"] = take
        if skip is not None:
            params["skip"] = skip
        if filter is not None:
            params["filter"] = json.dumps(filter)
        body = await self._request("GET", f"/table/{table_id}/record", params=params)
        if not isinstance(body, dict):
            return {"records": []}
        return body

    async def create_record(self, table_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        body = await self._request(
            "POST",
            f"/table/{table_id}/record",
            json_body={
                "fieldKeyType": "id",
                "typecast": True,
                "records": [{"fields": self.prepare_fields(fields)}],
            },
        )
        return first_record(body)

    async def update_record(
        self, table_id: str, record_id: str, fields: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        body = await self._request(
            "PATCH",
            f"/table/{table_id}/record",
            json_body={
                "fieldKeyType": "id",
                "typecast": True,
                "records": [{"id": record_id, "fields": self.prepare_fields(fields)}],
            },
        )
        return first_record(body)

    async def delete_record(self, table_id: str, record_id: str) -> bool:
        await self._request("DELETE", f"/table/{table_id}/record/{record_id}")
        return True

    async def get_fields(self, table_id: str) -> List[Dict[str, Any]]:
        body = await self._request("GET", f"/table/{table_id}/field")
        return body if isinstance(body, list) else []

    async def get_upload_signature(self, content_type: str, content_length: int) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/attachments/signature",
            json_body={
                "contentType": content_type,
                "contentLength": content_length,
                "type": 1,
                "baseId": self.config.base_id,
            },
        )

    async def upload_to_storage(self, signature: Dict[str, Any], content: bytes) -> None:
        """PUT/POST the file body to the storage URL handed out by the signature call."""
        headers = {
            k: v
            for k, v in (signature.get("requestHeaders") or {}).items()
            if k.lower() != "content-length"
        }
        try:
            async with self._client() as client:
                response = await client.request(
                    signature.get("uploadMethod") or "PUT",
                    signature["url"],
                    headers=headers,
                    content=content,
                )
        except httpx.TimeoutException:
            raise UpstreamTimeoutError()
        except httpx.HTTPError as e:
            logger.error(f"Attachment storage unreachable tenant={self.config.id}: {e}")
            raise InternalError()
        if not response.is_success:
            raise UpstreamError(response.status_code, _parse_body(response))

    async def notify_upload(self, token: str, filename: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/attachments/notify/{token}",
            params={"filename": filename},
            json_body={},
        )

    async def get_presigned_url(self, token: str) -> str:
        body = await self._request("GET", f"/attachments/{token}/presignedUrl")
        url = body.get("presignedUrl") if isinstance(body, dict) else None
        if not url:
            raise UpstreamError(502, body, message="No presigned URL returned")
        return url

    async def upload_attachment(
        self,
        table_id: str,
        record_id: str,
        field_id: str,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
    ) -> Any:
        return await self._request(
            "POST",
            f"/table/{table_id}/record/{record_id}/{field_id}/uploadAttachment",
            files={"file": (filename, content, content_type or "application/octet-stream")},
        )

    async def fetch_file(self, url: str) -> httpx.Response:
        """Download a file from a presigned URL (no table service credential attached)."""
        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            raise UpstreamTimeoutError()
        except httpx.HTTPError as e:
            logger.error(f"File download failed tenant={self.config.id}: {e}")
            raise InternalError()
        if not response.is_success:
            raise UpstreamError(response.status_code, _parse_body(response))
        return response
