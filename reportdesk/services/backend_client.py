from __future__ import annotations

from typing import Any, Optional

import httpx
from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from reportdesk.core.errors import BackendError, ConflictError, NetworkError, SessionExpiredError
from reportdesk.schemas.admin_update import AdminUpdate
from reportdesk.schemas.report import Report


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get('message') or body.get('detail')
        if isinstance(message, str) and message.strip():
            return message
    return None


def _parse(model: type[BaseModel], data: Any):
    try:
        if isinstance(data, list):
            return [model.model_validate(item) for item in data]
        return model.model_validate(data)
    except PydanticValidationError as exc:
        logger.error(f"Unexpected {model.__name__} payload: {exc}")
        raise BackendError('Unexpected response from server.') from exc


class BackendClient:
    """Async client for the facility-reporting REST backend."""

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip('/'),
            headers={'Content-Type': 'application/json'},
            timeout=timeout,
            transport=transport,
        )

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token)

    def set_token(self, token: Optional[str]) -> None:
        self._token = token or None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> 'BackendClient':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        headers = {}
        if self._token:
            headers['Authorization'] = f"Bearer {self._token}"
        try:
            response = await self._client.request(method, path, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning(f"API timeout: {method} {path}")
            raise NetworkError('The request timed out. Please try again.') from exc
        except httpx.TransportError as exc:
            logger.warning(f"API unreachable: {method} {path}: {exc}")
            raise NetworkError() from exc

        if response.is_success:
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError:
                return None

        message = _error_message(response)
        logger.error(
            'API error: url={} method={} status={} data={}',
            path,
            method,
            response.status_code,
            response.text[:500],
        )
        if response.status_code == 401:
            self._token = None
            raise SessionExpiredError(message)
        if response.status_code == 409:
            raise ConflictError(message)
        raise BackendError(message, status_code=response.status_code)

    async def list_reports(self) -> list[Report]:
        data = await self._request('GET', '/api/reports')
        return _parse(Report, data or [])

    async def list_my_reports(self) -> list[Report]:
        data = await self._request('GET', '/api/my-reports')
        return _parse(Report, data or [])

    async def create_report(self, payload: dict) -> Report:
        data = await self._request('POST', '/api/reports', payload)
        if isinstance(data, dict) and isinstance(data.get('report'), dict):
            data = data['report']
        return _parse(Report, data)

    async def mark_resolved(self, report_id: str) -> None:
        await self._request('POST', f"/api/reports/{report_id}/resolve")

    async def record_admin_update(self, update: AdminUpdate) -> None:
        await self._request('POST', '/api/admin/resolve', update.to_payload())

    async def list_admin_updates(self) -> list[AdminUpdate]:
        data = await self._request('GET', '/api/admin/updates')
        return _parse(AdminUpdate, data or [])

    async def confirm_update(self, report_id: str) -> None:
        await self._request('POST', '/api/admin/resolve-confirm', {'reportId': report_id})
