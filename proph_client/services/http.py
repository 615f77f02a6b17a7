from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from proph_client.core.config import Settings
from proph_client.core.errors import (
    AuthorizationError,
    NetworkError,
    NotFoundError,
    ProphClientError,
    StateError,
    ValidationError,
    extract_error_message,
)

logger = logging.getLogger(__name__)

StatusErrors = Mapping[int, tuple[type[ProphClientError], str]]

DEFAULT_STATUS_ERRORS: dict[int, type[ProphClientError]] = {
    400: ValidationError,
    401: AuthorizationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: StateError,
    422: ValidationError,
}


class ApiClient:
    """Thin async JSON transport that turns every failure into a ProphClientError.

    ``status_errors`` lets a call override the error class and the fallback
    message for specific status codes; the server-provided ``error`` field wins,
    then ``message``, then the fallback.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds
        self._client = client

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> "ApiClient":
        return cls(settings.api_base_url, token=token, timeout_seconds=settings.request_timeout_seconds, client=client)

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def request(
        self,
        method: str,
        path: str,
        *,
        fallback: str,
        json_body: Any = None,
        params: Mapping[str, Any] | None = None,
        status_errors: StatusErrors | None = None,
    ) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            if self._client is not None:
                response = await self._client.request(method, url, json=json_body, params=params, headers=self.headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.request(method, url, json=json_body, params=params, headers=self.headers)
        except httpx.HTTPError as exc:
            logger.warning("transport failure method=%s path=%s: %s", method, path, exc)
            raise NetworkError(fallback) from exc

        if response.is_success:
            return _decode(response)

        payload = _decode_error(response)
        status_code = response.status_code
        error_class, status_fallback = _resolve_error(status_code, status_errors, fallback)
        message = extract_error_message(payload, status_fallback)
        logger.info("request failed method=%s path=%s status=%s message=%s", method, path, status_code, message)
        raise error_class(message, status_code=status_code)


def _resolve_error(
    status_code: int,
    status_errors: StatusErrors | None,
    fallback: str,
) -> tuple[type[ProphClientError], str]:
    if status_errors and status_code in status_errors:
        return status_errors[status_code]
    return DEFAULT_STATUS_ERRORS.get(status_code, ProphClientError), fallback


def _decode(response: httpx.Response) -> Any:
    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise ValidationError("response body is not valid JSON", status_code=response.status_code) from exc


def _decode_error(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None
