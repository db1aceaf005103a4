"""Minimal UAA REST adapter over :mod:`httpx`.

Only the calls the compatibility engine needs are exposed. Failures are
raised as :class:`~capictl.infrastructure.errors.CapictlError` subclasses
whose message text carries the HTTP status line, which is what callers
classify on.
"""

from __future__ import annotations

from typing import Any

import httpx

from capictl.infrastructure.errors import (
    AuthorizationError,
    DecodingError,
    TransportError,
    UaaApiError,
    is_authorization_failure,
)

_BODY_PREVIEW_LIMIT = 200
_PAGE_PARAMS = {"startIndex": 1, "count": 1}


class UaaClient:
    def __init__(self, http_client: httpx.Client, *, endpoint: str) -> None:
        self._http = http_client
        self.endpoint = endpoint

    @property
    def authenticated(self) -> bool:
        return "Authorization" in self._http.headers

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> UaaClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        request_kwargs: dict[str, Any] = {}
        if params:
            request_kwargs["params"] = params
        if timeout is not None:
            request_kwargs["timeout"] = timeout
        url = f"{self.endpoint.rstrip('/')}{path}"
        try:
            response = self._http.get(path, **request_kwargs)
        except httpx.TimeoutException as exc:
            raise TransportError(
                f"GET {url} failed: request timeout ({exc.__class__.__name__})",
                endpoint=self.endpoint,
            ) from exc
        except httpx.TransportError as exc:
            raise TransportError(
                f"GET {url} failed: connection error: {exc}",
                endpoint=self.endpoint,
            ) from exc

        if response.status_code >= 400:
            body = response.text.strip()[:_BODY_PREVIEW_LIMIT]
            message = f"GET {url} returned HTTP {response.status_code} {response.reason_phrase}"
            if body:
                message = f"{message}: {body}"
            error_cls = AuthorizationError if is_authorization_failure(message) else UaaApiError
            raise error_cls(message, endpoint=self.endpoint)

        try:
            return response.json()
        except ValueError as exc:
            raise DecodingError(
                f"GET {url} returned a body that is not valid JSON",
                endpoint=self.endpoint,
            ) from exc

    def get_server_info(self, *, timeout: float | None = None) -> dict[str, Any]:
        payload = self._get("/info", timeout=timeout)
        if not isinstance(payload, dict):
            raise DecodingError("UAA /info response is not a JSON object", endpoint=self.endpoint)
        return payload

    def get_token_key(self, *, timeout: float | None = None) -> Any:
        return self._get("/token_key", timeout=timeout)

    def get_token_keys(self, *, timeout: float | None = None) -> Any:
        return self._get("/token_keys", timeout=timeout)

    def list_users(self, *, timeout: float | None = None) -> Any:
        return self._get("/Users", params=_PAGE_PARAMS, timeout=timeout)

    def list_groups(self, *, timeout: float | None = None) -> Any:
        return self._get("/Groups", params=_PAGE_PARAMS, timeout=timeout)

    def list_clients(self, *, timeout: float | None = None) -> Any:
        return self._get("/oauth/clients", params=_PAGE_PARAMS, timeout=timeout)


def server_version(info: dict[str, Any]) -> str:
    """Pull ``app.version`` out of an ``/info`` payload, ``""`` when absent."""

    app = info.get("app")
    if isinstance(app, dict):
        version = app.get("version")
        if isinstance(version, str):
            return version
    return ""


def server_name(info: dict[str, Any]) -> str:
    app = info.get("app")
    if isinstance(app, dict):
        name = app.get("name")
        if isinstance(name, str):
            return name
    return ""


__all__ = ["UaaClient", "server_name", "server_version"]
