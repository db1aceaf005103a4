"""HTTP client construction for the UAA and the platform API."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any

import httpx

from capictl.config.constants import (
    CAPABILITY_TIMEOUT_SECONDS,
    DEV_MODE_VALUES,
    ENV_DEV_MODE,
)
from capictl.domain.profiles import ResolvedIdentity
from capictl.infrastructure.errors import InsecureTlsNotPermittedError
from capictl.infrastructure.logging import get_logger, log_event
from capictl.integrations.uaa.client import UaaClient

_LOGGER = get_logger("capictl.transport")


def is_dev_mode(environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    raw = env.get(ENV_DEV_MODE)
    if raw is None:
        return False
    return raw.strip().lower() in DEV_MODE_VALUES


def resolve_tls_verification(
    skip_tls: bool, *, environ: Mapping[str, str] | None = None
) -> bool:
    """Return whether TLS certificates must be verified.

    Skipping verification is only honoured in development mode; any other
    request to skip raises :class:`InsecureTlsNotPermittedError`.
    """

    if not skip_tls:
        return True
    if not is_dev_mode(environ):
        raise InsecureTlsNotPermittedError()
    log_event(
        _LOGGER,
        "tls.verify.disabled",
        level=logging.WARNING,
        message="TLS certificate verification disabled (development mode)",
    )
    return False


def build_http_client(
    *,
    timeout: float = CAPABILITY_TIMEOUT_SECONDS,
    verify: bool = True,
    base_url: str | None = None,
    token: str | None = None,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    headers = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    client_kwargs: dict[str, Any] = {
        "headers": headers,
        "timeout": timeout,
        "verify": verify,
    }
    if base_url:
        client_kwargs["base_url"] = base_url.rstrip("/")
    if transport is not None:
        client_kwargs["transport"] = transport
    return httpx.Client(**client_kwargs)


def create_uaa_client(
    identity: ResolvedIdentity,
    *,
    environ: Mapping[str, str] | None = None,
    transport: httpx.BaseTransport | None = None,
) -> UaaClient:
    """Bind a :class:`UaaClient` to the resolved endpoint and token."""

    verify = resolve_tls_verification(identity.skip_tls, environ=environ)
    http_client = build_http_client(
        timeout=CAPABILITY_TIMEOUT_SECONDS,
        verify=verify,
        base_url=identity.endpoint,
        token=identity.token or None,
        transport=transport,
    )
    return UaaClient(http_client, endpoint=identity.endpoint)


__all__ = [
    "build_http_client",
    "create_uaa_client",
    "is_dev_mode",
    "resolve_tls_verification",
]
