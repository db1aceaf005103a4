"""UAA endpoint resolution cascade."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

import httpx

from capictl.config.constants import DISCOVERY_TIMEOUT_SECONDS
from capictl.domain.profiles import CliConfig, ConfigResolver
from capictl.infrastructure.errors import (
    CapictlError,
    DecodingError,
    EndpointNotConfiguredError,
    TransportError,
)
from capictl.infrastructure.logging import get_logger, log_event
from capictl.integrations.uaa.transport import build_http_client, resolve_tls_verification

_LOGGER = get_logger("capictl.endpoints")


class EndpointSource(str, Enum):
    LEGACY = "legacy"
    PROFILE = "profile"
    DISCOVERY = "discovery"
    INFERENCE = "inference"


@dataclass(frozen=True)
class ResolvedEndpoint:
    url: str
    source: EndpointSource


# Host-prefix rewrites, tried in order; the first match wins.
INFERENCE_RULES: tuple[tuple[str, str], ...] = (("api.", "uaa."),)

HttpClientFactory = Callable[..., httpx.Client]


def _ensure_scheme(url: str) -> str:
    if "://" in url:
        return url
    return f"https://{url}"


def infer_uaa_endpoint(
    platform_api: str, rules: tuple[tuple[str, str], ...] = INFERENCE_RULES
) -> str | None:
    """Guess the UAA URL from the platform API host name.

    The scheme is always ``https``; host and port are preserved, any path is
    dropped. Returns ``None`` when no rule matches or the URL cannot be parsed.
    """

    if not platform_api:
        return None
    try:
        parts = urlsplit(_ensure_scheme(platform_api.strip()))
        host = parts.hostname
        port = parts.port
    except ValueError:
        return None
    if not host:
        return None
    for prefix, replacement in rules:
        if host.startswith(prefix):
            candidate = f"{replacement}{host[len(prefix):]}"
            if port is not None:
                candidate = f"{candidate}:{port}"
            return f"https://{candidate}"
    return None


def _extract_uaa_link(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise DecodingError("platform API root document is not a JSON object")
    links = payload.get("links")
    uaa = links.get("uaa") if isinstance(links, dict) else None
    href = uaa.get("href") if isinstance(uaa, dict) else None
    if not isinstance(href, str) or not href.strip():
        raise DecodingError("platform API root document has no links.uaa.href")
    return href.strip()


class EndpointResolver:
    """Pick the UAA endpoint for one invocation.

    Strategies run in a fixed order: explicit legacy setting, current profile,
    discovery from the platform API root document, host-name inference.
    Nothing is cached; every :meth:`resolve` call walks the cascade again.
    """

    def __init__(
        self,
        *,
        client_factory: HttpClientFactory | None = None,
        environ: Mapping[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client_factory = client_factory or build_http_client
        self._environ = environ
        self._transport = transport

    def resolve(self, config: CliConfig) -> ResolvedEndpoint:
        resolver = ConfigResolver(config)

        if config.legacy.uaa_endpoint:
            return self._found(config.legacy.uaa_endpoint, EndpointSource.LEGACY)

        profile_endpoint = resolver.profile_uaa_endpoint()
        if profile_endpoint:
            return self._found(profile_endpoint, EndpointSource.PROFILE)

        platform_api = resolver.platform_endpoint()
        if platform_api:
            discovered = self.discover(platform_api, skip_tls=resolver.skip_tls())
            if discovered:
                return self._found(discovered, EndpointSource.DISCOVERY)

            inferred = infer_uaa_endpoint(platform_api)
            if inferred:
                return self._found(inferred, EndpointSource.INFERENCE)

        log_event(_LOGGER, "endpoint.unresolved", level=logging.DEBUG, platform_api=platform_api or None)
        raise EndpointNotConfiguredError(
            extra={"Platform API": platform_api} if platform_api else None
        )

    def discover(self, platform_api: str, *, skip_tls: bool = False) -> str | None:
        """Read ``links.uaa.href`` from the platform API root; ``None`` on any failure."""

        root_url = f"{_ensure_scheme(platform_api).rstrip('/')}/"
        try:
            verify = resolve_tls_verification(skip_tls, environ=self._environ)
            client_kwargs: dict[str, Any] = {
                "timeout": DISCOVERY_TIMEOUT_SECONDS,
                "verify": verify,
            }
            if self._transport is not None:
                client_kwargs["transport"] = self._transport
            with self._client_factory(**client_kwargs) as client:
                try:
                    response = client.get(root_url)
                except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
                    raise TransportError(f"GET {root_url} failed: {exc}") from exc
                if response.status_code != 200:
                    raise TransportError(
                        f"GET {root_url} returned HTTP {response.status_code}"
                    )
                try:
                    payload = response.json()
                except ValueError as exc:
                    raise DecodingError(f"GET {root_url} returned invalid JSON") from exc
                return _extract_uaa_link(payload)
        except CapictlError as exc:
            log_event(
                _LOGGER,
                "endpoint.discovery.failed",
                level=logging.DEBUG,
                platform_api=platform_api,
                reason=exc.user_message,
                code=exc.context.code,
            )
            return None

    def _found(self, url: str, source: EndpointSource) -> ResolvedEndpoint:
        log_event(
            _LOGGER,
            "endpoint.resolved",
            level=logging.DEBUG,
            endpoint=url,
            source=source.value,
        )
        return ResolvedEndpoint(url=url, source=source)


__all__ = [
    "EndpointResolver",
    "EndpointSource",
    "INFERENCE_RULES",
    "ResolvedEndpoint",
    "infer_uaa_endpoint",
]
