"""Platform integration summary for ``capictl uaa cf-integration``."""

from __future__ import annotations

import logging
from collections.abc import Callable

from pydantic import BaseModel, Field

from capictl.domain.endpoints import EndpointResolver, EndpointSource
from capictl.domain.profiles import CliConfig, ConfigResolver, ResolvedIdentity
from capictl.infrastructure.errors import CapictlError
from capictl.infrastructure.logging import get_logger, log_event
from capictl.integrations.uaa.client import UaaClient, server_version
from capictl.integrations.uaa.transport import create_uaa_client

_LOGGER = get_logger("capictl.integration")

TROUBLESHOOTING_HINTS: tuple[str, ...] = (
    "Verify the platform API endpoint is configured: capictl uaa context",
    "Ensure the UAA endpoint is accessible from this machine",
    "Check that your credentials are valid and not expired",
)

_AUTH_METHODS = {
    EndpointSource.LEGACY: "explicit",
    EndpointSource.PROFILE: "explicit",
    EndpointSource.DISCOVERY: "discovered",
    EndpointSource.INFERENCE: "inferred",
}


class CfIntegrationInfo(BaseModel):
    cf_api_version: str = "not configured"
    uaa_endpoint: str | None = None
    uaa_version: str = "unknown"
    auth_method: str | None = None
    scopes_supported: bool = False
    token_format: str | None = None
    compatible: bool = False
    notes: list[str] = Field(default_factory=list)

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(mode="json")


def check_cf_integration(
    config: CliConfig,
    *,
    endpoint_resolver: EndpointResolver | None = None,
    client_factory: Callable[[ResolvedIdentity], UaaClient] | None = None,
) -> CfIntegrationInfo:
    resolver = ConfigResolver(config)
    info = CfIntegrationInfo()
    if resolver.platform_endpoint():
        info.cf_api_version = "configured"

    try:
        resolved = (endpoint_resolver or EndpointResolver()).resolve(config)
    except CapictlError as exc:
        info.notes.append(exc.user_message)
        return info

    info.uaa_endpoint = resolved.url
    info.auth_method = _AUTH_METHODS[resolved.source]
    identity = resolver.resolve_identity(resolved.url)

    try:
        with (client_factory or create_uaa_client)(identity) as client:
            server_info = client.get_server_info()
    except CapictlError as exc:
        log_event(
            _LOGGER,
            "integration.server_info.failed",
            level=logging.DEBUG,
            endpoint=resolved.url,
            reason=exc.user_message,
        )
        info.notes.append(exc.user_message)
        return info

    info.uaa_version = server_version(server_info) or "unknown"
    if identity.authenticated:
        info.scopes_supported = True
        info.token_format = "JWT"
        info.compatible = True
    else:
        info.notes.append("Authentication required to verify token scopes")
    return info


__all__ = ["CfIntegrationInfo", "TROUBLESHOOTING_HINTS", "check_cf_integration"]
