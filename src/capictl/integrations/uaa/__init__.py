"""UAA REST adapter and HTTP client factory."""

from capictl.integrations.uaa.client import UaaClient
from capictl.integrations.uaa.transport import (
    build_http_client,
    create_uaa_client,
    resolve_tls_verification,
)

__all__ = [
    "UaaClient",
    "build_http_client",
    "create_uaa_client",
    "resolve_tls_verification",
]
