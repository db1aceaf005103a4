"""Top-level capictl package API."""

from capictl.application.compatibility import (
    CompatibilityReport,
    CompatibilityStatus,
    run_compatibility_check,
)
from capictl.domain.endpoints import EndpointResolver, ResolvedEndpoint
from capictl.domain.profiles import CliConfig, ConfigResolver

__all__ = [
    "CliConfig",
    "CompatibilityReport",
    "CompatibilityStatus",
    "ConfigResolver",
    "EndpointResolver",
    "ResolvedEndpoint",
    "run_compatibility_check",
]
