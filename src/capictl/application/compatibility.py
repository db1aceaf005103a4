"""UAA compatibility probing, scoring and recommendations."""

from __future__ import annotations

import json
import logging
import os
import re
import threading
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from capictl.config.constants import (
    CAPABILITY_TIMEOUT_SECONDS,
    COMPATIBILITY_RESULTS_FILENAME,
    COMPATIBILITY_THRESHOLD_HIGH,
    COMPATIBILITY_THRESHOLD_MEDIUM,
    CONFIG_FILE_MODE,
    MINIMUM_MAJOR_VERSION,
    RECOMMENDED_MINOR_VERSION,
)
from capictl.infrastructure.errors import (
    CapictlError,
    SkippedCapability,
    TransportError,
    is_authorization_failure,
)
from capictl.infrastructure.logging import get_logger, log_event, log_probe_event
from capictl.integrations.uaa.client import UaaClient, server_version

_LOGGER = get_logger("capictl.compatibility")

ISSUE_SERVER_INFO_UNAVAILABLE = "Cannot retrieve server information"
ISSUE_AUTHENTICATION_REQUIRED = "Authentication required for full testing"
ISSUE_VERY_OLD_VERSION = "UAA version is very old and may have limited functionality"

RECOMMEND_UPGRADE_MAJOR = "Consider upgrading to UAA 4.x or later"
RECOMMEND_UPGRADE_MINOR = "Consider upgrading to UAA 4.30+ for best compatibility"

SKIPPED_BASIC_MODE = "Skipped in basic mode"


class CompatibilityStatus(str, Enum):
    COMPATIBLE = "compatible"
    PARTIAL = "partial"
    INCOMPATIBLE = "incompatible"
    UNKNOWN = "unknown"


class Capability(str, Enum):
    SERVER_INFO = "ServerInfo"
    AUTHENTICATION = "Authentication"
    USER_MANAGEMENT = "UserManagement"
    GROUP_MANAGEMENT = "GroupManagement"
    CLIENT_MANAGEMENT = "ClientManagement"


SCORED_CAPABILITIES: tuple[Capability, ...] = (
    Capability.AUTHENTICATION,
    Capability.USER_MANAGEMENT,
    Capability.GROUP_MANAGEMENT,
    Capability.CLIENT_MANAGEMENT,
)

FEATURE_NAMES: dict[Capability, str] = {
    Capability.AUTHENTICATION: "OAuth2 Authentication",
    Capability.USER_MANAGEMENT: "User Management",
    Capability.GROUP_MANAGEMENT: "Group Management",
    Capability.CLIENT_MANAGEMENT: "OAuth Client Management",
}

VERDICT_GUIDANCE: dict[CompatibilityStatus, tuple[str, ...]] = {
    CompatibilityStatus.INCOMPATIBLE: (
        "UAA endpoint may not be compatible with this CLI version",
        "Verify UAA endpoint URL and network connectivity",
        "Check UAA logs for detailed error information",
    ),
    CompatibilityStatus.PARTIAL: (
        "Some features may not work due to insufficient permissions",
        "Ensure your client has appropriate authorities (scim.read, scim.write, etc.)",
        "Contact your UAA administrator for permission adjustments",
    ),
    CompatibilityStatus.COMPATIBLE: (
        "UAA endpoint is fully compatible with this CLI",
        "All features should work as expected",
    ),
}


class ProbeResult(BaseModel):
    capability: Capability
    status: CompatibilityStatus
    detail: str | None = None
    skipped: bool = False


class CompatibilityReport(BaseModel):
    endpoint: str
    version: str = ""
    tested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    results: list[ProbeResult] = Field(default_factory=list)
    overall: CompatibilityStatus = CompatibilityStatus.UNKNOWN
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    server_info: dict[str, Any] | None = None

    def result_for(self, capability: Capability) -> ProbeResult | None:
        for result in self.results:
            if result.capability == capability:
                return result
        return None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), indent=2)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_payload(), sort_keys=False)

    @classmethod
    def from_json(cls, text: str) -> CompatibilityReport:
        return cls.model_validate_json(text)

    @classmethod
    def from_yaml(cls, text: str) -> CompatibilityReport:
        return cls.model_validate(yaml.safe_load(text))


def classify_outcome(error: BaseException | None) -> CompatibilityStatus:
    """Uniform stage rule: success, permission-limited, or broken."""

    if error is None:
        return CompatibilityStatus.COMPATIBLE
    if is_authorization_failure(error):
        return CompatibilityStatus.PARTIAL
    return CompatibilityStatus.INCOMPATIBLE


def determine_overall_compatibility(results: Iterable[ProbeResult]) -> CompatibilityStatus:
    attempted = [
        result
        for result in results
        if result.capability in SCORED_CAPABILITIES and not result.skipped
    ]
    if not attempted:
        return CompatibilityStatus.UNKNOWN
    compatible = sum(1 for result in attempted if result.status == CompatibilityStatus.COMPATIBLE)
    ratio = compatible / len(attempted)
    if ratio >= COMPATIBILITY_THRESHOLD_HIGH:
        return CompatibilityStatus.COMPATIBLE
    if ratio >= COMPATIBILITY_THRESHOLD_MEDIUM:
        return CompatibilityStatus.PARTIAL
    return CompatibilityStatus.INCOMPATIBLE


_VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)")


def parse_version(text: str | None) -> tuple[int, int] | None:
    if not text:
        return None
    match = _VERSION_PATTERN.search(text)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def add_version_recommendations(report: CompatibilityReport) -> None:
    parsed = parse_version(report.version)
    if parsed is not None:
        major, minor = parsed
        if major < MINIMUM_MAJOR_VERSION:
            report.issues.append(ISSUE_VERY_OLD_VERSION)
            report.recommendations.append(RECOMMEND_UPGRADE_MAJOR)
        elif major == MINIMUM_MAJOR_VERSION and minor < RECOMMENDED_MINOR_VERSION:
            report.recommendations.append(RECOMMEND_UPGRADE_MINOR)
    report.recommendations.extend(VERDICT_GUIDANCE.get(report.overall, ()))


def save_snapshot(report: CompatibilityReport, path: str | Path | None = None) -> Path:
    """Write the JSON snapshot with owner-only permissions."""

    target = Path(path) if path else Path.cwd() / COMPATIBILITY_RESULTS_FILENAME
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CONFIG_FILE_MODE)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(report.to_json())
    os.chmod(target, CONFIG_FILE_MODE)
    return target


StageObserver = Callable[[ProbeResult], None]


class CompatibilityProbe:
    """Run the ordered capability checks against one UAA client.

    ServerInfo always runs first and a failure there ends the sequence.
    Authentication is attempted regardless of credentials; the management
    stages need a token and are recorded as skipped without one.

    With a ``cancel_event``, a Ctrl-C during a request aborts that call and
    sets the event; it and every later stage are recorded as transport
    failures. Without one the interrupt propagates.
    """

    def __init__(
        self,
        client: UaaClient,
        *,
        authenticated: bool,
        comprehensive: bool = True,
        deadline_seconds: float | None = None,
        cancel_event: threading.Event | None = None,
        observer: StageObserver | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._authenticated = authenticated
        self._comprehensive = comprehensive
        self._cancel_event = cancel_event
        self._observer = observer
        self._clock = clock
        self._deadline = clock() + deadline_seconds if deadline_seconds is not None else None

    def _call_timeout(self) -> float:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise TransportError("request aborted: operation cancelled", endpoint=self._client.endpoint)
        if self._deadline is None:
            return CAPABILITY_TIMEOUT_SECONDS
        remaining = self._deadline - self._clock()
        if remaining <= 0:
            raise TransportError("request aborted: deadline exceeded (timeout)", endpoint=self._client.endpoint)
        return min(CAPABILITY_TIMEOUT_SECONDS, remaining)

    def _attempt(self, call: Callable[..., Any]) -> tuple[Any, CapictlError | None]:
        try:
            return call(timeout=self._call_timeout()), None
        except CapictlError as exc:
            return None, exc
        except KeyboardInterrupt:
            # An interrupt mid-request cancels this call and every later one.
            if self._cancel_event is None:
                raise
            self._cancel_event.set()
            return None, TransportError(
                "request aborted: operation cancelled", endpoint=self._client.endpoint
            )

    def _record(
        self,
        report: CompatibilityReport,
        capability: Capability,
        status: CompatibilityStatus,
        *,
        detail: str | None = None,
        skipped: bool = False,
    ) -> ProbeResult:
        result = ProbeResult(capability=capability, status=status, detail=detail, skipped=skipped)
        report.results.append(result)
        if status == CompatibilityStatus.COMPATIBLE and capability in FEATURE_NAMES:
            report.features.append(FEATURE_NAMES[capability])
        log_probe_event(
            _LOGGER,
            capability.value,
            status=status.value,
            endpoint=self._client.endpoint,
            skipped=skipped or None,
            detail=detail,
        )
        if self._observer is not None:
            self._observer(result)
        return result

    def _skip(self, report: CompatibilityReport, capability: Capability, reason: str) -> None:
        self._record(
            report,
            capability,
            CompatibilityStatus.UNKNOWN,
            detail=reason,
            skipped=True,
        )

    def _gate(self, capability: Capability, enabled: bool) -> None:
        if not self._authenticated:
            raise SkippedCapability(ISSUE_AUTHENTICATION_REQUIRED, operation=capability.value)
        if not enabled:
            raise SkippedCapability(SKIPPED_BASIC_MODE, operation=capability.value)

    def _run_stage(
        self, report: CompatibilityReport, capability: Capability, call: Callable[..., Any]
    ) -> None:
        _, error = self._attempt(call)
        self._record(
            report,
            capability,
            classify_outcome(error),
            detail=str(error) if error is not None else None,
        )

    def _run_authentication(self, report: CompatibilityReport) -> None:
        _, error = self._attempt(self._client.get_token_key)
        if error is not None:
            self._record(report, Capability.AUTHENTICATION, classify_outcome(error), detail=str(error))
            return
        _, keys_error = self._attempt(self._client.get_token_keys)
        if keys_error is not None:
            self._record(
                report,
                Capability.AUTHENTICATION,
                CompatibilityStatus.PARTIAL,
                detail=str(keys_error),
            )
            return
        self._record(report, Capability.AUTHENTICATION, CompatibilityStatus.COMPATIBLE)

    def run(self) -> CompatibilityReport:
        report = CompatibilityReport(endpoint=self._client.endpoint)

        info, error = self._attempt(self._client.get_server_info)
        if error is not None:
            self._record(
                report,
                Capability.SERVER_INFO,
                CompatibilityStatus.INCOMPATIBLE,
                detail=str(error),
            )
            report.overall = CompatibilityStatus.INCOMPATIBLE
            report.issues.append(ISSUE_SERVER_INFO_UNAVAILABLE)
            log_event(
                _LOGGER,
                "probe.aborted",
                level=logging.WARNING,
                endpoint=self._client.endpoint,
                reason=str(error),
            )
            return report

        report.server_info = info
        report.version = server_version(info)
        self._record(report, Capability.SERVER_INFO, CompatibilityStatus.COMPATIBLE)

        self._run_authentication(report)

        gated = (
            (Capability.USER_MANAGEMENT, self._client.list_users, True),
            (Capability.GROUP_MANAGEMENT, self._client.list_groups, self._comprehensive),
            (Capability.CLIENT_MANAGEMENT, self._client.list_clients, self._comprehensive),
        )
        for capability, call, enabled in gated:
            try:
                self._gate(capability, enabled)
            except SkippedCapability as exc:
                self._skip(report, capability, exc.user_message)
                continue
            self._run_stage(report, capability, call)
        if not self._authenticated:
            report.issues.append(ISSUE_AUTHENTICATION_REQUIRED)

        report.overall = determine_overall_compatibility(report.results)
        add_version_recommendations(report)
        log_event(
            _LOGGER,
            "probe.completed",
            endpoint=report.endpoint,
            overall=report.overall.value,
            version=report.version or None,
        )
        return report


def run_compatibility_check(
    client: UaaClient,
    *,
    authenticated: bool,
    comprehensive: bool = True,
    deadline_seconds: float | None = None,
    cancel_event: threading.Event | None = None,
    observer: StageObserver | None = None,
) -> CompatibilityReport:
    probe = CompatibilityProbe(
        client,
        authenticated=authenticated,
        comprehensive=comprehensive,
        deadline_seconds=deadline_seconds,
        cancel_event=cancel_event,
        observer=observer,
    )
    return probe.run()


__all__ = [
    "Capability",
    "CompatibilityProbe",
    "CompatibilityReport",
    "CompatibilityStatus",
    "FEATURE_NAMES",
    "ISSUE_AUTHENTICATION_REQUIRED",
    "ISSUE_SERVER_INFO_UNAVAILABLE",
    "ISSUE_VERY_OLD_VERSION",
    "ProbeResult",
    "RECOMMEND_UPGRADE_MAJOR",
    "RECOMMEND_UPGRADE_MINOR",
    "SCORED_CAPABILITIES",
    "SKIPPED_BASIC_MODE",
    "VERDICT_GUIDANCE",
    "add_version_recommendations",
    "classify_outcome",
    "determine_overall_compatibility",
    "parse_version",
    "run_compatibility_check",
    "save_snapshot",
]
