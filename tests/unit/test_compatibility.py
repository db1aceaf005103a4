from __future__ import annotations

import json
import os
import stat
import threading
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from capictl.application.compatibility import (
    ISSUE_AUTHENTICATION_REQUIRED,
    ISSUE_SERVER_INFO_UNAVAILABLE,
    ISSUE_VERY_OLD_VERSION,
    RECOMMEND_UPGRADE_MAJOR,
    RECOMMEND_UPGRADE_MINOR,
    SKIPPED_BASIC_MODE,
    VERDICT_GUIDANCE,
    Capability,
    CompatibilityProbe,
    CompatibilityReport,
    CompatibilityStatus,
    ProbeResult,
    add_version_recommendations,
    classify_outcome,
    determine_overall_compatibility,
    parse_version,
    save_snapshot,
)
from capictl.infrastructure.errors import TransportError, UaaApiError
from capictl.integrations.uaa.client import UaaClient
from capictl.integrations.uaa.transport import build_http_client

ENDPOINT = "https://uaa.example.com"
TransportFactory = Callable[..., httpx.MockTransport]


def _client(transport: httpx.MockTransport, token: str | None = "tok") -> UaaClient:
    return UaaClient(
        build_http_client(base_url=ENDPOINT, token=token, transport=transport),
        endpoint=ENDPOINT,
    )


def _statuses(report: CompatibilityReport) -> dict[Capability, CompatibilityStatus]:
    return {result.capability: result.status for result in report.results}


def test_fully_healthy_authenticated_run(
    uaa_transport_factory: TransportFactory, healthy_routes: dict
) -> None:
    report = CompatibilityProbe(
        _client(uaa_transport_factory(healthy_routes)), authenticated=True
    ).run()

    assert report.overall is CompatibilityStatus.COMPATIBLE
    assert report.version == "4.32.1-RELEASE"
    assert [result.capability for result in report.results] == list(Capability)
    assert all(status is CompatibilityStatus.COMPATIBLE for status in _statuses(report).values())
    assert report.features == [
        "OAuth2 Authentication",
        "User Management",
        "Group Management",
        "OAuth Client Management",
    ]
    assert report.issues == []
    assert report.recommendations == list(VERDICT_GUIDANCE[CompatibilityStatus.COMPATIBLE])
    assert report.server_info is not None


def test_server_info_failure_is_terminal(uaa_transport_factory: TransportFactory) -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    report = CompatibilityProbe(_client(httpx.MockTransport(handler)), authenticated=True).run()

    assert report.overall is CompatibilityStatus.INCOMPATIBLE
    assert [result.capability for result in report.results] == [Capability.SERVER_INFO]
    assert report.results[0].status is CompatibilityStatus.INCOMPATIBLE
    assert report.issues == [ISSUE_SERVER_INFO_UNAVAILABLE]
    assert len(calls) == 1


def test_forbidden_user_listing_yields_partial_overall(
    uaa_transport_factory: TransportFactory, healthy_routes: dict
) -> None:
    healthy_routes["/Users"] = (403, {"error": "insufficient_scope"})
    report = CompatibilityProbe(
        _client(uaa_transport_factory(healthy_routes)), authenticated=True, comprehensive=False
    ).run()

    statuses = _statuses(report)
    assert statuses[Capability.AUTHENTICATION] is CompatibilityStatus.COMPATIBLE
    assert statuses[Capability.USER_MANAGEMENT] is CompatibilityStatus.PARTIAL
    # 1 of 2 attempted stages compatible -> 0.5
    assert report.overall is CompatibilityStatus.PARTIAL


def test_unauthenticated_run_skips_gated_stages(
    uaa_transport_factory: TransportFactory, healthy_routes: dict
) -> None:
    calls: list[httpx.Request] = []
    report = CompatibilityProbe(
        _client(uaa_transport_factory(healthy_routes, calls=calls), token=None),
        authenticated=False,
    ).run()

    gated = [
        result
        for result in report.results
        if result.capability
        in (Capability.USER_MANAGEMENT, Capability.GROUP_MANAGEMENT, Capability.CLIENT_MANAGEMENT)
    ]
    assert len(gated) == 3
    assert all(result.skipped and result.status is CompatibilityStatus.UNKNOWN for result in gated)
    assert ISSUE_AUTHENTICATION_REQUIRED in report.issues
    assert report.overall is CompatibilityStatus.COMPATIBLE
    assert [call.url.path for call in calls] == ["/info", "/token_key", "/token_keys"]


def test_token_keys_failure_downgrades_authentication(
    uaa_transport_factory: TransportFactory, healthy_routes: dict
) -> None:
    healthy_routes["/token_keys"] = (500, {"error": "boom"})
    report = CompatibilityProbe(
        _client(uaa_transport_factory(healthy_routes)), authenticated=False
    ).run()
    assert _statuses(report)[Capability.AUTHENTICATION] is CompatibilityStatus.PARTIAL
    assert report.overall is CompatibilityStatus.INCOMPATIBLE


def test_token_key_failure_uses_uniform_classification(
    uaa_transport_factory: TransportFactory, healthy_routes: dict
) -> None:
    healthy_routes["/token_key"] = (500, {"error": "boom"})
    report = CompatibilityProbe(
        _client(uaa_transport_factory(healthy_routes)), authenticated=False
    ).run()
    assert _statuses(report)[Capability.AUTHENTICATION] is CompatibilityStatus.INCOMPATIBLE


def test_basic_mode_skips_group_and_client_management(
    uaa_transport_factory: TransportFactory, healthy_routes: dict
) -> None:
    calls: list[httpx.Request] = []
    report = CompatibilityProbe(
        _client(uaa_transport_factory(healthy_routes, calls=calls)),
        authenticated=True,
        comprehensive=False,
    ).run()
    skipped = {result.capability for result in report.results if result.skipped}
    assert skipped == {Capability.GROUP_MANAGEMENT, Capability.CLIENT_MANAGEMENT}
    assert {result.detail for result in report.results if result.skipped} == {SKIPPED_BASIC_MODE}
    assert "/Groups" not in [call.url.path for call in calls]
    assert report.overall is CompatibilityStatus.COMPATIBLE


def test_cancel_event_aborts_as_transport_failure(
    uaa_transport_factory: TransportFactory, healthy_routes: dict
) -> None:
    cancel = threading.Event()
    cancel.set()
    report = CompatibilityProbe(
        _client(uaa_transport_factory(healthy_routes)),
        authenticated=True,
        cancel_event=cancel,
    ).run()
    assert report.overall is CompatibilityStatus.INCOMPATIBLE
    assert report.issues == [ISSUE_SERVER_INFO_UNAVAILABLE]


def test_deadline_expiry_classifies_remaining_stages_incompatible(
    uaa_transport_factory: TransportFactory, healthy_routes: dict
) -> None:
    ticks = iter([0.0, 0.0, 0.0, 0.0, 100.0, 100.0, 100.0, 100.0, 100.0])
    report = CompatibilityProbe(
        _client(uaa_transport_factory(healthy_routes)),
        authenticated=True,
        deadline_seconds=5.0,
        clock=lambda: next(ticks),
    ).run()
    statuses = _statuses(report)
    assert statuses[Capability.SERVER_INFO] is CompatibilityStatus.COMPATIBLE
    assert statuses[Capability.USER_MANAGEMENT] is CompatibilityStatus.INCOMPATIBLE
    assert statuses[Capability.CLIENT_MANAGEMENT] is CompatibilityStatus.INCOMPATIBLE


def test_observer_sees_each_stage(
    uaa_transport_factory: TransportFactory, healthy_routes: dict
) -> None:
    seen: list[ProbeResult] = []
    CompatibilityProbe(
        _client(uaa_transport_factory(healthy_routes)),
        authenticated=True,
        observer=seen.append,
    ).run()
    assert len(seen) == 5


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (None, CompatibilityStatus.COMPATIBLE),
        (UaaApiError("GET /Users returned HTTP 401 Unauthorized"), CompatibilityStatus.PARTIAL),
        (UaaApiError("GET /Users returned HTTP 403 Forbidden"), CompatibilityStatus.PARTIAL),
        (UaaApiError("GET /Users returned HTTP 500 Internal Server Error"), CompatibilityStatus.INCOMPATIBLE),
        (TransportError("request aborted: deadline exceeded (timeout)"), CompatibilityStatus.INCOMPATIBLE),
    ],
)
def test_classify_outcome(error: Exception | None, expected: CompatibilityStatus) -> None:
    assert classify_outcome(error) is expected


def _result(capability: Capability, status: CompatibilityStatus, skipped: bool = False) -> ProbeResult:
    return ProbeResult(capability=capability, status=status, skipped=skipped)


def test_overall_thresholds() -> None:
    c, p, i = (
        CompatibilityStatus.COMPATIBLE,
        CompatibilityStatus.PARTIAL,
        CompatibilityStatus.INCOMPATIBLE,
    )
    caps = [
        Capability.AUTHENTICATION,
        Capability.USER_MANAGEMENT,
        Capability.GROUP_MANAGEMENT,
        Capability.CLIENT_MANAGEMENT,
    ]
    four = lambda *statuses: [_result(cap, s) for cap, s in zip(caps, statuses)]  # noqa: E731

    assert determine_overall_compatibility(four(c, c, c, c)) is c
    assert determine_overall_compatibility(four(c, c, c, p)) is p  # 0.75
    assert determine_overall_compatibility(four(c, c, p, i)) is p  # 0.5
    assert determine_overall_compatibility(four(c, p, p, i)) is i  # 0.25


def test_overall_ignores_server_info_and_skipped() -> None:
    results = [
        _result(Capability.SERVER_INFO, CompatibilityStatus.INCOMPATIBLE),
        _result(Capability.AUTHENTICATION, CompatibilityStatus.COMPATIBLE),
        _result(Capability.USER_MANAGEMENT, CompatibilityStatus.UNKNOWN, skipped=True),
    ]
    assert determine_overall_compatibility(results) is CompatibilityStatus.COMPATIBLE


def test_overall_unknown_when_nothing_attempted() -> None:
    assert determine_overall_compatibility([]) is CompatibilityStatus.UNKNOWN


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("4.32.1-RELEASE", (4, 32)),
        ("3.9.0", (3, 9)),
        ("v77.1", (77, 1)),
        ("no digits here", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_version(text: str | None, expected: tuple[int, int] | None) -> None:
    assert parse_version(text) == expected


def test_recent_version_gets_only_verdict_guidance() -> None:
    report = CompatibilityReport(
        endpoint=ENDPOINT, version="4.32.1-RELEASE", overall=CompatibilityStatus.COMPATIBLE
    )
    add_version_recommendations(report)
    assert report.issues == []
    assert report.recommendations == list(VERDICT_GUIDANCE[CompatibilityStatus.COMPATIBLE])


def test_very_old_version_adds_issue_and_upgrade() -> None:
    report = CompatibilityReport(
        endpoint=ENDPOINT, version="3.9.0", overall=CompatibilityStatus.PARTIAL
    )
    add_version_recommendations(report)
    assert report.issues == [ISSUE_VERY_OLD_VERSION]
    assert report.recommendations[0] == RECOMMEND_UPGRADE_MAJOR
    assert report.recommendations[1:] == list(VERDICT_GUIDANCE[CompatibilityStatus.PARTIAL])


def test_early_four_x_gets_soft_upgrade() -> None:
    report = CompatibilityReport(
        endpoint=ENDPOINT, version="4.12.0", overall=CompatibilityStatus.INCOMPATIBLE
    )
    add_version_recommendations(report)
    assert report.recommendations[0] == RECOMMEND_UPGRADE_MINOR
    assert report.issues == []


def test_unparseable_version_adds_nothing_version_specific() -> None:
    report = CompatibilityReport(endpoint=ENDPOINT, version="unknown")
    add_version_recommendations(report)
    assert report.issues == []
    assert report.recommendations == []


def test_report_json_round_trip_preserves_ordering() -> None:
    report = CompatibilityReport(
        endpoint=ENDPOINT,
        version="3.1",
        results=[_result(Capability.SERVER_INFO, CompatibilityStatus.COMPATIBLE)],
        overall=CompatibilityStatus.PARTIAL,
        issues=["b", "a"],
        recommendations=["z", "y", "x"],
    )
    restored = CompatibilityReport.from_json(report.to_json())
    assert restored.overall is CompatibilityStatus.PARTIAL
    assert restored.issues == ["b", "a"]
    assert restored.recommendations == ["z", "y", "x"]

    from_yaml = CompatibilityReport.from_yaml(report.to_yaml())
    assert from_yaml == restored


def test_save_snapshot_writes_private_json(tmp_path: Path) -> None:
    report = CompatibilityReport(endpoint=ENDPOINT, overall=CompatibilityStatus.COMPATIBLE)
    target = save_snapshot(report, tmp_path / "results.json")

    payload = json.loads(target.read_text(encoding="utf-8"))
    assert payload["overall"] == "compatible"
    assert payload["endpoint"] == ENDPOINT
    if os.name == "posix":
        assert stat.S_IMODE(target.stat().st_mode) == 0o600


def test_save_snapshot_defaults_to_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    target = save_snapshot(CompatibilityReport(endpoint=ENDPOINT))
    assert target == tmp_path / "uaa-compatibility-results.json"
    assert target.exists()


def test_interrupt_mid_request_aborts_remaining_stages(
    uaa_transport_factory: TransportFactory, healthy_routes: dict
) -> None:
    calls: list[httpx.Request] = []
    routes = dict(healthy_routes)
    routes["/Users"] = (0, KeyboardInterrupt())
    cancel = threading.Event()

    report = CompatibilityProbe(
        _client(uaa_transport_factory(routes, calls=calls)),
        authenticated=True,
        cancel_event=cancel,
    ).run()

    assert cancel.is_set()
    statuses = _statuses(report)
    assert statuses[Capability.SERVER_INFO] is CompatibilityStatus.COMPATIBLE
    assert statuses[Capability.AUTHENTICATION] is CompatibilityStatus.COMPATIBLE
    aborted = [
        result
        for result in report.results
        if result.capability
        in {Capability.USER_MANAGEMENT, Capability.GROUP_MANAGEMENT, Capability.CLIENT_MANAGEMENT}
    ]
    assert len(aborted) == 3
    assert all(result.status is CompatibilityStatus.INCOMPATIBLE for result in aborted)
    assert all("operation cancelled" in (result.detail or "") for result in aborted)
    paths = [call.url.path for call in calls]
    assert "/Groups" not in paths
    assert "/oauth/clients" not in paths


def test_interrupt_without_cancel_event_propagates(
    uaa_transport_factory: TransportFactory, healthy_routes: dict
) -> None:
    routes = dict(healthy_routes)
    routes["/Users"] = (0, KeyboardInterrupt())

    with pytest.raises(KeyboardInterrupt):
        CompatibilityProbe(_client(uaa_transport_factory(routes)), authenticated=True).run()
