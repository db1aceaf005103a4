from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import httpx
import pytest


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("capictl")
    group.addoption(
        "--offline",
        action="store_true",
        dest="capictl_offline",
        help="Run offline tests only (deselect tests marked 'online').",
    )
    group.addoption(
        "--online-only",
        action="store_true",
        dest="capictl_online_only",
        help="Run only tests marked 'online' (deselect offline).",
    )


def _is_integration_path(s: str) -> bool:
    s = s.replace("\\", "/")
    return s.startswith("tests/integration/") or "/tests/integration/" in s


def _mark_by_path(items: list[pytest.Item]) -> None:
    for item in items:
        node_str = str(getattr(item, "fspath", item.nodeid))
        marker = (
            pytest.mark.online
            if _is_integration_path(node_str)
            else pytest.mark.offline
        )
        item.add_marker(marker)


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    _mark_by_path(items)

    offline_only = bool(config.getoption("capictl_offline"))
    online_only = bool(config.getoption("capictl_online_only"))

    if offline_only and online_only:
        raise pytest.UsageError("--offline and --online-only are mutually exclusive")

    deselect: list[pytest.Item] = []
    if online_only:
        deselect = [i for i in items if "online" not in i.keywords]
    elif offline_only:
        deselect = [i for i in items if "online" in i.keywords]

    if not deselect:
        return

    config.hook.pytest_deselected(items=deselect)
    items[:] = [i for i in items if i not in deselect]


Route = tuple[int, Any]

UAA_INFO: dict[str, Any] = {
    "app": {"name": "UAA", "version": "4.32.1-RELEASE"},
    "links": {"login": "https://login.example.com"},
    "zone_name": "uaa",
}

HEALTHY_ROUTES: dict[str, Route] = {
    "/info": (200, UAA_INFO),
    "/token_key": (200, {"kid": "key-1", "alg": "RS256", "value": "pem"}),
    "/token_keys": (200, {"keys": [{"kid": "key-1"}]}),
    "/Users": (200, {"resources": [], "totalResults": 0}),
    "/Groups": (200, {"resources": [], "totalResults": 0}),
    "/oauth/clients": (200, {"resources": [], "totalResults": 0}),
}


def build_uaa_transport(
    routes: Mapping[str, Route],
    *,
    calls: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """Serve canned JSON bodies keyed by request path; unknown paths get 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        status, body = routes.get(request.url.path, (404, {"error": "not_found"}))
        if isinstance(body, BaseException):
            raise body
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler)


@pytest.fixture
def uaa_transport_factory() -> Callable[..., httpx.MockTransport]:
    return build_uaa_transport


@pytest.fixture
def healthy_routes() -> dict[str, Route]:
    return dict(HEALTHY_ROUTES)


@pytest.fixture(autouse=True)
def _isolate_capictl_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> None:
    for name in (
        "CAPICTL_API",
        "CAPICTL_TOKEN",
        "CAPICTL_UAA_ENDPOINT",
        "CAPICTL_UAA_TOKEN",
        "CAPICTL_SKIP_SSL_VALIDATION",
        "CAPICTL_CURRENT_API",
        "CAPICTL_OUTPUT",
        "CAPICTL_LOG_LEVEL",
        "CAPICTL_LOG_FORMAT",
        "CAPICTL_LOG_FILE",
        "CAPICTL_DEV_MODE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CAPICTL_CONFIG", str(tmp_path_factory.mktemp("home") / "config.toml"))
