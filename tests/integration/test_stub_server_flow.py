"""End-to-end flows against a local stub platform API and UAA."""

from __future__ import annotations

import json
import threading
from collections.abc import Iterator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from capictl.application.compatibility import CompatibilityStatus, run_compatibility_check
from capictl.cli.app import app
from capictl.domain.endpoints import EndpointResolver, EndpointSource
from capictl.domain.profiles import CliConfig, ConfigResolver, LegacySettings
from capictl.integrations.uaa.transport import create_uaa_client

TOKEN = "stub-token"
_MANAGEMENT_PATHS = {"/Users", "/Groups", "/oauth/clients"}


class _StubHandler(BaseHTTPRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        return

    def _send(self, status: int, body: dict[str, Any]) -> None:
        data = json.dumps(body).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def do_GET(self) -> None:  # noqa: N802
        path = self.path.split("?", 1)[0]
        base = f"http://{self.server.server_address[0]}:{self.server.server_address[1]}"
        if path == "/":
            self._send(200, {"links": {"uaa": {"href": base}}})
        elif path == "/info":
            self._send(200, {"app": {"name": "UAA", "version": "4.28.0"}})
        elif path in {"/token_key", "/token_keys"}:
            self._send(200, {"keys": [{"kid": "stub"}]})
        elif path in _MANAGEMENT_PATHS:
            if self.headers.get("Authorization") != f"Bearer {TOKEN}":
                self._send(401, {"error": "unauthorized"})
            elif path == "/oauth/clients":
                self._send(403, {"error": "insufficient_scope"})
            else:
                self._send(200, {"resources": [], "totalResults": 0})
        else:
            self._send(404, {"error": "not_found"})


@pytest.fixture
def stub_server() -> Iterator[str]:
    server = ThreadingHTTPServer(("127.0.0.1", 0), _StubHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        host, port = server.server_address[:2]
        yield f"http://{host}:{port}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def test_discovery_then_probe(stub_server: str) -> None:
    config = CliConfig(legacy=LegacySettings(api=stub_server, uaa_token=TOKEN))

    resolved = EndpointResolver().resolve(config)
    assert resolved.source is EndpointSource.DISCOVERY
    assert resolved.url == stub_server

    identity = ConfigResolver(config).resolve_identity(resolved.url)
    with create_uaa_client(identity) as client:
        report = run_compatibility_check(client, authenticated=identity.authenticated)

    # Users and groups succeed, clients are permission-limited: 3 of 4 scored.
    assert report.overall is CompatibilityStatus.PARTIAL
    assert report.version == "4.28.0"
    assert "Consider upgrading to UAA 4.30+ for best compatibility" in report.recommendations
    assert "OAuth Client Management" not in report.features


def test_cli_compatibility_against_stub(stub_server: str, tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(f'api = "{stub_server}"\nuaa_token = "{TOKEN}"\n', encoding="utf-8")

    result = CliRunner().invoke(
        app, ["uaa", "compatibility", "--config", str(config_path), "-o", "json"], color=False
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["endpoint"] == stub_server
    assert payload["overall"] == "partial"


def test_cli_unauthenticated_skips_management(stub_server: str, tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(f'uaa_endpoint = "{stub_server}"\n', encoding="utf-8")

    result = CliRunner().invoke(
        app, ["uaa", "compatibility", "--config", str(config_path), "-o", "json"], color=False
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    skipped = [entry["capability"] for entry in payload["results"] if entry["skipped"]]
    assert skipped == ["UserManagement", "GroupManagement", "ClientManagement"]
    assert "Authentication required for full testing" in payload["issues"]
    # Only Authentication is scored and it passed.
    assert payload["overall"] == "compatible"


def test_cli_target_then_version(stub_server: str, tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    runner = CliRunner()

    target = runner.invoke(app, ["uaa", "target", stub_server, "--config", str(config_path)])
    assert target.exit_code == 0, target.output

    version = runner.invoke(
        app, ["uaa", "version", "--config", str(config_path), "-o", "json"], color=False
    )
    assert version.exit_code == 0, version.output
    assert json.loads(version.stdout) == {"endpoint": stub_server, "version": "4.28.0"}
