"""
Shared pytest fixtures for the astra-stack test suite.
"""

import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from astra_stack.config.models import Component, StackSettings
from astra_stack.config.parser import ENV_VARS
from astra_stack.config.registry import ComponentRegistry

from tests.fakes import RecordingDriver, ScriptedProber


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every recognised setting from the environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def components():
    """Three-component stack without startup delays."""
    return [
        Component(name="shim", port=17777, health_path="/api/v1/plugins",
                  backend_aliases={"source": "local"}),
        Component(name="agent", port=18080, health_path="/health", depends_on=frozenset({"shim"})),
        Component(name="rpa", port=18081, depends_on=frozenset({"agent"})),
    ]


@pytest.fixture
def registry(components):
    return ComponentRegistry(components)


@pytest.fixture
def settings(tmp_path):
    """Fast settings: short probe cadence and no restart cool-down."""
    return StackSettings(
        health_check_timeout=2,
        health_check_interval=0.05,
        restart_cooldown=0,
        scripts_dir=tmp_path / "scripts",
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def driver():
    return RecordingDriver()


@pytest.fixture
def prober():
    return ScriptedProber()


class _HealthHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        state = self.server.state
        with state["lock"]:
            state["requests"] += 1
            ready = state["requests"] > state["fail_first"]
            code = state["status"] if ready else 503
        self.send_response(code)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format, *args):
        pass


@pytest.fixture
def health_server():
    """Local HTTP server whose health answers are controlled by the test.

    ``state["status"]`` is the code returned once the first
    ``state["fail_first"]`` requests have been answered with 503.
    """
    server = ThreadingHTTPServer(("127.0.0.1", 0), _HealthHandler)
    server.state = {"status": 200, "fail_first": 0, "requests": 0, "lock": threading.Lock()}
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    host, port = server.server_address
    yield f"http://{host}:{port}", server.state

    server.shutdown()
    server.server_close()
    thread.join()
