"""Tests for the HTTP health prober."""

import socket
import threading
import time

import pytest
import requests
from urllib3.exceptions import LocationParseError

from astra_stack.health.prober import HealthProber, HealthStatus, ProbeStatus


# A hostname label longer than 63 characters cannot be put on the wire
OVERLONG_HOST_URL = "http://" + "a" * 300 + ":17777/health"


class RaisingSession:
    """Session whose requests fail with a fixed exception."""

    def __init__(self, error):
        self.error = error
        self.calls = 0

    def __enter__(self):
        return self

    def __exit__(self, *args):
        return False

    def get(self, url, timeout):
        self.calls += 1
        raise self.error


def unused_url():
    """URL on a port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}/health"


class TestProbe:
    """Test polling probes."""

    def test_healthy_on_first_attempt(self, health_server):
        url, _ = health_server
        result = HealthProber().probe(url + "/health", timeout=5, poll_interval=0.05)
        assert result.status == ProbeStatus.HEALTHY
        assert result.is_healthy()
        assert result.attempts == 1

    def test_becomes_healthy_after_retries(self, health_server):
        url, state = health_server
        state["fail_first"] = 2
        result = HealthProber().probe(url, timeout=5, poll_interval=0.05)
        assert result.status == ProbeStatus.HEALTHY
        assert result.attempts == 3

    def test_no_content_counts_as_ready(self, health_server):
        url, state = health_server
        state["status"] = 204
        assert HealthProber().probe(url, timeout=2, poll_interval=0.05).is_healthy()

    def test_times_out_no_earlier_than_deadline(self, health_server):
        url, state = health_server
        state["status"] = 500
        started = time.monotonic()
        result = HealthProber(request_timeout=0.5).probe(url, timeout=1, poll_interval=0.1)
        elapsed = time.monotonic() - started

        assert result.status == ProbeStatus.TIMED_OUT
        assert result.last_error == "HTTP 500"
        assert elapsed >= 1
        assert elapsed < 1 + 0.5 + 0.5
        assert result.attempts > 1

    def test_connection_refused_times_out(self):
        result = HealthProber(request_timeout=0.2).probe(unused_url(), timeout=0.5, poll_interval=0.1)
        assert result.status == ProbeStatus.TIMED_OUT
        assert result.last_error

    def test_cancel_stops_probe(self, health_server):
        url, state = health_server
        state["status"] = 503
        cancel = threading.Event()
        timer = threading.Timer(0.2, cancel.set)
        timer.start()

        started = time.monotonic()
        result = HealthProber().probe(url, timeout=30, poll_interval=0.1, cancel_event=cancel)
        timer.join()

        assert result.status == ProbeStatus.CANCELLED
        assert time.monotonic() - started < 5

    def test_already_cancelled(self, health_server):
        url, state = health_server
        cancel = threading.Event()
        cancel.set()
        result = HealthProber().probe(url, timeout=5, cancel_event=cancel)
        assert result.status == ProbeStatus.CANCELLED
        assert result.attempts == 0
        assert state["requests"] == 0

    def test_request_timeout_bounded_by_remaining_time(self):
        timeouts = []

        class Session:
            def __enter__(self):
                return self

            def __exit__(self, *args):
                return False

            def get(self, url, timeout):
                timeouts.append(timeout)
                raise requests.exceptions.ConnectionError("refused")

        prober = HealthProber(request_timeout=5.0, session_factory=Session)
        prober.probe("http://localhost:1/", timeout=0.3, poll_interval=0.1)
        assert timeouts
        assert all(timeout <= 0.3 for timeout in timeouts)


    def test_unparsable_location_is_recorded_not_raised(self):
        session = RaisingSession(LocationParseError("label empty or too long"))
        prober = HealthProber(session_factory=lambda: session)

        result = prober.probe("http://example/", timeout=0.3, poll_interval=0.1)

        assert result.status == ProbeStatus.TIMED_OUT
        assert "invalid health URL" in result.last_error
        assert session.calls >= 1

    def test_overlong_host_times_out(self):
        result = HealthProber(request_timeout=0.2).probe(OVERLONG_HOST_URL, timeout=0.3, poll_interval=0.1)
        assert result.status == ProbeStatus.TIMED_OUT
        assert result.last_error


class TestCheck:
    """Test single-shot status checks."""

    def test_healthy(self, health_server):
        url, _ = health_server
        assert HealthProber().check(url) == HealthStatus.HEALTHY

    def test_error_status_is_unhealthy(self, health_server):
        url, state = health_server
        state["status"] = 502
        assert HealthProber().check(url) == HealthStatus.UNHEALTHY

    def test_connection_refused_is_unhealthy(self):
        assert HealthProber().check(unused_url(), request_timeout=0.5) == HealthStatus.UNHEALTHY

    @pytest.mark.parametrize("url", ["not a url", "ftp://localhost/health", "http://", OVERLONG_HOST_URL])
    def test_unrequestable_url_is_unknown(self, url):
        assert HealthProber().check(url) == HealthStatus.UNKNOWN

    @pytest.mark.parametrize("error", [LocationParseError("bad host"), ValueError("bad port")])
    def test_url_parse_errors_are_unknown(self, error):
        prober = HealthProber(session_factory=lambda: RaisingSession(error))
        assert prober.check("http://example/health") == HealthStatus.UNKNOWN

    def test_status_is_idempotent(self, health_server):
        url, _ = health_server
        prober = HealthProber()
        assert prober.check(url) == prober.check(url) == HealthStatus.HEALTHY
