"""HTTP health probing with bounded timeouts and cancellation."""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import requests
from urllib3.exceptions import LocationParseError

from astra_stack.utils.logging import get_logger

logger = get_logger(__name__)


class ProbeStatus(Enum):
    """Outcome of a polling probe."""
    HEALTHY = "healthy"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class HealthStatus(Enum):
    """Point-in-time health of a component endpoint."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class ProbeResult:
    """Result of polling a health endpoint."""

    status: ProbeStatus
    url: str
    attempts: int = 0
    elapsed: float = 0.0  # seconds
    last_error: Optional[str] = None

    def is_healthy(self) -> bool:
        """Check if the endpoint became ready."""
        return self.status == ProbeStatus.HEALTHY


def is_ready_response(response: requests.Response) -> bool:
    """Any non-error HTTP response means the service is up."""
    return response.status_code < 400


class HealthProber:
    """Polls component health endpoints."""

    # Seconds between "still waiting" progress messages
    PROGRESS_EVERY = 20

    def __init__(
        self,
        request_timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        session_factory: Callable[[], requests.Session] = requests.Session
    ):
        """Initialize prober.

        Args:
            request_timeout: Upper bound for a single HTTP request
            clock: Monotonic clock used for deadlines
            session_factory: Creates the HTTP session used by one probe
        """
        self.request_timeout = request_timeout
        self.clock = clock
        self.session_factory = session_factory

    def probe(
        self,
        url: str,
        timeout: float,
        poll_interval: float = 2.0,
        cancel_event: Optional[threading.Event] = None,
        component: Optional[str] = None
    ) -> ProbeResult:
        """Poll ``url`` until it answers or ``timeout`` seconds elapse.

        A probe never reports TIMED_OUT before the deadline and never polls
        past it. Setting ``cancel_event`` ends the probe at the next wait.

        Args:
            url: Health endpoint
            timeout: Overall deadline in seconds
            poll_interval: Seconds between attempts
            cancel_event: Shared abort signal
            component: Component name for log records

        Returns:
            ProbeResult
        """
        cancel_event = cancel_event or threading.Event()
        extra = {'component': component} if component else {}
        start = self.clock()
        deadline = start + timeout
        attempts = 0
        last_error = None
        next_progress = self.PROGRESS_EVERY

        logger.info(f"Waiting for {url} (timeout {timeout}s)", extra=extra)

        with self.session_factory() as session:
            while True:
                if cancel_event.is_set():
                    return self._result(ProbeStatus.CANCELLED, url, attempts, start, last_error)

                remaining = deadline - self.clock()
                if remaining <= 0:
                    break

                attempts += 1
                try:
                    response = session.get(url, timeout=min(self.request_timeout, remaining))
                    if is_ready_response(response):
                        logger.info(f"Health check passed ({url})", extra=extra)
                        return self._result(ProbeStatus.HEALTHY, url, attempts, start, None)
                    last_error = f"HTTP {response.status_code}"
                except requests.exceptions.RequestException as e:
                    last_error = str(e)
                except (LocationParseError, ValueError) as e:
                    last_error = f"invalid health URL: {e}"

                elapsed = self.clock() - start
                if elapsed >= next_progress:
                    logger.info(
                        f"Still waiting for health check... ({int(elapsed)}s/{int(timeout)}s)",
                        extra=extra
                    )
                    next_progress += self.PROGRESS_EVERY

                remaining = deadline - self.clock()
                if remaining <= 0:
                    break
                if cancel_event.wait(min(poll_interval, remaining)):
                    return self._result(ProbeStatus.CANCELLED, url, attempts, start, last_error)

        logger.warning(f"Health check failed after {timeout}s ({url})", extra=extra)
        return self._result(ProbeStatus.TIMED_OUT, url, attempts, start, last_error)

    def check(self, url: str, request_timeout: float = 3.0) -> HealthStatus:
        """Single-shot health check.

        Args:
            url: Health endpoint
            request_timeout: Timeout for the request

        Returns:
            HEALTHY on a non-error response, UNHEALTHY when the endpoint does
            not answer or answers with an error, UNKNOWN if it cannot be asked
        """
        try:
            with self.session_factory() as session:
                response = session.get(url, timeout=request_timeout)
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema, LocationParseError, ValueError) as e:
            logger.debug(f"Cannot check {url}: {e}")
            return HealthStatus.UNKNOWN
        except requests.exceptions.RequestException as e:
            logger.debug(f"Health check for {url} failed: {e}")
            return HealthStatus.UNHEALTHY

        return HealthStatus.HEALTHY if is_ready_response(response) else HealthStatus.UNHEALTHY

    def _result(
        self,
        status: ProbeStatus,
        url: str,
        attempts: int,
        start: float,
        last_error: Optional[str]
    ) -> ProbeResult:
        return ProbeResult(
            status=status,
            url=url,
            attempts=attempts,
            elapsed=self.clock() - start,
            last_error=last_error
        )
