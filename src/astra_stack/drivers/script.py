"""Driver that runs each component's deploy script."""

import os
import signal
import subprocess
import threading
import time
from collections import deque
from pathlib import Path
from typing import Dict, Optional

from astra_stack.config.models import Component
from astra_stack.drivers.base import BaseDriver, DriverResult
from astra_stack.health.prober import HealthProber
from astra_stack.utils.errors import ErrorContext, error_handler
from astra_stack.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class ScriptDriver(BaseDriver):
    """Runs ``bash <scripts_dir>/deploy-<component>.sh <deploy|stop>``.

    The script receives the backend in ``DEPLOYMENT_MODE`` and the port in
    ``DEFAULT_PORT``. Its output is streamed to the log and appended to
    ``<log_dir>/<component>.log``.

    Scripts run in their own session: Ctrl+C in the orchestrator does not
    interrupt a deploy that has already started.
    A component without a script has nothing to stop.
    """

    # Output lines kept to explain a failure
    TAIL_LINES = 20

    def __init__(
        self,
        scripts_dir: Path,
        log_dir: Optional[Path] = None,
        shell: str = "bash",
        command_timeout: Optional[float] = None,
        prober: Optional[HealthProber] = None
    ):
        """Initialize script driver.

        Args:
            scripts_dir: Directory holding the component scripts
            log_dir: Directory for per-component log files
            shell: Interpreter used to run scripts
            command_timeout: Optional upper bound for one script run
            prober: Prober used for status checks
        """
        super().__init__(prober)
        self.scripts_dir = Path(scripts_dir)
        self.log_dir = Path(log_dir) if log_dir else None
        self.shell = shell
        self.command_timeout = command_timeout

    def script_path(self, component: Component) -> Path:
        """Location of the component's script."""
        return self.scripts_dir / component.script_name

    def log_path(self, component: Component) -> Optional[Path]:
        """Location of the component's log file."""
        return self.log_dir / f"{component.name}.log" if self.log_dir else None

    def build_env(self, component: Component, backend: str) -> Dict[str, str]:
        """Environment passed to the component script."""
        env = os.environ.copy()
        env["DEPLOYMENT_MODE"] = backend
        env["DEFAULT_PORT"] = str(component.port)
        env.update(component.environment)
        return env

    def deploy(self, component: Component, backend: str) -> DriverResult:
        return self._run(component, backend, "deploy")

    def stop(self, component: Component, backend: str) -> DriverResult:
        return self._run(component, backend, "stop")

    def _run(self, component: Component, backend: str, operation: str) -> DriverResult:
        with LogContext(component=component.name, backend=backend, operation=operation):
            return self._execute_script(component, backend, operation)

    def _execute_script(self, component: Component, backend: str, operation: str) -> DriverResult:
        script = self.script_path(component)
        start_time = time.monotonic()

        if not script.is_file():
            if operation == "stop":
                logger.info(f"No script at {script}, nothing to stop")
                return DriverResult.ok(component.name)
            reason = f"Deployment script not found: {script}"
            logger.error(reason)
            return DriverResult.failed(component.name, reason)

        logger.info(f"Executing {script.name} {operation} (backend: {backend})")

        tail = deque(maxlen=self.TAIL_LINES)
        timed_out = threading.Event()
        timer = None
        log_file = None
        process = None
        try:
            log_path = self.log_path(component)
            if log_path:
                log_path.parent.mkdir(parents=True, exist_ok=True)
                log_file = open(log_path, "a")

            # Own process group so a timeout can kill everything the script started
            process = subprocess.Popen(
                [self.shell, str(script), operation],
                env=self.build_env(component, backend),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,  # Line buffered
                start_new_session=True,
            )

            if self.command_timeout:
                timer = threading.Timer(self.command_timeout, self._kill, (process, timed_out))
                timer.daemon = True
                timer.start()

            for line in process.stdout:
                line = line.rstrip()
                if not line:
                    continue
                tail.append(line)
                logger.info(line)
                if log_file:
                    log_file.write(line + "\n")
                    log_file.flush()

            exit_code = process.wait()
            if timed_out.is_set():
                raise subprocess.TimeoutExpired(process.args, self.command_timeout)

        except Exception as e:
            if process is not None and process.poll() is None:
                self._kill(process)
                process.wait()
            error = error_handler.handle_exception(
                e,
                ErrorContext(component=component.name, backend=backend, operation=operation)
            )
            error_handler.log_error(error)
            return DriverResult.failed(
                component.name,
                error.message,
                exit_code=error.context.exit_code,
                duration=time.monotonic() - start_time
            )
        finally:
            if timer:
                timer.cancel()
            if log_file:
                log_file.close()

        duration = time.monotonic() - start_time
        if exit_code == 0:
            logger.info(f"{operation} completed", extra={'duration': duration})
            return DriverResult.ok(component.name, duration=duration)

        reason = "\n".join(tail) if tail else f"{script.name} {operation} exited with status {exit_code}"
        logger.error(f"{operation} failed with exit status {exit_code}")
        return DriverResult.failed(component.name, reason, exit_code=exit_code, duration=duration)

    @staticmethod
    def _kill(process: subprocess.Popen, timed_out: Optional[threading.Event] = None) -> None:
        if timed_out is not None:
            timed_out.set()
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass  # Already exited
