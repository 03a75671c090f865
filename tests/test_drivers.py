"""Tests for the script and dry-run drivers."""

import stat
import textwrap

import pytest

from astra_stack.config.models import Component
from astra_stack.drivers.dry_run import DryRunDriver
from astra_stack.drivers.script import ScriptDriver
from astra_stack.health.prober import HealthStatus


@pytest.fixture
def agent():
    return Component(name="agent", port=18080, health_path="/health", environment={"DB_TYPE": "postgres"})


def write_script(directory, name, body):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text("#!/usr/bin/env bash\n" + textwrap.dedent(body))
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return path


class TestScriptDriver:
    """Test running component scripts."""

    def test_deploy_success(self, tmp_path, agent):
        write_script(tmp_path / "scripts", "deploy-agent.sh", """
            echo "operation=$1"
            exit 0
        """)
        driver = ScriptDriver(tmp_path / "scripts", log_dir=tmp_path / "logs")

        result = driver.deploy(agent, "docker")

        assert result.success
        assert result.exit_code == 0
        assert "operation=deploy" in (tmp_path / "logs" / "agent.log").read_text()

    def test_environment_is_passed(self, tmp_path, agent):
        write_script(tmp_path / "scripts", "deploy-agent.sh", """
            echo "mode=$DEPLOYMENT_MODE port=$DEFAULT_PORT db=$DB_TYPE"
        """)
        driver = ScriptDriver(tmp_path / "scripts", log_dir=tmp_path / "logs")

        driver.deploy(agent, "local")

        assert "mode=local port=18080 db=postgres" in (tmp_path / "logs" / "agent.log").read_text()

    def test_failure_reason_is_output_tail(self, tmp_path, agent):
        write_script(tmp_path / "scripts", "deploy-agent.sh", """
            echo "pulling images"
            echo "Error: port is already allocated" >&2
            exit 3
        """)
        driver = ScriptDriver(tmp_path / "scripts")

        result = driver.deploy(agent, "docker")

        assert not result.success
        assert result.exit_code == 3
        assert result.reason.splitlines()[-1] == "Error: port is already allocated"

    def test_silent_failure_reports_exit_status(self, tmp_path, agent):
        write_script(tmp_path / "scripts", "deploy-agent.sh", "exit 7\n")
        result = ScriptDriver(tmp_path / "scripts").deploy(agent, "docker")
        assert result.reason == "deploy-agent.sh deploy exited with status 7"

    def test_missing_script(self, tmp_path, agent):
        result = ScriptDriver(tmp_path / "scripts").deploy(agent, "docker")
        assert not result.success
        assert result.reason.startswith("Deployment script not found:")

    def test_stop_without_script_is_nothing_to_stop(self, tmp_path, agent):
        result = ScriptDriver(tmp_path / "scripts").stop(agent, "docker")
        assert result.success
        assert result.reason is None

    def test_stop_passes_operation(self, tmp_path, agent):
        write_script(tmp_path / "scripts", "deploy-agent.sh", """
            [ "$1" = "stop" ] || exit 1
        """)
        assert ScriptDriver(tmp_path / "scripts").stop(agent, "docker").success

    def test_custom_script_name(self, tmp_path):
        component = Component(name="rpa", port=18081, script="install-rpa.sh")
        write_script(tmp_path / "scripts", "install-rpa.sh", "exit 0\n")
        assert ScriptDriver(tmp_path / "scripts").deploy(component, "docker").success

    def test_timeout_kills_script(self, tmp_path, agent):
        write_script(tmp_path / "scripts", "deploy-agent.sh", "exec sleep 30\n")
        driver = ScriptDriver(tmp_path / "scripts", command_timeout=0.5)

        result = driver.deploy(agent, "docker")

        assert not result.success
        assert "timed out" in result.reason

    def test_missing_shell(self, tmp_path, agent):
        write_script(tmp_path / "scripts", "deploy-agent.sh", "exit 0\n")
        driver = ScriptDriver(tmp_path / "scripts", shell="definitely-not-a-shell")

        result = driver.deploy(agent, "docker")

        assert not result.success
        assert "not found" in result.reason


class TestDryRunDriver:
    """Test dry-run driver."""

    def test_always_succeeds(self, agent, caplog):
        driver = DryRunDriver()
        with caplog.at_level("INFO"):
            assert driver.deploy(agent, "docker").success
            assert driver.stop(agent, "docker").success
        assert "[DRY RUN] Would deploy agent" in caplog.text

    def test_status_uses_prober(self, agent, health_server):
        url, _ = health_server
        host, port = url.rsplit(":", 1)
        component = Component(name="agent", port=int(port), host=host.split("//")[1])
        assert DryRunDriver().status(component) == HealthStatus.HEALTHY
