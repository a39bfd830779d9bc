import logging

import pytest
from click.testing import CliRunner

from dockerslaves import __version__
from dockerslaves import cli as cli_module
from dockerslaves import runner as runner_module
from dockerslaves.cli import cli
from dockerslaves.driver import CommandResult, DockerDriver
from dockerslaves.store import ContextStore

JOB = {
    'name': 'app',
    'containers': {'build_host_image': {'image': 'maven:3'}},
    'scm': ['git clone https://example.com/app.git .'],
    'steps': ['mvn -B verify'],
}


@pytest.fixture(autouse=True)
def restore_root_handlers():
    """setup_logger binds handlers to the runner's streams; drop them after each test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def fake_driver(monkeypatch, fake_launcher, docker_client):
    def _create_driver(config):
        return DockerDriver(launcher=fake_launcher, docker_client=docker_client)
    monkeypatch.setattr(runner_module, "create_driver", _create_driver)
    monkeypatch.setattr(cli_module, "create_driver", _create_driver)


@pytest.fixture
def files(create_yaml_file, tmp_path):
    host = create_yaml_file("host.yml", {'state_dir': str(tmp_path / "state")})
    job = create_yaml_file("job.yml", JOB)
    return str(host), str(job)


class TestCli:
    """Commands of the dockerslaves CLI."""

    def test_version(self):
        result = CliRunner().invoke(cli, ['--version'])
        assert result.exit_code == 0
        assert f"dockerslaves, version {__version__}" in result.output

    def test_run_success(self, fake_driver, files, fake_launcher, tmp_path, caplog):
        host, job = files
        with caplog.at_level(logging.INFO):
            result = CliRunner().invoke(cli, ['run', job, '-c', host, '-o', str(tmp_path / "out")])

        assert result.exit_code == 0, result.output
        assert "Job 'app' succeeded." in caplog.text
        assert len(fake_launcher.spawned) == 1

    def test_run_exit_status_is_the_failing_step(self, fake_driver, files, fake_launcher):
        host, job = files
        fake_launcher.script("start", CommandResult(0), CommandResult(3))
        result = CliRunner().invoke(cli, ['run', job, '-c', host])
        assert result.exit_code == 3

    def test_run_missing_job_file_aborts(self, fake_driver, files, caplog):
        host, _ = files
        with caplog.at_level(logging.ERROR):
            result = CliRunner().invoke(cli, ['run', 'missing.yml', '-c', host])
        assert result.exit_code == 1
        assert "Configuration error" in caplog.text

    def test_run_docker_failure_aborts(self, fake_driver, files, fake_launcher, caplog):
        host, job = files
        fake_launcher.script("create", CommandResult(125))
        with caplog.at_level(logging.ERROR):
            result = CliRunner().invoke(cli, ['run', job, '-c', host])
        assert result.exit_code == 1
        assert "Docker error" in caplog.text

    def test_status_without_context(self, files, caplog):
        host, _ = files
        with caplog.at_level(logging.INFO):
            result = CliRunner().invoke(cli, ['status', 'app', '-c', host])
        assert result.exit_code == 0
        assert "No build context recorded for 'app'" in caplog.text

    def test_status_after_run(self, fake_driver, files, fake_launcher):
        host, job = files
        CliRunner().invoke(cli, ['run', job, '-c', host])
        remoting_id = fake_launcher.spawned[0].args[-1]

        result = CliRunner().invoke(cli, ['status', 'app', '-c', host])

        assert result.exit_code == 0
        assert f"Remoting:   {remoting_id[:12]}" in result.output
        assert "No side or build container left behind." in result.output

    def test_clean_removes_remoting_and_forgets(self, fake_driver, files, fake_launcher, tmp_path):
        host, job = files
        CliRunner().invoke(cli, ['run', job, '-c', host])
        remoting_id = fake_launcher.spawned[0].args[-1]

        result = CliRunner().invoke(cli, ['clean', 'app', '-c', host])

        assert result.exit_code == 0
        assert fake_launcher.commands("container rm")[-1] == ["docker", "container", "rm", remoting_id]
        assert ContextStore(tmp_path / "state").load("app") is None

    @pytest.mark.parametrize("command", ["status", "clean"])
    def test_job_name_cannot_escape_the_state_dir(self, fake_driver, files, fake_launcher, tmp_path, caplog, command):
        host, _ = files
        outside = tmp_path / "context.json"
        outside.write_text('{"constraint": "default"}')

        with caplog.at_level(logging.ERROR):
            result = CliRunner().invoke(cli, [command, '..', '-c', host])

        assert result.exit_code == 1
        assert "Invalid job name: '..'" in caplog.text
        assert outside.exists()
        assert fake_launcher.calls == []
