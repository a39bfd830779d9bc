import io
import threading
from collections import defaultdict, deque
from typing import List, Optional

import pytest
import yaml
from python_on_whales.exceptions import DockerException

from dockerslaves.capacity import CapacityGate
from dockerslaves.driver import CommandResult, DockerDriver


class FakeProcess:
    """Stands in for the attached `docker start -ia` process."""

    def __init__(self, args: List[str]):
        self.args = args
        self.pid = 4242
        self.stdin = io.BytesIO()
        self.stdout = io.BytesIO(b"")
        self.stderr = io.BytesIO(b"")
        self.terminated = False
        self.waited = False

    def wait(self, timeout=None):
        self.waited = True
        return 0

    def terminate(self):
        self.terminated = True


class FakeLauncher:
    """
    Records every docker command and answers from a per-subcommand script.

    `create` answers with a fresh container id unless scripted otherwise;
    every other subcommand succeeds with no output. A scripted exception is raised.
    Object commands of the fake docker client are keyed with their object,
    as in `container rm` or `image pull`.
    """

    def __init__(self):
        self.calls: List[List[str]] = []
        self.masked: List[str] = []
        self.stdin_payloads: List[bytes] = []
        self.spawned: List[FakeProcess] = []
        self._scripts = defaultdict(deque)
        self._lock = threading.Lock()
        self._next_id = 0

    def script(self, subcommand: str, *results):
        self._scripts[subcommand].extend(results)

    def commands(self, subcommand: str) -> List[List[str]]:
        return [call for call in self.calls if self._key(call) == subcommand]

    def answer(self, argv: List[str], masked: Optional[str] = None) -> CommandResult:
        with self._lock:
            self.calls.append(argv)
            self.masked.append(masked if masked is not None else " ".join(argv))
            script = self._scripts[self._key(argv)]
            result = script.popleft() if script else None
            if result is None:
                result = self._default(argv)
        if isinstance(result, Exception):
            raise result
        return result

    def run(self, args, stdin=None, stdout=None):
        result = self.answer(args.to_list(), args.to_masked_string())
        if stdin is not None:
            self.stdin_payloads.append(stdin.read())
        if stdout is not None and result.stdout:
            stdout.write(result.stdout)
            return CommandResult(result.returncode, b"", result.stderr)
        return result

    def spawn(self, args):
        argv = args.to_list()
        with self._lock:
            self.calls.append(argv)
            self.masked.append(args.to_masked_string())
        process = FakeProcess(argv)
        self.spawned.append(process)
        return process

    @staticmethod
    def _key(argv: List[str]) -> str:
        if argv[1] in ("container", "image"):
            return f"{argv[1]} {argv[2]}"
        return argv[1]

    def _default(self, argv):
        if argv[1] == "create":
            self._next_id += 1
            return CommandResult(0, f"c0ffee{self._next_id:06d}\n".encode())
        return CommandResult(0)


class _FakeObjectCommands:
    """`client.container` / `client.image`: a non-zero scripted exit raises DockerException."""

    def __init__(self, client: "FakeDockerClient", kind: str):
        self._client = client
        self._kind = kind

    def _call(self, verb: str, x: str):
        argv = self._client.docker_cmd + [self._kind, verb, x]
        result = self._client.launcher.answer(argv)
        if result.returncode != 0:
            raise DockerException(argv, result.returncode, result.stdout or None, result.stderr or None)

    def exists(self, x: str) -> bool:
        self._call("inspect", x)
        return True

    def remove(self, x: str, **kwargs):
        self._call("rm", x)

    def pull(self, x: str, **kwargs):
        self._call("pull", x)


class FakeDockerClient:
    """Stands in for python_on_whales.DockerClient, recording on the fake launcher."""

    def __init__(self, launcher: FakeLauncher, docker_cmd=("docker",)):
        self.launcher = launcher
        self.docker_cmd = list(docker_cmd)
        self.container = _FakeObjectCommands(self, "container")
        self.image = _FakeObjectCommands(self, "image")


def write_yaml(path, data):
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


@pytest.fixture
def fake_launcher():
    return FakeLauncher()


@pytest.fixture
def docker_client(fake_launcher):
    return FakeDockerClient(fake_launcher)


@pytest.fixture
def driver(fake_launcher, docker_client):
    return DockerDriver(launcher=fake_launcher, docker_client=docker_client)


@pytest.fixture
def gate():
    return CapacityGate(container_cap=2, base_retry_delay=1, max_retry_delay=4)


@pytest.fixture
def create_yaml_file(tmp_path):
    """A pytest fixture to create temporary YAML files by name."""
    def _create_file(name: str, data: dict):
        return write_yaml(tmp_path / name, data)
    return _create_file
