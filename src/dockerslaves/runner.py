"""
Run one build of a job file outside of a CI server.

Implements the host side of `dockerslaves.protocols` and drives the
provisioner through a whole build:

    launch remoting -> copy files in -> scm steps -> checkout signal
      -> build steps -> copy artifacts out -> clean -> persist context
"""

import io
import logging
import subprocess
import sys
import tarfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional

from . import constants
from .capacity import CapacityGate
from .computer import DockerComputerLauncher
from .config import Command, Config, JobConfig
from .datacls import JobBuildsContainersContext, ProcStarter
from .definitions import JobBuildsContainersDefinition
from .driver import DockerDriver, LocalLauncher
from .exceptions import RuntimeCommandFailedError
from .matrix import MatrixProvisionQueueListener, QueueItem
from .provisioner import DockerJobContainersProvisioner
from .store import ContextStore

logger = logging.getLogger(__name__)

CHANNEL_CLOSE_TIMEOUT = 10


def create_driver(config: Config) -> DockerDriver:
    """A docker driver for the host described by `config`."""
    docker_conf = config.docker
    remoting = config.remoting
    return DockerDriver(
        host=docker_conf.host,
        config_dir=docker_conf.config,
        verbose=docker_conf.verbose,
        launcher=LocalLauncher(verbose=docker_conf.verbose, timeout=docker_conf.command_timeout),
        remoting_tmpdir=remoting.tmpdir,
        remoting_agent_jar=remoting.agent_jar,
        build_user=remoting.user,
    )


class Job:
    """A job as seen by the provisioner: a name, a definition, and its last build's context."""

    def __init__(
        self,
        name: str,
        definition: Optional[JobBuildsContainersDefinition] = None,
        last_context: Optional[JobBuildsContainersContext] = None,
    ):
        self.name = name
        self._definition = definition
        self._last_context = last_context

    def get_containers_definition(self) -> Optional[JobBuildsContainersDefinition]:
        return self._definition

    def set_containers_definition(self, definition: JobBuildsContainersDefinition):
        self._definition = definition

    def get_last_build_context(self) -> Optional[JobBuildsContainersContext]:
        return self._last_context


class CheckoutEvents:
    """Build event source fired by the runner once the scm steps succeeded."""

    def __init__(self):
        self._listeners: List[Callable[[], None]] = []

    def add_checkout_listener(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def checkout_completed(self):
        for callback in self._listeners:
            callback()


class ContainerStepExecutor:
    """Runs every step in a brand new build container."""

    def __init__(self, provisioner: DockerJobContainersProvisioner):
        self.provisioner = provisioner

    def execute(self, starter: ProcStarter) -> int:
        logger.info(f"[{self.provisioner.job.name}] $ {starter.masked_command()}")
        return self.provisioner.run(starter)


class LoggingTransport:
    """
    Drains the remoting channel's stdout and stderr into the debug log.

    Both pipes need a reader: an agent that fills its stderr pipe blocks and
    never sees the EOF that closes the channel.
    """

    def connect(self, process: subprocess.Popen) -> None:
        for tag, stream in (("remoting", process.stdout), ("remoting:stderr", process.stderr)):
            if stream is None:
                continue
            thread = threading.Thread(target=self._drain, args=(tag, stream), daemon=True)
            thread.start()

    @staticmethod
    def _drain(tag: str, stream):
        for line in iter(stream.readline, b""):
            logger.debug(f"[{tag}] {line.decode('utf-8', errors='replace').rstrip()}")


@dataclass
class BuildResult:
    job_name: str
    exit_status: int
    skipped: bool = False
    failed_step: Optional[str] = None
    artifacts: Optional[List[Path]] = None

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class BuildRunner:
    """
    Runs a single build of a job file against one docker host.

    The capacity gate is owned by the caller so several runners in the same
    process share it.
    """

    def __init__(
        self,
        config: Config,
        gate: CapacityGate,
        store: Optional[ContextStore] = None,
        driver_factory: Optional[Callable[[], DockerDriver]] = None,
        output: Optional[BinaryIO] = None,
        artifacts_dir: Optional[Path] = None,
    ):
        self.config = config
        self.gate = gate
        self.store = store or ContextStore(config.state_dir)
        self.driver_factory = driver_factory or self._default_driver
        self.output = output if output is not None else sys.stdout.buffer
        self.artifacts_dir = Path(artifacts_dir) if artifacts_dir else Path.cwd()

    def _default_driver(self) -> DockerDriver:
        return create_driver(self.config)

    def resolve_definition(self, job_config: JobConfig, job: Job) -> Optional[JobBuildsContainersDefinition]:
        definition = job_config.containers_definition()
        if definition is not None:
            return definition
        item = QueueItem(job=job, matrix_definition=job_config.matrix_definition(), assigned_label=job_config.model.label)
        return MatrixProvisionQueueListener().on_enter_buildable(item)

    def run(self, job_config: JobConfig, cancel_event: Optional[threading.Event] = None) -> BuildResult:
        job = Job(job_config.name, last_context=self.store.load(job_config.name))
        definition = self.resolve_definition(job_config, job)
        if definition is None:
            logger.info(f"[{job.name}] No containers definition applies, nothing to run")
            return BuildResult(job.name, 0, skipped=True)
        job.set_containers_definition(definition)

        events = CheckoutEvents()
        provisioner = DockerJobContainersProvisioner(
            job,
            self.driver_factory(),
            self.gate,
            remoting_image=self.config.remoting_image,
            scm_image=self.config.scm_image,
            events=events,
            teardown_workers=self.config.teardown_workers,
        )
        executor = ContainerStepExecutor(provisioner)
        process = None
        result = BuildResult(job.name, 0)
        try:
            process = DockerComputerLauncher().launch(provisioner, LoggingTransport(), cancel_event)
            self._copy_in(provisioner, job_config)

            result = self._run_steps(executor, job_config, job_config.model.scm)
            if result.ok:
                events.checkout_completed()
                result = self._run_steps(executor, job_config, job_config.model.steps)
            if result.ok:
                result.artifacts = self._copy_out(provisioner, job_config)
        finally:
            provisioner.clean()
            self.store.save(job.name, provisioner.context)
            self._close_channel(job.name, process)

        logger.info(f"[{job.name}] Build finished with exit status {result.exit_status}")
        return result

    def _run_steps(self, executor: ContainerStepExecutor, job_config: JobConfig, commands: List[Command]) -> BuildResult:
        for command in commands:
            starter = ProcStarter.from_command(
                command, job_config.workdir, secrets=job_config.model.secrets, stdout=self.output
            )
            status = executor.execute(starter)
            if status != 0:
                step = command if isinstance(command, str) else " ".join(command)
                for secret in job_config.model.secrets:
                    if secret:
                        step = step.replace(secret, constants.MASK)
                logger.error(f"[{job_config.name}] Step '{step}' failed with exit status {status}")
                return BuildResult(job_config.name, status, failed_step=step)
        return BuildResult(job_config.name, 0)

    def _copy_in(self, provisioner: DockerJobContainersProvisioner, job_config: JobConfig):
        remoting = provisioner.context.remoting_container
        for local, destination in job_config.model.files.items():
            local_path = Path(local)
            archive = io.BytesIO()
            with tarfile.open(fileobj=archive, mode="w") as tar:
                tar.add(str(local_path), arcname=local_path.name)
            archive.seek(0)
            status = provisioner.driver.put_file_content(remoting.id, destination, archive)
            if status != 0:
                raise RuntimeCommandFailedError(
                    f"Failed to copy {local_path} into {destination}", returncode=status
                )
            logger.info(f"[{job_config.name}] Copied {local_path} to {destination}")

    def _copy_out(self, provisioner: DockerJobContainersProvisioner, job_config: JobConfig) -> List[Path]:
        remoting = provisioner.context.remoting_container
        collected = []
        if job_config.model.artifacts:
            self.artifacts_dir.mkdir(parents=True, exist_ok=True)
        for source in job_config.model.artifacts:
            target = self.artifacts_dir / f"{Path(source).name or 'root'}.tar"
            with open(target, "wb") as out:
                status = provisioner.driver.get_file_content(remoting.id, source, out)
            if status != 0:
                target.unlink(missing_ok=True)
                logger.warning(f"[{job_config.name}] Artifact {source} could not be copied (exit {status})")
                continue
            logger.info(f"[{job_config.name}] Archived {source} to {target}")
            collected.append(target)
        return collected

    @staticmethod
    def _close_channel(job_name: str, process: Optional[subprocess.Popen]):
        if process is None:
            return
        # EOF on stdin stops the agent, and with it the remoting container
        if process.stdin is not None:
            process.stdin.close()
        try:
            process.wait(timeout=CHANNEL_CLOSE_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning(f"[{job_name}] Remoting channel did not close, terminating it")
            process.terminate()
            process.wait()
