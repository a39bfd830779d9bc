"""
Docker runtime driver.

Translates container lifecycle intents into docker invocations. Lookups,
removals and pulls go through python-on-whales; creates, attached starts and
`cp -` streams are raw CLI calls on the launcher. Every operation is a single
synchronous command: no retries happen here.
"""

import logging
import subprocess
from typing import Any, BinaryIO, List, Optional

from python_on_whales import DockerClient
from python_on_whales.exceptions import DockerException

from .launcher import ArgumentList, CommandResult, LocalLauncher
from .. import constants
from ..datacls import ContainerInstance, ProcStarter
from ..exceptions import (
    ImageResolutionError,
    RuntimeCommandFailedError,
    RuntimeUnavailableError,
)

logger = logging.getLogger(__name__)


class DockerDriver:
    """
    Issues the fixed vocabulary of docker commands used by the provisioner:
    inspect, create, start, cp, rm, plus image inspect/pull for definitions.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        config_dir: Optional[str] = None,
        verbose: bool = True,
        launcher: Optional[LocalLauncher] = None,
        docker_client: Optional[Any] = None,
        remoting_tmpdir: str = constants.REMOTING_TMPDIR,
        remoting_agent_jar: str = constants.REMOTING_AGENT_JAR,
        build_user: str = constants.BUILD_CONTAINER_USER,
    ):
        self.host = host
        self.verbose = verbose
        self.launcher = launcher or LocalLauncher(verbose=verbose)
        # python-on-whales resolves the binary and the --host/--config flags for us
        self._docker = docker_client or DockerClient(host=host, config=config_dir)
        self.remoting_tmpdir = remoting_tmpdir
        self.remoting_agent_jar = remoting_agent_jar
        self.build_user = build_user
        self._closed = False

    # ----------------------
    #
    #  Containers
    #
    # ----------------------

    def has_container(self, container_id: str) -> bool:
        """
        Check whether a container exists.

        Any failing `container inspect` reads as "does not exist": a daemon
        error and a missing container are not told apart.
        """
        client = self._client()
        try:
            exists = client.container.exists(container_id)
        except DockerException as e:
            logger.debug(f"inspect {container_id[:12]} exited with {e.return_code}, treating as absent")
            return False
        if not exists:
            logger.debug(f"No container {container_id[:12]}")
        return exists

    def create_remoting_container(self, instance: ContainerInstance) -> ContainerInstance:
        """
        Create the container carrying the agent's control channel.

        Container logging is disabled: the agent talks over the container's
        stdout, which the runtime must not capture.
        """
        args = (
            self._docker_command()
            .add("create", "--interactive")
            .add("--log-driver=none")
            .add(instance.image_name)
            .add("java")
            # keep TMP inside the /home/jenkins volume so build containers share it
            .add(f"-Djava.io.tmpdir={self.remoting_tmpdir}")
            .add("-jar", self.remoting_agent_jar)
        )
        return self._create(args, instance, "remoting")

    def create_build_container(
        self,
        instance: ContainerInstance,
        remoting_container: ContainerInstance,
        starter: ProcStarter,
    ) -> ContainerInstance:
        """Create a container running one build command inside the remoting container's namespaces."""
        args = (
            self._docker_command()
            .add("create", "--tty")
            .add("--workdir", starter.pwd)
            .add(*self._shared_namespace(remoting_container))
            .add("--user", self.build_user)
            .add(instance.image_name)
        )
        for i, cmd in enumerate(starter.cmds):
            args.add(cmd, masked=starter.is_masked(i))
        return self._create(args, instance, "build")

    def create_side_container(
        self,
        instance: ContainerInstance,
        remoting_container: ContainerInstance,
    ) -> ContainerInstance:
        args = (
            self._docker_command()
            .add("create")
            .add(*self._shared_namespace(remoting_container))
            .add(instance.image_name)
        )
        return self._create(args, instance, "side")

    def launch_side_container(self, instance: ContainerInstance, remoting_container: ContainerInstance):
        """Create a side container and start it in the background."""
        self.create_side_container(instance, remoting_container)
        status = self.start_container(instance.id, attach=False)
        if status != 0:
            raise RuntimeCommandFailedError(
                f"Failed to start side container {instance}", returncode=status
            )

    def start_container(self, container_id: str, stdout: Optional[BinaryIO] = None, attach: bool = True) -> int:
        """Start a created container and, when attached, wait for it and stream its output."""
        args = self._docker_command().add("start")
        if attach:
            args.add("-a")
        args.add(container_id)
        return self._run(args, stdout=stdout).returncode

    def run_container(self, container_id: str) -> subprocess.Popen:
        """
        Start a container attached and interactive.

        The returned process' stdin/stdout are the agent transport for as long
        as the container lives. Restarting a stopped container goes through
        the same call with the same id.
        """
        args = self._docker_command().add("start", "-ia", container_id)
        return self.launcher.spawn(args)

    def get_file_content(self, container_id: str, filename: str, content: BinaryIO) -> int:
        """Stream `filename` out of the container as a tar archive into `content`."""
        args = self._docker_command().add("cp", f"{container_id}:{filename}", "-")
        return self._run(args, stdout=content).returncode

    def put_file_content(self, container_id: str, filename: str, content: BinaryIO) -> int:
        """Extract the tar archive read from `content` at `filename` inside the container."""
        args = self._docker_command().add("cp", "-", f"{container_id}:{filename}")
        return self._run(args, stdin=content).returncode

    def remove_container(self, container_id: str) -> int:
        """Remove a container, returning the exit status of `docker rm`."""
        client = self._client()
        try:
            client.container.remove(container_id)
        except DockerException as e:
            logger.debug(f"rm {container_id[:12]} exited with {e.return_code}")
            return e.return_code
        return 0

    # ----------------------
    #
    #  Images
    #
    # ----------------------

    def check_image_exists(self, image: str) -> bool:
        client = self._client()
        try:
            return client.image.exists(image)
        except DockerException as e:
            logger.debug(f"image inspect {image} exited with {e.return_code}")
            return False

    def pull_image(self, image: str):
        client = self._client()
        try:
            client.image.pull(image, quiet=not self.verbose)
        except DockerException as e:
            raise ImageResolutionError(f"Failed to pull docker image '{image}' (exit {e.return_code})") from e

    def close(self):
        """Release the runtime handle. Any further command fails with RuntimeUnavailableError."""
        if not self._closed:
            logger.debug(f"Closing docker driver for {self.host or 'default host'}")
        self._closed = True

    # ----------------------
    #
    #  Internals
    #
    # ----------------------

    def _shared_namespace(self, remoting_container: ContainerInstance) -> List[str]:
        return [
            "--volumes-from", remoting_container.id,
            f"--net=container:{remoting_container.id}",
        ]

    def _create(self, args: ArgumentList, instance: ContainerInstance, kind: str) -> ContainerInstance:
        result = self._run(args)
        if not result.ok:
            raise RuntimeCommandFailedError(
                f"Failed to create {kind} container from image '{instance.image_name}'",
                returncode=result.returncode,
            )
        instance.assign_id(result.output())
        logger.debug(f"Created {kind} container {instance}")
        return instance

    def _docker_command(self) -> ArgumentList:
        if self._closed:
            raise RuntimeUnavailableError("Docker driver has been closed")
        try:
            base = list(self._docker.docker_cmd)
        except Exception as e:
            raise RuntimeUnavailableError(f"Cannot resolve the docker client command: {e}") from e
        return ArgumentList(*base)

    def _client(self) -> DockerClient:
        # resolving the base command surfaces a closed driver or a missing binary
        self._docker_command()
        return self._docker

    def _run(self, args: ArgumentList, stdin: Optional[BinaryIO] = None, stdout: Optional[BinaryIO] = None) -> CommandResult:
        return self.launcher.run(args, stdin=stdin, stdout=stdout)
