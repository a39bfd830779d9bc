import logging
import subprocess
import threading
from typing import Optional

from .protocols import RemotingTransport
from .provisioner import DockerJobContainersProvisioner

logger = logging.getLogger(__name__)


class DockerComputerLauncher:
    """
    Launches the initial container of a build: the remoting container.

    Creation is cheap and not capacity-gated; running is. So the container is
    first prepared, then started once the capacity gate admits the build.
    """

    def launch(
        self,
        provisioner: DockerJobContainersProvisioner,
        transport: Optional[RemotingTransport] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> subprocess.Popen:
        provisioner.prepare_remoting_container()
        process = provisioner.launch_remoting_container(cancel_event=cancel_event)
        logger.debug(f"[{provisioner.job.name}] Remoting container attached (pid {process.pid})")
        if transport is not None:
            transport.connect(process)
        return process
