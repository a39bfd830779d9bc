"""
Provision the containers hosting one build.

.. code-block:: text

    prepare_remoting_container()   reuse the previous build's remoting container
                                   if docker still has it, else create one
    launch_remoting_container()    wait for a capacity slot, then start -ia
    new_build_container(starter)   first call after checkout also creates the
                                   side containers; every call gets a fresh
                                   build container (scm image before checkout,
                                   build host image after)
    clean()                        remove side then build containers, close the
                                   driver, give the slot back

The remoting container is never removed by `clean`: the next build of the job
reuses it as a data volume container for the workspace.
"""

import logging
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from . import constants
from .capacity import CapacityGate
from .datacls import ContainerInstance, JobBuildsContainersContext, ProcStarter
from .definitions import JobBuildsContainersDefinition
from .driver import DockerDriver
from .exceptions import ProvisioningError
from .protocols import BuildEventSource, JobDescriptorProvider

logger = logging.getLogger(__name__)


class BuildContainer:
    """A build container paired with the command it runs."""

    def __init__(self, instance: ContainerInstance, proc_starter: ProcStarter):
        self.instance = instance
        self.proc_starter = proc_starter

    @property
    def id(self) -> Optional[str]:
        return self.instance.id

    @property
    def image_name(self) -> str:
        return self.instance.image_name


class DockerJobContainersProvisioner:
    """
    Provisions ContainerInstances based on a JobBuildsContainersDefinition for one build.
    """

    def __init__(
        self,
        job: JobDescriptorProvider,
        driver: DockerDriver,
        gate: CapacityGate,
        remoting_image: str = constants.DEFAULT_REMOTING_IMAGE,
        scm_image: str = constants.DEFAULT_SCM_IMAGE,
        events: Optional[BuildEventSource] = None,
        teardown_workers: int = constants.DEFAULT_TEARDOWN_WORKERS,
    ):
        self.job = job
        self.driver = driver
        self.gate = gate
        self.remoting_image = remoting_image
        self.scm_image = scm_image
        self.teardown_workers = max(teardown_workers, 1)

        self.spec: Optional[JobBuildsContainersDefinition] = job.get_containers_definition()
        if self.spec is None:
            raise ProvisioningError(f"Job '{job.name}' has no containers definition")

        # TODO define a configurable volume strategy to retrieve a (maybe persistent) workspace.
        # Until then the previous build's remoting container doubles as data volume container.
        constraint = self.spec.resolve_constraint(gate.default_constraint)
        self.context = JobBuildsContainersContext.carry_over(job.get_last_build_context(), constraint)

        self._build_image: Optional[str] = None
        self._remoting_prepared = False
        self._admitted = False
        self._release_lock = threading.Lock()

        if events is not None:
            events.add_checkout_listener(self.scm_checkout_completed)

    # ----------------------
    #
    #  Remoting container
    #
    # ----------------------

    def prepare_remoting_container(self) -> ContainerInstance:
        """
        Decide which remoting container this build uses. No capacity is consumed here.
        """
        if self._remoting_prepared:
            return self.context.remoting_container

        previous = self.context.remoting_container
        if previous is not None and previous.is_created:
            if self.driver.has_container(previous.id):
                logger.info(f"[{self.job.name}] Reusing remoting container {previous}")
                self._remoting_prepared = True
                return previous
            logger.info(f"[{self.job.name}] Remoting container {previous} is gone, creating a new one")

        container = self.driver.create_remoting_container(ContainerInstance(image_name=self.remoting_image))
        self.context.remoting_container = container
        self._remoting_prepared = True
        logger.info(f"[{self.job.name}] Created remoting container {container}")
        return container

    def launch_remoting_container(self, cancel_event: Optional[threading.Event] = None) -> subprocess.Popen:
        """
        Wait for a capacity slot, then start the remoting container attached.

        Returns:
            The attached process whose stdio is the control channel.
        """
        remoting = self._require_remoting()
        self.gate.admit(
            self.context.constraint,
            subject=f"{self.job.name} ({remoting.image_name})",
            cancel_event=cancel_event,
        )
        self._admitted = True
        logger.info(f"[{self.job.name}] Starting remoting container {remoting}")
        return self.driver.run_container(remoting.id)

    # ----------------------
    #
    #  Build containers
    #
    # ----------------------

    def scm_checkout_completed(self):
        logger.debug(f"[{self.job.name}] Checkout completed, switching to build host image")
        self.context.scm_checkout_completed()

    def new_build_container(self, starter: ProcStarter) -> BuildContainer:
        """
        Allocate the container for the next command.

        Side containers are started on the first command after checkout: that
        is the earliest point where a command is run with the sources available.
        """
        self._require_remoting()
        if not self.context.is_pre_scm and self.spec.side_containers and not self.context.side_containers:
            self._create_side_containers()

        if self.context.is_pre_scm:
            image = self.scm_image
        else:
            if self._build_image is None:
                self._build_image = self.spec.build_host_image.get_image(self.driver)
            image = self._build_image

        instance = ContainerInstance(image_name=image)
        self.context.build_containers.append(instance)
        return BuildContainer(instance, starter)

    def create_build_container(self, build_container: BuildContainer):
        self.driver.create_build_container(
            build_container.instance, self._require_remoting(), build_container.proc_starter
        )

    def start_build_container(self, build_container: BuildContainer) -> int:
        if not build_container.instance.is_created:
            raise ProvisioningError(f"Build container for {build_container.image_name} was never created")
        return self.driver.start_container(build_container.id, stdout=build_container.proc_starter.stdout)

    def run(self, starter: ProcStarter) -> int:
        """Run one command in a brand new build container and return its exit status."""
        build_container = self.new_build_container(starter)
        self.create_build_container(build_container)
        return self.start_build_container(build_container)

    def _create_side_containers(self):
        remoting = self._require_remoting()
        for definition in self.spec.side_containers:
            image = definition.spec.get_image(self.driver)
            logger.info(f"[{self.job.name}] Starting {definition.name} container")
            container = ContainerInstance(image_name=image)
            self.context.side_containers[definition.name] = container
            self.driver.launch_side_container(container, remoting)

    def _require_remoting(self) -> ContainerInstance:
        remoting = self.context.remoting_container
        if remoting is None or not remoting.is_created:
            raise ProvisioningError(f"Remoting container for '{self.job.name}' has not been prepared")
        return remoting

    # ----------------------
    #
    #  Teardown
    #
    # ----------------------

    def clean(self):
        """
        Remove every side and build container of this build and release the capacity slot.

        Removal is best-effort: failures are logged and never raised.
        """
        try:
            # side containers go first, build containers may depend on them
            self._remove_all(list(self.context.side_containers.values()))
            self._remove_all(list(self.context.build_containers))
        finally:
            self.driver.close()
            self._release_slot()

    def _remove_all(self, instances: List[ContainerInstance]):
        instances = [i for i in instances if i.is_created]
        if not instances:
            return
        with ThreadPoolExecutor(max_workers=min(self.teardown_workers, len(instances))) as pool:
            list(pool.map(self._remove_quietly, instances))

    def _remove_quietly(self, instance: ContainerInstance):
        try:
            status = self.driver.remove_container(instance.id)
        except Exception as e:
            logger.warning(f"[{self.job.name}] Failed to remove container {instance}: {e}")
            return
        if status != 0:
            logger.warning(f"[{self.job.name}] Failed to remove container {instance} (exit {status})")
            return
        logger.debug(f"[{self.job.name}] Removed container {instance}")
        instance.invalidate()

    def _release_slot(self):
        with self._release_lock:
            if not self._admitted:
                return
            self._admitted = False
        count = self.gate.release(self.context.constraint)
        logger.debug(f"[{self.job.name}] Released '{self.context.constraint}' slot, {count} still running")
