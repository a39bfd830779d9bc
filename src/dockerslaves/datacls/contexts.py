"""
Docker Slaves Build Context

This module contains the per-build container topology. It is the
provisioner's primary state and the snapshot persisted after a build so the
next build of the same job can try to reuse the remoting container.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .containers import ContainerInstance
from .. import constants


class JobBuildsContainersContext(BaseModel):
    """
    Holds the containers of one build.

    - remoting_container: carries the control channel, may come from a previous build
    - side_containers: created once, lazily, after checkout
    - build_containers: one per executed command, in creation order
    - constraint: key into the capacity gate
    - is_pre_scm: True until the checkout of the sources completed
    """
    remoting_container: Optional[ContainerInstance] = None
    side_containers: Dict[str, ContainerInstance] = Field(default_factory=dict)
    build_containers: List[ContainerInstance] = Field(default_factory=list)
    constraint: str = constants.DEFAULT_CONSTRAINT
    is_pre_scm: bool = True

    @classmethod
    def carry_over(cls, previous: Optional["JobBuildsContainersContext"], constraint: str) -> "JobBuildsContainersContext":
        """
        Start a new build context, inheriting only the remoting container of the previous build.
        """
        context = cls(constraint=constraint)
        if previous is not None and previous.remoting_container is not None and previous.remoting_container.is_created:
            context.remoting_container = previous.remoting_container.model_copy()
        return context

    def scm_checkout_completed(self):
        self.is_pre_scm = False

    def created_containers(self) -> List[ContainerInstance]:
        """Side then build containers that still exist on the runtime."""
        side = [c for c in self.side_containers.values() if c.is_created]
        build = [c for c in self.build_containers if c.is_created]
        return side + build
