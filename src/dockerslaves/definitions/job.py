from typing import List, Optional

from .base import ContainerDefinition
from ..exceptions import ContainerDefinitionError


class SideContainerDefinition:
    """A named auxiliary container, e.g. a database the build talks to."""

    def __init__(self, name: str, spec: ContainerDefinition):
        self.name = name
        self.spec = spec

    def __repr__(self):
        return f"SideContainerDefinition(name={self.name!r}, spec={self.spec!r})"


class JobBuildsContainersDefinition:
    """
    Definition for a set of containers to host the builds of a job.
    """

    def __init__(
        self,
        build_host_image: ContainerDefinition,
        side_containers: Optional[List[SideContainerDefinition]] = None,
        constraint: Optional[str] = None,
    ):
        self.build_host_image = build_host_image
        self.side_containers = side_containers if side_containers is not None else []
        self.constraint = constraint.strip() if constraint and constraint.strip() else None

        names = [side.name for side in self.side_containers]
        duplicates = {name for name in names if names.count(name) > 1}
        if duplicates:
            raise ContainerDefinitionError(f"Duplicate side container names: {sorted(duplicates)}")

    def resolve_constraint(self, default_constraint: str) -> str:
        """The capacity key of this job: its own constraint, or the host default."""
        return self.constraint or default_constraint
