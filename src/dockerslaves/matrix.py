import logging
from dataclasses import dataclass
from typing import Any, Optional

from .definitions import JobBuildsContainersDefinition, MatrixProjectContainersDefinition

logger = logging.getLogger(__name__)


@dataclass
class QueueItem:
    """A queued matrix configuration build: the job, its parent's definition and its assigned label."""
    job: Any
    matrix_definition: Optional[MatrixProjectContainersDefinition]
    assigned_label: Optional[str]
    build_number: int = 1


class MatrixProvisionQueueListener:
    """
    Gives matrix configurations a concrete containers definition once they become buildable.

    The image and constraint are read from the configuration's assigned label.
    A configuration whose label selects no image is left alone: containers are
    simply not used for it.
    """

    def on_enter_buildable(self, item: QueueItem) -> Optional[JobBuildsContainersDefinition]:
        job_ref = f"{item.job.name}#{item.build_number}"

        if item.matrix_definition is None:
            logger.info(f"No parent definition available for {job_ref}")
            return None

        image = item.matrix_definition.get_build_host_image(item.assigned_label)
        if image is None:
            logger.info(f"No image available to create definition for {job_ref}")
            return None

        constraint = item.matrix_definition.get_constraint(item.assigned_label)
        logger.info(f"Creating new definition for {job_ref} with {image.image}")
        definition = JobBuildsContainersDefinition(image, None, constraint)
        item.job.set_containers_definition(definition)
        return definition
