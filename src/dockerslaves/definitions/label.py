"""
Label-derived definitions for matrix jobs.

A matrix configuration's assigned label carries the build image and the
capacity constraint as prefixed tokens, e.g. ``"docker:maven:3 constraint:arm"``.
"""

from typing import Optional

from .base import ContainerDefinition
from .image import ImageIdContainerDefinition
from .. import constants
from ..exceptions import ContainerDefinitionError


def find_label_token(label: Optional[str], prefix: str) -> Optional[str]:
    """Return the value of the first whitespace-separated token starting with `prefix`."""
    if not label:
        return None
    for sub_label in label.split():
        if sub_label.startswith(prefix) and len(sub_label) > len(prefix):
            return sub_label[len(prefix):]
    return None


class LabelContainerDefinition(ContainerDefinition):
    """An image taken from the `docker:` token of a queue item's assigned label."""

    def __init__(self, label: str, force_pull: bool = False):
        self.label = label
        self.force_pull = force_pull

    def get_image(self, driver) -> str:
        image = find_label_token(self.label, constants.IMAGE_LABEL_PREFIX)
        if image is None:
            raise ContainerDefinitionError(
                f"Label '{self.label}' has no '{constants.IMAGE_LABEL_PREFIX}' token"
            )
        return ImageIdContainerDefinition(image, self.force_pull).get_image(driver)


class MatrixProjectContainersDefinition:
    """Definition attached to a matrix job: images and constraints come from each configuration's label."""

    def __init__(self, force_pull: bool = False):
        self.force_pull = force_pull

    def get_build_host_image(self, label: Optional[str]) -> Optional[ImageIdContainerDefinition]:
        """Image definition for a label, or None when the label selects no image."""
        image = find_label_token(label, constants.IMAGE_LABEL_PREFIX)
        if image is None:
            return None
        return ImageIdContainerDefinition(image, self.force_pull)

    def get_constraint(self, label: Optional[str]) -> Optional[str]:
        return find_label_token(label, constants.CONSTRAINT_LABEL_PREFIX)
