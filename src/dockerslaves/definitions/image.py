import logging

from .base import ContainerDefinition
from ..exceptions import ContainerDefinitionError

logger = logging.getLogger(__name__)


class ImageIdContainerDefinition(ContainerDefinition):
    """A fixed image reference with a pull policy."""

    def __init__(self, image: str, force_pull: bool = False):
        if not image or not image.strip():
            raise ContainerDefinitionError("Image reference cannot be empty")
        self.image = image.strip()
        self.force_pull = force_pull

    def get_image(self, driver) -> str:
        pull = self.force_pull
        if not pull and not driver.check_image_exists(self.image):
            # Could be a docker failure, but most probably the image isn't available
            pull = True

        if pull:
            logger.info(f"Pulling docker image {self.image}")
            driver.pull_image(self.image)

        return self.image

    def __repr__(self):
        return f"ImageIdContainerDefinition(image={self.image!r}, force_pull={self.force_pull})"
