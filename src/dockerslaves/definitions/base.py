from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..driver import DockerDriver


class ContainerDefinition(ABC):
    """
    Abstract class describing the image a container runs.

    Resolution happens right before the container is created, never earlier:
    some definitions depend on information only known once the build is queued.
    """

    @abstractmethod
    def get_image(self, driver: "DockerDriver") -> str:
        """
        Resolve the definition to a concrete image reference, pulling it if needed.

        Args:
            driver: The driver used to check for and pull the image.
        Returns:
            The image reference to create the container from.
        """
        pass
