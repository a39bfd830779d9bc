from typing import Optional

from pydantic import BaseModel

from ..exceptions import ProvisioningError


class ContainerInstance(BaseModel):
    """
    A single runtime-managed container.

    The id stays empty until the runtime answered the create command; it is
    assigned exactly once and dropped again when the container was removed.
    """
    image_name: str
    id: Optional[str] = None

    @property
    def is_created(self) -> bool:
        return bool(self.id)

    def assign_id(self, container_id: str):
        if self.id:
            raise ProvisioningError(
                f"Container for image '{self.image_name}' already has id {self.id[:12]}"
            )
        if not container_id:
            raise ProvisioningError(f"Runtime returned an empty id for image '{self.image_name}'")
        self.id = container_id

    def invalidate(self):
        self.id = None

    def short_id(self) -> str:
        return self.id[:12] if self.id else "<not created>"

    def __str__(self):
        return f"{self.short_id()} ({self.image_name})"
