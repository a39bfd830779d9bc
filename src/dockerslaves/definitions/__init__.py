"""
Container definitions

- base: ContainerDefinition, the single `get_image` capability
- image: fixed image reference with a pull policy
- label: image and constraint derived from a matrix configuration's label
- job: the set of containers hosting a job's builds
"""

from .base import ContainerDefinition
from .image import ImageIdContainerDefinition
from .label import LabelContainerDefinition, MatrixProjectContainersDefinition, find_label_token
from .job import JobBuildsContainersDefinition, SideContainerDefinition

__all__ = [
    'ContainerDefinition',
    'ImageIdContainerDefinition',
    'LabelContainerDefinition',
    'MatrixProjectContainersDefinition',
    'find_label_token',
    'JobBuildsContainersDefinition',
    'SideContainerDefinition',
]
