from .containers import ContainerInstance
from .contexts import JobBuildsContainersContext
from .process import ProcStarter

__all__ = [
    'ContainerInstance',
    'JobBuildsContainersContext',
    'ProcStarter',
]
