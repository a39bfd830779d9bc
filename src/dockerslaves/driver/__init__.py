from .launcher import ArgumentList, CommandResult, LocalLauncher
from .docker import DockerDriver

__all__ = [
    'ArgumentList',
    'CommandResult',
    'LocalLauncher',
    'DockerDriver',
]
