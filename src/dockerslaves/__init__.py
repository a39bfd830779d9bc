"""
Docker Slaves

Runs each build of a job in a set of docker containers: a long-lived
remoting container carrying the agent channel and the workspace volume,
optional side containers sharing its network, and one short-lived build
container per executed command.

Main modules:
- capacity: admission control over the number of running containers
- driver: docker CLI invocations and process launching
- definitions: where container images come from (fixed reference or label)
- provisioner: the per-build container lifecycle
- computer: launching the remoting container
- matrix: definitions for matrix configurations entering the queue
- config: host and job configuration loading and validation
- store: persisted build contexts
- runner: running one build of a job file end to end

Quick start example:
```python
from dockerslaves import BuildRunner, CapacityGate, Config, JobConfig

config = Config("host.yml")
runner = BuildRunner(config, CapacityGate(container_cap=4))
result = runner.run(JobConfig("job.yml"))
```
"""

__version__ = "0.3.0"

from .capacity import CapacityGate, retry_delays
from .protocols import JobDescriptorProvider, BuildEventSource, StepExecutor, RemotingTransport
from .datacls import ContainerInstance, JobBuildsContainersContext, ProcStarter
from .definitions import (
    ContainerDefinition,
    ImageIdContainerDefinition,
    LabelContainerDefinition,
    MatrixProjectContainersDefinition,
    JobBuildsContainersDefinition,
    SideContainerDefinition,
)
from .driver import DockerDriver, LocalLauncher
from .provisioner import DockerJobContainersProvisioner
from .computer import DockerComputerLauncher
from .matrix import MatrixProvisionQueueListener
from .config import Config, JobConfig
from .store import ContextStore
from .runner import BuildRunner, BuildResult
from .exceptions import (
    DockerSlavesError,
    ConfigurationError,
    ConfigValidationError,
    DefinitionError,
    ProvisioningError,
    DockerRuntimeError,
    BuildAbortedError,
)

__all__ = [
    # Version
    '__version__',
    # Capacity
    'CapacityGate',
    'retry_delays',
    # Protocols
    'JobDescriptorProvider',
    'BuildEventSource',
    'StepExecutor',
    'RemotingTransport',
    # Data classes
    'ContainerInstance',
    'JobBuildsContainersContext',
    'ProcStarter',
    # Definitions
    'ContainerDefinition',
    'ImageIdContainerDefinition',
    'LabelContainerDefinition',
    'MatrixProjectContainersDefinition',
    'JobBuildsContainersDefinition',
    'SideContainerDefinition',
    # Runtime
    'DockerDriver',
    'LocalLauncher',
    # Provisioning
    'DockerJobContainersProvisioner',
    'DockerComputerLauncher',
    'MatrixProvisionQueueListener',
    # Config and state
    'Config',
    'JobConfig',
    'ContextStore',
    'BuildRunner',
    'BuildResult',
    # Exceptions
    'DockerSlavesError',
    'ConfigurationError',
    'ConfigValidationError',
    'DefinitionError',
    'ProvisioningError',
    'DockerRuntimeError',
    'BuildAbortedError',
]
