"""
Docker Slaves Protocol Definitions

The provisioner only talks to its host (a CI server, the bundled runner, a
test) through these narrow interfaces.

Protocols are the foundation layer with no dependency on the rest of the
package beyond type hints.
"""

from typing import Protocol, Callable, Optional, Any, runtime_checkable


# ============================================================================
# Job Protocols
# ============================================================================

@runtime_checkable
class JobDescriptorProvider(Protocol):
    """
    Gives the provisioner what it needs to know about a job.
    """

    name: str

    def get_containers_definition(self) -> Optional[Any]:
        """
        Returns:
            The JobBuildsContainersDefinition of the job, or None if it has none.
        """
        ...

    def get_last_build_context(self) -> Optional[Any]:
        """
        Returns:
            The JobBuildsContainersContext persisted by the previous build, if any.
        """
        ...


# ============================================================================
# Build Protocols
# ============================================================================

@runtime_checkable
class BuildEventSource(Protocol):
    """
    Publishes build lifecycle events the provisioner reacts to.
    """

    def add_checkout_listener(self, callback: Callable[[], None]) -> None:
        """
        Register a callback invoked once the sources have been checked out.
        """
        ...


@runtime_checkable
class StepExecutor(Protocol):
    """
    Runs one build step and reports its exit status.
    """

    def execute(self, starter: Any) -> int:
        """
        Args:
            starter: ProcStarter describing the command.
        Returns:
            Exit status of the command.
        """
        ...


@runtime_checkable
class RemotingTransport(Protocol):
    """
    Takes over the attached remoting process as the build's control channel.
    """

    def connect(self, process: Any) -> None:
        ...
