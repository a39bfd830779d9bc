class DockerSlavesError(Exception):
    """Base exception for all application-specific errors."""

    pass


# --- 1. Errors related to loading and parsing the configuration files ---
class ConfigurationError(DockerSlavesError):
    """Base class for errors encountered while finding, reading, or parsing config files."""

    pass


class ConfigFileMissingError(ConfigurationError):
    """Raised when a configuration file cannot be found."""

    pass


class ConfigParsingError(ConfigurationError):
    """Raised when a YAML configuration file is syntactically incorrect."""

    pass


class ConfigValidationError(ConfigurationError):
    """Raised when the configuration fails structural validation (e.g., Pydantic)."""

    pass


# --- 2. Errors in container definitions and in the way they are used ---
class DefinitionError(DockerSlavesError):
    """Base class for errors in the logical definition of a job's containers."""

    pass


class ContainerDefinitionError(DefinitionError):
    """Raised when a container definition cannot produce an image reference."""

    pass


class ProvisioningError(DefinitionError):
    """Raised when the provisioner is driven out of order, e.g. a build container before the remoting one."""

    pass


# --- 3. Errors raised while talking to the container runtime ---
class DockerRuntimeError(DockerSlavesError):
    """Base class for errors coming from the container runtime."""

    pass


class RuntimeUnavailableError(DockerRuntimeError):
    """Raised when the runtime client cannot be launched at all."""

    pass


class RuntimeCommandFailedError(DockerRuntimeError):
    """Raised when a runtime command exits with a non-zero status."""

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


class RuntimeCommandTimeoutError(RuntimeCommandFailedError):
    """Raised when a runtime command does not complete within the configured timeout."""

    pass


class ImageResolutionError(DockerRuntimeError):
    """Raised when an image required by a container cannot be pulled."""

    pass


# --- 4. Build control flow ---
class BuildAbortedError(DockerSlavesError):
    """Raised when a build is interrupted while waiting for a capacity slot."""

    pass
