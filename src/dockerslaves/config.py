import yaml
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Union
from pydantic import BaseModel, Field, ValidationError, model_validator, field_validator, ConfigDict

from . import constants
from .definitions import (
    ImageIdContainerDefinition,
    JobBuildsContainersDefinition,
    MatrixProjectContainersDefinition,
    SideContainerDefinition,
)
from .exceptions import (
    ConfigFileMissingError,
    ConfigParsingError,
    ConfigValidationError,
    ContainerDefinitionError,
)


logger = logging.getLogger(__name__)


# ============================================================================
# Host configuration
# ============================================================================

class DockerHostModel(BaseModel):
    """
        Class Config-Validation Model describe `docker`
    """
    host: Optional[str] = None
    config: Optional[str] = None
    verbose: bool = True
    command_timeout: Optional[float] = Field(None, gt=0)


class CapacityModel(BaseModel):
    """
        Class Config-Validation Model describe `capacity`
    """
    container_cap: int = Field(constants.DEFAULT_CONTAINER_CAP, ge=1)
    default_constraint: str = constants.DEFAULT_CONSTRAINT
    auxiliary_cap: int = Field(constants.AUXILIARY_CONSTRAINT_CAP, ge=1)
    base_retry_delay: int = Field(constants.BASE_RETRY_DELAY, gt=0)
    max_retry_delay: int = Field(constants.MAX_RETRY_DELAY, gt=0)

    @model_validator(mode='after')
    def check_retry_delays(self) -> 'CapacityModel':
        """Ensure the backoff ceiling is not below its base"""
        if self.max_retry_delay < self.base_retry_delay:
            raise ValueError(
                f"max_retry_delay ({self.max_retry_delay}) must be >= base_retry_delay ({self.base_retry_delay})"
            )
        return self


class ImagesModel(BaseModel):
    """
        Class Config-Validation Model describe `images`
    """
    remoting: str = constants.DEFAULT_REMOTING_IMAGE
    scm: str = constants.DEFAULT_SCM_IMAGE


class RemotingModel(BaseModel):
    """
        Class Config-Validation Model describe `remoting`
    """
    tmpdir: str = constants.REMOTING_TMPDIR
    agent_jar: str = constants.REMOTING_AGENT_JAR
    user: str = constants.BUILD_CONTAINER_USER


class GlobalConfigModel(BaseModel):
    """
        Class Config-Validation Model describe the host configuration
    """
    docker: DockerHostModel = Field(default_factory=DockerHostModel)
    capacity: CapacityModel = Field(default_factory=CapacityModel)
    images: ImagesModel = Field(default_factory=ImagesModel)
    remoting: RemotingModel = Field(default_factory=RemotingModel)
    state_dir: str = constants.DEFAULT_STATE_DIR
    teardown_workers: int = Field(constants.DEFAULT_TEARDOWN_WORKERS, ge=1)
    model_config = ConfigDict(extra="forbid")


# ============================================================================
# Job configuration
# ============================================================================

class ImageDefinitionModel(BaseModel):
    """
        Class Config-Validation Model describe an image reference with its pull policy
    """
    image: str
    force_pull: bool = False

    @field_validator('image')
    @classmethod
    def check_image_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("image cannot be blank")
        return v.strip()


class SideContainerModel(ImageDefinitionModel):
    """
        Class Config-Validation Model describe one of `side_containers`
    """
    name: str


class ContainersModel(BaseModel):
    """
        Class Config-Validation Model describe `containers`
    """
    build_host_image: ImageDefinitionModel
    side_containers: List[SideContainerModel] = Field(default_factory=list)
    constraint: Optional[str] = None

    @model_validator(mode='after')
    def check_unique_side_names(self) -> 'ContainersModel':
        """Side container names key the build context, they must be unique"""
        seen = set()
        for side in self.side_containers:
            if side.name in seen:
                raise ValueError(f"Duplicate side container name: '{side.name}'")
            seen.add(side.name)
        return self


class MatrixModel(BaseModel):
    """
        Class Config-Validation Model describe `matrix`
    """
    force_pull: bool = False


Command = Union[str, List[str]]


def check_job_name(name: str) -> str:
    """Job names become directory names under the state dir"""
    if not name.strip() or '/' in name or '\\' in name or name in ('.', '..'):
        raise ValueError(f"Invalid job name: '{name}'")
    return name


class JobModel(BaseModel):
    """
        Class Config-Validation Model describe a job file
    """
    name: str
    containers: Optional[ContainersModel] = None
    matrix: Optional[MatrixModel] = None
    label: Optional[str] = None
    workdir: Optional[str] = None
    scm: List[Command] = Field(default_factory=list)
    steps: List[Command] = Field(default_factory=list)
    secrets: List[str] = Field(default_factory=list)
    files: Dict[str, str] = Field(default_factory=dict)
    artifacts: List[str] = Field(default_factory=list)
    model_config = ConfigDict(extra="forbid")

    @field_validator('name')
    @classmethod
    def check_name(cls, v: str) -> str:
        return check_job_name(v)

    @model_validator(mode='after')
    def check_definition_kind(self) -> 'JobModel':
        """Exactly one of containers/matrix, and matrix jobs need a label"""
        if (self.containers is None) == (self.matrix is None):
            raise ValueError("A job must define exactly one of 'containers' or 'matrix'.")
        if self.matrix is not None and not self.label:
            raise ValueError("A 'matrix' job requires a 'label'.")
        return self

    @model_validator(mode='after')
    def check_commands(self) -> 'JobModel':
        for command in self.scm + self.steps:
            if isinstance(command, str) and not command.strip():
                raise ValueError("Commands cannot be blank")
            if isinstance(command, list) and not command:
                raise ValueError("Commands cannot be empty lists")
        return self


# ============================================================================
# Loaders
# ============================================================================

def _load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigFileMissingError(f"Configuration file not found at: {path}")
    except yaml.YAMLError as e:
        raise ConfigParsingError(f"Error parsing YAML file: {e}")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigParsingError("Configuration file must be a YAML document containing a dictionary.")
    logger.debug(f"Successfully parsed YAML from '{path}'.")
    return data


class Config:
    """
    Loads and validates the host configuration file.
    Without a path, every setting takes its default.
    """
    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.path = config_path
        raw_data = {}
        if config_path is not None:
            logger.info(f"Loading configuration from '{config_path}'...")
            raw_data = _load_yaml(config_path)
        try:
            self.model = GlobalConfigModel.model_validate(raw_data)
            logger.debug(f"Configuration validated: \n{self.model.model_dump_json(indent=2)}")
        except ValidationError as e:
            raise ConfigValidationError(f"Configuration validation failed:\n{e}")

    @property
    def docker(self) -> DockerHostModel:
        return self.model.docker

    @property
    def capacity(self) -> CapacityModel:
        return self.model.capacity

    @property
    def remoting_image(self) -> str:
        return self.model.images.remoting

    @property
    def scm_image(self) -> str:
        return self.model.images.scm

    @property
    def remoting(self) -> RemotingModel:
        return self.model.remoting

    @property
    def state_dir(self) -> Path:
        return Path(self.model.state_dir)

    @property
    def teardown_workers(self) -> int:
        return self.model.teardown_workers


class JobConfig:
    """
    Loads and validates a job file and turns it into a containers definition.
    """
    def __init__(self, job_path: Union[str, Path]):
        self.path = job_path
        logger.info(f"Loading job from '{job_path}'...")
        raw_data = _load_yaml(job_path)
        try:
            self.model = JobModel.model_validate(raw_data)
        except ValidationError as e:
            raise ConfigValidationError(f"Job validation failed:\n{e}")

    @property
    def name(self) -> str:
        return self.model.name

    @property
    def workdir(self) -> str:
        return self.model.workdir or f"{constants.DEFAULT_WORKSPACE_ROOT}/{self.model.name}"

    def containers_definition(self) -> Optional[JobBuildsContainersDefinition]:
        """
        The job's containers definition, or None for matrix jobs: theirs is
        derived from the label once the build is queued.
        """
        if self.model.containers is not None:
            containers = self.model.containers
            try:
                return JobBuildsContainersDefinition(
                    ImageIdContainerDefinition(containers.build_host_image.image, containers.build_host_image.force_pull),
                    [
                        SideContainerDefinition(side.name, ImageIdContainerDefinition(side.image, side.force_pull))
                        for side in containers.side_containers
                    ],
                    containers.constraint,
                )
            except ContainerDefinitionError as e:
                raise ConfigValidationError(f"Job '{self.name}' has an invalid containers definition: {e}")
        return None

    def matrix_definition(self) -> Optional[MatrixProjectContainersDefinition]:
        if self.model.matrix is None:
            return None
        return MatrixProjectContainersDefinition(self.model.matrix.force_pull)
