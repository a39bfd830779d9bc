import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from . import constants
from .config import check_job_name
from .datacls import JobBuildsContainersContext
from .exceptions import ConfigValidationError

logger = logging.getLogger(__name__)


class ContextStore:
    """
    Persists the container context of each job's last build as JSON,
    one file per job under `state_dir/<job>/`.
    """

    def __init__(self, state_dir: Union[str, Path]):
        self.state_dir = Path(state_dir)

    def path_for(self, job_name: str) -> Path:
        """Raises ConfigValidationError for names that would leave `state_dir`."""
        try:
            check_job_name(job_name)
        except ValueError as e:
            raise ConfigValidationError(str(e)) from e
        return self.state_dir / job_name / constants.CONTEXT_FILENAME

    def load(self, job_name: str) -> Optional[JobBuildsContainersContext]:
        """Context of the job's previous build, or None if there is none or it is unreadable."""
        path = self.path_for(job_name)
        if not path.exists():
            logger.debug(f"No previous context for '{job_name}'")
            return None
        try:
            return JobBuildsContainersContext.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable context for '{job_name}' at {path}: {e}")
            return None

    def save(self, job_name: str, context: JobBuildsContainersContext):
        path = self.path_for(job_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        # write then rename so a concurrent reader never sees half a file
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".context-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(context.model_dump_json(indent=2))
            os.replace(tmp, path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved context for '{job_name}' to {path}")

    def forget(self, job_name: str) -> bool:
        path = self.path_for(job_name)
        if not path.exists():
            return False
        path.unlink()
        return True
