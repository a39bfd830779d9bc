"""
Process launching for runtime commands.

`ArgumentList` keeps a mask flag next to every argument so secrets never reach
the logs, and `LocalLauncher` runs the resulting command synchronously,
capturing or streaming its output.
"""

import io
import logging
import subprocess
from typing import BinaryIO, List, NamedTuple, Optional, Tuple

from .. import constants
from ..exceptions import RuntimeUnavailableError, RuntimeCommandTimeoutError

logger = logging.getLogger(__name__)


class ArgumentList:
    """Command line arguments with per-argument masking."""

    def __init__(self, *args: str):
        self._args: List[Tuple[str, bool]] = []
        self.add(*args)

    def add(self, *args: str, masked: bool = False) -> "ArgumentList":
        for arg in args:
            self._args.append((str(arg), masked))
        return self

    def to_list(self) -> List[str]:
        return [arg for arg, _ in self._args]

    def to_masked_string(self) -> str:
        return " ".join(constants.MASK if masked else arg for arg, masked in self._args)


class CommandResult(NamedTuple):
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def output(self) -> str:
        return self.stdout.decode("utf-8", errors="replace").strip()


def _has_fileno(stream) -> bool:
    try:
        stream.fileno()
        return True
    except (AttributeError, OSError, io.UnsupportedOperation):
        return False


class LocalLauncher:
    """
    Runs commands on the local host and waits for them.

    Launch failures of the binary itself surface as RuntimeUnavailableError,
    timeouts as RuntimeCommandTimeoutError; non-zero exits are returned as-is.
    """

    def __init__(self, verbose: bool = True, timeout: Optional[float] = None):
        self.verbose = verbose
        self.timeout = timeout

    def run(
        self,
        args: ArgumentList,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[BinaryIO] = None,
    ) -> CommandResult:
        """
        Run a command to completion.

        Args:
            args: The command to run.
            stdin: Stream fed to the command's standard input.
            stdout: Stream receiving the command's standard output. When omitted
                the output is captured and returned in the result.
        Returns:
            The exit status with captured output.
        """
        if self.verbose:
            logger.debug(f"$ {args.to_masked_string()}")

        kwargs = {"stderr": subprocess.PIPE}
        if stdin is not None:
            if _has_fileno(stdin):
                kwargs["stdin"] = stdin
            else:
                kwargs["input"] = stdin.read()
        stream_out = stdout is not None and _has_fileno(stdout)
        kwargs["stdout"] = stdout if stream_out else subprocess.PIPE

        try:
            completed = subprocess.run(args.to_list(), timeout=self.timeout, **kwargs)
        except FileNotFoundError as e:
            raise RuntimeUnavailableError(f"Cannot launch '{args.to_list()[0]}': {e}") from e
        except PermissionError as e:
            raise RuntimeUnavailableError(f"Not allowed to launch '{args.to_list()[0]}': {e}") from e
        except subprocess.TimeoutExpired as e:
            raise RuntimeCommandTimeoutError(
                f"Command timed out after {self.timeout}s: {args.to_masked_string()}"
            ) from e

        captured = completed.stdout or b""
        if stdout is not None and not stream_out:
            stdout.write(captured)
            captured = b""

        stderr = completed.stderr or b""
        if stderr and self.verbose:
            level = logging.DEBUG if completed.returncode == 0 else logging.WARNING
            logger.log(level, stderr.decode("utf-8", errors="replace").rstrip())

        return CommandResult(completed.returncode, captured, stderr)

    def spawn(self, args: ArgumentList) -> subprocess.Popen:
        """
        Start a long-running command with all three standard streams piped.

        The caller owns the returned process: its stdin/stdout are the transport
        and its stderr must be drained, or the child blocks once the pipe fills.
        """
        if self.verbose:
            logger.debug(f"$ {args.to_masked_string()} (attached)")
        try:
            return subprocess.Popen(
                args.to_list(),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise RuntimeUnavailableError(f"Cannot launch '{args.to_list()[0]}': {e}") from e
