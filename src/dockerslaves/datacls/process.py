import shlex
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, List, Optional, Sequence, Union

from .. import constants


@dataclass
class ProcStarter:
    """
    Describes a process the build wants to run: where, what, and where its output goes.

    `masks` flags arguments that must never show up in logs (passwords, tokens).
    A shorter mask list than `cmds` leaves the remaining arguments unmasked.
    """
    pwd: str
    cmds: List[str]
    masks: Optional[List[bool]] = None
    stdout: Optional[BinaryIO] = field(default=None, repr=False)

    def is_masked(self, index: int) -> bool:
        if self.masks is None:
            return False
        return index < len(self.masks) and self.masks[index]

    def masked_command(self) -> str:
        return " ".join(constants.MASK if self.is_masked(i) else cmd for i, cmd in enumerate(self.cmds))

    @classmethod
    def from_command(
        cls,
        command: Union[str, Sequence[str]],
        pwd: str,
        secrets: Iterable[str] = (),
        stdout: Optional[BinaryIO] = None,
    ) -> "ProcStarter":
        """
        Build a starter from a shell-like string or an argument list.

        Every argument containing a secret is masked as a whole, so
        `-Dtoken=<secret>` is hidden as well as a bare `<secret>`.
        """
        cmds = shlex.split(command) if isinstance(command, str) else list(command)
        secret_values = {s for s in secrets if s}
        masks = [any(secret in arg for secret in secret_values) for arg in cmds]
        return cls(pwd=pwd, cmds=cmds, masks=masks if any(masks) else None, stdout=stdout)
