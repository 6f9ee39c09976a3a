import os
import shlex
from dataclasses import dataclass, field

from .constants import DEFAULT_SSH_OPTIONS


@dataclass
class TransportConfig:
    """SSH settings for operations that talk to a remote.

    The value is passed explicitly to each call that reaches the network, and is
    turned into a `GIT_SSH_COMMAND` for that one git process only.

    Attributes:
        identity_files (tuple[str, ...]): Private key files offered to the server.
        options (dict[str, str]): Extra `ssh -o Key=Value` options.
        exclusive (bool): Offer only the configured identities (`IdentitiesOnly`).
        ssh_program (str): The ssh executable to invoke.
    """

    identity_files: tuple[str, ...] = ()
    options: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SSH_OPTIONS))
    exclusive: bool = False
    ssh_program: str = "ssh"

    def ssh_command(self) -> str:
        """Builds the shell command git should use in place of plain `ssh`."""
        parts = [self.ssh_program]
        for key, value in self.options.items():
            parts.extend(["-o", f"{key}={value}"])
        if self.exclusive:
            parts.extend(["-o", "IdentitiesOnly=yes"])
        for identity in self.identity_files:
            parts.extend(["-i", os.path.expanduser(identity)])
        return shlex.join(parts)

    def env(self, base: dict[str, str] | None = None) -> dict[str, str]:
        """Returns a process environment carrying this transport's ssh command.

        Args:
            base (dict[str, str] | None): The environment to extend.
                                          Defaults to a copy of `os.environ`.
        """
        env = dict(os.environ if base is None else base)
        env["GIT_SSH_COMMAND"] = self.ssh_command()
        return env


def transport_env(transport: TransportConfig | None) -> dict[str, str] | None:
    """Environment for a git call, or None to inherit the current one."""
    return transport.env() if transport else None
