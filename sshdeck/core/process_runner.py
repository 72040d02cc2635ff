from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging
import os
import subprocess

from .quoting import shell_join

logger = logging.getLogger(__name__)

ASKPASS_SECRET_ENV = "SSHDECK_ASKPASS_SECRET"
ASKPASS_HELPER = os.path.join(os.path.dirname(os.path.abspath(__file__)), "pty_askpass.py")


@dataclass(frozen=True)
class Invocation:
    executable: str
    argv: List[str] = field(default_factory=list)
    env: Optional[Dict[str, str]] = None

    def command_line(self) -> str:
        return shell_join([self.executable, *self.argv])


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def combined_output(self) -> str:
        out = self.stdout.strip()
        err = self.stderr.strip()
        if not out:
            return err
        if not err:
            return out
        return f"{out}\n{err}"

    def message_or(self, fallback: str) -> str:
        return self.combined_output or fallback


def wrap_with_password(invocation: Invocation, password: str, python_path: str) -> Invocation:
    """Run ``invocation`` under the pty askpass helper.

    The secret travels in ASKPASS_SECRET_ENV only; it never shows up in argv.
    """
    env = dict(invocation.env or {})
    env[ASKPASS_SECRET_ENV] = password
    return Invocation(
        executable=python_path,
        argv=[ASKPASS_HELPER, invocation.executable, *invocation.argv],
        env=env,
    )


def _decode(data: bytes) -> str:
    if not data:
        return ""
    return data.decode('utf-8', errors='replace')


class ProcessRunner:
    """Run one external program to completion and capture its output."""

    def __init__(self, python_path: Optional[str] = None):
        self.python_path = python_path

    def run(self, invocation: Invocation) -> CommandResult:
        env = None
        if invocation.env:
            env = os.environ.copy()
            env.update(invocation.env)

        logger.debug(f"Running: {invocation.command_line()}")
        try:
            completed = subprocess.run(
                [invocation.executable, *invocation.argv],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
                check=False,
            )
        except OSError as e:
            logger.warning(f"Failed to start {invocation.executable}: {e}")
            return CommandResult(exit_code=-1, stderr=str(e))

        result = CommandResult(
            exit_code=completed.returncode,
            stdout=_decode(completed.stdout),
            stderr=_decode(completed.stderr),
        )
        if not result.succeeded:
            logger.debug(f"{os.path.basename(invocation.executable)} exited with {result.exit_code}")
        return result

    def run_with_password(self, invocation: Invocation, password: str) -> CommandResult:
        if not self.python_path:
            raise ValueError("python_path is required for password mode")
        return self.run(wrap_with_password(invocation, password, self.python_path))
