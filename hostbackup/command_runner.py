import os
import shutil
import subprocess
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, TypeAlias

COMMAND_NOT_FOUND = 127


@dataclass(slots=True, frozen=True)
class CommandResult:
    args: tuple[str, ...]
    """Command line that was executed"""

    returncode: int

    stdout: str = ""

    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command(self) -> str:
        return self.args[0] if self.args else ""

    def describe(self) -> str:
        """One-line failure description for the log."""
        detail = self.stderr.strip().splitlines()
        reason = detail[-1] if detail else "no error output"
        return f"{self.command} exited with code {self.returncode}: {reason}"


class CommandRunner(metaclass=ABCMeta):
    @abstractmethod
    def which(self, tool: str) -> str | None:
        """Resolve a tool on the execution path.

        Args:
            tool: The executable name.

        Returns:
            The full path of the executable, or `None` if it is not installed.
        """
        raise NotImplementedError()

    @abstractmethod
    def run(
        self,
        args: list[str],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Run a command to completion and capture its output.

        Never raises for a failing command; the failure is carried by the
        returned `CommandResult`.

        Args:
            args: Command line, executable first.
            cwd: Working directory for the command.
            env: Extra environment variables, merged over the current ones.

        Returns:
            The command result.
        """
        raise NotImplementedError()


class SubprocessRunner(CommandRunner):
    """Runs commands with `subprocess`, blocking until they exit."""

    def which(self, tool: str) -> str | None:
        return shutil.which(tool)

    def run(
        self,
        args: list[str],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        child_env = None
        if env:
            child_env = os.environ.copy()
            child_env.update(env)

        try:
            result = subprocess.run(
                args,
                cwd=cwd,
                env=child_env,
                check=False,
                capture_output=True,
                text=True,
                errors="replace",
            )
        except FileNotFoundError as e:
            return CommandResult(tuple(args), COMMAND_NOT_FOUND, "", str(e))

        return CommandResult(tuple(args), result.returncode, result.stdout, result.stderr)


MockResponder: TypeAlias = Callable[[list[str], Path | None, dict[str, str] | None], CommandResult | None]


@dataclass(slots=True)
class MockCall:
    args: list[str]
    cwd: Path | None
    env: dict[str, str] | None


@dataclass
class MockCommandRunner(CommandRunner):
    """Records every command; answers with success unless a responder says otherwise."""

    tools: set[str] = field(default_factory=set)
    responders: list[MockResponder] = field(default_factory=list)
    calls: list[MockCall] = field(default_factory=list)

    def which(self, tool: str) -> str | None:
        return f"/usr/bin/{tool}" if tool in self.tools else None

    def run(
        self,
        args: list[str],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        self.calls.append(MockCall(list(args), cwd, env))

        for responder in self.responders:
            result = responder(args, cwd, env)
            if result is not None:
                return result

        if args[0] not in self.tools:
            return CommandResult(tuple(args), COMMAND_NOT_FOUND, "", f"{args[0]}: not found")

        return CommandResult(tuple(args), 0)

    def commands(self, tool: str) -> list[list[str]]:
        return [call.args for call in self.calls if call.args[0] == tool]
