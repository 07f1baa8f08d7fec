from abc import ABCMeta, abstractmethod
from pathlib import Path
from typing import Literal, TypeAlias

from hostbackup.command_runner import CommandResult, CommandRunner

RetentionTarget: TypeAlias = Literal["local", "remote"]


class RetentionHandler(metaclass=ABCMeta):
    @abstractmethod
    def prune(self, target: RetentionTarget) -> CommandResult:
        """Ask the deletion subsystem to remove backups past the retention policy.

        Args:
            target: Local backup directory or remote directory.
        """
        raise NotImplementedError()


class ScriptRetention(RetentionHandler):
    """Runs the deletion script with the same configuration file as this run."""

    def __init__(self, runner: CommandRunner, script: Path, config_file: Path) -> None:
        self._runner = runner
        self._script = script
        self._config_file = config_file

    def prune(self, target: RetentionTarget) -> CommandResult:
        cmd = ["bash", str(self._script), "--config", str(self._config_file)]
        if target == "remote":
            cmd.append("--remote")
        return self._runner.run(cmd)


class MockRetention(RetentionHandler):
    def __init__(self, failing: set[RetentionTarget] | None = None) -> None:
        self.failing = failing or set()
        self.calls: list[RetentionTarget] = []

    def prune(self, target: RetentionTarget) -> CommandResult:
        self.calls.append(target)
        args = ("bash", "deleteoldbackups.sh", target)
        if target in self.failing:
            return CommandResult(args, 1, "", "retention failed")
        return CommandResult(args, 0, f"No {target} backups to delete\n")
