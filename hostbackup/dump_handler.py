from abc import ABCMeta, abstractmethod
from pathlib import Path

from hostbackup.command_runner import COMMAND_NOT_FOUND, CommandResult, CommandRunner
from hostbackup.define import DUMP_TOOL
from hostbackup.file_handler import MockFileSystem


class DatabaseDumpHandler(metaclass=ABCMeta):
    @property
    @abstractmethod
    def tool(self) -> str:
        raise NotImplementedError()

    @abstractmethod
    def available(self) -> bool:
        """Whether the dump tool is resolvable on the execution path."""
        raise NotImplementedError()

    @abstractmethod
    def dump(self, output: Path, password: str) -> CommandResult:
        """Export every database into a single file.

        Args:
            output: The dump file to write.
            password: The database root credential.

        Returns:
            The result of the dump command.
        """
        raise NotImplementedError()


class MysqlDumper(DatabaseDumpHandler):
    """`mysqldump --all-databases` as the root user"""

    def __init__(self, runner: CommandRunner, user: str = "root") -> None:
        self._runner = runner
        self._user = user

    @property
    def tool(self) -> str:
        return DUMP_TOOL

    def available(self) -> bool:
        return self._runner.which(self.tool) is not None

    def dump(self, output: Path, password: str) -> CommandResult:
        # MYSQL_PWD keeps the credential out of the process list
        return self._runner.run(
            [
                self.tool,
                "-u",
                self._user,
                "--all-databases",
                f"--result-file={output}",
            ],
            env={"MYSQL_PWD": password},
        )


class MockDatabaseDumper(DatabaseDumpHandler):
    def __init__(
        self,
        file_system: MockFileSystem,
        installed: bool = True,
        fail: bool = False,
    ) -> None:
        self._file_system = file_system
        self.installed = installed
        self.fail = fail
        self.dumps: list[Path] = []

    @property
    def tool(self) -> str:
        return DUMP_TOOL

    def available(self) -> bool:
        return self.installed

    def dump(self, output: Path, password: str) -> CommandResult:
        args = (self.tool, "--all-databases", str(output))
        if not self.installed:
            return CommandResult(args, COMMAND_NOT_FOUND, "", f"{self.tool}: not found")

        self.dumps.append(output)
        if self.fail:
            # a failing mysqldump still leaves a truncated file behind
            self._file_system.save(output, b"-- partial")
            return CommandResult(args, 2, "", "Access denied for user 'root'@'localhost'")

        self._file_system.save(output, b"-- MySQL dump\nCREATE DATABASE mock;\n")
        return CommandResult(args, 0)
