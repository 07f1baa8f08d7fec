from abc import ABCMeta, abstractmethod
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath

from hostbackup.command_runner import CommandResult, CommandRunner
from hostbackup.file_handler import MockFileSystem

TAR_WARNING = 1
"""GNU tar: some files differ or changed while being archived"""


class ArchiveHandler(metaclass=ABCMeta):
    @abstractmethod
    def create(
        self,
        output: Path,
        inputs: list[str],
        excludes: tuple[str, ...],
        cwd: Path,
    ) -> CommandResult:
        """Bundle the inputs into one compressed archive.

        Every exclusion pattern applies to all inputs, not to the input it was
        written for.

        Args:
            output: The archive to create.
            inputs: Files and directories to include, recursively.
            excludes: Glob patterns to leave out.
            cwd: Directory relative inputs are resolved against.

        Returns:
            The archiver result, stdout holds one line per archived member.
        """
        raise NotImplementedError()


class TarArchiver(ArchiveHandler):
    """gzip compressed tar"""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def create(
        self,
        output: Path,
        inputs: list[str],
        excludes: tuple[str, ...],
        cwd: Path,
    ) -> CommandResult:
        return self._runner.run(self.build_command(output, inputs, excludes), cwd=cwd)

    @staticmethod
    def build_command(output: Path, inputs: list[str], excludes: tuple[str, ...]) -> list[str]:
        cmd = ["tar"]
        for pattern in excludes:
            cmd.append(f"--exclude={pattern}")
        cmd.extend(["-zcvf", str(output), "--", *inputs])
        return cmd


class MockArchiver(ArchiveHandler):
    """Stores the archive as a `{member: content}` dict in the mock file system."""

    def __init__(self, file_system: MockFileSystem, returncode: int = 0) -> None:
        self._file_system = file_system
        self.returncode = returncode
        self.created: list[Path] = []

    def create(
        self,
        output: Path,
        inputs: list[str],
        excludes: tuple[str, ...],
        cwd: Path,
    ) -> CommandResult:
        args = tuple(TarArchiver.build_command(output, inputs, excludes))
        if self.returncode > TAR_WARNING:
            return CommandResult(args, self.returncode, "", "tar: Error is not recoverable")

        members: dict[str, object] = {}
        for item in inputs:
            relative = not item.startswith("/")
            root = str(cwd / item) if relative else item
            for file in self._file_system.under(root):
                if self.__excluded(file, excludes):
                    continue
                name = str(PurePosixPath(file).relative_to(cwd)) if relative else file.lstrip("/")
                members[name] = self._file_system.read(file)

        self._file_system.save(output, members)
        self.created.append(output)
        stderr = "tar: file changed as we read it" if self.returncode else ""
        return CommandResult(args, self.returncode, "\n".join(members), stderr)

    def __excluded(self, file: str, excludes: tuple[str, ...]) -> bool:
        parts = PurePosixPath(file).parts
        return any(fnmatch(part, pattern) for pattern in excludes for part in parts) or any(
            fnmatch(file, pattern) for pattern in excludes
        )
