from abc import ABCMeta, abstractmethod
from pathlib import Path
from typing import Any

from hostbackup.command_runner import CommandResult, CommandRunner
from hostbackup.file_handler import MockFileSystem


class RemoteHandler(metaclass=ABCMeta):
    @abstractmethod
    def check_login(self) -> CommandResult:
        """Run a trivial command on the remote without any prompt.

        Returns:
            The result, a usable connection has `ok` set and non-empty stdout.
        """
        raise NotImplementedError()

    @abstractmethod
    def check_writable(self) -> CommandResult:
        """Test on the remote side that the remote directory is writable."""
        raise NotImplementedError()

    @abstractmethod
    def upload(self, filepath: Path, limit: int = 0) -> CommandResult:
        """Copy a single file into the remote directory.

        Args:
            filepath: The local file.
            limit: Bandwidth cap in kbit/s, 0 for unlimited.
        """
        raise NotImplementedError()

    @abstractmethod
    def mirror(self, tree: str) -> CommandResult:
        """One-way mirror of a local directory tree below the remote directory.

        The relative path structure is kept, remote files missing locally are
        deleted, symbolic links are not followed and unchanged files are skipped.

        Args:
            tree: The local directory tree, relative entries resolve against
                the local backup directory.
        """
        raise NotImplementedError()


class SshRemote(RemoteHandler):
    """`ssh` for checks, `scp` for the archive and `rsync` over ssh for mirrors"""

    def __init__(
        self,
        runner: CommandRunner,
        server: str,
        port: int,
        user: str,
        remote_dir: str,
        local_dir: Path,
    ) -> None:
        self._runner = runner
        self._server = server
        self._port = port
        self._user = user
        self._remote_dir = remote_dir
        self._local_dir = local_dir

    @property
    def target(self) -> str:
        return f"{self._user}@{self._server}"

    @property
    def destination(self) -> str:
        return f"{self.target}:{self._remote_dir}"

    def check_login(self) -> CommandResult:
        return self.__ssh("echo", "test")

    def check_writable(self) -> CommandResult:
        return self.__ssh("test", "-w", self._remote_dir)

    def upload(self, filepath: Path, limit: int = 0) -> CommandResult:
        cmd = ["scp"]
        if limit > 0:
            cmd.extend(["-l", str(limit)])
        cmd.extend(["-P", str(self._port), str(filepath), self.destination])
        return self._runner.run(cmd)

    def mirror(self, tree: str) -> CommandResult:
        return self._runner.run(
            [
                "rsync",
                "-aqz",
                "--no-links",
                "--delete",
                "--relative",
                "-e",
                f"ssh -p {self._port}",
                tree,
                self.destination,
            ],
            cwd=self._local_dir,
        )

    def __ssh(self, *remote_cmd: str) -> CommandResult:
        return self._runner.run(
            ["ssh", "-oBatchMode=yes", "-p", str(self._port), self.target, *remote_cmd]
        )


class MockRemoteHandler(RemoteHandler):
    def __init__(
        self,
        file_system: MockFileSystem,
        reachable: bool = True,
        writable: bool = True,
        upload_fails: bool = False,
        failing_trees: set[str] | None = None,
    ) -> None:
        self._file_system = file_system
        self.reachable = reachable
        self.writable = writable
        self.upload_fails = upload_fails
        self.failing_trees = failing_trees or set()
        self.objects: dict[str, Any] = {}
        self.uploads: list[tuple[Path, int]] = []
        self.mirrored: list[str] = []

    def check_login(self) -> CommandResult:
        args = ("ssh", "echo", "test")
        if not self.reachable:
            return CommandResult(args, 255, "", "Permission denied (publickey).")
        return CommandResult(args, 0, "test\n")

    def check_writable(self) -> CommandResult:
        return CommandResult(("ssh", "test", "-w"), 0 if self.writable else 1)

    def upload(self, filepath: Path, limit: int = 0) -> CommandResult:
        args = ("scp", str(filepath))
        self.uploads.append((filepath, limit))

        if not self._file_system.check_file(filepath):
            return CommandResult(args, 1, "", f"{filepath}: No such file or directory")

        if self.upload_fails:
            return CommandResult(args, 1, "", "lost connection")

        self.objects[filepath.name] = self._file_system.read(filepath)
        return CommandResult(args, 0)

    def mirror(self, tree: str) -> CommandResult:
        args = ("rsync", tree)
        self.mirrored.append(tree)

        if tree in self.failing_trees:
            return CommandResult(args, 23, "", "rsync error: some files could not be transferred")

        for file in self._file_system.under(tree):
            self.objects[file.lstrip("/")] = self._file_system.read(file)
        return CommandResult(args, 0)
