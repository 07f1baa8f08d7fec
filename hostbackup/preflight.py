"""Fail-closed checks run before any artifact is produced.

Checks run in a fixed order and stop at the first failure: required tools,
local directories, remote login, remote directory. Nothing is retried.
"""

from hostbackup.command_runner import CommandRunner
from hostbackup.config import RunConfiguration
from hostbackup.define import REQUIRED_TOOLS
from hostbackup.file_handler import FileHandler
from hostbackup.remote_handler import RemoteHandler
from hostbackup.reporter import RunReporter


class PreflightError(Exception):
    """Raised by a failing check, carries the log lines explaining it."""

    def __init__(self, *reasons: str) -> None:
        super().__init__(reasons[0] if reasons else "preflight failed")
        self.reasons = reasons


class PreflightValidator:
    def __init__(
        self,
        config: RunConfiguration,
        runner: CommandRunner,
        file_handler: FileHandler,
        remote_handler: RemoteHandler,
        reporter: RunReporter,
        required_tools: tuple[str, ...] = REQUIRED_TOOLS,
    ) -> None:
        self._config = config
        self._runner = runner
        self._file_handler = file_handler
        self._remote = remote_handler
        self._reporter = reporter
        self._required_tools = required_tools

    def validate(self) -> bool:
        """Run every check, logging the reason of the first failure.

        Returns:
            `True` when the run may proceed.
        """
        try:
            self.check_tools()
            self.check_local_dirs()
            self.check_login()
            self.check_remote_dir()
        except PreflightError as e:
            for reason in e.reasons:
                self._reporter.emit(reason)
            return False

        return True

    def check_tools(self) -> None:
        for tool in self._required_tools:
            if self._runner.which(tool) is None:
                raise PreflightError(f"{tool} is not installed. Install it and try again")

    def check_local_dirs(self) -> None:
        for setting, path in (
            ("local_dir", self._config.local_dir),
            ("temp_dir", self._config.temp_dir),
        ):
            if not self._file_handler.is_writable_dir(path):
                raise PreflightError(
                    f"{path} either doesn't exist or isn't writable",
                    f"Either fix or replace the {setting} setting",
                )

    def check_login(self) -> None:
        result = self._remote.check_login()
        if not result.ok or not result.stdout.strip():
            raise PreflightError(
                f"Failed to login to {self._config.remote_target}",
                "Make sure that your public key is in their authorized_keys",
            )

    def check_remote_dir(self) -> None:
        if not self._remote.check_writable().ok:
            raise PreflightError(
                f"Failed to write to {self._config.remote_dir} on {self._config.remote_server}",
                f"Check file permissions and that {self._config.remote_dir} is correct",
            )
