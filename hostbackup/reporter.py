import sys
import uuid
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal, TextIO, TypeAlias

from loguru import logger

from hostbackup.define import ENCODING, TIMESTAMP_FORMAT

LogLevel: TypeAlias = Literal["INFO", "WARNING"]

FILE_FORMAT = "{time:YYYY-MM-DD-HHmm!UTC} {message}"
CONSOLE_FORMAT = "{message}"


@dataclass(slots=True, frozen=True)
class LogEntry:
    timestamp: datetime
    """UTC, truncated to the minute"""

    message: str

    echo: bool
    """Also written to the console"""

    level: LogLevel = "INFO"

    @property
    def line(self) -> str:
        return f"{self.timestamp.strftime(TIMESTAMP_FORMAT)} {self.message}"


class RunReporter(metaclass=ABCMeta):
    """Append-only log sink shared by every stage of a run."""

    @abstractmethod
    def emit(self, message: str, echo: bool = True) -> None:
        """Append a timestamped entry to the log file.

        Args:
            message: The message, without timestamp.
            echo: Also print the bare message to the console.
        """
        raise NotImplementedError()

    @abstractmethod
    def warning(self, message: str, echo: bool = True) -> None:
        """Same as `emit`, for failures that do not stop the run."""
        raise NotImplementedError()

    def close(self) -> None:
        pass


class LoguruRunReporter(RunReporter):
    """Writes to a log file and the console through loguru sinks owned by this run."""

    def __init__(self, log_file: Path, console: TextIO | None = None) -> None:
        self._id = uuid.uuid4().hex
        self._logger = logger.bind(reporter=self._id)
        self._sink_ids = [
            logger.add(
                log_file,
                format=FILE_FORMAT,
                level="INFO",
                mode="a",
                encoding=ENCODING,
                colorize=False,
                filter=self._owns,
            ),
            logger.add(
                console or sys.stdout,
                format=CONSOLE_FORMAT,
                level="INFO",
                colorize=False,
                filter=self._echoes,
            ),
        ]

    def emit(self, message: str, echo: bool = True) -> None:
        self._logger.bind(echo=echo).info(message)

    def warning(self, message: str, echo: bool = True) -> None:
        self._logger.bind(echo=echo).warning(message)

    def close(self) -> None:
        for sink_id in self._sink_ids:
            logger.remove(sink_id)
        self._sink_ids.clear()

    def _owns(self, record: dict[str, Any]) -> bool:
        return record["extra"].get("reporter") == self._id

    def _echoes(self, record: dict[str, Any]) -> bool:
        return self._owns(record) and record["extra"].get("echo", True)


@dataclass
class MockRunReporter(RunReporter):
    entries: list[LogEntry] = field(default_factory=list)

    def emit(self, message: str, echo: bool = True) -> None:
        self.entries.append(LogEntry(self.__now(), message, echo))

    def warning(self, message: str, echo: bool = True) -> None:
        self.entries.append(LogEntry(self.__now(), message, echo, "WARNING"))

    @property
    def messages(self) -> list[str]:
        return [entry.message for entry in self.entries]

    @property
    def warnings(self) -> list[str]:
        return [entry.message for entry in self.entries if entry.level == "WARNING"]

    @property
    def console(self) -> list[str]:
        return [entry.message for entry in self.entries if entry.echo]

    def __now(self) -> datetime:
        return datetime.now(UTC).replace(second=0, microsecond=0)
