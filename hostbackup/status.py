from abc import ABCMeta, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import msgpack

from hostbackup.define import BackupStage, RunStatus, StageOutcome
from hostbackup.file_handler import MockFileSystem


@dataclass(slots=True)
class StageRecord:
    stage: BackupStage

    outcome: StageOutcome

    message: str = ""
    """Reason for a skip, warning or failure"""


@dataclass(slots=True)
class RunRecord:
    run_id: str
    """Run timestamp, also part of the archive name"""

    hostname: str

    started: datetime

    status: RunStatus = "running"

    archive: str = ""
    """Encrypted archive path"""

    finished: datetime | None = None

    stages: list[StageRecord] = field(default_factory=list)

    @property
    def last_stage(self) -> StageRecord | None:
        return self.stages[-1] if self.stages else None

    def outcome(self, stage: BackupStage) -> StageOutcome | None:
        for record in self.stages:
            if record.stage == stage:
                return record.outcome
        return None


class RunStatusIo(metaclass=ABCMeta):
    @abstractmethod
    def load(self) -> RunRecord | None:
        """Last saved record, `None` if no run has been recorded yet."""
        raise NotImplementedError()

    @abstractmethod
    def save(self, record: RunRecord) -> None:
        raise NotImplementedError()


class MsgpackRunStatusIo(RunStatusIo):
    __file_path: Path

    def __init__(self, file_path: Path) -> None:
        self.__file_path = file_path

    def load(self) -> RunRecord | None:
        if not self.__file_path.exists():
            return None

        with open(self.__file_path, "rb") as f:
            data: dict[str, Any] = msgpack.unpack(f, object_hook=self.__decode)

        data["stages"] = [StageRecord(**s) for s in data["stages"]]
        return RunRecord(**data)

    def save(self, record: RunRecord) -> None:
        with open(self.__file_path, "wb") as f:
            msgpack.pack(asdict(record), f, default=self.__encode)

    def __decode(self, obj: dict[str, Any]) -> Any:
        if "__datetime__" in obj:
            return datetime.fromisoformat(obj["value"])

        return obj

    def __encode(self, obj: Any) -> dict[str, Any]:
        if isinstance(obj, datetime):
            return {"__datetime__": True, "value": obj.isoformat()}

        raise TypeError(f"Type {type(obj)} not serializable")


class MockRunStatusIo(RunStatusIo):
    _file_system: MockFileSystem
    _filename: str
    saved: list[RunStatus]

    def __init__(self, file_system: MockFileSystem, filename: str) -> None:
        self._file_system = file_system
        self._filename = filename
        self.saved = []

    def load(self) -> RunRecord | None:
        if not self._file_system.check_file(self._filename):
            return None
        return self._file_system.read(self._filename)

    def save(self, record: RunRecord) -> None:
        self.saved.append(record.status)
        self._file_system.save(self._filename, record)
