import socket
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from hostbackup.config import RunConfiguration
from hostbackup.define import TIMESTAMP_FORMAT

ARCHIVE_EXTENSION = ".tar.gz"
ENCRYPTED_EXTENSION = ".enc"


def make_run_id(now: datetime | None = None) -> str:
    return (now or datetime.now(UTC)).strftime(TIMESTAMP_FORMAT)


def archive_path(local_dir: Path, hostname: str, run_id: str) -> Path:
    return local_dir / f"{hostname}-{run_id}{ARCHIVE_EXTENSION}"


def encrypted_path(archive: Path) -> Path:
    return archive.with_name(archive.name + ENCRYPTED_EXTENSION)


def dump_path(temp_dir: Path, run_id: str) -> Path:
    return temp_dir / f"mysql_{run_id}.sql"


@dataclass(slots=True)
class RunContext:
    run_id: str
    """UTC timestamp at minute resolution, names every artifact of the run"""

    hostname: str

    archive: Path
    """Plaintext archive, removed once encrypted"""

    encrypted_archive: Path

    dump: Path
    """Database dump in the temp directory"""

    inputs: list[str]
    """Archive input set, static paths plus the dump when one was produced"""

    started: float = field(default_factory=time.monotonic)

    dumped: bool = False

    @classmethod
    def create(
        cls,
        config: RunConfiguration,
        now: datetime | None = None,
        hostname: str | None = None,
    ) -> "RunContext":
        run_id = make_run_id(now)
        host = hostname or socket.gethostname()
        archive = archive_path(config.local_dir, host, run_id)

        return cls(
            run_id=run_id,
            hostname=host,
            archive=archive,
            encrypted_archive=encrypted_path(archive),
            dump=dump_path(config.temp_dir, run_id),
            inputs=list(config.backup),
        )

    def add_dump(self) -> None:
        if self.dumped:
            raise ValueError("Database dump already added to the archive inputs")

        self.inputs.append(str(self.dump))
        self.dumped = True

    def elapsed(self) -> int:
        return int(time.monotonic() - self.started)
