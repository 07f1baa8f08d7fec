from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, TypeAlias

import pytest

from hostbackup.archive_handler import MockArchiver
from hostbackup.backup_manager import BackupTaskManager
from hostbackup.command_runner import MockCommandRunner
from hostbackup.config import RunConfiguration
from hostbackup.define import REQUIRED_TOOLS
from hostbackup.dump_handler import MockDatabaseDumper
from hostbackup.encrypt_handler import MockEncryptor
from hostbackup.file_handler import MockFileSystem
from hostbackup.hash_handler import Sha256Hasher
from hostbackup.preflight import PreflightValidator
from hostbackup.remote_handler import MockRemoteHandler
from hostbackup.reporter import MockRunReporter
from hostbackup.retention_handler import MockRetention
from hostbackup.status import MockRunStatusIo

LOCAL_DIR = Path("/backup")
TEMP_DIR = Path("/tmp/hostbackup")
HOSTNAME = "web01"
NOW = datetime(2026, 10, 19, 3, 30, 12, tzinfo=UTC)
RUN_ID = "2026-10-19-0330"
ARCHIVE = LOCAL_DIR / f"{HOSTNAME}-{RUN_ID}.tar.gz"
ENCRYPTED = LOCAL_DIR / f"{HOSTNAME}-{RUN_ID}.tar.gz.enc"
DUMP = TEMP_DIR / f"mysql_{RUN_ID}.sql"
STATUS_FILE = "/var/lib/hostbackup/status"


@pytest.fixture
def config() -> RunConfiguration:
    return RunConfiguration(
        config_file=Path("/etc/hostbackup/backup.yaml"),
        local_dir=LOCAL_DIR,
        temp_dir=TEMP_DIR,
        remote_server="backup.example.org",
        remote_user="backup",
        remote_dir="/srv/backups/web01",
        backup_pass="correct horse battery staple",
        backup=("/etc/app",),
        rsync_dirs=("/var/www", "/home/shared"),
    )


@pytest.fixture
def file_system() -> MockFileSystem:
    fs = MockFileSystem(writable_dirs=[LOCAL_DIR, TEMP_DIR])
    fs.save("/etc/app/a.conf", b"a = 1")
    fs.save("/etc/app/b.conf", b"b = 2")
    fs.save("/etc/app/c.conf", b"c = 3")
    fs.save("/var/www/index.html", b"<html></html>")
    fs.save("/home/shared/notes.txt", b"notes")
    return fs


@pytest.fixture
def reporter() -> MockRunReporter:
    return MockRunReporter()


@pytest.fixture
def runner() -> MockCommandRunner:
    return MockCommandRunner(tools=set(REQUIRED_TOOLS))


@pytest.fixture
def base_setup(file_system: MockFileSystem, runner: MockCommandRunner) -> dict[str, Any]:
    return {
        "runner": runner,
        "status_io": MockRunStatusIo(file_system, STATUS_FILE),
        "dumper": MockDatabaseDumper(file_system),
        "archiver": MockArchiver(file_system),
        "encryptor": MockEncryptor(file_system),
        "remote": MockRemoteHandler(file_system),
        "retention": MockRetention(),
    }


ManagerFactory: TypeAlias = Callable[..., BackupTaskManager]


@pytest.fixture
def make_manager(
    config: RunConfiguration,
    file_system: MockFileSystem,
    reporter: MockRunReporter,
    base_setup: dict[str, Any],
) -> ManagerFactory:
    """Build a manager on the mock handlers; keyword args replace config fields or handlers."""

    def factory(**overrides: Any) -> BackupTaskManager:
        handlers = {k: overrides.pop(k) for k in list(overrides) if k in base_setup}
        base_setup.update(handlers)
        run_config = replace(config, **overrides)

        preflight = PreflightValidator(
            run_config,
            base_setup["runner"],
            file_system,
            base_setup["remote"],
            reporter,
        )
        return BackupTaskManager(
            run_config,
            reporter,
            base_setup["status_io"],
            preflight,
            base_setup["dumper"],
            base_setup["archiver"],
            base_setup["encryptor"],
            base_setup["remote"],
            base_setup["retention"],
            file_system,
            Sha256Hasher(),
            hostname=HOSTNAME,
            now=NOW,
        )

    return factory
