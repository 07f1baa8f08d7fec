from dataclasses import dataclass
from datetime import UTC, datetime

from hostbackup.archive_handler import TAR_WARNING, ArchiveHandler
from hostbackup.config import RunConfiguration
from hostbackup.context import RunContext
from hostbackup.define import STAGES, BackupStage, StageOutcome
from hostbackup.dump_handler import DatabaseDumpHandler
from hostbackup.encrypt_handler import EncryptionHandler
from hostbackup.file_handler import FileHandler, format_size
from hostbackup.hash_handler import Hasher
from hostbackup.preflight import PreflightValidator
from hostbackup.remote_handler import RemoteHandler
from hostbackup.reporter import RunReporter
from hostbackup.retention_handler import RetentionHandler, RetentionTarget
from hostbackup.status import RunRecord, RunStatusIo, StageRecord


@dataclass(slots=True, frozen=True)
class StageResult:
    outcome: StageOutcome
    message: str = ""

    @property
    def failed(self) -> bool:
        return self.outcome == "failed"


OK = StageResult("ok")


class BackupTaskManager:
    """Runs the backup stages in order, one at a time.

    A `failed` stage stops the run, every other outcome moves on to the next
    stage.
    """

    def __init__(
        self,
        config: RunConfiguration,
        reporter: RunReporter,
        status_io: RunStatusIo,
        preflight: PreflightValidator,
        dump_handler: DatabaseDumpHandler,
        archive_handler: ArchiveHandler,
        encryption_handler: EncryptionHandler,
        remote_handler: RemoteHandler,
        retention_handler: RetentionHandler,
        file_handler: FileHandler,
        hasher: Hasher,
        hostname: str | None = None,
        now: datetime | None = None,
    ):
        self.__config = config
        self.__reporter = reporter
        self.__status_io = status_io
        self.__preflight = preflight
        self.__dump_mgr = dump_handler
        self.__archive_mgr = archive_handler
        self.__encrypt_mgr = encryption_handler
        self.__remote_mgr = remote_handler
        self.__retention_mgr = retention_handler
        self.__file_mgr = file_handler
        self.__hasher = hasher

        self.__context = RunContext.create(config, now, hostname)
        self.__record = RunRecord(
            run_id=self.__context.run_id,
            hostname=self.__context.hostname,
            started=now or datetime.now(UTC),
            archive=str(self.__context.encrypted_archive),
        )
        self.__persist = False

    @property
    def context(self) -> RunContext:
        return self.__context

    @property
    def record(self) -> RunRecord:
        return self.__record

    def run(self) -> RunRecord:
        self.__reporter.emit(f"Starting backup dated {self.__context.run_id}")

        for stage in STAGES:
            result = self.__run_stage(stage)
            self.__record.stages.append(StageRecord(stage, result.outcome, result.message))

            if stage == "preflight" and not result.failed:
                # the status file lives in temp_dir, only usable once checked
                self.__persist = True
            self.__save_status()

            if result.failed:
                self.__abort(stage)
                return self.__record

        self.__finish()
        return self.__record

    def __run_stage(self, stage: BackupStage) -> StageResult:
        match stage:
            case "preflight":
                return self.__handle_preflight_stage()

            case "database_dump":
                return self.__handle_dump_stage()

            case "archive":
                return self.__handle_archive_stage()

            case "encrypt":
                return self.__handle_encrypt_stage()

            case "upload":
                return self.__handle_upload_stage()

            case "mirror":
                return self.__handle_mirror_stage()

            case "retention":
                return self.__handle_retention_stage()

            case _:
                raise ValueError(f"Unknown stage {stage}")

    def __handle_preflight_stage(self) -> StageResult:
        if not self.__preflight.validate():
            return StageResult("failed", "preflight checks failed")
        return OK

    def __handle_dump_stage(self) -> StageResult:
        if not self.__dump_mgr.available():
            msg = f"{self.__dump_mgr.tool} not found, not backing up MySQL!"
            self.__reporter.emit(msg)
            return StageResult("skipped", msg)

        if not self.__config.root_mysql:
            msg = "MySQL root password not set, not backing up MySQL!"
            self.__reporter.emit(msg)
            return StageResult("skipped", msg)

        self.__reporter.emit(f"Starting MySQL dump dated {self.__context.run_id}")
        result = self.__dump_mgr.dump(self.__context.dump, self.__config.root_mysql)
        if not result.ok:
            msg = f"MySQL dump failed, continuing without it: {result.describe()}"
            self.__reporter.warning(msg)
            self.__file_mgr.discard(self.__context.dump)
            return StageResult("warning", msg)

        self.__context.add_dump()
        self.__reporter.emit("MySQL dump complete")
        self.__reporter.emit("")
        return OK

    def __handle_archive_stage(self) -> StageResult:
        self.__reporter.emit(f"Starting tar backup dated {self.__context.run_id}")

        result = self.__archive_mgr.create(
            self.__context.archive,
            self.__context.inputs,
            self.__config.exclude,
            self.__config.local_dir,
        )
        for line in result.stdout.splitlines():
            self.__reporter.emit(line, echo=False)

        if result.returncode > TAR_WARNING or not self.__file_mgr.check_file(
            self.__context.archive
        ):
            msg = f"Archive creation failed: {result.describe()}"
            self.__reporter.warning(msg)
            return StageResult("failed", msg)

        self.__reporter.emit(f"Tar archive created: {self.__context.archive.name}")
        if result.returncode == TAR_WARNING:
            msg = f"Archive created with warnings: {result.describe()}"
            self.__reporter.warning(msg)
            return StageResult("warning", msg)

        return OK

    def __handle_encrypt_stage(self) -> StageResult:
        encrypted = self.__context.encrypted_archive

        if self.__config.encryption_kdf == "legacy-sha1":
            self.__reporter.warning(
                "Encrypting with the legacy SHA-1 key derivation, set encryption_kdf to pbkdf2"
            )

        self.__reporter.emit("Encrypting backup")
        result = self.__encrypt_mgr.encrypt(self.__context.archive)
        if not result.ok or not self.__file_mgr.check_file(encrypted):
            msg = f"Encryption failed: {result.describe()}"
            self.__reporter.warning(msg)
            self.__file_mgr.discard(encrypted)
            return StageResult("failed", msg)

        self.__reporter.emit("Encryption completed")
        self.__file_mgr.delete(self.__context.archive)

        digest = self.__hasher.cal_chunks(self.__file_mgr.iter_chunks(encrypted))
        self.__reporter.emit(f"{self.__hasher.name} of {encrypted.name}: {digest}", echo=False)

        size = format_size(self.__file_mgr.get_file_size(encrypted))
        self.__reporter.emit(f"Tar backup complete. Filesize: {size}")
        self.__reporter.emit("")
        return OK

    def __handle_upload_stage(self) -> StageResult:
        self.__reporter.emit("Transferring tar backup to remote server")

        limit = self.__config.scp_limit
        if limit > 0:
            self.__reporter.emit(f"Transfer limited to {limit} Kbit/s", echo=False)

        result = self.__remote_mgr.upload(self.__context.encrypted_archive, limit)
        if not result.ok:
            msg = f"File transfer failed: {result.describe()}"
            self.__reporter.warning(msg)
            return StageResult("failed", msg)

        self.__reporter.emit("File transfer completed")
        self.__reporter.emit("")

        if self.__context.dumped:
            self.__reporter.emit("Deleting temporary MySQL backup")
            self.__reporter.emit("")
            self.__file_mgr.discard(self.__context.dump)

        return OK

    def __handle_mirror_stage(self) -> StageResult:
        trees = self.__config.rsync_dirs
        self.__reporter.emit("Starting rsync backups")

        failed: list[str] = []
        for tree in trees:
            result = self.__remote_mgr.mirror(tree)
            if not result.ok:
                self.__reporter.warning(f"rsync of {tree} failed: {result.describe()}")
                failed.append(tree)

        self.__reporter.emit("rsync backups complete")
        self.__reporter.emit("")

        if failed:
            return StageResult("warning", f"{len(failed)} of {len(trees)} failed: {', '.join(failed)}")
        if not trees:
            return StageResult("skipped", "no rsync_dirs configured")
        return OK

    def __handle_retention_stage(self) -> StageResult:
        failed: list[RetentionTarget] = []
        for target in ("local", "remote"):
            self.__reporter.emit(f"Checking for {target.upper()} backups to delete...")
            result = self.__retention_mgr.prune(target)
            for line in result.stdout.splitlines():
                self.__reporter.emit(line)

            if not result.ok:
                self.__reporter.warning(f"{target} retention failed: {result.describe()}")
                failed.append(target)
            self.__reporter.emit("")

        if failed:
            return StageResult("warning", f"retention failed for {', '.join(failed)}")
        return OK

    def __abort(self, stage: BackupStage) -> None:
        for leftover in (self.__context.dump, self.__context.archive):
            if self.__file_mgr.discard(leftover):
                self.__reporter.emit(f"Removed {leftover}", echo=False)

        self.__record.status = "aborted" if stage == "preflight" else "failed"
        self.__record.finished = datetime.now(UTC)
        self.__save_status()
        self.__reporter.emit(f"Backup aborted after {self.__context.elapsed()} seconds")

    def __finish(self) -> None:
        warned = any(s.outcome == "warning" for s in self.__record.stages)
        self.__record.status = "warning" if warned else "success"
        self.__record.finished = datetime.now(UTC)
        self.__save_status()
        self.__reporter.emit(
            f"All done. Backup and transfer completed in {self.__context.elapsed()} seconds"
        )

    def __save_status(self) -> None:
        if not self.__persist:
            return

        try:
            self.__status_io.save(self.__record)
        except OSError as e:
            self.__reporter.warning(f"Couldn't write run status: {e}", echo=False)
