import argparse
import sys
from pathlib import Path

from loguru import logger

from hostbackup.archive_handler import TarArchiver
from hostbackup.backup_manager import BackupTaskManager
from hostbackup.command_runner import SubprocessRunner
from hostbackup.config import RunConfiguration, load_config
from hostbackup.define import (
    DEFAULT_CONFIG_FILENAME,
    EXIT_CONFIG_ERROR,
    EXIT_PARTIAL,
    EXIT_PREFLIGHT_FAILED,
    EXIT_STAGE_FAILED,
    EXIT_SUCCESS,
    ConfigError,
    RunStatus,
)
from hostbackup.dump_handler import MysqlDumper
from hostbackup.encrypt_handler import OpensslEncryptor
from hostbackup.file_handler import OsFileHandler
from hostbackup.hash_handler import Sha256Hasher
from hostbackup.preflight import PreflightValidator
from hostbackup.remote_handler import SshRemote
from hostbackup.reporter import LoguruRunReporter, RunReporter
from hostbackup.retention_handler import ScriptRetention
from hostbackup.status import MsgpackRunStatusIo

EXIT_CODES: dict[RunStatus, int] = {
    "success": EXIT_SUCCESS,
    "warning": EXIT_PARTIAL,
    "aborted": EXIT_PREFLIGHT_FAILED,
    "failed": EXIT_STAGE_FAILED,
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hostbackup",
        description="Archive, encrypt and ship this host's backup to a remote server",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(DEFAULT_CONFIG_FILENAME),
        metavar="filename",
        help=f"Configuration file (default: ./{DEFAULT_CONFIG_FILENAME})",
    )
    return parser.parse_args(argv)


def build_manager(config: RunConfiguration, reporter: RunReporter) -> BackupTaskManager:
    runner = SubprocessRunner()
    file_mgr = OsFileHandler()
    remote_mgr = SshRemote(
        runner,
        config.remote_server,
        config.remote_port,
        config.remote_user,
        config.remote_dir,
        config.local_dir,
    )

    return BackupTaskManager(
        config,
        reporter,
        MsgpackRunStatusIo(config.resolved_status_file),
        PreflightValidator(config, runner, file_mgr, remote_mgr, reporter),
        MysqlDumper(runner),
        TarArchiver(runner),
        OpensslEncryptor(runner, config.backup_pass, config.encryption_kdf),
        remote_mgr,
        ScriptRetention(runner, config.resolved_retention_script, config.config_file),
        file_mgr,
        Sha256Hasher(),
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(e, file=sys.stderr)
        return EXIT_CONFIG_ERROR

    log_dir = config.resolved_log_file.parent
    if not OsFileHandler().is_writable_dir(log_dir):
        # loguru creates missing parent directories of a file sink
        setting = "log_file" if config.log_file else "local_dir"
        print(f"{log_dir} either doesn't exist or isn't writable", file=sys.stderr)
        print(f"Either fix or replace the {setting} setting", file=sys.stderr)
        return EXIT_PREFLIGHT_FAILED

    # the run reporter owns console output from here on
    logger.remove()
    try:
        reporter = LoguruRunReporter(config.resolved_log_file)
    except OSError as e:
        print(f"Couldn't open log file {config.resolved_log_file}: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        record = build_manager(config, reporter).run()
    finally:
        reporter.close()

    return EXIT_CODES.get(record.status, EXIT_STAGE_FAILED)


if __name__ == "__main__":
    sys.exit(main())
