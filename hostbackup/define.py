from typing import Literal, TypeAlias

BackupStage: TypeAlias = Literal[
    "preflight",
    "database_dump",
    "archive",
    "encrypt",
    "upload",
    "mirror",
    "retention",
]

StageOutcome: TypeAlias = Literal["ok", "skipped", "warning", "failed"]

RunStatus: TypeAlias = Literal["running", "success", "warning", "aborted", "failed"]

KeyDerivation: TypeAlias = Literal["pbkdf2", "legacy-sha1"]

STAGES: tuple[BackupStage, ...] = (
    "preflight",
    "database_dump",
    "archive",
    "encrypt",
    "upload",
    "mirror",
    "retention",
)

ENCODING = "utf-8"

TIMESTAMP_FORMAT = "%Y-%m-%d-%H%M"
"""UTC, minute resolution. Used for the run id and every log line."""

DEFAULT_CONFIG_FILENAME = "backup.yaml"
DEFAULT_LOG_FILENAME = "backup.log"
DEFAULT_STATUS_FILENAME = "hostbackup-status.msgpack"
DEFAULT_RETENTION_SCRIPT = "deleteoldbackups.sh"

PASSPHRASE_ENV = "BACKUP_PASSPHRASE"
OPENSSL_PASSPHRASE_ENV = "HOSTBACKUP_PASSPHRASE"
PBKDF2_ITERATIONS = 100000

REQUIRED_TOOLS: tuple[str, ...] = ("tar", "gzip", "openssl", "scp", "ssh", "rsync")
DUMP_TOOL = "mysqldump"

EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_PREFLIGHT_FAILED = 3
EXIT_STAGE_FAILED = 4
EXIT_PARTIAL = 5


class ConfigError(Exception):
    """Exception raised when the configuration file is missing or invalid."""

    pass
