"""Run configuration, loaded once from a YAML file before any stage runs."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from hostbackup.define import (
    DEFAULT_LOG_FILENAME,
    DEFAULT_RETENTION_SCRIPT,
    DEFAULT_STATUS_FILENAME,
    ENCODING,
    PASSPHRASE_ENV,
    ConfigError,
    KeyDerivation,
)

KEY_DERIVATIONS: tuple[KeyDerivation, ...] = ("pbkdf2", "legacy-sha1")


@dataclass(slots=True, frozen=True)
class RunConfiguration:
    config_file: Path
    """File the configuration was read from, handed on to the retention script"""

    local_dir: Path
    """Local backup directory, holds the encrypted archives"""

    temp_dir: Path
    """Scratch directory for the database dump"""

    remote_server: str

    remote_user: str

    remote_dir: str

    backup_pass: str
    """Encryption passphrase, never persisted"""

    remote_port: int = 22

    root_mysql: str | None = None
    """MySQL root password, dump is skipped when unset"""

    scp_limit: int = 0
    """Bulk transfer cap in kbit/s, 0 = unlimited"""

    exclude: tuple[str, ...] = ()

    backup: tuple[str, ...] = ()
    """Static archive inputs"""

    rsync_dirs: tuple[str, ...] = ()
    """Directory trees mirrored to the remote, in order"""

    encryption_kdf: KeyDerivation = "pbkdf2"

    log_file: Path | None = None

    status_file: Path | None = None

    retention_script: Path | None = None

    @property
    def remote_target(self) -> str:
        return f"{self.remote_user}@{self.remote_server}"

    @property
    def resolved_log_file(self) -> Path:
        return self.log_file or self.local_dir / DEFAULT_LOG_FILENAME

    @property
    def resolved_status_file(self) -> Path:
        return self.status_file or self.temp_dir / DEFAULT_STATUS_FILENAME

    @property
    def resolved_retention_script(self) -> Path:
        return self.retention_script or self.config_file.parent / DEFAULT_RETENTION_SCRIPT


def load_config(config_file: Path, environ: Mapping[str, str] | None = None) -> RunConfiguration:
    """Read and validate a configuration file.

    Args:
        config_file: YAML file holding a flat mapping of settings.
        environ: Environment used for the passphrase override, `os.environ` by default.

    Returns:
        The immutable run configuration.

    Raises:
        ConfigError: The file is missing, unreadable or holds invalid settings.
    """
    if not config_file.is_file():
        raise ConfigError(f"Couldn't find config file: {config_file}")

    try:
        with open(config_file, "r", encoding=ENCODING) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Couldn't read config file {config_file}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_file} must hold a mapping of settings")

    return parse_config(data, config_file, os.environ if environ is None else environ)


def parse_config(
    data: dict[str, Any],
    config_file: Path,
    environ: Mapping[str, str],
) -> RunConfiguration:
    passphrase = environ.get(PASSPHRASE_ENV) or _optional_str(data, "backup_pass")
    if not passphrase:
        raise ConfigError(f"backup_pass is not set and {PASSPHRASE_ENV} is empty")

    local_dir = Path(_required_str(data, "local_dir"))

    kdf = data.get("encryption_kdf", "pbkdf2")
    if kdf not in KEY_DERIVATIONS:
        raise ConfigError(
            f"encryption_kdf must be one of {', '.join(KEY_DERIVATIONS)}, got '{kdf}'"
        )

    remote_port = _int(data, "remote_port", 22)
    if not 0 < remote_port < 65536:
        raise ConfigError(f"remote_port out of range: {remote_port}")

    scp_limit = _int(data, "scp_limit", 0)
    if scp_limit < 0:
        raise ConfigError(f"scp_limit must not be negative: {scp_limit}")

    return RunConfiguration(
        config_file=config_file,
        local_dir=local_dir,
        temp_dir=Path(_required_str(data, "temp_dir")),
        remote_server=_required_str(data, "remote_server"),
        remote_user=_required_str(data, "remote_user"),
        remote_dir=_required_str(data, "remote_dir"),
        backup_pass=passphrase,
        remote_port=remote_port,
        root_mysql=_optional_str(data, "root_mysql"),
        scp_limit=scp_limit,
        exclude=_str_list(data, "exclude"),
        backup=_str_list(data, "backup"),
        rsync_dirs=_str_list(data, "rsync_dirs"),
        encryption_kdf=kdf,
        log_file=_optional_path(data, "log_file"),
        status_file=_optional_path(data, "status_file"),
        retention_script=_optional_path(data, "retention_script"),
    )


def _required_str(data: dict[str, Any], key: str) -> str:
    value = _optional_str(data, key)
    if not value:
        raise ConfigError(f"{key} is required")
    return value


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, (dict, list)):
        raise ConfigError(f"{key} must be a single value")
    return str(value)


def _optional_path(data: dict[str, Any], key: str) -> Path | None:
    value = _optional_str(data, key)
    return Path(value) if value else None


def _int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be an integer, got '{value}'") from e


def _str_list(data: dict[str, Any], key: str) -> tuple[str, ...]:
    value = data.get(key)
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise ConfigError(f"{key} must be a list")
    return tuple(str(item) for item in value)
