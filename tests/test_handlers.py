from pathlib import Path

import pytest

from hostbackup.archive_handler import TarArchiver
from hostbackup.command_runner import COMMAND_NOT_FOUND, CommandResult, MockCommandRunner
from hostbackup.define import OPENSSL_PASSPHRASE_ENV, PBKDF2_ITERATIONS
from hostbackup.dump_handler import MysqlDumper
from hostbackup.encrypt_handler import OpensslEncryptor
from hostbackup.file_handler import MockFileSystem, format_size
from hostbackup.hash_handler import Sha256Hasher
from hostbackup.remote_handler import SshRemote
from hostbackup.retention_handler import ScriptRetention

ARCHIVE = Path("/backup/web01-2026-10-19-0330.tar.gz")


@pytest.fixture
def tools_runner() -> MockCommandRunner:
    return MockCommandRunner(
        tools={"tar", "openssl", "ssh", "scp", "rsync", "bash", "mysqldump"}
    )


@pytest.fixture
def remote(tools_runner: MockCommandRunner) -> SshRemote:
    return SshRemote(
        tools_runner,
        "backup.example.org",
        2222,
        "backup",
        "/srv/backups/web01",
        Path("/backup"),
    )


class TestSshRemote:
    def test_check_login(self, remote: SshRemote, tools_runner: MockCommandRunner):
        remote.check_login()

        assert tools_runner.calls[0].args == [
            "ssh",
            "-oBatchMode=yes",
            "-p",
            "2222",
            "backup@backup.example.org",
            "echo",
            "test",
        ]

    def test_check_writable(self, remote: SshRemote, tools_runner: MockCommandRunner):
        remote.check_writable()

        assert tools_runner.calls[0].args[-3:] == ["test", "-w", "/srv/backups/web01"]

    def test_upload_unlimited(self, remote: SshRemote, tools_runner: MockCommandRunner):
        remote.upload(Path("/backup/a.tar.gz.enc"))

        assert tools_runner.commands("scp") == [
            [
                "scp",
                "-P",
                "2222",
                "/backup/a.tar.gz.enc",
                "backup@backup.example.org:/srv/backups/web01",
            ]
        ]

    def test_upload_rate_limited(self, remote: SshRemote, tools_runner: MockCommandRunner):
        remote.upload(Path("/backup/a.tar.gz.enc"), limit=800)

        assert tools_runner.commands("scp")[0][:3] == ["scp", "-l", "800"]

    def test_mirror(self, remote: SshRemote, tools_runner: MockCommandRunner):
        remote.mirror("/var/www")

        cmd = tools_runner.commands("rsync")[0]
        for flag in ("--delete", "--relative", "--no-links"):
            assert flag in cmd
        assert cmd[cmd.index("-e") + 1] == "ssh -p 2222"
        assert cmd[-2:] == ["/var/www", "backup@backup.example.org:/srv/backups/web01"]

    def test_mirror_runs_from_local_dir(self, remote: SshRemote, tools_runner: MockCommandRunner):
        remote.mirror("www")

        call = tools_runner.calls[0]
        assert call.cwd == Path("/backup")
        assert call.args[-2:] == ["www", "backup@backup.example.org:/srv/backups/web01"]


class TestTarArchiver:
    def test_exclusions_precede_inputs(self, tools_runner: MockCommandRunner):
        archiver = TarArchiver(tools_runner)
        archiver.create(ARCHIVE, ["/etc", "/tmp/mysql.sql"], ("*.log", "cache"), Path("/backup"))

        call = tools_runner.calls[0]
        assert call.args == [
            "tar",
            "--exclude=*.log",
            "--exclude=cache",
            "-zcvf",
            str(ARCHIVE),
            "--",
            "/etc",
            "/tmp/mysql.sql",
        ]
        assert call.cwd == Path("/backup")


class TestOpensslEncryptor:
    def test_passphrase_stays_off_the_command_line(self, tools_runner: MockCommandRunner):
        OpensslEncryptor(tools_runner, "s3cret").encrypt(ARCHIVE)

        call = tools_runner.calls[0]
        assert "s3cret" not in " ".join(call.args)
        assert call.env == {OPENSSL_PASSPHRASE_ENV: "s3cret"}
        assert call.args[call.args.index("-out") + 1] == f"{ARCHIVE}.enc"
        assert "-aes-256-cbc" in call.args

    def test_pbkdf2_by_default(self, tools_runner: MockCommandRunner):
        OpensslEncryptor(tools_runner, "s3cret").encrypt(ARCHIVE)

        args = tools_runner.calls[0].args
        assert "-pbkdf2" in args
        assert args[args.index("-iter") + 1] == str(PBKDF2_ITERATIONS)
        assert args[args.index("-md") + 1] == "sha256"

    def test_legacy_sha1(self, tools_runner: MockCommandRunner):
        OpensslEncryptor(tools_runner, "s3cret", "legacy-sha1").encrypt(ARCHIVE)

        args = tools_runner.calls[0].args
        assert "-pbkdf2" not in args
        assert args[args.index("-md") + 1] == "sha1"


class TestMysqlDumper:
    def test_dump_command(self, tools_runner: MockCommandRunner):
        dumper = MysqlDumper(tools_runner)

        assert dumper.available() is True
        dumper.dump(Path("/tmp/mysql_2026-10-19-0330.sql"), "s3cret")

        call = tools_runner.calls[0]
        assert call.args == [
            "mysqldump",
            "-u",
            "root",
            "--all-databases",
            "--result-file=/tmp/mysql_2026-10-19-0330.sql",
        ]
        assert call.env == {"MYSQL_PWD": "s3cret"}

    def test_not_installed(self):
        assert MysqlDumper(MockCommandRunner()).available() is False


class TestScriptRetention:
    def test_local_then_remote(self, tools_runner: MockCommandRunner):
        retention = ScriptRetention(
            tools_runner, Path("/opt/deleteoldbackups.sh"), Path("/etc/backup.yaml")
        )
        retention.prune("local")
        retention.prune("remote")

        assert tools_runner.commands("bash") == [
            ["bash", "/opt/deleteoldbackups.sh", "--config", "/etc/backup.yaml"],
            ["bash", "/opt/deleteoldbackups.sh", "--config", "/etc/backup.yaml", "--remote"],
        ]


class TestCommandResult:
    def test_describe_uses_last_stderr_line(self):
        result = CommandResult(("scp", "a"), 1, "", "debug\nlost connection\n")

        assert result.ok is False
        assert result.describe() == "scp exited with code 1: lost connection"

    def test_unknown_tool(self):
        result = MockCommandRunner().run(["tar", "-t"])

        assert result.returncode == COMMAND_NOT_FOUND

    def test_responder_overrides(self):
        runner = MockCommandRunner(
            tools={"ssh"},
            responders=[lambda args, cwd, env: CommandResult(tuple(args), 0, "test\n")],
        )

        assert runner.run(["ssh", "echo", "test"]).stdout == "test\n"


class TestFileHelpers:
    @pytest.mark.parametrize(
        "size, expected",
        [(0, "0B"), (512, "512B"), (2048, "2.0K"), (5 * 1024**3, "5.0G")],
    )
    def test_format_size(self, size: int, expected: str):
        assert format_size(size) == expected

    def test_discard(self):
        fs = MockFileSystem()
        fs.save("/tmp/a", b"x")

        assert fs.discard("/tmp/a") is True
        assert fs.discard("/tmp/a") is False
        assert fs.deleted == ["/tmp/a"]

    def test_sha256_chunks(self):
        fs = MockFileSystem()
        fs.save("/backup/a.enc", b"abc")

        digest = Sha256Hasher().cal_chunks(fs.iter_chunks(Path("/backup/a.enc")))
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
