from datetime import UTC, datetime
from pathlib import Path

from hostbackup.status import MsgpackRunStatusIo, RunRecord, StageRecord


class TestMsgpackRunStatusIo:
    def test_load_without_file(self, tmp_path: Path):
        status_io = MsgpackRunStatusIo(tmp_path / "status.msgpack")

        assert status_io.load() is None

    def test_save_and_load(self, tmp_path: Path):
        status_io = MsgpackRunStatusIo(tmp_path / "status.msgpack")
        record = RunRecord(
            run_id="2026-10-19-0330",
            hostname="web01",
            started=datetime(2026, 10, 19, 3, 30, 12, tzinfo=UTC),
            status="warning",
            archive="/backup/web01-2026-10-19-0330.tar.gz.enc",
            finished=datetime(2026, 10, 19, 3, 41, 2, tzinfo=UTC),
            stages=[
                StageRecord("preflight", "ok"),
                StageRecord("mirror", "warning", "1 of 2 failed: /var/www"),
            ],
        )

        status_io.save(record)
        loaded = status_io.load()

        assert loaded == record
        assert loaded.started.tzinfo is not None
        assert loaded.outcome("mirror") == "warning"
        assert loaded.last_stage == StageRecord("mirror", "warning", "1 of 2 failed: /var/www")

    def test_save_overwrites_previous_run(self, tmp_path: Path):
        status_io = MsgpackRunStatusIo(tmp_path / "status.msgpack")
        started = datetime(2026, 10, 19, 3, 30, tzinfo=UTC)

        status_io.save(RunRecord("2026-10-18-0330", "web01", started, "failed"))
        status_io.save(RunRecord("2026-10-19-0330", "web01", started, "running"))

        loaded = status_io.load()
        assert loaded.run_id == "2026-10-19-0330"
        assert loaded.stages == []
        assert loaded.finished is None
