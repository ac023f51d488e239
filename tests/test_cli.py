"""
Tests for the testlog-ingest CLI.
"""

import json

import pytest

from testlog_ingest.cli import build_parser, main
from testlog_ingest.persistence import SqliteRecordStore

from conftest import SAMPLE_LOG


@pytest.fixture(autouse=True)
def restore_signal_handlers():
    """`run` installs SIGINT/SIGTERM handlers; put the originals back."""
    import signal

    saved = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    yield
    for sig, handler in saved.items():
        signal.signal(sig, handler)


@pytest.fixture
def service_config(write_config, watch_dir, tmp_path):
    return write_config({
        "watcher": {"path": str(watch_dir)},
        "processing": {"stable_wait_ms": 100, "idle_delay_ms": 10, "recheck_delay_ms": 10},
        "archive": {"success_path": str(tmp_path / "done"), "error_path": str(tmp_path / "failed")},
        "database": {"path": str(tmp_path / "records.db")},
        "logging": {"level": "WARNING"},
    })


class TestParseCommand:
    """Tests for `testlog-ingest parse`."""

    def test_prints_record_json(self, tmp_path, capsys):
        path = tmp_path / "unit.log"
        path.write_text(SAMPLE_LOG, encoding="utf-8")

        exit_code = main(["parse", str(path)])

        assert exit_code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["id"] == "SN123-20240315-140509"
        assert data["current"]["value"] == "0.174719"
        assert len(data["content_sha256"]) == 64
        assert "raw_text" not in data

    def test_format_error_exit_code(self, tmp_path, capsys):
        path = tmp_path / "bad.log"
        path.write_text("Date: 2024-03-15\n", encoding="utf-8")

        assert main(["parse", str(path)]) == 1
        assert "Device Serial Number" in capsys.readouterr().err

    def test_missing_file(self, tmp_path):
        assert main(["parse", str(tmp_path / "absent.log")]) == 1


@pytest.mark.slow
class TestRunCommand:
    """Tests for `testlog-ingest run --once`."""

    def test_once_ingests_and_archives(self, service_config, watch_dir, tmp_path):
        (watch_dir / "unit.log").write_text(SAMPLE_LOG, encoding="utf-8")

        exit_code = main(["run", "--config", str(service_config), "--once", "--timeout", "10"])

        assert exit_code == 0
        assert (tmp_path / "done" / "unit.log").exists()
        store = SqliteRecordStore(str(tmp_path / "records.db"))
        assert store.list_keys() == ["SN123-20240315-140509"]

    def test_once_with_bad_file_exits_1(self, service_config, watch_dir, tmp_path):
        (watch_dir / "bad.log").write_text("garbage\n", encoding="utf-8")

        exit_code = main(["run", "--config", str(service_config), "--once", "--timeout", "10"])

        assert exit_code == 1
        assert (tmp_path / "failed" / "bad.log").exists()

    def test_missing_watch_folder(self, service_config, tmp_path):
        exit_code = main([
            "run", "--config", str(service_config), "--once",
            "--watch", str(tmp_path / "absent"),
        ])

        assert exit_code == 1

    def test_invalid_config(self, write_config):
        path = write_config({"watcher": {"path": "relative"}})

        assert main(["run", "--config", str(path), "--once"]) == 1


class TestShowCommand:
    """Tests for `testlog-ingest show`."""

    def test_show_after_run(self, service_config, watch_dir, capsys):
        (watch_dir / "unit.log").write_text(SAMPLE_LOG, encoding="utf-8")
        main(["run", "--config", str(service_config), "--once", "--timeout", "10"])
        capsys.readouterr()

        exit_code = main(["show", "SN123-20240315-140509", "--config", str(service_config)])

        assert exit_code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["version"] == 1
        assert data["device_serial"] == "SN123"
        assert data["overall_result"] == "PASS"
        assert data["signal_blocks"] == 2

    def test_show_unknown_key(self, service_config, capsys):
        assert main(["show", "NOPE", "--config", str(service_config)]) == 1
        assert "not found" in capsys.readouterr().err


class TestArgumentParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_run_options(self):
        args = build_parser().parse_args(["run", "--once", "--max-concurrency", "4", "--watch", "/data"])

        assert args.once is True
        assert args.max_concurrency == 4
        assert args.watch == "/data"
