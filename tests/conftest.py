"""
Shared fixtures for the testlog-ingest test suite.
"""

import json
from pathlib import Path

import pytest

from testlog_ingest.persistence.manager import SqliteRecordStore


SAMPLE_LOG = (
    "Device Serial Number: SN123\n"
    "Date: 2024-03-15\n"
    "Time: 14:05:09\n"
    "Test Operator: jdoe\n"
    "MCU Serial Number: MCU-0042\n"
    "RF Unit Serial Number: RF-7781\n"
    "Reader Type: R2000\n"
    "Tagmod Version: 3.1.4\n"
    "RFsweep build date: 2023-11-02\n"
    "Config and Limit File Version: 12\n"
    "Read Level: 4\n"
    "\n"
    "Time for test: \t147 seconds \tPass/Fail: \tPASS\n"
    "\n"
    "Current result:\n"
    "Measured current:\t0,174719\tLimitLow:\t0,130000\tLimitHigh:\t0,220000\tUnit:\tA\tPass/Fail:\tPASS\n"
    "\n"
    "Signal Strength Data\n"
    "Output power:\t27\tPASS\n"
    "Comparison:\n"
    "GELE\t0,5\t1,5\t0,9\tdB\tPASS\n"
    "Frequency Array:\n"
    "865 866 867\n"
    "Signal Strength Matrix\n"
    "-40 -41 -42\n"
    "-43 -44\n"
    "\n"
    "Average Signal Strength\n"
    "-41 -43\n"
    "Attenuation Array\n"
    "0 3 6\n"
    "\n"
    "Signal Strength Data\n"
    "Output power:\t20\tFAIL\n"
    "Comparison:\n"
    "0,2\t0,8\t0,95\tdB\tFAIL\n"
    "Frequency Array:\n"
    "902 915\n"
    "Signal Strength Matrix\n"
    "-50 -51\n"
    "Average Signal Strength\n"
    "-50\n"
    "Attenuation Array\n"
    "0 10\n"
)


def make_log(serial: str = "SN123", date: str = "2024-03-15", time: str = "14:05:09", operator: str = "jdoe") -> str:
    """Sample log with a different identity or content."""
    return (
        SAMPLE_LOG.replace("SN123", serial)
        .replace("2024-03-15", date)
        .replace("14:05:09", time)
        .replace("jdoe", operator)
    )


@pytest.fixture
def sample_log() -> str:
    return SAMPLE_LOG


@pytest.fixture
def store(tmp_path: Path) -> SqliteRecordStore:
    """Fresh SQLite record store in a temp directory."""
    return SqliteRecordStore(str(tmp_path / "records.db"))


@pytest.fixture
def watch_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "incoming"
    folder.mkdir()
    return folder


@pytest.fixture
def write_config(tmp_path: Path):
    """Write a JSON config file and return its path."""

    def _write(data: dict, name: str = "config.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
