"""Tests for the polling monitor."""

from __future__ import annotations

import io
from pathlib import Path

import pytest

from pyspbm.binding import DeviceBinding
from pyspbm.monitor import (
    DEFAULT_METRICS,
    CsvFormatter,
    DirectSource,
    SysfsSource,
    TableFormatter,
    format_snapshot,
    run_monitor,
    validate_metrics,
)
from pyspbm.sysfs import HwmonSysfsReader


class _FakeSource:
    def __init__(self, labels: list[str]) -> None:
        self.labels = labels
        self.calls = 0

    def sample(self) -> dict[str, float]:
        self.calls += 1
        return {label: float(self.calls) for label in self.labels}


class _FakeProcess:
    """Process that exits after ``polls`` waits."""

    def __init__(self, polls: int) -> None:
        self.returncode: int | None = None
        self._polls = polls

    async def wait(self) -> int:
        self._polls -= 1
        if self._polls <= 0:
            self.returncode = 3
        return 0 if self.returncode is None else self.returncode


class TestValidateMetrics:
    """Tests for metric label validation."""

    def test_defaults_valid(self) -> None:
        """Test the default metric list names power channels."""
        assert validate_metrics(DEFAULT_METRICS) == list(DEFAULT_METRICS)

    def test_unknown_label(self) -> None:
        """Test unknown labels are listed in the error."""
        with pytest.raises(ValueError, match="bogus"):
            validate_metrics(["cpu_p", "bogus"])

    def test_empty(self) -> None:
        """Test an empty list is rejected."""
        with pytest.raises(ValueError, match="At least one"):
            validate_metrics([])


class TestSources:
    """Tests for sample sources."""

    def test_direct_source_watts(self, binding: DeviceBinding) -> None:
        """Test direct samples convert to watts."""
        source = DirectSource(binding, ["sys_total", "cpu_p", "vcore"])

        assert source.sample() == {"sys_total": 25.0, "cpu_p": 4.5, "vcore": 0.0}

    def test_direct_source_unbound(
        self, binding: DeviceBinding, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test read failures become zero and are logged."""
        source = DirectSource(binding, ["cpu_p"])
        binding.unbind()

        assert source.sample() == {"cpu_p": 0.0}
        assert "Cannot read cpu_p" in caplog.text

    def test_sysfs_source(self, fake_hwmon: Path) -> None:
        """Test sysfs samples resolve labels through the driver's label files."""
        source = SysfsSource(HwmonSysfsReader(fake_hwmon / "hwmon2"), ["dc_input", "cpu_p"])

        assert source.sample() == {"dc_input": 30.0, "cpu_p": 4.5}

    def test_sysfs_source_missing_channel(self, fake_hwmon: Path) -> None:
        """Test a channel the driver does not publish reads as zero."""
        source = SysfsSource(HwmonSysfsReader(fake_hwmon / "hwmon2"), ["gpu_out"])

        assert source.sample() == {"gpu_out": 0.0}


class TestFormatters:
    """Tests for table and CSV output."""

    def test_table_header(self) -> None:
        """Test the header row and dashed rule have equal width."""
        header = TableFormatter(["cpu_p", "vcore"]).header()

        line, rule = header.split("\n")
        assert line == "sec      |     cpu_p(W) |     vcore(W)"
        assert rule == "-" * len(line)

    def test_table_row(self) -> None:
        """Test rows use three decimals."""
        row = TableFormatter(["cpu_p"]).row(2, {"cpu_p": 4.5})

        assert row == "2        |        4.500"

    def test_csv(self) -> None:
        """Test CSV header and rows."""
        formatter = CsvFormatter(["soc_pkg", "cpu_p"])

        assert formatter.header() == "sec,soc_pkg,cpu_p"
        assert formatter.row(0, {"soc_pkg": 12.5, "cpu_p": 4.5}) == "0,12.500,4.500"

    def test_format_snapshot(self, binding: DeviceBinding) -> None:
        """Test every channel is rendered once with its unit."""
        lines = format_snapshot(binding.snapshot())

        assert len(lines) == 28
        assert lines[0] == "sys_total:           25.000 W"
        assert lines[23].startswith("pkg:")
        assert lines[23].endswith("987.654 J")


class TestRunMonitor:
    """Tests for the asyncio polling loop."""

    @pytest.mark.asyncio
    async def test_max_samples(self) -> None:
        """Test the loop stops after max_samples rows."""
        stream = io.StringIO()
        source = _FakeSource(["cpu_p"])

        count = await run_monitor(
            source, CsvFormatter(source.labels), interval=0, stream=stream, max_samples=3
        )

        assert count == 3
        assert stream.getvalue().splitlines() == [
            "sec,cpu_p",
            "0,1.000",
            "1,2.000",
            "2,3.000",
        ]

    @pytest.mark.asyncio
    async def test_stops_when_process_exits(self) -> None:
        """Test sampling ends once the child process has exited."""
        stream = io.StringIO()
        source = _FakeSource(["cpu_p"])
        process = _FakeProcess(polls=2)

        count = await run_monitor(
            source,
            CsvFormatter(source.labels),
            interval=0.01,
            stream=stream,
            process=process,
        )

        assert count == 2
        assert process.returncode == 3

    @pytest.mark.asyncio
    async def test_zero_samples(self) -> None:
        """Test max_samples=0 writes only the header."""
        stream = io.StringIO()
        source = _FakeSource(["cpu_p"])

        count = await run_monitor(
            source, TableFormatter(source.labels), interval=0, stream=stream, max_samples=0
        )

        assert count == 0
        assert source.calls == 0
        assert len(stream.getvalue().splitlines()) == 2
