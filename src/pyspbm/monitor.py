"""Polling monitor: sample power channels at a fixed interval.

Two sources produce the same ``{label: watts}`` samples:

- :class:`DirectSource` reads a :class:`~pyspbm.binding.DeviceBinding`
  (the mapped window, needs ``/dev/mem`` access)
- :class:`SysfsSource` reads the kernel ``spbm`` hwmon files

Sampling cadence is a client policy; the core places no limit on it. A
channel that cannot be read is shown as 0.000 W and logged, so one bad
read does not stop a long-running capture.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import Protocol, TextIO

from .binding import DeviceBinding
from .channels import POWER_BY_LABEL, ChannelKind
from .exceptions import SpbmError
from .reader import TelemetrySnapshot
from .sysfs import HwmonSysfsReader

_LOGGER = logging.getLogger(__name__)

DEFAULT_METRICS: tuple[str, ...] = (
    "soc_pkg",
    "sys_total",
    "cpu_p",
    "cpu_e",
    "vcore",
    "dc_input",
)

MICRO = 1_000_000


def validate_metrics(labels: Iterable[str]) -> list[str]:
    """Check that every label names a power channel.

    Raises:
        ValueError: If a label is unknown
    """
    result = list(labels)
    unknown = [label for label in result if label not in POWER_BY_LABEL]
    if unknown:
        raise ValueError(
            f"Unknown power channel(s): {', '.join(unknown)}. "
            f"Known: {', '.join(POWER_BY_LABEL)}"
        )
    if not result:
        raise ValueError("At least one metric is required")
    return result


class SampleSource(Protocol):
    """Anything that can produce one sample of the configured labels."""

    labels: list[str]

    def sample(self) -> dict[str, float]: ...


class DirectSource:
    """Samples power channels from a device binding."""

    def __init__(self, binding: DeviceBinding, labels: Iterable[str] = DEFAULT_METRICS) -> None:
        self.labels = validate_metrics(labels)
        self._binding = binding

    def sample(self) -> dict[str, float]:
        values: dict[str, float] = {}
        for label in self.labels:
            try:
                micro = self._binding.read_channel(ChannelKind.POWER, POWER_BY_LABEL[label])
            except SpbmError as err:
                _LOGGER.warning("Cannot read %s: %s", label, err)
                micro = 0
            values[label] = micro / MICRO
        return values


class SysfsSource:
    """Samples power channels from the kernel hwmon files."""

    def __init__(self, reader: HwmonSysfsReader, labels: Iterable[str] = DEFAULT_METRICS) -> None:
        self.labels = validate_metrics(labels)
        self._reader = reader
        present = reader.labels(ChannelKind.POWER)
        # Fall back to catalog numbering when the driver publishes no labels
        self._index = {label: present.get(label, POWER_BY_LABEL[label]) for label in self.labels}

    def sample(self) -> dict[str, float]:
        values: dict[str, float] = {}
        for label in self.labels:
            try:
                micro = self._reader.read_input(ChannelKind.POWER, self._index[label])
            except (OSError, ValueError) as err:
                _LOGGER.warning("Cannot read %s: %s", label, err)
                micro = 0
            values[label] = micro / MICRO
        return values


# =============================================================================
# FORMATTERS
# =============================================================================


class TableFormatter:
    """Fixed-width table with a dashed rule under the header."""

    def __init__(self, labels: Sequence[str]) -> None:
        self.labels = list(labels)
        self._fmt = "%-8s" + " | %12s" * len(self.labels)

    def header(self) -> str:
        line = self._fmt % ("sec", *(f"{label}(W)" for label in self.labels))
        return f"{line}\n{'-' * len(line)}"

    def row(self, sec: int, values: dict[str, float]) -> str:
        return self._fmt % (sec, *(f"{values.get(label, 0.0):.3f}" for label in self.labels))


class CsvFormatter:
    """Comma-separated rows with a ``sec,<labels>`` header."""

    def __init__(self, labels: Sequence[str]) -> None:
        self.labels = list(labels)

    def header(self) -> str:
        return ",".join(["sec", *self.labels])

    def row(self, sec: int, values: dict[str, float]) -> str:
        return ",".join([str(sec), *(f"{values.get(label, 0.0):.3f}" for label in self.labels)])


def format_snapshot(snapshot: TelemetrySnapshot) -> list[str]:
    """Render every channel once, ``sensors``-style."""
    lines = [f"{label + ':':<14} {micro / MICRO:>12.3f} W" for label, micro in snapshot.power.items()]
    lines.extend(
        f"{label + ':':<14} {micro / MICRO:>12.3f} J" for label, micro in snapshot.energy.items()
    )
    return lines


class _Process(Protocol):
    returncode: int | None

    async def wait(self) -> int: ...


async def run_monitor(
    source: SampleSource,
    formatter: TableFormatter | CsvFormatter,
    *,
    interval: float,
    stream: TextIO,
    process: _Process | None = None,
    max_samples: int | None = None,
) -> int:
    """Sample ``source`` every ``interval`` seconds and write rows to ``stream``.

    Args:
        source: Sample producer
        formatter: Row formatter
        interval: Seconds between samples
        stream: Output stream
        process: Stop once this process exits; run until cancelled if None
        max_samples: Stop after this many samples

    Returns:
        Number of samples written
    """
    stream.write(formatter.header() + "\n")
    stream.flush()

    sec = 0
    while process is None or process.returncode is None:
        if max_samples is not None and sec >= max_samples:
            break
        stream.write(formatter.row(sec, source.sample()) + "\n")
        stream.flush()
        sec += 1

        if process is None:
            await asyncio.sleep(interval)
            continue
        try:
            await asyncio.wait_for(process.wait(), timeout=interval)
        except TimeoutError:
            pass

    _LOGGER.debug("Monitor stopped after %d samples", sec)
    return sec


__all__ = [
    "DEFAULT_METRICS",
    "CsvFormatter",
    "DirectSource",
    "SampleSource",
    "SysfsSource",
    "TableFormatter",
    "format_snapshot",
    "run_monitor",
    "validate_metrics",
]
