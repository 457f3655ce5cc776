"""Telemetry read path: catalog lookup, register load, unit conversion.

Every call performs a fresh register load; nothing is cached. Power
channels can change between two consecutive reads since the firmware runs
a fast internal control loop. Energy channels are cumulative 32-bit
counters; wraparound is left to the consumer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .channels import (
    ENERGY_CHANNELS,
    MILLI_TO_MICRO,
    POWER_CHANNELS,
    ChannelKind,
    channel,
    index_of,
)
from .register_map import RegisterWindow


@dataclass
class TelemetrySnapshot:
    """All channels read once, in exposed micro-units.

    Attributes:
        power: Label to microwatts, in catalog order
        energy: Label to microjoules, in catalog order
        timestamp: When the snapshot was taken
    """

    power: dict[str, int] = field(default_factory=dict)
    energy: dict[str, int] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)


class TelemetryReader:
    """Reads catalog channels from a register window.

    Example:
        reader = TelemetryReader(window)
        reader.read_channel(ChannelKind.POWER, 3)   # cpu_p in uW
        reader.label_of(ChannelKind.ENERGY, 0)      # "pkg"
    """

    def __init__(self, window: RegisterWindow) -> None:
        self._window = window

    @property
    def window(self) -> RegisterWindow:
        return self._window

    def read_raw(self, kind: ChannelKind | str, index: int) -> int:
        """Read a channel in native units (mW or mJ).

        The index is validated before the window is touched.

        Raises:
            ChannelOutOfRangeError: If ``index`` is not in the catalog
            ValueError: If ``kind`` is unknown
        """
        return self._window.read32(channel(kind, index).offset)

    def read_channel(self, kind: ChannelKind | str, index: int) -> int:
        """Read a channel in exposed units (uW or uJ).

        Python ints do not overflow, so the full 32-bit range times 1000
        is returned exactly.
        """
        return self.read_raw(kind, index) * MILLI_TO_MICRO

    def read_power(self, index: int) -> int:
        """Read power channel ``index`` in microwatts."""
        return self.read_channel(ChannelKind.POWER, index)

    def read_energy(self, index: int) -> int:
        """Read energy channel ``index`` in microjoules."""
        return self.read_channel(ChannelKind.ENERGY, index)

    def label_of(self, kind: ChannelKind | str, index: int) -> str:
        """Return the stable label of a channel."""
        return channel(kind, index).label

    def read_by_label(self, kind: ChannelKind | str, label: str) -> int:
        """Read a channel by label, in exposed units.

        Raises:
            KeyError: If no channel of ``kind`` has the label
        """
        return self.read_channel(kind, index_of(kind, label))

    def snapshot(self) -> TelemetrySnapshot:
        """Read every channel once."""
        snap = TelemetrySnapshot()
        for chan in POWER_CHANNELS:
            snap.power[chan.label] = self._window.read32(chan.offset) * MILLI_TO_MICRO
        for chan in ENERGY_CHANNELS:
            snap.energy[chan.label] = self._window.read32(chan.offset) * MILLI_TO_MICRO
        return snap


__all__ = ["TelemetryReader", "TelemetrySnapshot"]
