"""Client for an ``spbm`` hwmon device already registered with the kernel.

When the kernel driver is loaded its channels appear under
``/sys/class/hwmon/hwmonN/`` with the same numbering and labels as
:mod:`pyspbm.channels`; this module reads them without needing
``/dev/mem`` access.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .channels import ChannelKind, to_kind
from .exceptions import ResourceNotFoundError
from .reader import TelemetrySnapshot

_LOGGER = logging.getLogger(__name__)

HWMON_ROOT = "/sys/class/hwmon"


def find_hwmon_dir(name: str = "spbm", root: str | Path = HWMON_ROOT) -> Path:
    """Locate the hwmon directory whose ``name`` file matches ``name``.

    Raises:
        ResourceNotFoundError: If no such hwmon device is registered
    """
    base = Path(root)
    if base.is_dir():
        for entry in sorted(base.iterdir()):
            try:
                if (entry / "name").read_text().strip() == name:
                    _LOGGER.debug("Found %s hwmon device at %s", name, entry)
                    return entry
            except OSError:
                continue
    raise ResourceNotFoundError(f"{name} driver not found in {base}/")


class HwmonSysfsReader:
    """Reads channel files of one hwmon device directory."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _attr_path(self, kind: ChannelKind | str, index: int, attr: str) -> Path:
        return self._path / f"{to_kind(kind)}{index + 1}_{attr}"

    def read_input(self, kind: ChannelKind | str, index: int) -> int:
        """Read a channel value in micro-units.

        Raises:
            OSError: If the attribute file cannot be read
            ValueError: If it does not hold an integer
        """
        return int(self._attr_path(kind, index, "input").read_text().strip())

    def read_label(self, kind: ChannelKind | str, index: int) -> str:
        return self._attr_path(kind, index, "label").read_text().strip()

    def labels(self, kind: ChannelKind | str) -> dict[str, int]:
        """Map label to zero-based index for every channel of ``kind`` present."""
        kind = to_kind(kind)
        result: dict[str, int] = {}
        for label_file in self._path.glob(f"{kind}*_label"):
            number = label_file.name[len(kind) : -len("_label")]
            if not number.isdigit():
                continue
            try:
                result[label_file.read_text().strip()] = int(number) - 1
            except OSError as err:
                _LOGGER.warning("Cannot read %s: %s", label_file, err)
        return dict(sorted(result.items(), key=lambda item: item[1]))

    def snapshot(self) -> TelemetrySnapshot:
        """Read every labelled channel once, in channel order.

        Unreadable channels are logged and left out.
        """
        snap = TelemetrySnapshot()
        for kind, values in ((ChannelKind.POWER, snap.power), (ChannelKind.ENERGY, snap.energy)):
            for label, index in self.labels(kind).items():
                try:
                    values[label] = self.read_input(kind, index)
                except (OSError, ValueError) as err:
                    _LOGGER.warning("Cannot read %s%d_input: %s", kind, index + 1, err)
        return snap


__all__ = ["HWMON_ROOT", "HwmonSysfsReader", "find_hwmon_dir"]
