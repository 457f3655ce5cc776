"""Resource discovery for the SPBM telemetry window.

The SPBM shared memory region has no fixed address. It is declared as the
second memory resource in the ``_CRS`` of the MTEL ACPI device (HID
``NVDA8800``); the first memory resource is an unrelated region.

From userspace the declared resources are visible through the PNP layer in
sysfs, one resource per line, in declaration order::

    state = active
    io 0x100-0x1ff
    mem 0x2000-0x2fff
    mem 0x3000-0x3fff
    irq 9

Example:
    >>> resources = parse_resources(text)
    >>> hex(resolve_telemetry_base(resources))
    '0x3000'
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from .exceptions import ResourceEnumerationError, ResourceNotFoundError

_LOGGER = logging.getLogger(__name__)

SPBM_HID = "NVDA8800"

# Ordinal of the SPBM region among the device's memory resources (0-based)
SPBM_RESOURCE_INDEX = 1


class ResourceType(StrEnum):
    """Resource types as named by the PNP sysfs interface."""

    MEM = "mem"
    IO = "io"
    IRQ = "irq"
    DMA = "dma"
    BUS = "bus"


@dataclass(frozen=True)
class DeviceResource:
    """One declared device resource.

    For ranged types (mem, io, bus) ``start``/``end`` are inclusive bounds.
    For irq and dma both hold the line/channel number.
    """

    type: ResourceType
    start: int
    end: int
    disabled: bool = False

    @property
    def size(self) -> int:
        """Length of the resource in bytes (or 1 for irq/dma)."""
        return self.end - self.start + 1


def _parse_line(line: str) -> DeviceResource:
    tokens = line.split()
    try:
        rtype = ResourceType(tokens[0])
    except ValueError:
        raise ValueError(f"Unknown resource type in line: {line!r}") from None

    if len(tokens) > 1 and tokens[1] == "disabled":
        return DeviceResource(rtype, 0, -1, disabled=True)
    if len(tokens) < 2:
        raise ValueError(f"Missing resource value in line: {line!r}")

    value = tokens[1]
    if rtype in (ResourceType.IRQ, ResourceType.DMA):
        number = int(value, 0)
        return DeviceResource(rtype, number, number)

    start_text, sep, end_text = value.partition("-")
    if not sep:
        raise ValueError(f"Expected a start-end range in line: {line!r}")
    return DeviceResource(rtype, int(start_text, 16), int(end_text, 16))


def parse_resources(text: str) -> list[DeviceResource]:
    """Parse a PNP sysfs ``resources`` file.

    Args:
        text: File contents

    Returns:
        Resources in declaration order. Disabled entries are kept so that
        ordinals match the firmware's declaration.

    Raises:
        ValueError: If a line cannot be parsed
    """
    resources: list[DeviceResource] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("state"):
            continue
        resources.append(_parse_line(line))
    return resources


def resolve_telemetry_base(
    resources: Iterable[DeviceResource],
    index: int = SPBM_RESOURCE_INDEX,
) -> int:
    """Select the physical base of the telemetry window.

    Only memory resources are counted; the one at zero-based ordinal
    ``index`` is selected.

    Args:
        resources: Declared resources in declaration order
        index: Ordinal among memory resources (default 1, the second one)

    Returns:
        Physical base address of the selected memory resource

    Raises:
        ResourceNotFoundError: If fewer than ``index + 1`` memory resources
            are declared, or the selected one is disabled
    """
    ordinal = 0
    for res in resources:
        if res.type != ResourceType.MEM:
            continue
        if ordinal == index:
            if res.disabled:
                raise ResourceNotFoundError(
                    f"Memory resource {index} is disabled in the device resources"
                )
            _LOGGER.debug(
                "Selected memory resource %d: 0x%x-0x%x", index, res.start, res.end
            )
            return res.start
        ordinal += 1

    raise ResourceNotFoundError(
        f"SPBM memory resource not found: need memory resource {index}, "
        f"device declares {ordinal}"
    )


@dataclass
class AcpiDevice:
    """A device whose declared resources are readable from sysfs.

    Attributes:
        name: sysfs device name (e.g. ``00:05``)
        hid: Hardware ID the device was matched on
        sysfs_path: Device directory in sysfs
        resources_path: File holding the PNP resource list
    """

    name: str
    hid: str
    sysfs_path: Path
    resources_path: Path

    def resources(self) -> list[DeviceResource]:
        """Read and parse the device's declared resources.

        Raises:
            ResourceEnumerationError: If the file cannot be read or parsed
        """
        try:
            text = self.resources_path.read_text()
            return parse_resources(text)
        except (OSError, ValueError) as err:
            raise ResourceEnumerationError(
                f"Failed to enumerate resources of {self.name} from "
                f"'{self.resources_path}': {err}"
            ) from err


def resolve(device: AcpiDevice, index: int = SPBM_RESOURCE_INDEX) -> int:
    """Enumerate ``device``'s resources and select the telemetry window base."""
    return resolve_telemetry_base(device.resources(), index)


def _read_ids(id_path: Path) -> list[str]:
    try:
        return [line.strip().upper() for line in id_path.read_text().splitlines()]
    except OSError as err:
        _LOGGER.debug("Cannot read %s: %s", id_path, err)
        return []


def find_devices(hid: str = SPBM_HID, sysfs_root: str | Path = "/sys") -> list[AcpiDevice]:
    """Find devices declaring ``hid`` that expose a resources file.

    Scans PNP devices (``bus/pnp/devices/*/id``) and ACPI devices with a
    physical node (``bus/acpi/devices/<hid>:*/physical_node/resources``).

    Args:
        hid: ACPI hardware ID to match (case-insensitive)
        sysfs_root: sysfs mount point

    Returns:
        Matching devices sorted by name; empty if none are found
    """
    root = Path(sysfs_root)
    wanted = hid.upper()
    found: dict[Path, AcpiDevice] = {}

    pnp_dir = root / "bus" / "pnp" / "devices"
    if pnp_dir.is_dir():
        for entry in sorted(pnp_dir.iterdir()):
            if wanted not in _read_ids(entry / "id"):
                continue
            resources_path = entry / "resources"
            if resources_path.is_file():
                found.setdefault(
                    resources_path.resolve(),
                    AcpiDevice(entry.name, wanted, entry, resources_path),
                )

    acpi_dir = root / "bus" / "acpi" / "devices"
    if acpi_dir.is_dir():
        for entry in sorted(acpi_dir.glob(f"{wanted}:*")):
            resources_path = entry / "physical_node" / "resources"
            if resources_path.is_file():
                found.setdefault(
                    resources_path.resolve(),
                    AcpiDevice(entry.name, wanted, entry, resources_path),
                )

    devices = sorted(found.values(), key=lambda d: d.name)
    _LOGGER.debug("Found %d device(s) with HID %s under %s", len(devices), wanted, root)
    return devices


__all__ = [
    "SPBM_HID",
    "SPBM_RESOURCE_INDEX",
    "AcpiDevice",
    "DeviceResource",
    "ResourceType",
    "find_devices",
    "parse_resources",
    "resolve",
    "resolve_telemetry_base",
]
