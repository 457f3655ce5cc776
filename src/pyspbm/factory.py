"""Factory functions wiring configuration to bindings and adapters.

Example:
    # Live device (needs root for /dev/mem)
    with create_binding() as binding:
        adapter = create_adapter(binding)
        print(adapter.read_attribute("power1_input"))

    # Offline replay of a window saved with ``spbm-monitor --dump``
    with create_snapshot_binding("spbm.bin") as binding:
        print(binding.snapshot().power)
"""

from __future__ import annotations

import logging
from pathlib import Path

from .binding import DeviceBinding
from .config import SpbmConfig
from .exceptions import ResourceNotFoundError
from .hwmon import HwmonAdapter
from .register_map import WINDOW_SIZE, RegisterWindow
from .resources import AcpiDevice, find_devices

_LOGGER = logging.getLogger(__name__)


def find_device(config: SpbmConfig) -> AcpiDevice:
    """Return the device to bind according to ``config``.

    Raises:
        ResourceNotFoundError: If discovery finds no matching device
    """
    if config.resources_path is not None:
        path = Path(config.resources_path)
        return AcpiDevice(path.name, config.hid.upper(), path.parent, path)

    devices = find_devices(config.hid, config.sysfs_root)
    if not devices:
        raise ResourceNotFoundError(
            f"No device with HID {config.hid} found under {config.sysfs_root}"
        )
    if len(devices) > 1:
        _LOGGER.warning(
            "%d devices with HID %s found, using %s",
            len(devices),
            config.hid,
            devices[0].name,
        )
    return devices[0]


def create_binding(config: SpbmConfig | None = None) -> DeviceBinding:
    """Discover the device and bind its telemetry window.

    Args:
        config: Settings to use (default: ``SpbmConfig()``)

    Raises:
        ResourceNotFoundError: If the device or window resource is missing
        MapFailedError: If the window cannot be mapped
    """
    config = config or SpbmConfig()
    config.validate()
    device = find_device(config)
    return DeviceBinding.from_device(
        device,
        resource_index=config.resource_index,
        size=config.window_size,
        mem_path=config.mem_path,
        name=config.hwmon_name,
    )


def create_snapshot_binding(path: str | Path, phys_base: int = 0) -> DeviceBinding:
    """Bind a window replayed from a raw dump file.

    Raises:
        OSError: If the file cannot be read
        ValueError: If the dump is smaller than the telemetry window
    """
    data = Path(path).read_bytes()
    if len(data) < WINDOW_SIZE:
        raise ValueError(
            f"Dump '{path}' holds {len(data)} bytes, expected at least {WINDOW_SIZE}"
        )
    window = RegisterWindow(data, phys_base, WINDOW_SIZE)
    return DeviceBinding.from_window(window, name="spbm-snapshot")


def create_adapter(binding: DeviceBinding, name: str = "spbm") -> HwmonAdapter:
    """Create the hwmon-shaped adapter over ``binding``."""
    return HwmonAdapter(binding, name)


__all__ = [
    "create_adapter",
    "create_binding",
    "create_snapshot_binding",
    "find_device",
]
