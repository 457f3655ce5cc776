"""Python library for NVIDIA DGX Spark (GB10) SPBM power telemetry.

The System Power Budget Manager firmware keeps live power (mW) and
cumulative energy (mJ) readings in a 4 KiB shared memory window declared
by the NVDA8800 ACPI device. This package locates that window, maps it
read-only and exposes its channels in microwatts and microjoules.

Usage:
    Live device (root required for /dev/mem):
        from pyspbm import ChannelKind, create_binding

        with create_binding() as binding:
            print(binding.read_channel(ChannelKind.POWER, 0))  # sys_total, uW

    hwmon-shaped access:
        from pyspbm import create_adapter

        with create_binding() as binding:
            adapter = create_adapter(binding)
            for name in adapter.attribute_names():
                print(name, adapter.read_attribute(name))
"""

from __future__ import annotations

from .binding import DeviceBinding
from .channels import (
    ENERGY_CHANNELS,
    MILLI_TO_MICRO,
    POWER_CHANNELS,
    ChannelDescriptor,
    ChannelKind,
    index_of,
)
from .config import SpbmConfig
from .exceptions import (
    BindingClosedError,
    ChannelOutOfRangeError,
    MapFailedError,
    ResourceEnumerationError,
    ResourceNotFoundError,
    SpbmError,
    UnsupportedAttributeError,
    WindowClosedError,
)
from .factory import create_adapter, create_binding, create_snapshot_binding
from .hwmon import HwmonAdapter, HwmonAttribute
from .reader import TelemetryReader, TelemetrySnapshot
from .register_map import WINDOW_SIZE, RegisterWindow
from .resources import DeviceResource, ResourceType, find_devices, resolve_telemetry_base

__version__ = "0.1.0"
__all__ = [
    # Factory functions (recommended)
    "create_binding",
    "create_snapshot_binding",
    "create_adapter",
    # Core
    "DeviceBinding",
    "HwmonAdapter",
    "HwmonAttribute",
    "RegisterWindow",
    "TelemetryReader",
    "TelemetrySnapshot",
    "SpbmConfig",
    "WINDOW_SIZE",
    # Catalog
    "ChannelDescriptor",
    "ChannelKind",
    "POWER_CHANNELS",
    "ENERGY_CHANNELS",
    "MILLI_TO_MICRO",
    "index_of",
    # Resources
    "DeviceResource",
    "ResourceType",
    "find_devices",
    "resolve_telemetry_base",
    # Exceptions
    "SpbmError",
    "ResourceNotFoundError",
    "ResourceEnumerationError",
    "MapFailedError",
    "WindowClosedError",
    "BindingClosedError",
    "ChannelOutOfRangeError",
    "UnsupportedAttributeError",
]
