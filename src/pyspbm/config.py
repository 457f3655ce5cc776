"""Configuration for locating and reading the SPBM telemetry window.

Example:
    # Defaults match DGX Spark (GB10)
    config = SpbmConfig()

    # From SPBM_* environment variables, optionally seeded from a .env file
    config = SpbmConfig.from_env(".env")
    config.validate()

    # Round-trip through a dict
    restored = SpbmConfig.from_dict(config.to_dict())
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

from .channels import MIN_WINDOW_SIZE
from .register_map import DEV_MEM, WINDOW_SIZE
from .resources import SPBM_HID, SPBM_RESOURCE_INDEX
from .sysfs import HWMON_ROOT

ENV_PREFIX = "SPBM_"


@dataclass
class SpbmConfig:
    """Settings for device discovery, mapping and polling.

    Attributes:
        hid: ACPI hardware ID of the MTEL device
        resource_index: Ordinal of the telemetry window among memory resources
        window_size: Bytes to map (default 4096)
        mem_path: Physical memory device
        sysfs_root: sysfs mount point used for device discovery
        resources_path: Explicit PNP-format resources file; skips discovery
        hwmon_name: hwmon device name used by the sysfs client
        hwmon_root: hwmon class directory used by the sysfs client
        interval: Polling interval in seconds for the monitor
    """

    hid: str = SPBM_HID
    resource_index: int = SPBM_RESOURCE_INDEX
    window_size: int = WINDOW_SIZE
    mem_path: str = DEV_MEM
    sysfs_root: str = "/sys"
    resources_path: str | None = None
    hwmon_name: str = "spbm"
    hwmon_root: str = HWMON_ROOT
    interval: float = 1.0

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if not self.hid:
            raise ValueError("hid must not be empty")
        if self.resource_index < 0:
            raise ValueError("resource_index must be >= 0")
        if self.window_size <= 0 or self.window_size % 4:
            raise ValueError("window_size must be a positive multiple of 4")
        if self.window_size < MIN_WINDOW_SIZE:
            raise ValueError(
                f"window_size 0x{self.window_size:x} is smaller than the channel "
                f"catalog (needs at least 0x{MIN_WINDOW_SIZE:x})"
            )
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        if self.resources_path is not None and not Path(self.resources_path).is_file():
            raise ValueError(f"resources_path '{self.resources_path}' is not a file")

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a JSON-serializable dictionary."""
        return {
            "hid": self.hid,
            "resource_index": self.resource_index,
            "window_size": self.window_size,
            "mem_path": self.mem_path,
            "sysfs_root": self.sysfs_root,
            "resources_path": self.resources_path,
            "hwmon_name": self.hwmon_name,
            "hwmon_root": self.hwmon_root,
            "interval": self.interval,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SpbmConfig:
        """Create configuration from a dictionary; missing keys use defaults."""
        defaults = cls()
        return cls(
            hid=data.get("hid", defaults.hid),
            resource_index=int(data.get("resource_index", defaults.resource_index)),
            window_size=int(data.get("window_size", defaults.window_size)),
            mem_path=data.get("mem_path", defaults.mem_path),
            sysfs_root=data.get("sysfs_root", defaults.sysfs_root),
            resources_path=data.get("resources_path"),
            hwmon_name=data.get("hwmon_name", defaults.hwmon_name),
            hwmon_root=data.get("hwmon_root", defaults.hwmon_root),
            interval=float(data.get("interval", defaults.interval)),
        )

    @classmethod
    def from_env(
        cls,
        env_file: str | Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> SpbmConfig:
        """Create configuration from ``SPBM_*`` variables.

        Args:
            env_file: Optional .env file; process environment overrides it
            environ: Environment to read (default ``os.environ``)
        """
        merged: dict[str, str | None] = {}
        if env_file is not None:
            merged.update(dotenv_values(env_file))
        merged.update(os.environ if environ is None else environ)

        data: dict[str, Any] = {}
        for key, value in merged.items():
            if not key.startswith(ENV_PREFIX) or value is None or value == "":
                continue
            data[key[len(ENV_PREFIX) :].lower()] = value

        # Accept hex for the window size (SPBM_WINDOW_SIZE=0x1000)
        if "window_size" in data:
            data["window_size"] = int(data["window_size"], 0)
        return cls.from_dict(data)


__all__ = ["ENV_PREFIX", "SpbmConfig"]
