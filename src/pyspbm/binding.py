"""Device binding: owns the mapped telemetry window for its lifetime.

A binding is created in one step (resolve the window, map it, sanity-check
it) and is either fully valid or does not exist. ``unbind()`` releases the
mapping; any later read raises :class:`BindingClosedError` instead of
touching released memory.

Example:
    device = find_devices()[0]
    with DeviceBinding.from_device(device) as binding:
        if not binding.telemetry_active:
            print("firmware telemetry loop not running yet")
        print(binding.read_channel(ChannelKind.POWER, 0))
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Any

from .channels import TE_CPU_P, TE_GPU_OUT, TE_SOC_PKG, TE_SYS_TOTAL, ChannelKind
from .exceptions import BindingClosedError
from .reader import TelemetryReader, TelemetrySnapshot
from .register_map import DEV_MEM, WINDOW_SIZE, RegisterWindow
from .resources import (
    SPBM_RESOURCE_INDEX,
    AcpiDevice,
    DeviceResource,
    resolve_telemetry_base,
)

_LOGGER = logging.getLogger(__name__)

# Register values meaning the firmware telemetry loop has not started
INACTIVE_SENTINELS = (0, 0xFFFFFFFF)


class DeviceBinding:
    """One device bound to one mapped telemetry window.

    Reads and ``unbind()`` are serialized by a lock so a window is never
    released under an in-flight read.

    Attributes:
        telemetry_active: False when the sanity read at bind time (or the
            latest :meth:`sanity_check`) returned 0 or 0xFFFFFFFF
    """

    def __init__(self, window: RegisterWindow, *, name: str = "spbm") -> None:
        """Bind to an already-open window and run the sanity check.

        Prefer :meth:`bind`, :meth:`from_device` or :meth:`from_window`.
        """
        self._window: RegisterWindow | None = window
        self._reader: TelemetryReader | None = TelemetryReader(window)
        self._phys_base = window.phys_base
        self._name = name
        self._lock = threading.RLock()
        self.telemetry_active: bool = False
        self.sanity_check()

    @classmethod
    def bind(
        cls,
        resources: Iterable[DeviceResource],
        *,
        resource_index: int = SPBM_RESOURCE_INDEX,
        size: int = WINDOW_SIZE,
        mem_path: str = DEV_MEM,
        name: str = "spbm",
    ) -> DeviceBinding:
        """Resolve the telemetry window from ``resources`` and map it.

        Raises:
            ResourceNotFoundError: If the window resource is not declared
            MapFailedError: If the window cannot be mapped
        """
        phys = resolve_telemetry_base(resources, resource_index)
        window = RegisterWindow.open(phys, size, mem_path=mem_path)
        try:
            return cls(window, name=name)
        except BaseException:
            window.close()
            raise

    @classmethod
    def from_device(cls, device: AcpiDevice, **kwargs: Any) -> DeviceBinding:
        """Enumerate ``device``'s resources and bind.

        Raises:
            ResourceEnumerationError: If the resources cannot be read
        """
        _LOGGER.debug("Binding %s (%s) via %s", device.name, device.hid, device.resources_path)
        return cls.bind(device.resources(), **kwargs)

    @classmethod
    def from_window(cls, window: RegisterWindow, *, name: str = "spbm") -> DeviceBinding:
        """Bind an existing window (e.g. a replayed dump)."""
        return cls(window, name=name)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def phys_base(self) -> int:
        """Physical base address of the bound window."""
        return self._phys_base

    @property
    def is_bound(self) -> bool:
        return self._window is not None

    @property
    def reader(self) -> TelemetryReader:
        """The binding's reader.

        Raises:
            BindingClosedError: After unbind
        """
        reader = self._reader
        if reader is None:
            raise BindingClosedError(f"{self._name} at 0x{self._phys_base:x} is unbound")
        return reader

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read_channel(self, kind: ChannelKind | str, index: int) -> int:
        """Read a channel in micro-units (see :meth:`TelemetryReader.read_channel`)."""
        with self._lock:
            return self.reader.read_channel(kind, index)

    def label_of(self, kind: ChannelKind | str, index: int) -> str:
        with self._lock:
            return self.reader.label_of(kind, index)

    def snapshot(self) -> TelemetrySnapshot:
        """Read every channel once."""
        with self._lock:
            return self.reader.snapshot()

    def dump(self) -> bytes:
        """Copy the raw telemetry window."""
        with self._lock:
            return self.reader.window.dump()

    def sanity_check(self) -> bool:
        """Check that the firmware telemetry loop is running.

        Reads SYS_TOTAL; 0 or 0xFFFFFFFF means the loop is inactive. This is
        diagnostic only and never fails the binding.

        Returns:
            The updated ``telemetry_active`` flag
        """
        with self._lock:
            window = self.reader.window
            test = window.read32(TE_SYS_TOTAL)
            if test in INACTIVE_SENTINELS:
                _LOGGER.warning(
                    "%s: SYS_TOTAL=%u, telemetry may be inactive", self._name, test
                )
                self.telemetry_active = False
            else:
                _LOGGER.info(
                    "%s: live at 0x%x: SYS=%u mW, SOC=%u mW, CPU_P=%u mW, GPU=%u mW",
                    self._name,
                    self._phys_base,
                    test,
                    window.read32(TE_SOC_PKG),
                    window.read32(TE_CPU_P),
                    window.read32(TE_GPU_OUT),
                )
                self.telemetry_active = True
            return self.telemetry_active

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def unbind(self) -> None:
        """Release the window. Safe to call more than once."""
        with self._lock:
            if self._window is None:
                return
            self._reader = None
            self._window.close()
            self._window = None
            _LOGGER.debug("%s: unbound from 0x%x", self._name, self._phys_base)

    def __enter__(self) -> DeviceBinding:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unbind()

    def __repr__(self) -> str:
        state = "bound" if self.is_bound else "unbound"
        return f"<DeviceBinding {self._name} 0x{self._phys_base:x} {state}>"


__all__ = ["INACTIVE_SENTINELS", "DeviceBinding"]
