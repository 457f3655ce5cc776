"""Pytest configuration and fixtures for pyspbm tests."""

from __future__ import annotations

import struct
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from pyspbm.binding import DeviceBinding
from pyspbm.channels import (
    EN_PKG,
    TE_CPU_P,
    TE_GPU_OUT,
    TE_SOC_PKG,
    TE_SYS_TOTAL,
)
from pyspbm.register_map import WINDOW_SIZE, RegisterWindow

# Plausible idle readings (mW / mJ)
LIVE_REGISTERS: dict[int, int] = {
    TE_SYS_TOTAL: 25_000,
    TE_SOC_PKG: 12_500,
    TE_CPU_P: 4_500,
    TE_GPU_OUT: 3_000,
    EN_PKG: 987_654,
}

SPBM_RESOURCES_TEXT = """state = active
io 0x100-0x1ff
mem 0x2000-0x2fff
mem 0x3000-0x3fff
irq 9
"""


def build_window_bytes(registers: dict[int, int], size: int = WINDOW_SIZE) -> bytearray:
    """Build a window image with ``registers`` (offset -> u32) set."""
    buf = bytearray(size)
    for offset, value in registers.items():
        struct.pack_into("<I", buf, offset, value)
    return buf


def set_register(buf: bytearray, offset: int, value: int) -> None:
    """Simulate a firmware write into a window image."""
    struct.pack_into("<I", buf, offset, value)


@pytest.fixture
def window_buffer() -> bytearray:
    """Window image with live-looking telemetry."""
    return build_window_bytes(LIVE_REGISTERS)


@pytest.fixture
def window(window_buffer: bytearray) -> Generator[RegisterWindow, None, None]:
    """Open RegisterWindow over ``window_buffer``; firmware writes show through."""
    win = RegisterWindow.from_buffer(window_buffer, phys_base=0x3000)
    yield win
    win.close()


@pytest.fixture
def binding(window: RegisterWindow) -> Generator[DeviceBinding, None, None]:
    """Bound device over the live-looking window."""
    bound = DeviceBinding.from_window(window)
    yield bound
    bound.unbind()


@pytest.fixture
def mem_file(tmp_path: Path) -> Callable[[dict[int, int], int], Path]:
    """Factory writing a file that stands in for /dev/mem.

    The window image is placed at ``phys_base`` within the file.
    """

    def _make(registers: dict[int, int], phys_base: int = 0) -> Path:
        path = tmp_path / "mem"
        data = bytearray(phys_base) + build_window_bytes(registers)
        path.write_bytes(bytes(data))
        return path

    return _make


@pytest.fixture
def fake_sysfs(tmp_path: Path) -> Path:
    """sysfs tree with one NVDA8800 PNP device and an unrelated one."""
    root = tmp_path / "sys"
    pnp = root / "bus" / "pnp" / "devices"

    other = pnp / "00:01"
    other.mkdir(parents=True)
    (other / "id").write_text("PNP0501\n")
    (other / "resources").write_text("state = active\nio 0x3f8-0x3ff\nirq 4\n")

    spbm = pnp / "00:05"
    spbm.mkdir(parents=True)
    (spbm / "id").write_text("NVDA8800\nPNP0C02\n")
    (spbm / "resources").write_text(SPBM_RESOURCES_TEXT)
    return root


@pytest.fixture
def fake_hwmon(tmp_path: Path) -> Path:
    """hwmon class directory with an unrelated chip and an spbm chip."""
    root = tmp_path / "hwmon"
    other = root / "hwmon0"
    other.mkdir(parents=True)
    (other / "name").write_text("acpitz\n")

    spbm = root / "hwmon2"
    spbm.mkdir(parents=True)
    (spbm / "name").write_text("spbm\n")
    readings = {
        "sys_total": 25_000_000,
        "soc_pkg": 12_500_000,
        "cpu_gpu": 9_000_000,
        "cpu_p": 4_500_000,
        "cpu_e": 1_250_000,
        "vcore": 2_000_000,
        "vddq": 800_000,
        "dc_input": 30_000_000,
    }
    for number, (label, micro) in enumerate(readings.items(), start=1):
        (spbm / f"power{number}_label").write_text(f"{label}\n")
        (spbm / f"power{number}_input").write_text(f"{micro}\n")
    return root
