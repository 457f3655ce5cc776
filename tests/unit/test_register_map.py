"""Tests for the register window."""

from __future__ import annotations

import mmap
from collections.abc import Callable
from pathlib import Path

import pytest

from pyspbm.channels import TE_SYS_TOTAL
from pyspbm.exceptions import MapFailedError, WindowClosedError
from pyspbm.register_map import WINDOW_SIZE, RegisterWindow

from conftest import build_window_bytes, set_register


class TestRegisterWindowBuffer:
    """Tests for buffer-backed windows."""

    def test_read32_little_endian(self) -> None:
        """Test bytes are decoded little-endian."""
        buf = bytearray(WINDOW_SIZE)
        buf[0x300:0x304] = b"\x78\x56\x34\x12"
        window = RegisterWindow.from_buffer(buf)

        assert window.read32(0x300) == 0x12345678

    def test_read32_unsigned(self) -> None:
        """Test all-ones reads as 0xFFFFFFFF, not -1."""
        window = RegisterWindow.from_buffer(build_window_bytes({0x10: 0xFFFFFFFF}))

        assert window.read32(0x10) == 0xFFFFFFFF

    def test_reads_are_not_cached(self) -> None:
        """Test a firmware update between reads is visible."""
        buf = build_window_bytes({TE_SYS_TOTAL: 1000})
        window = RegisterWindow.from_buffer(buf)
        assert window.read32(TE_SYS_TOTAL) == 1000

        set_register(buf, TE_SYS_TOTAL, 2000)

        assert window.read32(TE_SYS_TOTAL) == 2000

    def test_last_register_readable(self) -> None:
        """Test the final 4 bytes of the window are readable."""
        window = RegisterWindow.from_buffer(build_window_bytes({WINDOW_SIZE - 4: 7}))

        assert window.read32(WINDOW_SIZE - 4) == 7

    @pytest.mark.parametrize("offset", [-4, WINDOW_SIZE, WINDOW_SIZE - 2, 0x301])
    def test_invalid_offset_rejected(self, offset: int) -> None:
        """Test out-of-window and unaligned offsets raise ValueError."""
        window = RegisterWindow.from_buffer(bytearray(WINDOW_SIZE))

        with pytest.raises(ValueError):
            window.read32(offset)

    def test_read_after_close_rejected(self) -> None:
        """Test reads after close raise instead of returning stale data."""
        window = RegisterWindow.from_buffer(build_window_bytes({TE_SYS_TOTAL: 1}))
        window.close()

        assert window.is_open is False
        with pytest.raises(WindowClosedError):
            window.read32(TE_SYS_TOTAL)
        with pytest.raises(WindowClosedError):
            window.dump()

    def test_close_is_idempotent(self) -> None:
        """Test closing twice is harmless."""
        window = RegisterWindow.from_buffer(bytearray(WINDOW_SIZE))
        window.close()
        window.close()

    def test_context_manager_closes(self) -> None:
        """Test leaving the context closes the window."""
        with RegisterWindow.from_buffer(bytearray(WINDOW_SIZE)) as window:
            assert window.is_open

        assert not window.is_open

    def test_dump_copies_window(self) -> None:
        """Test dump returns the window contents as bytes."""
        buf = build_window_bytes({TE_SYS_TOTAL: 42})
        window = RegisterWindow.from_buffer(buf)

        data = window.dump()

        assert data == bytes(buf)
        assert len(data) == WINDOW_SIZE

    def test_buffer_too_small(self) -> None:
        """Test a buffer shorter than the window is rejected."""
        with pytest.raises(ValueError):
            RegisterWindow(bytearray(16), 0, WINDOW_SIZE)


class TestRegisterWindowOpen:
    """Tests for mmap-backed windows."""

    def test_open_maps_file(self, mem_file: Callable[..., Path]) -> None:
        """Test open() maps the window and reads registers."""
        path = mem_file({TE_SYS_TOTAL: 25_000})

        with RegisterWindow.open(0, mem_path=str(path)) as window:
            assert window.phys_base == 0
            assert window.size == WINDOW_SIZE
            assert window.read32(TE_SYS_TOTAL) == 25_000

    def test_open_unaligned_base(self, mem_file: Callable[..., Path]) -> None:
        """Test a base inside a page is mapped from the enclosing page."""
        path = mem_file({TE_SYS_TOTAL: 1234}, 0x40)

        with RegisterWindow.open(0x40, mem_path=str(path)) as window:
            assert window.read32(TE_SYS_TOTAL) == 1234
            assert window.read32(0) == 0

    def test_open_page_offset_base(self, mem_file: Callable[..., Path]) -> None:
        """Test a base past the first allocation granule."""
        base = mmap.ALLOCATIONGRANULARITY + 0x80
        path = mem_file({TE_SYS_TOTAL: 999}, base)

        with RegisterWindow.open(base, mem_path=str(path)) as window:
            assert window.read32(TE_SYS_TOTAL) == 999

    def test_open_missing_device(self, tmp_path: Path) -> None:
        """Test a missing memory device raises MapFailedError."""
        with pytest.raises(MapFailedError) as exc_info:
            RegisterWindow.open(0, mem_path=str(tmp_path / "nomem"))

        assert isinstance(exc_info.value.__cause__, OSError)

    def test_open_beyond_device(self, mem_file: Callable[..., Path]) -> None:
        """Test mapping past the end of the device raises MapFailedError."""
        path = mem_file({})

        with pytest.raises(MapFailedError):
            RegisterWindow.open(mmap.ALLOCATIONGRANULARITY * 4, mem_path=str(path))

    def test_closed_mapping_rejects_reads(self, mem_file: Callable[..., Path]) -> None:
        """Test reads after closing an mmap-backed window raise."""
        window = RegisterWindow.open(0, mem_path=str(mem_file({})))
        window.close()

        with pytest.raises(WindowClosedError):
            window.read32(0)
