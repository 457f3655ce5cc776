"""Mapped view of the SPBM telemetry window.

The firmware continuously overwrites a 4 KiB block of device memory with
live readings. ``RegisterWindow`` maps that block once, read-only, and
serves little-endian 32-bit loads at byte offsets within it.

Every ``read32`` goes to the mapping; nothing is cached. ``/dev/mem`` is
opened with ``O_SYNC`` so the kernel maps the region uncached, and each
load is a fresh 4-byte read of the page the firmware is writing.

Example:
    with RegisterWindow.open(0x3000) as window:
        sys_total_mw = window.read32(0x300)
"""

from __future__ import annotations

import logging
import mmap
import os
import struct
from typing import Any

from .exceptions import MapFailedError, WindowClosedError

_LOGGER = logging.getLogger(__name__)

WINDOW_SIZE = 0x1000
"""Size of the SPBM shared memory region in bytes."""

DEV_MEM = "/dev/mem"

_U32 = struct.Struct("<I")


class RegisterWindow:
    """Read-only window of 32-bit registers.

    Use :meth:`open` to map physical memory, or :meth:`from_buffer` to
    wrap an existing buffer (for example a saved dump). The owner must
    call :meth:`close` (or use the context manager) exactly once; reads
    after close raise :class:`WindowClosedError`.
    """

    def __init__(
        self,
        buffer: Any,
        phys_base: int,
        size: int = WINDOW_SIZE,
        *,
        delta: int = 0,
        mapping: mmap.mmap | None = None,
        fd: int | None = None,
    ) -> None:
        """Initialize over an already-established buffer.

        Args:
            buffer: Object supporting the buffer protocol
            phys_base: Physical address the window represents
            size: Window size in bytes
            delta: Offset of ``phys_base`` inside ``buffer``
            mapping: mmap object to close with the window, if any
            fd: File descriptor to close with the window, if any
        """
        view = memoryview(buffer)
        if delta + size > view.nbytes:
            view.release()
            raise ValueError(
                f"Buffer of {view.nbytes} bytes cannot hold a {size}-byte window "
                f"at delta {delta}"
            )
        self._view: memoryview | None = view
        self._phys_base = phys_base
        self._size = size
        self._delta = delta
        self._mapping = mapping
        self._fd = fd

    @classmethod
    def open(
        cls,
        phys_base: int,
        size: int = WINDOW_SIZE,
        *,
        mem_path: str = DEV_MEM,
    ) -> RegisterWindow:
        """Map ``size`` bytes of physical memory at ``phys_base``.

        Args:
            phys_base: Physical base address of the window
            size: Number of bytes to map (default 4096)
            mem_path: Memory device (or file) to map from

        Returns:
            An open RegisterWindow

        Raises:
            MapFailedError: If the device cannot be opened or mapped
        """
        page_base = phys_base & ~(mmap.ALLOCATIONGRANULARITY - 1)
        delta = phys_base - page_base

        try:
            fd = os.open(mem_path, os.O_RDONLY | os.O_SYNC)
        except OSError as err:
            raise MapFailedError(f"Cannot open {mem_path}: {err}") from err

        try:
            mapping = mmap.mmap(
                fd,
                delta + size,
                flags=mmap.MAP_SHARED,
                prot=mmap.PROT_READ,
                offset=page_base,
            )
        except (OSError, ValueError, OverflowError) as err:
            os.close(fd)
            raise MapFailedError(
                f"Cannot map {size} bytes at 0x{phys_base:x} from {mem_path}: {err}"
            ) from err

        _LOGGER.debug(
            "Mapped 0x%x bytes at 0x%x (page 0x%x, delta 0x%x) from %s",
            size,
            phys_base,
            page_base,
            delta,
            mem_path,
        )
        return cls(mapping, phys_base, size, delta=delta, mapping=mapping, fd=fd)

    @classmethod
    def from_buffer(cls, buffer: Any, phys_base: int = 0) -> RegisterWindow:
        """Wrap an in-memory buffer as a window of its full length."""
        return cls(buffer, phys_base, memoryview(buffer).nbytes)

    @property
    def phys_base(self) -> int:
        """Physical address of the window."""
        return self._phys_base

    @property
    def size(self) -> int:
        """Window size in bytes."""
        return self._size

    @property
    def is_open(self) -> bool:
        """Whether reads are currently valid."""
        return self._view is not None

    def read32(self, offset: int) -> int:
        """Load the unsigned 32-bit little-endian register at ``offset``.

        Raises:
            WindowClosedError: If the window has been closed
            ValueError: If ``offset`` is unaligned or outside the window
        """
        view = self._view
        if view is None:
            raise WindowClosedError(f"Register window at 0x{self._phys_base:x} is closed")
        if offset < 0 or offset % 4 or offset + 4 > self._size:
            raise ValueError(
                f"Register offset 0x{offset:x} outside 0x{self._size:x}-byte window"
            )
        return _U32.unpack_from(view, self._delta + offset)[0]

    def dump(self) -> bytes:
        """Copy the whole window, for offline diagnostics."""
        if self._view is None:
            raise WindowClosedError(f"Register window at 0x{self._phys_base:x} is closed")
        return bytes(self._view[self._delta : self._delta + self._size])

    def close(self) -> None:
        """Release the mapping. Safe to call more than once."""
        if self._view is None:
            return
        self._view.release()
        self._view = None
        if self._mapping is not None:
            self._mapping.close()
            self._mapping = None
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None
        _LOGGER.debug("Closed register window at 0x%x", self._phys_base)

    def __enter__(self) -> RegisterWindow:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<RegisterWindow 0x{self._phys_base:x}+0x{self._size:x} {state}>"


__all__ = ["DEV_MEM", "WINDOW_SIZE", "RegisterWindow"]
