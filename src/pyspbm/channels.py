"""Channel catalog for the SPBM telemetry window.

Source: the NVDA8800 ``_DSM`` in the DGX Spark DSDT and live comparison
against the SPBM firmware on GB10.

Firmware writes milliwatts for power registers and cumulative millijoules
for energy registers. Exposed values are microwatts and microjoules, so
every read is multiplied by :data:`MILLI_TO_MICRO`.

Channel indices are stable: the position of an entry in ``POWER_CHANNELS``
or ``ENERGY_CHANNELS`` is its index for the lifetime of the process, and
hwmon numbering is that index plus one (``power4_input`` is ``cpu_p``).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from .exceptions import ChannelOutOfRangeError
from .register_map import WINDOW_SIZE

MILLI_TO_MICRO: int = 1000
"""Native milli-units to exposed micro-units."""

# =============================================================================
# REGISTER OFFSETS
# =============================================================================

# Instantaneous power telemetry (mW)
TE_SYS_TOTAL = 0x300
TE_SOC_PKG = 0x304
TE_C_AND_G = 0x308
TE_CPU_P = 0x30C
TE_CPU_E = 0x310
TE_VCORE = 0x314
TE_VDDQ = 0x318
TE_CHR = 0x31C
TE_GPC_OUT = 0x320
TE_GPU_OUT = 0x324
TE_GPC_IN = 0x328
TE_GPU_IN = 0x32C
TE_SYS_IN = 0x330
TE_DLA_IN = 0x334
TE_PREREG_IN = 0x338
TE_DLA_OUT = 0x33C

# Energy accumulators (mJ, cumulative)
EN_PKG = 0x344
EN_CPU_E = 0x350
EN_CPU_P = 0x35C
EN_GPC = 0x368
EN_GPM = 0x374

# Effective power limits (mW)
PL1_EFF = 0x160
PL2_EFF = 0x164
SYSPL1_EFF = 0x170

# Power budgets (mW)
BUD_CPU = 0x600
BUD_GPU = 0x604
BUD_CPU_E = 0x680
BUD_CPU_P = 0x684


class ChannelKind(StrEnum):
    """Channel kind, matching the hwmon sensor type name."""

    POWER = "power"
    """Instantaneous power; native mW, exposed uW."""

    ENERGY = "energy"
    """Cumulative energy; native mJ, exposed uJ."""


class ChannelGroup(StrEnum):
    """Logical grouping for documentation and filtering."""

    TELEMETRY = "telemetry"
    LIMIT = "limit"
    BUDGET = "budget"
    ENERGY = "energy"


@dataclass(frozen=True)
class ChannelDescriptor:
    """One named register slot in the telemetry window."""

    offset: int
    """Byte offset within the 4 KiB window."""

    label: str
    """Stable lower-case name, also the hwmon ``*_label`` text."""

    kind: ChannelKind
    """Power or energy."""

    group: ChannelGroup = ChannelGroup.TELEMETRY
    """Logical grouping."""

    description: str = ""
    """Human-readable explanation of the register."""

    @property
    def native_unit(self) -> str:
        """Unit the firmware writes to the register."""
        return "mW" if self.kind == ChannelKind.POWER else "mJ"

    @property
    def unit(self) -> str:
        """Unit of exposed values."""
        return "uW" if self.kind == ChannelKind.POWER else "uJ"


def _power(offset: int, label: str, group: ChannelGroup, description: str) -> ChannelDescriptor:
    return ChannelDescriptor(offset, label, ChannelKind.POWER, group, description)


def _energy(offset: int, label: str, description: str) -> ChannelDescriptor:
    return ChannelDescriptor(offset, label, ChannelKind.ENERGY, ChannelGroup.ENERGY, description)


_T = ChannelGroup.TELEMETRY
_L = ChannelGroup.LIMIT
_B = ChannelGroup.BUDGET

# Note the out-of-order pairs: gpu_out/gpc_out and gpu_in/gpc_in are listed
# GPU first although GPC sits at the lower offset, and prereg_in precedes
# dla_in. Indices follow this table, not the offsets.
POWER_CHANNELS: tuple[ChannelDescriptor, ...] = (
    _power(TE_SYS_TOTAL, "sys_total", _T, "Total system power."),
    _power(TE_SOC_PKG, "soc_pkg", _T, "SoC package power."),
    _power(TE_C_AND_G, "cpu_gpu", _T, "Combined CPU and GPU power."),
    _power(TE_CPU_P, "cpu_p", _T, "CPU performance-core cluster power."),
    _power(TE_CPU_E, "cpu_e", _T, "CPU efficiency-core cluster power."),
    _power(TE_VCORE, "vcore", _T, "Vcore rail power."),
    _power(TE_VDDQ, "vddq", _T, "Memory VDDQ rail power."),
    _power(TE_CHR, "dc_input", _T, "DC input (charger) power."),
    _power(TE_GPU_OUT, "gpu_out", _T, "GPU regulator output power."),
    _power(TE_GPC_OUT, "gpc_out", _T, "GPC regulator output power."),
    _power(TE_GPU_IN, "gpu_in", _T, "GPU regulator input power."),
    _power(TE_GPC_IN, "gpc_in", _T, "GPC regulator input power."),
    _power(TE_SYS_IN, "sys_in", _T, "System input power."),
    _power(TE_PREREG_IN, "prereg_in", _T, "Pre-regulator input power."),
    _power(TE_DLA_IN, "dla_in", _T, "DLA regulator input power."),
    _power(TE_DLA_OUT, "dla_out", _T, "DLA regulator output power."),
    _power(PL1_EFF, "pl1", _L, "Effective PL1 (sustained) power limit."),
    _power(PL2_EFF, "pl2", _L, "Effective PL2 (burst) power limit."),
    _power(SYSPL1_EFF, "syspl1", _L, "Effective system PL1 power limit."),
    _power(BUD_CPU, "budget_cpu", _B, "Power budget granted to the CPU."),
    _power(BUD_GPU, "budget_gpu", _B, "Power budget granted to the GPU."),
    _power(BUD_CPU_E, "budget_cpu_e", _B, "Power budget for efficiency cores."),
    _power(BUD_CPU_P, "budget_cpu_p", _B, "Power budget for performance cores."),
)

ENERGY_CHANNELS: tuple[ChannelDescriptor, ...] = (
    _energy(EN_PKG, "pkg", "Package energy accumulator."),
    _energy(EN_CPU_E, "cpu_e", "Efficiency-core energy accumulator."),
    _energy(EN_CPU_P, "cpu_p", "Performance-core energy accumulator."),
    _energy(EN_GPC, "gpc", "GPC energy accumulator."),
    _energy(EN_GPM, "gpm", "GPM energy accumulator."),
)

CATALOG: dict[ChannelKind, tuple[ChannelDescriptor, ...]] = {
    ChannelKind.POWER: POWER_CHANNELS,
    ChannelKind.ENERGY: ENERGY_CHANNELS,
}

POWER_BY_LABEL: dict[str, int] = {c.label: i for i, c in enumerate(POWER_CHANNELS)}
ENERGY_BY_LABEL: dict[str, int] = {c.label: i for i, c in enumerate(ENERGY_CHANNELS)}

_BY_LABEL: dict[ChannelKind, dict[str, int]] = {
    ChannelKind.POWER: POWER_BY_LABEL,
    ChannelKind.ENERGY: ENERGY_BY_LABEL,
}


def _validate_catalog() -> None:
    """Reject offsets that would read outside the window."""
    for kind, table in CATALOG.items():
        if len(_BY_LABEL[kind]) != len(table):
            raise ValueError(f"Duplicate {kind} channel labels")
        for chan in table:
            if chan.kind != kind:
                raise ValueError(f"{chan.label} listed under {kind} but is {chan.kind}")
            if chan.offset % 4 or not 0 <= chan.offset <= WINDOW_SIZE - 4:
                raise ValueError(
                    f"{kind} channel {chan.label} has invalid offset 0x{chan.offset:x}"
                )


_validate_catalog()

# Smallest window holding every catalog register
MIN_WINDOW_SIZE: int = max(c.offset for table in CATALOG.values() for c in table) + 4


def to_kind(kind: ChannelKind | str) -> ChannelKind:
    """Coerce ``kind`` to a ChannelKind.

    Raises:
        ValueError: If ``kind`` is not a known channel kind
    """
    if isinstance(kind, ChannelKind):
        return kind
    try:
        return ChannelKind(kind)
    except ValueError:
        raise ValueError(f"Unknown channel kind: {kind!r}") from None


def channels_for(kind: ChannelKind | str) -> tuple[ChannelDescriptor, ...]:
    """Return the ordered channel table for ``kind``."""
    return CATALOG[to_kind(kind)]


def is_valid_index(kind: ChannelKind | str, index: object) -> bool:
    """Whether ``index`` names a channel of ``kind``."""
    # bool is an int subclass but never a channel number
    if not isinstance(index, int) or isinstance(index, bool):
        return False
    return 0 <= index < len(channels_for(kind))


def channel(kind: ChannelKind | str, index: int) -> ChannelDescriptor:
    """Return the descriptor at ``index`` for ``kind``.

    Raises:
        ChannelOutOfRangeError: If ``index`` is not a valid channel number
    """
    kind = to_kind(kind)
    table = CATALOG[kind]
    if not is_valid_index(kind, index):
        raise ChannelOutOfRangeError(kind, index, len(table))
    return table[index]


def index_of(kind: ChannelKind | str, label: str) -> int:
    """Return the stable index of ``label`` within ``kind``.

    Raises:
        KeyError: If no channel of that kind has the label
    """
    by_label = _BY_LABEL[to_kind(kind)]
    if label not in by_label:
        raise KeyError(f"No {kind} channel labelled {label!r}")
    return by_label[label]


__all__ = [
    "CATALOG",
    "ENERGY_BY_LABEL",
    "ENERGY_CHANNELS",
    "MILLI_TO_MICRO",
    "MIN_WINDOW_SIZE",
    "POWER_BY_LABEL",
    "POWER_CHANNELS",
    "ChannelDescriptor",
    "ChannelGroup",
    "ChannelKind",
    "channel",
    "channels_for",
    "index_of",
    "is_valid_index",
    "to_kind",
]
