"""hwmon-shaped exposure of a device binding.

Answers the three questions a hwmon chip answers for every channel:
``is_visible`` (file mode), ``read`` (numeric value) and ``read_string``
(label). Channels are published as ``<kind><n>_input`` and
``<kind><n>_label`` where ``n`` is the catalog index plus one.

Nothing is cached: every ``read`` is a fresh register load.

Example:
    adapter = HwmonAdapter(binding)
    adapter.read_attribute("power4_label")   # "cpu_p"
    adapter.read_attribute("power4_input")   # "4500000"
"""

from __future__ import annotations

import re
from enum import StrEnum

from .binding import DeviceBinding
from .channels import ChannelKind, channels_for, is_valid_index, to_kind
from .exceptions import ChannelOutOfRangeError, UnsupportedAttributeError

READ_ONLY_MODE = 0o444

_ATTR_RE = re.compile(r"^(power|energy)([1-9][0-9]*)_(input|label)$")


class HwmonAttribute(StrEnum):
    """Per-channel attributes exposed for both kinds."""

    INPUT = "input"
    LABEL = "label"


def _to_attr(attr: HwmonAttribute | str) -> HwmonAttribute | None:
    try:
        return HwmonAttribute(attr)
    except ValueError:
        return None


class HwmonAdapter:
    """Exposes a binding's channels as read-only hwmon attributes."""

    def __init__(self, binding: DeviceBinding, name: str = "spbm") -> None:
        self._binding = binding
        self.name = name

    @property
    def binding(self) -> DeviceBinding:
        return self._binding

    def is_visible(
        self, kind: ChannelKind | str, attr: HwmonAttribute | str, channel: int
    ) -> int:
        """Return the file mode for an attribute, 0 if it does not exist."""
        try:
            kind = to_kind(kind)
        except ValueError:
            return 0
        if _to_attr(attr) is None or not is_valid_index(kind, channel):
            return 0
        return READ_ONLY_MODE

    def read(self, kind: ChannelKind | str, attr: HwmonAttribute | str, channel: int) -> int:
        """Read a numeric attribute in micro-units.

        Raises:
            UnsupportedAttributeError: If ``attr`` is not ``input``
            ChannelOutOfRangeError: If ``channel`` is not in the catalog
        """
        if _to_attr(attr) != HwmonAttribute.INPUT:
            raise UnsupportedAttributeError(str(attr), "read")
        return self._binding.read_channel(kind, channel)

    def read_string(
        self, kind: ChannelKind | str, attr: HwmonAttribute | str, channel: int
    ) -> str:
        """Read a string attribute (the channel label).

        Raises:
            UnsupportedAttributeError: If ``attr`` is not ``label``
            ChannelOutOfRangeError: If ``channel`` is not in the catalog
        """
        if _to_attr(attr) != HwmonAttribute.LABEL:
            raise UnsupportedAttributeError(str(attr), "read_string")
        return self._binding.label_of(kind, channel)

    def attribute_names(self) -> list[str]:
        """List every visible attribute file name, power channels first."""
        names: list[str] = []
        for kind in ChannelKind:
            for index in range(len(channels_for(kind))):
                for attr in HwmonAttribute:
                    if self.is_visible(kind, attr, index):
                        names.append(f"{kind}{index + 1}_{attr}")
        return names

    def read_attribute(self, name: str) -> str:
        """Return the text a sysfs read of attribute ``name`` would produce.

        Raises:
            UnsupportedAttributeError: If ``name`` is not an attribute name
            ChannelOutOfRangeError: If the channel number is past the catalog
        """
        match = _ATTR_RE.match(name)
        if match is None:
            raise UnsupportedAttributeError(name, "read_attribute")
        kind = ChannelKind(match.group(1))
        index = int(match.group(2)) - 1
        attr = HwmonAttribute(match.group(3))
        if not is_valid_index(kind, index):
            raise ChannelOutOfRangeError(kind, index, len(channels_for(kind)))
        if attr == HwmonAttribute.LABEL:
            return self.read_string(kind, attr, index)
        return str(self.read(kind, attr, index))


__all__ = ["READ_ONLY_MODE", "HwmonAdapter", "HwmonAttribute"]
