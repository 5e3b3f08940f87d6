"""Per-device variable bindings visible to selector expressions.

``device.attributes`` is untyped and yields ``null`` for unknown names.
``device.<type>Attributes`` only exposes attributes of one declared type and
yields that type's zero value for anything else.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from device_alloc.core.attributes import AttributeType, Device

TYPED_MAP_NAMES: dict[str, AttributeType] = {
    "stringAttributes": AttributeType.STRING,
    "intAttributes": AttributeType.INT,
    "boolAttributes": AttributeType.BOOL,
    "versionAttributes": AttributeType.VERSION,
    "quantityAttributes": AttributeType.QUANTITY,
    "stringsliceAttributes": AttributeType.STRING_SLICE,
}

DEVICE_MEMBERS: frozenset[str] = frozenset({"driverName", "deviceType", "attributes", *TYPED_MAP_NAMES})


class UntypedAttributeMap(Mapping[str, Any]):
    """Attribute payloads of any type; unknown names yield ``None``."""

    __slots__ = ("_device",)

    def __init__(self, device: Device) -> None:
        self._device = device

    def __getitem__(self, name: str) -> Any:
        attribute = self._device.attributes.get(name)
        return None if attribute is None else attribute.value

    def __contains__(self, name: object) -> bool:
        return name in self._device.attributes

    def __iter__(self) -> Iterator[str]:
        return iter(self._device.attributes)

    def __len__(self) -> int:
        return len(self._device.attributes)


class TypedAttributeMap(Mapping[str, Any]):
    """Attributes of one declared type; other names yield the zero value."""

    __slots__ = ("_device", "_kind")

    def __init__(self, device: Device, kind: AttributeType) -> None:
        self._device = device
        self._kind = kind

    def __getitem__(self, name: str) -> Any:
        return self._device.typed_lookup(name, self._kind)

    def __contains__(self, name: object) -> bool:
        attribute = self._device.attributes.get(name) if isinstance(name, str) else None
        return attribute is not None and attribute.type is self._kind

    def __iter__(self) -> Iterator[str]:
        return (name for name, value in self._device.attributes.items() if value.type is self._kind)

    def __len__(self) -> int:
        return sum(1 for _ in self)


@dataclass(frozen=True, slots=True)
class DeviceBindings:
    """All values a selector can reference for one candidate device."""

    device: Device

    def member(self, name: str) -> Any:
        """Resolve ``device.<name>``.

        Raises
        ------
        KeyError
            If ``name`` is not a device member.
        """

        if name == "driverName":
            return self.device.driver
        if name == "deviceType":
            return self.device.device_type
        if name == "attributes":
            return UntypedAttributeMap(self.device)
        if name in TYPED_MAP_NAMES:
            return TypedAttributeMap(self.device, TYPED_MAP_NAMES[name])
        raise KeyError(name)


def bindings_for(device: Device) -> DeviceBindings:
    """Build selector bindings for one device."""

    return DeviceBindings(device=device)


__all__ = [
    "DEVICE_MEMBERS",
    "DeviceBindings",
    "TYPED_MAP_NAMES",
    "TypedAttributeMap",
    "UntypedAttributeMap",
    "bindings_for",
]
