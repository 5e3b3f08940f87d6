"""Typed device attributes and the device snapshot record.

Each attribute carries one declared :class:`AttributeType`. Typed lookups
return a documented zero value when the attribute is absent (or has a
different type) so selectors written for one vendor evaluate safely against
devices from another.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from functools import total_ordering
from typing import Any, Mapping

from .errors import ValidationError


class AttributeType(str, Enum):
    """Declared type of one device attribute value."""

    STRING = "string"
    INT = "int"
    BOOL = "bool"
    VERSION = "version"
    QUANTITY = "quantity"
    STRING_SLICE = "stringSlice"


_SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)


@total_ordering
@dataclass(frozen=True, slots=True)
class Version:
    """Semantic version (``major.minor.patch[-prerelease][+build]``).

    Ordering follows semantic-versioning precedence: build metadata is
    ignored and a prerelease sorts before the matching release.
    """

    major: int = 0
    minor: int = 0
    patch: int = 0
    prerelease: tuple[str, ...] = ()
    build: str = field(default="", compare=False)

    @classmethod
    def parse(cls, text: str) -> "Version":
        """Parse one semantic version string.

        Raises
        ------
        ValueError
            If ``text`` is not a valid semantic version.
        """

        match = _SEMVER_PATTERN.match(str(text).strip())
        if match is None:
            raise ValueError(f"invalid semantic version {text!r}")
        major, minor, patch, prerelease, build = match.groups()
        return cls(
            major=int(major),
            minor=int(minor),
            patch=int(patch),
            prerelease=tuple(prerelease.split(".")) if prerelease else (),
            build=build or "",
        )

    def _precedence_key(self) -> tuple[Any, ...]:
        # A release outranks any of its prereleases; numeric identifiers
        # sort before alphanumeric ones.
        release_marker = 1 if not self.prerelease else 0
        identifiers = tuple(
            (0, int(part), "") if part.isdigit() else (1, 0, part)
            for part in self.prerelease
        )
        return (self.major, self.minor, self.patch, release_marker, identifiers)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._precedence_key() < other._precedence_key()

    def compare_to(self, other: "Version") -> int:
        """Return -1, 0 or 1 by semantic-version precedence."""

        if self < other:
            return -1
        if other < self:
            return 1
        return 0

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + self.build
        return text


_QUANTITY_PATTERN = re.compile(
    r"^([+-]?(?:\d+(?:\.\d*)?|\.\d+))(?:([eE][+-]?\d+)|(Ki|Mi|Gi|Ti|Pi|Ei|n|u|m|k|M|G|T|P|E))?$"
)

_QUANTITY_SUFFIXES: dict[str, Decimal] = {
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "m": Decimal("1e-3"),
    "k": Decimal("1e3"),
    "M": Decimal("1e6"),
    "G": Decimal("1e9"),
    "T": Decimal("1e12"),
    "P": Decimal("1e15"),
    "E": Decimal("1e18"),
    "Ki": Decimal(2**10),
    "Mi": Decimal(2**20),
    "Gi": Decimal(2**30),
    "Ti": Decimal(2**40),
    "Pi": Decimal(2**50),
    "Ei": Decimal(2**60),
}


@total_ordering
@dataclass(frozen=True, slots=True)
class Quantity:
    """Decimal quantity with optional SI, binary or exponent suffix.

    Two quantities compare by value, so ``1G`` equals ``1000M``.
    """

    value: Decimal = Decimal(0)
    text: str = field(default="0", compare=False)

    @classmethod
    def parse(cls, text: str) -> "Quantity":
        """Parse a quantity such as ``10Gi``, ``500m`` or ``1e3``.

        Raises
        ------
        ValueError
            If ``text`` is not a valid quantity.
        """

        raw = str(text).strip()
        match = _QUANTITY_PATTERN.match(raw)
        if match is None:
            raise ValueError(f"invalid quantity {text!r}")
        number, exponent, suffix = match.groups()
        try:
            value = Decimal(number)
            if exponent:
                value = value * (Decimal(10) ** int(exponent[1:]))
        except (InvalidOperation, ValueError) as exc:
            raise ValueError(f"invalid quantity {text!r}") from exc
        if suffix:
            value = value * _QUANTITY_SUFFIXES[suffix]
        return cls(value=value, text=raw)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Quantity):
            return NotImplemented
        return self.value < other.value

    def compare_to(self, other: "Quantity") -> int:
        """Return -1, 0 or 1 by numeric value."""

        if self.value < other.value:
            return -1
        if self.value > other.value:
            return 1
        return 0

    def __str__(self) -> str:
        return self.text


ZERO_VALUES: dict[AttributeType, Any] = {
    AttributeType.STRING: "",
    AttributeType.INT: 0,
    AttributeType.BOOL: False,
    AttributeType.VERSION: Version(),
    AttributeType.QUANTITY: Quantity(),
    AttributeType.STRING_SLICE: (),
}


def _check_payload(kind: AttributeType, value: Any) -> Any:
    if kind is AttributeType.STRING and isinstance(value, str):
        return value
    if kind is AttributeType.INT and isinstance(value, int) and not isinstance(value, bool):
        return value
    if kind is AttributeType.BOOL and isinstance(value, bool):
        return value
    if kind is AttributeType.VERSION and isinstance(value, Version):
        return value
    if kind is AttributeType.QUANTITY and isinstance(value, Quantity):
        return value
    if kind is AttributeType.STRING_SLICE and isinstance(value, (list, tuple)):
        if all(isinstance(item, str) for item in value):
            return tuple(value)
    raise TypeError(f"{type(value).__name__} is not a valid {kind.value} attribute value")


@dataclass(frozen=True, slots=True)
class AttributeValue:
    """One typed attribute value (a closed tagged union).

    Parameters
    ----------
    type : AttributeType
        Declared value type.
    value : Any
        Payload matching ``type``. String slices are stored as tuples.
    """

    type: AttributeType
    value: Any

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _check_payload(self.type, self.value))

    @classmethod
    def string(cls, value: str) -> "AttributeValue":
        return cls(AttributeType.STRING, value)

    @classmethod
    def integer(cls, value: int) -> "AttributeValue":
        return cls(AttributeType.INT, value)

    @classmethod
    def boolean(cls, value: bool) -> "AttributeValue":
        return cls(AttributeType.BOOL, value)

    @classmethod
    def version(cls, value: Version | str) -> "AttributeValue":
        return cls(AttributeType.VERSION, value if isinstance(value, Version) else Version.parse(value))

    @classmethod
    def quantity(cls, value: Quantity | str) -> "AttributeValue":
        return cls(AttributeType.QUANTITY, value if isinstance(value, Quantity) else Quantity.parse(value))

    @classmethod
    def string_slice(cls, value: tuple[str, ...] | list[str]) -> "AttributeValue":
        return cls(AttributeType.STRING_SLICE, tuple(value))


def attribute_from_python(value: Any) -> AttributeValue:
    """Infer an attribute value from a plain Python value.

    Strings stay strings; use :meth:`AttributeValue.version` or
    :meth:`AttributeValue.quantity` explicitly for those types.
    """

    if isinstance(value, AttributeValue):
        return value
    if isinstance(value, bool):
        return AttributeValue.boolean(value)
    if isinstance(value, int):
        return AttributeValue.integer(value)
    if isinstance(value, str):
        return AttributeValue.string(value)
    if isinstance(value, Version):
        return AttributeValue(AttributeType.VERSION, value)
    if isinstance(value, Quantity):
        return AttributeValue(AttributeType.QUANTITY, value)
    if isinstance(value, (list, tuple)):
        return AttributeValue.string_slice(value)
    raise TypeError(f"cannot infer attribute type for {type(value).__name__}")


@dataclass(frozen=True, slots=True)
class Device:
    """Immutable snapshot of one schedulable device.

    Parameters
    ----------
    name : str
        Device instance name, unique within a pool.
    driver : str
        Name of the driver that publishes the device.
    device_type : str, optional
        Free-form device type tag such as ``gpu`` or ``sriov-nic``.
    attributes : Mapping[str, AttributeValue], optional
        Attribute values keyed by fully-qualified attribute name.
    """

    name: str
    driver: str
    device_type: str = ""
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ValidationError("device.name", "must be a non-empty string")
        if not isinstance(self.driver, str) or not self.driver:
            raise ValidationError(f"device[{self.name}].driver", "must be a non-empty string")
        converted: dict[str, AttributeValue] = {}
        for key, raw in dict(self.attributes).items():
            try:
                converted[str(key)] = attribute_from_python(raw)
            except TypeError as exc:
                raise ValidationError(f"device[{self.name}].attributes[{key}]", str(exc)) from exc
        object.__setattr__(self, "attributes", converted)

    def lookup(self, name: str) -> AttributeValue | None:
        """Return the attribute value, or ``None`` when absent."""

        return self.attributes.get(name)

    def typed_lookup(self, name: str, kind: AttributeType) -> Any:
        """Return the payload of one typed attribute or its zero value."""

        attribute = self.attributes.get(name)
        if attribute is None or attribute.type is not kind:
            return ZERO_VALUES[kind]
        return attribute.value


__all__ = [
    "AttributeType",
    "AttributeValue",
    "Device",
    "Quantity",
    "Version",
    "ZERO_VALUES",
    "attribute_from_python",
]
