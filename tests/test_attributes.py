"""Tests for typed attributes, versions, quantities and devices."""

from __future__ import annotations

from decimal import Decimal

import pytest

from device_alloc.core import (
    AttributeType,
    AttributeValue,
    Device,
    Quantity,
    ValidationError,
    Version,
    ZERO_VALUES,
)


def test_version_parse_and_precedence() -> None:
    """Versions should order by semantic-version precedence."""

    assert Version.parse("1.2.3") == Version(1, 2, 3)
    assert Version.parse("1.2.3") < Version.parse("1.10.0")
    assert Version.parse("1.0.0-alpha") < Version.parse("1.0.0")
    assert Version.parse("1.0.0-alpha.1") < Version.parse("1.0.0-alpha.beta")
    assert Version.parse("1.0.0+build.5") == Version.parse("1.0.0")
    assert Version.parse("2.0.0").compare_to(Version.parse("1.9.9")) == 1
    assert str(Version.parse("1.0.0-rc.1+abc")) == "1.0.0-rc.1+abc"


@pytest.mark.parametrize("text", ["1.2", "v1.2.3", "01.2.3", "", "1.2.3-"])
def test_version_rejects_malformed_text(text: str) -> None:
    """Malformed semantic versions should be rejected."""

    with pytest.raises(ValueError, match="invalid semantic version"):
        Version.parse(text)


def test_quantity_parse_suffixes() -> None:
    """Quantities should understand SI, binary and exponent suffixes."""

    assert Quantity.parse("1Gi").value == Decimal(2**30)
    assert Quantity.parse("500m").value == Decimal("0.5")
    assert Quantity.parse("1e3") == Quantity.parse("1k")
    assert Quantity.parse("1G") == Quantity.parse("1000M")
    assert Quantity.parse("8Gi") < Quantity.parse("40Gi")
    assert Quantity.parse("2").compare_to(Quantity.parse("2000m")) == 0
    assert str(Quantity.parse("40Gi")) == "40Gi"


def test_quantity_rejects_malformed_text() -> None:
    """Unknown suffixes should be rejected."""

    with pytest.raises(ValueError, match="invalid quantity"):
        Quantity.parse("10GB")


def test_attribute_value_checks_payload_type() -> None:
    """Attribute values should reject payloads of the wrong type."""

    assert AttributeValue.integer(3).value == 3
    assert AttributeValue.string_slice(["a", "b"]).value == ("a", "b")
    with pytest.raises(TypeError):
        AttributeValue(AttributeType.INT, True)
    with pytest.raises(TypeError):
        AttributeValue(AttributeType.STRING_SLICE, ["a", 1])


def test_device_converts_plain_attribute_values() -> None:
    """Devices should infer attribute types from plain Python values."""

    device = Device(
        name="gpu-0",
        driver="gpu.example.com",
        attributes={
            "model.gpu.example.com": "a100",
            "cores.gpu.example.com": 108,
            "mig.gpu.example.com": False,
            "memory.gpu.example.com": AttributeValue.quantity("40Gi"),
        },
    )

    assert device.lookup("model.gpu.example.com") == AttributeValue.string("a100")
    assert device.lookup("cores.gpu.example.com").type is AttributeType.INT
    assert device.lookup("mig.gpu.example.com").type is AttributeType.BOOL
    assert device.lookup("missing.gpu.example.com") is None


def test_typed_lookup_returns_zero_values() -> None:
    """Typed lookups should yield the zero value for absent or mistyped attributes."""

    device = Device(name="gpu-0", driver="gpu.example.com", attributes={"model.gpu.example.com": "a100"})

    assert device.typed_lookup("model.gpu.example.com", AttributeType.STRING) == "a100"
    assert device.typed_lookup("model.gpu.example.com", AttributeType.INT) == 0
    for kind, zero in ZERO_VALUES.items():
        assert device.typed_lookup("absent.gpu.example.com", kind) == zero
    assert ZERO_VALUES[AttributeType.VERSION] == Version(0, 0, 0)
    assert ZERO_VALUES[AttributeType.QUANTITY] == Quantity.parse("0")


def test_device_rejects_uninferable_attribute() -> None:
    """Devices should report attribute type errors with a path."""

    with pytest.raises(ValidationError, match=r"device\[gpu-0\]\.attributes\[bad.example.com\]"):
        Device(name="gpu-0", driver="gpu.example.com", attributes={"bad.example.com": 1.5})


def test_device_requires_name_and_driver() -> None:
    """Devices should require a name and a driver."""

    with pytest.raises(ValidationError, match="device.name"):
        Device(name="", driver="gpu.example.com")
    with pytest.raises(ValidationError, match="driver"):
        Device(name="gpu-0", driver="")
