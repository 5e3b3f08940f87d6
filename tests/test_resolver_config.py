"""Tests for resolver policy configuration."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from device_alloc.allocation import (
    MissingAttributePolicy,
    ResolverConfig,
    SelectionPolicy,
    load_resolver_config,
    resolver_config_from_mapping,
)
from device_alloc.core import ValidationError

FIXTURES = Path(__file__).parent / "fixtures"


def test_defaults_are_deterministic() -> None:
    """Default policy should pick in pool order and treat missing attributes vacuously."""

    config = resolver_config_from_mapping({})

    assert config == ResolverConfig()
    assert config.max_retries == 3
    assert config.selection is SelectionPolicy.FIRST
    assert config.missing_attribute is MissingAttributePolicy.VACUOUS
    assert config.backtrack_alternatives is False


def test_load_resolver_config_from_yaml_fixture() -> None:
    """Every policy should be read from a YAML file."""

    config = load_resolver_config(FIXTURES / "resolver_config.yaml")

    assert config == ResolverConfig(
        max_retries=5,
        selection=SelectionPolicy.RANDOM,
        seed=7,
        missing_attribute=MissingAttributePolicy.EXCLUDE,
        backtrack_alternatives=True,
    )


def test_load_resolver_config_from_json(tmp_path) -> None:
    """JSON files should load the same way as YAML."""

    path = tmp_path / "resolver.json"
    path.write_text(json.dumps({"selection": " Random ", "seed": 11}), encoding="utf-8")

    config = load_resolver_config(path)

    assert config.selection is SelectionPolicy.RANDOM
    assert config.seed == 11


def test_unknown_keys_are_rejected() -> None:
    """Unknown configuration keys should fail fast."""

    with pytest.raises(ValidationError, match=r"config: unknown keys: \['retries'\]"):
        resolver_config_from_mapping({"retries": 1})


@pytest.mark.parametrize(
    ("raw", "field"),
    [
        ({"max_retries": -1}, "config.max_retries"),
        ({"max_retries": True}, "config.max_retries"),
        ({"seed": "7"}, "config.seed"),
        ({"selection": "best"}, "config.selection"),
        ({"missing_attribute": "ignore"}, "config.missing_attribute"),
        ({"backtrack_alternatives": "yes"}, "config.backtrack_alternatives"),
    ],
)
def test_bad_values_report_their_field(raw, field) -> None:
    """Invalid values should be reported with the offending field path."""

    with pytest.raises(ValidationError) as excinfo:
        resolver_config_from_mapping(raw)

    assert excinfo.value.path == field


def test_direct_construction_coerces_enum_values() -> None:
    """String policies passed directly should become enum members."""

    config = ResolverConfig(selection="random", missing_attribute="exclude")

    assert config.selection is SelectionPolicy.RANDOM
    assert config.missing_attribute is MissingAttributePolicy.EXCLUDE
    with pytest.raises(ValidationError, match="max_retries"):
        ResolverConfig(max_retries=-2)
