"""Resolver policy configuration.

Policies the allocation engine leaves open (tie-break order, treatment of
devices missing a matched attribute, backtracking over ``oneOf``
alternatives, race retries) are set through :class:`ResolverConfig`, built
directly or from a declarative JSON/YAML mapping.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from device_alloc.core.config_loading import load_config_mapping
from device_alloc.core.config_validation import validate_allowed_keys
from device_alloc.core.errors import ValidationError


class SelectionPolicy(str, Enum):
    """Order in which matching devices are picked.

    Attributes
    ----------
    FIRST
        Stable pool order.
    RANDOM
        Pool order shuffled by a seeded generator.
    """

    FIRST = "first"
    RANDOM = "random"


class MissingAttributePolicy(str, Enum):
    """How match constraints treat devices lacking the attribute.

    Attributes
    ----------
    VACUOUS
        The device takes the typed zero value, so two devices that both lack
        the attribute are equal.
    EXCLUDE
        The device does not take part in the comparison.
    """

    VACUOUS = "vacuous"
    EXCLUDE = "exclude"


@dataclass(frozen=True, slots=True)
class ResolverConfig:
    """Claim resolver policy.

    Parameters
    ----------
    max_retries : int, optional
        Retries after a lost reservation race before a transient failure is
        raised.
    selection : SelectionPolicy, optional
        Tie-break order when more devices match than a request needs.
    seed : int, optional
        Seed for :attr:`SelectionPolicy.RANDOM`.
    missing_attribute : MissingAttributePolicy, optional
        Treatment of devices lacking a matched attribute.
    backtrack_alternatives : bool, optional
        When true, a constraint failure makes the resolver try later
        ``oneOf`` alternatives of earlier requests before failing the claim.
    """

    max_retries: int = 3
    selection: SelectionPolicy = SelectionPolicy.FIRST
    seed: int = 0
    missing_attribute: MissingAttributePolicy = MissingAttributePolicy.VACUOUS
    backtrack_alternatives: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise ValidationError("config.max_retries", "must be an integer >= 0")
        object.__setattr__(self, "selection", SelectionPolicy(self.selection))
        object.__setattr__(self, "missing_attribute", MissingAttributePolicy(self.missing_attribute))


def resolver_config_from_mapping(config: Mapping[str, Any]) -> ResolverConfig:
    """Build a :class:`ResolverConfig` from a declarative mapping.

    Parameters
    ----------
    config : Mapping[str, Any]
        Mapping with optional keys ``max_retries``, ``selection``, ``seed``,
        ``missing_attribute`` and ``backtrack_alternatives``.

    Returns
    -------
    ResolverConfig
        Parsed configuration.

    Raises
    ------
    ValidationError
        If keys are unknown or values have the wrong type.
    """

    if not isinstance(config, Mapping):
        raise ValidationError("config", "must be an object")
    validate_allowed_keys(
        config,
        field_name="config",
        allowed_keys=("max_retries", "selection", "seed", "missing_attribute", "backtrack_alternatives"),
    )

    kwargs: dict[str, Any] = {}
    if "max_retries" in config:
        kwargs["max_retries"] = _coerce_non_negative_int(config["max_retries"], field_name="config.max_retries")
    if "seed" in config:
        kwargs["seed"] = _coerce_non_negative_int(config["seed"], field_name="config.seed")
    if "selection" in config:
        kwargs["selection"] = _coerce_enum(SelectionPolicy, config["selection"], field_name="config.selection")
    if "missing_attribute" in config:
        kwargs["missing_attribute"] = _coerce_enum(
            MissingAttributePolicy,
            config["missing_attribute"],
            field_name="config.missing_attribute",
        )
    if "backtrack_alternatives" in config:
        raw = config["backtrack_alternatives"]
        if not isinstance(raw, bool):
            raise ValidationError("config.backtrack_alternatives", "must be a boolean")
        kwargs["backtrack_alternatives"] = raw
    return ResolverConfig(**kwargs)


def load_resolver_config(path: str | Path) -> ResolverConfig:
    """Load a :class:`ResolverConfig` from a `.json`, `.yaml` or `.yml` file."""

    return resolver_config_from_mapping(load_config_mapping(path))


def _coerce_non_negative_int(raw: Any, *, field_name: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        raise ValidationError(field_name, "must be an integer >= 0")
    return raw


def _coerce_enum(enum_type: type[Enum], raw: Any, *, field_name: str) -> Any:
    try:
        return enum_type(str(raw).strip().lower())
    except ValueError as exc:
        allowed = sorted(member.value for member in enum_type)
        raise ValidationError(field_name, f"must be one of {allowed}, got {raw!r}") from exc


__all__ = [
    "MissingAttributePolicy",
    "ResolverConfig",
    "SelectionPolicy",
    "load_resolver_config",
    "resolver_config_from_mapping",
]
