"""Shared helpers for strict declarative mapping validation."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .errors import ValidationError


def validate_allowed_keys(
    mapping: Mapping[str, Any],
    *,
    field_name: str,
    allowed_keys: Iterable[str],
) -> None:
    """Validate that a mapping only contains allowed keys.

    Parameters
    ----------
    mapping : Mapping[str, Any]
        Mapping to validate.
    field_name : str
        Human-readable path used in error messages.
    allowed_keys : Iterable[str]
        Allowed key names for ``mapping``.

    Raises
    ------
    ValidationError
        If unknown keys are present.
    """

    allowed = set(str(key) for key in allowed_keys)
    unknown = sorted(str(key) for key in mapping if str(key) not in allowed)
    if unknown:
        raise ValidationError(field_name, f"unknown keys: {unknown}")


def validate_required_keys(
    mapping: Mapping[str, Any],
    *,
    field_name: str,
    required_keys: Iterable[str],
) -> None:
    """Validate that required keys are present in a mapping.

    Parameters
    ----------
    mapping : Mapping[str, Any]
        Mapping to validate.
    field_name : str
        Human-readable path used in error messages.
    required_keys : Iterable[str]
        Keys that must be present in ``mapping``.

    Raises
    ------
    ValidationError
        If required keys are missing.
    """

    required = set(str(key) for key in required_keys)
    missing = sorted(key for key in required if key not in mapping)
    if missing:
        raise ValidationError(field_name, f"missing required keys: {missing}")


def validate_one_of(
    members: Mapping[str, Any],
    *,
    field_name: str,
) -> str:
    """Validate that exactly one member of a union is populated.

    Parameters
    ----------
    members : Mapping[str, Any]
        Candidate member values keyed by member name. ``None`` means unset.
    field_name : str
        Human-readable path used in error messages.

    Returns
    -------
    str
        Name of the single populated member.

    Raises
    ------
    ValidationError
        If zero or more than one member is populated.
    """

    populated = sorted(name for name, value in members.items() if value is not None)
    if not populated:
        raise ValidationError(
            field_name,
            f"exactly one of {sorted(members)} must be set, got none",
        )
    if len(populated) > 1:
        raise ValidationError(
            field_name,
            f"exactly one of {sorted(members)} must be set, got {populated}",
        )
    return populated[0]


def validate_qualified_name(name: Any, *, field_name: str) -> str:
    """Validate a fully-qualified attribute name.

    Parameters
    ----------
    name : Any
        Candidate attribute name.
    field_name : str
        Human-readable path used in error messages.

    Returns
    -------
    str
        The validated name.

    Raises
    ------
    ValidationError
        If the name is not a string or lacks a domain separator.
    """

    if not isinstance(name, str) or not name.strip():
        raise ValidationError(field_name, "must be a non-empty string")
    if "." not in name or name.startswith(".") or name.endswith("."):
        raise ValidationError(
            field_name,
            f"{name!r} must be a non-empty DNS domain (including at least one dot)",
        )
    return name


__all__ = [
    "validate_allowed_keys",
    "validate_one_of",
    "validate_qualified_name",
    "validate_required_keys",
]
