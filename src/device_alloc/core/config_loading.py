"""Load declarative resolver configuration files.

JSON and YAML files are accepted. Failures are reported as
:class:`~device_alloc.core.errors.ValidationError` rooted at the file path.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .errors import ValidationError

SUPPORTED_CONFIG_SUFFIXES: tuple[str, ...] = (".json", ".yaml", ".yml")


def _parse(config_path: Path, suffix: str) -> Any:
    with config_path.open("r", encoding="utf-8") as handle:
        if suffix == ".json":
            return json.load(handle)
        return yaml.safe_load(handle)


def load_config_mapping(path: str | Path) -> dict[str, Any]:
    """Load one JSON/YAML config file whose root is an object mapping.

    Parameters
    ----------
    path : str | pathlib.Path
        Config file path. Supported suffixes are `.json`, `.yaml`, and `.yml`.

    Returns
    -------
    dict[str, Any]
        Parsed config mapping. An empty YAML file yields an empty mapping.

    Raises
    ------
    ValidationError
        If the suffix is unsupported, the file does not parse, or its root
        is not an object mapping.
    """

    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        supported = ", ".join(SUPPORTED_CONFIG_SUFFIXES)
        raise ValidationError(
            str(config_path),
            f"unsupported config file extension {suffix!r}; expected one of {supported}",
        )

    try:
        raw = _parse(config_path, suffix)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValidationError(str(config_path), f"could not parse config: {exc}") from exc

    if raw is None and suffix != ".json":
        return {}
    if not isinstance(raw, dict):
        raise ValidationError(str(config_path), "config root must be a JSON/YAML object")
    return raw


__all__ = ["SUPPORTED_CONFIG_SUFFIXES", "load_config_mapping"]
