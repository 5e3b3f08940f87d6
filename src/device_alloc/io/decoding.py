"""Decode multi-document YAML streams into entities.

Each document carries ``apiVersion`` (``group/version``, or a bare
``version`` for the core group) and ``kind``. Documents whose kind is not
registered for that group and version are skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

from device_alloc.core.errors import ValidationError

from .registry import KindRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DecodedObject:
    """One decoded document.

    Parameters
    ----------
    group : str
        API group (empty for the core group).
    version : str
        API version.
    kind : str
        Kind name.
    obj : Any
        Entity built by the kind's factory.
    index : int
        Zero-based position of the document in its stream.
    """

    group: str
    version: str
    kind: str
    obj: Any
    index: int


def split_api_version(api_version: str) -> tuple[str, str]:
    """Split ``group/version`` into its parts. A bare version is the core group."""

    if not isinstance(api_version, str) or not api_version.strip():
        raise ValidationError("apiVersion", "must be a non-empty string")
    group, separator, version = api_version.rpartition("/")
    if separator and (not group or not version):
        raise ValidationError("apiVersion", f"malformed apiVersion {api_version!r}")
    return group, version


def decode_document(document: Mapping[str, Any], registry: KindRegistry, *, index: int = 0) -> DecodedObject | None:
    """Decode one document, or return ``None`` when its kind is unregistered.

    Raises
    ------
    ValidationError
        If the document has no usable ``apiVersion``/``kind`` or its body is
        invalid for a registered kind.
    """

    if not isinstance(document, Mapping):
        raise ValidationError(f"document[{index}]", "must be an object")
    try:
        group, version = split_api_version(document.get("apiVersion"))
    except ValidationError as exc:
        raise ValidationError(f"document[{index}].{exc.path}", exc.message) from exc
    kind = document.get("kind")
    if not isinstance(kind, str) or not kind.strip():
        raise ValidationError(f"document[{index}].kind", "must be a non-empty string")

    manifest = registry.lookup(group, kind, version)
    if manifest is None:
        logger.debug("skipping document %d: %s/%s %s is not registered", index, group or "core", version, kind)
        return None
    return DecodedObject(group=group, version=version, kind=kind, obj=manifest.factory(document), index=index)


def decode_documents(source: str | Iterable[str], registry: KindRegistry) -> list[DecodedObject]:
    """Decode every document of a YAML stream.

    Parameters
    ----------
    source : str | Iterable[str]
        YAML text or an open text stream.
    registry : KindRegistry
        Kinds to decode. Everything else is skipped.

    Returns
    -------
    list[DecodedObject]
        Decoded entities in stream order. Empty documents are ignored.
    """

    decoded: list[DecodedObject] = []
    for index, document in enumerate(yaml.safe_load_all(source)):
        if document is None:
            continue
        item = decode_document(document, registry, index=index)
        if item is not None:
            decoded.append(item)
    return decoded


def decode_file(path: str | Path, registry: KindRegistry) -> list[DecodedObject]:
    """Decode a YAML file holding one or more documents."""

    with Path(path).open("r", encoding="utf-8") as handle:
        return decode_documents(handle, registry)


__all__ = ["DecodedObject", "decode_document", "decode_documents", "decode_file", "split_api_version"]
