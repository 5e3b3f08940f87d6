"""Kind manifests and the decode registry.

Decoding is driven by an explicit registry passed by the caller. Modules
advertise the kinds they can build through a ``KIND_MANIFESTS`` constant.
"""

from __future__ import annotations

import importlib
import pkgutil
from dataclasses import dataclass
from typing import Any, Callable, Mapping


@dataclass(frozen=True, slots=True)
class KindManifest:
    """Manifest for one decodable kind.

    Parameters
    ----------
    group : str
        API group (empty for the core group).
    kind : str
        Kind name, unique within ``group``.
    factory : Callable[[Mapping[str, Any]], Any]
        Builds the entity from one decoded document.
    versions : tuple[str, ...], optional
        Accepted versions. Empty accepts any version.
    description : str, optional
        Human-readable summary.
    """

    group: str
    kind: str
    factory: Callable[[Mapping[str, Any]], Any]
    versions: tuple[str, ...] = ()
    description: str = ""

    def accepts(self, version: str) -> bool:
        return not self.versions or version in self.versions


class KindRegistry:
    """Registry of decodable kinds keyed by ``(group, kind)``."""

    def __init__(self) -> None:
        self._manifests: dict[tuple[str, str], KindManifest] = {}

    def register(self, manifest: KindManifest) -> None:
        """Register one kind manifest.

        Raises
        ------
        ValueError
            If a different manifest already exists for the same key.
        """

        key = (manifest.group, manifest.kind)
        existing = self._manifests.get(key)
        if existing is None:
            self._manifests[key] = manifest
            return

        if existing != manifest:
            raise ValueError(f"manifest conflict for {manifest.group}/{manifest.kind}; already registered")

    def get(self, group: str, kind: str) -> KindManifest:
        """Return a manifest by key.

        Raises
        ------
        KeyError
            If the kind is not registered.
        """

        return self._manifests[(group, kind)]

    def lookup(self, group: str, kind: str, version: str) -> KindManifest | None:
        """Return the manifest able to decode ``group/version, kind``, if any."""

        manifest = self._manifests.get((group, kind))
        if manifest is None or not manifest.accepts(version):
            return None
        return manifest

    def list(self, group: str | None = None) -> tuple[KindManifest, ...]:
        """List registered manifests sorted by group and kind."""

        manifests = tuple(self._manifests.values())
        if group is not None:
            manifests = tuple(item for item in manifests if item.group == group)

        return tuple(sorted(manifests, key=lambda item: (item.group, item.kind)))

    def create(self, group: str, kind: str, document: Mapping[str, Any]) -> Any:
        """Build an entity from one document through its manifest factory."""

        return self.get(group, kind).factory(document)

    def discover(self, package_name: str) -> tuple[KindManifest, ...]:
        """Register every ``KIND_MANIFESTS`` entry found in a package tree."""

        discovered: list[KindManifest] = []
        package = importlib.import_module(package_name)

        modules = [package]
        if hasattr(package, "__path__"):
            for module_info in pkgutil.walk_packages(package.__path__, prefix=package.__name__ + "."):
                modules.append(importlib.import_module(module_info.name))

        for module in modules:
            for manifest in getattr(module, "KIND_MANIFESTS", ()):
                if not isinstance(manifest, KindManifest):
                    raise TypeError(f"{module.__name__}.KIND_MANIFESTS must contain KindManifest objects")
                self.register(manifest)
                discovered.append(manifest)

        return tuple(discovered)

    def __contains__(self, key: object) -> bool:
        return key in self._manifests

    def __len__(self) -> int:
        return len(self._manifests)


def build_default_registry() -> KindRegistry:
    """Build a fresh registry holding the built-in resource kinds."""

    registry = KindRegistry()
    registry.discover("device_alloc.io.wire")
    return registry


__all__ = ["KindManifest", "KindRegistry", "build_default_registry"]
