"""Assemble driver configuration in specificity order."""

from __future__ import annotations

from collections.abc import Sequence

from device_alloc.core.results import ConfigSource, DriverConfiguration
from device_alloc.core.types import Claim, Configuration, DeviceClass

from .requests import ResolvedRequest


def _tagged(entries: Sequence[Configuration], source: ConfigSource) -> list[DriverConfiguration]:
    tagged: list[DriverConfiguration] = []
    for entry in entries:
        vendor = entry.vendor_entry
        tagged.append(
            DriverConfiguration(
                driver_name=vendor.driver_name,
                parameters=vendor.parameters,
                source=source,
            )
        )
    return tagged


class ConfigMerger:
    """Merge configuration from claim, classes and requests.

    Parameters
    ----------
    claim : Claim
        Claim being allocated.
    claim_class : DeviceClass | None, optional
        Class referenced at claim scope.

    Notes
    -----
    Entries are concatenated most specific first: claim, claim class (its
    claim options, then its request options), request, request class. Class
    entries are admin-originated, the others user-originated. Payloads are
    neither deduplicated nor merged; each driver applies its own entries.
    """

    def __init__(self, claim: Claim, claim_class: DeviceClass | None = None) -> None:
        self.claim = claim
        self.claim_class = claim_class

    def claim_entries(self) -> tuple[DriverConfiguration, ...]:
        """Entries that apply to every request of the claim."""

        entries = _tagged(self.claim.config, ConfigSource.CLAIM)
        if self.claim_class is not None:
            entries += _tagged(self.claim_class.claim.config, ConfigSource.CLAIM_CLASS)
            entries += _tagged(self.claim_class.request.config, ConfigSource.CLAIM_CLASS)
        return tuple(entries)

    def merge(self, resolved: ResolvedRequest) -> tuple[DriverConfiguration, ...]:
        """Return the ordered configuration list for one resolved request."""

        entries = list(self.claim_entries())
        entries += _tagged(resolved.detail.config, ConfigSource.REQUEST)
        if resolved.device_class is not None:
            entries += _tagged(resolved.device_class.request.config, ConfigSource.REQUEST_CLASS)
        return tuple(entries)


__all__ = ["ConfigMerger"]
