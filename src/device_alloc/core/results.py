"""Allocation results produced by a successful claim resolution."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .config_validation import validate_one_of
from .nodes import NodeSelector


class ConfigSource(str, Enum):
    """Where one merged configuration entry came from.

    Members are listed in specificity order, most specific first.
    """

    CLAIM = "claim"
    CLAIM_CLASS = "claimClass"
    REQUEST = "request"
    REQUEST_CLASS = "requestClass"

    @property
    def is_admin(self) -> bool:
        """Class-sourced entries were set by an administrator, not the user."""

        return self in {ConfigSource.CLAIM_CLASS, ConfigSource.REQUEST_CLASS}


@dataclass(frozen=True, slots=True)
class DriverConfiguration:
    """One configuration entry delivered to a driver.

    Parameters
    ----------
    driver_name : str
        Driver the payload is meant for.
    parameters : Any
        Opaque vendor payload.
    source : ConfigSource
        Origin of the entry.
    """

    driver_name: str
    parameters: Any
    source: ConfigSource

    @property
    def admin(self) -> bool:
        return self.source.is_admin


@dataclass(frozen=True, slots=True)
class AllocatedDevice:
    """Name and driver of one allocated device instance."""

    name: str
    driver: str


@dataclass(frozen=True, slots=True)
class AllocationResultModel:
    """Allocation of one instance. ``device`` is currently the only variant."""

    device: AllocatedDevice | None = None

    def __post_init__(self) -> None:
        validate_one_of({"device": self.device}, field_name="allocationResultModel")


@dataclass(frozen=True, slots=True)
class RequestAllocationResult:
    """Outcome for one request of a claim.

    Parameters
    ----------
    request_name : str
        Name of the request (empty for unnamed requests).
    request_index : int
        Position of the request in the effective request list.
    allocations : tuple[AllocationResultModel, ...]
        Assigned instances in selection order.
    config : tuple[DriverConfiguration, ...]
        Merged configuration, most specific first.
    admin_access : bool
        Whether the devices were assigned without exclusivity.
    alternative_index : int
        Which ``oneOf`` alternative was used (``0`` for single requests).
    """

    request_name: str
    request_index: int
    allocations: tuple[AllocationResultModel, ...]
    config: tuple[DriverConfiguration, ...] = ()
    admin_access: bool = False
    alternative_index: int = 0

    @property
    def device_names(self) -> tuple[str, ...]:
        return tuple(item.device.name for item in self.allocations if item.device is not None)

    def config_for_driver(self, driver_name: str) -> tuple[DriverConfiguration, ...]:
        """Return the entries a given driver should apply, in order."""

        return tuple(entry for entry in self.config if entry.driver_name == driver_name)


@dataclass(frozen=True, slots=True)
class StructuredDriverData:
    """Per-driver view of an allocation as consumed by a node agent."""

    config: tuple[DriverConfiguration, ...]
    results: tuple[RequestAllocationResult, ...]


@dataclass(frozen=True, slots=True)
class DriverData:
    """Allocation data for one driver."""

    driver_name: str
    structured: StructuredDriverData


@dataclass(frozen=True, slots=True)
class AllocationResult:
    """Complete, committed allocation of one claim.

    Parameters
    ----------
    claim_id : str
        ``namespace/name`` of the allocated claim.
    results : tuple[RequestAllocationResult, ...]
        One entry per effective request, in request order.
    available_on_nodes : NodeSelector | None
        Intersection of the node selectors of every contributing class.
        ``None`` means the devices are usable from every node.
    shareable : bool
        Whether the allocation supports several consumers at once.
    """

    claim_id: str
    results: tuple[RequestAllocationResult, ...]
    available_on_nodes: NodeSelector | None = None
    shareable: bool = False

    @property
    def device_names(self) -> tuple[str, ...]:
        names: list[str] = []
        for result in self.results:
            names.extend(result.device_names)
        return tuple(names)

    def result_for(self, request_name: str) -> RequestAllocationResult:
        """Return the result of a named request.

        Raises
        ------
        KeyError
            If no request with that name was allocated.
        """

        for result in self.results:
            if result.request_name == request_name:
                return result
        raise KeyError(request_name)

    def driver_data(self) -> tuple[DriverData, ...]:
        """Group results per driver, preserving first-seen driver order.

        Each driver receives only the devices it publishes and only the
        configuration entries addressed to it. Claim-level entries (claim and
        claim class) are lifted into the structured config.
        """

        drivers: list[str] = []
        for result in self.results:
            for item in result.allocations:
                if item.device is not None and item.device.driver not in drivers:
                    drivers.append(item.device.driver)

        entries: list[DriverData] = []
        for driver in drivers:
            claim_config: tuple[DriverConfiguration, ...] | None = None
            results: list[RequestAllocationResult] = []
            for result in self.results:
                allocations = tuple(
                    item
                    for item in result.allocations
                    if item.device is not None and item.device.driver == driver
                )
                if not allocations:
                    continue
                # Claim-level entries are identical in every result.
                if claim_config is None:
                    claim_config = tuple(
                        entry
                        for entry in result.config_for_driver(driver)
                        if entry.source in {ConfigSource.CLAIM, ConfigSource.CLAIM_CLASS}
                    )
                results.append(
                    RequestAllocationResult(
                        request_name=result.request_name,
                        request_index=result.request_index,
                        allocations=allocations,
                        config=tuple(
                            entry
                            for entry in result.config_for_driver(driver)
                            if entry.source in {ConfigSource.REQUEST, ConfigSource.REQUEST_CLASS}
                        ),
                        admin_access=result.admin_access,
                        alternative_index=result.alternative_index,
                    )
                )
            entries.append(
                DriverData(
                    driver_name=driver,
                    structured=StructuredDriverData(config=claim_config or (), results=tuple(results)),
                )
            )
        return tuple(entries)


__all__ = [
    "AllocatedDevice",
    "AllocationResult",
    "AllocationResultModel",
    "ConfigSource",
    "DriverConfiguration",
    "DriverData",
    "RequestAllocationResult",
    "StructuredDriverData",
]
