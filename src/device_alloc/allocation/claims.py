"""Claim resolution: the allocation orchestrator.

One resolution walks ``START -> RESOLVING_REQUESTS -> CHECKING_CONSTRAINTS ->
MERGING -> ALLOCATED``, or ends in ``FAILED`` with every staged reservation
released. Allocation is all or nothing. A lost reservation race restarts the
resolution against a fresh pool snapshot, up to ``max_retries`` times.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from device_alloc.core.errors import (
    AllocationError,
    ConstraintViolationError,
    NoMatchError,
    RaceLostError,
    TransientAllocationError,
    ValidationError,
)
from device_alloc.core.nodes import intersect_node_selectors
from device_alloc.core.results import (
    AllocatedDevice,
    AllocationResult,
    AllocationResultModel,
    RequestAllocationResult,
)
from device_alloc.core.status import ClaimStatus
from device_alloc.core.types import DEFAULT_REQUEST, Claim, Constraint, DeviceClass, Request

from .config import ResolverConfig
from .constraints import ConstraintChecker
from .merging import ConfigMerger
from .pool import DevicePool, PoolSnapshot
from .requests import RequestResolver, ResolvedRequest, WorkingPool
from .validation import validate_claim

logger = logging.getLogger(__name__)


class ResolutionState(str, Enum):
    """Phases of one claim resolution."""

    START = "start"
    RESOLVING_REQUESTS = "resolving_requests"
    CHECKING_CONSTRAINTS = "checking_constraints"
    MERGING = "merging"
    ALLOCATED = "allocated"
    FAILED = "failed"


def effective_requests(claim: Claim, claim_class: DeviceClass | None) -> tuple[Request, ...]:
    """Return the claim's requests, its class defaults, or one default request."""

    if claim.requests:
        return claim.requests
    if claim_class is not None and claim_class.default_requests:
        return claim_class.default_requests
    return (DEFAULT_REQUEST,)


@dataclass(slots=True)
class _Attempt:
    """Mutable state of one resolution attempt against one snapshot."""

    owner: str
    pool: DevicePool
    working: WorkingPool
    exclusive: bool
    state: ResolutionState = ResolutionState.START
    staged: list[str] = field(default_factory=list)

    def advance(self, state: ResolutionState) -> None:
        logger.debug("%s: %s -> %s", self.owner, self.state.value, state.value)
        self.state = state

    def stage(self, resolved: ResolvedRequest) -> None:
        """Take devices from the working pool and reserve them if exclusive."""

        if resolved.admin_access:
            return
        self.working.take(resolved.devices)
        if not self.exclusive:
            return
        for device in resolved.devices:
            if not self.pool.try_reserve(device.name, self.owner):
                raise RaceLostError(
                    f"device {device.name!r} was reserved concurrently by {self.pool.holder(device.name)}",
                    device_name=device.name,
                )
            self.staged.append(device.name)

    def unstage(self, resolved: ResolvedRequest) -> None:
        if resolved.admin_access:
            return
        self.working.give_back(resolved.devices)
        names = [device.name for device in resolved.devices if device.name in self.staged]
        if names:
            self.pool.release(self.owner, names)
            self.staged = [name for name in self.staged if name not in names]

    def rollback(self) -> None:
        if self.staged:
            self.pool.release(self.owner, self.staged)
            self.staged = []
        self.advance(ResolutionState.FAILED)


class ClaimResolver:
    """Resolve claims against a shared device pool.

    Parameters
    ----------
    pool : DevicePool
        Shared device pool. Several resolvers may share one pool.
    classes : Mapping[str, DeviceClass] | Iterable[DeviceClass]
        Device class catalog.
    config : ResolverConfig | None, optional
        Resolver policies. Defaults to :class:`ResolverConfig` defaults.
    """

    def __init__(
        self,
        pool: DevicePool,
        classes: Mapping[str, DeviceClass] | Iterable[DeviceClass] = (),
        config: ResolverConfig | None = None,
    ) -> None:
        self.pool = pool
        if isinstance(classes, Mapping):
            self.classes: dict[str, DeviceClass] = dict(classes)
        else:
            self.classes = {device_class.name: device_class for device_class in classes}
        self.config = config if config is not None else ResolverConfig()
        self.checker = ConstraintChecker(self.config.missing_attribute)
        self._lock = threading.Lock()
        self._allocations: dict[str, AllocationResult] = {}
        self._in_flight: set[str] = set()

    def claim_class(self, claim: Claim) -> DeviceClass | None:
        """Return the class referenced at claim scope.

        Raises
        ------
        ValidationError
            If the class does not exist.
        """

        if claim.device_class is None:
            return None
        name = str(claim.device_class.device_class_name)
        if name not in self.classes:
            raise ValidationError(f"claim[{claim.claim_id}].deviceClassName", f"device class {name!r} not found")
        return self.classes[name]

    def allocation(self, claim_id: str) -> AllocationResult | None:
        """Return the committed allocation of a claim, if any."""

        with self._lock:
            return self._allocations.get(claim_id)

    def resolve(self, claim: Claim) -> AllocationResult:
        """Allocate devices for ``claim``.

        Parameters
        ----------
        claim : Claim
            Claim to allocate. A claim is allocated at most once until it is
            deallocated.

        Returns
        -------
        AllocationResult
            Committed allocation.

        Raises
        ------
        ValidationError
            If the claim is malformed or references unknown classes.
        NoMatchError
            If a request cannot be satisfied by any alternative.
        ConstraintViolationError
            If the chosen devices violate a claim-wide constraint.
        TransientAllocationError
            If concurrent resolutions kept winning reservation races.
        ValueError
            If the claim is already allocated or being resolved.
        """

        claim_id = claim.claim_id
        with self._lock:
            if claim_id in self._allocations:
                raise ValueError(f"claim {claim_id} is already allocated; deallocate it first")
            if claim_id in self._in_flight:
                raise ValueError(f"claim {claim_id} is already being resolved")
            self._in_flight.add(claim_id)

        try:
            validate_claim(claim, self.classes)
            result = self._resolve_with_retries(claim)
        finally:
            with self._lock:
                self._in_flight.discard(claim_id)

        with self._lock:
            self._allocations[claim_id] = result
        return result

    def allocate(self, claim: Claim, status: ClaimStatus | None = None) -> ClaimStatus:
        """Resolve ``claim`` and record the allocation in its status."""

        current = status if status is not None else ClaimStatus()
        if current.allocated:
            raise ValueError(f"claim {claim.claim_id} is already allocated; deallocate it first")
        return current.with_allocation(self.resolve(claim))

    def deallocate(self, claim_id: str, status: ClaimStatus | None = None) -> ClaimStatus:
        """Return a claim's devices to the pool.

        Raises
        ------
        ValueError
            If consumers still hold reservations on the claim.
        """

        cleared = status.cleared() if status is not None else ClaimStatus()
        with self._lock:
            self._allocations.pop(claim_id, None)
        self.pool.deallocate(claim_id)
        logger.info("deallocated claim %s", claim_id)
        return cleared

    def _resolve_with_retries(self, claim: Claim) -> AllocationResult:
        last_race: RaceLostError | None = None
        attempts = self.config.max_retries + 1
        for attempt in range(attempts):
            snapshot = self.pool.snapshot()
            try:
                return self._attempt(claim, snapshot)
            except RaceLostError as exc:
                last_race = exc
                logger.info(
                    "claim %s lost a reservation race on %s (attempt %d/%d)",
                    claim.claim_id,
                    exc.device_name,
                    attempt + 1,
                    attempts,
                )
        raise TransientAllocationError(
            f"claim {claim.claim_id} could not be allocated after {attempts} attempt(s): {last_race}",
            attempts=attempts,
        )

    def _attempt(self, claim: Claim, snapshot: PoolSnapshot) -> AllocationResult:
        claim_class = self.claim_class(claim)
        requests = effective_requests(claim, claim_class)
        constraints = claim.constraints + (claim_class.claim.constraints if claim_class is not None else ())
        resolver = RequestResolver(
            self.classes,
            claim_requirements=claim_class.request.requirements if claim_class is not None else (),
            checker=self.checker,
            selection=self.config.selection,
            rng=np.random.default_rng(self.config.seed),
            path=f"claim[{claim.claim_id}]",
        )
        attempt = _Attempt(
            owner=claim.claim_id,
            pool=self.pool,
            working=WorkingPool(snapshot),
            exclusive=not claim.shareable,
        )

        try:
            attempt.advance(ResolutionState.RESOLVING_REQUESTS)
            chosen = self._search(attempt, resolver, requests, constraints, [])
            attempt.advance(ResolutionState.MERGING)
            merger = ConfigMerger(claim, claim_class)
            results = tuple(
                RequestAllocationResult(
                    request_name=resolved.request_name,
                    request_index=resolved.request_index,
                    allocations=tuple(
                        AllocationResultModel(device=AllocatedDevice(name=device.name, driver=device.driver))
                        for device in resolved.devices
                    ),
                    config=merger.merge(resolved),
                    admin_access=resolved.admin_access,
                    alternative_index=resolved.alternative_index,
                )
                for resolved in chosen
            )
            node_selectors = [claim_class.suitable_nodes if claim_class is not None else None]
            node_selectors += [
                resolved.device_class.suitable_nodes for resolved in chosen if resolved.device_class is not None
            ]
            if attempt.staged:
                self.pool.commit(attempt.owner, attempt.staged)
        except (AllocationError, ValidationError):
            attempt.rollback()
            raise

        attempt.advance(ResolutionState.ALLOCATED)
        result = AllocationResult(
            claim_id=claim.claim_id,
            results=results,
            available_on_nodes=intersect_node_selectors(tuple(node_selectors)),
            shareable=claim.shareable,
        )
        logger.info("allocated claim %s: %s", claim.claim_id, ", ".join(result.device_names) or "no devices")
        return result

    def _search(
        self,
        attempt: _Attempt,
        resolver: RequestResolver,
        requests: tuple[Request, ...],
        constraints: tuple[Constraint, ...],
        chosen: list[ResolvedRequest],
    ) -> list[ResolvedRequest]:
        position = len(chosen)
        if position == len(requests):
            attempt.advance(ResolutionState.CHECKING_CONSTRAINTS)
            devices = [device for resolved in chosen for device in resolved.devices]
            self.checker.check(devices, constraints)
            return list(chosen)

        failure: AllocationError | None = None
        for resolved in resolver.alternatives(requests[position], position, attempt.working):
            attempt.stage(resolved)
            chosen.append(resolved)
            try:
                return self._search(attempt, resolver, requests, constraints, chosen)
            except (ConstraintViolationError, NoMatchError) as exc:
                if not self.config.backtrack_alternatives:
                    raise
                failure = exc
                logger.debug(
                    "request %d alternative %d rejected: %s",
                    position,
                    resolved.alternative_index,
                    exc,
                )
            chosen.pop()
            attempt.unstage(resolved)
            attempt.advance(ResolutionState.RESOLVING_REQUESTS)
        if failure is None:
            raise NoMatchError(f"request {position} has no alternatives")
        raise failure


__all__ = ["ClaimResolver", "ResolutionState", "effective_requests"]
