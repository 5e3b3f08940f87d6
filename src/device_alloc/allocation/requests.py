"""Resolve one request of a claim into concrete devices.

The resolver filters candidates by every effective requirement, groups them
by the request's own ``match`` criteria and picks between the minimum and
maximum count. It never mutates shared state: the claim resolver decides
when picked devices leave the working pool and when they are staged.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field

import numpy as np

from device_alloc.core.attributes import Device
from device_alloc.core.errors import NoMatchError, ValidationError
from device_alloc.core.types import DeviceClass, Request, RequestDetail, Requirement
from device_alloc.selectors import SelectorProgram, bindings_for, compile_selector

from .config import SelectionPolicy
from .constraints import ConstraintChecker
from .pool import PoolSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompiledRequirement:
    """Requirement with its selector compiled."""

    driver_name: str | None
    program: SelectorProgram

    def admits(self, device: Device) -> bool:
        # Driver restriction is a pre-filter, never part of the expression.
        if self.driver_name is not None and device.driver != self.driver_name:
            return False
        return self.program.matches(bindings_for(device))


def compile_requirements(requirements: Sequence[Requirement], *, path: str) -> tuple[CompiledRequirement, ...]:
    """Compile requirement selectors, reporting errors at ``path[i]``."""

    compiled: list[CompiledRequirement] = []
    for index, requirement in enumerate(requirements):
        device_filter = requirement.device_filter
        compiled.append(
            CompiledRequirement(
                driver_name=device_filter.driver_name,
                program=compile_selector(device_filter.selector, path=f"{path}[{index}].device.selector"),
            )
        )
    return tuple(compiled)


class WorkingPool:
    """Per-resolution view of which devices are still free for this claim.

    Parameters
    ----------
    snapshot : PoolSnapshot
        Pool state the resolution started from.
    """

    def __init__(self, snapshot: PoolSnapshot) -> None:
        self.snapshot = snapshot
        self._taken: set[str] = set()

    def available(self) -> tuple[Device, ...]:
        """Devices free for exclusive use, in pool order."""

        return tuple(device for device in self.snapshot.available() if device.name not in self._taken)

    def everything(self) -> tuple[Device, ...]:
        """Every device, reserved or not. Used for admin access."""

        return self.snapshot.devices

    def take(self, devices: Sequence[Device]) -> None:
        self._taken.update(device.name for device in devices)

    def give_back(self, devices: Sequence[Device]) -> None:
        self._taken.difference_update(device.name for device in devices)


@dataclass(frozen=True, slots=True)
class ResolvedRequest:
    """Devices chosen for one request and the alternative that produced them."""

    request: Request
    request_index: int
    alternative_index: int
    detail: RequestDetail
    device_class: DeviceClass | None
    devices: tuple[Device, ...] = field(default_factory=tuple)

    @property
    def request_name(self) -> str:
        return self.request.name

    @property
    def admin_access(self) -> bool:
        return self.detail.is_admin


class RequestResolver:
    """Pick devices for requests of one claim.

    Parameters
    ----------
    classes : Mapping[str, DeviceClass]
        Available device classes by name.
    claim_requirements : Sequence[Requirement], optional
        Requirements from the class referenced at claim scope. They apply to
        every request.
    checker : ConstraintChecker | None, optional
        Comparison rules for per-request ``match`` criteria.
    selection : SelectionPolicy, optional
        Tie-break order when more devices match than needed.
    rng : numpy.random.Generator | None, optional
        Generator for :attr:`SelectionPolicy.RANDOM`.
    path : str, optional
        Field path prefix used in error messages.
    """

    def __init__(
        self,
        classes: Mapping[str, DeviceClass],
        *,
        claim_requirements: Sequence[Requirement] = (),
        checker: ConstraintChecker | None = None,
        selection: SelectionPolicy = SelectionPolicy.FIRST,
        rng: np.random.Generator | None = None,
        path: str = "claim",
    ) -> None:
        self.classes = classes
        self.checker = checker if checker is not None else ConstraintChecker()
        self.selection = SelectionPolicy(selection)
        self.rng = rng if rng is not None else np.random.default_rng(0)
        self.path = path
        self._claim_requirements = compile_requirements(
            claim_requirements,
            path=f"{path}.deviceClass.request.requirements",
        )

    def device_class_for(self, detail: RequestDetail, *, path: str) -> DeviceClass | None:
        """Look up the class a request detail references.

        Raises
        ------
        ValidationError
            If the referenced class does not exist.
        """

        if detail.device_class is None:
            return None
        name = str(detail.device_class.device_class_name)
        device_class = self.classes.get(name)
        if device_class is None:
            raise ValidationError(f"{path}.deviceClassName", f"device class {name!r} not found")
        return device_class

    def effective_requirements(
        self,
        detail: RequestDetail,
        device_class: DeviceClass | None,
        *,
        path: str,
    ) -> tuple[CompiledRequirement, ...]:
        """Claim-class, request-class and request requirements, in that order."""

        class_requirements: tuple[CompiledRequirement, ...] = ()
        if device_class is not None:
            class_requirements = compile_requirements(
                device_class.request.requirements,
                path=f"deviceClass[{device_class.name}].request.requirements",
            )
        own = compile_requirements(detail.requirements, path=f"{path}.requirements")
        return self._claim_requirements + class_requirements + own

    def filter(self, candidates: Sequence[Device], requirements: Sequence[CompiledRequirement]) -> list[Device]:
        """Return candidates that satisfy every requirement, in order."""

        return [device for device in candidates if all(req.admits(device) for req in requirements)]

    def _order(self, group: Sequence[Device], count: int) -> tuple[Device, ...]:
        if self.selection is SelectionPolicy.FIRST or count >= len(group):
            return tuple(group[:count])
        chosen = sorted(int(index) for index in self.rng.choice(len(group), size=count, replace=False))
        return tuple(group[index] for index in chosen)

    def resolve_detail(
        self,
        detail: RequestDetail,
        working: WorkingPool,
        *,
        path: str,
        request_name: str = "",
    ) -> tuple[DeviceClass | None, tuple[Device, ...]]:
        """Choose devices for one request detail without mutating anything.

        Returns
        -------
        tuple[DeviceClass | None, tuple[Device, ...]]
            Referenced class and chosen devices in pool order.

        Raises
        ------
        NoMatchError
            If fewer than the minimum count of candidates satisfy the
            requirements and match criteria.
        ValidationError
            If a class is unknown or a selector does not compile.
        """

        device_class = self.device_class_for(detail, path=path)
        requirements = self.effective_requirements(detail, device_class, path=path)
        pool = working.everything() if detail.is_admin else working.available()
        candidates = self.filter(pool, requirements)

        count = detail.effective_count
        minimum = count.effective_minimum
        for group in self.checker.group(candidates, detail.match):
            if len(group) < minimum:
                continue
            maximum = len(group) if count.maximum is None else min(count.maximum, len(group))
            chosen = self._order(group, maximum)
            logger.debug(
                "%s: picked %d of %d candidate(s) (range %s..%s)",
                path,
                len(chosen),
                len(candidates),
                minimum,
                "all" if count.maximum is None else count.maximum,
            )
            return device_class, chosen
        if minimum == 0:
            return device_class, ()

        raise NoMatchError(
            f"{path}: {len(candidates)} matching device(s), at least {minimum} required",
            request_name=request_name or None,
        )

    def alternatives(self, request: Request, index: int, working: WorkingPool) -> Iterator[ResolvedRequest]:
        """Yield every satisfiable alternative in priority order.

        Each alternative is evaluated lazily against the working pool as it
        is when the next item is requested.

        Raises
        ------
        NoMatchError
            If not a single alternative can be satisfied.
        """

        path = f"{self.path}.requests[{index}]"
        failures: list[str] = []
        satisfied = False
        for alternative_index, detail in enumerate(request.alternatives()):
            detail_path = path if request.detail is not None else f"{path}.oneOf[{alternative_index}]"
            try:
                device_class, devices = self.resolve_detail(
                    detail,
                    working,
                    path=detail_path,
                    request_name=request.name,
                )
            except NoMatchError as exc:
                failures.append(str(exc))
                continue
            satisfied = True
            yield ResolvedRequest(
                request=request,
                request_index=index,
                alternative_index=alternative_index,
                detail=detail,
                device_class=device_class,
                devices=devices,
            )
        if not satisfied:
            raise NoMatchError("; ".join(failures), request_name=request.name or None)

    def resolve(self, request: Request, index: int, working: WorkingPool) -> ResolvedRequest:
        """Resolve the first satisfiable alternative of ``request``.

        Raises
        ------
        NoMatchError
            If no alternative can be satisfied.
        """

        return next(self.alternatives(request, index, working))


__all__ = [
    "CompiledRequirement",
    "RequestResolver",
    "ResolvedRequest",
    "WorkingPool",
    "compile_requirements",
]
