"""Claim, request and device-class entities.

Every "exactly one member" union from the wire format is a closed variant
here: the constructor rejects instances with zero or several members set.
Class references are ordinary composed fields; flattening them into the
owning object only happens in :mod:`device_alloc.io.wire`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from .config_validation import validate_one_of, validate_qualified_name
from .errors import ValidationError
from .nodes import NodeSelector


@dataclass(frozen=True, slots=True)
class ClassReference:
    """Reference to a cluster-scoped :class:`DeviceClass` by name."""

    device_class_name: str | None = None

    def __post_init__(self) -> None:
        validate_one_of({"deviceClassName": self.device_class_name}, field_name="classReference")
        if not str(self.device_class_name).strip():
            raise ValidationError("classReference.deviceClassName", "must be a non-empty string")


@dataclass(frozen=True, slots=True)
class MatchModel:
    """Cross-device match criterion.

    Parameters
    ----------
    attribute : str | None
        Fully-qualified attribute that must have the same value on every
        device the criterion applies to.
    """

    attribute: str | None = None

    def __post_init__(self) -> None:
        validate_one_of({"attribute": self.attribute}, field_name="match")
        validate_qualified_name(self.attribute, field_name="match.attribute")


@dataclass(frozen=True, slots=True)
class Constraint:
    """Claim-wide constraint. ``match`` is currently the only variant."""

    match: MatchModel | None = None

    def __post_init__(self) -> None:
        validate_one_of({"match": self.match}, field_name="constraint")


@dataclass(frozen=True, slots=True)
class VendorConfiguration:
    """Opaque configuration payload for one driver.

    The resolver never interprets ``parameters``.
    """

    driver_name: str
    parameters: Any = None

    def __post_init__(self) -> None:
        if not isinstance(self.driver_name, str) or not self.driver_name.strip():
            raise ValidationError("config.vendor.driverName", "must be a non-empty string")


@dataclass(frozen=True, slots=True)
class Configuration:
    """Configuration entry. ``vendor`` is currently the only variant."""

    vendor: VendorConfiguration | None = None

    def __post_init__(self) -> None:
        validate_one_of({"vendor": self.vendor}, field_name="config")

    @property
    def vendor_entry(self) -> VendorConfiguration:
        """The populated variant."""

        if self.vendor is None:
            raise ValidationError("config.vendor", "is required")
        return self.vendor

    @property
    def driver_name(self) -> str:
        return self.vendor_entry.driver_name


@dataclass(frozen=True, slots=True)
class DeviceFilter:
    """Per-device filter.

    Parameters
    ----------
    driver_name : str | None, optional
        Excludes devices of any other driver. Leave unset for filters that
        match devices across drivers.
    selector : str, optional
        Selector expression. Empty matches every device.
    """

    driver_name: str | None = None
    selector: str = ""

    def __post_init__(self) -> None:
        if self.driver_name is not None and not str(self.driver_name).strip():
            raise ValidationError("requirement.device.driverName", "must be non-empty when set")
        if not isinstance(self.selector, str):
            raise ValidationError("requirement.device.selector", "must be a string")


@dataclass(frozen=True, slots=True)
class Requirement:
    """Device requirement. ``device`` is currently the only variant."""

    device: DeviceFilter | None = None

    def __post_init__(self) -> None:
        validate_one_of({"device": self.device}, field_name="requirement")

    @property
    def device_filter(self) -> DeviceFilter:
        if self.device is None:
            raise ValidationError("requirement.device", "is required")
        return self.device


@dataclass(frozen=True, slots=True)
class CountRange:
    """Desired number of device instances.

    ``None`` means unset: the minimum then defaults to one and the maximum to
    every remaining match. An explicit ``minimum=0`` is distinct from unset.
    """

    minimum: int | None = None
    maximum: int | None = None

    def __post_init__(self) -> None:
        for label, value in (("minimum", self.minimum), ("maximum", self.maximum)):
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"count.{label}", "must be an integer")
            if value < 0:
                raise ValidationError(f"count.{label}", "must be >= 0")
        if self.minimum is not None and self.maximum is not None and self.minimum > self.maximum:
            raise ValidationError(
                "count",
                f"minimum ({self.minimum}) must be <= maximum ({self.maximum})",
            )

    @property
    def effective_minimum(self) -> int:
        # An unset minimum never exceeds an explicit maximum of zero.
        if self.minimum is None:
            return 1 if self.maximum is None else min(1, self.maximum)
        return self.minimum


EXACTLY_ONE = CountRange(minimum=1, maximum=1)


@dataclass(frozen=True, slots=True)
class RequestDetail:
    """One concrete way of satisfying a request.

    Parameters
    ----------
    device_class : ClassReference | None, optional
        Class whose request options apply to this request.
    config : tuple[Configuration, ...], optional
        Request-level configuration.
    admin_access : bool | None, optional
        Request administrative (non-exclusive) access. Unset means false.
    match : tuple[MatchModel, ...], optional
        Criteria all devices of this request must share.
    count : CountRange | None, optional
        Desired count. Unset means exactly one device.
    requirements : tuple[Requirement, ...], optional
        Device filters that all must hold.
    """

    device_class: ClassReference | None = None
    config: tuple[Configuration, ...] = ()
    admin_access: bool | None = None
    match: tuple[MatchModel, ...] = ()
    count: CountRange | None = None
    requirements: tuple[Requirement, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "config", tuple(self.config))
        object.__setattr__(self, "match", tuple(self.match))
        object.__setattr__(self, "requirements", tuple(self.requirements))

    @property
    def is_admin(self) -> bool:
        return bool(self.admin_access)

    @property
    def effective_count(self) -> CountRange:
        return EXACTLY_ONE if self.count is None else self.count


@dataclass(frozen=True, slots=True)
class Request:
    """A request for a homogeneous group of devices.

    Exactly one of ``detail`` (a single request) or ``one_of`` (alternatives
    in priority order) must be set.
    """

    name: str = ""
    detail: RequestDetail | None = None
    one_of: tuple[RequestDetail, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "one_of", tuple(self.one_of))
        label = f"request[{self.name}]" if self.name else "request"
        validate_one_of(
            {"detail": self.detail, "oneOf": self.one_of or None},
            field_name=label,
        )

    def alternatives(self) -> tuple[RequestDetail, ...]:
        """Return request details in priority order."""

        if self.detail is not None:
            return (self.detail,)
        return self.one_of


DEFAULT_REQUEST = Request(detail=RequestDetail())


@dataclass(frozen=True, slots=True)
class ClassClaimOptions:
    """Options a class contributes to every claim referencing it."""

    config: tuple[Configuration, ...] = ()
    constraints: tuple[Constraint, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "config", tuple(self.config))
        object.__setattr__(self, "constraints", tuple(self.constraints))


@dataclass(frozen=True, slots=True)
class ClassRequestOptions:
    """Options a class contributes to each request it applies to."""

    config: tuple[Configuration, ...] = ()
    requirements: tuple[Requirement, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "config", tuple(self.config))
        object.__setattr__(self, "requirements", tuple(self.requirements))


@dataclass(frozen=True, slots=True)
class DeviceClass:
    """Reusable, cluster-scoped catalog entry for a category of devices.

    Parameters
    ----------
    name : str
        Class name referenced by claims and requests.
    claim : ClassClaimOptions, optional
        Config and constraints applied when a claim references the class.
    request : ClassRequestOptions, optional
        Config and requirements applied to the requests the class covers.
    default_requests : tuple[Request, ...], optional
        Requests used when a claim referencing this class has none.
    suitable_nodes : NodeSelector | None, optional
        Nodes eligible to run consumers of devices from this class.
    """

    name: str
    claim: ClassClaimOptions = field(default_factory=ClassClaimOptions)
    request: ClassRequestOptions = field(default_factory=ClassRequestOptions)
    default_requests: tuple[Request, ...] = ()
    suitable_nodes: NodeSelector | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("deviceClass.name", "must be a non-empty string")
        object.__setattr__(self, "default_requests", tuple(self.default_requests))


@dataclass(frozen=True, slots=True)
class Claim:
    """A consumer's declaration of the devices it needs.

    Parameters
    ----------
    name : str
        Claim name.
    namespace : str, optional
        Namespace the claim lives in.
    device_class : ClassReference | None, optional
        Class whose claim options, request requirements and default requests
        apply to the whole claim.
    config : tuple[Configuration, ...], optional
        Claim-level configuration.
    constraints : tuple[Constraint, ...], optional
        Constraints over all devices of the claim.
    requests : tuple[Request, ...], optional
        Individual requests.
    shareable : bool, optional
        Whether the allocation may be used by several consumers at once.
    """

    name: str
    namespace: str = "default"
    device_class: ClassReference | None = None
    config: tuple[Configuration, ...] = ()
    constraints: tuple[Constraint, ...] = ()
    requests: tuple[Request, ...] = ()
    shareable: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("claim.name", "must be a non-empty string")
        object.__setattr__(self, "config", tuple(self.config))
        object.__setattr__(self, "constraints", tuple(self.constraints))
        object.__setattr__(self, "requests", tuple(self.requests))

    @property
    def claim_id(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True, slots=True)
class ClaimTemplate:
    """Template producing claims that share one set of requests."""

    name: str
    namespace: str = "default"
    spec: Claim | None = None

    def __post_init__(self) -> None:
        if self.spec is None:
            raise ValidationError(f"claimTemplate[{self.name}].spec", "is required")

    def instantiate(self, name: str) -> Claim:
        """Create a new claim named ``name`` from this template."""

        if self.spec is None:
            raise ValidationError(f"claimTemplate[{self.name}].spec", "is required")
        return replace(self.spec, name=name, namespace=self.namespace)


__all__ = [
    "ClaimTemplate",
    "Claim",
    "ClassClaimOptions",
    "ClassReference",
    "ClassRequestOptions",
    "Configuration",
    "Constraint",
    "CountRange",
    "DEFAULT_REQUEST",
    "DeviceClass",
    "DeviceFilter",
    "EXACTLY_ONE",
    "MatchModel",
    "Request",
    "RequestDetail",
    "Requirement",
    "VendorConfiguration",
]
