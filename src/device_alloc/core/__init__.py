"""Core entities, attribute model, errors and shared validation helpers."""

from .attributes import AttributeType, AttributeValue, Device, Quantity, Version, ZERO_VALUES
from .config_loading import SUPPORTED_CONFIG_SUFFIXES, load_config_mapping
from .errors import (
    AllocationError,
    ConstraintViolationError,
    FailureReason,
    NoMatchError,
    RaceLostError,
    SelectorCompileError,
    TransientAllocationError,
    ValidationError,
)
from .nodes import (
    NodeSelector,
    NodeSelectorOperator,
    NodeSelectorRequirement,
    NodeSelectorTerm,
    intersect_node_selectors,
)
from .results import (
    AllocatedDevice,
    AllocationResult,
    AllocationResultModel,
    ConfigSource,
    DriverConfiguration,
    DriverData,
    RequestAllocationResult,
    StructuredDriverData,
)
from .status import MAX_CONSUMER_RESERVATIONS, ClaimStatus, ConsumerReference
from .types import (
    DEFAULT_REQUEST,
    EXACTLY_ONE,
    Claim,
    ClaimTemplate,
    ClassClaimOptions,
    ClassReference,
    ClassRequestOptions,
    Configuration,
    Constraint,
    CountRange,
    DeviceClass,
    DeviceFilter,
    MatchModel,
    Request,
    RequestDetail,
    Requirement,
    VendorConfiguration,
)

__all__ = [
    "AllocatedDevice",
    "AllocationError",
    "AllocationResult",
    "AllocationResultModel",
    "AttributeType",
    "AttributeValue",
    "Claim",
    "ClaimStatus",
    "ClaimTemplate",
    "ClassClaimOptions",
    "ClassReference",
    "ClassRequestOptions",
    "ConfigSource",
    "Configuration",
    "Constraint",
    "ConstraintViolationError",
    "ConsumerReference",
    "CountRange",
    "DEFAULT_REQUEST",
    "Device",
    "DeviceClass",
    "DeviceFilter",
    "DriverConfiguration",
    "DriverData",
    "EXACTLY_ONE",
    "FailureReason",
    "MAX_CONSUMER_RESERVATIONS",
    "MatchModel",
    "NoMatchError",
    "NodeSelector",
    "NodeSelectorOperator",
    "NodeSelectorRequirement",
    "NodeSelectorTerm",
    "Quantity",
    "RaceLostError",
    "Request",
    "RequestAllocationResult",
    "RequestDetail",
    "Requirement",
    "SUPPORTED_CONFIG_SUFFIXES",
    "SelectorCompileError",
    "StructuredDriverData",
    "TransientAllocationError",
    "ValidationError",
    "VendorConfiguration",
    "Version",
    "ZERO_VALUES",
    "intersect_node_selectors",
    "load_config_mapping",
]
