"""Allocation engine: pool, request resolution, constraints and merging."""

from .claims import ClaimResolver, ResolutionState, effective_requests
from .config import (
    MissingAttributePolicy,
    ResolverConfig,
    SelectionPolicy,
    load_resolver_config,
    resolver_config_from_mapping,
)
from .constraints import ConstraintChecker
from .merging import ConfigMerger
from .pool import DevicePool, PoolSnapshot, Reservation
from .requests import CompiledRequirement, RequestResolver, ResolvedRequest, WorkingPool, compile_requirements
from .validation import validate_claim, validate_device_class, validate_requests, validate_requirements

__all__ = [
    "ClaimResolver",
    "CompiledRequirement",
    "ConfigMerger",
    "ConstraintChecker",
    "DevicePool",
    "MissingAttributePolicy",
    "PoolSnapshot",
    "RequestResolver",
    "Reservation",
    "ResolutionState",
    "ResolvedRequest",
    "ResolverConfig",
    "SelectionPolicy",
    "WorkingPool",
    "compile_requirements",
    "effective_requests",
    "load_resolver_config",
    "resolver_config_from_mapping",
    "validate_claim",
    "validate_device_class",
    "validate_requests",
    "validate_requirements",
]
