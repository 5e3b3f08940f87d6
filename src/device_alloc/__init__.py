"""Top-level package for ``device_alloc``.

The package resolves device claims against a pool of devices:

1. a :class:`~device_alloc.core.types.Claim` lists requests, constraints and
   configuration, optionally through a :class:`~device_alloc.core.types.DeviceClass`,
2. the :class:`~device_alloc.allocation.requests.RequestResolver` filters the
   pool with compiled selectors and picks devices for each request,
3. the :class:`~device_alloc.allocation.constraints.ConstraintChecker` checks
   cross-device match constraints,
4. the :class:`~device_alloc.allocation.claims.ClaimResolver` merges
   configuration and commits the reservation atomically.

Entities are read from and written to their wire form by
:mod:`device_alloc.io`.
"""

from .core import (
    AllocationError,
    AllocationResult,
    AttributeValue,
    Claim,
    ClaimStatus,
    ClaimTemplate,
    Device,
    DeviceClass,
    FailureReason,
    Request,
    RequestDetail,
    ValidationError,
)
from .selectors import compile_selector
from .allocation import ClaimResolver, DevicePool, ResolverConfig, load_resolver_config
from .io import build_default_registry, decode_documents, decode_file

__all__ = [
    "AllocationError",
    "AllocationResult",
    "AttributeValue",
    "Claim",
    "ClaimResolver",
    "ClaimStatus",
    "ClaimTemplate",
    "Device",
    "DeviceClass",
    "DevicePool",
    "FailureReason",
    "Request",
    "RequestDetail",
    "ResolverConfig",
    "ValidationError",
    "build_default_registry",
    "compile_selector",
    "decode_documents",
    "decode_file",
    "load_resolver_config",
]
