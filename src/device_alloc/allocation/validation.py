"""Validation of claims and device classes before allocation.

Construction already rejects malformed unions, counts and attribute names.
These checks add what needs context: selector compilation and references
to device classes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from device_alloc.core.errors import ValidationError
from device_alloc.core.types import Claim, DeviceClass, Request, RequestDetail, Requirement
from device_alloc.selectors import compile_selector


def validate_requirements(requirements: Sequence[Requirement], *, path: str) -> None:
    """Compile every requirement selector.

    Raises
    ------
    SelectorCompileError
        If a selector does not compile. The error path names the field.
    """

    for index, requirement in enumerate(requirements):
        compile_selector(requirement.device_filter.selector, path=f"{path}[{index}].device.selector")


def _validate_class_reference(
    detail: RequestDetail,
    classes: Mapping[str, DeviceClass] | None,
    *,
    path: str,
) -> None:
    if classes is None or detail.device_class is None:
        return
    name = str(detail.device_class.device_class_name)
    if name not in classes:
        raise ValidationError(f"{path}.deviceClassName", f"device class {name!r} not found")


def validate_requests(
    requests: Sequence[Request],
    *,
    path: str,
    classes: Mapping[str, DeviceClass] | None = None,
) -> None:
    """Validate every request and each of its alternatives."""

    for index, request in enumerate(requests):
        request_path = f"{path}[{index}]"
        if request.detail is not None:
            _validate_class_reference(request.detail, classes, path=request_path)
            validate_requirements(request.detail.requirements, path=f"{request_path}.requirements")
            continue
        for alternative_index, detail in enumerate(request.one_of):
            alternative_path = f"{request_path}.oneOf[{alternative_index}]"
            _validate_class_reference(detail, classes, path=alternative_path)
            validate_requirements(detail.requirements, path=f"{alternative_path}.requirements")


def validate_device_class(device_class: DeviceClass) -> None:
    """Validate selectors and default requests of one class."""

    path = f"deviceClass[{device_class.name}]"
    validate_requirements(device_class.request.requirements, path=f"{path}.request.requirements")
    validate_requests(device_class.default_requests, path=f"{path}.defaultRequests")


def validate_claim(claim: Claim, classes: Mapping[str, DeviceClass] | None = None) -> None:
    """Validate a claim, optionally resolving class references.

    Parameters
    ----------
    claim : Claim
        Claim to validate.
    classes : Mapping[str, DeviceClass] | None, optional
        Known classes by name. When given, references must resolve.

    Raises
    ------
    ValidationError
        On the first problem found, with a path-qualified message.
    """

    path = f"claim[{claim.claim_id}]"
    if claim.device_class is not None and classes is not None:
        name = str(claim.device_class.device_class_name)
        if name not in classes:
            raise ValidationError(f"{path}.deviceClassName", f"device class {name!r} not found")
    validate_requests(claim.requests, path=f"{path}.requests", classes=classes)


__all__ = [
    "validate_claim",
    "validate_device_class",
    "validate_requests",
    "validate_requirements",
]
