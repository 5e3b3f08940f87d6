"""Convert entities to and from their wire mappings.

Wire mappings use camelCase keys. Unions are objects with mutually exclusive
optional members; class references and request details are flattened into
their owning object here and nowhere else. Unknown keys are rejected.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from device_alloc.core.attributes import AttributeType, AttributeValue, Device
from device_alloc.core.config_validation import validate_allowed_keys, validate_one_of, validate_required_keys
from device_alloc.core.errors import ValidationError
from device_alloc.core.nodes import NodeSelector, NodeSelectorRequirement, NodeSelectorTerm
from device_alloc.core.results import (
    AllocatedDevice,
    AllocationResult,
    AllocationResultModel,
    ConfigSource,
    DriverConfiguration,
    RequestAllocationResult,
)
from device_alloc.core.status import ClaimStatus, ConsumerReference
from device_alloc.core.types import (
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

from .registry import KindManifest

MAX_DRIVER_DATA_ENTRIES = 32
DRIVER_DATA_MAX_SIZE = 16 * 1024

_ATTRIBUTE_KEYS: dict[str, AttributeType] = {
    "string": AttributeType.STRING,
    "int": AttributeType.INT,
    "bool": AttributeType.BOOL,
    "version": AttributeType.VERSION,
    "quantity": AttributeType.QUANTITY,
    "stringSlice": AttributeType.STRING_SLICE,
}

_DETAIL_KEYS = ("deviceClassName", "config", "adminAccess", "match", "count", "requirements")


@dataclass(frozen=True, slots=True)
class ResourceSlice:
    """Devices published by one driver."""

    name: str
    driver: str
    devices: tuple[Device, ...]


def _require_mapping(raw: Any, *, field_name: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise ValidationError(field_name, "must be an object")
    return raw


def _require_sequence(raw: Any, *, field_name: str) -> list[Any]:
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise ValidationError(field_name, "must be an array")
    return list(raw)


def _coerce_non_empty_str(raw: Any, *, field_name: str) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError(field_name, "must be a non-empty string")
    return raw


def _optional_bool(raw: Any, *, field_name: str) -> bool | None:
    if raw is None:
        return None
    if not isinstance(raw, bool):
        raise ValidationError(field_name, "must be a boolean")
    return raw


def _optional_int(raw: Any, *, field_name: str) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValidationError(field_name, "must be an integer")
    return raw


def _wrap(field_name: str, builder: Any, *args: Any, **kwargs: Any) -> Any:
    """Call a constructor and re-root its validation path at ``field_name``."""

    try:
        return builder(*args, **kwargs)
    except ValidationError as exc:
        if exc.path.startswith(field_name):
            raise
        raise ValidationError(f"{field_name}.{exc.path}" if exc.path else field_name, exc.message) from exc


# ---------------------------------------------------------------- attributes


def attribute_from_wire(raw: Any, *, field_name: str) -> AttributeValue:
    item = _require_mapping(raw, field_name=field_name)
    validate_allowed_keys(item, field_name=field_name, allowed_keys=_ATTRIBUTE_KEYS)
    key = validate_one_of({name: item.get(name) for name in _ATTRIBUTE_KEYS}, field_name=field_name)
    kind = _ATTRIBUTE_KEYS[key]
    value = item[key]
    try:
        if kind is AttributeType.VERSION:
            return AttributeValue.version(_coerce_non_empty_str(value, field_name=f"{field_name}.version"))
        if kind is AttributeType.QUANTITY:
            return AttributeValue.quantity(str(value))
        return AttributeValue(kind, value)
    except (TypeError, ValueError) as exc:
        if isinstance(exc, ValidationError):
            raise
        raise ValidationError(f"{field_name}.{key}", str(exc)) from exc


def attribute_to_wire(value: AttributeValue) -> dict[str, Any]:
    key = next(name for name, kind in _ATTRIBUTE_KEYS.items() if kind is value.type)
    if value.type in {AttributeType.VERSION, AttributeType.QUANTITY}:
        return {key: str(value.value)}
    if value.type is AttributeType.STRING_SLICE:
        return {key: list(value.value)}
    return {key: value.value}


def device_from_wire(raw: Any, *, field_name: str = "device", driver: str | None = None) -> Device:
    item = _require_mapping(raw, field_name=field_name)
    validate_allowed_keys(
        item, field_name=field_name, allowed_keys=("name", "driver", "deviceType", "attributes")
    )
    name = _coerce_non_empty_str(item.get("name"), field_name=f"{field_name}.name")
    attributes_raw = _require_mapping(item.get("attributes", {}) or {}, field_name=f"{field_name}.attributes")
    attributes = {
        str(key): attribute_from_wire(value, field_name=f"{field_name}.attributes[{key}]")
        for key, value in attributes_raw.items()
    }
    return _wrap(
        field_name,
        Device,
        name=name,
        driver=_coerce_non_empty_str(item.get("driver", driver), field_name=f"{field_name}.driver"),
        device_type=str(item.get("deviceType", "") or ""),
        attributes=attributes,
    )


def device_to_wire(device: Device) -> dict[str, Any]:
    payload: dict[str, Any] = {"name": device.name, "driver": device.driver}
    if device.device_type:
        payload["deviceType"] = device.device_type
    if device.attributes:
        payload["attributes"] = {name: attribute_to_wire(value) for name, value in device.attributes.items()}
    return payload


def resource_slice_from_wire(document: Mapping[str, Any]) -> ResourceSlice:
    name = _metadata_name(document, kind="resourceSlice")
    spec = _require_mapping(document.get("spec", {}), field_name=f"resourceSlice[{name}].spec")
    validate_allowed_keys(spec, field_name=f"resourceSlice[{name}].spec", allowed_keys=("driver", "devices"))
    validate_required_keys(spec, field_name=f"resourceSlice[{name}].spec", required_keys=("driver",))
    driver = _coerce_non_empty_str(spec.get("driver"), field_name=f"resourceSlice[{name}].spec.driver")
    devices = tuple(
        device_from_wire(raw, field_name=f"resourceSlice[{name}].spec.devices[{index}]", driver=driver)
        for index, raw in enumerate(
            _require_sequence(spec.get("devices"), field_name=f"resourceSlice[{name}].spec.devices")
        )
    )
    return ResourceSlice(name=name, driver=driver, devices=devices)


# ---------------------------------------------------------------- node selectors


def node_selector_from_wire(raw: Any, *, field_name: str) -> NodeSelector:
    item = _require_mapping(raw, field_name=field_name)
    validate_allowed_keys(item, field_name=field_name, allowed_keys=("nodeSelectorTerms",))
    terms: list[NodeSelectorTerm] = []
    for term_index, raw_term in enumerate(
        _require_sequence(item.get("nodeSelectorTerms"), field_name=f"{field_name}.nodeSelectorTerms")
    ):
        term_path = f"{field_name}.nodeSelectorTerms[{term_index}]"
        term = _require_mapping(raw_term, field_name=term_path)
        validate_allowed_keys(term, field_name=term_path, allowed_keys=("matchExpressions",))
        requirements: list[NodeSelectorRequirement] = []
        for index, raw_requirement in enumerate(
            _require_sequence(term.get("matchExpressions"), field_name=f"{term_path}.matchExpressions")
        ):
            path = f"{term_path}.matchExpressions[{index}]"
            requirement = _require_mapping(raw_requirement, field_name=path)
            validate_allowed_keys(requirement, field_name=path, allowed_keys=("key", "operator", "values"))
            try:
                requirements.append(
                    NodeSelectorRequirement(
                        key=_coerce_non_empty_str(requirement.get("key"), field_name=f"{path}.key"),
                        operator=requirement.get("operator"),
                        values=tuple(
                            _require_sequence(requirement.get("values"), field_name=f"{path}.values")
                        ),
                    )
                )
            except ValidationError:
                raise
            except ValueError as exc:
                raise ValidationError(f"{path}.operator", str(exc)) from exc
        terms.append(NodeSelectorTerm(match_expressions=tuple(requirements)))
    return _wrap(field_name, NodeSelector, terms=tuple(terms))


def node_selector_to_wire(selector: NodeSelector) -> dict[str, Any]:
    return {
        "nodeSelectorTerms": [
            {
                "matchExpressions": [
                    {
                        "key": requirement.key,
                        "operator": requirement.operator.value,
                        **({"values": list(requirement.values)} if requirement.values else {}),
                    }
                    for requirement in term.match_expressions
                ]
            }
            for term in selector.terms
        ]
    }


# ---------------------------------------------------------------- unions


def configuration_from_wire(raw: Any, *, field_name: str) -> Configuration:
    item = _require_mapping(raw, field_name=field_name)
    validate_allowed_keys(item, field_name=field_name, allowed_keys=("vendor",))
    validate_one_of({"vendor": item.get("vendor")}, field_name=field_name)
    vendor = _require_mapping(item["vendor"], field_name=f"{field_name}.vendor")
    validate_allowed_keys(
        vendor, field_name=f"{field_name}.vendor", allowed_keys=("driverName", "parameters")
    )
    return Configuration(
        vendor=VendorConfiguration(
            driver_name=_coerce_non_empty_str(
                vendor.get("driverName"), field_name=f"{field_name}.vendor.driverName"
            ),
            parameters=vendor.get("parameters"),
        )
    )


def configuration_to_wire(config: Configuration) -> dict[str, Any]:
    vendor = config.vendor_entry
    payload: dict[str, Any] = {"driverName": vendor.driver_name}
    if vendor.parameters is not None:
        payload["parameters"] = vendor.parameters
    return {"vendor": payload}


def match_from_wire(raw: Any, *, field_name: str) -> MatchModel:
    item = _require_mapping(raw, field_name=field_name)
    validate_allowed_keys(item, field_name=field_name, allowed_keys=("attribute",))
    validate_one_of({"attribute": item.get("attribute")}, field_name=field_name)
    return _wrap(field_name, MatchModel, attribute=item["attribute"])


def constraint_from_wire(raw: Any, *, field_name: str) -> Constraint:
    item = _require_mapping(raw, field_name=field_name)
    validate_allowed_keys(item, field_name=field_name, allowed_keys=("match",))
    validate_one_of({"match": item.get("match")}, field_name=field_name)
    return Constraint(match=match_from_wire(item["match"], field_name=f"{field_name}.match"))


def requirement_from_wire(raw: Any, *, field_name: str) -> Requirement:
    item = _require_mapping(raw, field_name=field_name)
    validate_allowed_keys(item, field_name=field_name, allowed_keys=("device",))
    validate_one_of({"device": item.get("device")}, field_name=field_name)
    device = _require_mapping(item["device"], field_name=f"{field_name}.device")
    validate_allowed_keys(device, field_name=f"{field_name}.device", allowed_keys=("driverName", "selector"))
    selector = device.get("selector", "")
    if selector is None:
        selector = ""
    if not isinstance(selector, str):
        raise ValidationError(f"{field_name}.device.selector", "must be a string")
    driver_name = device.get("driverName")
    if driver_name is not None:
        driver_name = _coerce_non_empty_str(driver_name, field_name=f"{field_name}.device.driverName")
    return Requirement(device=DeviceFilter(driver_name=driver_name, selector=selector))


def _class_reference(raw: Mapping[str, Any], *, field_name: str) -> ClassReference | None:
    if raw.get("deviceClassName") is None:
        return None
    return ClassReference(
        device_class_name=_coerce_non_empty_str(
            raw["deviceClassName"], field_name=f"{field_name}.deviceClassName"
        )
    )


def _list(raw: Mapping[str, Any], key: str, parser: Any, *, field_name: str) -> tuple[Any, ...]:
    return tuple(
        parser(item, field_name=f"{field_name}.{key}[{index}]")
        for index, item in enumerate(_require_sequence(raw.get(key), field_name=f"{field_name}.{key}"))
    )


# ---------------------------------------------------------------- requests


def request_detail_from_wire(raw: Any, *, field_name: str) -> RequestDetail:
    item = _require_mapping(raw, field_name=field_name)
    validate_allowed_keys(item, field_name=field_name, allowed_keys=_DETAIL_KEYS)
    count: CountRange | None = None
    if item.get("count") is not None:
        count_raw = _require_mapping(item["count"], field_name=f"{field_name}.count")
        validate_allowed_keys(
            count_raw, field_name=f"{field_name}.count", allowed_keys=("minimum", "maximum")
        )
        count = _wrap(
            field_name,
            CountRange,
            minimum=_optional_int(count_raw.get("minimum"), field_name=f"{field_name}.count.minimum"),
            maximum=_optional_int(count_raw.get("maximum"), field_name=f"{field_name}.count.maximum"),
        )
    return RequestDetail(
        device_class=_class_reference(item, field_name=field_name),
        config=_list(item, "config", configuration_from_wire, field_name=field_name),
        admin_access=_optional_bool(item.get("adminAccess"), field_name=f"{field_name}.adminAccess"),
        match=_list(item, "match", match_from_wire, field_name=field_name),
        count=count,
        requirements=_list(item, "requirements", requirement_from_wire, field_name=field_name),
    )


def request_detail_to_wire(detail: RequestDetail) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if detail.device_class is not None:
        payload["deviceClassName"] = detail.device_class.device_class_name
    if detail.config:
        payload["config"] = [configuration_to_wire(entry) for entry in detail.config]
    if detail.admin_access is not None:
        payload["adminAccess"] = detail.admin_access
    if detail.match:
        payload["match"] = [{"attribute": match.attribute} for match in detail.match]
    if detail.count is not None:
        count: dict[str, int] = {}
        if detail.count.minimum is not None:
            count["minimum"] = detail.count.minimum
        if detail.count.maximum is not None:
            count["maximum"] = detail.count.maximum
        payload["count"] = count
    if detail.requirements:
        payload["requirements"] = [requirement_to_wire(requirement) for requirement in detail.requirements]
    return payload


def requirement_to_wire(requirement: Requirement) -> dict[str, Any]:
    device_filter = requirement.device_filter
    device: dict[str, Any] = {"selector": device_filter.selector}
    if device_filter.driver_name is not None:
        device["driverName"] = device_filter.driver_name
    return {"device": device}


def request_from_wire(raw: Any, *, field_name: str) -> Request:
    """Parse a request. Detail fields are inlined next to ``name``/``oneOf``."""

    item = _require_mapping(raw, field_name=field_name)
    validate_allowed_keys(item, field_name=field_name, allowed_keys=("name", *_DETAIL_KEYS, "oneOf"))
    name = item.get("name") or ""
    if not isinstance(name, str):
        raise ValidationError(f"{field_name}.name", "must be a string")
    detail_fields = {key: item[key] for key in _DETAIL_KEYS if key in item}

    if "oneOf" in item:
        if detail_fields:
            raise ValidationError(
                field_name,
                f"requesting one device ({sorted(detail_fields)}) and oneOf are mutually exclusive",
            )
        alternatives = tuple(
            request_detail_from_wire(entry, field_name=f"{field_name}.oneOf[{index}]")
            for index, entry in enumerate(_require_sequence(item["oneOf"], field_name=f"{field_name}.oneOf"))
        )
        if not alternatives:
            raise ValidationError(
                f"{field_name}.oneOf", "must request one device or list at least one alternative"
            )
        return Request(name=name, one_of=alternatives)

    return Request(name=name, detail=request_detail_from_wire(detail_fields, field_name=field_name))


def request_to_wire(request: Request) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if request.name:
        payload["name"] = request.name
    if request.detail is not None:
        payload.update(request_detail_to_wire(request.detail))
    else:
        payload["oneOf"] = [request_detail_to_wire(detail) for detail in request.one_of]
    return payload


# ---------------------------------------------------------------- classes and claims


def _metadata(document: Mapping[str, Any], *, kind: str) -> Mapping[str, Any]:
    return _require_mapping(document.get("metadata", {}) or {}, field_name=f"{kind}.metadata")


def _metadata_name(document: Mapping[str, Any], *, kind: str) -> str:
    metadata = _metadata(document, kind=kind)
    return _coerce_non_empty_str(metadata.get("name"), field_name=f"{kind}.metadata.name")


def device_class_from_wire(document: Mapping[str, Any]) -> DeviceClass:
    name = _metadata_name(document, kind="deviceClass")
    path = f"deviceClass[{name}].spec"
    spec = _require_mapping(document.get("spec", {}) or {}, field_name=path)
    validate_allowed_keys(
        spec, field_name=path, allowed_keys=("suitableNodes", "claim", "request", "defaultRequests")
    )

    claim = _require_mapping(spec.get("claim", {}) or {}, field_name=f"{path}.claim")
    validate_allowed_keys(claim, field_name=f"{path}.claim", allowed_keys=("config", "constraints"))
    request = _require_mapping(spec.get("request", {}) or {}, field_name=f"{path}.request")
    validate_allowed_keys(request, field_name=f"{path}.request", allowed_keys=("config", "requirements"))

    return DeviceClass(
        name=name,
        claim=ClassClaimOptions(
            config=_list(claim, "config", configuration_from_wire, field_name=f"{path}.claim"),
            constraints=_list(claim, "constraints", constraint_from_wire, field_name=f"{path}.claim"),
        ),
        request=ClassRequestOptions(
            config=_list(request, "config", configuration_from_wire, field_name=f"{path}.request"),
            requirements=_list(request, "requirements", requirement_from_wire, field_name=f"{path}.request"),
        ),
        default_requests=_list(spec, "defaultRequests", request_from_wire, field_name=path),
        suitable_nodes=(
            node_selector_from_wire(spec["suitableNodes"], field_name=f"{path}.suitableNodes")
            if spec.get("suitableNodes") is not None
            else None
        ),
    )


def claim_spec_from_wire(raw: Any, *, name: str, namespace: str, field_name: str) -> Claim:
    spec = _require_mapping(raw or {}, field_name=field_name)
    validate_allowed_keys(
        spec,
        field_name=field_name,
        allowed_keys=("deviceClassName", "config", "constraints", "requests", "shareable"),
    )
    return Claim(
        name=name,
        namespace=namespace,
        device_class=_class_reference(spec, field_name=field_name),
        config=_list(spec, "config", configuration_from_wire, field_name=field_name),
        constraints=_list(spec, "constraints", constraint_from_wire, field_name=field_name),
        requests=_list(spec, "requests", request_from_wire, field_name=field_name),
        shareable=bool(_optional_bool(spec.get("shareable"), field_name=f"{field_name}.shareable")),
    )


def claim_spec_to_wire(claim: Claim) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if claim.device_class is not None:
        payload["deviceClassName"] = claim.device_class.device_class_name
    if claim.config:
        payload["config"] = [configuration_to_wire(entry) for entry in claim.config]
    if claim.constraints:
        payload["constraints"] = [
            {"match": {"attribute": constraint.match.attribute}}
            for constraint in claim.constraints
            if constraint.match is not None
        ]
    if claim.requests:
        payload["requests"] = [request_to_wire(request) for request in claim.requests]
    if claim.shareable:
        payload["shareable"] = True
    return payload


def claim_from_wire(document: Mapping[str, Any]) -> Claim:
    metadata = _metadata(document, kind="resourceClaim")
    name = _coerce_non_empty_str(metadata.get("name"), field_name="resourceClaim.metadata.name")
    namespace = str(metadata.get("namespace") or "default")
    return claim_spec_from_wire(
        document.get("spec"),
        name=name,
        namespace=namespace,
        field_name=f"claim[{namespace}/{name}].spec",
    )


def claim_template_from_wire(document: Mapping[str, Any]) -> ClaimTemplate:
    metadata = _metadata(document, kind="resourceClaimTemplate")
    name = _coerce_non_empty_str(metadata.get("name"), field_name="resourceClaimTemplate.metadata.name")
    namespace = str(metadata.get("namespace") or "default")
    path = f"claimTemplate[{namespace}/{name}].spec"
    spec = _require_mapping(document.get("spec", {}) or {}, field_name=path)
    validate_allowed_keys(spec, field_name=path, allowed_keys=("metadata", "spec"))
    return ClaimTemplate(
        name=name,
        namespace=namespace,
        spec=claim_spec_from_wire(
            spec.get("spec"), name=name, namespace=namespace, field_name=f"{path}.spec"
        ),
    )


# ---------------------------------------------------------------- allocation and status


def _driver_configuration_to_wire(entry: DriverConfiguration) -> dict[str, Any]:
    return {"admin": entry.admin, "vendor": entry.parameters}


def _request_result_to_wire(request: RequestAllocationResult, device: AllocatedDevice) -> dict[str, Any]:
    payload: dict[str, Any] = {"requestName": request.request_name, "requestIndex": request.request_index}
    if request.config:
        payload["config"] = [_driver_configuration_to_wire(item) for item in request.config]
    if request.admin_access:
        payload["adminAccess"] = True
    payload["device"] = {"name": device.name}
    return payload


def allocation_to_wire(result: AllocationResult) -> dict[str, Any]:
    """Emit an allocation in per-driver form.

    Every device result carries the index of its request. ``requestNames``
    lists all requests in order, including those that received no devices.

    Raises
    ------
    ValidationError
        If there are more than 32 driver entries or one entry's opaque data
        exceeds 16 KiB.
    """

    driver_data = []
    for index, entry in enumerate(result.driver_data()):
        payload = {
            "driverName": entry.driver_name,
            "structured": {
                "config": [_driver_configuration_to_wire(item) for item in entry.structured.config],
                "results": [
                    _request_result_to_wire(request, allocation.device)
                    for request in entry.structured.results
                    for allocation in request.allocations
                    if allocation.device is not None
                ],
            },
        }
        size = len(json.dumps(payload["structured"], sort_keys=True, default=str).encode("utf-8"))
        if size > DRIVER_DATA_MAX_SIZE:
            raise ValidationError(
                f"allocation.driverData[{index}]",
                f"data for driver {entry.driver_name!r} is {size} bytes, limit is {DRIVER_DATA_MAX_SIZE}",
            )
        driver_data.append(payload)
    if len(driver_data) > MAX_DRIVER_DATA_ENTRIES:
        raise ValidationError(
            "allocation.driverData",
            f"{len(driver_data)} entries exceed the limit of {MAX_DRIVER_DATA_ENTRIES}",
        )

    payload: dict[str, Any] = {
        "requestNames": [request.request_name for request in result.results],
        "driverData": driver_data,
    }
    if result.available_on_nodes is not None:
        payload["availableOnNodes"] = node_selector_to_wire(result.available_on_nodes)
    if result.shareable:
        payload["shareable"] = True
    return payload


def _driver_configuration_from_wire(
    raw: Any, *, driver: str, claim_level: bool, field_name: str
) -> DriverConfiguration:
    item = _require_mapping(raw, field_name=field_name)
    validate_allowed_keys(item, field_name=field_name, allowed_keys=("admin", "vendor"))
    admin = bool(_optional_bool(item.get("admin"), field_name=f"{field_name}.admin"))
    if claim_level:
        source = ConfigSource.CLAIM_CLASS if admin else ConfigSource.CLAIM
    else:
        source = ConfigSource.REQUEST_CLASS if admin else ConfigSource.REQUEST
    return DriverConfiguration(driver_name=driver, parameters=item.get("vendor"), source=source)


def _driver_configurations_from_wire(
    raw: Any, *, driver: str, claim_level: bool, field_name: str
) -> list[DriverConfiguration]:
    return [
        _driver_configuration_from_wire(
            raw_config, driver=driver, claim_level=claim_level, field_name=f"{field_name}[{position}]"
        )
        for position, raw_config in enumerate(_require_sequence(raw, field_name=field_name))
    ]


@dataclass
class _RequestGroup:
    """Decoded state of one request while regrouping per-driver results."""

    name: str
    allocations: list[AllocationResultModel] = field(default_factory=list)
    config: list[DriverConfiguration] = field(default_factory=list)
    admin_access: bool = False


def _request_names_from_wire(raw: Any, *, field_name: str) -> dict[int, _RequestGroup]:
    names = _require_sequence(raw, field_name=field_name)
    groups: dict[int, _RequestGroup] = {}
    for index, name in enumerate(names):
        if name is not None and not isinstance(name, str):
            raise ValidationError(f"{field_name}[{index}]", "must be a string")
        groups[index] = _RequestGroup(name=name or "")
    return groups


def allocation_from_wire(raw: Any, *, claim_id: str, field_name: str = "allocation") -> AllocationResult:
    """Rebuild an allocation from its per-driver form.

    Results are regrouped by ``requestIndex``. Each request gets, for every
    driver it draws devices from, that driver's claim-level entries followed
    by its own entries, taken once per driver and in wire order.

    Raises
    ------
    ValidationError
        If the payload is malformed, an index is out of range, or results
        sharing an index disagree on the request name.
    """

    item = _require_mapping(raw, field_name=field_name)
    validate_allowed_keys(
        item,
        field_name=field_name,
        allowed_keys=("requestNames", "driverData", "availableOnNodes", "shareable"),
    )
    entries = _require_sequence(item.get("driverData"), field_name=f"{field_name}.driverData")
    if len(entries) > MAX_DRIVER_DATA_ENTRIES:
        raise ValidationError(
            f"{field_name}.driverData", f"at most {MAX_DRIVER_DATA_ENTRIES} entries are allowed"
        )

    declared = item.get("requestNames") is not None
    groups = _request_names_from_wire(item.get("requestNames"), field_name=f"{field_name}.requestNames")
    for index, raw_entry in enumerate(entries):
        path = f"{field_name}.driverData[{index}]"
        entry = _require_mapping(raw_entry, field_name=path)
        validate_allowed_keys(entry, field_name=path, allowed_keys=("driverName", "structured"))
        driver = _coerce_non_empty_str(entry.get("driverName"), field_name=f"{path}.driverName")
        structured = _require_mapping(entry.get("structured", {}) or {}, field_name=f"{path}.structured")
        validate_allowed_keys(structured, field_name=f"{path}.structured", allowed_keys=("config", "results"))
        claim_config = _driver_configurations_from_wire(
            structured.get("config"), driver=driver, claim_level=True, field_name=f"{path}.structured.config"
        )
        configured: set[int] = set()
        raw_results = _require_sequence(structured.get("results"), field_name=f"{path}.structured.results")
        for position, raw_result in enumerate(raw_results):
            result_path = f"{path}.structured.results[{position}]"
            result = _require_mapping(raw_result, field_name=result_path)
            validate_allowed_keys(
                result,
                field_name=result_path,
                allowed_keys=("requestName", "requestIndex", "config", "adminAccess", "device"),
            )
            validate_required_keys(result, field_name=result_path, required_keys=("requestIndex", "device"))
            request_index = _optional_int(result["requestIndex"], field_name=f"{result_path}.requestIndex")
            if request_index is None or request_index < 0 or (declared and request_index not in groups):
                raise ValidationError(
                    f"{result_path}.requestIndex", "does not name a request of this allocation"
                )
            request_name = str(result.get("requestName") or "")
            group = groups.setdefault(request_index, _RequestGroup(name=request_name))
            if group.name != request_name:
                raise ValidationError(
                    f"{result_path}.requestName",
                    f"{request_name!r} does not match request {request_index} ({group.name!r})",
                )
            device = _require_mapping(result["device"], field_name=f"{result_path}.device")
            device_name = _coerce_non_empty_str(device.get("name"), field_name=f"{result_path}.device.name")
            group.allocations.append(
                AllocationResultModel(device=AllocatedDevice(name=device_name, driver=driver))
            )
            group.admin_access = group.admin_access or bool(
                _optional_bool(result.get("adminAccess"), field_name=f"{result_path}.adminAccess")
            )
            request_config = _driver_configurations_from_wire(
                result.get("config"), driver=driver, claim_level=False, field_name=f"{result_path}.config"
            )
            if request_index not in configured:
                configured.add(request_index)
                group.config.extend(claim_config)
                group.config.extend(request_config)

    return AllocationResult(
        claim_id=claim_id,
        results=tuple(
            RequestAllocationResult(
                request_name=group.name,
                request_index=request_index,
                allocations=tuple(group.allocations),
                config=tuple(group.config),
                admin_access=group.admin_access,
            )
            for request_index, group in sorted(groups.items())
        ),
        available_on_nodes=(
            node_selector_from_wire(item["availableOnNodes"], field_name=f"{field_name}.availableOnNodes")
            if item.get("availableOnNodes") is not None
            else None
        ),
        shareable=bool(_optional_bool(item.get("shareable"), field_name=f"{field_name}.shareable")),
    )


def status_to_wire(status: ClaimStatus) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if status.allocation is not None:
        payload["allocation"] = allocation_to_wire(status.allocation)
    if status.reserved_for:
        payload["reservedFor"] = [
            {
                **({"apiGroup": consumer.api_group} if consumer.api_group else {}),
                "resource": consumer.resource,
                "name": consumer.name,
                "uid": consumer.uid,
            }
            for consumer in status.reserved_for
        ]
    if status.deallocation_requested:
        payload["deallocationRequested"] = True
    return payload


def status_from_wire(raw: Any, *, claim_id: str, field_name: str = "status") -> ClaimStatus:
    item = _require_mapping(raw or {}, field_name=field_name)
    validate_allowed_keys(
        item, field_name=field_name, allowed_keys=("allocation", "reservedFor", "deallocationRequested")
    )
    consumers = []
    raw_consumers = _require_sequence(item.get("reservedFor"), field_name=f"{field_name}.reservedFor")
    for index, raw_consumer in enumerate(raw_consumers):
        path = f"{field_name}.reservedFor[{index}]"
        consumer = _require_mapping(raw_consumer, field_name=path)
        validate_allowed_keys(consumer, field_name=path, allowed_keys=("apiGroup", "resource", "name", "uid"))
        validate_required_keys(consumer, field_name=path, required_keys=("resource", "name", "uid"))
        consumers.append(
            _wrap(
                path,
                ConsumerReference,
                resource=str(consumer.get("resource", "")),
                name=str(consumer.get("name", "")),
                uid=str(consumer.get("uid", "")),
                api_group=str(consumer.get("apiGroup", "") or ""),
            )
        )
    return _wrap(
        field_name,
        ClaimStatus,
        allocation=(
            allocation_from_wire(item["allocation"], claim_id=claim_id, field_name=f"{field_name}.allocation")
            if item.get("allocation") is not None
            else None
        ),
        reserved_for=tuple(consumers),
        deallocation_requested=bool(
            _optional_bool(
                item.get("deallocationRequested"), field_name=f"{field_name}.deallocationRequested"
            )
        ),
    )


API_GROUP = "resource.dra.example.com"
API_VERSIONS = ("v1alpha1",)

KIND_MANIFESTS = (
    KindManifest(
        API_GROUP, "ResourceSlice", resource_slice_from_wire, API_VERSIONS, "Devices published by one driver."
    ),
    KindManifest(
        API_GROUP, "DeviceClass", device_class_from_wire, API_VERSIONS, "Device class catalog entry."
    ),
    KindManifest(API_GROUP, "ResourceClaim", claim_from_wire, API_VERSIONS, "Claim for devices."),
    KindManifest(
        API_GROUP, "ResourceClaimTemplate", claim_template_from_wire, API_VERSIONS, "Template for claims."
    ),
)


__all__ = [
    "API_GROUP",
    "API_VERSIONS",
    "DRIVER_DATA_MAX_SIZE",
    "KIND_MANIFESTS",
    "MAX_DRIVER_DATA_ENTRIES",
    "ResourceSlice",
    "allocation_from_wire",
    "allocation_to_wire",
    "attribute_from_wire",
    "attribute_to_wire",
    "claim_from_wire",
    "claim_spec_from_wire",
    "claim_spec_to_wire",
    "claim_template_from_wire",
    "configuration_from_wire",
    "configuration_to_wire",
    "constraint_from_wire",
    "device_class_from_wire",
    "device_from_wire",
    "device_to_wire",
    "match_from_wire",
    "node_selector_from_wire",
    "node_selector_to_wire",
    "request_detail_from_wire",
    "request_detail_to_wire",
    "request_from_wire",
    "request_to_wire",
    "requirement_from_wire",
    "requirement_to_wire",
    "resource_slice_from_wire",
    "status_from_wire",
    "status_to_wire",
]
