"""Tests for converting entities to and from wire mappings."""

from __future__ import annotations

import pytest

from device_alloc.allocation import ClaimResolver, DevicePool
from device_alloc.core import (
    AllocatedDevice,
    AllocationResult,
    AllocationResultModel,
    AttributeType,
    ClaimStatus,
    ClassReference,
    ConfigSource,
    ConsumerReference,
    CountRange,
    DriverConfiguration,
    NodeSelectorOperator,
    RequestAllocationResult,
    ValidationError,
    Version,
)
from device_alloc.io import (
    DRIVER_DATA_MAX_SIZE,
    MAX_DRIVER_DATA_ENTRIES,
    allocation_from_wire,
    allocation_to_wire,
    claim_from_wire,
    claim_spec_to_wire,
    device_class_from_wire,
    device_from_wire,
    device_to_wire,
    request_from_wire,
    request_to_wire,
    resource_slice_from_wire,
    status_from_wire,
    status_to_wire,
)
from device_alloc.io.wire import attribute_from_wire, claim_spec_from_wire, node_selector_from_wire

GPU = "gpu.example.com"


def test_device_round_trip() -> None:
    """Devices should parse typed attributes and emit the same mapping."""

    raw = {
        "name": "gpu-0",
        "driver": "gpu.example.com",
        "deviceType": "gpu",
        "attributes": {
            "model.gpu.example.com": {"string": "a100"},
            "driver.gpu.example.com": {"version": "1.4.0"},
            "memory.gpu.example.com": {"quantity": "40Gi"},
            "tags.gpu.example.com": {"stringSlice": ["fast"]},
        },
    }

    device = device_from_wire(raw)

    assert device.lookup("driver.gpu.example.com").value == Version(1, 4, 0)
    assert device.lookup("tags.gpu.example.com").type is AttributeType.STRING_SLICE
    assert device_to_wire(device) == raw


def test_attribute_union_needs_exactly_one_member() -> None:
    """Attribute values must set exactly one typed member."""

    with pytest.raises(ValidationError, match="got none"):
        attribute_from_wire({}, field_name="attr")
    with pytest.raises(ValidationError, match=r"got \['int', 'string'\]"):
        attribute_from_wire({"string": "a", "int": 1}, field_name="attr")
    with pytest.raises(ValidationError, match=r"attr: unknown keys: \['float'\]"):
        attribute_from_wire({"float": 1.0}, field_name="attr")
    with pytest.raises(ValidationError, match=r"attr\.int"):
        attribute_from_wire({"int": "seven"}, field_name="attr")


def test_request_flattens_class_reference_and_detail() -> None:
    """Request detail fields and the class name should be inlined on the wire."""

    raw = {
        "name": "gpus",
        "deviceClassName": "gpu",
        "adminAccess": False,
        "count": {"minimum": 0},
        "match": [{"attribute": "numa.dra.example.com"}],
        "requirements": [{"device": {"driverName": "gpu.example.com", "selector": "true"}}],
    }

    request = request_from_wire(raw, field_name="claim.requests[0]")

    assert request.detail.device_class == ClassReference("gpu")
    assert request.detail.count == CountRange(minimum=0, maximum=None)
    assert request.detail.admin_access is False
    assert request_to_wire(request) == raw


def test_request_rejects_one_of_mixed_with_detail() -> None:
    """Alternatives and inline detail fields are mutually exclusive."""

    with pytest.raises(ValidationError, match="mutually exclusive"):
        request_from_wire({"name": "x", "deviceClassName": "gpu", "oneOf": [{}]}, field_name="r")
    with pytest.raises(ValidationError, match=r"r\.oneOf"):
        request_from_wire({"name": "x", "oneOf": []}, field_name="r")
    with pytest.raises(ValidationError, match=r"r\.oneOf\[0\]\.match\[0\]"):
        request_from_wire({"oneOf": [{"match": [{"attribute": "numa"}]}]}, field_name="r")


def test_count_validation_is_path_qualified() -> None:
    """Count errors should point at the request that holds them."""

    with pytest.raises(ValidationError, match=r"claim\.requests\[1\]\.count"):
        request_from_wire({"count": {"minimum": 3, "maximum": 1}}, field_name="claim.requests[1]")


def test_claim_from_wire_reads_metadata_and_spec() -> None:
    """Claims should take name and namespace from metadata."""

    document = {
        "metadata": {"name": "train", "namespace": "ml"},
        "spec": {
            "deviceClassName": "node-local",
            "shareable": True,
            "constraints": [{"match": {"attribute": "model.gpu.example.com"}}],
            "config": [{"vendor": {"driverName": "gpu.example.com", "parameters": {"a": 1}}}],
            "requests": [{"name": "gpu", "oneOf": [{"deviceClassName": "gpu"}, {}]}],
        },
    }

    claim = claim_from_wire(document)

    assert claim.claim_id == "ml/train"
    assert claim.shareable
    assert len(claim.requests[0].one_of) == 2
    assert claim_spec_to_wire(claim) == document["spec"]


def test_claim_rejects_unknown_keys() -> None:
    """Unknown fields should be reported with their path."""

    with pytest.raises(ValidationError, match=r"claim\[default/x\]\.spec: unknown keys: \['priority'\]"):
        claim_from_wire({"metadata": {"name": "x"}, "spec": {"priority": 1}})


def test_device_class_from_wire() -> None:
    """Device classes should parse options, defaults and node selectors."""

    device_class = device_class_from_wire(
        {
            "metadata": {"name": "gpu"},
            "spec": {
                "suitableNodes": {
                    "nodeSelectorTerms": [{"matchExpressions": [{"key": "zone", "operator": "NotIn", "values": ["z"]}]}]
                },
                "claim": {"constraints": [{"match": {"attribute": "numa.dra.example.com"}}]},
                "request": {"requirements": [{"device": {"selector": 'device.deviceType == "gpu"'}}]},
                "defaultRequests": [{"count": {"maximum": 1}}],
            },
        }
    )

    assert device_class.name == "gpu"
    assert device_class.suitable_nodes.terms[0].match_expressions[0].operator is NodeSelectorOperator.NOT_IN
    assert device_class.claim.constraints[0].match.attribute == "numa.dra.example.com"
    assert device_class.default_requests[0].detail.count == CountRange(maximum=1)


def test_node_selector_rejects_unknown_operator() -> None:
    """Unknown operators should be validation errors at the operator path."""

    raw = {"nodeSelectorTerms": [{"matchExpressions": [{"key": "zone", "operator": "Gt", "values": ["1"]}]}]}

    with pytest.raises(ValidationError, match=r"nodes\.nodeSelectorTerms\[0\]\.matchExpressions\[0\]\.operator"):
        node_selector_from_wire(raw, field_name="nodes")


def _result(*drivers: str, parameters=None) -> AllocationResult:
    return AllocationResult(
        claim_id="ml/train",
        results=(
            RequestAllocationResult(
                request_name="gpu",
                request_index=0,
                allocations=tuple(
                    AllocationResultModel(device=AllocatedDevice(name=f"dev-{index}", driver=driver))
                    for index, driver in enumerate(drivers)
                ),
                config=tuple(
                    DriverConfiguration(driver, parameters, ConfigSource.CLAIM) for driver in dict.fromkeys(drivers)
                )
                if parameters is not None
                else (),
            ),
        ),
    )


def test_allocation_emits_per_driver_data() -> None:
    """Allocations should be emitted grouped by driver and parse back."""

    wire = allocation_to_wire(_result("gpu.example.com", "gpu.example.com", "nic.example.com", parameters={"a": 1}))

    assert [entry["driverName"] for entry in wire["driverData"]] == ["gpu.example.com", "nic.example.com"]
    gpu = wire["driverData"][0]["structured"]
    assert gpu["config"] == [{"admin": False, "vendor": {"a": 1}}]
    assert [item["device"]["name"] for item in gpu["results"]] == ["dev-0", "dev-1"]

    parsed = allocation_from_wire(wire, claim_id="ml/train")

    assert parsed.device_names == ("dev-0", "dev-1", "dev-2")
    assert parsed.result_for("gpu").config_for_driver("nic.example.com")[0].source is ConfigSource.CLAIM


def test_allocation_enforces_driver_data_limits() -> None:
    """Emission should reject too many drivers or oversized opaque data."""

    too_many = _result(*(f"d{index}.example.com" for index in range(MAX_DRIVER_DATA_ENTRIES + 1)))
    oversized = _result("gpu.example.com", parameters={"blob": "x" * DRIVER_DATA_MAX_SIZE})

    with pytest.raises(ValidationError, match="exceed the limit of 32"):
        allocation_to_wire(too_many)
    with pytest.raises(ValidationError, match=r"allocation\.driverData\[0\]"):
        allocation_to_wire(oversized)


def test_status_round_trip_after_resolution() -> None:
    """A resolved status should survive emission and parsing."""

    claim = claim_spec_from_wire(
        {"requests": [{"name": "gpu"}], "shareable": True},
        name="train",
        namespace="ml",
        field_name="claim",
    )
    resolver = ClaimResolver(DevicePool([device_from_wire({"name": "gpu-0", "driver": "gpu.example.com"})]))
    status = resolver.allocate(claim).reserve_for(ConsumerReference(resource="pods", name="p", uid="u1"))

    wire = status_to_wire(status)
    parsed = status_from_wire(wire, claim_id=claim.claim_id)

    assert wire["reservedFor"] == [{"resource": "pods", "name": "p", "uid": "u1"}]
    assert parsed.reserved_for == status.reserved_for
    assert parsed.allocation.device_names == ("gpu-0",)
    assert parsed.allocation.shareable
    assert status_from_wire({}, claim_id="x/y") == ClaimStatus()


def test_required_wire_keys_are_enforced() -> None:
    """Slices need a driver and consumer references need resource, name and uid."""

    with pytest.raises(ValidationError, match=r"resourceSlice\[s\]\.spec: missing required keys: \['driver'\]"):
        resource_slice_from_wire({"metadata": {"name": "s"}, "spec": {"devices": []}})
    with pytest.raises(ValidationError, match=r"status\.reservedFor\[0\]: missing required keys: \['uid'\]"):
        status_from_wire({"reservedFor": [{"resource": "pods", "name": "p"}]}, claim_id="ml/train")


def test_allocation_round_trip_keeps_unnamed_and_empty_requests() -> None:
    """Results regroup by request index, so unnamed and device-less requests survive."""

    result = AllocationResult(
        claim_id="ml/train",
        results=(
            RequestAllocationResult("", 0, (AllocationResultModel(device=AllocatedDevice("gpu-0", GPU)),)),
            RequestAllocationResult("", 1, (AllocationResultModel(device=AllocatedDevice("gpu-1", GPU)),)),
            RequestAllocationResult("spare", 2, ()),
        ),
    )

    wire = allocation_to_wire(result)
    parsed = allocation_from_wire(wire, claim_id="ml/train")

    assert wire["requestNames"] == ["", "", "spare"]
    assert [item["requestIndex"] for item in wire["driverData"][0]["structured"]["results"]] == [0, 1]
    assert [(entry.request_index, entry.request_name, entry.device_names) for entry in parsed.results] == [
        (0, "", ("gpu-0",)),
        (1, "", ("gpu-1",)),
        (2, "spare", ()),
    ]


def test_identical_config_entries_are_not_collapsed() -> None:
    """Two equal vendor entries on a claim stay two entries through emission and parsing."""

    entry = {"vendor": {"driverName": GPU, "parameters": {"mode": "a"}}}
    claim = claim_spec_from_wire(
        {
            "config": [entry, dict(entry)],
            "requests": [{"name": "gpu", "count": {"minimum": 2, "maximum": 2}}],
        },
        name="train",
        namespace="ml",
        field_name="claim",
    )
    pool = DevicePool([device_from_wire({"name": f"gpu-{index}", "driver": GPU}) for index in range(2)])

    allocation = ClaimResolver(pool).resolve(claim)
    wire = allocation_to_wire(allocation)
    parsed = allocation_from_wire(wire, claim_id=claim.claim_id)

    assert len(allocation.driver_data()[0].structured.config) == 2
    assert wire["driverData"][0]["structured"]["config"] == [{"admin": False, "vendor": {"mode": "a"}}] * 2
    assert [item.parameters for item in parsed.result_for("gpu").config] == [{"mode": "a"}, {"mode": "a"}]
    assert parsed.result_for("gpu").device_names == ("gpu-0", "gpu-1")


@pytest.mark.parametrize(
    ("result", "message"),
    [
        ({"requestName": "gpu"}, r"missing required keys: \['requestIndex'\]"),
        ({"requestName": "gpu", "requestIndex": 3}, "does not name a request"),
        ({"requestName": "gpu", "requestIndex": -1}, "does not name a request"),
        ({"requestName": "nic", "requestIndex": 0}, "'nic' does not match request 0"),
    ],
)
def test_allocation_results_must_match_declared_requests(result, message) -> None:
    """Each device result must point at a declared request under the same name."""

    raw = {
        "requestNames": ["gpu"],
        "driverData": [
            {"driverName": GPU, "structured": {"results": [{**result, "device": {"name": "gpu-0"}}]}},
        ],
    }

    with pytest.raises(ValidationError, match=message):
        allocation_from_wire(raw, claim_id="ml/train")
