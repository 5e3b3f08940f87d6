"""Tests for configuration merging in specificity order."""

from __future__ import annotations

from device_alloc.allocation import ConfigMerger, DevicePool, RequestResolver, WorkingPool
from device_alloc.core import (
    Claim,
    ClassClaimOptions,
    ClassReference,
    ClassRequestOptions,
    ConfigSource,
    Configuration,
    Device,
    DeviceClass,
    Request,
    RequestDetail,
    VendorConfiguration,
)


def _config(driver: str, label: str) -> Configuration:
    return Configuration(vendor=VendorConfiguration(driver_name=driver, parameters={"from": label}))


def test_merge_orders_entries_by_specificity() -> None:
    """Claim, claim class, request and request class entries should appear in that order."""

    claim_class = DeviceClass(
        name="node-local",
        claim=ClassClaimOptions(config=(_config("gpu.example.com", "claim-class.claim"),)),
        request=ClassRequestOptions(config=(_config("gpu.example.com", "claim-class.request"),)),
    )
    request_class = DeviceClass(
        name="gpu",
        request=ClassRequestOptions(config=(_config("gpu.example.com", "request-class"),)),
    )
    detail = RequestDetail(
        device_class=ClassReference("gpu"),
        config=(_config("gpu.example.com", "request"), _config("nic.example.com", "request-nic")),
    )
    claim = Claim(
        name="train",
        device_class=ClassReference("node-local"),
        config=(_config("gpu.example.com", "claim"),),
        requests=(Request(name="gpu", detail=detail),),
    )
    working = WorkingPool(DevicePool([Device(name="gpu-0", driver="gpu.example.com")]).snapshot())
    resolved = RequestResolver({"gpu": request_class}).resolve(claim.requests[0], 0, working)

    merged = ConfigMerger(claim, claim_class).merge(resolved)

    assert [entry.parameters["from"] for entry in merged] == [
        "claim",
        "claim-class.claim",
        "claim-class.request",
        "request",
        "request-nic",
        "request-class",
    ]
    assert [entry.source for entry in merged] == [
        ConfigSource.CLAIM,
        ConfigSource.CLAIM_CLASS,
        ConfigSource.CLAIM_CLASS,
        ConfigSource.REQUEST,
        ConfigSource.REQUEST,
        ConfigSource.REQUEST_CLASS,
    ]
    assert [entry.admin for entry in merged] == [False, True, True, False, False, True]


def test_merge_without_classes_keeps_user_entries_only() -> None:
    """Claims without classes should yield only user-originated entries."""

    claim = Claim(
        name="plain",
        config=(_config("gpu.example.com", "claim"), _config("gpu.example.com", "claim")),
        requests=(Request(name="gpu", detail=RequestDetail()),),
    )
    working = WorkingPool(DevicePool([Device(name="gpu-0", driver="gpu.example.com")]).snapshot())
    resolved = RequestResolver({}).resolve(claim.requests[0], 0, working)

    merged = ConfigMerger(claim).merge(resolved)

    assert len(merged) == 2
    assert not any(entry.admin for entry in merged)
    assert ConfigMerger(claim).claim_entries() == merged
