"""Tests for the shared device pool."""

from __future__ import annotations

import threading

import pytest

from device_alloc.allocation import DevicePool
from device_alloc.core import Device, RaceLostError, ValidationError


def _pool(count: int = 3) -> DevicePool:
    return DevicePool(Device(name=f"dev-{index}", driver="nic.example.com") for index in range(count))


def test_snapshot_excludes_reserved_devices() -> None:
    """Snapshots should list every device and hide reserved ones from availability."""

    pool = _pool()
    assert pool.try_reserve("dev-1", "ns/a")

    snapshot = pool.snapshot()

    assert [device.name for device in snapshot.devices] == ["dev-0", "dev-1", "dev-2"]
    assert [device.name for device in snapshot.available()] == ["dev-0", "dev-2"]
    assert snapshot.reserved == frozenset({"dev-1"})


def test_try_reserve_is_compare_and_set() -> None:
    """Only the first owner should win a device."""

    pool = _pool()

    assert pool.try_reserve("dev-0", "ns/a")
    assert pool.try_reserve("dev-0", "ns/a")
    assert not pool.try_reserve("dev-0", "ns/b")
    assert not pool.try_reserve("missing", "ns/a")
    assert pool.holder("dev-0") == "ns/a"


def test_commit_is_all_or_nothing() -> None:
    """Commit should fail without side effects when one device is not staged."""

    pool = _pool()
    assert pool.try_reserve("dev-0", "ns/a")
    assert pool.try_reserve("dev-1", "ns/b")

    with pytest.raises(RaceLostError) as excinfo:
        pool.commit("ns/a", ["dev-0", "dev-1"])

    assert excinfo.value.device_name == "dev-1"
    assert excinfo.value.retryable
    assert pool.release("ns/a") == ("dev-0",)


def test_release_keeps_committed_reservations() -> None:
    """Release should only drop staged reservations; deallocate drops all."""

    pool = _pool()
    assert pool.try_reserve("dev-0", "ns/a")
    assert pool.try_reserve("dev-1", "ns/a")
    pool.commit("ns/a", ["dev-0"])

    assert pool.release("ns/a") == ("dev-1",)
    assert pool.reserved_by("ns/a") == ("dev-0",)
    assert pool.deallocate("ns/a") == ("dev-0",)
    assert pool.reserved_by("ns/a") == ()


def test_device_membership_changes_bump_generation() -> None:
    """Adding and removing devices should be tracked by the generation counter."""

    pool = _pool(1)
    start = pool.generation

    pool.add_device(Device(name="dev-9", driver="nic.example.com"))
    assert pool.try_reserve("dev-9", "ns/a")

    with pytest.raises(ValueError, match="reserved by ns/a"):
        pool.remove_device("dev-9")
    with pytest.raises(KeyError):
        pool.remove_device("missing")
    with pytest.raises(ValidationError, match="duplicate device name"):
        pool.add_device(Device(name="dev-0", driver="nic.example.com"))

    pool.remove_device("dev-0")
    assert len(pool) == 1
    assert pool.generation > start


def test_concurrent_reservations_have_one_winner() -> None:
    """Racing threads should never both hold the same device."""

    pool = _pool(1)
    winners: list[str] = []
    barrier = threading.Barrier(8)

    def contend(owner: str) -> None:
        barrier.wait()
        if pool.try_reserve("dev-0", owner):
            winners.append(owner)

    threads = [threading.Thread(target=contend, args=(f"ns/{index}",)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(winners) == 1
    assert pool.holder("dev-0") == winners[0]
