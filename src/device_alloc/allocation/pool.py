"""Shared, thread-safe device pool with compare-and-reserve staging.

Resolutions read an immutable :class:`PoolSnapshot`, decide which devices to
use, then stage exclusive reservations with :meth:`DevicePool.try_reserve`.
A failed compare-and-reserve means a concurrent resolution won the race.
Staged reservations become permanent with :meth:`DevicePool.commit` or are
dropped with :meth:`DevicePool.release`.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass

from device_alloc.core.attributes import Device
from device_alloc.core.errors import RaceLostError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Reservation:
    """Exclusive hold on one device."""

    owner: str
    committed: bool = False


@dataclass(frozen=True, slots=True)
class PoolSnapshot:
    """Point-in-time view of the pool.

    Parameters
    ----------
    devices : tuple[Device, ...]
        Every device in stable pool order.
    reserved : frozenset[str]
        Names of devices exclusively held (staged or committed).
    generation : int
        Pool generation the snapshot was taken at.
    """

    devices: tuple[Device, ...]
    reserved: frozenset[str]
    generation: int

    def available(self) -> tuple[Device, ...]:
        """Devices no resolution holds exclusively, in pool order."""

        return tuple(device for device in self.devices if device.name not in self.reserved)


class DevicePool:
    """Ordered device table plus exclusive reservations.

    Parameters
    ----------
    devices : Iterable[Device], optional
        Initial devices. Names must be unique.
    """

    def __init__(self, devices: Iterable[Device] = ()) -> None:
        self._lock = threading.Lock()
        self._devices: dict[str, Device] = {}
        self._reservations: dict[str, Reservation] = {}
        self._generation = 0
        for device in devices:
            self._add(device)

    def _add(self, device: Device) -> None:
        if device.name in self._devices:
            raise ValidationError(f"pool.devices[{device.name}]", "duplicate device name")
        self._devices[device.name] = device

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def add_device(self, device: Device) -> None:
        """Publish one more device."""

        with self._lock:
            self._add(device)
            self._generation += 1

    def remove_device(self, name: str) -> None:
        """Withdraw one device. Reserved devices cannot be withdrawn.

        Raises
        ------
        KeyError
            If the device is unknown.
        ValueError
            If the device is reserved.
        """

        with self._lock:
            if name not in self._devices:
                raise KeyError(name)
            if name in self._reservations:
                raise ValueError(f"device {name!r} is reserved by {self._reservations[name].owner}")
            del self._devices[name]
            self._generation += 1

    def snapshot(self) -> PoolSnapshot:
        """Return an immutable view of devices and exclusive reservations."""

        with self._lock:
            return PoolSnapshot(
                devices=tuple(self._devices.values()),
                reserved=frozenset(self._reservations),
                generation=self._generation,
            )

    def holder(self, name: str) -> str | None:
        """Return the owner holding ``name`` exclusively, if any."""

        with self._lock:
            reservation = self._reservations.get(name)
            return None if reservation is None else reservation.owner

    def try_reserve(self, name: str, owner: str) -> bool:
        """Atomically stage an exclusive reservation.

        Returns
        -------
        bool
            ``True`` if the device is now held by ``owner`` (including when it
            already was), ``False`` if another owner holds it or the device was
            withdrawn.
        """

        with self._lock:
            if name not in self._devices:
                return False
            current = self._reservations.get(name)
            if current is not None:
                return current.owner == owner
            self._reservations[name] = Reservation(owner=owner)
            self._generation += 1
            return True

    def release(self, owner: str, names: Iterable[str] | None = None) -> tuple[str, ...]:
        """Drop staged (uncommitted) reservations held by ``owner``.

        Parameters
        ----------
        owner : str
            Reservation owner.
        names : Iterable[str] | None, optional
            Limit the release to these devices. Defaults to all staged ones.

        Returns
        -------
        tuple[str, ...]
            Names of released devices.
        """

        with self._lock:
            candidates = list(self._reservations) if names is None else list(names)
            released: list[str] = []
            for name in candidates:
                reservation = self._reservations.get(name)
                if reservation is None or reservation.owner != owner or reservation.committed:
                    continue
                del self._reservations[name]
                released.append(name)
            if released:
                self._generation += 1
            return tuple(released)

    def commit(self, owner: str, names: Iterable[str]) -> None:
        """Turn staged reservations into committed ones, all or nothing.

        Raises
        ------
        RaceLostError
            If any of ``names`` is not staged by ``owner``. Nothing is
            committed in that case.
        """

        with self._lock:
            targets = list(names)
            for name in targets:
                reservation = self._reservations.get(name)
                if reservation is None or reservation.owner != owner:
                    raise RaceLostError(
                        f"device {name!r} is no longer staged for {owner}",
                        device_name=name,
                    )
            for name in targets:
                self._reservations[name] = Reservation(owner=owner, committed=True)
            self._generation += 1

    def deallocate(self, owner: str) -> tuple[str, ...]:
        """Drop every reservation (staged or committed) held by ``owner``."""

        with self._lock:
            names = tuple(name for name, reservation in self._reservations.items() if reservation.owner == owner)
            for name in names:
                del self._reservations[name]
            if names:
                self._generation += 1
        if names:
            logger.info("released %d device(s) held by %s", len(names), owner)
        return names

    def reserved_by(self, owner: str) -> tuple[str, ...]:
        """Names of devices held by ``owner`` in pool order."""

        with self._lock:
            return tuple(
                name
                for name in self._devices
                if name in self._reservations and self._reservations[name].owner == owner
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)


__all__ = ["DevicePool", "PoolSnapshot", "Reservation"]
