"""Claim status: allocation, consumer reservations and deallocation."""

from __future__ import annotations

from dataclasses import dataclass, replace

from .errors import ValidationError
from .results import AllocationResult

MAX_CONSUMER_RESERVATIONS = 32


@dataclass(frozen=True, slots=True)
class ConsumerReference:
    """Entity currently allowed to use an allocated claim."""

    resource: str
    name: str
    uid: str
    api_group: str = ""

    def __post_init__(self) -> None:
        for label in ("resource", "name", "uid"):
            if not str(getattr(self, label)).strip():
                raise ValidationError(f"reservedFor.{label}", "must be a non-empty string")


@dataclass(frozen=True, slots=True)
class ClaimStatus:
    """Status of one claim.

    Status objects are immutable; every transition returns a new status.

    Parameters
    ----------
    allocation : AllocationResult | None, optional
        Set once the claim has been allocated.
    reserved_for : tuple[ConsumerReference, ...], optional
        Consumers allowed to use the allocation, unique by ``uid``.
    deallocation_requested : bool, optional
        Set when the claim is to be deallocated. No new consumers may be
        added while it is set.
    """

    allocation: AllocationResult | None = None
    reserved_for: tuple[ConsumerReference, ...] = ()
    deallocation_requested: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "reserved_for", tuple(self.reserved_for))
        if len(self.reserved_for) > MAX_CONSUMER_RESERVATIONS:
            raise ValidationError(
                "status.reservedFor",
                f"at most {MAX_CONSUMER_RESERVATIONS} reservations are allowed",
            )
        uids = [consumer.uid for consumer in self.reserved_for]
        if len(set(uids)) != len(uids):
            raise ValidationError("status.reservedFor", "consumer uids must be unique")

    @property
    def allocated(self) -> bool:
        return self.allocation is not None

    def with_allocation(self, allocation: AllocationResult) -> "ClaimStatus":
        """Record an allocation. A claim is allocated at most once."""

        if self.allocation is not None:
            raise ValueError("claim is already allocated; deallocate it first")
        return replace(self, allocation=allocation, deallocation_requested=False)

    def reserve_for(self, consumer: ConsumerReference) -> "ClaimStatus":
        """Add one consumer reservation.

        Raises
        ------
        ValueError
            If the claim is unallocated, deallocation was requested, the
            allocation is not shareable and another consumer holds it, or the
            reservation limit is reached.
        """

        if self.allocation is None:
            raise ValueError("cannot reserve an unallocated claim")
        if self.deallocation_requested:
            raise ValueError("cannot reserve a claim while deallocation is requested")
        if any(existing.uid == consumer.uid for existing in self.reserved_for):
            return self
        if self.reserved_for and not self.allocation.shareable:
            raise ValueError("claim is not shareable and already reserved")
        if len(self.reserved_for) >= MAX_CONSUMER_RESERVATIONS:
            raise ValueError(f"claim already has {MAX_CONSUMER_RESERVATIONS} reservations")
        return replace(self, reserved_for=self.reserved_for + (consumer,))

    def release_consumer(self, uid: str) -> "ClaimStatus":
        """Remove the reservation held by ``uid`` if present."""

        return replace(
            self,
            reserved_for=tuple(consumer for consumer in self.reserved_for if consumer.uid != uid),
        )

    def request_deallocation(self) -> "ClaimStatus":
        """Mark the claim for deallocation."""

        return replace(self, deallocation_requested=True)

    def cleared(self) -> "ClaimStatus":
        """Return the status after deallocation completed.

        Raises
        ------
        ValueError
            If consumers still hold reservations.
        """

        if self.reserved_for:
            raise ValueError("cannot deallocate a claim that is still reserved")
        return ClaimStatus()


__all__ = ["ClaimStatus", "ConsumerReference", "MAX_CONSUMER_RESERVATIONS"]
