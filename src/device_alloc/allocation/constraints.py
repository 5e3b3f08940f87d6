"""Cross-device attribute match checking.

Claim-wide constraints are checked over every device allocated for a claim
once all requests are resolved. Per-request ``match`` criteria reuse the same
comparison rules to group candidates before selection.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from device_alloc.core.attributes import ZERO_VALUES, AttributeType, Device
from device_alloc.core.errors import ConstraintViolationError
from device_alloc.core.types import Constraint, MatchModel

from .config import MissingAttributePolicy

logger = logging.getLogger(__name__)

_ABSENT = ("absent",)


class ConstraintChecker:
    """Compare attribute values across sets of devices.

    Parameters
    ----------
    missing_attribute : MissingAttributePolicy, optional
        Treatment of devices that lack the compared attribute.
    """

    def __init__(self, missing_attribute: MissingAttributePolicy = MissingAttributePolicy.VACUOUS) -> None:
        self.missing_attribute = MissingAttributePolicy(missing_attribute)

    def comparison_keys(self, devices: Sequence[Device], attribute: str) -> list[tuple[Any, ...] | None]:
        """Return one comparable key per device.

        Present attributes compare by ``(type, value)``. Under the vacuous
        policy a missing attribute takes the zero value of the type the other
        devices use; under the exclude policy it yields ``None``.
        """

        present_types = {
            device.attributes[attribute].type for device in devices if attribute in device.attributes
        }
        keys: list[tuple[Any, ...] | None] = []
        for device in devices:
            value = device.lookup(attribute)
            if value is not None:
                keys.append((value.type, value.value))
            elif self.missing_attribute is MissingAttributePolicy.EXCLUDE:
                keys.append(None)
            elif len(present_types) == 1:
                kind: AttributeType = next(iter(present_types))
                keys.append((kind, ZERO_VALUES[kind]))
            else:
                keys.append(_ABSENT)
        return keys

    def find_mismatch(self, devices: Sequence[Device], attribute: str) -> tuple[Device, Device] | None:
        """Return the first pair of devices that disagree on ``attribute``."""

        reference: tuple[Device, tuple[Any, ...]] | None = None
        for device, key in zip(devices, self.comparison_keys(devices, attribute)):
            if key is None:
                continue
            if reference is None:
                reference = (device, key)
            elif key != reference[1]:
                return reference[0], device
        return None

    def check_match(self, devices: Sequence[Device], match: MatchModel, *, request_name: str | None = None) -> None:
        """Raise if ``devices`` disagree on the matched attribute.

        Raises
        ------
        ConstraintViolationError
            If two devices present differing values.
        """

        attribute = str(match.attribute)
        mismatch = self.find_mismatch(devices, attribute)
        if mismatch is None:
            return
        first, second = mismatch
        logger.debug("match on %s failed between %s and %s", attribute, first.name, second.name)
        raise ConstraintViolationError(
            f"devices {first.name!r} and {second.name!r} differ in attribute {attribute!r}",
            attribute=attribute,
            request_name=request_name,
        )

    def check(self, devices: Sequence[Device], constraints: Sequence[Constraint]) -> None:
        """Check every claim-wide constraint. All must pass.

        Raises
        ------
        ConstraintViolationError
            On the first failing constraint.
        """

        for constraint in constraints:
            if constraint.match is not None:
                self.check_match(devices, constraint.match)

    def group(self, devices: Sequence[Device], matches: Sequence[MatchModel]) -> list[tuple[Device, ...]]:
        """Partition candidates into groups that agree on every criterion.

        Groups are ordered by their first member's pool position and keep
        pool order inside. Under the exclude policy a device lacking an
        attribute joins any group it does not contradict.
        """

        if not matches:
            return [tuple(devices)]

        per_attribute = [self.comparison_keys(devices, str(match.attribute)) for match in matches]
        keys = [tuple(column[index] for column in per_attribute) for index in range(len(devices))]

        groups: list[tuple[Device, ...]] = []
        seen: list[tuple[Any, ...]] = []
        for seed in keys:
            if seed in seen:
                continue
            seen.append(seed)
            pinned = list(seed)
            members: list[Device] = []
            for index, key in enumerate(keys):
                if not _compatible(key, pinned):
                    continue
                for position, component in enumerate(key):
                    if pinned[position] is None and component is not None:
                        pinned[position] = component
                members.append(devices[index])
            group = tuple(members)
            if group not in groups:
                groups.append(group)
        return groups


def _compatible(key: tuple[Any, ...], pinned: list[Any]) -> bool:
    return all(
        component is None or expected is None or component == expected
        for component, expected in zip(key, pinned)
    )


__all__ = ["ConstraintChecker"]
