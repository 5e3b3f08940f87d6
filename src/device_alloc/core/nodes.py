"""Node eligibility selectors attached to device classes and allocations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from .errors import ValidationError


class NodeSelectorOperator(str, Enum):
    """Operators for one node label requirement."""

    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"


@dataclass(frozen=True, slots=True)
class NodeSelectorRequirement:
    """Label requirement ``key <operator> values``.

    Parameters
    ----------
    key : str
        Node label key.
    operator : NodeSelectorOperator
        Comparison operator.
    values : tuple[str, ...], optional
        Values for ``In``/``NotIn``. Must be empty for ``Exists`` and
        ``DoesNotExist``.
    """

    key: str
    operator: NodeSelectorOperator
    values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "operator", NodeSelectorOperator(self.operator))
        object.__setattr__(self, "values", tuple(str(value) for value in self.values))
        if not self.key:
            raise ValidationError("nodeSelectorRequirement.key", "must be a non-empty string")
        needs_values = self.operator in {NodeSelectorOperator.IN, NodeSelectorOperator.NOT_IN}
        if needs_values and not self.values:
            raise ValidationError(
                f"nodeSelectorRequirement[{self.key}].values",
                f"operator {self.operator.value} requires at least one value",
            )
        if not needs_values and self.values:
            raise ValidationError(
                f"nodeSelectorRequirement[{self.key}].values",
                f"operator {self.operator.value} does not take values",
            )

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        if self.operator is NodeSelectorOperator.EXISTS:
            return present
        if self.operator is NodeSelectorOperator.DOES_NOT_EXIST:
            return not present
        if self.operator is NodeSelectorOperator.IN:
            return present and labels[self.key] in self.values
        return not present or labels[self.key] not in self.values


@dataclass(frozen=True, slots=True)
class NodeSelectorTerm:
    """Conjunction of label requirements. An empty term matches no node."""

    match_expressions: tuple[NodeSelectorRequirement, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "match_expressions", tuple(self.match_expressions))

    def matches(self, labels: Mapping[str, str]) -> bool:
        if not self.match_expressions:
            return False
        return all(requirement.matches(labels) for requirement in self.match_expressions)


@dataclass(frozen=True, slots=True)
class NodeSelector:
    """Disjunction of node selector terms.

    A node is eligible when at least one term matches its labels.
    """

    terms: tuple[NodeSelectorTerm, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "terms", tuple(self.terms))
        if not self.terms:
            raise ValidationError("nodeSelector.terms", "must contain at least one term")

    def matches(self, labels: Mapping[str, str]) -> bool:
        """Return whether a node with ``labels`` is eligible."""

        return any(term.matches(labels) for term in self.terms)

    def intersect(self, other: "NodeSelector") -> "NodeSelector":
        """Return a selector matching nodes eligible under both selectors.

        ``(a or b) and (c or d)`` expands to ``(a and c) or (a and d) or
        (b and c) or (b and d)``.
        """

        terms: list[NodeSelectorTerm] = []
        for left in self.terms:
            for right in other.terms:
                merged = left.match_expressions + tuple(
                    requirement
                    for requirement in right.match_expressions
                    if requirement not in left.match_expressions
                )
                term = NodeSelectorTerm(match_expressions=merged)
                if term not in terms:
                    terms.append(term)
        return NodeSelector(terms=tuple(terms))


def intersect_node_selectors(selectors: tuple[NodeSelector | None, ...]) -> NodeSelector | None:
    """Intersect optional selectors. ``None`` means every node is eligible."""

    result: NodeSelector | None = None
    for selector in selectors:
        if selector is None:
            continue
        result = selector if result is None else result.intersect(selector)
    return result


__all__ = [
    "NodeSelector",
    "NodeSelectorOperator",
    "NodeSelectorRequirement",
    "NodeSelectorTerm",
    "intersect_node_selectors",
]
