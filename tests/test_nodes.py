"""Tests for node eligibility selectors."""

from __future__ import annotations

import pytest

from device_alloc.core import (
    NodeSelector,
    NodeSelectorOperator,
    NodeSelectorRequirement,
    NodeSelectorTerm,
    ValidationError,
    intersect_node_selectors,
)


def _selector(*terms: tuple[NodeSelectorRequirement, ...]) -> NodeSelector:
    return NodeSelector(terms=tuple(NodeSelectorTerm(match_expressions=term) for term in terms))


def test_requirement_operators() -> None:
    """Each operator should evaluate against node labels."""

    labels = {"zone": "a", "accelerator": "gpu"}

    assert NodeSelectorRequirement("zone", "In", ("a", "b")).matches(labels)
    assert not NodeSelectorRequirement("zone", "NotIn", ("a",)).matches(labels)
    assert NodeSelectorRequirement("rack", NodeSelectorOperator.NOT_IN, ("r1",)).matches(labels)
    assert NodeSelectorRequirement("accelerator", "Exists").matches(labels)
    assert NodeSelectorRequirement("rack", "DoesNotExist").matches(labels)


def test_requirement_value_arity() -> None:
    """In/NotIn need values, Exists/DoesNotExist take none."""

    with pytest.raises(ValidationError, match="requires at least one value"):
        NodeSelectorRequirement("zone", "In")
    with pytest.raises(ValidationError, match="does not take values"):
        NodeSelectorRequirement("zone", "Exists", ("a",))
    with pytest.raises(ValueError):
        NodeSelectorRequirement("zone", "Gt", ("1",))


def test_selector_matches_any_term() -> None:
    """A selector is an OR of terms; an empty term matches nothing."""

    selector = _selector(
        (NodeSelectorRequirement("zone", "In", ("a",)),),
        (),
    )

    assert selector.matches({"zone": "a"})
    assert not selector.matches({"zone": "b"})
    with pytest.raises(ValidationError):
        NodeSelector(terms=())


def test_intersection_is_cross_product_of_terms() -> None:
    """Intersecting (a or b) with c yields (a and c) or (b and c)."""

    zone_a = NodeSelectorRequirement("zone", "In", ("a",))
    zone_b = NodeSelectorRequirement("zone", "In", ("b",))
    gpu = NodeSelectorRequirement("accelerator", "Exists")

    merged = _selector((zone_a,), (zone_b,)).intersect(_selector((gpu,)))

    assert [term.match_expressions for term in merged.terms] == [(zone_a, gpu), (zone_b, gpu)]
    assert merged.matches({"zone": "b", "accelerator": "x"})
    assert not merged.matches({"zone": "b"})


def test_intersect_node_selectors_ignores_unset() -> None:
    """``None`` selectors mean every node and drop out of the intersection."""

    gpu = _selector((NodeSelectorRequirement("accelerator", "Exists"),))

    assert intersect_node_selectors((None, None)) is None
    assert intersect_node_selectors((None, gpu, None)) == gpu
