"""Tests for structural validation."""

from pipemagic.codes import ValidationCode
from pipemagic.kernel.graph import (
    ArityError,
    CycleDetectedError,
    DanglingEdgeError,
    DuplicateNodeError,
)
from pipemagic.kernel.pipeline import EdgeDef
from pipemagic.kernel.validate import validate_pipeline

from conftest import make_edge, make_node


def test_valid_pipeline_has_no_errors(linear_pipeline):
    assert validate_pipeline(linear_pipeline.nodes, linear_pipeline.edges) == []


def test_empty_pipeline_is_valid():
    assert validate_pipeline([], []) == []


def test_node_without_incoming_edges_is_not_an_error():
    """Readiness is a run-time concern, not a structural one."""
    nodes = [make_node("I", "input"), make_node("R"), make_node("O", "output")]
    assert validate_pipeline(nodes, [make_edge("I", "O")]) == []


def test_dangling_edge():
    nodes = [make_node("I", "input"), make_node("O", "output")]
    errors = validate_pipeline(nodes, [make_edge("I", "X", edge_id="e1")])
    assert len(errors) == 1
    error = errors[0]
    assert isinstance(error, DanglingEdgeError)
    assert error.code == ValidationCode.DANGLING_EDGE
    assert error.edge_id == "e1"
    assert error.missing_id == "X"
    assert error.end == "target"
    assert error.message == "Edge 'e1' references non-existent target node: 'X'"


def test_dangling_source_and_target_both_reported():
    errors = validate_pipeline([make_node("a")], [make_edge("p", "q", edge_id="e")])
    assert [(e.missing_id, e.end) for e in errors] == [("p", "source"), ("q", "target")]


def test_cycle_detected():
    nodes = [make_node("I", "input"), make_node("A"), make_node("B"), make_node("O", "output")]
    edges = [make_edge("I", "A"), make_edge("A", "B"), make_edge("B", "A"), make_edge("B", "O")]
    errors = validate_pipeline(nodes, edges)
    cycle_errors = [e for e in errors if isinstance(e, CycleDetectedError)]
    assert len(cycle_errors) == 1
    assert cycle_errors[0].code == ValidationCode.CYCLE_DETECTED
    # O is downstream of the cycle and can never be placed either
    assert cycle_errors[0].unplaced == ["A", "B", "O"]


def test_duplicate_node_id():
    errors = validate_pipeline([make_node("a"), make_node("a", "normalize")], [])
    assert len(errors) == 1
    assert isinstance(errors[0], DuplicateNodeError)
    assert errors[0].node_id == "a"


def test_source_with_incoming_edge():
    nodes = [make_node("I", "input"), make_node("R")]
    errors = validate_pipeline(nodes, [make_edge("R", "I")])
    assert len(errors) == 1
    assert isinstance(errors[0], ArityError)
    assert errors[0].code == ValidationCode.ARITY_VIOLATION
    assert errors[0].node_id == "I"


def test_sink_with_outgoing_edge():
    nodes = [make_node("O", "output"), make_node("R")]
    errors = validate_pipeline(nodes, [make_edge("O", "R")])
    assert len(errors) == 1
    assert isinstance(errors[0], ArityError)
    assert errors[0].node_id == "O"


def test_two_sources_into_single_input_handle():
    nodes = [make_node("I1", "input"), make_node("I2", "input"), make_node("R")]
    errors = validate_pipeline(nodes, [make_edge("I1", "R"), make_edge("I2", "R")])
    assert len(errors) == 1
    assert isinstance(errors[0], ArityError)
    assert errors[0].node_id == "R"
    assert "I1, I2" in errors[0].message


def test_fan_out_is_allowed():
    nodes = [make_node("I", "input"), make_node("A"), make_node("B")]
    assert validate_pipeline(nodes, [make_edge("I", "A"), make_edge("I", "B")]) == []


def test_all_errors_reported_jointly():
    """Dangling edge, cycle and arity problems surface together."""
    nodes = [
        make_node("I", "input"),
        make_node("A"),
        make_node("B"),
        make_node("O", "output"),
    ]
    edges = [
        make_edge("I", "A", edge_id="e1"),
        make_edge("A", "B", edge_id="e2"),
        make_edge("B", "A", edge_id="e3"),
        make_edge("O", "ghost", edge_id="e4"),
    ]
    errors = validate_pipeline(nodes, edges)
    codes = {e.code for e in errors}
    assert codes == {
        ValidationCode.DANGLING_EDGE,
        ValidationCode.CYCLE_DETECTED,
        ValidationCode.ARITY_VIOLATION,
    }


def test_second_input_on_undeclared_handle():
    """A single-input node cannot take extra frames through a made-up handle."""
    nodes = [
        make_node("A", "input"),
        make_node("B", "input"),
        make_node("R"),
        make_node("O", "output"),
    ]
    edges = [
        make_edge("A", "R"),
        make_edge("B", "R", edge_id="mask-edge", target_handle="mask"),
        make_edge("R", "O"),
    ]
    errors = validate_pipeline(nodes, edges)
    assert len(errors) == 1
    assert isinstance(errors[0], ArityError)
    assert errors[0].node_id == "R"
    assert "'mask'" in errors[0].message
    assert "mask-edge" in errors[0].message


def test_edge_from_undeclared_output_handle():
    nodes = [make_node("I", "input"), make_node("R")]
    edge = EdgeDef(id="e1", source="I", source_handle="alpha", target="R")
    errors = validate_pipeline(nodes, [edge])
    assert len(errors) == 1
    assert isinstance(errors[0], ArityError)
    assert errors[0].node_id == "I"
    assert "'alpha'" in errors[0].message
