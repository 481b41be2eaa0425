# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Unit tests for block graph validation and execution planning
"""

import pytest

from release_wizard.graph import (
    GraphValidationError, build_execution_plan, flatten_graph, find_cycle, validate_block_graph
)
from release_wizard.graph.plan import FlatEdge
from release_wizard.models.project import (
    BlockConnectionType, BlockGraph, BlockParameter, ProjectParameterSource
)

from tests.builders import container, output_param, par, seq, slack_block, teamcity_block


def codes(result):
    return [issue.code for issue in result.errors]


class TestStructure:
    """Ids, endpoints and emptiness"""

    def test_empty_graph_is_rejected(self):
        """Should require at least one block"""
        result = validate_block_graph(BlockGraph())
        assert not result.is_valid
        assert codes(result) == ["MIN_COUNT"]

    def test_duplicate_ids_across_levels(self):
        """Should reject a nested block reusing an outer id"""
        graph = BlockGraph(blocks=[slack_block("a"), container("c", [slack_block("a")])])
        result = validate_block_graph(graph)
        assert "DUPLICATE_ID" in codes(result)

    def test_unknown_edge_endpoint(self):
        """Should reject a connection to an undeclared block"""
        graph = BlockGraph(blocks=[slack_block("a")], connections=[seq("a", "ghost")])
        result = validate_block_graph(graph)
        assert codes(result) == ["UNKNOWN_BLOCK"]

    def test_edge_into_another_level_is_unknown(self):
        """Connections only resolve within their own graph level"""
        graph = BlockGraph(
            blocks=[slack_block("a"), container("c", [slack_block("inner")])],
            connections=[seq("a", "inner")]
        )
        assert "UNKNOWN_BLOCK" in codes(validate_block_graph(graph))


class TestCycles:
    """Cycle detection"""

    def test_direct_cycle(self):
        graph = BlockGraph(
            blocks=[slack_block("a"), slack_block("b"), slack_block("c")],
            connections=[seq("a", "b"), seq("b", "c"), seq("c", "a")]
        )
        result = validate_block_graph(graph)
        assert codes(result) == ["CYCLE"]
        assert result.order == []

    def test_cycle_through_parallel_edge(self):
        graph = BlockGraph(
            blocks=[slack_block("a"), slack_block("b")],
            connections=[seq("a", "b"), par("b", "a")]
        )
        assert codes(validate_block_graph(graph)) == ["CYCLE"]

    def test_cycle_through_container(self):
        """Should detect a cycle that only exists once the container is flattened"""
        graph = BlockGraph(
            blocks=[slack_block("a"), container("c", [slack_block("x"), slack_block("y")], [seq("x", "y")])],
            connections=[seq("a", "c"), seq("c", "a")]
        )
        assert codes(validate_block_graph(graph)) == ["CYCLE"]

    def test_find_cycle_returns_closed_path(self):
        edges = [
            FlatEdge("a", "b", BlockConnectionType.SEQUENTIAL),
            FlatEdge("b", "a", BlockConnectionType.SEQUENTIAL),
        ]
        assert find_cycle(["a", "b"], edges) == ["a", "b", "a"]
        assert find_cycle(["a", "b"], edges[:1]) is None

    def test_long_cycle_beyond_recursion_limit(self):
        """Should walk chains far deeper than the interpreter's recursion limit"""
        ids = [f"b{i}" for i in range(3000)]
        edges = [FlatEdge(a, b, BlockConnectionType.SEQUENTIAL) for a, b in zip(ids, ids[1:])]
        assert find_cycle(ids, edges) is None

        closing = FlatEdge(ids[-1], ids[0], BlockConnectionType.SEQUENTIAL)
        cycle = find_cycle(ids, edges + [closing])
        assert cycle == ids + [ids[0]]


class TestOrdering:
    """Deterministic topological order"""

    def test_ties_follow_declaration_order(self):
        graph = BlockGraph(
            blocks=[slack_block("c"), slack_block("a"), slack_block("b"), slack_block("d")],
            connections=[seq("c", "d"), seq("a", "d")]
        )
        result = validate_block_graph(graph)
        assert result.is_valid
        assert result.order == ["c", "a", "b", "d"]

    def test_order_respects_edges(self):
        graph = BlockGraph(
            blocks=[slack_block("b"), slack_block("a")],
            connections=[seq("a", "b")]
        )
        assert validate_block_graph(graph).order == ["a", "b"]

    def test_revalidation_is_deterministic(self):
        graph = BlockGraph(
            blocks=[slack_block(name) for name in "fedcba"],
            connections=[seq("f", "a"), par("e", "b"), seq("d", "a")]
        )
        orders = {tuple(validate_block_graph(graph).order) for _ in range(5)}
        assert len(orders) == 1

    def test_long_chain_validates(self):
        """Should order a chain of 1500 blocks without recursing per block"""
        ids = [f"b{i}" for i in range(1500)]
        graph = BlockGraph(
            blocks=[slack_block(block_id) for block_id in reversed(ids)],
            connections=[seq(a, b) for a, b in zip(ids, ids[1:])]
        )
        result = validate_block_graph(graph)
        assert result.is_valid
        assert result.order == ids


class TestContainers:
    """Container flattening"""

    def test_edges_attach_to_entry_and_exit_blocks(self):
        graph = BlockGraph(
            blocks=[
                slack_block("before"),
                container("c", [slack_block("x"), slack_block("y")], [seq("x", "y")]),
                slack_block("after"),
            ],
            connections=[seq("before", "c"), par("c", "after")]
        )
        flat = flatten_graph(graph)

        assert [block.id for block in flat.blocks] == ["before", "x", "y", "after"]
        assert set(flat.edges) == {
            FlatEdge("x", "y", BlockConnectionType.SEQUENTIAL),
            FlatEdge("before", "x", BlockConnectionType.SEQUENTIAL),
            FlatEdge("y", "after", BlockConnectionType.PARALLEL),
        }
        assert "c" in flat.containers

    def test_empty_container_links_neighbours(self):
        graph = BlockGraph(
            blocks=[slack_block("a"), container("c", []), slack_block("b")],
            connections=[seq("a", "c"), seq("c", "b")]
        )
        plan = build_execution_plan(graph)
        assert plan.order == ["a", "b"]
        assert plan.sequential_predecessors["b"] == ["a"]

    def test_containers_get_no_plan_entry(self):
        graph = BlockGraph(blocks=[container("c", [slack_block("x")])])
        plan = build_execution_plan(graph)
        assert plan.order == ["x"]
        assert "c" not in plan.blocks


class TestDataReferences:
    """BlockOutput and ProjectParameter sources"""

    def test_sequential_ancestor_is_accepted(self):
        consumer = slack_block("b", parameters=[output_param("build", "a", "build_number")])
        graph = BlockGraph(blocks=[teamcity_block("a"), consumer], connections=[seq("a", "b")])
        plan = build_execution_plan(graph)
        assert plan.data_dependencies["b"][0].block_id == "a"

    def test_transitive_ancestor_is_accepted(self):
        consumer = slack_block("c", parameters=[output_param("build", "a", "build_number")])
        graph = BlockGraph(
            blocks=[teamcity_block("a"), slack_block("b"), consumer],
            connections=[seq("a", "b"), par("b", "c")]
        )
        assert validate_block_graph(graph).is_valid

    def test_sideways_reference_is_rejected(self):
        consumer = slack_block("b", parameters=[output_param("build", "a", "build_number")])
        graph = BlockGraph(blocks=[teamcity_block("a"), consumer])
        assert codes(validate_block_graph(graph)) == ["NOT_ANCESTOR"]

    def test_forward_reference_is_rejected(self):
        consumer = slack_block("a", parameters=[output_param("build", "b", "build_number")])
        graph = BlockGraph(blocks=[consumer, teamcity_block("b")], connections=[seq("a", "b")])
        assert codes(validate_block_graph(graph)) == ["NOT_ANCESTOR"]

    def test_parallel_predecessor_is_accepted(self):
        """The consumer still waits for the output to be populated"""
        consumer = slack_block("b", parameters=[output_param("build", "a", "build_number")])
        graph = BlockGraph(blocks=[teamcity_block("a"), consumer], connections=[par("a", "b")])
        plan = build_execution_plan(graph)
        assert plan.data_dependencies["b"][0].block_id == "a"
        assert plan.sequential_predecessors["b"] == []

    def test_reference_across_long_chain(self):
        """Should resolve an ancestor at the far end of a deep chain"""
        ids = [f"b{i}" for i in range(1, 1500)]
        consumer = slack_block("last", parameters=[output_param("build", "first", "build_number")])
        chain = ["first"] + ids + ["last"]
        graph = BlockGraph(
            blocks=[teamcity_block("first")] + [slack_block(block_id) for block_id in ids] + [consumer],
            connections=[seq(a, b) for a, b in zip(chain, chain[1:])]
        )
        assert validate_block_graph(graph).is_valid

    def test_undeclared_output_is_rejected(self):
        consumer = slack_block("b", parameters=[output_param("x", "a", "nope")])
        graph = BlockGraph(blocks=[teamcity_block("a"), consumer], connections=[seq("a", "b")])
        assert codes(validate_block_graph(graph)) == ["UNKNOWN_OUTPUT"]

    def test_container_cannot_be_a_source(self):
        consumer = slack_block("b", parameters=[output_param("x", "c", "anything")])
        graph = BlockGraph(
            blocks=[container("c", [teamcity_block("a")]), consumer],
            connections=[seq("c", "b")]
        )
        assert codes(validate_block_graph(graph)) == ["INVALID_SOURCE"]

    def test_reference_into_container(self):
        """Sources inside a container resolve on the flattened graph"""
        consumer = slack_block("b", parameters=[output_param("x", "a", "build_id")])
        graph = BlockGraph(
            blocks=[container("c", [teamcity_block("a")]), consumer],
            connections=[seq("c", "b")]
        )
        assert validate_block_graph(graph).is_valid

    def test_unknown_project_parameter(self):
        block = slack_block("a", parameters=[
            BlockParameter(name="v", source=ProjectParameterSource(parameter_name="version"))
        ])
        graph = BlockGraph(blocks=[block])
        assert codes(validate_block_graph(graph, ["other"])) == ["UNKNOWN_PARAMETER"]
        assert validate_block_graph(graph, ["version"]).is_valid
        # Without a parameter list the reference is not checked
        assert validate_block_graph(graph).is_valid

    def test_build_execution_plan_raises_with_issues(self):
        graph = BlockGraph(blocks=[slack_block("a")], connections=[seq("a", "a")])
        with pytest.raises(GraphValidationError) as exc_info:
            build_execution_plan(graph)
        assert exc_info.value.issues[0].code == "CYCLE"
        assert exc_info.value.status_code == 400
