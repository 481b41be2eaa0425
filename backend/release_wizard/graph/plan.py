# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Execution Plan

Flattens a (possibly nested) block graph into a single level of executable
blocks. A Container is replaced by its child graph: edges entering the
container attach to the child graph's entry blocks, edges leaving it start
from the child graph's exit blocks.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple, Set

from release_wizard.models.project import (
    BlockGraph, BlockBase, ContainerBlock, BlockConnectionType, BlockOutputSource
)


@dataclass(frozen=True)
class FlatEdge:
    from_id: str
    to_id: str
    type: BlockConnectionType


@dataclass
class FlatGraph:
    """Executable blocks in declaration order plus synthesized edges"""
    blocks: List[BlockBase] = field(default_factory=list)
    edges: List[FlatEdge] = field(default_factory=list)
    containers: Dict[str, ContainerBlock] = field(default_factory=dict)

    @property
    def position(self) -> Dict[str, int]:
        return {block.id: index for index, block in enumerate(self.blocks)}


def _splice_empty_containers(
    edges: List[Tuple[str, str, BlockConnectionType]],
    empty: Set[str]
) -> List[Tuple[str, str, BlockConnectionType]]:
    """Link predecessors of each empty container straight to its successors"""
    for container_id in empty:
        incoming = [e for e in edges if e[1] == container_id]
        outgoing = [e for e in edges if e[0] == container_id]
        edges = [e for e in edges if container_id not in (e[0], e[1])]
        for source, _, in_type in incoming:
            for _, target, out_type in outgoing:
                both_sequential = (
                    in_type == BlockConnectionType.SEQUENTIAL
                    and out_type == BlockConnectionType.SEQUENTIAL
                )
                edges.append((
                    source,
                    target,
                    BlockConnectionType.SEQUENTIAL if both_sequential else BlockConnectionType.PARALLEL
                ))
    return edges


def _flatten_level(graph: BlockGraph, flat: FlatGraph) -> Tuple[List[str], List[str]]:
    """
    Flatten one graph level into `flat`.

    Returns (entry block ids, exit block ids) of the level, already expressed
    in executable block ids.
    """
    ends: Dict[str, Tuple[List[str], List[str]]] = {}
    empty: Set[str] = set()

    for block in graph.blocks:
        if isinstance(block, ContainerBlock):
            flat.containers[block.id] = block
            entries, exits = _flatten_level(block.child_graph, flat)
            if not entries and not exits:
                empty.add(block.id)
            ends[block.id] = (entries, exits)
        else:
            flat.blocks.append(block)
            ends[block.id] = ([block.id], [block.id])

    level_edges = [
        (c.from_block_id, c.to_block_id, c.type)
        for c in graph.connections
        if c.from_block_id in ends and c.to_block_id in ends
    ]
    level_edges = _splice_empty_containers(level_edges, empty)

    for source, target, edge_type in level_edges:
        for from_id in ends[source][1]:
            for to_id in ends[target][0]:
                flat.edges.append(FlatEdge(from_id, to_id, edge_type))

    has_incoming = {target for _, target, _ in level_edges}
    has_outgoing = {source for source, _, _ in level_edges}
    entries: List[str] = []
    exits: List[str] = []
    for block in graph.blocks:
        if block.id in empty:
            continue
        if block.id not in has_incoming:
            entries.extend(ends[block.id][0])
        if block.id not in has_outgoing:
            exits.extend(ends[block.id][1])
    return entries, exits


def flatten_graph(graph: BlockGraph) -> FlatGraph:
    """Flatten a block graph (assumes ids are unique and edges resolve)"""
    flat = FlatGraph()
    _flatten_level(graph, flat)
    return flat


class ExecutionPlan:
    """
    Deterministic, validated execution plan for one release.

    Built once at release creation from the project snapshot and never
    mutated afterwards.
    """

    def __init__(self, flat: FlatGraph, order: List[str]):
        self.blocks: Dict[str, BlockBase] = {block.id: block for block in flat.blocks}
        self.order = order
        self.position = {block_id: index for index, block_id in enumerate(order)}
        self.sequential_predecessors: Dict[str, List[str]] = {b: [] for b in self.blocks}

        # Parallel edges only shape the order; they never gate readiness
        for edge in flat.edges:
            predecessors = self.sequential_predecessors[edge.to_id]
            if edge.type == BlockConnectionType.SEQUENTIAL and edge.from_id not in predecessors:
                predecessors.append(edge.from_id)

        self.data_dependencies: Dict[str, List[BlockOutputSource]] = {
            block_id: [
                parameter.source for parameter in block.parameters
                if isinstance(parameter.source, BlockOutputSource)
            ]
            for block_id, block in self.blocks.items()
        }

    def block(self, block_id: str) -> BlockBase:
        return self.blocks[block_id]

    def __len__(self) -> int:
        return len(self.order)
