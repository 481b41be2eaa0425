# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Block Graph Validation

Structural checks, cycle detection (DFS with in-progress marking) and a
deterministic topological sort: among blocks that are ready at the same
time, the one declared first wins.
"""

import heapq
from typing import List, Dict, Set, Optional, Iterable, Iterator
from pydantic import BaseModel

from release_wizard.models.project import (
    BlockGraph, ContainerBlock, BlockOutputSource, ProjectParameterSource
)
from .exceptions import ValidationIssue, GraphValidationError
from .plan import FlatGraph, FlatEdge, ExecutionPlan, flatten_graph


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[ValidationIssue] = []
    order: List[str] = []  # topological order of executable blocks, empty if invalid


def _collect_structure(graph: BlockGraph, path: str, seen: Dict[str, str], issues: List[ValidationIssue]) -> None:
    """Check ids and edge endpoints level by level"""
    level_ids = set()
    for index, block in enumerate(graph.blocks):
        field = f"{path}.blocks[{index}]"
        if block.id in seen:
            issues.append(ValidationIssue(
                field=field,
                message=f"Duplicate block id '{block.id}' (also declared at {seen[block.id]})",
                code="DUPLICATE_ID"
            ))
        else:
            seen[block.id] = field
        level_ids.add(block.id)

    for index, connection in enumerate(graph.connections):
        field = f"{path}.connections[{index}]"
        for endpoint in (connection.from_block_id, connection.to_block_id):
            if endpoint not in level_ids:
                issues.append(ValidationIssue(
                    field=field,
                    message=f"Connection references unknown block '{endpoint}'",
                    code="UNKNOWN_BLOCK"
                ))

    for index, block in enumerate(graph.blocks):
        if isinstance(block, ContainerBlock):
            _collect_structure(block.child_graph, f"{path}.blocks[{index}].child_graph", seen, issues)


def find_cycle(block_ids: List[str], edges: List[FlatEdge]) -> Optional[List[str]]:
    """
    Depth-first search with in-progress marking.

    Iterative, so arbitrarily long chains never hit the recursion limit.
    Returns the block ids forming a cycle (first id repeated at the end),
    or None when the graph is acyclic.
    """
    adjacency: Dict[str, List[str]] = {block_id: [] for block_id in block_ids}
    for edge in edges:
        adjacency[edge.from_id].append(edge.to_id)

    in_progress: Set[str] = set()
    done: Set[str] = set()

    for root in block_ids:
        if root in done:
            continue
        path: List[str] = [root]
        pending: List[Iterator[str]] = [iter(adjacency[root])]
        in_progress.add(root)
        while pending:
            neighbor = next(pending[-1], None)
            if neighbor is None:
                finished = path.pop()
                pending.pop()
                in_progress.discard(finished)
                done.add(finished)
                continue
            if neighbor in in_progress:
                return path[path.index(neighbor):] + [neighbor]
            if neighbor not in done:
                in_progress.add(neighbor)
                path.append(neighbor)
                pending.append(iter(adjacency[neighbor]))
    return None


def topological_sort(flat: FlatGraph) -> List[str]:
    """
    Kahn's algorithm with declaration order as the tie-breaker.

    Assumes the flattened graph is acyclic.
    """
    position = flat.position
    successors: Dict[str, List[str]] = {block.id: [] for block in flat.blocks}
    in_degree: Dict[str, int] = {block.id: 0 for block in flat.blocks}
    for edge in flat.edges:
        successors[edge.from_id].append(edge.to_id)
        in_degree[edge.to_id] += 1

    heap = [(position[block_id], block_id) for block_id, degree in in_degree.items() if degree == 0]
    heapq.heapify(heap)

    order = []
    while heap:
        _, block_id = heapq.heappop(heap)
        order.append(block_id)
        for neighbor in successors[block_id]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                heapq.heappush(heap, (position[neighbor], neighbor))
    return order


def _descendants(flat: FlatGraph) -> Dict[str, Set[str]]:
    """All blocks reachable from each block, any edge type; the graph must be acyclic"""
    successors: Dict[str, List[str]] = {block.id: [] for block in flat.blocks}
    for edge in flat.edges:
        successors[edge.from_id].append(edge.to_id)

    # Successors come later in topological order, so walk it backwards
    reachable: Dict[str, Set[str]] = {}
    for block_id in reversed(topological_sort(flat)):
        result: Set[str] = set()
        for neighbor in successors[block_id]:
            result.add(neighbor)
            result |= reachable[neighbor]
        reachable[block_id] = result
    return reachable


def _check_references(
    flat: FlatGraph,
    all_ids: Set[str],
    project_parameters: Optional[Set[str]],
    issues: List[ValidationIssue]
) -> None:
    reachable = _descendants(flat)
    blocks = {block.id: block for block in flat.blocks}

    for block in flat.blocks:
        for parameter in block.parameters:
            field = f"blocks[{block.id}].parameters[{parameter.name}]"
            source = parameter.source

            if isinstance(source, ProjectParameterSource):
                if project_parameters is not None and source.parameter_name not in project_parameters:
                    issues.append(ValidationIssue(
                        field=field,
                        message=f"Unknown project parameter '{source.parameter_name}'",
                        code="UNKNOWN_PARAMETER"
                    ))
                continue

            if not isinstance(source, BlockOutputSource):
                continue

            if source.block_id not in all_ids:
                issues.append(ValidationIssue(
                    field=field,
                    message=f"Parameter references unknown block '{source.block_id}'",
                    code="UNKNOWN_BLOCK"
                ))
            elif source.block_id not in blocks:
                issues.append(ValidationIssue(
                    field=field,
                    message=f"Container block '{source.block_id}' has no outputs of its own",
                    code="INVALID_SOURCE"
                ))
            elif source.output_name not in {output.name for output in blocks[source.block_id].outputs}:
                issues.append(ValidationIssue(
                    field=field,
                    message=f"Block '{source.block_id}' declares no output '{source.output_name}'",
                    code="UNKNOWN_OUTPUT"
                ))
            elif block.id not in reachable[source.block_id]:
                # The scheduler also waits for the output itself, whatever the edge types on the path
                issues.append(ValidationIssue(
                    field=field,
                    message=(
                        f"Block '{block.id}' reads an output of '{source.block_id}', "
                        f"which is not one of its predecessors"
                    ),
                    code="NOT_ANCESTOR"
                ))


def validate_block_graph(
    graph: BlockGraph,
    project_parameters: Optional[Iterable[str]] = None
) -> ValidationResult:
    """
    Validate a block graph.

    Checks, in order:
    1. At least one block
    2. Unique block ids across all nesting levels
    3. Connection endpoints resolve within their own level
    4. No cycles (direct or through containers)
    5. BlockOutput / ProjectParameter parameter references

    Returns a ValidationResult carrying the topological order when valid.
    """
    issues: List[ValidationIssue] = []

    if not graph.blocks:
        issues.append(ValidationIssue(
            field="blocks",
            message="Block graph must have at least one block",
            code="MIN_COUNT"
        ))
        return ValidationResult(is_valid=False, errors=issues)

    seen: Dict[str, str] = {}
    _collect_structure(graph, "block_graph", seen, issues)
    if issues:
        # Flattening needs unique ids and resolvable edges
        return ValidationResult(is_valid=False, errors=issues)

    flat = flatten_graph(graph)
    cycle = find_cycle([block.id for block in flat.blocks], flat.edges)
    if cycle:
        issues.append(ValidationIssue(
            field="block_graph.connections",
            message=f"Cycle detected: {' -> '.join(cycle)}",
            code="CYCLE"
        ))
        return ValidationResult(is_valid=False, errors=issues)

    parameter_names = set(project_parameters) if project_parameters is not None else None
    _check_references(flat, set(seen), parameter_names, issues)
    if issues:
        return ValidationResult(is_valid=False, errors=issues)

    return ValidationResult(is_valid=True, order=topological_sort(flat))


def build_execution_plan(
    graph: BlockGraph,
    project_parameters: Optional[Iterable[str]] = None
) -> ExecutionPlan:
    """
    Validate a block graph and build its execution plan.

    Raises GraphValidationError if validation fails.
    """
    result = validate_block_graph(graph, project_parameters)
    if not result.is_valid:
        raise GraphValidationError(result.errors)
    return ExecutionPlan(flatten_graph(graph), result.order)
