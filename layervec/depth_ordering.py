"""Depth ordering of shape layers from shared boundaries and relative area.

Adjacent layers with clearly different areas get a dominance edge from the
larger to the smaller one (the larger shape is assumed to lie behind).
Cycles in that graph are collapsed with Tarjan's strongly connected
components and the condensed DAG is sorted with deterministic tie-breaks,
so the result is always a total order 0 (farthest) .. N-1 (nearest).
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple
import heapq
import logging
import threading

import numpy as np

from layervec.types import (
    DepthOrder,
    DepthOrderingOptions,
    OperationCancelled,
    RasterMask,
    ShapeLayer,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DominanceEdge:
    """Directed edge from a larger (farther) layer to a smaller adjacent one."""
    source: int
    target: int
    area_ratio: float
    shared_boundary: int


@dataclass
class Component:
    """Strongly connected component of the dominance graph."""
    id: int
    members: List[int]
    total_area: int


def shared_boundary_score(first: RasterMask, second: RasterMask) -> int:
    """
    Count 4-neighbour pixel pairs with one pixel in each mask.

    Every pixel of ``first`` contributes one per orthogonal neighbour that
    belongs to ``second``.
    """
    a = first.bits
    b = second.bits
    score = np.count_nonzero(a[:, 1:] & b[:, :-1])    # neighbour to the left
    score += np.count_nonzero(a[:, :-1] & b[:, 1:])   # neighbour to the right
    score += np.count_nonzero(a[1:, :] & b[:-1, :])   # neighbour above
    score += np.count_nonzero(a[:-1, :] & b[1:, :])   # neighbour below
    return int(score)


def area_difference_ratio(area_a: int, area_b: int) -> float:
    larger = max(area_a, area_b)
    if larger == 0:
        return 0.0
    return abs(area_a - area_b) / larger


def build_dominance_edges(layers: Sequence[ShapeLayer], delta: float) -> List[DominanceEdge]:
    """
    Infer pairwise ordering edges between adjacent layers.

    Pairs without a shared boundary, or whose relative area difference is at
    most ``delta``, produce no edge.
    """
    edges = []
    for i in range(len(layers)):
        for j in range(i + 1, len(layers)):
            left = layers[i]
            right = layers[j]

            shared = shared_boundary_score(left.mask, right.mask)
            if shared <= 0:
                continue

            ratio = area_difference_ratio(left.area, right.area)
            if ratio <= delta:
                continue

            if left.area >= right.area:
                edges.append(DominanceEdge(i, j, ratio, shared))
            else:
                edges.append(DominanceEdge(j, i, ratio, shared))
    return edges


def strongly_connected_components(node_count: int, successors: Sequence[Sequence[int]]) -> List[List[int]]:
    """
    Tarjan's algorithm over an index-based graph, without recursion.

    Components are returned in completion order, which is deterministic for
    a given node and successor ordering.
    """
    index_of = [-1] * node_count
    low_link = [0] * node_count
    on_stack = [False] * node_count
    stack: List[int] = []
    components: List[List[int]] = []
    next_index = 0

    for root in range(node_count):
        if index_of[root] != -1:
            continue

        # Work stack of (node, position of the next successor to examine)
        work = [(root, 0)]
        index_of[root] = low_link[root] = next_index
        next_index += 1
        stack.append(root)
        on_stack[root] = True

        while work:
            node, position = work[-1]
            targets = successors[node]

            if position < len(targets):
                work[-1] = (node, position + 1)
                target = targets[position]
                if index_of[target] == -1:
                    index_of[target] = low_link[target] = next_index
                    next_index += 1
                    stack.append(target)
                    on_stack[target] = True
                    work.append((target, 0))
                elif on_stack[target]:
                    low_link[node] = min(low_link[node], index_of[target])
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                low_link[parent] = min(low_link[parent], low_link[node])

            if low_link[node] == index_of[node]:
                members = []
                while True:
                    member = stack.pop()
                    on_stack[member] = False
                    members.append(member)
                    if member == node:
                        break
                components.append(members)

    return components


def topological_component_order(
    components: Sequence[Component],
    component_of: Sequence[int],
    edges: Sequence[DominanceEdge]
) -> List[Component]:
    """
    Sort the condensed DAG, picking the largest, then earliest, ready component.
    """
    successors: List[Set[int]] = [set() for _ in components]
    in_degree = [0] * len(components)

    for edge in edges:
        source = component_of[edge.source]
        target = component_of[edge.target]
        if source == target:
            continue
        if target not in successors[source]:
            successors[source].add(target)
            in_degree[target] += 1

    ready: List[Tuple[int, int]] = [
        (-component.total_area, component.id)
        for component in components
        if in_degree[component.id] == 0
    ]
    heapq.heapify(ready)

    ordered: List[Component] = []
    while ready:
        _, component_id = heapq.heappop(ready)
        ordered.append(components[component_id])
        for target in successors[component_id]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                heapq.heappush(ready, (-components[target].total_area, target))

    if len(ordered) != len(components):
        placed = {component.id for component in ordered}
        remaining = sorted(
            (component for component in components if component.id not in placed),
            key=lambda component: (-component.total_area, component.id),
        )
        logger.warning(
            f"Topological sort left {len(remaining)} components unassigned; "
            "appending them by area"
        )
        ordered.extend(remaining)

    return ordered


def _validate_layers(layers: Sequence[ShapeLayer], options: DepthOrderingOptions):
    if layers is None:
        raise TypeError("layers is required")
    if options is None:
        raise TypeError("options is required")
    if len(layers) == 0:
        raise ValueError("At least one shape layer is required")

    width = layers[0].mask.width
    height = layers[0].mask.height
    seen = set()
    for layer in layers:
        if layer.mask.width != width or layer.mask.height != height:
            raise ValueError("All shape layers must share the same mask dimensions")
        if layer.id in seen:
            raise ValueError(f"Duplicate layer id '{layer.id}'")
        seen.add(layer.id)


def compute_depth_order(
    layers: Sequence[ShapeLayer],
    options: DepthOrderingOptions,
    cancel_event: Optional[threading.Event] = None
) -> DepthOrder:
    """
    Compute a total depth order for the given shape layers.

    Args:
        layers: Shape layers sharing identical mask dimensions
        options: Ordering options (delta threshold)
        cancel_event: Checked once before graph construction

    Returns:
        DepthOrder covering every layer, 0 = farthest

    Raises:
        TypeError: If layers or options is None
        ValueError: If layers is empty, has duplicate ids or mismatched masks
    """
    _validate_layers(layers, options)
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled("Depth ordering was cancelled")

    layers = list(layers)
    delta = options.effective_delta

    edges = build_dominance_edges(layers, delta)
    successors: List[List[int]] = [[] for _ in layers]
    for edge in edges:
        successors[edge.source].append(edge.target)

    member_lists = strongly_connected_components(len(layers), successors)
    component_of = [0] * len(layers)
    components = []
    for component_id, members in enumerate(member_lists):
        for member in members:
            component_of[member] = component_id
        components.append(Component(
            id=component_id,
            members=members,
            total_area=sum(layers[m].area for m in members),
        ))

    cyclic = [c for c in components if len(c.members) > 1]
    if cyclic:
        logger.warning(
            f"Collapsed {len(cyclic)} ordering cycles covering "
            f"{sum(len(c.members) for c in cyclic)} layers"
        )

    depth_by_layer: Dict[str, int] = {}
    next_depth = 0
    for component in topological_component_order(components, component_of, edges):
        members = sorted(component.members, key=lambda m: (-layers[m].area, layers[m].id))
        for member in members:
            depth_by_layer[layers[member].id] = next_depth
            next_depth += 1

    logger.info(
        f"Depth ordering: {len(layers)} layers, {len(edges)} edges, "
        f"{len(components)} components"
    )

    return DepthOrder(depth_by_layer)


class DepthOrderingService:
    """Computes depth orders for shape layer sets."""

    def compute(
        self,
        layers: Sequence[ShapeLayer],
        options: DepthOrderingOptions,
        cancel_event: Optional[threading.Event] = None
    ) -> DepthOrder:
        return compute_depth_order(layers, options, cancel_event=cancel_event)
