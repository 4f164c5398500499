"""Pixel-grid boundary tracing with winding-based outer/hole separation."""
from typing import Dict, List, Sequence, Set, Tuple
import logging

import numpy as np

from layervec.types import Point, SegmentationError

logger = logging.getLogger(__name__)

Vertex = Tuple[int, int]

# Directions in image coordinates (y grows downward).
EAST, SOUTH, WEST, NORTH = 0, 1, 2, 3
_STEP = {
    EAST: (1, 0),
    SOUTH: (0, 1),
    WEST: (-1, 0),
    NORTH: (0, -1),
}
_FIRST_STEP_PREFERENCE = (EAST, SOUTH, WEST, NORTH)

COLLINEAR_EPSILON = 1e-6


def turn_left(direction: int) -> int:
    return (direction + 3) & 3


def turn_right(direction: int) -> int:
    return (direction + 1) & 3


def turn_back(direction: int) -> int:
    return (direction + 2) & 3


def build_boundary_edges(
    pixels: Sequence[int],
    mask: np.ndarray,
    width: int,
    height: int
) -> Dict[Vertex, Dict[int, Vertex]]:
    """
    Emit a directed unit edge for every pixel side facing outside the component.

    Edges keep the component interior on the right-hand side of travel
    (top sides run east, right sides south, bottom sides west, left sides
    north), so they chain into closed loops.

    Args:
        pixels: Flat row-major indices of the component pixels
        mask: Flat bool array, True for component pixels
        width: Image width
        height: Image height

    Returns:
        Mapping vertex -> {direction: target vertex}
    """
    edges: Dict[Vertex, Dict[int, Vertex]] = {}

    def has_pixel(x: int, y: int) -> bool:
        if x < 0 or y < 0 or x >= width or y >= height:
            return False
        return bool(mask[y * width + x])

    def add_edge(start: Vertex, direction: int):
        dx, dy = _STEP[direction]
        edges.setdefault(start, {})[direction] = (start[0] + dx, start[1] + dy)

    for index in pixels:
        px = index % width
        py = index // width

        if not has_pixel(px, py - 1):
            add_edge((px, py), EAST)
        if not has_pixel(px + 1, py):
            add_edge((px + 1, py), SOUTH)
        if not has_pixel(px, py + 1):
            add_edge((px + 1, py + 1), WEST)
        if not has_pixel(px - 1, py):
            add_edge((px, py + 1), NORTH)

    return edges


def extract_loops(edges: Dict[Vertex, Dict[int, Vertex]]) -> List[List[Vertex]]:
    """
    Walk the directed edge set into closed vertex loops.

    Each walk starts at the lowest (y, x) vertex that still has an unvisited
    outgoing edge and prefers, at every vertex, turning left, going straight,
    turning right and finally reversing. Every edge is consumed exactly once.

    Raises:
        SegmentationError: If there are no edges or a walk cannot close
    """
    total_edges = sum(len(outgoing) for outgoing in edges.values())
    if total_edges == 0:
        raise SegmentationError("Component boundary could not be constructed")

    visited: Set[Tuple[Vertex, int]] = set()
    loops: List[List[Vertex]] = []

    for start in sorted(edges, key=lambda v: (v[1], v[0])):
        while _has_unvisited(edges, visited, start):
            loops.append(_walk_loop(edges, visited, start, total_edges))

    if len(visited) != total_edges:
        raise SegmentationError(
            f"Boundary tracing consumed {len(visited)} of {total_edges} edges"
        )

    return loops


def _has_unvisited(edges, visited, vertex: Vertex) -> bool:
    return any((vertex, d) not in visited for d in edges.get(vertex, ()))


def _select_next(edges, visited, vertex: Vertex, preference) -> Tuple[Vertex, int]:
    outgoing = edges.get(vertex)
    if outgoing:
        for direction in preference:
            if direction in outgoing and (vertex, direction) not in visited:
                visited.add((vertex, direction))
                return outgoing[direction], direction
    raise SegmentationError(f"Failed to advance boundary tracing at vertex {vertex}")


def _walk_loop(edges, visited, start: Vertex, total_edges: int) -> List[Vertex]:
    loop = [start]
    current, direction = _select_next(edges, visited, start, _FIRST_STEP_PREFERENCE)
    steps = 1

    while current != start:
        if steps > total_edges:
            raise SegmentationError("Boundary tracing did not close after visiting all edges")
        loop.append(current)
        preference = (turn_left(direction), direction, turn_right(direction), turn_back(direction))
        current, direction = _select_next(edges, visited, current, preference)
        steps += 1

    return loop


def signed_area(points: Sequence[Tuple[float, float]]) -> float:
    """
    Shoelace area of a closed polygon.

    Positive for loops that keep the interior on the right in image
    coordinates, i.e. counter-clockwise in the y-up convention.
    """
    count = len(points)
    if count < 3:
        return 0.0
    total = 0.0
    for i in range(count):
        x1, y1 = points[i]
        x2, y2 = points[(i + 1) % count]
        total += x1 * y2 - x2 * y1
    return total / 2.0


def remove_collinear_vertices(points: Sequence[Vertex]) -> List[Vertex]:
    """
    Drop vertices lying on a straight run between their neighbours.

    A vertex is removed when the incoming and outgoing edge vectors are
    collinear and point the same way; corners and reversals are kept.

    Raises:
        SegmentationError: If fewer than three vertices survive
    """
    count = len(points)
    if count <= 3:
        result = list(points)
    else:
        result = []
        for i in range(count):
            px, py = points[(i - 1) % count]
            cx, cy = points[i]
            nx, ny = points[(i + 1) % count]

            v1x, v1y = cx - px, cy - py
            v2x, v2y = nx - cx, ny - cy
            cross = v1x * v2y - v1y * v2x
            dot = v1x * v2x + v1y * v2y

            if abs(cross) <= COLLINEAR_EPSILON and dot > 0:
                continue
            if result and result[-1] == (cx, cy):
                continue
            result.append((cx, cy))

    if len(result) < 3:
        raise SegmentationError(
            f"Boundary must include at least three vertices, got {len(result)}"
        )
    return result


def trace_component(
    pixels: Sequence[int],
    mask: np.ndarray,
    width: int,
    height: int
) -> Tuple[Tuple[Point, ...], List[Tuple[Point, ...]]]:
    """
    Trace the outer boundary and holes of one connected component.

    Args:
        pixels: Flat row-major indices of the component pixels
        mask: Flat bool array of the component
        width: Image width
        height: Image height

    Returns:
        Tuple of (outer, holes): the outer loop has positive signed area,
        every hole negative signed area. Collinear vertices are removed.

    Raises:
        SegmentationError: If tracing yields no edges, no positive loop or a
            degenerate simplification
    """
    if len(pixels) == 0:
        raise SegmentationError("Component must contain at least one pixel")

    edges = build_boundary_edges(pixels, mask, width, height)
    loops = extract_loops(edges)

    outer = None
    outer_area = 0.0
    holes = []
    for loop in loops:
        area = signed_area(loop)
        if area > outer_area:
            if outer is not None:
                logger.warning(
                    f"Dropping extra positive boundary loop with area {outer_area:.1f}"
                )
            outer, outer_area = loop, area
        elif area > 0:
            logger.warning(f"Dropping extra positive boundary loop with area {area:.1f}")
        elif area < 0:
            holes.append(loop)

    if outer is None:
        raise SegmentationError("No outer boundary loop with positive area was found")

    outer_points = remove_collinear_vertices(outer)
    hole_polygons = []
    for hole in holes:
        simplified = remove_collinear_vertices(hole)
        if signed_area(simplified) > 0:
            simplified.reverse()
        hole_polygons.append(_to_points(simplified))

    logger.debug(
        f"Traced component of {len(pixels)} px: {len(outer_points)} outer vertices, "
        f"{len(hole_polygons)} holes"
    )

    return _to_points(outer_points), hole_polygons


def _to_points(vertices: Sequence[Vertex]) -> Tuple[Point, ...]:
    return tuple(Point(x, y) for x, y in vertices)
