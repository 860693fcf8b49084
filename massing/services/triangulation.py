"""
Ear-clipping triangulation of simple polygons.

Triangles are returned as a flat index list into the input ring and keep the
ring's own winding, so a counter-clockwise ring (seen from above) yields
upward-facing caps.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from massing.models.mesh import TriangulationRecord
from .geometry import Point2D, cross, polygon_area, signed_area

logger = logging.getLogger(__name__)

DEFAULT_AREA_TOLERANCE = 0.01
DEGENERATE_QUALITY = 0.01
LOW_QUALITY = 0.3


class TriangulationError(ValueError):
    """Raised when a polygon cannot be triangulated."""


@dataclass
class TriangulationCheck:
    valid: bool
    polygon_area: float
    triangulated_area: float
    relative_error: float
    errors: List[str] = field(default_factory=list)


def _point_in_triangle(p: Point2D, a: Point2D, b: Point2D, c: Point2D, orientation: float) -> bool:
    # inclusive of edges; orientation is the ring's signed-area sign
    d1 = cross(a, b, p) * orientation
    d2 = cross(b, c, p) * orientation
    d3 = cross(c, a, p) * orientation
    return d1 >= 0 and d2 >= 0 and d3 >= 0


def _is_ear(points: Sequence[Point2D], ring: List[int], i: int, orientation: float) -> bool:
    n = len(ring)
    ia, ib, ic = ring[(i - 1) % n], ring[i], ring[(i + 1) % n]
    a, b, c = points[ia], points[ib], points[ic]
    if cross(a, b, c) * orientation <= 0:
        return False
    for j in ring:
        if j in (ia, ib, ic):
            continue
        p = points[j]
        # coincident vertices (bridges, touching rings) do not block the ear
        if p == a or p == b or p == c:
            continue
        if _point_in_triangle(p, a, b, c, orientation):
            return False
    return True


def triangulate_polygon(points: Sequence[Point2D]) -> List[int]:
    """Ear clipping for a simple polygon of either orientation.

    Raises TriangulationError for fewer than 3 points, zero area, or when no
    clippable vertex remains.
    """
    n = len(points)
    if n < 3:
        raise TriangulationError("Polygon must have at least 3 vertices")
    area = signed_area(points)
    if area == 0 or not math.isfinite(area):
        raise TriangulationError("Polygon has zero or undefined area")
    orientation = 1.0 if area > 0 else -1.0

    if n == 3:
        return [0, 1, 2]

    ring = list(range(n))
    indices: List[int] = []
    while len(ring) > 3:
        ear = next((i for i in range(len(ring)) if _is_ear(points, ring, i, orientation)), None)
        if ear is None:
            # fall back to any convex vertex before giving up
            ear = next(
                (i for i in range(len(ring))
                 if cross(points[ring[i - 1]], points[ring[i]], points[ring[(i + 1) % len(ring)]]) * orientation > 0),
                None,
            )
        if ear is None:
            raise TriangulationError(f"Failed to find ear in polygon with {len(ring)} remaining vertices")
        m = len(ring)
        indices.extend((ring[(ear - 1) % m], ring[ear], ring[(ear + 1) % m]))
        ring.pop(ear)

    indices.extend(ring)
    return indices


def _triangles(points: Sequence[Point2D], indices: Sequence[int]):
    for t in range(0, len(indices) - 2, 3):
        yield points[indices[t]], points[indices[t + 1]], points[indices[t + 2]]


def validate_triangulation(points: Sequence[Point2D], indices: Sequence[int],
                           tolerance: float = DEFAULT_AREA_TOLERANCE) -> TriangulationCheck:
    """Compare the summed triangle area with the polygon area."""
    errors: List[str] = []
    if len(indices) % 3 != 0:
        errors.append(f"Index count {len(indices)} is not a multiple of 3")
    if any(i < 0 or i >= len(points) for i in indices):
        errors.append("Triangle index out of range")
    if errors:
        return TriangulationCheck(False, polygon_area(points), 0.0, 1.0, errors)

    input_area = polygon_area(points)
    tri_area = sum(abs(cross(a, b, c)) / 2.0 for a, b, c in _triangles(points, indices))
    relative_error = abs(tri_area - input_area) / input_area if input_area > 0 else 0.0
    valid = relative_error <= tolerance
    if not valid:
        errors.append(f"Triangulation area mismatch: input={input_area:.2f}, "
                      f"triangulated={tri_area:.2f}, error={relative_error * 100:.2f}%")
    return TriangulationCheck(valid, input_area, tri_area, relative_error, errors)


def triangulate_with_validation(points: Sequence[Point2D],
                                tolerance: float = DEFAULT_AREA_TOLERANCE) -> TriangulationRecord:
    try:
        indices = triangulate_polygon(points)
    except TriangulationError as e:
        logger.warning(f"Triangulation failed: {e}")
        return TriangulationRecord(indices=[], triangle_count=0, valid=False, errors=[str(e)])
    check = validate_triangulation(points, indices, tolerance)
    return TriangulationRecord(
        indices=indices,
        triangle_count=len(indices) // 3,
        valid=check.valid,
        relative_error=check.relative_error,
        errors=check.errors,
    )


def triangle_quality(a: Point2D, b: Point2D, c: Point2D) -> float:
    """1.0 for an equilateral triangle, 0.0 for a degenerate one."""
    sum_squares = ((b.x - a.x) ** 2 + (b.y - a.y) ** 2
                   + (c.x - b.x) ** 2 + (c.y - b.y) ** 2
                   + (a.x - c.x) ** 2 + (a.y - c.y) ** 2)
    if sum_squares == 0:
        return 0.0
    area = abs(cross(a, b, c)) / 2.0
    return max(0.0, min(1.0, 4.0 * math.sqrt(3.0) * area / sum_squares))


def analyze_triangulation_quality(points: Sequence[Point2D], indices: Sequence[int]) -> Dict[str, float]:
    qualities = [triangle_quality(a, b, c) for a, b, c in _triangles(points, indices)]
    if not qualities:
        return {"min_quality": 0.0, "max_quality": 0.0, "avg_quality": 0.0,
                "degenerate_count": 0, "low_quality_count": 0}
    return {
        "min_quality": min(qualities),
        "max_quality": max(qualities),
        "avg_quality": sum(qualities) / len(qualities),
        "degenerate_count": sum(1 for q in qualities if q < DEGENERATE_QUALITY),
        "low_quality_count": sum(1 for q in qualities if q < LOW_QUALITY),
    }


__all__ = [
    "TriangulationError",
    "TriangulationCheck",
    "triangulate_polygon",
    "validate_triangulation",
    "triangulate_with_validation",
    "triangle_quality",
    "analyze_triangulation_quality",
]
