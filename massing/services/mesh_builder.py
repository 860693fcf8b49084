"""
Building mesh builder.

Extrudes a local footprint (Point2D(x, z), meters, centered on the building)
upward along +Y, one solid per floor, plus roof cap, edge lines and floor
label placeholders. Output is a renderer-agnostic MeshNode tree.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from massing.models.mesh import (
    BuildingMesh,
    LabelPlaceholder,
    LineGeometry,
    MeshBuildResult,
    MeshNode,
    NormalizationMetadata,
    NormalizationResult,
    SolidGeometry,
    TriangulationRecord,
)
from .geometry import Point2D, bounds, vertex_centroid
from .triangulation import TriangulationError, triangulate_polygon, validate_triangulation
from .validation import DEFAULT_EPSILON, normalize_polygon

logger = logging.getLogger(__name__)

FLOOR_COLORS_PASTEL = [
    0x7CB9E8, 0xF4A460, 0x98D8C8, 0xDDA0DD, 0xFFD700,
    0x87CEEB, 0xFFB6C1, 0x90EE90, 0xDEB887, 0xB0C4DE,
    0xFFA07A, 0x98FB98, 0xE6E6FA, 0xFFEFD5, 0xAFEEEE,
]
FLOOR_EDGE_COLOR = 0xBBBBBB
FLOOR_EDGE_COLOR_DARK = 0x999999
FLOOR_COLOR_SELECTED = 0xFBBF24
DEBUG_WIREFRAME_COLOR = 0x00FF00
ROOF_TINT = 0.3
LABEL_BASE_SIZE = (12.0, 6.0)
LABEL_OFFSET = 3.0
REFERENCE_FLOOR_HEIGHT = 3.0


@dataclass
class BuildingMeshOptions:
    floors: int
    floor_height: float
    color: int = FLOOR_COLORS_PASTEL[0]
    show_floor_divisions: bool = True
    show_labels: bool = True
    is_selected: bool = False
    selected_floor: Optional[int] = None
    floor_opacity: float = 0.99
    epsilon: float = DEFAULT_EPSILON
    min_area: Optional[float] = None
    max_aspect_ratio: float = 100.0

    def errors(self) -> List[str]:
        errs: List[str] = []
        if isinstance(self.floors, bool) or not isinstance(self.floors, int) or self.floors < 1:
            errs.append(f"floors must be an integer >= 1, got {self.floors!r}")
        if (not isinstance(self.floor_height, (int, float)) or not math.isfinite(self.floor_height)
                or self.floor_height <= 0):
            errs.append(f"floor_height must be a positive number, got {self.floor_height!r}")
        return errs


def floor_color(floor: int) -> int:
    return FLOOR_COLORS_PASTEL[(floor - 1) % len(FLOOR_COLORS_PASTEL)]


def lighten(color: int, amount: float) -> int:
    """Linear blend of a 0xRRGGBB color toward white."""
    out = 0
    for shift in (16, 8, 0):
        c = (color >> shift) & 0xFF
        c = int(round(c + (255 - c) * amount))
        out |= min(255, c) << shift
    return out


def show_floor_label(floor: int, floors: int, selected: bool) -> bool:
    return (floor == 1 or floor == floors or selected
            or (floors > 10 and floor % 5 == 0) or floors <= 10)


def _cap(points: Sequence[Point2D], tri: Sequence[int], y: float, up: bool):
    positions = [(p.x, y, p.y) for p in points]
    normal = (0.0, 1.0 if up else -1.0, 0.0)
    normals = [normal] * len(points)
    if up:
        indices = list(tri)
    else:
        indices = []
        for t in range(0, len(tri), 3):
            indices.extend((tri[t], tri[t + 2], tri[t + 1]))
    return positions, normals, indices


def _walls(points: Sequence[Point2D], y0: float, y1: float):
    """One quad per edge, outward facing for a counter-clockwise ring."""
    positions: List[Tuple[float, float, float]] = []
    normals: List[Tuple[float, float, float]] = []
    indices: List[int] = []
    n = len(points)
    for i in range(n):
        p1 = points[i]
        p2 = points[(i + 1) % n]
        dx = p2.x - p1.x
        dz = p2.y - p1.y
        length = math.hypot(dx, dz)
        if length == 0:
            continue
        normal = (-dz / length, 0.0, dx / length)
        base = len(positions)
        positions.extend([
            (p1.x, y0, p1.y),
            (p2.x, y0, p2.y),
            (p2.x, y1, p2.y),
            (p1.x, y1, p1.y),
        ])
        normals.extend([normal] * 4)
        indices.extend((base, base + 1, base + 2, base, base + 2, base + 3))
    return positions, normals, indices


def _solid(name: str, parts, color: int, opacity: float) -> SolidGeometry:
    positions: List[Tuple[float, float, float]] = []
    normals: List[Tuple[float, float, float]] = []
    indices: List[int] = []
    for pos, nrm, idx in parts:
        offset = len(positions)
        positions.extend(pos)
        normals.extend(nrm)
        indices.extend(i + offset for i in idx)
    return SolidGeometry(
        name=name,
        positions=np.asarray(positions, dtype=np.float32).reshape(-1, 3),
        normals=np.asarray(normals, dtype=np.float32).reshape(-1, 3),
        indices=np.asarray(indices, dtype=np.uint32),
        color=color,
        opacity=opacity,
    )


def _outline(name: str, points: Sequence[Point2D], y: float, color: int) -> LineGeometry:
    loop = [(p.x, y, p.y) for p in points]
    loop.append(loop[0])
    return LineGeometry(name=name, points=np.asarray(loop, dtype=np.float32), color=color, strip=True)


def _vertical_edges(name: str, points: Sequence[Point2D], y0: float, y1: float, color: int) -> LineGeometry:
    segs = []
    for p in points:
        segs.append((p.x, y0, p.y))
        segs.append((p.x, y1, p.y))
    return LineGeometry(name=name, points=np.asarray(segs, dtype=np.float32).reshape(-1, 3),
                        color=color, strip=False)


def _floor_label(points: Sequence[Point2D], floor: int, mid_y: float, floor_height: float,
                 selected: bool) -> LabelPlaceholder:
    scale = max(1.0, floor_height / REFERENCE_FLOOR_HEIGHT)
    b = bounds(points)
    center = vertex_centroid(points)
    return LabelPlaceholder(
        name=f"FloorLabel_{floor}",
        text=str(floor),
        position=(b.max_x + LABEL_OFFSET * scale, mid_y, center.y),
        size=(LABEL_BASE_SIZE[0] * scale, LABEL_BASE_SIZE[1] * scale),
        highlighted=selected,
    )


def _invalid_validation(local_footprint: Sequence[Point2D], errors: List[str]) -> NormalizationResult:
    return NormalizationResult(
        valid=False,
        normalized=[],
        errors=list(errors),
        warnings=[],
        metadata=NormalizationMetadata(
            original_vertex_count=len(local_footprint),
            normalized_vertex_count=0,
            area=0.0,
            winding_order="CCW",
            was_reversed=False,
            duplicates_removed=0,
        ),
    )


def _empty_result(validation: NormalizationResult, errors: List[str]) -> MeshBuildResult:
    return MeshBuildResult(
        mesh=BuildingMesh(root=MeshNode(name="Building")),
        validation=validation,
        triangulation=TriangulationRecord(indices=[], triangle_count=0, valid=False, errors=list(errors)),
    )


def _extrude(points: List[Point2D], tri: List[int], options: BuildingMeshOptions) -> BuildingMesh:
    floors = options.floors
    h = float(options.floor_height)
    total = floors * h
    root = MeshNode(name="Building")

    for floor in range(1, floors + 1):
        y0 = (floor - 1) * h
        y1 = floor * h
        selected = options.is_selected and options.selected_floor == floor
        color = FLOOR_COLOR_SELECTED if selected else floor_color(floor)

        node = MeshNode(name=f"Floor_{floor}")
        node.solids.append(_solid(
            f"Floor_{floor}",
            [_cap(points, tri, y0, up=False), _cap(points, tri, y1, up=True), _walls(points, y0, y1)],
            color,
            options.floor_opacity,
        ))
        if options.show_floor_divisions:
            edge_color = FLOOR_COLOR_SELECTED if selected else FLOOR_EDGE_COLOR
            node.lines.append(_outline(f"FloorEdge_{floor}", points, y1, edge_color))
        if options.show_labels and show_floor_label(floor, floors, selected):
            node.labels.append(_floor_label(points, floor, (y0 + y1) / 2.0, h, selected))
        root.children.append(node)

    root.lines.append(_outline("BaseEdge", points, 0.0, FLOOR_EDGE_COLOR_DARK))
    root.lines.append(_vertical_edges("VerticalEdges", points, 0.0, total, FLOOR_EDGE_COLOR_DARK))

    # roof sits exactly on the top floor cap so the reported height stays floors * floor_height
    roof = MeshNode(name="Roof")
    roof.solids.append(_solid("Roof", [_cap(points, tri, total, up=True)],
                              lighten(options.color, ROOF_TINT), 1.0))
    root.children.append(roof)
    return BuildingMesh(root=root, floors=floors, floor_height=h)


def build_building_mesh(local_footprint: Sequence[Point2D], options: BuildingMeshOptions) -> MeshBuildResult:
    """Normalize, triangulate and extrude a local footprint floor by floor.

    Never raises. Invalid footprints or options, and triangulation failures,
    come back as an empty mesh with errors in the validation / triangulation
    records.
    """
    option_errors = options.errors()
    if option_errors:
        return _empty_result(_invalid_validation(local_footprint, option_errors), option_errors)

    validation = normalize_polygon(
        local_footprint,
        epsilon=options.epsilon,
        min_area=options.min_area,
        max_aspect_ratio=options.max_aspect_ratio,
        coordinate_system="world",
    )
    if not validation.valid:
        logger.debug(f"build_building_mesh rejected footprint: {validation.errors}")
        return _empty_result(validation, validation.errors)

    points = validation.normalized
    try:
        tri = triangulate_polygon(points)
    except TriangulationError as e:
        logger.warning(f"Triangulation failed for {len(points)}-vertex footprint: {e}")
        return _empty_result(validation, [str(e)])

    check = validate_triangulation(points, tri)
    if not check.valid:
        logger.warning(f"Triangulation area check failed: {check.errors}")

    try:
        mesh = _extrude(points, tri, options)
    except Exception as e:
        logger.exception(f"Mesh extrusion failed: {e}")
        return _empty_result(validation, [f"Mesh extrusion failed: {e}"])

    return MeshBuildResult(
        mesh=mesh,
        validation=validation,
        triangulation=TriangulationRecord(
            indices=tri,
            triangle_count=len(tri) // 3,
            valid=check.valid,
            relative_error=check.relative_error,
            errors=check.errors,
        ),
    )


def create_debug_wireframe(footprint: Sequence[Point2D], height: float) -> LineGeometry:
    """Base outline, top outline and vertical edges as one segment list."""
    segs: List[Tuple[float, float, float]] = []
    n = len(footprint)
    for y in (0.0, float(height)):
        for i in range(n):
            p1 = footprint[i]
            p2 = footprint[(i + 1) % n]
            segs.append((p1.x, y, p1.y))
            segs.append((p2.x, y, p2.y))
    for p in footprint:
        segs.append((p.x, 0.0, p.y))
        segs.append((p.x, float(height), p.y))
    return LineGeometry(
        name="DebugWireframe",
        points=np.asarray(segs, dtype=np.float32).reshape(-1, 3),
        color=DEBUG_WIREFRAME_COLOR,
        strip=False,
    )


__all__ = [
    "FLOOR_COLORS_PASTEL",
    "FLOOR_COLOR_SELECTED",
    "BuildingMeshOptions",
    "floor_color",
    "lighten",
    "show_floor_label",
    "build_building_mesh",
    "create_debug_wireframe",
]
