"""
Footprint and site validation.

Checks report problems as errors (input cannot be used) or warnings (input is
usable, possibly after an automatic fix). Nothing here raises for bad geometry.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from massing.models.building import SiteConfig
from massing.models.mesh import NormalizationMetadata, NormalizationResult
from .geometry import (
    Point2D,
    bounds,
    has_self_intersection,
    polygon_area,
    rotate_to_min_vertex,
    signed_area,
)

DEFAULT_EPSILON = 0.001
SELF_INTERSECTION_CHECK_LIMIT = 100
MAX_RECOMMENDED_POINTS = 200


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _min_area_for(coordinate_system: str) -> float:
    # 1 m^2 in world space, 100 px^2 in image space
    return 1.0 if coordinate_system == "world" else 100.0


def _unit(coordinate_system: str) -> str:
    return "m2" if coordinate_system == "world" else "px2"


def _non_finite(points: Sequence[Point2D]) -> List[str]:
    return [
        f"Point {i} has invalid coordinates: ({p.x}, {p.y})"
        for i, p in enumerate(points)
        if not (math.isfinite(p.x) and math.isfinite(p.y))
    ]


def validate_footprint(points: Sequence[Point2D], coordinate_system: str = "image") -> ValidationResult:
    if len(points) < 3:
        return ValidationResult(False, ["Footprint must have at least 3 points to form a polygon"])

    errors = _non_finite(points)
    if errors:
        return ValidationResult(False, errors)

    warnings: List[str] = []
    area = polygon_area(points)
    if area == 0:
        return ValidationResult(False, ["Footprint has zero area - all points are collinear"], warnings)

    min_area = _min_area_for(coordinate_system)
    if area < min_area:
        warnings.append(
            f"Building footprint is very small ({area:.2f} {_unit(coordinate_system)}). "
            f"Minimum recommended: {min_area} {_unit(coordinate_system)}"
        )

    b = bounds(points)
    if b.width > 0 and b.height > 0:
        aspect = b.width / b.height
        if aspect > 20 or aspect < 0.05:
            warnings.append(f"Building footprint has extreme aspect ratio ({aspect:.2f}:1). "
                            f"This may indicate a drawing error.")

    if len(points) < SELF_INTERSECTION_CHECK_LIMIT and has_self_intersection(points):
        warnings.append("Footprint has self-intersecting edges. This may cause rendering artifacts.")

    if len(points) > MAX_RECOMMENDED_POINTS:
        warnings.append(f"Footprint has {len(points)} points. Consider simplifying for better performance.")

    return ValidationResult(True, [], warnings)


def validate_site_config(site: SiteConfig) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    if not math.isfinite(site.image_width) or site.image_width <= 0:
        errors.append(f"Invalid image width: {site.image_width}. Must be a positive number.")
    if not math.isfinite(site.image_height) or site.image_height <= 0:
        errors.append(f"Invalid image height: {site.image_height}. Must be a positive number.")

    if not math.isfinite(site.scale) or site.scale <= 0:
        errors.append(f"Invalid scale: {site.scale}. Must be a positive number.")
    elif site.scale < 0.01 or site.scale > 100:
        warnings.append(f"Scale {site.scale} m/px is outside typical range (0.01 - 100). Verify this is correct.")

    if not math.isfinite(site.north_angle):
        errors.append(f"Invalid north angle: {site.north_angle}. Must be a number.")
    else:
        normalized = site.north_angle % 360
        if normalized != site.north_angle:
            warnings.append(f"North angle {site.north_angle} will be normalized to {normalized}")

    return ValidationResult(not errors, errors, warnings)


def validate_building_geometry(footprint: Sequence[Point2D], floors: Any, floor_height: float) -> ValidationResult:
    result = validate_footprint(footprint, "image")
    errors = list(result.errors)
    warnings = list(result.warnings)

    if isinstance(floors, bool) or not isinstance(floors, int) or floors < 1:
        errors.append(f"Floor count must be a positive integer, got: {floors}")
    elif floors > 200:
        warnings.append(f"Building has {floors} floors. This seems unusually tall.")

    if not isinstance(floor_height, (int, float)) or not math.isfinite(floor_height) or floor_height <= 0:
        errors.append(f"Floor height must be positive, got: {floor_height}m")
    elif floor_height < 2 or floor_height > 10:
        warnings.append(f"Floor height {floor_height}m is outside typical range (2-10m). "
                        f"Typical values: 3m (residential), 4m (commercial)")

    if not errors:
        total = floors * floor_height
        if total > 1000:
            warnings.append(f"Total building height is {total}m ({floors} x {floor_height}m). This is extremely tall.")

    return ValidationResult(not errors, errors, warnings)


def validate_buildings(buildings: Sequence[Dict[str, Any]], site: SiteConfig) -> List[Dict[str, Any]]:
    """Validate many buildings against one site.

    Each building is a mapping with name, footprint, floors and floor_height.
    """
    site_check = validate_site_config(site)
    if not site_check.valid:
        message = f"Site configuration invalid: {', '.join(site_check.errors)}"
        return [{"building_name": b.get("name"), "validation": ValidationResult(False, [message])}
                for b in buildings]
    return [
        {
            "building_name": b.get("name"),
            "validation": validate_building_geometry(b.get("footprint", []), b.get("floors"), b.get("floor_height")),
        }
        for b in buildings
    ]


def format_validation_message(result: ValidationResult, building_name: Optional[str] = None) -> str:
    prefix = f'Building "{building_name}": ' if building_name else ""
    if result.valid and not result.warnings:
        return f"{prefix}Validation passed"
    parts: List[str] = []
    if result.errors:
        parts.append("ERRORS:\n" + "\n".join(f"  - {e}" for e in result.errors))
    if result.warnings:
        parts.append("WARNINGS:\n" + "\n".join(f"  ! {w}" for w in result.warnings))
    return prefix + "\n" + "\n\n".join(parts)


def validation_severity(result: ValidationResult) -> str:
    if result.errors:
        return "error"
    if result.warnings:
        return "warning"
    return "success"


def remove_duplicate_points(points: Sequence[Point2D], epsilon: float = DEFAULT_EPSILON) -> List[Point2D]:
    """Drop vertices closer than epsilon to their (cyclic) successor."""
    n = len(points)
    if n < 2:
        return list(points)
    eps_sq = epsilon * epsilon
    cleaned: List[Point2D] = []
    for i in range(n):
        cur = points[i]
        nxt = points[(i + 1) % n]
        dx = nxt.x - cur.x
        dy = nxt.y - cur.y
        if dx * dx + dy * dy > eps_sq:
            cleaned.append(cur)
    return cleaned


def winding_order(points: Sequence[Point2D]) -> str:
    """Winding as seen from above the ground plane (y / z axis pointing south, i.e. screen-down).

    A positive standard shoelace sum is clockwise in this frame.
    """
    return "CW" if signed_area(points) > 0 else "CCW"


def normalize_to_ccw(points: Sequence[Point2D]) -> List[Point2D]:
    return list(points) if winding_order(points) == "CCW" else list(reversed(points))


def _metadata(points: Sequence[Point2D], normalized_count: int, duplicates: int,
              area: float = 0.0, winding: str = "CCW", reversed_: bool = False) -> NormalizationMetadata:
    return NormalizationMetadata(
        original_vertex_count=len(points),
        normalized_vertex_count=normalized_count,
        area=area,
        winding_order=winding,
        was_reversed=reversed_,
        duplicates_removed=duplicates,
    )


def normalize_polygon(points: Sequence[Point2D],
                      epsilon: float = DEFAULT_EPSILON,
                      min_area: Optional[float] = None,
                      max_aspect_ratio: float = 100.0,
                      coordinate_system: str = "world") -> NormalizationResult:
    """Orient, dedup and check a polygon for triangulation.

    The normalized ring is CCW and starts at its lexicographically smallest
    vertex, so normalize(P) == normalize(reversed(P)) and normalizing twice
    changes nothing.
    """
    if len(points) < 3:
        return NormalizationResult(False, [], ["Polygon must have at least 3 vertices"], [],
                                   _metadata(points, 0, 0))

    warnings: List[str] = []
    # orient before dedup so a ring and its reverse collapse near-duplicates identically
    original_winding = winding_order(points)
    was_reversed = original_winding == "CW"
    cleaned = remove_duplicate_points(normalize_to_ccw(points), epsilon)
    duplicates = len(points) - len(cleaned)
    if duplicates > 0:
        warnings.append(f"Removed {duplicates} duplicate or near-duplicate vertices")
    if len(cleaned) < 3:
        return NormalizationResult(False, [], ["After removing duplicates, polygon has fewer than 3 vertices"],
                                   warnings, _metadata(points, len(cleaned), duplicates))

    errors = _non_finite(cleaned)
    if errors:
        return NormalizationResult(False, [], errors, warnings, _metadata(points, len(cleaned), duplicates))

    area = polygon_area(cleaned)
    threshold = min_area if min_area is not None else _min_area_for(coordinate_system)
    if area == 0:
        errors.append("Polygon has zero area - all points are collinear")
    elif area < threshold:
        warnings.append(f"Polygon area is very small: {area:.2f} {_unit(coordinate_system)} "
                        f"(minimum recommended: {threshold})")

    if len(cleaned) < SELF_INTERSECTION_CHECK_LIMIT and has_self_intersection(cleaned):
        warnings.append("Polygon has self-intersecting edges (may cause minor rendering artifacts)")

    if was_reversed:
        warnings.append("Polygon winding order was reversed from clockwise to counter-clockwise")
    normalized = rotate_to_min_vertex(cleaned)

    b = bounds(normalized)
    if b.width > 0 and b.height > 0:
        aspect = max(b.width, b.height) / min(b.width, b.height)
        if aspect > max_aspect_ratio:
            warnings.append(f"Polygon has extreme aspect ratio: {aspect:.1f}:1 "
                            f"(maximum recommended: {max_aspect_ratio}:1)")

    valid = not errors
    return NormalizationResult(
        valid=valid,
        normalized=normalized if valid else [],
        errors=errors,
        warnings=warnings,
        metadata=_metadata(points, len(normalized), duplicates, area, original_winding, was_reversed),
    )


__all__ = [
    "ValidationResult",
    "validate_footprint",
    "validate_site_config",
    "validate_building_geometry",
    "validate_buildings",
    "format_validation_message",
    "validation_severity",
    "remove_duplicate_points",
    "winding_order",
    "normalize_to_ccw",
    "normalize_polygon",
]
