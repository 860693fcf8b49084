"""
Coordinate transforms for building footprints.

Frames:
  - image: origin top-left, x right (east), y down (south), pixels
  - world: origin at the image center on the ground, x east, z south, meters.
    The ground plane is stored as Point2D(x, z); height (Y) is added by the mesh builder.
  - local: world frame shifted so the building's vertex centroid is the origin

Pipeline: image -> center -> scale (m/px) -> rotate by north angle -> world -> local.
"""
from __future__ import annotations

import logging
import math
from typing import List, Sequence, Tuple

from massing.models.building import SiteConfig, TransformMetadata, TransformResult
from .geometry import Point2D, vertex_centroid
from .validation import validate_site_config

logger = logging.getLogger(__name__)


def _rotation(north_angle: float) -> Tuple[float, float]:
    rad = math.radians(north_angle)
    return math.cos(rad), math.sin(rad)


def image_to_world(footprint: Sequence[Point2D], site: SiteConfig) -> List[Point2D]:
    cx = site.image_width / 2.0
    cy = site.image_height / 2.0
    cos, sin = _rotation(site.north_angle)
    out: List[Point2D] = []
    for p in footprint:
        mx = (p.x - cx) * site.scale
        mz = (p.y - cy) * site.scale
        out.append(Point2D(mx * cos - mz * sin, mx * sin + mz * cos))
    return out


def world_to_image(footprint: Sequence[Point2D], site: SiteConfig) -> List[Point2D]:
    """Inverse of image_to_world: undo rotation, undo scale, re-add the image center."""
    if site.scale == 0:
        raise ValueError("scale must be non-zero to invert the transform")
    cx = site.image_width / 2.0
    cy = site.image_height / 2.0
    cos, sin = _rotation(site.north_angle)
    out: List[Point2D] = []
    for p in footprint:
        mx = p.x * cos + p.y * sin
        mz = -p.x * sin + p.y * cos
        out.append(Point2D(mx / site.scale + cx, mz / site.scale + cy))
    return out


def world_to_local(footprint: Sequence[Point2D]) -> Tuple[List[Point2D], Point2D]:
    if not footprint:
        return [], Point2D(0.0, 0.0)
    c = vertex_centroid(footprint)
    return [Point2D(p.x - c.x, p.y - c.y) for p in footprint], c


def local_to_image(local: Sequence[Point2D], centroid: Point2D, site: SiteConfig) -> List[Point2D]:
    world = [Point2D(p.x + centroid.x, p.y + centroid.y) for p in local]
    return world_to_image(world, site)


def transform_footprint(footprint: Sequence[Point2D], site: SiteConfig) -> TransformResult:
    """Image-space footprint -> world footprint, local footprint and world centroid.

    Pure: identical inputs give identical outputs. Invalid input comes back
    with valid=False and errors populated instead of raising.
    """
    metadata = TransformMetadata(
        input_points=len(footprint),
        output_points=0,
        applied_rotation=site.north_angle,
        applied_scale=site.scale,
    )
    errors: List[str] = []
    if len(footprint) < 3:
        errors.append("Footprint must have at least 3 points to form a polygon")
    site_check = validate_site_config(site)
    errors.extend(site_check.errors)
    if errors:
        logger.debug(f"transform_footprint rejected input: {errors}")
        return TransformResult(
            world_footprint=[],
            local_footprint=[],
            centroid=Point2D(0.0, 0.0),
            metadata=metadata,
            valid=False,
            errors=errors,
        )

    world = image_to_world(footprint, site)
    local, centroid = world_to_local(world)
    metadata.output_points = len(local)
    return TransformResult(
        world_footprint=world,
        local_footprint=local,
        centroid=centroid,
        metadata=metadata,
    )


__all__ = [
    "image_to_world",
    "world_to_image",
    "world_to_local",
    "local_to_image",
    "transform_footprint",
]
