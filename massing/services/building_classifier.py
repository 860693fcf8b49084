from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from massing.models.building import DetectedBuilding
from massing.settings import Settings, get_settings
from .edge_detector import (
    Contour,
    EdgeMask,
    extract_contours_from_edges,
    find_rectangular_approximation,
    merge_nearby_contours,
)
from .geometry import BoundingBox, polygon_area
from .region_segmenter import ConnectedComponent

logger = logging.getLogger(__name__)

BUILDING_COLORS = [
    "#3B82F6", "#10B981", "#F59E0B", "#EF4444", "#8B5CF6",
    "#EC4899", "#06B6D4", "#84CC16", "#F97316", "#6366F1",
    "#14B8A6", "#F43F5E", "#A855F7", "#22C55E", "#EAB308",
]


@dataclass
class ClassifierThresholds:
    """Empirically chosen detection heuristics."""
    min_area_fraction: float = 0.001
    max_area_fraction: float = 0.15
    min_aspect_ratio: float = 0.2
    max_aspect_ratio: float = 5.0
    rectangularity_bonus: float = 0.3
    max_confidence: float = 0.95
    min_confidence: float = 0.4
    overlap_threshold: float = 0.3
    refine_padding: int = 10
    merge_distance: float = 20.0
    min_refine_area_ratio: float = 0.3
    centroid_distance_scale: float = 50.0
    row_bands: int = 5

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ClassifierThresholds":
        s = settings or get_settings()
        return cls(
            min_area_fraction=s.min_area_fraction,
            max_area_fraction=s.max_area_fraction,
            min_aspect_ratio=s.min_aspect_ratio,
            max_aspect_ratio=s.max_aspect_ratio,
            min_confidence=s.min_confidence,
            overlap_threshold=s.overlap_threshold,
        )


def building_color(index: int) -> str:
    return BUILDING_COLORS[index % len(BUILDING_COLORS)]


def score_component(component: ConnectedComponent, image_width: int, image_height: int,
                    thresholds: Optional[ClassifierThresholds] = None) -> Optional[float]:
    """Confidence for a building-colored component, or None when it is rejected."""
    t = thresholds or ClassifierThresholds()
    image_area = float(image_width * image_height)
    if image_area <= 0:
        return None
    if component.area < image_area * t.min_area_fraction or component.area > image_area * t.max_area_fraction:
        return None

    bbox = component.bounding_box
    if bbox.width <= 0 or bbox.height <= 0:
        return None
    aspect = bbox.width / bbox.height
    if aspect < t.min_aspect_ratio or aspect > t.max_aspect_ratio:
        return None

    rectangularity = component.area / (bbox.width * bbox.height)
    confidence = min(t.max_confidence, rectangularity + t.rectangularity_bonus)
    if confidence < t.min_confidence:
        return None
    return float(confidence)


def _region_mask(bbox: BoundingBox, padding: int, width: int, height: int) -> np.ndarray:
    mask = np.zeros((height, width), dtype=bool)
    x0 = max(0, int(math.floor(bbox.x)) - padding)
    y0 = max(0, int(math.floor(bbox.y)) - padding)
    x1 = min(width, int(math.ceil(bbox.x + bbox.width)) + padding)
    y1 = min(height, int(math.ceil(bbox.y + bbox.height)) + padding)
    mask[y0:y1, x0:x1] = True
    return mask.reshape(-1)


def refine_outline_with_edges(component: ConnectedComponent, edge_mask: EdgeMask,
                              thresholds: Optional[ClassifierThresholds] = None) -> Optional[Contour]:
    """Best edge contour around the component, reduced to a 4-12 point outline."""
    t = thresholds or ClassifierThresholds()
    bbox = component.bounding_box
    region = _region_mask(bbox, t.refine_padding, edge_mask.width, edge_mask.height)
    contours = extract_contours_from_edges(edge_mask, region)
    if not contours:
        return None
    merged = merge_nearby_contours(contours, t.merge_distance)

    best: Optional[Contour] = None
    best_score = 0.0
    for contour in merged:
        if not bbox.contains(contour.centroid):
            continue
        if contour.area <= component.area * t.min_refine_area_ratio:
            continue
        dist = math.hypot(contour.centroid.x - component.centroid.x,
                          contour.centroid.y - component.centroid.y)
        area_diff = abs(contour.area - component.area) / component.area
        score = (1.0 / (1.0 + dist / t.centroid_distance_scale)) * (1.0 / (1.0 + area_diff))
        if score > best_score:
            best_score = score
            best = contour

    if best is None or len(best.points) < 4:
        return None
    points = find_rectangular_approximation(best)
    return Contour(
        points=points,
        area=polygon_area(points),
        bounding_box=best.bounding_box,
        centroid=best.centroid,
        is_convex=best.is_convex,
    )


def overlap_ratio(a: BoundingBox, b: BoundingBox) -> float:
    """Intersection area over the smaller box's area."""
    x1 = max(a.x, b.x)
    y1 = max(a.y, b.y)
    x2 = min(a.x + a.width, b.x + b.width)
    y2 = min(a.y + a.height, b.y + b.height)
    if x2 <= x1 or y2 <= y1:
        return 0.0
    smaller = min(a.area, b.area)
    if smaller <= 0:
        return 0.0
    return (x2 - x1) * (y2 - y1) / smaller


def remove_overlapping_buildings(buildings: List[DetectedBuilding],
                                 threshold: float = 0.3) -> List[DetectedBuilding]:
    """Greedy duplicate removal, largest first.

    A candidate overlapping kept buildings replaces them when it has higher
    confidence or larger area than each of them; otherwise it is dropped.
    The kept set is pairwise non-overlapping, so a second pass removes nothing.
    """
    ordered = sorted(buildings, key=lambda b: b.area, reverse=True)
    kept: List[DetectedBuilding] = []
    for building in ordered:
        clashes = [k for k in kept if overlap_ratio(building.bounding_box, k.bounding_box) > threshold]
        if not clashes:
            kept.append(building)
            continue
        if all(building.confidence > k.confidence or building.area > k.area for k in clashes):
            kept = [k for k in kept if all(k is not c for c in clashes)]
            kept.append(building)
    return kept


def order_and_name(buildings: List[DetectedBuilding], image_height: float,
                   row_bands: int = 5) -> List[DetectedBuilding]:
    """Sort into centroid-Y row bands then left-to-right, and assign stable ids/names."""
    band_height = image_height / row_bands if image_height > 0 else 1.0

    def key(b: DetectedBuilding):
        return int(math.floor(b.centroid.y / band_height)), b.centroid.x

    ordered = sorted(buildings, key=key)
    for i, b in enumerate(ordered, start=1):
        b.id = f"building-{i}"
        b.suggested_name = f"Tower {i}"
        b.color = building_color(i)
    return ordered


def classify_buildings(components: List[ConnectedComponent],
                       edge_mask: Optional[EdgeMask],
                       image_width: int,
                       image_height: int,
                       thresholds: Optional[ClassifierThresholds] = None) -> List[DetectedBuilding]:
    t = thresholds or ClassifierThresholds()
    candidates: List[DetectedBuilding] = []
    for component in components:
        confidence = score_component(component, image_width, image_height, t)
        if confidence is None:
            continue

        footprint = component.outline
        area = component.area
        if edge_mask is not None:
            refined = refine_outline_with_edges(component, edge_mask, t)
            if refined is not None:
                footprint = refined.points
                area = refined.area

        index = len(candidates) + 1
        candidates.append(DetectedBuilding(
            id=f"building-{index}",
            footprint=list(footprint),
            bounding_box=component.bounding_box,
            area=float(area),
            centroid=component.centroid,
            confidence=confidence,
            suggested_name=f"Building {chr(64 + index) if index <= 26 else index}",
            color=building_color(index),
        ))

    kept = remove_overlapping_buildings(candidates, t.overlap_threshold)
    logger.debug(f"classify_buildings: {len(candidates)} candidates, {len(kept)} after overlap removal")
    return order_and_name(kept, image_height, t.row_bands)


__all__ = [
    "BUILDING_COLORS",
    "ClassifierThresholds",
    "building_color",
    "score_component",
    "refine_outline_with_edges",
    "overlap_ratio",
    "remove_overlapping_buildings",
    "order_and_name",
    "classify_buildings",
]
