from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import cv2
import numpy as np

from .geometry import (
    BoundingBox,
    Point2D,
    douglas_peucker,
    has_self_intersection,
)
from .imaging import ImageInput, to_rgba

logger = logging.getLogger(__name__)

MIN_COMPONENT_PIXELS = 50
OUTLINE_SIMPLIFY_TOLERANCE = 5.0
TRACE_ITERATION_FACTOR = 4

# Moore neighbourhood, clockwise in image space starting at "right".
_DIRECTIONS: Tuple[Tuple[int, int], ...] = (
    (1, 0),    # right
    (1, 1),    # right-down
    (0, 1),    # down
    (-1, 1),   # left-down
    (-1, 0),   # left
    (-1, -1),  # left-up
    (0, -1),   # up
    (1, -1),   # right-up
)


@dataclass(frozen=True)
class ColorRange:
    """Inclusive per-channel RGB range."""
    r: Tuple[int, int]
    g: Tuple[int, int]
    b: Tuple[int, int]


COLOR_PROFILES: Dict[str, Dict[str, ColorRange]] = {
    "building": {
        "white": ColorRange(r=(200, 255), g=(200, 255), b=(200, 255)),
        "light_gray": ColorRange(r=(180, 220), g=(180, 220), b=(180, 220)),
        "cream": ColorRange(r=(230, 255), g=(220, 250), b=(200, 240)),
    },
}


@dataclass
class ConnectedComponent:
    pixels: np.ndarray  # flat indices y*W + x, ascending
    outline: List[Point2D]
    bounding_box: BoundingBox
    area: float
    centroid: Point2D


def create_color_mask(image: ImageInput, ranges: Sequence[ColorRange]) -> np.ndarray:
    """Flat (H*W) boolean mask of pixels falling inside any of the ranges."""
    rgba = to_rgba(image)
    r = rgba[:, :, 0]
    g = rgba[:, :, 1]
    b = rgba[:, :, 2]
    mask = np.zeros(r.shape, dtype=bool)
    for cr in ranges:
        mask |= ((r >= cr.r[0]) & (r <= cr.r[1])
                 & (g >= cr.g[0]) & (g <= cr.g[1])
                 & (b >= cr.b[0]) & (b <= cr.b[1]))
    return mask.reshape(-1)


def _bbox_outline(min_x: int, min_y: int, max_x: int, max_y: int) -> List[Point2D]:
    return [
        Point2D(float(min_x), float(min_y)),
        Point2D(float(max_x), float(min_y)),
        Point2D(float(max_x), float(max_y)),
        Point2D(float(min_x), float(max_y)),
    ]


def trace_boundary(component: np.ndarray, min_x: int, min_y: int) -> List[Point2D]:
    """Moore-neighbourhood boundary trace from the topmost-then-leftmost pixel.

    component is the boolean crop of one region's bounding box, placed at
    (min_x, min_y) in the image. Stops when the start pixel recurs or after 4x
    the pixel count; traces shorter than 4 points degrade to the bounding
    rectangle.
    """
    crop_h, crop_w = component.shape
    max_x = min_x + crop_w - 1
    max_y = min_y + crop_h - 1
    # local grid with a one pixel empty border
    grid = np.pad(np.asarray(component, dtype=bool), 1)
    gh, gw = grid.shape

    filled = np.argwhere(grid)
    if filled.size == 0:
        return _bbox_outline(min_x, min_y, max_x, max_y)
    # argwhere is row-major: first hit is topmost, then leftmost
    start_y, start_x = int(filled[0][0]), int(filled[0][1])

    outline: List[Point2D] = []
    x, y = start_x, start_y
    direction = 7
    max_iterations = len(filled) * TRACE_ITERATION_FACTOR
    iterations = 0
    while True:
        outline.append(Point2D(float(x + min_x - 1), float(y + min_y - 1)))
        found = False
        for i in range(8):
            check = (direction + 5 + i) % 8  # start from back-left
            dx, dy = _DIRECTIONS[check]
            nx, ny = x + dx, y + dy
            if 0 <= nx < gw and 0 <= ny < gh and grid[ny, nx]:
                x, y = nx, ny
                direction = check
                found = True
                break
        if not found:
            break
        iterations += 1
        if (x == start_x and y == start_y) or iterations >= max_iterations:
            break

    if len(outline) < 4:
        return _bbox_outline(min_x, min_y, max_x, max_y)
    return outline


def simplify_outline(outline: List[Point2D], epsilon: float = OUTLINE_SIMPLIFY_TOLERANCE) -> List[Point2D]:
    simplified = douglas_peucker(outline, epsilon)
    # the trace ends one step before its start; drop that closing point
    if len(simplified) > 3:
        first, last = simplified[0], simplified[-1]
        if abs(first.x - last.x) <= 1 and abs(first.y - last.y) <= 1:
            simplified = simplified[:-1]
    return simplified if len(simplified) >= 3 else outline


def find_connected_components(mask: np.ndarray, width: int, height: int,
                              min_pixels: int = MIN_COMPONENT_PIXELS) -> List[ConnectedComponent]:
    """4-connected labeling of a flat boolean mask.

    Components with min_pixels or fewer pixels are dropped. The rest come back
    in scan order of their first pixel.
    """
    if width <= 0 or height <= 0:
        return []
    flat = np.asarray(mask, dtype=bool).reshape(-1)
    total = width * height
    if flat.shape[0] != total:
        raise ValueError(f"mask has {flat.shape[0]} entries, expected {total}")

    bin_img = np.ascontiguousarray(flat.reshape(height, width), dtype=np.uint8)
    num_labels, labels, stats, centroids = cv2.connectedComponentsWithStats(bin_img, connectivity=4)

    components: List[ConnectedComponent] = []
    for k in range(1, num_labels):
        area = int(stats[k, cv2.CC_STAT_AREA])
        if area <= min_pixels:
            continue
        min_x = int(stats[k, cv2.CC_STAT_LEFT])
        min_y = int(stats[k, cv2.CC_STAT_TOP])
        max_x = min_x + int(stats[k, cv2.CC_STAT_WIDTH]) - 1
        max_y = min_y + int(stats[k, cv2.CC_STAT_HEIGHT]) - 1

        crop = labels[min_y:max_y + 1, min_x:max_x + 1] == k
        ys, xs = np.nonzero(crop)
        pixels = (ys + min_y).astype(np.int64) * width + (xs + min_x)

        outline = trace_boundary(crop, min_x, min_y)
        simplified = simplify_outline(outline)
        if has_self_intersection(simplified):
            logger.debug(f"self-intersecting outline at ({min_x},{min_y}); using bounding box")
            simplified = _bbox_outline(min_x, min_y, max_x, max_y)

        cx, cy = centroids[k]
        components.append(ConnectedComponent(
            pixels=pixels,
            outline=simplified,
            bounding_box=BoundingBox(float(min_x), float(min_y), float(max_x - min_x), float(max_y - min_y)),
            area=float(area),
            centroid=Point2D(float(cx), float(cy)),
        ))

    components.sort(key=lambda c: int(c.pixels[0]))
    logger.debug(f"find_connected_components: {len(components)} of {num_labels - 1} components kept")
    return components


def segment_regions(image: ImageInput, ranges: Sequence[ColorRange],
                    min_pixels: int = MIN_COMPONENT_PIXELS) -> List[ConnectedComponent]:
    """Color mask + labeling in one step for a single semantic class."""
    rgba = to_rgba(image)
    height, width = rgba.shape[:2]
    if width == 0 or height == 0:
        return []
    mask = create_color_mask(rgba, ranges)
    return find_connected_components(mask, width, height, min_pixels=min_pixels)


__all__ = [
    "ColorRange",
    "COLOR_PROFILES",
    "ConnectedComponent",
    "create_color_mask",
    "trace_boundary",
    "simplify_outline",
    "find_connected_components",
    "segment_regions",
]
