from __future__ import annotations

import importlib
import logging
import math
import threading
from collections import deque
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Protocol, Sequence

import cv2
import numpy as np

from massing.settings import get_settings
from .geometry import (
    BoundingBox,
    Point2D,
    bounding_box,
    convex_hull,
    douglas_peucker,
    has_self_intersection,
    is_convex,
    polygon_area,
    vertex_centroid,
)
from .imaging import ImageInput, rgba_from_hex, to_rgba

logger = logging.getLogger(__name__)

DEFAULT_EDGE_COLOR = 0xFFFFFFFF
EDGE_CHANNEL_THRESHOLD = 128
MIN_CONTOUR_PIXELS = 10
MIN_CONTOUR_POINTS = 4
CONTOUR_SIMPLIFY_TOLERANCE = 3.0
MERGE_SIMPLIFY_TOLERANCE = 5.0
RECT_SIMPLIFY_TOLERANCE = 10.0
RECT_MAX_POINTS = 12


class EdgeBackend(Protocol):
    """Native edge routine: RGBA buffer in, same-size RGBA buffer out (edges in color on black)."""

    def detect(self, buffer: np.ndarray, width: int, height: int,
               highlight_color: int, thick_edges: bool) -> np.ndarray:
        ...


class OpenCVEdgeBackend:
    """Canny edge detection backed by OpenCV."""

    def __init__(self, cv2_module, canny_low: int = 50, canny_high: int = 150):
        self._cv2 = cv2_module
        self.canny_low = canny_low
        self.canny_high = canny_high

    def detect(self, buffer: np.ndarray, width: int, height: int,
               highlight_color: int, thick_edges: bool) -> np.ndarray:
        cv2 = self._cv2
        rgba = np.asarray(buffer, dtype=np.uint8).reshape(height, width, 4)
        gray = cv2.cvtColor(rgba, cv2.COLOR_RGBA2GRAY)
        blurred = cv2.GaussianBlur(gray, (3, 3), 0)
        edges = cv2.Canny(blurred, self.canny_low, self.canny_high)
        if thick_edges:
            edges = cv2.dilate(edges, np.ones((3, 3), np.uint8), iterations=1)
        out = np.zeros((height, width, 4), dtype=np.uint8)
        out[:, :, 3] = 255
        out[edges > 0] = rgba_from_hex(highlight_color)
        return out.reshape(-1)


# Process-wide native handle: loaded once, then reused (or known missing) for the process lifetime.
_backend_lock = threading.Lock()
_backend: Optional[EdgeBackend] = None
_backend_loaded = False


def _load_native_backend() -> Optional[EdgeBackend]:
    settings = get_settings()
    if not settings.edge_detection_enable:
        logger.info("Edge detection disabled by configuration")
        return None
    try:
        native = importlib.import_module("cv2")
    except Exception as e:
        logger.warning(f"Native edge detection module failed to load: {e}")
        return None
    return OpenCVEdgeBackend(native, canny_low=settings.canny_low, canny_high=settings.canny_high)


def get_edge_backend() -> Optional[EdgeBackend]:
    global _backend, _backend_loaded
    if _backend_loaded:
        return _backend
    with _backend_lock:
        if not _backend_loaded:
            _backend = _load_native_backend()
            _backend_loaded = True
    return _backend


def set_edge_backend(backend: Optional[EdgeBackend]) -> None:
    """Substitute the edge routine (None disables edge detection)."""
    global _backend, _backend_loaded
    with _backend_lock:
        _backend = backend
        _backend_loaded = True


def reset_edge_backend() -> None:
    """Forget the cached handle; the next call reloads the native module."""
    global _backend, _backend_loaded
    with _backend_lock:
        _backend = None
        _backend_loaded = False


@dataclass
class EdgeMask:
    width: int
    height: int
    edge_pixels: FrozenSet[int]
    edge_image: np.ndarray  # HxWx4 uint8

    def is_edge(self, x: int, y: int) -> bool:
        return (y * self.width + x) in self.edge_pixels


@dataclass
class Contour:
    points: List[Point2D]
    area: float
    bounding_box: BoundingBox
    centroid: Point2D
    is_convex: bool


def detect_edges(image: ImageInput,
                 highlight_color: int = DEFAULT_EDGE_COLOR,
                 use_thick: bool = True,
                 backend: Optional[EdgeBackend] = None) -> Optional[EdgeMask]:
    """Run the native edge routine once over the image.

    Returns None when the routine is unavailable or faults; callers fall back
    to color-only detection.
    """
    rgba = to_rgba(image)
    height, width = rgba.shape[:2]
    if width == 0 or height == 0:
        return None
    backend = backend if backend is not None else get_edge_backend()
    if backend is None:
        return None
    try:
        raw = backend.detect(rgba.reshape(-1), width, height, highlight_color, use_thick)
        edge_image = np.asarray(raw, dtype=np.uint8).reshape(height, width, 4)
    except Exception as e:
        logger.warning(f"Edge detection failed, falling back to color-based detection: {e}")
        return None

    flags = (edge_image[:, :, :3] > EDGE_CHANNEL_THRESHOLD).any(axis=2).reshape(-1)
    edge_pixels = frozenset(int(i) for i in np.flatnonzero(flags))
    logger.debug(f"detect_edges: {len(edge_pixels)} edge pixels in {width}x{height}")
    return EdgeMask(width=width, height=height, edge_pixels=edge_pixels, edge_image=edge_image)


def _make_contour(points: List[Point2D]) -> Contour:
    return Contour(
        points=points,
        area=polygon_area(points),
        bounding_box=bounding_box(points),
        centroid=vertex_centroid(points),
        is_convex=is_convex(points),
    )


def _edge_groups(edge_mask: EdgeMask) -> List[np.ndarray]:
    """8-connected groups of edge pixels as ascending flat index arrays, in scan order."""
    width, height = edge_mask.width, edge_mask.height
    flat = np.zeros(width * height, dtype=np.uint8)
    if edge_mask.edge_pixels:
        flat[np.fromiter(edge_mask.edge_pixels, dtype=np.int64, count=len(edge_mask.edge_pixels))] = 1
    num_labels, labels = cv2.connectedComponents(flat.reshape(height, width), connectivity=8)
    if num_labels <= 1:
        return []
    labels = labels.reshape(-1)
    idx = np.flatnonzero(labels)
    order = np.argsort(labels[idx], kind="stable")
    counts = np.bincount(labels[idx], minlength=num_labels)[1:]
    groups = np.split(idx[order], np.cumsum(counts)[:-1])
    groups.sort(key=lambda g: int(g[0]))
    return groups


def order_contour_points(points: Sequence[Point2D]) -> List[Point2D]:
    """Hull when it has at least 4 vertices, else angle order around the centroid."""
    if len(points) < 3:
        return list(points)
    hull = convex_hull(points)
    if len(hull) >= 4:
        return hull
    c = vertex_centroid(points)
    return sorted(points, key=lambda p: math.atan2(p.y - c.y, p.x - c.x))


def extract_contours_from_edges(edge_mask: EdgeMask,
                                region_mask: Optional[np.ndarray] = None) -> List[Contour]:
    """Group the 8-connected edge pixels into ordered, simplified contours.

    region_mask (flat bool, W*H) keeps only groups with at least one edge
    pixel inside it; the group itself may extend past the region.
    """
    width = edge_mask.width
    region = None
    if region_mask is not None:
        region = np.asarray(region_mask, dtype=bool).reshape(-1)

    contours: List[Contour] = []
    for group in _edge_groups(edge_mask):
        if region is not None and not region[group].any():
            continue
        if len(group) < MIN_CONTOUR_PIXELS:
            continue
        pixels = [Point2D(float(p % width), float(p // width)) for p in group.tolist()]
        ordered = order_contour_points(pixels)
        simplified = douglas_peucker(ordered, CONTOUR_SIMPLIFY_TOLERANCE)
        if len(simplified) < MIN_CONTOUR_POINTS:
            continue
        if has_self_intersection(simplified):
            simplified = bounding_box(simplified).corners()
        contours.append(_make_contour(simplified))
    return contours


def merge_nearby_contours(contours: List[Contour], max_distance: float) -> List[Contour]:
    """Single-link cluster contours whose centroids lie closer than max_distance."""
    if len(contours) < 2:
        return list(contours)

    used = [False] * len(contours)
    merged: List[Contour] = []
    for i in range(len(contours)):
        if used[i]:
            continue
        used[i] = True
        cluster = [i]
        frontier = deque([i])
        while frontier:
            a = contours[frontier.popleft()].centroid
            for j in range(len(contours)):
                if used[j]:
                    continue
                b = contours[j].centroid
                if math.hypot(a.x - b.x, a.y - b.y) < max_distance:
                    used[j] = True
                    cluster.append(j)
                    frontier.append(j)

        if len(cluster) == 1:
            merged.append(contours[i])
            continue
        all_points = [p for k in cluster for p in contours[k].points]
        hull = convex_hull(all_points)
        merged.append(_make_contour(douglas_peucker(hull, MERGE_SIMPLIFY_TOLERANCE)))
    return merged


def find_rectangular_approximation(contour: Contour) -> List[Point2D]:
    """Reduce a contour to a 4-12 vertex building-like outline."""
    hull = convex_hull(contour.points)
    tolerance = RECT_SIMPLIFY_TOLERANCE
    simplified = douglas_peucker(hull, tolerance)
    while len(simplified) > RECT_MAX_POINTS:
        tolerance *= 1.5
        simplified = douglas_peucker(hull, tolerance)
    if len(simplified) < 4:
        return contour.bounding_box.corners()
    return simplified


__all__ = [
    "EdgeBackend",
    "OpenCVEdgeBackend",
    "EdgeMask",
    "Contour",
    "get_edge_backend",
    "set_edge_backend",
    "reset_edge_backend",
    "detect_edges",
    "order_contour_points",
    "extract_contours_from_edges",
    "merge_nearby_contours",
    "find_rectangular_approximation",
]
