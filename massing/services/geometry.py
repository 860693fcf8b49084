from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple


@dataclass(frozen=True)
class Point2D:
    """2D point. Pixel, world-meter or local-meter depending on the caller."""
    x: float
    y: float

    def as_tuple(self) -> Tuple[float, float]:
        return self.x, self.y


@dataclass
class BoundingBox:
    """Axis-aligned bounding box in image pixel space."""
    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> float:
        if self.height == 0:
            return math.inf
        return self.width / self.height

    def contains(self, p: Point2D) -> bool:
        return (self.x <= p.x <= self.x + self.width
                and self.y <= p.y <= self.y + self.height)

    def corners(self) -> List[Point2D]:
        return [
            Point2D(self.x, self.y),
            Point2D(self.x + self.width, self.y),
            Point2D(self.x + self.width, self.y + self.height),
            Point2D(self.x, self.y + self.height),
        ]


@dataclass
class Bounds2D:
    """Min/max extent of a polygon in any frame."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


def to_points(coords: Iterable[Sequence[float]]) -> List[Point2D]:
    return [Point2D(float(c[0]), float(c[1])) for c in coords]


def to_coords(points: Iterable[Point2D]) -> List[Tuple[float, float]]:
    return [(p.x, p.y) for p in points]


def cross(o: Point2D, a: Point2D, b: Point2D) -> float:
    return (a.x - o.x) * (b.y - o.y) - (a.y - o.y) * (b.x - o.x)


def signed_area(points: Sequence[Point2D]) -> float:
    """Shoelace sum / 2. Positive for x-right/y-up counter-clockwise order."""
    n = len(points)
    if n < 3:
        return 0.0
    acc = 0.0
    for i in range(n):
        p = points[i]
        q = points[(i + 1) % n]
        acc += p.x * q.y - q.x * p.y
    return acc / 2.0


def polygon_area(points: Sequence[Point2D]) -> float:
    return abs(signed_area(points))


def vertex_centroid(points: Sequence[Point2D]) -> Point2D:
    """Arithmetic mean of the vertices (not the area centroid)."""
    if not points:
        return Point2D(0.0, 0.0)
    n = len(points)
    return Point2D(sum(p.x for p in points) / n, sum(p.y for p in points) / n)


def bounding_box(points: Sequence[Point2D]) -> BoundingBox:
    if not points:
        return BoundingBox(0.0, 0.0, 0.0, 0.0)
    b = bounds(points)
    return BoundingBox(b.min_x, b.min_y, b.width, b.height)


def bounds(points: Sequence[Point2D]) -> Bounds2D:
    if not points:
        return Bounds2D(0.0, 0.0, 0.0, 0.0)
    xs = [p.x for p in points]
    ys = [p.y for p in points]
    return Bounds2D(min(xs), min(ys), max(xs), max(ys))


def convex_hull(points: Sequence[Point2D]) -> List[Point2D]:
    """Graham scan around the lowest (then leftmost) point."""
    if len(points) < 3:
        return list(points)

    pivot_idx = 0
    for i in range(1, len(points)):
        p, q = points[i], points[pivot_idx]
        if p.y < q.y or (p.y == q.y and p.x < q.x):
            pivot_idx = i
    pivot = points[pivot_idx]

    rest = [p for i, p in enumerate(points) if i != pivot_idx]
    rest.sort(key=lambda p: (math.atan2(p.y - pivot.y, p.x - pivot.x),
                             math.hypot(p.x - pivot.x, p.y - pivot.y)))

    hull: List[Point2D] = [pivot]
    for p in rest:
        while len(hull) > 1 and cross(hull[-2], hull[-1], p) <= 0:
            hull.pop()
        hull.append(p)
    return hull


def perpendicular_distance(p: Point2D, start: Point2D, end: Point2D) -> float:
    dx = end.x - start.x
    dy = end.y - start.y
    if dx == 0 and dy == 0:
        return math.hypot(p.x - start.x, p.y - start.y)
    t = ((p.x - start.x) * dx + (p.y - start.y) * dy) / (dx * dx + dy * dy)
    t = max(0.0, min(1.0, t))
    return math.hypot(p.x - (start.x + t * dx), p.y - (start.y + t * dy))


def douglas_peucker(points: Sequence[Point2D], epsilon: float) -> List[Point2D]:
    """Ramer-Douglas-Peucker reduction of an open polyline.

    Iterative so that long boundary traces do not hit the recursion limit.
    Endpoints are always kept.
    """
    n = len(points)
    if n < 3:
        return list(points)
    keep = [False] * n
    keep[0] = keep[n - 1] = True
    stack = [(0, n - 1)]
    while stack:
        lo, hi = stack.pop()
        if hi - lo < 2:
            continue
        max_dist = 0.0
        max_idx = lo
        for i in range(lo + 1, hi):
            d = perpendicular_distance(points[i], points[lo], points[hi])
            if d > max_dist:
                max_dist = d
                max_idx = i
        if max_dist > epsilon:
            keep[max_idx] = True
            stack.append((lo, max_idx))
            stack.append((max_idx, hi))
    return [p for p, k in zip(points, keep) if k]


def is_convex(points: Sequence[Point2D]) -> bool:
    n = len(points)
    if n < 3:
        return True
    sign = 0
    for i in range(n):
        c = cross(points[i], points[(i + 1) % n], points[(i + 2) % n])
        if c == 0:
            continue
        s = 1 if c > 0 else -1
        if sign == 0:
            sign = s
        elif s != sign:
            return False
    return True


def segments_intersect(p1: Point2D, p2: Point2D, p3: Point2D, p4: Point2D) -> bool:
    def ccw(a: Point2D, b: Point2D, c: Point2D) -> bool:
        return (c.y - a.y) * (b.x - a.x) > (b.y - a.y) * (c.x - a.x)

    return ccw(p1, p3, p4) != ccw(p2, p3, p4) and ccw(p1, p2, p3) != ccw(p1, p2, p4)


def has_self_intersection(points: Sequence[Point2D]) -> bool:
    """True when two non-adjacent edges of the closed polygon cross."""
    n = len(points)
    if n < 4:
        return False
    for i in range(n):
        a, b = points[i], points[(i + 1) % n]
        for j in range(i + 2, n):
            # first and last edge share vertex 0
            if i == 0 and j == n - 1:
                continue
            if segments_intersect(a, b, points[j], points[(j + 1) % n]):
                return True
    return False


def rotate_to_min_vertex(points: Sequence[Point2D]) -> List[Point2D]:
    """Cyclically re-index so the lexicographically smallest (x, y) vertex comes first."""
    if not points:
        return []
    start = min(range(len(points)), key=lambda i: (points[i].x, points[i].y))
    return list(points[start:]) + list(points[:start])


__all__ = [
    "Point2D",
    "BoundingBox",
    "Bounds2D",
    "to_points",
    "to_coords",
    "cross",
    "signed_area",
    "polygon_area",
    "vertex_centroid",
    "bounding_box",
    "bounds",
    "convex_hull",
    "perpendicular_distance",
    "douglas_peucker",
    "is_convex",
    "segments_intersect",
    "has_self_intersection",
    "rotate_to_min_vertex",
]
