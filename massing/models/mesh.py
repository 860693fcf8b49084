from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np

from massing.services.geometry import Point2D


Vec3 = Tuple[float, float, float]


@dataclass
class SolidGeometry:
    """Indexed triangle soup. positions/normals are (N,3) float32, indices (M,) uint32."""
    name: str
    positions: np.ndarray
    normals: np.ndarray
    indices: np.ndarray
    color: int
    opacity: float = 0.99

    @property
    def vertex_count(self) -> int:
        return int(self.positions.shape[0])

    @property
    def triangle_count(self) -> int:
        return int(self.indices.shape[0] // 3)


@dataclass
class LineGeometry:
    """Auxiliary line geometry; never occludes solids.

    strip=True draws consecutive points joined; otherwise points pair up as segments.
    """
    name: str
    points: np.ndarray
    color: int
    strip: bool = True
    width: float = 1.0


@dataclass
class LabelPlaceholder:
    """Where a renderer should draw a floor label. Texture creation is left to the renderer."""
    name: str
    text: str
    position: Vec3
    size: Tuple[float, float]
    highlighted: bool = False


@dataclass
class MeshNode:
    name: str
    solids: List[SolidGeometry] = field(default_factory=list)
    lines: List[LineGeometry] = field(default_factory=list)
    labels: List[LabelPlaceholder] = field(default_factory=list)
    children: List["MeshNode"] = field(default_factory=list)

    def walk(self) -> Iterator["MeshNode"]:
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, name: str) -> Optional["MeshNode"]:
        for node in self.walk():
            if node.name == name:
                return node
        return None

    def all_solids(self) -> List[SolidGeometry]:
        return [s for node in self.walk() for s in node.solids]

    def all_lines(self) -> List[LineGeometry]:
        return [ln for node in self.walk() for ln in node.lines]

    def all_labels(self) -> List[LabelPlaceholder]:
        return [lb for node in self.walk() for lb in node.labels]

    def is_empty(self) -> bool:
        return not (self.all_solids() or self.all_lines() or self.all_labels())

    def max_y(self) -> float:
        ys = [float(s.positions[:, 1].max()) for s in self.all_solids() if s.vertex_count]
        ys += [float(ln.points[:, 1].max()) for ln in self.all_lines() if len(ln.points)]
        return max(ys) if ys else 0.0


@dataclass
class BuildingMesh:
    root: MeshNode
    floors: int = 0
    floor_height: float = 0.0

    @property
    def total_height(self) -> float:
        return self.floors * self.floor_height

    def summary(self) -> Dict[str, Any]:
        solids = self.root.all_solids()
        return {
            "floors": self.floors,
            "floor_height": self.floor_height,
            "total_height": self.total_height,
            "solids": [
                {"name": s.name, "vertices": s.vertex_count, "triangles": s.triangle_count,
                 "color": f"#{s.color:06x}", "opacity": s.opacity}
                for s in solids
            ],
            "lines": [ln.name for ln in self.root.all_lines()],
            "labels": [{"text": lb.text, "position": list(lb.position)} for lb in self.root.all_labels()],
        }


@dataclass
class NormalizationMetadata:
    original_vertex_count: int
    normalized_vertex_count: int
    area: float
    winding_order: str  # "CW" | "CCW"
    was_reversed: bool
    duplicates_removed: int


@dataclass
class NormalizationResult:
    valid: bool
    normalized: List[Point2D]
    errors: List[str]
    warnings: List[str]
    metadata: NormalizationMetadata


@dataclass
class TriangulationRecord:
    indices: List[int]
    triangle_count: int
    valid: bool
    relative_error: float = 0.0
    errors: List[str] = field(default_factory=list)


@dataclass
class MeshBuildResult:
    mesh: BuildingMesh
    validation: NormalizationResult
    triangulation: TriangulationRecord


__all__ = [
    "SolidGeometry",
    "LineGeometry",
    "LabelPlaceholder",
    "MeshNode",
    "BuildingMesh",
    "NormalizationMetadata",
    "NormalizationResult",
    "TriangulationRecord",
    "MeshBuildResult",
]
