from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from massing.services.geometry import BoundingBox, Point2D


@dataclass
class DetectedBuilding:
    """Building candidate in image pixel space.

    Only overlap resolution (removal) and the final ordering pass
    (id / suggested_name / color) touch an instance after creation.
    """
    id: str
    footprint: List[Point2D]
    bounding_box: BoundingBox
    area: float
    centroid: Point2D
    confidence: float
    suggested_name: str
    color: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "footprint": [[p.x, p.y] for p in self.footprint],
            "bounding_box": {
                "x": self.bounding_box.x,
                "y": self.bounding_box.y,
                "width": self.bounding_box.width,
                "height": self.bounding_box.height,
            },
            "area": self.area,
            "centroid": [self.centroid.x, self.centroid.y],
            "confidence": self.confidence,
            "suggested_name": self.suggested_name,
            "color": self.color,
        }


@dataclass(frozen=True)
class SiteConfig:
    """Image-space to world-space parameters.

    scale is meters per pixel; north_angle is in degrees (0 = north is up).
    """
    image_width: float
    image_height: float
    scale: float
    north_angle: float = 0.0


@dataclass
class TransformMetadata:
    input_points: int
    output_points: int
    applied_rotation: float
    applied_scale: float


@dataclass
class TransformResult:
    world_footprint: List[Point2D]
    local_footprint: List[Point2D]
    centroid: Point2D
    metadata: TransformMetadata
    valid: bool = True
    errors: List[str] = field(default_factory=list)


@dataclass
class DetectionResult:
    buildings: List[DetectedBuilding]
    edge_detection_used: bool
    warnings: List[str] = field(default_factory=list)
    image_size: Optional[tuple] = None


__all__ = [
    "DetectedBuilding",
    "SiteConfig",
    "TransformMetadata",
    "TransformResult",
    "DetectionResult",
]
