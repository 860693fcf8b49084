from .building import DetectedBuilding, DetectionResult, SiteConfig, TransformMetadata, TransformResult
from .mesh import (
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

__all__ = [
    "DetectedBuilding",
    "DetectionResult",
    "SiteConfig",
    "TransformMetadata",
    "TransformResult",
    "BuildingMesh",
    "LabelPlaceholder",
    "LineGeometry",
    "MeshBuildResult",
    "MeshNode",
    "NormalizationMetadata",
    "NormalizationResult",
    "SolidGeometry",
    "TriangulationRecord",
]
