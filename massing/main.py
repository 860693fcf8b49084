from fastapi import FastAPI, File, UploadFile, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional, Tuple
import io
import logging
import os

from PIL import Image, UnidentifiedImageError

from massing.middleware.request_id import add_request_id_middleware
from massing.models.building import SiteConfig
from massing.models.mesh import MeshBuildResult, NormalizationResult
from massing.settings import get_settings
from massing.services.artifacts.gltf_writer import write_mesh_gltf
from massing.services.detection_pipeline import BuildingDetectionPipeline
from massing.services.footprint_transform import transform_footprint
from massing.services.geometry import Point2D, to_coords, to_points
from massing.services.mesh_builder import BuildingMeshOptions, build_building_mesh
from massing.services.validation import validate_building_geometry, validate_site_config

logger = logging.getLogger(__name__)

SETTINGS = get_settings()

app = FastAPI(
    title="Site Plan Massing Service",
    description="Detect building footprints on site plans and extrude them into per-floor 3D massing",
    version="1.0.0"
)

add_request_id_middleware(app, log_requests=SETTINGS.enable_request_id_logging)

# CORS_ALLOW_ORIGINS: comma-separated list, e.g. http://localhost:5173,http://127.0.0.1:5173
cors_env = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
allow_origins = [o.strip() for o in cors_env.split(",") if o.strip()] if cors_env else ["http://localhost:5173"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

detection_pipeline = BuildingDetectionPipeline(settings=SETTINGS)


class SiteModel(BaseModel):
    image_width: float = Field(..., description="Site plan width in pixels")
    image_height: float = Field(..., description="Site plan height in pixels")
    scale: float = Field(..., description="Meters per pixel")
    north_angle: float = Field(0.0, description="Degrees clockwise from image-up to north")

    def to_config(self) -> SiteConfig:
        return SiteConfig(self.image_width, self.image_height, self.scale, self.north_angle)


class TransformRequest(BaseModel):
    footprint: List[Tuple[float, float]]
    site: SiteModel


class MeshRequest(BaseModel):
    footprint: List[Tuple[float, float]] = Field(..., description="Local footprint (x, z) in meters")
    floors: int = 1
    floor_height: float = 3.0
    color: Optional[str] = Field(None, description="Base color as #RRGGBB")
    is_selected: bool = False
    selected_floor: Optional[int] = None
    show_labels: bool = True
    write_artifact: bool = False


class BuildingSpec(BaseModel):
    name: str
    footprint: List[Tuple[float, float]] = Field(..., description="Image-space footprint in pixels")
    floors: int = 1
    floor_height: float = 3.0
    color: Optional[str] = None


class BuildingsRequest(BaseModel):
    site: SiteModel
    buildings: List[BuildingSpec]
    write_artifacts: bool = False


def _parse_color(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.lstrip("#"), 16) & 0xFFFFFF
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid color: {value}")


def _validation_payload(v: NormalizationResult) -> Dict[str, Any]:
    m = v.metadata
    return {
        "valid": v.valid,
        "normalized": [list(c) for c in to_coords(v.normalized)],
        "errors": v.errors,
        "warnings": v.warnings,
        "metadata": {
            "original_vertex_count": m.original_vertex_count,
            "normalized_vertex_count": m.normalized_vertex_count,
            "area": m.area,
            "winding_order": m.winding_order,
            "was_reversed": m.was_reversed,
            "duplicates_removed": m.duplicates_removed,
        },
    }


def _mesh_payload(result: MeshBuildResult, artifact_path: Optional[str] = None) -> Dict[str, Any]:
    return {
        "mesh": result.mesh.summary(),
        "validation": _validation_payload(result.validation),
        "triangulation": {
            "indices": result.triangulation.indices,
            "triangle_count": result.triangulation.triangle_count,
            "valid": result.triangulation.valid,
            "relative_error": result.triangulation.relative_error,
        },
        "artifacts": {"gltf_path": artifact_path},
    }


def _point(p: Point2D) -> List[float]:
    return [p.x, p.y]


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "massing"}


@app.get("/")
async def root():
    return {
        "service": "Site Plan Massing Service",
        "version": "1.0.0",
        "endpoints": {
            "health": "/health",
            "analyze": "/analyze",
            "transform": "/transform",
            "mesh": "/mesh",
            "buildings": "/buildings",
            "docs": "/docs",
        },
    }


@app.post("/analyze")
async def analyze_site_plan(file: UploadFile = File(...)):
    """
    Detect building footprints on an uploaded site plan.

    Returns buildings in image pixel space, largest-confidence duplicates removed,
    ordered top-to-bottom then left-to-right.
    """
    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="File must be an image")
    try:
        data = await file.read()
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError):
            raise HTTPException(status_code=400, detail="Could not decode image")
        result = await detection_pipeline.analyze_async(image)
        return {
            "buildings": [b.to_dict() for b in result.buildings],
            "edge_detection_used": result.edge_detection_used,
            "warnings": result.warnings,
            "image_size": list(result.image_size) if result.image_size else None,
        }
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Detection failed: {str(e)}")


@app.post("/transform")
async def transform(req: TransformRequest):
    result = transform_footprint(to_points(req.footprint), req.site.to_config())
    if not result.valid:
        raise HTTPException(status_code=400, detail={"errors": result.errors})
    return {
        "world_footprint": [_point(p) for p in result.world_footprint],
        "local_footprint": [_point(p) for p in result.local_footprint],
        "centroid": _point(result.centroid),
        "metadata": {
            "input_points": result.metadata.input_points,
            "output_points": result.metadata.output_points,
            "applied_rotation": result.metadata.applied_rotation,
            "applied_scale": result.metadata.applied_scale,
        },
    }


@app.post("/mesh")
async def mesh(req: MeshRequest):
    options = BuildingMeshOptions(
        floors=req.floors,
        floor_height=req.floor_height,
        is_selected=req.is_selected,
        selected_floor=req.selected_floor,
        show_labels=req.show_labels,
    )
    color = _parse_color(req.color)
    if color is not None:
        options.color = color
    result = build_building_mesh(to_points(req.footprint), options)
    if not result.validation.valid or result.mesh.root.is_empty():
        errors = result.validation.errors or result.triangulation.errors
        raise HTTPException(status_code=400, detail={"errors": errors,
                                                     "warnings": result.validation.warnings})
    artifact_path = None
    if req.write_artifact:
        try:
            artifact_path = write_mesh_gltf(result.mesh, out_dir=SETTINGS.artifact_dir)
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"glTF export failed: {str(e)}")
    return _mesh_payload(result, artifact_path)


@app.post("/buildings")
async def buildings(req: BuildingsRequest):
    """
    Place and mesh many buildings on one site.

    Buildings that fail validation or meshing are reported under "skipped";
    the rest are returned under "buildings".
    """
    site = req.site.to_config()
    site_check = validate_site_config(site)
    if not site_check.valid:
        raise HTTPException(status_code=400, detail={"errors": site_check.errors})

    placed: List[Dict[str, Any]] = []
    skipped: List[Dict[str, Any]] = []
    for spec in req.buildings:
        footprint = to_points(spec.footprint)
        check = validate_building_geometry(footprint, spec.floors, spec.floor_height)
        if not check.valid:
            skipped.append({"name": spec.name, "errors": check.errors})
            continue
        placement = transform_footprint(footprint, site)
        if not placement.valid:
            skipped.append({"name": spec.name, "errors": placement.errors})
            continue
        options = BuildingMeshOptions(floors=spec.floors, floor_height=spec.floor_height)
        color = _parse_color(spec.color)
        if color is not None:
            options.color = color
        result = build_building_mesh(placement.local_footprint, options)
        if not result.validation.valid or result.mesh.root.is_empty():
            skipped.append({"name": spec.name,
                            "errors": result.validation.errors or result.triangulation.errors})
            continue
        warnings = check.warnings + result.validation.warnings
        artifact_path = None
        if req.write_artifacts:
            try:
                artifact_path = write_mesh_gltf(result.mesh, out_dir=SETTINGS.artifact_dir)
            except Exception as e:
                logger.warning(f"/buildings: glTF export failed for {spec.name}: {e}")
                warnings.append(f"glTF export failed: {str(e)}")
        entry = _mesh_payload(result, artifact_path)
        entry.update({
            "name": spec.name,
            "centroid": _point(placement.centroid),
            "world_footprint": [_point(p) for p in placement.world_footprint],
            "warnings": warnings,
        })
        placed.append(entry)

    if skipped:
        logger.warning(f"/buildings: meshed {len(placed)} of {len(req.buildings)} buildings")
    return {"buildings": placed, "skipped": skipped, "site_warnings": site_check.warnings}
