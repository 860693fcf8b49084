import asyncio

import numpy as np
from PIL import Image

from massing.services.building_classifier import ClassifierThresholds
from massing.services.detection_pipeline import EDGE_FALLBACK_WARNING, BuildingDetectionPipeline


class PassThroughBackend:
    def detect(self, buffer, width, height, highlight_color, thick_edges):
        return buffer


class FaultingBackend:
    def detect(self, buffer, width, height, highlight_color, thick_edges):
        raise RuntimeError("segfault in native edge routine")


def _plan():
    img = np.full((240, 320, 3), (40, 90, 40), dtype=np.uint8)
    img[30:70, 40:100] = 255       # top-left
    img[30:70, 200:260] = 235      # top-right, light gray
    img[160:200, 60:140] = 255     # bottom
    return img


def test_faulting_edge_backend_falls_back_to_color():
    result = BuildingDetectionPipeline(edge_backend=FaultingBackend()).analyze(_plan())
    assert len(result.buildings) == 3
    assert not result.edge_detection_used
    assert EDGE_FALLBACK_WARNING in result.warnings


def test_edges_used_when_available():
    result = BuildingDetectionPipeline(edge_backend=PassThroughBackend()).analyze(_plan())
    assert result.edge_detection_used
    assert result.warnings == []
    assert [b.suggested_name for b in result.buildings] == ["Tower 1", "Tower 2", "Tower 3"]
    assert result.buildings[0].centroid.x < result.buildings[1].centroid.x
    assert result.image_size == (320, 240)


def test_async_matches_sync():
    pipeline = BuildingDetectionPipeline(edge_backend=PassThroughBackend())
    sync = pipeline.analyze(_plan())
    concurrent = asyncio.run(pipeline.analyze_async(_plan()))
    assert [b.to_dict() for b in concurrent.buildings] == [b.to_dict() for b in sync.buildings]


def test_async_survives_faulting_backend():
    result = asyncio.run(BuildingDetectionPipeline(edge_backend=FaultingBackend()).analyze_async(_plan()))
    assert len(result.buildings) == 3


def test_accepts_pil_images():
    result = BuildingDetectionPipeline(edge_backend=FaultingBackend()).analyze(Image.fromarray(_plan()))
    assert len(result.buildings) == 3


def test_zero_size_image():
    result = BuildingDetectionPipeline(edge_backend=PassThroughBackend()).analyze(np.zeros((0, 0, 3), np.uint8))
    assert result.buildings == []
    assert result.warnings


def test_thresholds_are_overridable():
    strict = ClassifierThresholds(min_confidence=0.99)
    result = BuildingDetectionPipeline(thresholds=strict, edge_backend=FaultingBackend()).analyze(_plan())
    assert result.buildings == []
