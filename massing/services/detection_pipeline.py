from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import numpy as np

from massing.models.building import DetectionResult
from massing.settings import Settings, get_settings
from .building_classifier import ClassifierThresholds, classify_buildings
from .edge_detector import DEFAULT_EDGE_COLOR, EdgeBackend, EdgeMask, detect_edges
from .imaging import ImageInput, to_rgba
from .region_segmenter import COLOR_PROFILES, ColorRange, ConnectedComponent, segment_regions

logger = logging.getLogger(__name__)

EDGE_FALLBACK_WARNING = "Edge detection unavailable; using color-based detection only"


class BuildingDetectionPipeline:
    """
    Site-plan building detection:
      - edge extraction (native backend, optional)
      - building-colored region segmentation
      - classification, edge refinement and overlap removal

    The two detection stages share no state; analyze_async runs them concurrently.
    """

    def __init__(self,
                 thresholds: Optional[ClassifierThresholds] = None,
                 edge_backend: Optional[EdgeBackend] = None,
                 color_ranges: Optional[List[ColorRange]] = None,
                 settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.thresholds = thresholds or ClassifierThresholds.from_settings(self.settings)
        self.edge_backend = edge_backend
        self.color_ranges = color_ranges or list(COLOR_PROFILES["building"].values())

    def _edge_stage(self, rgba: np.ndarray) -> Optional[EdgeMask]:
        return detect_edges(rgba, DEFAULT_EDGE_COLOR, self.settings.edge_thick, backend=self.edge_backend)

    def _segment_stage(self, rgba: np.ndarray) -> List[ConnectedComponent]:
        return segment_regions(rgba, self.color_ranges)

    def _classify(self, rgba: np.ndarray, edge_mask: Optional[EdgeMask],
                  components: List[ConnectedComponent]) -> DetectionResult:
        height, width = rgba.shape[:2]
        warnings: List[str] = []
        if edge_mask is None:
            warnings.append(EDGE_FALLBACK_WARNING)
        buildings = classify_buildings(components, edge_mask, width, height, self.thresholds)
        logger.info(f"Detected {len(buildings)} buildings from {len(components)} regions "
                    f"(edges={'on' if edge_mask is not None else 'off'})")
        return DetectionResult(
            buildings=buildings,
            edge_detection_used=edge_mask is not None,
            warnings=warnings,
            image_size=(width, height),
        )

    def _prepare(self, image: ImageInput) -> Optional[np.ndarray]:
        rgba = to_rgba(image)
        if rgba.shape[0] == 0 or rgba.shape[1] == 0:
            return None
        return rgba

    @staticmethod
    def _empty(image_size=None) -> DetectionResult:
        return DetectionResult(buildings=[], edge_detection_used=False,
                               warnings=["Image has zero size"], image_size=image_size)

    def analyze(self, image: ImageInput) -> DetectionResult:
        rgba = self._prepare(image)
        if rgba is None:
            return self._empty((0, 0))
        edge_mask = self._edge_stage(rgba)
        components = self._segment_stage(rgba)
        return self._classify(rgba, edge_mask, components)

    async def analyze_async(self, image: ImageInput) -> DetectionResult:
        rgba = self._prepare(image)
        if rgba is None:
            return self._empty((0, 0))
        edge_mask, components = await asyncio.gather(
            asyncio.to_thread(self._edge_stage, rgba),
            asyncio.to_thread(self._segment_stage, rgba),
        )
        return self._classify(rgba, edge_mask, components)


__all__ = ["BuildingDetectionPipeline", "EDGE_FALLBACK_WARNING"]
