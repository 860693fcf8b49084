import numpy as np

from massing.models.building import DetectedBuilding
from massing.services.building_classifier import (
    BUILDING_COLORS,
    ClassifierThresholds,
    classify_buildings,
    order_and_name,
    overlap_ratio,
    remove_overlapping_buildings,
    score_component,
)
from massing.services.edge_detector import detect_edges
from massing.services.geometry import BoundingBox, Point2D
from massing.services.region_segmenter import COLOR_PROFILES, segment_regions


BUILDING = list(COLOR_PROFILES["building"].values())


class PassThroughBackend:
    def detect(self, buffer, width, height, highlight_color, thick_edges):
        return buffer


def _plan():
    img = np.full((200, 200, 3), (40, 90, 40), dtype=np.uint8)
    img[60:80, 50:90] = 255
    return img


def _candidate(bid, x, y, w, h, confidence):
    return DetectedBuilding(
        id=bid,
        footprint=BoundingBox(x, y, w, h).corners(),
        bounding_box=BoundingBox(x, y, w, h),
        area=float(w * h),
        centroid=Point2D(x + w / 2, y + h / 2),
        confidence=confidence,
        suggested_name=bid,
        color=BUILDING_COLORS[0],
    )


def test_rectangle_region_is_accepted():
    img = _plan()
    comps = segment_regions(img, BUILDING)
    buildings = classify_buildings(comps, None, 200, 200)
    assert len(buildings) == 1
    b = buildings[0]
    assert b.confidence >= 0.4
    assert b.id == "building-1"
    assert b.suggested_name == "Tower 1"
    assert remove_overlapping_buildings(buildings) == buildings


def test_score_rejects_out_of_range_regions():
    comps = segment_regions(_plan(), BUILDING)
    assert score_component(comps[0], 200, 200) is not None
    # 800 px is more than 15% of a 60x60 image
    assert score_component(comps[0], 60, 60) is None
    strict = ClassifierThresholds(min_area_fraction=0.05)
    assert score_component(comps[0], 200, 200, strict) is None


def test_thin_region_rejected_by_aspect_ratio():
    img = np.full((200, 200, 3), (40, 90, 40), dtype=np.uint8)
    img[50:56, 20:180] = 255
    comps = segment_regions(img, BUILDING)
    assert classify_buildings(comps, None, 200, 200) == []


def test_higher_confidence_duplicate_survives():
    low = _candidate("a", 0, 0, 100, 100, 0.6)
    high = _candidate("b", 50, 0, 100, 100, 0.8)
    assert overlap_ratio(low.bounding_box, high.bounding_box) == 0.5
    for order in ([low, high], [high, low]):
        kept = remove_overlapping_buildings(order)
        assert [b.id for b in kept] == ["b"]


def test_overlap_resolution_is_idempotent():
    cands = [
        _candidate("big", 0, 0, 100, 100, 0.5),
        _candidate("inner", 10, 10, 40, 40, 0.9),
        _candidate("side", 90, 0, 60, 60, 0.7),
        _candidate("apart", 300, 300, 30, 30, 0.6),
        _candidate("bridge", 40, 40, 70, 20, 0.95),
    ]
    once = remove_overlapping_buildings(cands)
    twice = remove_overlapping_buildings(once)
    assert sorted(b.id for b in twice) == sorted(b.id for b in once)
    for i, a in enumerate(once):
        for b in once[i + 1:]:
            assert overlap_ratio(a.bounding_box, b.bounding_box) <= 0.3


def test_order_and_name_rows_then_columns():
    right = _candidate("r", 150, 10, 20, 20, 0.9)
    left = _candidate("l", 10, 12, 20, 20, 0.9)
    bottom = _candidate("b", 10, 170, 20, 20, 0.9)
    ordered = order_and_name([bottom, right, left], image_height=200)
    assert [b.suggested_name for b in ordered] == ["Tower 1", "Tower 2", "Tower 3"]
    assert [b.centroid.x for b in ordered] == [20, 160, 20]
    assert [b.id for b in ordered] == ["building-1", "building-2", "building-3"]


def test_edge_refinement_replaces_outline():
    img = _plan()
    comps = segment_regions(img, BUILDING)
    edges = detect_edges(img, backend=PassThroughBackend())
    buildings = classify_buildings(comps, edges, 200, 200)
    assert len(buildings) == 1
    fp = buildings[0].footprint
    assert 4 <= len(fp) <= 12
    assert min(p.x for p in fp) == 50 and max(p.x for p in fp) == 89
    assert buildings[0].area == 39 * 19
