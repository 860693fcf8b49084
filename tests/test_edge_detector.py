import numpy as np
import pytest

from massing.services import edge_detector
from massing.services.edge_detector import (
    Contour,
    OpenCVEdgeBackend,
    detect_edges,
    extract_contours_from_edges,
    find_rectangular_approximation,
    get_edge_backend,
    merge_nearby_contours,
    reset_edge_backend,
    set_edge_backend,
)
from massing.services.geometry import Point2D, bounding_box, polygon_area, to_points, vertex_centroid


class PassThroughBackend:
    """Treats bright input pixels as edges."""

    def detect(self, buffer, width, height, highlight_color, thick_edges):
        return buffer


class FaultingBackend:
    def detect(self, buffer, width, height, highlight_color, thick_edges):
        raise RuntimeError("native module crashed")


@pytest.fixture(autouse=True)
def _reset_backend():
    reset_edge_backend()
    yield
    reset_edge_backend()


def _outline_image():
    img = np.zeros((100, 100, 3), dtype=np.uint8)
    img[30, 20:71] = 255
    img[60, 20:71] = 255
    img[30:61, 20] = 255
    img[30:61, 70] = 255
    return img


def _contour(points):
    return Contour(points=points, area=polygon_area(points), bounding_box=bounding_box(points),
                   centroid=vertex_centroid(points), is_convex=True)


def test_detect_edges_with_substituted_backend():
    mask = detect_edges(_outline_image(), backend=PassThroughBackend())
    assert mask is not None
    assert (mask.width, mask.height) == (100, 100)
    assert mask.is_edge(20, 30)
    assert not mask.is_edge(50, 45)
    assert len(mask.edge_pixels) == 2 * 51 + 2 * 29


def test_process_wide_backend_substitution():
    set_edge_backend(PassThroughBackend())
    assert detect_edges(_outline_image()) is not None
    set_edge_backend(None)
    assert get_edge_backend() is None
    assert detect_edges(_outline_image()) is None


def test_faulting_backend_returns_none():
    assert detect_edges(_outline_image(), backend=FaultingBackend()) is None


def test_zero_size_image_returns_none():
    assert detect_edges(np.zeros((0, 0, 3), dtype=np.uint8), backend=PassThroughBackend()) is None


def test_disabled_by_configuration(monkeypatch):
    monkeypatch.setenv("EDGE_DETECTION_ENABLE", "false")
    assert get_edge_backend() is None


def test_backend_loads_once(monkeypatch):
    calls = []

    def _load():
        calls.append(1)
        return PassThroughBackend()

    monkeypatch.setattr(edge_detector, "_load_native_backend", _load)
    first = get_edge_backend()
    second = get_edge_backend()
    assert first is second
    assert len(calls) == 1


def test_opencv_backend_finds_rectangle_edges():
    cv2 = pytest.importorskip("cv2")
    img = np.zeros((80, 80, 3), dtype=np.uint8)
    img[20:60, 15:65] = 255
    mask = detect_edges(img, use_thick=False, backend=OpenCVEdgeBackend(cv2))
    assert mask is not None
    assert mask.edge_pixels
    assert not mask.is_edge(40, 40)


def test_extract_contour_from_rectangle_outline():
    mask = detect_edges(_outline_image(), backend=PassThroughBackend())
    contours = extract_contours_from_edges(mask)
    assert len(contours) == 1
    c = contours[0]
    assert len(c.points) == 4
    assert (c.bounding_box.x, c.bounding_box.y, c.bounding_box.width, c.bounding_box.height) == (20, 30, 50, 30)
    assert c.area == pytest.approx(1500.0)
    assert c.is_convex


def test_region_mask_limits_seeds():
    mask = detect_edges(_outline_image(), backend=PassThroughBackend())
    region = np.zeros(100 * 100, dtype=bool)
    region[:10 * 100] = True
    assert extract_contours_from_edges(mask, region) == []


def test_small_edge_fragments_ignored():
    img = np.zeros((50, 50, 3), dtype=np.uint8)
    img[10, 10:15] = 255
    mask = detect_edges(img, backend=PassThroughBackend())
    assert extract_contours_from_edges(mask) == []


def test_merge_nearby_contours():
    a = _contour(to_points([(0, 0), (10, 0), (10, 10), (0, 10)]))
    b = _contour(to_points([(5, 0), (15, 0), (15, 10), (5, 10)]))
    far = _contour(to_points([(100, 100), (110, 100), (110, 110), (100, 110)]))
    merged = merge_nearby_contours([a, b, far], max_distance=20)
    assert len(merged) == 2
    joined = next(m for m in merged if m.bounding_box.x == 0)
    assert joined.bounding_box.width == 15


def test_merge_is_transitive():
    chain = [_contour(to_points([(x, 0), (x + 4, 0), (x + 4, 4), (x, 4)])) for x in (0, 15, 30)]
    assert len(merge_nearby_contours(chain, max_distance=20)) == 1


def test_rectangular_approximation_bounds_point_count():
    angles = np.linspace(0, 2 * np.pi, 64, endpoint=False)
    circle = [Point2D(float(100 + 50 * np.cos(t)), float(100 + 50 * np.sin(t))) for t in angles]
    approx = find_rectangular_approximation(_contour(circle))
    assert 4 <= len(approx) <= 12


def test_edge_groups_split_diagonal_and_separate_outlines():
    img = np.zeros((100, 100, 3), dtype=np.uint8)
    # 8-connected diagonal staircase joins into one group
    for i in range(15):
        img[5 + i, 5 + i] = 255
    img[30, 20:71] = 255
    img[60, 20:71] = 255
    img[30:61, 20] = 255
    img[30:61, 70] = 255
    mask = detect_edges(img, backend=PassThroughBackend())
    groups = edge_detector._edge_groups(mask)
    assert [len(g) for g in groups] == [15, 2 * 51 + 2 * 29]
    assert int(groups[0][0]) == 5 * 100 + 5


def test_region_mask_keeps_whole_group_touching_region():
    mask = detect_edges(_outline_image(), backend=PassThroughBackend())
    region = np.zeros(100 * 100, dtype=bool)
    region[30 * 100 + 20] = True
    contours = extract_contours_from_edges(mask, region)
    assert len(contours) == 1
    assert contours[0].bounding_box.width == 50
