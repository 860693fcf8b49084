import numpy as np
import pytest

from massing.services.geometry import Point2D, to_points
from massing.services.mesh_builder import (
    FLOOR_COLOR_SELECTED,
    FLOOR_COLORS_PASTEL,
    BuildingMeshOptions,
    build_building_mesh,
    create_debug_wireframe,
    lighten,
)


SQUARE = to_points([(-5, -5), (5, -5), (5, 5), (-5, 5)])
L_SHAPE = to_points([(-10, -10), (10, -10), (10, 0), (0, 0), (0, 10), (-10, 10)])


def _floor_solid(result, floor):
    return result.mesh.root.find(f"Floor_{floor}").solids[0]


def test_height_contract():
    result = build_building_mesh(SQUARE, BuildingMeshOptions(floors=3, floor_height=4))
    assert result.validation.valid
    assert result.mesh.total_height == 12
    assert result.mesh.root.max_y() == pytest.approx(12.0)
    floor2 = _floor_solid(result, 2).positions[:, 1]
    assert float(floor2.min()) == pytest.approx(4.0)
    assert float(floor2.max()) == pytest.approx(8.0)


def test_roof_sits_on_top_floor():
    result = build_building_mesh(SQUARE, BuildingMeshOptions(floors=3, floor_height=4, color=0x3B82F6))
    roof = result.mesh.root.find("Roof").solids[0]
    assert np.allclose(roof.positions[:, 1], 12.0)
    assert np.allclose(roof.normals, [0.0, 1.0, 0.0])
    assert roof.color == lighten(0x3B82F6, 0.3)


def test_lines_stay_within_building_height():
    result = build_building_mesh(L_SHAPE, BuildingMeshOptions(floors=5, floor_height=3))
    for line in result.mesh.root.all_lines():
        ys = line.points[:, 1]
        assert ys.min() >= 0.0
        assert ys.max() <= 15.0 + 1e-6


@pytest.mark.parametrize("footprint", [SQUARE, L_SHAPE, list(reversed(L_SHAPE))])
def test_face_winding_matches_normals(footprint):
    result = build_building_mesh(footprint, BuildingMeshOptions(floors=2, floor_height=3))
    for solid in result.mesh.root.all_solids():
        p = solid.positions.astype(np.float64)
        tris = solid.indices.reshape(-1, 3)
        face = np.cross(p[tris[:, 1]] - p[tris[:, 0]], p[tris[:, 2]] - p[tris[:, 0]])
        stored = solid.normals[tris[:, 0]]
        assert np.all(np.einsum("ij,ij->i", face, stored) > 0)


def test_wall_normals_point_outward():
    result = build_building_mesh(SQUARE, BuildingMeshOptions(floors=1, floor_height=3))
    solid = _floor_solid(result, 1)
    walls = np.abs(solid.normals[:, 1]) < 1e-6
    outward = solid.positions[walls] * np.array([1.0, 0.0, 1.0])
    assert np.all(np.einsum("ij,ij->i", outward, solid.normals[walls]) > 0)


def test_floor_colors_cycle_and_selection():
    opts = BuildingMeshOptions(floors=16, floor_height=3, is_selected=True, selected_floor=2)
    result = build_building_mesh(SQUARE, opts)
    assert _floor_solid(result, 1).color == FLOOR_COLORS_PASTEL[0]
    assert _floor_solid(result, 2).color == FLOOR_COLOR_SELECTED
    assert _floor_solid(result, 3).color == FLOOR_COLORS_PASTEL[2]
    assert _floor_solid(result, 16).color == FLOOR_COLORS_PASTEL[0]


def test_selection_requires_flag():
    result = build_building_mesh(SQUARE, BuildingMeshOptions(floors=3, floor_height=3, selected_floor=2))
    assert _floor_solid(result, 2).color == FLOOR_COLORS_PASTEL[1]


def test_labels_for_short_building():
    result = build_building_mesh(SQUARE, BuildingMeshOptions(floors=3, floor_height=3))
    labels = result.mesh.root.all_labels()
    assert [lb.text for lb in labels] == ["1", "2", "3"]
    first = labels[0]
    assert first.position == pytest.approx((8.0, 1.5, 0.0))
    assert first.size == (12.0, 6.0)


def test_labels_for_tall_building():
    opts = BuildingMeshOptions(floors=20, floor_height=3, is_selected=True, selected_floor=7)
    labels = build_building_mesh(SQUARE, opts).mesh.root.all_labels()
    assert [lb.text for lb in labels] == ["1", "5", "7", "10", "15", "20"]
    assert [lb.highlighted for lb in labels].count(True) == 1


def test_label_scales_with_floor_height():
    labels = build_building_mesh(SQUARE, BuildingMeshOptions(floors=1, floor_height=6)).mesh.root.all_labels()
    assert labels[0].size == (24.0, 12.0)
    assert labels[0].position[0] == pytest.approx(11.0)


def test_clockwise_input_is_repaired():
    cw = to_points([(0, 0), (10, 0), (10, 10), (0, 10)])
    result = build_building_mesh(cw, BuildingMeshOptions(floors=1, floor_height=3))
    assert result.validation.valid
    assert result.validation.metadata.was_reversed
    assert result.triangulation.triangle_count == 2
    assert result.triangulation.valid


@pytest.mark.parametrize("footprint,opts", [
    ([Point2D(0, 0), Point2D(1, 1)], BuildingMeshOptions(floors=2, floor_height=3)),
    (to_points([(0, 0), (5, 0), (10, 0)]), BuildingMeshOptions(floors=2, floor_height=3)),
    (SQUARE, BuildingMeshOptions(floors=0, floor_height=3)),
    (SQUARE, BuildingMeshOptions(floors=2, floor_height=float("nan"))),
])
def test_invalid_input_returns_empty_mesh(footprint, opts):
    result = build_building_mesh(footprint, opts)
    assert not result.validation.valid
    assert result.validation.errors
    assert result.mesh.root.is_empty()
    assert not result.triangulation.valid


def test_debug_wireframe():
    wire = create_debug_wireframe(SQUARE, 10.0)
    assert not wire.strip
    assert wire.points.shape == (24, 3)
    assert wire.points[:, 1].max() == 10.0
