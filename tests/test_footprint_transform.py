import math

import pytest

from massing.models.building import SiteConfig
from massing.services.footprint_transform import (
    image_to_world,
    local_to_image,
    transform_footprint,
    world_to_image,
)
from massing.services.geometry import Point2D, to_points


SQUARE_PX = to_points([(40, 40), (60, 40), (60, 60), (40, 60)])


def _close(a, b, tol=1e-9):
    assert len(a) == len(b)
    for p, q in zip(a, b):
        assert p.x == pytest.approx(q.x, abs=tol)
        assert p.y == pytest.approx(q.y, abs=tol)


def test_centered_square_without_rotation():
    res = transform_footprint(SQUARE_PX, SiteConfig(100, 100, 1.0))
    assert res.valid
    _close(res.world_footprint, to_points([(-10, -10), (10, -10), (10, 10), (-10, 10)]))
    assert res.centroid == Point2D(0.0, 0.0)
    _close(res.local_footprint, res.world_footprint)
    assert res.metadata.input_points == 4
    assert res.metadata.output_points == 4


def test_scale_and_rotation():
    site = SiteConfig(100, 100, 2.0, north_angle=90)
    world = image_to_world([Point2D(60, 50)], site)
    assert world[0].x == pytest.approx(0.0, abs=1e-9)
    assert world[0].y == pytest.approx(20.0)


def test_local_footprint_is_centered():
    fp = to_points([(10, 10), (70, 15), (65, 45), (12, 40)])
    res = transform_footprint(fp, SiteConfig(200, 100, 0.25, north_angle=30))
    assert sum(p.x for p in res.local_footprint) == pytest.approx(0.0, abs=1e-9)
    assert sum(p.y for p in res.local_footprint) == pytest.approx(0.0, abs=1e-9)


@pytest.mark.parametrize("scale,angle", [(1.0, 0.0), (0.5, 37.0), (3.2, 180.0), (0.01, -123.4), (12.0, 359.9)])
def test_round_trip(scale, angle):
    site = SiteConfig(640, 480, scale, angle)
    fp = to_points([(12.5, 30), (300, 33), (410.25, 200), (90, 470)])
    _close(world_to_image(image_to_world(fp, site), site), fp, tol=1e-6)
    res = transform_footprint(fp, site)
    _close(local_to_image(res.local_footprint, res.centroid, site), fp, tol=1e-6)


def test_transform_is_pure():
    site = SiteConfig(640, 480, 0.5, 12.0)
    assert transform_footprint(SQUARE_PX, site) == transform_footprint(SQUARE_PX, site)


def test_invalid_inputs_do_not_raise():
    res = transform_footprint(to_points([(0, 0), (1, 1)]), SiteConfig(100, 100, 1.0))
    assert not res.valid
    assert res.errors
    res = transform_footprint(SQUARE_PX, SiteConfig(100, 100, 0.0))
    assert not res.valid
    assert any("scale" in e for e in res.errors)
    assert res.world_footprint == []


def test_inverse_rejects_zero_scale():
    with pytest.raises(ValueError):
        world_to_image([Point2D(1, 1)], SiteConfig(100, 100, 0.0))


def test_rotation_preserves_distances():
    site = SiteConfig(100, 100, 1.0, north_angle=63)
    a, b = image_to_world(to_points([(10, 20), (40, 60)]), site)
    assert math.hypot(a.x - b.x, a.y - b.y) == pytest.approx(50.0)
