"""Distance properties of the haversine helper."""

import pytest

from farmlink.core.geo import distance_meters, within_radius

KAMPALA = {"lat": 0.3136, "lng": 32.5811}
ENTEBBE = {"lat": 0.0512, "lng": 32.4637}
GULU = {"lat": 2.7724, "lng": 32.2881}


def test_distance_to_self_is_zero():
    assert distance_meters(KAMPALA, KAMPALA) == 0


def test_distance_is_symmetric():
    assert distance_meters(KAMPALA, ENTEBBE) == pytest.approx(distance_meters(ENTEBBE, KAMPALA))


def test_kampala_to_entebbe_is_about_32_km():
    assert distance_meters(KAMPALA, ENTEBBE) == pytest.approx(32_000, rel=0.05)


@pytest.mark.parametrize("step", [0.1, 0.5, 1.0, 5.0])
def test_distance_grows_with_separation(step):
    origin = {"lat": 0.0, "lng": 0.0}
    near = {"lat": 0.0, "lng": step}
    far = {"lat": 0.0, "lng": step * 2}
    assert distance_meters(origin, near) < distance_meters(origin, far)


def test_one_degree_of_latitude():
    d = distance_meters({"lat": 0.0, "lng": 0.0}, {"lat": 1.0, "lng": 0.0})
    assert d == pytest.approx(111_195, rel=0.001)


def test_within_radius_inclusive_of_nearby_points():
    assert within_radius(KAMPALA, ENTEBBE, 50)
    assert not within_radius(KAMPALA, GULU, 50)
    assert within_radius(KAMPALA, GULU, 500)
