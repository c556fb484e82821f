import pytest

from farewheel.geo import haversine_km, nearest_airport
from farewheel.models import Airport


def test_haversine_known_distance():
    # Brussels to Barcelona airports, roughly 1085 km
    assert haversine_km(50.9010, 4.4844, 41.2974, 2.0833) == pytest.approx(1085, abs=15)
    assert haversine_km(10, 10, 10, 10) == 0


def test_haversine_symmetric():
    a = haversine_km(52.31, 4.77, 38.77, -9.13)
    b = haversine_km(38.77, -9.13, 52.31, 4.77)
    assert a == pytest.approx(b)


def test_nearest_airport():
    airports = [
        Airport("BRU", "Brussels", "Brussels", "BE", 50.9010, 4.4844),
        Airport("LGG", "Liege", "Liege", "BE", 50.6374, 5.4432),
    ]
    assert nearest_airport(50.63, 5.57, airports).iata_code == "LGG"
    assert nearest_airport(50.85, 4.35, airports).iata_code == "BRU"
    assert nearest_airport(0, 0, []) is None
