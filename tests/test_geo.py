from __future__ import annotations

import math
import unittest

from geopoint.services.geo import EARTH_RADIUS_KM, distance_meters


class GeoDistanceTests(unittest.TestCase):
    def test_distance_is_zero_for_same_point(self) -> None:
        self.assertAlmostEqual(distance_meters(-23.5505, -46.6333, -23.5505, -46.6333), 0.0, places=6)

    def test_distance_is_symmetric(self) -> None:
        forward = distance_meters(-23.5505, -46.6333, -22.9068, -43.1729)
        backward = distance_meters(-22.9068, -43.1729, -23.5505, -46.6333)
        self.assertAlmostEqual(forward, backward, places=6)

    def test_one_degree_longitude_on_equator(self) -> None:
        expected = EARTH_RADIUS_KM * 1000 * math.radians(1.0)
        self.assertAlmostEqual(distance_meters(0.0, 0.0, 0.0, 1.0), expected, delta=0.01)

    def test_sao_paulo_to_rio_reference(self) -> None:
        value = distance_meters(-23.5505, -46.6333, -22.9068, -43.1729)
        self.assertAlmostEqual(value, 361_000, delta=3_000)

    def test_out_of_range_coordinates_are_not_rejected(self) -> None:
        value = distance_meters(95.0, 200.0, 0.0, 0.0)
        self.assertTrue(math.isfinite(value))


if __name__ == "__main__":
    unittest.main()
