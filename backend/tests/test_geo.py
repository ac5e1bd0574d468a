"""Tests for geo helpers and the candidate geo filter."""

import math

import pytest

from services.geo import GeoFilter, haversine_distance, normalize_city, same_city

HAIDIAN = (116.30, 39.98)
CHAOYANG = (116.44, 39.92)
TIANJIN = (117.20, 39.13)


class TestNormalizeCity:
    def test_strips_admin_suffix(self):
        assert normalize_city("北京市") == "北京"
        assert normalize_city("广东省") == "广东"
        assert normalize_city("香港特别行政区") == "香港"
        assert normalize_city("内蒙古自治区") == "内蒙古"

    def test_case_insensitive(self):
        assert normalize_city(" Beijing ") == "beijing"

    def test_empty(self):
        assert normalize_city(None) == ""
        assert normalize_city("") == ""

    def test_same_city(self):
        assert same_city("北京", "北京市")
        assert not same_city("北京", "天津")
        assert not same_city("", "")


class TestHaversine:
    def test_identity(self):
        assert haversine_distance(HAIDIAN, HAIDIAN) == 0.0

    def test_symmetry(self):
        assert haversine_distance(HAIDIAN, TIANJIN) == pytest.approx(haversine_distance(TIANJIN, HAIDIAN))

    def test_known_distances(self):
        assert 10 < haversine_distance(HAIDIAN, CHAOYANG) < 20
        assert 100 < haversine_distance(HAIDIAN, TIANJIN) < 130

    def test_antipodal_points(self):
        # half the circumference; floating error must not leave the sqrt domain
        a, b = (-132.22, 62.54), (47.78, -62.54)
        assert haversine_distance(a, b) == pytest.approx(math.pi * 6371.0, rel=1e-6)
        for lon in range(-180, 180, 7):
            for lat in range(-89, 90, 11):
                haversine_distance((lon, lat), (lon + 180, -lat))


def _source(candidates):
    async def same(city, limit):
        return [c for c in candidates if normalize_city(c["city"]) == city][:limit]

    async def other(city, limit):
        return [c for c in candidates if normalize_city(c["city"]) != city][:limit]

    return same, other


def _collect(geo, anchor, city, max_distance, candidates):
    same, other = _source(candidates)
    return geo.collect(
        anchor, city, max_distance,
        same_city_source=same,
        other_city_source=other,
        point_of=lambda c: c["point"],
        identity_of=lambda c: c["id"],
    )


CANDIDATES = [
    {"id": "local", "city": "北京市", "point": HAIDIAN},
    {"id": "local_no_coords", "city": "北京", "point": None},
    {"id": "near", "city": "廊坊", "point": (116.40, 39.95)},
    {"id": "far", "city": "天津", "point": TIANJIN},
    {"id": "far_no_coords", "city": "上海", "point": None},
]


class TestGeoFilter:
    @pytest.mark.asyncio
    async def test_same_city_plus_radius(self):
        pool = await _collect(GeoFilter(), HAIDIAN, "北京", 10.0, CANDIDATES)
        assert {c["id"] for c in pool} == {"local", "local_no_coords", "near"}

    @pytest.mark.asyncio
    async def test_larger_radius_reaches_other_city(self):
        pool = await _collect(GeoFilter(), HAIDIAN, "北京", 150.0, CANDIDATES)
        assert "far" in {c["id"] for c in pool}
        assert "far_no_coords" not in {c["id"] for c in pool}

    @pytest.mark.asyncio
    async def test_anchor_without_coordinates_only_same_city(self):
        pool = await _collect(GeoFilter(), None, "北京", 1000.0, CANDIDATES)
        assert {c["id"] for c in pool} == {"local", "local_no_coords"}

    @pytest.mark.asyncio
    async def test_no_candidates_returns_empty(self):
        pool = await _collect(GeoFilter(), HAIDIAN, "北京", 10.0, [])
        assert pool == []

    @pytest.mark.asyncio
    async def test_duplicates_removed(self):
        async def same(city, limit):
            return [{"id": "x", "point": HAIDIAN}]

        async def other(city, limit):
            return [{"id": "x", "point": HAIDIAN}]

        pool = await GeoFilter().collect(
            HAIDIAN, "北京", 10.0, same, other,
            point_of=lambda c: c["point"], identity_of=lambda c: c["id"],
        )
        assert len(pool) == 1

    @pytest.mark.asyncio
    async def test_pool_size_caps_each_branch(self):
        many = [{"id": f"c{i}", "city": "北京", "point": HAIDIAN} for i in range(80)]
        pool = await _collect(GeoFilter(pool_size=50), HAIDIAN, "北京", 10.0, many)
        assert len(pool) == 50
