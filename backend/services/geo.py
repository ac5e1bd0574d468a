"""Geographic candidate filtering: same-city pool plus a haversine radius."""

import logging
import math
import re
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
DEFAULT_POOL_SIZE = 50

# Administrative suffixes dropped before comparing cities ("北京市" -> "北京")
_CITY_SUFFIX = re.compile(r"(市|省|自治区|特别行政区)$")

T = TypeVar("T")
PointGetter = Callable[[T], tuple[float, float] | None]


def normalize_city(city: str | None) -> str:
    if not city:
        return ""
    return _CITY_SUFFIX.sub("", city.strip()).lower()


def same_city(a: str | None, b: str | None) -> bool:
    na, nb = normalize_city(a), normalize_city(b)
    return bool(na) and na == nb


def haversine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Great-circle distance in km between two ``(longitude, latitude)`` points."""
    lon1, lat1 = a[0], a[1]
    lon2, lat2 = b[0], b[1]
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    # rounding can push h just past 1 for antipodal points
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


class GeoFilter:
    """Narrow an unbounded candidate source to a bounded, nearby pool.

    The pool is the union of candidates in the anchor's city and candidates
    in other cities within ``max_distance`` km. Each branch reads at most
    ``pool_size`` candidates.
    """

    def __init__(self, pool_size: int = DEFAULT_POOL_SIZE) -> None:
        self.pool_size = pool_size

    async def collect(
        self,
        anchor_point: tuple[float, float] | None,
        anchor_city: str,
        max_distance: float,
        same_city_source: Callable[[str, int], Awaitable[list[T]]],
        other_city_source: Callable[[str, int], Awaitable[list[T]]],
        point_of: PointGetter,
        identity_of: Callable[[T], str],
    ) -> list[T]:
        city = normalize_city(anchor_city)

        local: list[T] = []
        if city:
            local = await same_city_source(city, self.pool_size)

        nearby: list[T] = []
        if anchor_point is not None:
            remote = await other_city_source(city, self.pool_size)
            for candidate in remote:
                point = point_of(candidate)
                if point is None:
                    continue
                if haversine_distance(anchor_point, point) <= max_distance:
                    nearby.append(candidate)

        seen: set[str] = set()
        pool: list[T] = []
        for candidate in local + nearby:
            key = identity_of(candidate)
            if key in seen:
                continue
            seen.add(key)
            pool.append(candidate)

        logger.debug(
            "Geo pool for city=%r: %d same-city, %d within %.1f km",
            anchor_city, len(local), len(nearby), max_distance,
        )
        return pool
