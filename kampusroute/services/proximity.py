"""Nearby ride search: rank ride posts by how close their route passes to a rider.

Every candidate post carries its planned route as JSON text. For each post we take the
minimum great-circle distance from the rider to any route point, drop posts farther than
the search radius, and return the rest closest first.
"""
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
DEFAULT_RADIUS_KM = 5.0

# Widens the pre-filter box so float rounding never excludes a boundary point
BOX_SLACK_DEG = 1e-9


class RouteDecodeError(ValueError):
    """Stored route is not a JSON array of {latitude, longitude} points."""


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class RankedPost:
    """A candidate post annotated with its closest approach to the rider."""
    post: Any
    min_distance_km: float


Prefilter = Callable[[GeoPoint, Sequence[Any]], Iterable[Any]]


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in km between two WGS84 points (spherical Earth, R = 6371 km)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    # a may round slightly above 1 for near-antipodal points
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(max(0.0, 1 - a)))
    return EARTH_RADIUS_KM * c


def _to_point(item: Any) -> GeoPoint:
    if isinstance(item, GeoPoint):
        return item
    if not isinstance(item, dict):
        raise RouteDecodeError(f"Route point must be an object, got {type(item).__name__}")
    try:
        lat = item["latitude"]
        lng = item["longitude"]
    except KeyError as exc:
        raise RouteDecodeError(f"Route point missing {exc.args[0]}") from exc
    # bool is an int subclass; reject it explicitly
    for value in (lat, lng):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise RouteDecodeError("Route point coordinates must be numbers")
    try:
        lat, lng = float(lat), float(lng)
    except OverflowError as exc:
        raise RouteDecodeError("Route point coordinate is out of float range") from exc
    # json.loads accepts Infinity, NaN and 1e999
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise RouteDecodeError("Route point coordinates must be finite")
    return GeoPoint(latitude=lat, longitude=lng)


def decode_route(raw: Any) -> list[GeoPoint]:
    """
    Decode a stored route into points.

    Accepts the legacy double encoding (a JSON string holding a JSON string of the array),
    the single-encoded JSON array written today, or an already decoded list.
    Raises RouteDecodeError for anything else.
    """
    value = raw
    # At most two string layers: the column value plus the legacy inner encoding
    for _ in range(2):
        if not isinstance(value, str):
            break
        try:
            value = json.loads(value)
        except ValueError as exc:
            raise RouteDecodeError(f"Route is not valid JSON: {exc}") from exc
        except RecursionError as exc:
            raise RouteDecodeError("Route JSON is nested too deeply") from exc
    if not isinstance(value, list):
        raise RouteDecodeError(f"Route must decode to a list, got {type(value).__name__}")
    return [_to_point(item) for item in value]


def encode_route(points: Iterable[GeoPoint]) -> str:
    """Encode points once as a JSON array (the storage format for new and updated posts)."""
    return json.dumps([{"latitude": p.latitude, "longitude": p.longitude} for p in points])


def min_route_distance_km(origin: GeoPoint, route: Sequence[GeoPoint]) -> float | None:
    """Smallest distance from origin to any route point; None for an empty route."""
    if not route:
        return None
    return min(haversine_km(origin.latitude, origin.longitude, p.latitude, p.longitude) for p in route)


def bounding_box_prefilter(radius_km: float = DEFAULT_RADIUS_KM) -> Prefilter:
    """
    Cheap candidate pre-filter: keep posts with at least one route point inside the
    lat/lng box that encloses the search circle. Never drops a post the exact haversine
    check would keep. Posts whose route can't be decoded, or that sit at a latitude outside
    [-90, 90], are passed through untouched so the ranking step handles them.
    """

    def _filter(origin: GeoPoint, posts: Sequence[Any]) -> Iterable[Any]:
        # Out-of-range latitudes alias other points on the sphere; the box can't describe them
        if not -90.0 <= origin.latitude <= 90.0:
            return list(posts)
        delta = radius_km / EARTH_RADIUS_KM
        dlat = math.degrees(delta) + BOX_SLACK_DEG
        cos_lat = math.cos(math.radians(origin.latitude))
        # Circle reaches a pole: every longitude is possible
        if delta >= math.pi / 2 or cos_lat <= 0 or math.sin(delta) >= cos_lat:
            dlng = 180.0
        else:
            dlng = math.degrees(math.asin(math.sin(delta) / cos_lat)) + BOX_SLACK_DEG
        kept = []
        for post in posts:
            try:
                route = decode_route(post.route)
            except RouteDecodeError:
                kept.append(post)
                continue
            if any(not -90.0 <= p.latitude <= 90.0 for p in route):
                kept.append(post)
                continue
            for p in route:
                lng_delta = abs((p.longitude - origin.longitude + 180.0) % 360.0 - 180.0)
                if abs(p.latitude - origin.latitude) <= dlat and lng_delta <= dlng:
                    kept.append(post)
                    break
        return kept

    return _filter


def rank_nearby(
    latitude: float,
    longitude: float,
    posts: Sequence[Any],
    radius_km: float = DEFAULT_RADIUS_KM,
    prefilter: Prefilter | None = None,
) -> list[RankedPost]:
    """
    Return posts whose route passes within radius_km (inclusive) of (latitude, longitude),
    sorted by closest approach. Ties keep input order.

    Posts only need a ``route`` attribute holding the stored route. A post with an empty
    or undecodable route is skipped and logged; it never fails the whole batch.
    """
    origin = GeoPoint(latitude=latitude, longitude=longitude)
    candidates = list(prefilter(origin, posts)) if prefilter is not None else posts
    logger.debug("Ranking %d candidate posts around (%s, %s)", len(candidates), latitude, longitude)

    ranked = []
    for post in candidates:
        try:
            route = decode_route(post.route)
            # Differences of huge finite coordinates overflow to inf and math.sin rejects them
            distance = min_route_distance_km(origin, route)
        except ValueError as exc:
            logger.warning("Skipping post %s with malformed route: %s", getattr(post, "id", None), exc)
            continue
        if distance is None:
            logger.warning("Skipping post %s with empty route", getattr(post, "id", None))
            continue
        if distance <= radius_km:
            ranked.append(RankedPost(post=post, min_distance_km=distance))

    # sorted() is stable, so equal distances stay in input order
    return sorted(ranked, key=lambda r: r.min_distance_km)
