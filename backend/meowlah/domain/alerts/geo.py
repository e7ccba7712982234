"""Proximity index: which subscribers should hear about an event at a point.

The radius is a per-row threshold. Each subscriber carries their own
``notification_radius_km`` and is a candidate when the origin lies inside it;
the ``radius_km`` argument is only the fallback for rows with no stored radius.
Distances are great-circle (haversine) distances computed inside Postgres so
the unbounded users table is never pulled into the application.
"""

from __future__ import annotations

import math
from typing import List, Protocol, Sequence

from meowlah.domain.alerts.models import Candidate, GeoPoint, NearbyReport, PushEndpoint
from meowlah.infra.postgres import get_pool

EARTH_RADIUS_KM = 6371.0088
KM_PER_DEGREE_LAT = 111.2


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
	"""Return the great-circle distance between two points in kilometres."""

	phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
	dphi = math.radians(b.lat - a.lat)
	dlambda = math.radians(b.lng - a.lng)
	h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
	return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


class ProximityIndex(Protocol):
	async def find_within_radius(
		self,
		origin: GeoPoint,
		radius_km: float,
		*,
		excluding: str,
	) -> List[Candidate]:
		...

	async def find_reports_near(
		self,
		origin: GeoPoint,
		radius_km: float,
		*,
		limit: int = 50,
	) -> List[NearbyReport]:
		...


# $1 = lat, $2 = lng of the origin; expects columns named lat/lng in scope.
_HAVERSINE_SQL = """
	2 * {radius} * asin(LEAST(1.0, sqrt(
		power(sin(radians({lat} - $1) / 2), 2) +
		cos(radians($1)) * cos(radians({lat})) * power(sin(radians({lng} - $2) / 2), 2)
	)))
"""


def _distance_expr(lat_column: str, lng_column: str) -> str:
	return _HAVERSINE_SQL.format(radius=EARTH_RADIUS_KM, lat=lat_column, lng=lng_column)


class PostgresProximityIndex:
	"""Spatial predicates evaluated in Postgres against the users and lost_cats tables."""

	async def find_within_radius(
		self,
		origin: GeoPoint,
		radius_km: float,
		*,
		excluding: str,
	) -> List[Candidate]:
		origin.validate()
		pool = await get_pool()
		# The latitude window is sized per row from the subscriber's own radius.
		rows = await pool.fetch(
			f"""
			SELECT id, push_subscription
			FROM (
				SELECT u.id, u.push_subscription, u.listen_km,
					{_distance_expr('u.location_lat', 'u.location_lng')} AS distance_km
				FROM (
					SELECT id, push_subscription, location_lat, location_lng,
						COALESCE(notification_radius_km, $4) AS listen_km
					FROM users
					WHERE id <> $3::uuid
					AND push_subscription IS NOT NULL
					AND location_lat IS NOT NULL
					AND location_lng IS NOT NULL
				) AS u
				WHERE u.location_lat BETWEEN $1 - u.listen_km / $5 AND $1 + u.listen_km / $5
			) AS nearby
			WHERE nearby.distance_km <= nearby.listen_km
			""",
			origin.lat,
			origin.lng,
			excluding,
			float(radius_km),
			KM_PER_DEGREE_LAT,
		)
		return _to_candidates(rows)

	async def find_reports_near(
		self,
		origin: GeoPoint,
		radius_km: float,
		*,
		limit: int = 50,
	) -> List[NearbyReport]:
		origin.validate()
		pool = await get_pool()
		rows = await pool.fetch(
			f"""
			SELECT id, name, last_seen_lat, last_seen_lng, distance_km
			FROM (
				SELECT lc.id, lc.name, lc.last_seen_lat, lc.last_seen_lng,
					{_distance_expr('lc.last_seen_lat', 'lc.last_seen_lng')} AS distance_km
				FROM lost_cats lc
				WHERE lc.status = 'active'
				AND lc.last_seen_lat BETWEEN $1 - $4 AND $1 + $4
			) AS nearby
			WHERE nearby.distance_km <= $3
			ORDER BY nearby.distance_km ASC
			LIMIT $5
			""",
			origin.lat,
			origin.lng,
			float(radius_km),
			radius_km / KM_PER_DEGREE_LAT,
			limit,
		)
		return [
			NearbyReport(
				lost_cat_id=str(row["id"]),
				name=row["name"],
				lat=float(row["last_seen_lat"]),
				lng=float(row["last_seen_lng"]),
				distance_km=round(float(row["distance_km"]), 3),
			)
			for row in rows
		]


def _to_candidates(rows: Sequence) -> List[Candidate]:
	candidates: List[Candidate] = []
	for row in rows:
		endpoint = PushEndpoint.from_subscription(row["push_subscription"])
		if endpoint is None:
			continue
		candidates.append(Candidate(subscriber_id=str(row["id"]), endpoint=endpoint))
	return candidates


__all__ = ["ProximityIndex", "PostgresProximityIndex", "haversine_km", "EARTH_RADIUS_KM"]
