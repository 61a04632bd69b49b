"""HTTP client for the Mapbox Directions API."""

from __future__ import annotations

import logging
import time
from typing import Sequence

import httpx

from ...config import settings

# Directions accepts at most 25 coordinates per request for driving profiles.
MAX_DIRECTIONS_COORDINATES = 25

logger = logging.getLogger(__name__)


class MapboxClient:
    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.access_token = access_token or settings.mapbox_access_token
        if not self.access_token:
            raise ValueError("Mapbox access token is not configured.")
        self.base_url = (base_url or settings.mapbox_base_url).rstrip("/")
        self.profile = profile or settings.mapbox_profile
        self.timeout = timeout if timeout is not None else settings.mapbox_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.mapbox_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.mapbox_backoff_seconds
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
        )

    def directions(self, coordinates: Sequence[tuple[float, float]]) -> dict:
        """Get a driving route through ``coordinates`` given as (lon, lat) pairs.

        Returns the raw Directions payload with ``routes`` (geometry, distance,
        duration and per-leg durations) and ``waypoints``.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for a Directions request.")
        if len(coordinates) > MAX_DIRECTIONS_COORDINATES:
            raise ValueError(
                f"Directions requests accept at most {MAX_DIRECTIONS_COORDINATES} coordinates "
                f"({len(coordinates)} given)."
            )

        coordinate_str = ";".join(f"{lon},{lat}" for lon, lat in coordinates)
        params = {
            "access_token": self.access_token,
            "geometries": "geojson",
            "overview": "full",
            "steps": "false",
            "annotations": "duration,distance",
        }
        url = f"{self.base_url}/directions/v5/mapbox/{self.profile}/{coordinate_str}"

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    if response.status_code in (400, 401, 403, 404, 422):
                        # Request problems are not retried.
                        payload = response.json() if response.content else {}
                        raise ValueError(
                            f"Mapbox Directions request rejected ({response.status_code}): "
                            f"{payload.get('message', response.reason_phrase)}"
                        )
                    response.raise_for_status()
                    data = response.json()
                    if data.get("code") != "Ok":
                        raise ValueError(f"Mapbox Directions request failed: {data.get('message', data.get('code'))}")
                    return data
                except ValueError:
                    raise
                except httpx.HTTPStatusError as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(
                            f"Mapbox Directions unavailable ({e.response.status_code})"
                        ) from e
                    time.sleep(self.backoff_seconds * attempt)
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"Mapbox request timed out after {self.max_retries} attempts: {e}")
                        raise ConnectionError(f"Mapbox Directions request timed out: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Mapbox timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except (httpx.NetworkError, OSError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(
                            f"Failed to connect to Mapbox at {self.base_url}: {e}"
                        ) from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Mapbox network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
        finally:
            client.close()


def build_loop_coordinates(
    origin: tuple[float, float],
    stops: Sequence[tuple[float, float]],
) -> list[tuple[float, float]]:
    """Coordinates for a round trip: origin, every stop in order, origin again."""
    return [origin, *stops, origin]


def check_health(client: MapboxClient | None = None) -> bool:
    """Check Mapbox availability with a minimal two-point Directions request."""
    try:
        mapbox = client or MapboxClient()
        # Two points in central Amsterdam
        data = mapbox.directions([(4.8952, 52.3702), (4.9041, 52.3676)])
        return bool(data.get("routes"))
    except (ValueError, ConnectionError, httpx.HTTPError):
        return False
