"""
Google Maps API Client for the InStock trip optimizer

Provides:
- Address geocoding for newly registered stores
- Road distances via the Distance Matrix API, exposed as a DistanceMetric
  so the route orderer can use them in place of straight-line distances
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import googlemaps
from googlemaps.exceptions import ApiError, Timeout, TransportError

from exceptions import MapsServiceError
from shopping_graph import DistanceMetric, GeoLocation

logger = logging.getLogger(__name__)

# Distance Matrix API limits per request
MAX_MATRIX_DIMENSION = 25  # origins or destinations
MAX_MATRIX_ELEMENTS = 100  # origins x destinations


@dataclass(frozen=True)
class GeocodeResult:
    """Geocoded address"""
    location: GeoLocation
    formatted_address: str
    place_id: Optional[str] = None


class GoogleMapsClient:
    """Thin wrapper over googlemaps.Client"""

    def __init__(self, api_key: str, client: Optional[googlemaps.Client] = None):
        """
        Initialize Google Maps client.

        Args:
            api_key: Google Maps API key
            client: Pre-built googlemaps.Client (tests pass a stub here)

        Raises:
            ValueError: If API key is missing
        """
        if not api_key and client is None:
            raise ValueError("Google Maps API key is required")

        self.client = client if client is not None else googlemaps.Client(key=api_key)
        logger.info("Google Maps client initialized")

    def geocode_address(self, address: str) -> GeocodeResult:
        """
        Geocode an address.

        Args:
            address: Street address to geocode

        Returns:
            GeocodeResult with coordinates and place id

        Raises:
            ValueError: If the address cannot be geocoded
            MapsServiceError: If the API call fails
        """
        try:
            geocode_result = self.client.geocode(address)
        except ApiError as e:
            logger.error(f"✗ Google Maps API error: {e}")
            raise MapsServiceError(f"Geocoding failed for '{address}': {e}") from e
        except (Timeout, TransportError) as e:
            logger.error(f"✗ Google Maps unreachable: {e}")
            raise MapsServiceError(f"Geocoding service unreachable: {e}", retryable=True) from e

        if not geocode_result:
            raise ValueError(f"Could not geocode address: {address}")

        result = geocode_result[0]
        location = result["geometry"]["location"]
        geo_loc = GeoLocation(latitude=location["lat"], longitude=location["lng"])

        logger.info(f"Geocoded: {address} -> ({geo_loc.latitude:.4f}, {geo_loc.longitude:.4f})")
        return GeocodeResult(
            location=geo_loc,
            formatted_address=result.get("formatted_address", address),
            place_id=result.get("place_id"),
        )

    def get_distance_matrix(
        self,
        origins: List[str],
        destinations: List[str],
        mode: str = "driving",
    ) -> Dict:
        """
        Get a distance matrix (no traffic model, distances only).

        Args:
            origins: List of "lat,lng" strings
            destinations: List of "lat,lng" strings
            mode: Travel mode (driving, walking, transit, bicycling)

        Returns:
            Distance matrix results

        Raises:
            MapsServiceError: If the API call fails
        """
        try:
            return self.client.distance_matrix(
                origins=origins,
                destinations=destinations,
                mode=mode,
                units="metric",
            )
        except ApiError as e:
            logger.error(f"✗ Distance Matrix API error: {e}")
            raise MapsServiceError(f"Distance Matrix request failed: {e}") from e
        except (Timeout, TransportError) as e:
            logger.error(f"✗ Google Maps unreachable: {e}")
            raise MapsServiceError(f"Distance Matrix service unreachable: {e}", retryable=True) from e


class RoadNetworkDistance(DistanceMetric):
    """
    Road distance in kilometers from the Distance Matrix API.

    Road distances are not symmetric; each pair uses the mean of both
    directions so the route solvers see a symmetric metric.
    """

    name = "road"

    def __init__(self, maps_client: GoogleMapsClient, mode: str = "driving"):
        self.maps_client = maps_client
        self.mode = mode

    def _directed_matrix(self, points: Sequence[GeoLocation]) -> List[List[float]]:
        coords = [p.as_query() for p in points]
        n = len(coords)
        result = [[0.0] * n for _ in range(n)]
        if n == 0:
            return result

        # Tile origins x destinations so every request stays within the API limits
        cols_per_request = min(n, MAX_MATRIX_DIMENSION)
        rows_per_request = min(MAX_MATRIX_DIMENSION, max(1, MAX_MATRIX_ELEMENTS // cols_per_request))
        for row_start in range(0, n, rows_per_request):
            origins = coords[row_start:row_start + rows_per_request]
            for col_start in range(0, n, cols_per_request):
                destinations = coords[col_start:col_start + cols_per_request]
                matrix = self.maps_client.get_distance_matrix(origins, destinations, mode=self.mode)
                for i, row in enumerate(matrix["rows"]):
                    for j, element in enumerate(row["elements"]):
                        if row_start + i == col_start + j:
                            continue
                        if element.get("status") != "OK":
                            raise MapsServiceError(
                                f"No road route from {origins[i]} to {destinations[j]}: "
                                f"{element.get('status', 'UNKNOWN_ERROR')}"
                            )
                        result[row_start + i][col_start + j] = element["distance"]["value"] / 1000.0
        return result

    def matrix(self, points: Sequence[GeoLocation]) -> List[List[float]]:
        directed = self._directed_matrix(points)
        n = len(points)
        return [
            [(directed[i][j] + directed[j][i]) / 2.0 for j in range(n)]
            for i in range(n)
        ]

    def distance(self, origin: GeoLocation, destination: GeoLocation) -> float:
        return self.matrix([origin, destination])[0][1]
