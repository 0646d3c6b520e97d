"""
Runtime configuration

Values come from the environment (a local .env file is loaded first):

  DATABASE_URL            SQLAlchemy URL (default sqlite:///instock.db)
  GOOGLEMAPS_API_KEY      Enables geocoding and road-network distances
  DISTANCE_METRIC         "haversine" (default) or "road"
  SOLVER_TIMEOUT_SECONDS  Time budget for one route search (default 5)
  DEFAULT_RADIUS_KM       Search radius when a location is sent without one (default 5)
  SEED_DEMO_DATA          "true" to load the demo inventory into an empty database
  LOG_LEVEL               Logging level (default INFO)
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DISTANCE_METRICS = ("haversine", "road")


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///instock.db"
    googlemaps_api_key: Optional[str] = None
    distance_metric: str = "haversine"
    solver_timeout_seconds: float = 5.0
    default_radius_km: float = 5.0
    seed_demo_data: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        metric = os.getenv("DISTANCE_METRIC", "haversine").strip().lower()
        if metric not in DISTANCE_METRICS:
            raise ValueError(
                f"DISTANCE_METRIC must be one of {DISTANCE_METRICS}, got '{metric}'"
            )

        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            googlemaps_api_key=os.getenv("GOOGLEMAPS_API_KEY") or None,
            distance_metric=metric,
            solver_timeout_seconds=float(os.getenv("SOLVER_TIMEOUT_SECONDS", "5.0")),
            default_radius_km=float(os.getenv("DEFAULT_RADIUS_KM", "5.0")),
            seed_demo_data=os.getenv("SEED_DEMO_DATA", "false").lower() in ("1", "true", "yes"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, read from the environment on first use."""
    global _settings

    if _settings is None:
        _settings = Settings.from_env()

    return _settings


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
