"""
Configuration settings for the Trek Tracker backend.

This module handles application configuration using Pydantic settings.
Every value can be overridden from the environment or a `.env` file.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = "Trek Tracker"
    debug: bool = False
    log_level: str = "INFO"
    static_dir: Optional[str] = None

    # Relational store (always available)
    database_url: str = "sqlite+aiosqlite:///./data.sqlite"
    db_echo: bool = False

    # Document store (optional primary)
    use_document_store: bool = False
    mongo_uri: Optional[str] = None
    mongo_dbname: str = "trek_tracker"
    mongo_timeout_ms: int = 5000
    force_sqlite_reads: bool = False
    document_count_page_size: int = 500
    document_count_ceiling: int = 20000

    # Admin / meta
    admin_code: Optional[str] = None
    default_admin_code: str = "secure123"
    streamer: str = "Team"
    start_time: str = "2025-09-08T16:15:00+02:00"
    start_place: str = "Radisson Blu, Montpellier"
    start_lat: float = 43.6129535885483
    start_lng: float = 3.8839984003394976

    # Routing providers
    ors_api_key: Optional[str] = None
    ors_base_url: str = "https://api.openrouteservice.org"
    ors_avoid_features: List[str] = ["fords", "steps"]
    osrm_base_url: str = "https://routing.openstreetmap.de/routed-foot"
    routing_timeout_ms: int = 9000

    # Walking track assembly
    walking_track_max_pairs: int = 40
    walking_track_budget_s: float = 10.0
    start_snap_km: float = 0.01

    # Migration
    migration_throttle_every: int = 50
    migration_pause_s: float = 0.2

    # Twitch live status
    twitch_client_id: str = ""
    twitch_client_secret: str = ""
    twitch_user_login: str = "byilhann"
    twitch_status_ttl_s: int = 60

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def document_store_enabled(self) -> bool:
        return self.use_document_store and bool(self.mongo_uri)

    @property
    def track_max_pairs(self) -> int:
        """Reduced-mode window, never below five pairs."""
        return max(5, self.walking_track_max_pairs)


settings = Settings()
