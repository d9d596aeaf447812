"""Configuration management using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "RADAR-EXERCISE"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 3001

    # Integration scheduler
    tick_interval_ms: int = 2000        # radar sweep cadence
    nav_min_interval_ms: int = 100      # helm orders closer than this are dropped

    # Plot
    range_min_yds: float = 2000.0
    range_max_yds: float = 300000.0
    default_range_yds: float = 40000.0
    max_speed_kts: float = 60.0
    callsign_max_len: int = 12

    # AAR recording (ticks kept per session, oldest evicted first)
    recording_capacity: int = 1800

    # Owner disconnect policy: False keeps the guide seat reserved for a
    # token reclaim; True hands it to the earliest-joined remaining player.
    release_owner_on_disconnect: bool = False


settings = Settings()
