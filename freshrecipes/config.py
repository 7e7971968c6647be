"""Application configuration using pydantic-settings."""

from typing import List, Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    port: int = 8080
    host: str = "0.0.0.0"

    # Logging
    log_level: str = "INFO"

    # Rate Limiting (POST routes only; image GETs are never limited)
    rate_limit_per_hour: int = 100

    # CORS
    cors_origins: str = "*"  # Comma-separated origins or "*" for all

    # API keys for write routes. Empty disables the check.
    api_keys: str = ""

    # Image fetching
    image_max_bytes: int = 8 * 1024 * 1024  # 8 MiB
    image_fetch_timeout: float = 12.0  # seconds, wall clock for the whole fetch
    image_max_redirects: int = 5
    image_verify_dns: bool = True  # re-check resolved IPs before each hop
    image_reject_placeholders: bool = True
    image_max_ingest_urls: int = 20

    # Source page image discovery
    discovery_max_page_bytes: int = 2 * 1024 * 1024  # 2 MiB of HTML
    discovery_max_candidates: int = 30
    discovery_max_images: int = 8

    # Response
    image_delivery_mode: Literal["redirect", "inline"] = "redirect"
    image_route_path: str = "/image"  # used when rewriting <img src> in HTML

    # Storage
    storage_backend: Literal["memory", "firebase"] = "memory"
    storage_bucket: Optional[str] = None
    storage_public_base_url: Optional[str] = None
    storage_timeout: float = 15.0  # seconds

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Get list of CORS origins."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def valid_api_keys(self) -> List[str]:
        """Get list of accepted API keys."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]


# Global settings instance
settings = Settings()
