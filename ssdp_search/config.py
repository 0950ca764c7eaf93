"""
Configuration for SSDP searches.

Environment-driven defaults are loaded with Pydantic Settings; an individual
search is described by an immutable SearchConfiguration.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Well-known SSDP multicast group
SSDP_MULTICAST_HOST = "239.255.255.250"
SSDP_MULTICAST_PORT = 1900

# Search target that matches every service
SSDP_ALL = "ssdp:all"

# Extra time after the last response window before a search times out
SEARCH_TIMEOUT_SLACK = 0.1


class SSDPSettings(BaseSettings):
    """Application-wide SSDP defaults."""

    model_config = SettingsConfigDict(
        env_prefix="SSDP_",
        env_file=".env",
        extra="ignore",
    )

    search_target: str = Field(default=SSDP_ALL, description="Default ST header value")
    host: str = Field(default=SSDP_MULTICAST_HOST, description="Multicast group address")
    port: int = Field(default=SSDP_MULTICAST_PORT, description="Multicast group port")
    maximum_wait_response_time: float = Field(
        default=3.0,
        description="MX value in seconds, also the broadcast pacing base",
    )
    maximum_broadcasts_before_closing: int = Field(
        default=3,
        description="How many times the M-SEARCH is sent per search",
    )
    multicast_ttl: int = Field(default=2, description="IP_MULTICAST_TTL for outgoing queries")
    interface: str = Field(
        default="0.0.0.0",
        description="Local interface address for multicast membership",
    )
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()


class SearchConfiguration(BaseModel):
    """
    What to search for and how aggressively.

    Immutable once created. The overall search deadline is derived from
    the broadcast count and MX value and cannot be set directly.
    """

    model_config = ConfigDict(frozen=True)

    search_target: str = Field(min_length=1)
    host: str = Field(default=SSDP_MULTICAST_HOST, min_length=1)
    port: int = Field(default=SSDP_MULTICAST_PORT, gt=0, lt=65536)
    maximum_wait_response_time: float = Field(gt=0)
    maximum_broadcasts_before_closing: int = Field(ge=0)

    @property
    def search_timeout(self) -> float:
        """Seconds from transport readiness until the search times out."""
        return (
            self.maximum_broadcasts_before_closing * self.maximum_wait_response_time
            + SEARCH_TIMEOUT_SLACK
        )

    @property
    def is_search_all(self) -> bool:
        return self.search_target == SSDP_ALL

    @classmethod
    def create_multicast_configuration(
        cls,
        search_target: str,
        maximum_wait_response_time: float = 3,
        maximum_broadcasts_before_closing: int = 3,
    ) -> "SearchConfiguration":
        """Build a configuration targeting the well-known SSDP group."""
        return cls(
            search_target=search_target,
            host=SSDP_MULTICAST_HOST,
            port=SSDP_MULTICAST_PORT,
            maximum_wait_response_time=maximum_wait_response_time,
            maximum_broadcasts_before_closing=maximum_broadcasts_before_closing,
        )

    @classmethod
    def from_settings(cls, ssdp_settings: SSDPSettings, **overrides: Any) -> "SearchConfiguration":
        """Build a configuration from settings, with optional per-search overrides."""
        values: dict[str, Any] = {
            "search_target": ssdp_settings.search_target,
            "host": ssdp_settings.host,
            "port": ssdp_settings.port,
            "maximum_wait_response_time": ssdp_settings.maximum_wait_response_time,
            "maximum_broadcasts_before_closing": ssdp_settings.maximum_broadcasts_before_closing,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


# Singleton settings instance
settings = SSDPSettings()
