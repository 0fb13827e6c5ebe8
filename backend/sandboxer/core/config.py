"""
Sandboxer - Application Configuration
Pydantic Settings with environment variable support
"""

from functools import lru_cache
from typing import List, Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sandboxer.domain.containers.entities import RuntimeConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
    
    # ==========================================================================
    # Application
    # ==========================================================================
    app_name: str = "Sandboxer"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "production"
    root_path: str = ""  # path prefix when served behind a reverse proxy
    
    # ==========================================================================
    # Server
    # ==========================================================================
    host: str = "0.0.0.0"
    port: int = 8090
    
    # ==========================================================================
    # Container engine
    # ==========================================================================
    docker_url: str = Field(
        default="unix:///var/run/docker.sock",
        validation_alias=AliasChoices("DOCKER_HOST", "DOCKER_URL"),
    )
    network_name: str = "fabio_network"
    
    # ==========================================================================
    # Service discovery (Consul, routed by fabio)
    # ==========================================================================
    consul_addr: str = Field(
        default="consul:8500",
        validation_alias=AliasChoices("FABIO_REGISTRY_CONSUL_ADDR", "CONSUL_ADDR"),
    )
    consul_timeout_seconds: float = 10.0
    endpoint_profile: Literal["full", "desktop"] = "full"
    health_check_interval: str = "10s"
    
    # ==========================================================================
    # Default VNC session
    # ==========================================================================
    default_vnc_password: str = ""
    default_vnc_resolution: str = "1360x768"
    default_vnc_col_depth: int = 24
    default_vnc_view_only: bool = False
    default_vnc_display: str = ":1"
    
    # ==========================================================================
    # Reconciler
    # ==========================================================================
    failed_record_ttl_seconds: int = 3600
    failed_record_sweep_interval: int = 60
    event_retry_delay_seconds: float = 5.0
    
    # ==========================================================================
    # Shutdown
    # ==========================================================================
    shutdown_grace_seconds: float = 30.0  # wait for in-flight jobs before closing clients
    
    # ==========================================================================
    # CORS
    # ==========================================================================
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    
    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | List[str]) -> List[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v
    
    # ==========================================================================
    # Logging
    # ==========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"
    
    @property
    def default_runtime_config(self) -> RuntimeConfig:
        """Process-wide defaults merged into every requested VNC config."""
        return RuntimeConfig(
            password=self.default_vnc_password,
            resolution=self.default_vnc_resolution,
            col_depth=self.default_vnc_col_depth,
            view_only=self.default_vnc_view_only,
            display=self.default_vnc_display,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
