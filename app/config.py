"""
Configuration management for Achalasia Cardia AI.

Uses Pydantic Settings for type-safe environment variable handling.
All configuration is loaded from environment variables or .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )
    
    # ==========================================================================
    # Application
    # ==========================================================================
    app_name: str = "Achalasia Cardia AI"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    
    # ==========================================================================
    # Server
    # ==========================================================================
    host: str = "0.0.0.0"
    port: int = 8000
    
    # ==========================================================================
    # AI Gateway (chat-completion style endpoint)
    # ==========================================================================
    ai_gateway_url: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    ai_gateway_api_key: str = ""
    ai_model: str = "google/gemini-2.5-pro"
    # None leaves the timeout to the transport
    ai_request_timeout: Optional[float] = None
    
    # ==========================================================================
    # Rate Limiting
    # ==========================================================================
    rate_limit_per_minute: int = 30
    
    # ==========================================================================
    # File Upload
    # ==========================================================================
    max_file_size_mb: int = 20
    allowed_image_extensions: str = ".png,.jpg,.jpeg,.gif,.bmp,.tif,.tiff,.webp"
    
    # ==========================================================================
    # Report Output
    # ==========================================================================
    report_attribution: str = "Powered by Gemini 2.5 Pro Vision"
    
    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @property
    def max_file_size_bytes(self) -> int:
        """Maximum file size in bytes."""
        return self.max_file_size_mb * 1024 * 1024
    
    @property
    def image_extensions(self) -> list[str]:
        """List of allowed image extensions."""
        return [ext.strip() for ext in self.allowed_image_extensions.split(",")]


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.
    
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience access
settings = get_settings()
