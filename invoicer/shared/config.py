"""Shared configuration management for the invoicer.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="payment-text-invoicer",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # AI extraction configuration
    ai_provider: Literal["openai", "ollama"] = Field(
        default="openai",
        description="AI extraction provider: openai (cloud API), ollama (self-hosted LLM)",
    )
    ai_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=60,
        description="Hard ceiling for a single AI extraction call",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model used for extraction",
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="qwen2.5:7b",
        description="Ollama model to use for extraction (e.g., qwen2.5:7b, llama3.1:8b)",
    )

    # Invoice defaults
    invoice_prefix: str = Field(
        default="INV",
        pattern=r"^[A-Z]+$",
        description="Prefix of generated invoice numbers (PREFIX-YYYY-NNN)",
    )
    default_currency: str = Field(
        default="INR",
        description="Currency code (ISO 4217) used when none is detected",
    )

    # Key-value storage configuration
    storage_backend: Literal["memory", "file", "minio"] = Field(
        default="memory",
        description="Key-value store backend for profile, logo and numbering state",
    )
    storage_path: str = Field(
        default=".invoicer/store.json",
        description="JSON file used by the 'file' storage backend",
    )
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="S3-compatible storage endpoint (host:port)",
    )
    storage_access_key: str = Field(
        default="",
        description="Storage access key (use env var APP_STORAGE_ACCESS_KEY)",
    )
    storage_secret_key: str = Field(
        default="",
        description="Storage secret key (use env var APP_STORAGE_SECRET_KEY)",
    )
    storage_bucket: str = Field(
        default="invoicer",
        description="Bucket holding key-value objects",
    )
    storage_secure: bool = Field(
        default=False,
        description="Use HTTPS for storage connections",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
