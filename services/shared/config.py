"""Shared configuration management for the invoice extraction service.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

import tempfile
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_INFERENCE_PROVIDER=ollama
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
        default="invoice-extraction-service",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Inference provider configuration
    inference_provider: Literal["gemini", "openai", "ollama"] = Field(
        default="gemini",
        description="Inference provider: gemini (Google API), openai (cloud API), ollama (self-hosted)",
    )
    gemini_api_key: str = Field(
        default="",
        description="Gemini API key (falls back to GEMINI_API_KEY environment variable)",
    )
    gemini_model: str = Field(
        default="gemini-2.0-flash",
        description="Gemini model used for invoice extraction",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model used for invoice extraction",
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="qwen2.5:7b",
        description="Ollama model to use for extraction (e.g., qwen2.5:7b, llama3.1:8b)",
    )

    # Decoding parameters sent with every inference call
    generation_temperature: float = Field(
        default=0.0,
        ge=0.0,
        description="Sampling temperature (0 = deterministic decoding)",
    )
    generation_top_p: float = Field(default=0.95, ge=0.0, le=1.0, description="Nucleus sampling")
    generation_top_k: int = Field(default=40, ge=1, description="Top-k sampling")
    generation_max_output_tokens: int = Field(
        default=8192,
        ge=1,
        description="Output token ceiling",
    )
    generation_response_mime_type: str = Field(
        default="text/plain",
        description="Requested response format",
    )

    # Document fetching
    fetch_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for retrieving the source document",
    )
    fetch_max_redirects: int = Field(
        default=5,
        ge=0,
        le=5,
        description="Maximum redirects followed while retrieving the source document",
    )

    # Diagnostic artifacts
    artifact_dir: Path = Field(
        default=Path(tempfile.gettempdir()) / "invoice-extraction",
        description="Directory for debug dumps (raw bodies, PDFs, model replies)",
    )
    preview_chars: int = Field(
        default=1200,
        ge=0,
        description="Length of text previews attached to error responses",
    )

    # Persistence
    repository_backend: Literal["memory", "storage"] = Field(
        default="memory",
        description="Invoice record store: memory (process-local) or storage (S3-compatible)",
    )
    storage_records_prefix: str = Field(
        default="invoices/",
        description="Object name prefix for invoice records in storage",
    )

    # Storage configuration (S3-compatible object storage)
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
        default="invoices",
        description="Bucket holding invoice records",
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
