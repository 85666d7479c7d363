"""Configuration management."""

import os
from pathlib import Path
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

DEFAULT_STORAGE_QUOTA = 5 * 1024 * 1024


class Config(BaseModel):
    """Application configuration."""

    # API Keys
    anthropic_api_key: str = Field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""),
        description="Anthropic API key (script decomposition and style analysis)"
    )
    google_application_credentials: str = Field(
        default_factory=lambda: os.getenv("GOOGLE_APPLICATION_CREDENTIALS", ""),
        description="Path to Google Cloud service account JSON"
    )
    google_cloud_project: str = Field(
        default_factory=lambda: os.getenv("GOOGLE_CLOUD_PROJECT", ""),
        description="Google Cloud project ID"
    )

    # Imagen settings
    imagen_location: str = Field(
        default_factory=lambda: os.getenv("IMAGEN_LOCATION", "us-central1"),
        description="Vertex AI region for Imagen"
    )
    imagen_model: str = Field(
        default_factory=lambda: os.getenv("IMAGEN_MODEL", "imagen-3.0-generate-002"),
        description="Imagen model name"
    )

    # Local storage
    storage_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("SCENEGEN_STORAGE_DIR", ".scenegen")),
        description="Directory backing the local session store"
    )
    storage_quota_bytes: int = Field(
        default_factory=lambda: int(
            os.getenv("SCENEGEN_STORAGE_QUOTA", str(DEFAULT_STORAGE_QUOTA))
        ),
        description="Byte quota of the local session store",
        gt=0,
    )

    # Model settings
    default_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Default Claude model"
    )

    class Config:
        """Pydantic config."""
        frozen = False

    def validate_required(self) -> None:
        """Validate that required credentials are set."""
        if not self.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY not set")

    def validate_imagen_required(self) -> None:
        """Validate that Imagen / Google Cloud configuration is set.

        Raises:
            ValueError: If any required Imagen configuration is missing.
        """
        missing: list[str] = []

        if not self.google_cloud_project:
            missing.append("GOOGLE_CLOUD_PROJECT")
        if not self.imagen_model:
            missing.append("IMAGEN_MODEL")

        if missing:
            raise ValueError(
                f"Missing required Imagen configuration: {', '.join(missing)}. "
                "Set the corresponding environment variables."
            )


# Global config instance
config = Config()
