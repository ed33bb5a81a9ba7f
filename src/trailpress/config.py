"""Project configuration.

Settings are loaded in priority order (highest first):
  1. Environment variables  (TRAILPRESS__LOGGING__LEVEL=DEBUG)
  2. <project>/config.yaml
  3. Hardcoded defaults

Unlike the defaults, ``domain``, ``title`` and ``description`` have no
sensible fallback and must be present in config.yaml.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from trailpress.errors import ErrorCode, SiteError

CONFIG_FILE_NAME = "config.yaml"

_DEFAULT_STATIC_EXTENSIONS = [
    "css",
    "js",
    "png",
    "jpg",
    "jpeg",
    "gif",
    "svg",
    "webmanifest",
    "ico",
    "txt",
]


class AltTextSettings(BaseModel):
    endpoint: str
    prompt: str = "Describe this image in detail"
    temperature: float = 0.1


class ProcessorSettings(BaseModel):
    generate_alt_text: AltTextSettings | None = None


class GpxEmbeddingSettings(BaseModel):
    # Mirrors are picked per tile by (x + y) mod len(base).
    base: list[str] = ["https://tile.openstreetmap.org"]
    attribution_png: Path | None = None
    tile_ttl_days: int = 31
    concurrency: int = Field(default=2, ge=1)
    timeout_seconds: float = 30.0
    user_agent: str = "trailpress/0.1 (+https://github.com/trailpress/trailpress)"

    @field_validator("base")
    @classmethod
    def validate_base(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("gpx_embedding.base needs at least one tile server")
        return [url.rstrip("/") for url in v]


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"


class Config(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: TRAILPRESS__GPX_EMBEDDING__CONCURRENCY=4
        env_prefix="TRAILPRESS__",
        env_nested_delimiter="__",
    )

    domain: str
    title: str
    description: str
    language: str = "en"

    dist_path: Path = Path("dist")
    content_path: Path = Path("content")
    static_source_path: Path = Path("static")
    template: Path = Path("templates")
    static_files_extensions: list[str] = Field(
        default_factory=lambda: list(_DEFAULT_STATIC_EXTENSIONS)
    )

    template_config: dict[str, Any] = Field(default_factory=dict)
    processors: ProcessorSettings = ProcessorSettings()
    gpx_embedding: GpxEmbeddingSettings = GpxEmbeddingSettings()
    logging: LoggingSettings = LoggingSettings()

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"domain must be an absolute http(s) URL, got {v!r}")
        return v.rstrip("/")

    @field_validator("static_files_extensions")
    @classmethod
    def normalise_extensions(cls, v: list[str]) -> list[str]:
        return [ext.lower().lstrip(".") for ext in v]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            env_settings,  # Environment variables (highest priority)
            init_settings,  # YAML values, passed in by Config.load()
            # dotenv and file secrets intentionally excluded
        )

    @classmethod
    def load(cls, root: Path) -> Config:
        """Read ``<root>/config.yaml``; raise SiteError if absent or invalid."""
        config_path = root / CONFIG_FILE_NAME
        if not config_path.is_file():
            raise SiteError(
                code=ErrorCode.CONFIG_INVALID,
                message=f"Config file not found: {config_path}",
                suggestion=f"Run the build from a project directory containing {CONFIG_FILE_NAME}.",
            )
        try:
            yaml_values = YamlConfigSettingsSource(cls, yaml_file=config_path)()
            return cls(**yaml_values)
        except (ValidationError, ValueError, yaml.YAMLError) as exc:
            raise SiteError(
                code=ErrorCode.CONFIG_INVALID,
                message=f"Config file is not valid: {config_path}",
                suggestion="Check the field names and types in config.yaml.",
            ) from exc
