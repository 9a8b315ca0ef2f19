"""Configuration loader for Postlingo: YAML files, .env, then the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping, Sequence

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, Field, ValidationError, model_validator

from .costs import CostRates
from .errors import TranslationProviderConfigurationError

APP_NAME = "Postlingo"
CONFIG_FILE_NAME = "config.yaml"

POSITIVE_LIMITS = (
    "max_chunk_size",
    "max_chunk_count",
    "batch_size",
    "max_batch_count",
    "max_workers",
)

PROVIDER_SYNONYMS = {
    "azure_open_ai": "azure_openai",
    "azureopenai": "azure_openai",
}


class PostlingoConfig(BaseModel):
    """Schema describing all supported configuration options."""

    LLM_PROVIDER: Literal["azure_openai", "openai"] = Field(
        default="openai",
        description="Large language model provider selection.",
    )
    AZURE_OPENAI_API_KEY: str | None = Field(default=None, repr=False)
    AZURE_OPENAI_ENDPOINT: str | None = Field(default=None)
    AZURE_OPENAI_API_VERSION: str | None = Field(default=None)
    AZURE_OPENAI_DEPLOYMENT_NAME: str | None = Field(default=None)
    OPENAI_API_KEY: str | None = Field(default=None, repr=False)

    POSTLINGO_MODEL: str = Field(
        default="gpt-4.1-nano",
        description="Model used for every translation request.",
    )
    POSTLINGO_TEMPERATURE: float = Field(default=0.1)
    POSTLINGO_MAX_CHUNK_SIZE: int = Field(
        default=500,
        description="Maximum characters per HTML chunk.",
    )
    POSTLINGO_MAX_CHUNK_COUNT: int = Field(
        default=30,
        description="HTML requests splitting into more chunks are rejected.",
    )
    POSTLINGO_BATCH_SIZE: int = Field(
        default=10,
        description="Text units per structured translation request.",
    )
    POSTLINGO_MAX_BATCH_COUNT: int = Field(default=100)
    POSTLINGO_MAX_WORKERS: int = Field(
        default=8,
        description="Concurrent requests per translation run.",
    )
    POSTLINGO_REQUEST_TIMEOUT: float | None = Field(
        default=None,
        description="Deadline in seconds for a whole translation run.",
    )
    POSTLINGO_INPUT_COST_PER_MILLION: float = Field(default=0.05)
    POSTLINGO_OUTPUT_COST_PER_MILLION: float = Field(default=0.20)
    POSTLINGO_PROVIDER_DEBUG: bool = Field(default=False)
    POSTLINGO_LOG_LEVEL: str = Field(default="WARNING")

    @model_validator(mode="before")
    @classmethod
    def _normalise_provider(cls, data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("LLM_PROVIDER")
            if isinstance(raw_value, str):
                normalized = raw_value.strip().lower().replace("-", "_")
                normalized = PROVIDER_SYNONYMS.get(normalized, normalized)
                if normalized not in {"openai", "azure_openai"}:
                    normalized = "openai"
                data = {**data, "LLM_PROVIDER": normalized}
        return data


@dataclass(frozen=True)
class LoadedConfig:
    """Validated settings plus the source each key was last taken from."""

    model: PostlingoConfig
    sources: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TranslationLimits:
    """Plain engine settings, independent of where they were loaded from."""

    max_chunk_size: int = 500
    max_chunk_count: int = 30
    batch_size: int = 10
    max_batch_count: int = 100
    max_workers: int = 8
    temperature: float = 0.1
    request_timeout: float | None = None
    rates: CostRates = CostRates()

    def __post_init__(self) -> None:
        invalid = [
            name
            for name in POSITIVE_LIMITS
            if not isinstance(getattr(self, name), int) or getattr(self, name) < 1
        ]
        if invalid:
            raise TranslationProviderConfigurationError(
                f"Limits must be positive integers: {', '.join(invalid)}."
            )

    def with_overrides(self, **overrides: Any) -> "TranslationLimits":
        """Return a copy with every override that is not None applied."""

        return replace(
            self,
            **{key: value for key, value in overrides.items() if value is not None},
        )

    @classmethod
    def from_settings(cls, settings: Any) -> "TranslationLimits":
        return cls(
            max_chunk_size=int(settings.POSTLINGO_MAX_CHUNK_SIZE),
            max_chunk_count=int(settings.POSTLINGO_MAX_CHUNK_COUNT),
            batch_size=int(settings.POSTLINGO_BATCH_SIZE),
            max_batch_count=int(settings.POSTLINGO_MAX_BATCH_COUNT),
            max_workers=int(settings.POSTLINGO_MAX_WORKERS),
            temperature=float(settings.POSTLINGO_TEMPERATURE),
            request_timeout=(
                float(settings.POSTLINGO_REQUEST_TIMEOUT)
                if settings.POSTLINGO_REQUEST_TIMEOUT is not None
                else None
            ),
            rates=CostRates(
                input_per_million=float(settings.POSTLINGO_INPUT_COST_PER_MILLION),
                output_per_million=float(settings.POSTLINGO_OUTPUT_COST_PER_MILLION),
            ),
        )


@lru_cache(maxsize=1)
def _load_config_instance(app_dir: Path | None = None) -> LoadedConfig:
    """Load configuration layers once and cache the immutable instance."""

    base_dir = app_dir or Path.cwd()
    combined: dict[str, Any] = {}
    sources: dict[str, str] = {}
    _load_discovered_yaml(combined, sources, app_dir=base_dir)
    _merge_env_sources(combined, sources, app_dir=base_dir, schema=PostlingoConfig)

    if not combined:
        raise TranslationProviderConfigurationError(
            "No configuration sources were found. Provide settings via a home YAML "
            "file, a local config.yaml, a .env file, or environment variables."
        )

    try:
        model = PostlingoConfig.model_validate(combined)
    except ValidationError as exc:
        issues = _format_validation_errors(exc.errors(), sources)
        raise TranslationProviderConfigurationError(issues) from exc
    validate_settings(model)
    return LoadedConfig(model=model, sources=sources)


def discover_file_paths(app_dir: Path) -> list[Path]:
    """Existing YAML files, lowest precedence first: user config, then local."""

    config_home = Path(
        os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    )
    candidates = [
        config_home / APP_NAME.lower() / CONFIG_FILE_NAME,
        app_dir / CONFIG_FILE_NAME,
    ]
    return [path for path in candidates if path.is_file()]


def _load_discovered_yaml(
    target: dict[str, Any],
    sources: dict[str, str],
    *,
    app_dir: Path,
) -> None:
    """Merge every discovered YAML file into the target mapping."""

    for path in discover_file_paths(app_dir):
        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise TranslationProviderConfigurationError(
                f"Configuration files could not be read: {exc}"
            ) from exc
        if not isinstance(parsed, Mapping):
            raise TranslationProviderConfigurationError(
                f"Invalid configuration file {path}: expected a mapping at the root."
            )
        for key, value in parsed.items():
            target[key] = value
            sources[key] = f"file:{path}"


def _merge_env_sources(
    target: dict[str, Any],
    sources: dict[str, str],
    *,
    app_dir: Path,
    schema: type[BaseModel],
) -> None:
    """Merge .env and process environment variables into the target mapping."""

    allowed = set(schema.model_fields)

    def merge_values(values: Mapping[str, str | None], *, source_prefix: str) -> None:
        for key, value in sorted(values.items()):
            if value is None or key not in allowed:
                continue
            target[key] = value
            sources[key] = f"env:{source_prefix}:{key}"

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        merge_values(dotenv_values(dotenv_path), source_prefix=".env")

    merge_values(dict(os.environ), source_prefix="process")


def validate_settings(settings: Any) -> None:
    """Check provider credentials and engine limits after schema validation."""

    errors: list[str] = []
    provider = settings.LLM_PROVIDER

    if provider == "openai":
        if not settings.OPENAI_API_KEY:
            errors.append(
                "OPENAI_API_KEY is required when LLM_PROVIDER is 'openai'."
            )
    elif provider == "azure_openai":
        missing = [
            name
            for name in (
                "AZURE_OPENAI_API_KEY",
                "AZURE_OPENAI_ENDPOINT",
                "AZURE_OPENAI_API_VERSION",
                "AZURE_OPENAI_DEPLOYMENT_NAME",
            )
            if not getattr(settings, name)
        ]
        if missing:
            errors.append(
                "The following Azure OpenAI settings must be provided when "
                f"LLM_PROVIDER is 'azure_openai': {', '.join(missing)}."
            )

    for name in (
        "POSTLINGO_MAX_CHUNK_SIZE",
        "POSTLINGO_MAX_CHUNK_COUNT",
        "POSTLINGO_BATCH_SIZE",
        "POSTLINGO_MAX_BATCH_COUNT",
        "POSTLINGO_MAX_WORKERS",
    ):
        if int(getattr(settings, name)) < 1:
            errors.append(f"{name} must be a positive integer.")

    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise TranslationProviderConfigurationError(
            "Configuration validation errors detected:\n" + bullet_list
        )


def _format_validation_errors(
    entries: Sequence[Mapping[str, Any]],
    sources: Mapping[str, str],
) -> str:
    details: list[str] = []
    for entry in entries:
        path = entry.get("loc") or ()
        location = ".".join(str(part) for part in path if part not in {None, ""})
        message = str(entry.get("msg") or "Invalid value")
        source = sources.get(str(path[0])) if path else None
        origin = f" (source: {source})" if source else ""
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}{origin}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


def get_config(app_dir: Path | None = None) -> LoadedConfig:
    """Return the immutable configuration instance."""

    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> PostlingoConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model
