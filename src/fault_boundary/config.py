"""Configuration with 4-layer resolution: defaults -> YAML -> env -> overrides.

Uses pydantic-settings with YamlConfigSettingsSource for layered configuration.
Supports ``.env`` file loading, ``FAULT_BOUNDARY_`` prefixed env vars, and
nested delimiter ``__`` for overriding sub-model fields.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from fault_boundary.recovery.models import (
    DEFAULT_CONTEXT_LABEL,
    RETRYABLE_MARKERS,
    RetryPolicy,
)


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class RecoverySettings(BaseModel):
    """Automatic retry budget and backoff."""

    max_retries: int = Field(default=3, ge=0, le=20)
    base_delay_ms: int = Field(default=1000, gt=0)
    max_delay_ms: int = Field(default=10_000, gt=0)
    retryable_markers: list[str] = Field(
        default_factory=lambda: list(RETRYABLE_MARKERS),
        description="Substrings that mark a fault as transient.",
    )

    @model_validator(mode="after")
    def _check_delays(self) -> RecoverySettings:
        if self.max_delay_ms < self.base_delay_ms:
            msg = "max_delay_ms must be >= base_delay_ms"
            raise ValueError(msg)
        return self

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            retryable_markers=tuple(self.retryable_markers),
        )


class BoundarySettings(BaseModel):
    """Protected region behavior."""

    context_label: str = Field(default=DEFAULT_CONTEXT_LABEL, min_length=1)
    reset_on_any_input_change: bool = False
    show_details: bool = Field(
        default=False,
        description="Show fault message and stack in the default fallback.",
    )


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Main Settings (4-layer resolution)
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_FILE = "fault-boundary.yaml"


class Settings(BaseSettings):
    """Top-level settings.

    Resolution order (last wins):
        1. Field defaults (defined above)
        2. YAML config file (``fault-boundary.yaml`` or ``--config`` path)
        3. Environment variables (prefixed ``FAULT_BOUNDARY_``)
        4. Programmatic overrides
    """

    model_config = SettingsConfigDict(
        env_prefix="FAULT_BOUNDARY_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file=_DEFAULT_CONFIG_FILE,
        yaml_file_encoding="utf-8",
        extra="ignore",
    )

    _config_path_override: ClassVar[Path | None] = None

    recovery: RecoverySettings = Field(default_factory=RecoverySettings)
    boundary: BoundarySettings = Field(default_factory=BoundarySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Order sources: overrides > env > .env > yaml > defaults."""
        yaml_file = cls._config_path_override or settings_cls.model_config.get(
            "yaml_file", _DEFAULT_CONFIG_FILE
        )
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
        )

    @classmethod
    def load(cls, config_path: Path | None = None, **overrides: Any) -> Settings:
        """Load settings with an optional YAML path and overrides.

        Args:
            config_path: Optional path to a YAML config file.
            **overrides: Values applied at highest priority.

        Returns:
            Fully-resolved Settings instance.

        Raises:
            ValidationError: If any setting value fails validation.
        """
        cls._config_path_override = config_path
        try:
            return cls(**overrides)
        finally:
            cls._config_path_override = None


def format_validation_error(exc: ValidationError) -> str:
    """Format a pydantic ValidationError into a user-friendly message."""
    lines: list[str] = []
    for error in exc.errors():
        loc = " -> ".join(str(part) for part in error["loc"])
        msg = error["msg"]
        raw_input = error.get("input")
        if raw_input is not None:
            lines.append(f"  {loc}: {msg} (got {raw_input!r})")
        else:
            lines.append(f"  {loc}: {msg}")
    return "Configuration error:\n" + "\n".join(lines)
