from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from flowbridge.constants import (
    CONFIG_FILE_NAME,
    DEFAULT_EVAL_MAX_STEPS,
    DEFAULT_EVAL_TIMEOUT_SECONDS,
    DEFAULT_MAX_BUILT_SIZE,
    DEFAULT_MAX_TREE_DEPTH,
    DEFAULT_UPSTREAM_REF,
    MAX_EXPRESSION_LENGTH,
)
from flowbridge.exceptions import ConfigError
from flowbridge.logging import get_logger

__all__ = [
    "FlowbridgeConfig",
    "ExpressionConfig",
    "EvaluationFallback",
    "load_config",
    "get_user_config_path",
]

logger = get_logger(__name__)


class EvaluationFallback(str, Enum):
    """Value substituted when an expression fails to evaluate.

    Values:
        NONE: Return None.
        ORIGINAL: Return the original, unevaluated expression string.
    """

    NONE = "none"
    ORIGINAL = "original"


class ExpressionConfig(BaseModel):
    """Settings for expression evaluation and parameter processing.

    Attributes:
        timeout_seconds: Wall-clock budget for one evaluation.
        max_steps: Maximum interpreter node visits for one evaluation.
        max_built_size: Total length of the strings, arrays and objects that
            calls may return during one evaluation.
        max_expression_length: Longer expression bodies are rejected unparsed.
        max_depth: Parameter-tree depth beyond which subtrees pass through.
        fallback: Result of a failed evaluate_expression call.
        upstream_ref: Make module id used for ``$json`` when the caller
            does not resolve one.
    """

    timeout_seconds: float = Field(
        default=DEFAULT_EVAL_TIMEOUT_SECONDS, gt=0.0, le=30.0
    )
    max_steps: int = Field(default=DEFAULT_EVAL_MAX_STEPS, ge=100, le=10_000_000)
    max_built_size: int = Field(
        default=DEFAULT_MAX_BUILT_SIZE, ge=1_000, le=1_000_000_000
    )
    max_expression_length: int = Field(
        default=MAX_EXPRESSION_LENGTH, ge=16, le=1_000_000
    )
    max_depth: int = Field(default=DEFAULT_MAX_TREE_DEPTH, ge=1, le=10_000)
    fallback: EvaluationFallback = EvaluationFallback.NONE
    upstream_ref: int = Field(default=DEFAULT_UPSTREAM_REF, ge=0)


class YamlConfigSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from YAML files."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file: Path | None = None,
    ):
        super().__init__(settings_cls)
        self.yaml_file = yaml_file
        self._config_data: dict[str, Any] = {}
        if yaml_file and yaml_file.exists():
            try:
                with open(yaml_file) as f:
                    loaded = yaml.safe_load(f)
                    if loaded is None:
                        logger.warning(
                            f"Config file {yaml_file} is empty, using defaults."
                        )
                    elif isinstance(loaded, dict):
                        self._config_data = loaded
                    else:
                        raise ConfigError(
                            message=f"Config file {yaml_file} must contain a mapping",
                            field=None,
                            value=type(loaded).__name__,
                        )
            except yaml.YAMLError as e:
                raise ConfigError(
                    message=f"Invalid YAML in {yaml_file}: {e}",
                    field=None,
                    value=None,
                ) from e

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        """Get value for a specific field from the YAML config."""
        if field_name in self._config_data:
            return self._config_data[field_name], field_name, False
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return the complete config data."""
        return self._config_data


class FlowbridgeConfig(BaseSettings):
    """Root configuration object containing all flowbridge settings."""

    model_config = SettingsConfigDict(
        env_prefix="FLOWBRIDGE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    expressions: ExpressionConfig = Field(default_factory=ExpressionConfig)
    verbosity: Literal["error", "warning", "info", "debug"] = "warning"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of settings sources.

        Priority (highest to lowest):
        1. Init arguments (an explicit --config file, or test overrides)
        2. Environment variables (FLOWBRIDGE_*)
        3. Project YAML config (./flowbridge.yaml)
        4. User YAML config (~/.config/flowbridge/config.yaml)
        """
        return (
            init_settings,
            env_settings,
            YamlConfigSource(settings_cls, Path.cwd() / CONFIG_FILE_NAME),
            YamlConfigSource(settings_cls, get_user_config_path()),
        )


def get_user_config_path() -> Path:
    """Get the path to the user configuration file.

    Returns:
        Path to ~/.config/flowbridge/config.yaml
    """
    return Path.home() / ".config" / "flowbridge" / "config.yaml"


def load_config(config_path: Path | None = None) -> FlowbridgeConfig:
    """Load configuration with hierarchy: defaults -> user -> project -> env.

    An explicit ``config_path`` is applied as init settings, so its values
    take precedence over environment variables as well as the discovered
    project and user files.

    Args:
        config_path: Optional path to a config file. Defaults to
            ./flowbridge.yaml discovery

    Returns:
        FlowbridgeConfig instance with merged configuration

    Raises:
        ConfigError: If configuration is invalid
    """
    if config_path is not None and not config_path.exists():
        raise ConfigError(
            message=f"Config file not found: {config_path}",
            field=None,
            value=str(config_path),
        )
    if config_path is None and not (Path.cwd() / CONFIG_FILE_NAME).exists():
        logger.debug("No project configuration found, using defaults.")

    try:
        if config_path is not None:
            overrides = YamlConfigSource(FlowbridgeConfig, config_path)()
            return FlowbridgeConfig(**overrides)
        return FlowbridgeConfig()
    except ValidationError as e:
        first_error = e.errors()[0]
        field = ".".join(str(loc) for loc in first_error["loc"])
        raise ConfigError(
            message=f"Invalid configuration: {first_error['msg']}",
            field=field,
            value=first_error.get("input"),
        ) from e
