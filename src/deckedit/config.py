"""Configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. User config:   ~/.deckedit/config.yaml
    3. An explicit config file passed to ``Settings.load()``
    4. Environment variables prefixed with DECKEDIT_

Call ``get_settings()`` where a value is needed; tests swap the singleton with
``override_settings()``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class StorageConfig(BaseModel):
    uploads_dir: Path = Path("uploads")
    templates_dir: Path = Path("~/.deckedit/templates")
    output_dir: Path = Field(
        default=Path("uploads"),
        description="Where generated decks are written before being handed back.",
    )
    temp_cleanup_delay_seconds: Annotated[float, Field(ge=0, le=3600)] = Field(
        default=0.0,
        description="Seconds to wait before deleting request temp files (0 = on exit).",
    )


class MatchingConfig(BaseModel):
    """Position tolerances used to pair edited elements with originals.

    Both values are tuned heuristics carried over from the field, not
    derived contracts.
    """

    tight_tolerance_in: Annotated[float, Field(gt=0, le=10)] = 0.1
    loose_tolerance_in: Annotated[float, Field(gt=0, le=10)] = 1.0


class PackageConfig(BaseModel):
    compression_level: Annotated[int, Field(ge=0, le=9)] = 6


class TableConfig(BaseModel):
    default_x_in: float = 1.0
    default_y_in: float = 1.0
    default_width_in: Annotated[float, Field(gt=0)] = 6.0
    default_height_in: Annotated[float, Field(gt=0)] = 3.0
    even_row_fill: str = "FFFFFF"
    odd_row_fill: str = "E7E6E6"
    style_id: str = "{5C22544A-7EE6-4342-B048-85BDC9FD1C3A}"


class ShapeConfig(BaseModel):
    min_width_in: Annotated[float, Field(gt=0)] = 6.0
    min_height_in: Annotated[float, Field(gt=0)] = 4.0
    chart_size_px: Annotated[int, Field(ge=64, le=4096)] = 600


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DECKEDIT_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    package: PackageConfig = Field(default_factory=PackageConfig)
    tables: TableConfig = Field(default_factory=TableConfig)
    shapes: ShapeConfig = Field(default_factory=ShapeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("storage", mode="before")
    @classmethod
    def expand_storage_paths(cls, v: object) -> object:
        if isinstance(v, dict):
            for key in ("uploads_dir", "templates_dir", "output_dir"):
                if key in v and isinstance(v[key], str):
                    v[key] = Path(v[key]).expanduser()
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; DECKEDIT_* variables outrank them
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables."""
        data: dict[str, object] = {}

        candidates = [Path.home() / ".deckedit" / "config.yaml"]
        if config_file:
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                import yaml

                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
                    data.update(loaded)

        return cls(**data)


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
