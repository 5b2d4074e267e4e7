"""Configuration management for faceage."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeviceConfig(BaseModel):
    """Device configuration."""

    name: str = "faceage"
    mode: Literal["production", "development"] = "development"
    log_level: str = "INFO"


class EstimationConfig(BaseModel):
    """Age estimator configuration.

    Frozen: an estimator holds one of these for its whole lifetime. Use
    ``model_copy(update=...)`` and ``AgeEstimator.with_configuration`` to
    reconfigure.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    strategy: Literal["auto", "landmark", "model"] = "auto"
    model_path: str = "models/AgeEstimator.npz"
    confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)


class AnalysisConfig(BaseModel):
    """Face analysis service configuration."""

    max_faces: int = Field(default=10, ge=1)
    face_padding: float = Field(default=0.3, ge=0.0)
    stats_window: int = Field(default=30, ge=1)
    max_workers: int = Field(default=4, ge=1)
    thumbnail_size: int = 150
    thumbnail_quality: int = Field(default=70, ge=1, le=100)


class Config(BaseSettings):
    """Main configuration for faceage."""

    model_config = SettingsConfigDict(
        env_prefix="FACEAGE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    device: DeviceConfig = Field(default_factory=DeviceConfig)
    estimation: EstimationConfig = Field(default_factory=EstimationConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)

    @classmethod
    def from_yaml(cls, path: Path | str) -> Config:
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False)


def load_config(
    config_path: Path | str | None = None,
    env_override: bool = True,
) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Path to config file. If None, searches standard locations.
        env_override: Whether to allow environment variables to override config.

    Returns:
        Loaded configuration.
    """
    # Standard config locations
    search_paths = [
        Path("/etc/faceage/config.yaml"),
        Path.home() / ".config" / "faceage" / "config.yaml",
        Path("config.yaml"),
        Path("configs/faceage.yaml"),
    ]

    if config_path:
        search_paths.insert(0, Path(config_path))

    config_file: Path | None = None
    for path in search_paths:
        if path.exists():
            config_file = path
            break

    if config_file:
        config = Config.from_yaml(config_file)
    else:
        config = Config()

    if env_override:
        updates: dict[str, Any] = {}

        model_path = os.environ.get("FACEAGE_MODEL_PATH")
        if model_path:
            updates["model_path"] = model_path

        strategy = os.environ.get("FACEAGE_ESTIMATION_STRATEGY", "").lower()
        if strategy:
            updates["strategy"] = strategy

        if updates:
            # Estimation settings are frozen
            config.estimation = EstimationConfig(
                **{**config.estimation.model_dump(), **updates}
            )

    return config


def get_default_config() -> dict[str, Any]:
    """Get default configuration as dictionary."""
    return Config().model_dump()
