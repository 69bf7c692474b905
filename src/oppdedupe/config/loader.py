from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from oppdedupe.dedupe.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("oppdedupe.config.yaml")
DEFAULT_SQLITE_PATH = "oppdedupe.db"

WEIGHT_TOLERANCE = 1e-6


class DedupeConfig(BaseModel):
    """
    Options for every stage of the dedup pipeline.

    Immutable; build a variant with `with_overrides` instead of mutating.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    similarity_threshold: float = Field(0.85, ge=0.0, le=1.0)
    title_similarity_threshold: float = Field(0.8, ge=0.0, le=1.0)
    description_similarity_threshold: float = Field(0.0, ge=0.0, le=1.0)
    organization_match_required: bool = False
    organization_match_min: float = Field(0.9, ge=0.0, le=1.0)

    title_weight: float = Field(0.4, ge=0.0, le=1.0)
    organization_weight: float = Field(0.3, ge=0.0, le=1.0)
    description_weight: float = Field(0.2, ge=0.0, le=1.0)
    deadline_weight: float = Field(0.1, ge=0.0, le=1.0)

    absent_similarity: float = Field(0.5, ge=0.0, le=1.0)
    deadline_window_days: int = Field(14, gt=0)
    fuzzy_window_days: int = Field(30, gt=0)
    candidate_pool_limit: int = Field(100, gt=0)
    field_match_min: float = Field(0.8, ge=0.0, le=1.0)

    min_title_length: int = Field(1, ge=1)
    min_description_length: int = Field(1, ge=0)

    max_batch_size: int = Field(500, gt=0)
    archive_secondaries: bool = True
    reconcile_window_days: Optional[int] = Field(None, gt=0)

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> "DedupeConfig":
        total = self.title_weight + self.organization_weight + self.description_weight + self.deadline_weight
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"Similarity weights must sum to 1.0 (got {total:.6f})")
        return self

    def with_overrides(self, **options: Any) -> "DedupeConfig":
        """Return a validated copy with the given options replaced."""
        return build_dedupe_config({**self.model_dump(), **options})


def build_dedupe_config(options: Optional[Dict[str, Any]] = None) -> DedupeConfig:
    """
    Validate a plain dict of options into a DedupeConfig.

    Raises:
        ConfigError: If an option is unknown or out of range
    """
    try:
        return DedupeConfig(**(options or {}))
    except ValidationError as e:
        raise ConfigError(f"Invalid dedupe config: {e}") from e


def load_config(path: Path | None = None) -> Dict[str, Any]:
    cfg_path = path or DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ConfigError("Config must be a dictionary")
    for section in ("storage", "dedupe"):
        if section in config and not isinstance(config[section] or {}, dict):
            raise ConfigError(f"Config section '{section}' must be a dictionary")
    return config


def load_dedupe_config(path: Path | None = None, config: Dict[str, Any] | None = None) -> DedupeConfig:
    """
    Load the `dedupe` section of the YAML config.

    Args:
        path: Optional config path. Defaults to oppdedupe.config.yaml
        config: Already-loaded config dict (skips reading the file)

    Returns:
        Validated DedupeConfig (defaults for every option not in the file)

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ConfigError: If the dedupe section is invalid
    """
    if config is None:
        config = load_config(path)
    return build_dedupe_config(config.get("dedupe") or {})


def get_sqlite_path(config: Dict[str, Any] | None = None) -> str:
    """Return storage.sqlite_path, falling back to the default database file."""
    storage = (config or {}).get("storage") or {}
    return storage.get("sqlite_path", DEFAULT_SQLITE_PATH)
