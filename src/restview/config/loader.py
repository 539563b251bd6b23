from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path("restview.config.yaml")

SUPPORTED_VERSIONS = (1,)

BASE_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "shapes": {
        "base_packages": [],
    },
    "entities": {
        "modules": [],
        "base": None,
    },
    "database": {
        "sqlite_path": "restview.db",
    },
    "projection": {
        "cache_enabled": True,
    },
    "security": {
        "enabled": False,
        "default_user_id_field": "user_id",
        "skip_entities": [],
        "fail_fast": True,
    },
}


class ShapeSettings(BaseModel):
    base_packages: List[str] = Field(default_factory=list, description="Packages scanned for @shape classes")


class EntitySettings(BaseModel):
    modules: List[str] = Field(default_factory=list, description="Modules imported so entity mappers exist")
    base: Optional[str] = Field(default=None, description="Declarative base as 'module:attribute'")


class DatabaseSettings(BaseModel):
    sqlite_path: str = "restview.db"


class ProjectionSettings(BaseModel):
    cache_enabled: bool = True


class SecuritySettings(BaseModel):
    """Per-user row scoping."""

    enabled: bool = Field(default=False, description="Filter every query by the current user id")
    default_user_id_field: str = Field(default="user_id", description="Owner column used when an entity declares none")
    skip_entities: List[str] = Field(default_factory=list, description="Qualified entity class names never scoped")
    fail_fast: bool = Field(default=True, description="Raise when no current user is bound")


class RestViewSettings(BaseModel):
    version: int = 1
    shapes: ShapeSettings = Field(default_factory=ShapeSettings)
    entities: EntitySettings = Field(default_factory=EntitySettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    projection: ProjectionSettings = Field(default_factory=ProjectionSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)


def _merge_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay user sections onto the built-in defaults, one level deep."""
    merged = deepcopy(BASE_DEFAULTS)
    for section, values in config.items():
        if section in merged:
            if values is None:
                continue
            if not isinstance(values, dict):
                raise ConfigurationError(f"Config section '{section}' must be a dictionary")
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def load_config(path: Path | None = None) -> Dict[str, Any]:
    cfg_path = path or DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_settings(config: Dict[str, Any]) -> RestViewSettings:
    """
    Validate a raw config dictionary into settings.

    Args:
        config: Dictionary as loaded from YAML

    Returns:
        RestViewSettings with built-in defaults filled in

    Raises:
        ConfigurationError: If the structure or values are invalid
    """
    if not isinstance(config, dict):
        raise ConfigurationError("Config must be a dictionary")
    version = config.get("version", 1)
    if version not in SUPPORTED_VERSIONS:
        raise ConfigurationError(f"Unsupported config version: {version}")

    merged = _merge_defaults(config)
    try:
        return RestViewSettings.model_validate(merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config: {e}") from e


def load_settings(path: Path | None = None) -> RestViewSettings:
    """Load and validate settings; a missing default file yields defaults."""
    if path is None and not DEFAULT_CONFIG_PATH.exists():
        return RestViewSettings()
    return parse_settings(load_config(path))
