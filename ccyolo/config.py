"""
Configuration for ccyolo.

Settings live in ~/.ccyolo/config.json (override the directory with
CCYOLO_HOME). The API key is resolved from the environment first, then
from the config file.
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-haiku-4-5-20251001"
MODEL_MAP = {
    "haiku": "claude-haiku-4-5-20251001",
    "sonnet": "claude-sonnet-4-5-20250929",
    "opus": "claude-opus-4-6",
}
DEFAULT_CACHE_TTL = 86400  # 24 hours
API_KEY_ENV_VARS = ("CCYOLO_API_KEY", "ANTHROPIC_API_KEY")


class Config(BaseModel):
    """Persisted ccyolo settings."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    enabled: bool = True
    preset: str = Field(default="balanced", min_length=1)
    model: str = DEFAULT_MODEL
    cache_ttl: int = Field(default=DEFAULT_CACHE_TTL, ge=0)
    logging: bool = False
    api_key: str = ""

    @field_validator("model")
    @classmethod
    def _expand_model_alias(cls, value: str) -> str:
        """Accept short names like 'sonnet' for full model ids."""
        value = value.strip()
        return MODEL_MAP.get(value, value) or DEFAULT_MODEL


def config_dir() -> Path:
    override = os.environ.get("CCYOLO_HOME", "")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".ccyolo"


def config_path() -> Path:
    return config_dir() / "config.json"


def cache_dir() -> Path:
    return config_dir() / "cache"


def presets_dir() -> Path:
    return config_dir() / "presets"


def log_path() -> Path:
    return config_dir() / "ccyolo.log"


def load_config(path: Path | None = None) -> Config:
    """Load config. Missing file or unparseable JSON gives defaults; invalid
    fields fall back to their defaults one by one.

    >>> load_config(Path("/nonexistent/config.json")).preset
    'balanced'
    """
    target = path or config_path()
    try:
        raw = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Config()
    except OSError as e:
        logger.warning("Cannot read config %s: %s", target, e)
        return Config()

    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.warning("Corrupt config %s, using defaults: %s", target, e)
        return Config()
    if not isinstance(data, dict):
        logger.warning("Corrupt config %s, using defaults: root must be a JSON object", target)
        return Config()
    return _overlay_defaults(data, target)


def _overlay_defaults(data: dict, source: Path) -> Config:
    """Keep every valid field; drop and log only the ones that fail."""
    values = {}
    for key, value in data.items():
        if key not in Config.model_fields:
            continue
        try:
            Config.model_validate({key: value})
        except ValidationError as e:
            logger.warning("Ignoring invalid %r in %s: %s", key, source, e.errors()[0]["msg"])
            continue
        values[key] = value
    return Config.model_validate(values)


def save_config(config: Config, path: Path | None = None) -> Path:
    """Write config atomically (temp file + replace)."""
    target = path or config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump_json(indent=2)
    tmp_fd, tmp_path = tempfile.mkstemp(dir=target.parent, suffix=".tmp")
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, target)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return target


def resolve_api_key(config: Config | None = None) -> str:
    """CCYOLO_API_KEY, then ANTHROPIC_API_KEY, then the config file."""
    for var in API_KEY_ENV_VARS:
        value = os.environ.get(var, "").strip()
        if value:
            return value
    if config is not None:
        return config.api_key.strip()
    return ""
