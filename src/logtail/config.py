"""Settings for the watched directory, the tail loop and logging.

A value is taken from the first source that sets it:
  1. Keyword arguments to ``Settings(...)`` (tests, embedding code)
  2. LOGTAIL_<SECTION>__<KEY> environment variables
  3. The TOML file named by LOGTAIL_CONFIG_FILE, else conf/settings.toml
     next to the source tree (skipped if absent)
  4. The defaults below

For example:
  LOGTAIL_WATCH__DIRECTORY=/var/log/lis
  LOGTAIL_WATCH__PATTERN=LIS*.XML
  LOGTAIL_TAIL__ACTIVE_WAIT_SECONDS=2.5
  LOGTAIL_LOGGING__LEVEL=DEBUG
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# src/logtail/config.py → repository root
_PROJECT_ROOT = Path(__file__).parent.parent.parent
_DEFAULT_CONFIG = _PROJECT_ROOT / "conf" / "settings.toml"

_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _config_file() -> Path:
    """Return the TOML file to read settings from.

    Raises FileNotFoundError if LOGTAIL_CONFIG_FILE names a missing file.
    """
    if env_val := os.environ.get("LOGTAIL_CONFIG_FILE"):
        p = Path(env_val)
        if not p.is_file():
            raise FileNotFoundError(f"LOGTAIL_CONFIG_FILE not found: {p}")
        return p
    return _DEFAULT_CONFIG


# ---------------------------------------------------------------------------
# One model per [section] of the TOML file
# ---------------------------------------------------------------------------


class WatchSettings(BaseModel):
    """Which directory to watch and which file names to pick up."""

    directory: Path = Path(".")
    # Glob matched against the file name only; the watch is non-recursive.
    pattern: str = "*.log"


class TailSettings(BaseModel):
    """Read buffering and wait timeouts of the tail loop."""

    chunk_size: int = Field(default=4096, ge=1)
    # Wait while no file is pending.
    idle_wait_seconds: float = Field(default=1.0, gt=0)
    # Wait while parked at the end of the only pending file.  This is also the
    # worst-case shutdown latency.
    active_wait_seconds: float = Field(default=5.0, gt=0)
    encoding: str = "utf-8"
    errors: str = "replace"


class LoggingSettings(BaseModel):
    """Logging verbosity and output format."""

    level: str = "INFO"
    # json: one object per line on stderr; text: coloured console output.
    format: Literal["json", "text"] = "json"

    @field_validator("level", mode="before")
    @classmethod
    def _normalise_level(cls, v: str) -> str:
        level = str(v).upper()
        if level not in _LEVELS:
            raise ValueError(f"level must be one of {sorted(_LEVELS)}, got {v!r}")
        return level


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Validated settings for one logtail process."""

    watch: WatchSettings = WatchSettings()
    tail: TailSettings = TailSettings()
    logging: LoggingSettings = LoggingSettings()

    model_config = SettingsConfigDict(
        env_prefix="LOGTAIL_",
        env_nested_delimiter="__",  # LOGTAIL_WATCH__PATTERN → watch.pattern
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # No dotenv or secrets directory.
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=_config_file()),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings on first use and return the same instance afterwards.

    Call ``get_settings.cache_clear()`` after changing LOGTAIL_* variables
    or the config file; tests do this around every test.
    """
    return Settings()
