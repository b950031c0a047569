"""
Settings — read from ~/.goaltimer/config.json, overridden by GOALTIMER_* env vars.

Precedence: explicit values, then the environment, then the config file.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    InitSettingsSource,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:4000"
CONFIG_FILE = Path.home() / ".goaltimer" / "config.json"
ENV_PREFIX = "GOALTIMER_"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    base_url: str = DEFAULT_BASE_URL
    access_token: Optional[str] = None
    user_id: Optional[int] = None
    tick_interval: float = Field(1.0, gt=0)
    sync_interval: float = Field(30.0, gt=0)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, env_settings, _config_file_source(settings_cls)


def _config_file_source(settings_cls: type[BaseSettings]) -> PydanticBaseSettingsSource:
    try:
        return JsonConfigSettingsSource(settings_cls, json_file=CONFIG_FILE)
    except ValueError as e:
        logger.warning("Ignoring unreadable config file %s: %s", CONFIG_FILE, e)
        return InitSettingsSource(settings_cls, init_kwargs={})


def load_settings() -> Settings:
    """Settings from the environment and the config file. A missing or broken file means defaults."""
    return Settings()


def save_settings(settings: Settings, path: Optional[Path] = None) -> None:
    path = path or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings.model_dump(exclude_none=True), indent=2))
