from __future__ import annotations

import os
from pathlib import Path
from typing import List

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict  # type: ignore[import-not-found]


def yaml_config_settings_source(_: type[BaseSettings]):
    def _source() -> dict:
        path = Path(os.getenv("SCREENLINK_CONFIG_FILE", "config.yaml"))
        if not path.exists():
            return {}
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return data
    return _source


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SCREENLINK_",
        env_file=".env",
        case_sensitive=False,
    )

    # Core app settings
    cors_origin_regex: str | None = None
    log_level: str = "INFO"

    # Relay
    relay_url: str = "ws://localhost:8000/ws"
    room_code_length: int = 6

    # Peer transport
    ice_servers: List[str] = ["stun:stun.l.google.com:19302"]
    input_channel_label: str = "input"

    # Remote control
    input_throttle_ms: int = 16
    max_clicks_per_second: int = 10
    max_keys_per_second: int = 20
    blocked_keys: List[str] = ["F12", "Meta", "Alt"]

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings):
        # Order = highest priority first. Env should override YAML.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
            yaml_config_settings_source(cls),
        )


settings = AppSettings()
