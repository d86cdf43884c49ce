"""Configuration management for doomstream.

Loads settings from a YAML configuration file with environment variable
overrides. Supports .env files and the unprefixed ``DOOM_*`` variables
read by the droplet setup scripts.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/doomstream.yaml")


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535)
    public_dir: str = Field(default="public")
    max_method_length: int = Field(default=7, gt=0)
    max_path_length: int = Field(default=255, gt=0)
    max_query_length: int = Field(default=255, gt=0)
    max_body_bytes: int = Field(default=8192, gt=0)


class CaptureConfig(BaseModel):
    backend: Literal["framebuffer", "x11", "synthetic"] = Field(default="framebuffer")
    width: int = Field(default=320, gt=0)
    height: int = Field(default=200, gt=0)
    framebuffer_path: str = Field(default="/dev/fb0")
    bits_per_pixel: Literal[16, 24, 32] = Field(default=32)
    red_mask: int = Field(default=0x00FF0000, gt=0)
    green_mask: int = Field(default=0x0000FF00, gt=0)
    blue_mask: int = Field(default=0x000000FF, gt=0)
    x11_display_base: int = Field(default=10, ge=0, description="Session N uses display :base+N")
    frame_interval: float = Field(default=1 / 30, gt=0)
    jpeg_quality: int = Field(default=80, ge=1, le=100)
    max_frames: int | None = Field(default=None, gt=0, description="Stop each stream after N frames")


class ProgramConfig(BaseModel):
    binary: str = Field(default="chocolate-doom")
    asset_path: str = Field(default="/root/freedoom1.wad")
    extra_args: list[str] = Field(default_factory=list)
    disable_spawn: bool = Field(default=False)
    terminate_timeout: float = Field(default=2.0, ge=0)
    reap_interval: float = Field(default=0.5, gt=0)


class SessionsConfig(BaseModel):
    max_sessions: int = Field(default=8, gt=0)
    session_dir: str = Field(default="/root/doom_sessions")
    idle_timeout: float | None = Field(default=None, gt=0)
    sweep_interval: float = Field(default=1.0, gt=0)
    allow_input_create: bool = Field(default=True)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for doomstream.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "DOOMSTREAM_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    program: ProgramConfig = Field(default_factory=ProgramConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML arrives as init kwargs and must rank below the environment
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Build settings from defaults, a YAML file and the environment.

    The YAML path is ``config_path``, else ``$DOOMSTREAM_CONFIG``, else
    ``config/doomstream.yaml``; a missing file is not an error. Later
    sources win: defaults < YAML < .env < process environment. The
    legacy ``DOOM_*`` variables are folded into the YAML data, so a
    ``DOOMSTREAM_<SECTION>__<FIELD>`` variable outranks them too.
    """
    _load_dotenv()
    path = Path(config_path or os.environ.get("DOOMSTREAM_CONFIG") or DEFAULT_CONFIG_PATH)

    yaml_data: dict = {}
    if path.is_file():
        yaml_data = yaml.safe_load(path.read_text()) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_env_overrides(yaml_data)
    return Settings(**yaml_data)


def _load_dotenv(env_path: Path = Path(".env")) -> None:
    """Export ``KEY=value`` lines from a .env file without clobbering the environment.

    Accepts the ``export KEY="value"`` form written by shell deployment
    scripts, so the same file can be sourced by both.
    """
    if not env_path.is_file():
        return
    for raw in env_path.read_text().splitlines():
        line = raw.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key or key.startswith("#"):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        os.environ.setdefault(key, value)


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply the legacy unprefixed DOOM_* variables."""
    framebuffer = os.environ.get("DOOM_FRAMEBUFFER", "")
    session_dir = os.environ.get("DOOM_SESSION_DIR", "")
    wad_path = os.environ.get("DOOM_WAD_PATH", "")
    port = os.environ.get("DOOM_SERVER_PORT", "")
    disable_spawn = os.environ.get("DOOM_DISABLE_SPAWN", "")

    for section in ("server", "capture", "program", "sessions"):
        if not isinstance(yaml_data.get(section), dict):
            yaml_data[section] = {}

    if framebuffer:
        yaml_data["capture"]["framebuffer_path"] = framebuffer
    if session_dir:
        yaml_data["sessions"]["session_dir"] = session_dir
    if wad_path:
        yaml_data["program"]["asset_path"] = wad_path
    if port:
        try:
            value = int(port)
        except ValueError:
            value = 0
        if 0 < value < 65536:
            yaml_data["server"]["port"] = value
        else:
            logger.warning("Ignoring invalid DOOM_SERVER_PORT=%r", port)
    if disable_spawn.startswith("1"):
        yaml_data["program"]["disable_spawn"] = True
