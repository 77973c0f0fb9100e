"""Configuration management for the Automaker desktop shell."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from automaker_desktop.exceptions import ConfigError


class AppConfig(BaseModel):
    name: str = "Automaker"
    version: str = "0.1.0"
    log_level: str = "INFO"
    # None means "detect from the frozen bundle"
    packaged: Optional[bool] = None
    resources_dir: Optional[str] = None
    data_dir: str = str(Path.home() / ".automaker")
    log_dir: Optional[str] = None


class BackendConfig(BaseModel):
    port: int = Field(default=3008, ge=1, le=65535)
    health_path: str = "/api/health"
    stop_timeout: float = Field(default=5.0, gt=0)


class StaticConfig(BaseModel):
    port: int = Field(default=3007, ge=1, le=65535)
    root: Optional[str] = None
    # None follows the packaged flag
    enabled: Optional[bool] = None


class ReadinessConfig(BaseModel):
    max_attempts: int = Field(default=30, ge=1)
    interval: float = Field(default=0.5, ge=0)
    probe_timeout: float = Field(default=1.0, gt=0)


class WindowConfig(BaseModel):
    title: str = "Automaker"
    width: int = 1400
    height: int = 900
    min_width: int = 1024
    min_height: int = 700
    background_color: str = "#0a0a0a"
    open_devtools: bool = False


class Config(BaseSettings):
    """Desktop shell configuration loaded from env vars and config file."""

    app: AppConfig = Field(default_factory=AppConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    static: StaticConfig = Field(default_factory=StaticConfig)
    readiness: ReadinessConfig = Field(default_factory=ReadinessConfig)
    window: WindowConfig = Field(default_factory=WindowConfig)

    model_config = {
        "env_prefix": "AUTOMAKER_",
        "env_nested_delimiter": "__",
        "extra": "ignore",
    }

    @property
    def is_packaged(self) -> bool:
        if self.app.packaged is not None:
            return self.app.packaged
        return bool(getattr(sys, "frozen", False))

    @property
    def serve_static(self) -> bool:
        if self.static.enabled is not None:
            return self.static.enabled
        return self.is_packaged

    @property
    def resources_path(self) -> Path:
        """Directory holding the server bundle and static build."""
        if self.app.resources_dir:
            return Path(self.app.resources_dir)
        return Path(getattr(sys, "_MEIPASS", Path.cwd()))

    @property
    def static_root(self) -> Path:
        if self.static.root:
            return Path(self.static.root)
        return self.resources_path / "out"

    @property
    def data_path(self) -> Path:
        return Path(self.app.data_dir).expanduser()

    @property
    def log_path(self) -> Path:
        if self.app.log_dir:
            return Path(self.app.log_dir).expanduser()
        return self.data_path / "logs"

    @property
    def backend_url(self) -> str:
        return f"http://localhost:{self.backend.port}"

    @property
    def health_url(self) -> str:
        return f"{self.backend_url}{self.backend.health_path}"

    @property
    def ui_url(self) -> str:
        # Next.js dev server and the production static server share this port
        return f"http://localhost:{self.static.port}"

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> Config:
        """Load configuration from YAML file and environment variables."""
        config_path = config_path or os.getenv("AUTOMAKER_CONFIG", "./config.yaml")

        file_config = {}
        config_file = Path(config_path)
        if config_file.exists():
            try:
                with open(config_file) as f:
                    file_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid config file {config_file}: {exc}") from exc
            if not isinstance(file_config, dict):
                raise ConfigError(f"Config file {config_file} must contain a mapping")

        return cls(**file_config)
