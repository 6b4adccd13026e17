"""Mosaic configuration via environment / .env file."""

from __future__ import annotations

import ipaddress
from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MOSAIC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Storage ---
    DATA_DIR: Path = Path.home() / ".mosaic"
    PLUGINS_DIR: Path | None = None

    # --- Sidecar runtime ---
    SIDECAR_HOST: str = "127.0.0.1"
    SIDECAR_PORT: int = 8765
    SIDECAR_RUNTIME: str = "java"
    SIDECAR_BUNDLE_NAME: str = "jvm-bridge-1.0.0.jar"
    SIDECAR_BUNDLE_DIR: str = "jvm-bridge/build/libs"
    SIDECAR_BUNDLE_PATHS: list[Path] = []
    SIDECAR_AUTOSTART: bool = True

    # --- Timeouts (seconds) ---
    SIDECAR_HEALTH_TIMEOUT: float = 2.0
    SIDECAR_STARTUP_TIMEOUT: float = 15.0
    SIDECAR_LOAD_TIMEOUT: float = 30.0
    SIDECAR_CALL_TIMEOUT: float = 15.0
    PROVIDER_SEARCH_TIMEOUT: float = 20.0
    PROVIDER_LOAD_TIMEOUT: float = 20.0
    SCRIPT_EXEC_TIMEOUT: float = 5.0
    DOWNLOAD_TIMEOUT: float = 30.0

    # --- Scripted providers ---
    SCRIPT_ALLOW_NETWORK: bool = True

    # --- Search / resume ---
    MIN_QUERY_LENGTH: int = 2
    RESUME_MIN_POSITION: float = 10.0
    RESUME_MAX_PROGRESS: float = 0.9

    # --- Observability ---
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # --- CORS ---
    CORS_ORIGINS: list[str] = ["http://localhost:3001", "http://localhost:5173"]

    @model_validator(mode="after")
    def _derive_plugins_dir(self) -> "Settings":
        if self.PLUGINS_DIR is None:
            self.PLUGINS_DIR = self.DATA_DIR / "plugins"
        return self

    @field_validator("SIDECAR_HOST")
    @classmethod
    def _loopback_only(cls, v: str) -> str:
        if v == "localhost":
            return v
        try:
            if ipaddress.ip_address(v).is_loopback:
                return v
        except ValueError:
            pass
        raise ValueError(f"SIDECAR_HOST must be a loopback address, got {v!r}")

    @field_validator("RESUME_MAX_PROGRESS")
    @classmethod
    def _fraction(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError(f"RESUME_MAX_PROGRESS must be in (0, 1], got {v}")
        return v

    @property
    def sidecar_url(self) -> str:
        return f"http://{self.SIDECAR_HOST}:{self.SIDECAR_PORT}"


settings = Settings()
