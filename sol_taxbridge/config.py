"""Runtime settings layered from CLI overrides, environment and YAML."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


DEFAULT_RPC_URL = "https://mainnet.helius-rpc.com"


class APIKeys(BaseModel):
    """Provider credentials; every key is optional and gates its provider."""

    helius: Optional[str] = None
    birdeye: Optional[str] = None
    jupiter: Optional[str] = None
    gemini: Optional[str] = None


class YamlFileSource(PydanticBaseSettingsSource):
    """Settings read from an optional YAML file; ranks below env and ``.env``."""

    def __init__(self, settings_cls: type[BaseSettings], path: Optional[Path]) -> None:
        super().__init__(settings_cls)
        self.path = path
        self._values = self._read(path)

    @staticmethod
    def _read(path: Optional[Path]) -> Dict[str, Any]:
        if path is None or not path.is_file():
            return {}
        loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"{path} must contain a YAML mapping")
        return loaded

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        return self._values.get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        return dict(self._values)


class AppSettings(BaseSettings):
    """Thresholds, concurrency limits and credentials for one run."""

    model_config = SettingsConfigDict(env_prefix="SOLTAX_", env_file=".env", extra="ignore")

    config_file: Optional[Path] = Field(default=None, exclude=True)

    wallets: list[str] = Field(default_factory=list)
    rpc_url: str = DEFAULT_RPC_URL
    fetch_limit: int = 100
    rate_limit_seconds: float = 0.1

    spam_threshold: float = 0.5
    fee_threshold: float = 0.01
    rent_tolerance: float = 0.0005
    loss_tolerance: float = 0.95

    concurrency: int = 10
    price_concurrency: int = 5
    include_spam: bool = False
    use_model: bool = True
    model_name: str = "gemini-2.0-flash"
    model_timeout: float = 20.0

    api_keys: APIKeys = Field(default_factory=APIKeys)

    @field_validator("spam_threshold", "loss_tolerance")
    @classmethod
    def _unit_interval(cls, value: float) -> float:
        if not 0 <= value <= 1:
            raise ValueError("must be between 0 and 1")
        return value

    @field_validator("fee_threshold", "rent_tolerance", "model_timeout")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("concurrency", "price_concurrency", "fetch_limit")
    @classmethod
    def _positive_int(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        explicit = getattr(init_settings, "init_kwargs", {})
        config_file = explicit.get("config_file")
        yaml_file = YamlFileSource(settings_cls, Path(config_file) if config_file else None)
        return init_settings, env_settings, dotenv_settings, yaml_file, file_secret_settings


def load_settings(config_file: Optional[Path] = None, overrides: Optional[Dict[str, Any]] = None) -> AppSettings:
    """Resolve settings with CLI ``overrides`` first, then env, ``.env`` and ``config_file``."""

    values = dict(overrides or {})
    if config_file is not None:
        values["config_file"] = config_file
    return AppSettings(**values)
