from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .retry import RetryPolicy
from .split import SplitPercentages

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_PUMP_PORTAL_API = "https://pumpportal.fun/api"
DEFAULT_PUMP_FUN_API = "https://frontend-api.pump.fun"

CONFIG_ENV = "STARFIRE_CONFIG"
CONFIG_CANDIDATES = ("config.toml", "config.yaml", "config.yml")


class ConfigError(ValueError):
    """Raised when a configuration file or override is invalid."""


class SplitConfig(BaseModel):
    burn: int = 25
    buyback: int = 25
    holder_reward: int = 25
    lp_pool: int = 25

    @model_validator(mode="after")
    def _sums_to_hundred(self) -> "SplitConfig":
        values = (self.burn, self.buyback, self.holder_reward, self.lp_pool)
        if any(v < 0 for v in values):
            raise ValueError("split percentages must be non-negative")
        if sum(values) != 100:
            raise ValueError(f"split percentages must sum to 100, got {sum(values)}")
        return self

    def to_percentages(self) -> SplitPercentages:
        return SplitPercentages(self.burn, self.buyback, self.holder_reward, self.lp_pool)


class EngineConfig(BaseModel):
    """Settings for one fee engine instance."""

    model_config = ConfigDict(extra="allow")

    token_mint: Optional[str] = None
    rpc_url: str = DEFAULT_RPC_URL
    claim_interval_minutes: float = Field(10.0, gt=0)
    split: SplitConfig = Field(default_factory=SplitConfig)
    momentum_period: int = Field(14, ge=1)
    min_holders: int = Field(5, ge=1)
    min_fee_threshold_lamports: int = Field(100_000, ge=0)
    operating_reserve_lamports: int = Field(5_000_000, ge=0)
    slippage_bps: int = Field(500, ge=0, le=10_000)
    priority_fee_microlamports: int = Field(100_000, ge=0)
    retry_attempts: int = Field(4, ge=1)
    retry_base_delay: float = Field(2.0, ge=0)
    call_timeout: Optional[float] = Field(30.0, gt=0)
    pump_portal_api: str = DEFAULT_PUMP_PORTAL_API
    pump_fun_api: str = DEFAULT_PUMP_FUN_API
    state_file: Optional[str] = None
    price_poll_seconds: float = Field(30.0, gt=0)

    @field_validator("rpc_url", "pump_portal_api", "pump_fun_api")
    @classmethod
    def _http_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"expected an http(s) URL, got {value!r}")
        return value

    @field_validator("token_mint")
    @classmethod
    def _strip_mint(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @property
    def percentages(self) -> SplitPercentages:
        return self.split.to_percentages()

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            call_timeout=self.call_timeout,
        )

    @property
    def claim_interval_seconds(self) -> float:
        return self.claim_interval_minutes * 60.0


def validate_config(data: Mapping[str, Any]) -> EngineConfig:
    """Validate ``data`` against :class:`EngineConfig`.

    Raises :class:`ConfigError` on validation errors.
    """
    try:
        return EngineConfig.model_validate(dict(data))
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def _read_file(path: Path) -> Dict[str, Any]:
    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            with path.open("rb") as fh:
                data = tomllib.load(fh)
        elif suffix in {".yaml", ".yml"}:
            with path.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        else:
            raise ConfigError(f"unsupported config format: {path.name}")
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"could not read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def load_config(path: str | os.PathLike | None = None) -> EngineConfig:
    """Load configuration from ``path`` (TOML or YAML); defaults when ``None``."""

    if path is None:
        return EngineConfig()
    cfg_path = Path(path).expanduser()
    data = _read_file(cfg_path)
    logger.debug("Loaded configuration from %s", cfg_path)
    return validate_config(data)


def find_config_file(root: str | os.PathLike | None = None) -> Optional[Path]:
    """Return the config file named by ``STARFIRE_CONFIG`` or found in ``root``."""

    configured = os.getenv(CONFIG_ENV)
    if configured:
        candidate = Path(configured).expanduser()
        if candidate.is_file():
            return candidate
        logger.warning("%s points to missing file %s", CONFIG_ENV, candidate)
    base = Path(root) if root is not None else Path.cwd()
    for name in CONFIG_CANDIDATES:
        candidate = base / name
        if candidate.is_file():
            return candidate
    return None


# environment variable -> config field
ENV_OVERRIDES: Dict[str, str] = {
    "TOKEN_MINT": "token_mint",
    "SOLANA_RPC_URL": "rpc_url",
    "RPC_URL": "rpc_url",
    "CLAIM_INTERVAL_MINUTES": "claim_interval_minutes",
    "MIN_HOLDERS": "min_holders",
    "MIN_FEE_THRESHOLD_LAMPORTS": "min_fee_threshold_lamports",
    "OPERATING_RESERVE_LAMPORTS": "operating_reserve_lamports",
    "SLIPPAGE_BPS": "slippage_bps",
    "PRIORITY_FEE_MICROLAMPORTS": "priority_fee_microlamports",
    "STARFIRE_STATE_FILE": "state_file",
    "PUMP_PORTAL_API": "pump_portal_api",
    "PUMP_FUN_API": "pump_fun_api",
}


def apply_env_overrides(
    cfg: EngineConfig, env: Mapping[str, str] | None = None
) -> EngineConfig:
    """Return a copy of ``cfg`` with environment variables taking precedence.

    ``RPC_URL`` wins over ``SOLANA_RPC_URL`` when both are set.
    """

    source = os.environ if env is None else env
    data = cfg.model_dump()
    applied = []
    for env_name, field_name in ENV_OVERRIDES.items():
        raw = source.get(env_name)
        if raw is None or not raw.strip():
            continue
        data[field_name] = raw.strip()
        applied.append(env_name)
    if not applied:
        return cfg
    logger.debug("Applied environment overrides: %s", ", ".join(applied))
    return validate_config(data)


__all__ = [
    "ConfigError",
    "EngineConfig",
    "ENV_OVERRIDES",
    "SplitConfig",
    "apply_env_overrides",
    "find_config_file",
    "load_config",
    "validate_config",
]
