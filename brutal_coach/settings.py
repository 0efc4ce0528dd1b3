import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from brutal_coach.completion import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_RATE_LIMIT_WAIT_MS,
    DEFAULT_RATE_LIMIT_WAIT_MS,
)

CONFIG_FILE = Path("config-coach.yaml")

DEFAULT_MODEL = "groq/llama-3.3-70b-versatile"
DEFAULT_PROVIDERS = {
    "groq": {"base_url": "https://api.groq.com/openai/v1"},
}
DEFAULT_MIN_HOURS = 0.5
DEFAULT_MAX_HOURS = 12.0
DEFAULT_REQUEST_TIMEOUT = 30.0


def get_config(filename: Optional[str] = None) -> dict[str, Any]:
    """Read the YAML config. A missing file is not an error: env vars may carry everything."""
    path = Path(filename or os.getenv("COACH_CONFIG") or CONFIG_FILE)
    if not path.exists():
        logging.info(f"No config file at {path}, using defaults and environment")
        return {}
    with open(path, encoding="utf-8") as file:
        return yaml.safe_load(file) or {}


@dataclass(frozen=True)
class Settings:
    bot_token: Optional[str]
    api_key: Optional[str]
    provider: str
    model: str
    base_url: Optional[str]
    model_params: dict[str, Any] = field(default_factory=dict)
    client_id: Optional[str] = None
    min_hours: float = DEFAULT_MIN_HOURS
    max_hours: float = DEFAULT_MAX_HOURS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    rate_limit_wait_ms: int = DEFAULT_RATE_LIMIT_WAIT_MS
    max_rate_limit_wait_ms: int = DEFAULT_MAX_RATE_LIMIT_WAIT_MS
    failure_backoff_ms: int = 0
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    log_level: str = "INFO"

    @property
    def api_key_env(self) -> str:
        return f"{self.provider.upper()}_API_KEY"

    def missing_credentials(self) -> list[str]:
        missing = []
        if not self.bot_token:
            missing.append("DISCORD_TOKEN")
        if not self.api_key:
            missing.append(self.api_key_env)
        return missing


def _value(section: dict[str, Any], key: str, default: Any) -> Any:
    """Keys left blank in YAML load as None and fall back to the default."""
    value = section.get(key)
    return default if value is None else value


def load_settings(config: Optional[dict[str, Any]] = None, env: Optional[dict[str, str]] = None) -> Settings:
    """Merge the YAML config with environment overrides (.env files included)."""
    if env is None:
        load_dotenv()
        env = dict(os.environ)
    if config is None:
        config = get_config(env.get("COACH_CONFIG"))

    models = config.get("models") or {DEFAULT_MODEL: {}}
    curr_model = next(iter(models))
    provider, model = curr_model.split("/", 1)
    configured = (config.get("providers") or {}).get(provider) or {}
    provider_config = {
        **DEFAULT_PROVIDERS.get(provider, {}),
        **{key: value for key, value in configured.items() if value is not None},
    }

    session = config.get("session") or {}
    completion = config.get("completion") or {}

    min_hours = float(_value(session, "min_hours", DEFAULT_MIN_HOURS))
    max_hours = float(_value(session, "max_hours", DEFAULT_MAX_HOURS))
    if min_hours <= 0 or min_hours > max_hours:
        raise ValueError(f"Invalid session bounds: min_hours={min_hours}, max_hours={max_hours}")

    return Settings(
        bot_token=env.get("DISCORD_TOKEN") or config.get("bot_token"),
        api_key=env.get(f"{provider.upper()}_API_KEY") or provider_config.get("api_key"),
        provider=provider,
        model=model,
        base_url=provider_config.get("base_url"),
        model_params=dict(models[curr_model] or {}),
        client_id=config.get("client_id"),
        min_hours=min_hours,
        max_hours=max_hours,
        max_attempts=int(_value(completion, "max_attempts", DEFAULT_MAX_ATTEMPTS)),
        rate_limit_wait_ms=int(_value(completion, "rate_limit_wait_ms", DEFAULT_RATE_LIMIT_WAIT_MS)),
        max_rate_limit_wait_ms=int(
            _value(completion, "max_rate_limit_wait_ms", DEFAULT_MAX_RATE_LIMIT_WAIT_MS)
        ),
        failure_backoff_ms=int(_value(completion, "failure_backoff_ms", 0)),
        request_timeout=float(_value(completion, "request_timeout", DEFAULT_REQUEST_TIMEOUT)),
        log_level=(env.get("LOG_LEVEL") or config.get("log_level") or "INFO").upper(),
    )
