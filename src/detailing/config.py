from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import tomllib


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class ApiConfig:
    base_url: str
    timeout: float = 15.0


@dataclass(frozen=True)
class WebConfig:
    secret_key: str
    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False


@dataclass(frozen=True)
class SessionConfig:
    storage_path: str = ".detailing_session.json"


@dataclass(frozen=True)
class BusinessConfig:
    event_duration_minutes: int = 60


@dataclass(frozen=True)
class AppConfig:
    name: str
    log_level: str
    api: ApiConfig
    web: WebConfig
    session: SessionConfig
    business: BusinessConfig


def load_config(path: str | Path) -> AppConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p.resolve()}")

    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to read config TOML: {e}") from e

    try:
        app = data.get("app", {})
        api = data["api"]
        web = data["web"]
        session = data.get("session", {})
        business = data.get("business", {})
        cfg = AppConfig(
            name=str(app.get("name", "Detailing Desk")),
            log_level=str(app.get("log_level", "INFO")).upper(),
            api=ApiConfig(
                base_url=str(api["base_url"]).rstrip("/"),
                timeout=float(api.get("timeout", 15.0)),
            ),
            web=WebConfig(
                secret_key=str(web["secret_key"]),
                host=str(web.get("host", "127.0.0.1")),
                port=int(web.get("port", 5000)),
                debug=bool(web.get("debug", False)),
            ),
            session=SessionConfig(
                storage_path=str(session.get("storage_path", ".detailing_session.json")),
            ),
            business=BusinessConfig(
                event_duration_minutes=int(business.get("event_duration_minutes", 60)),
            ),
        )
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config values: {e}") from e

    if cfg.business.event_duration_minutes <= 0:
        raise ConfigError("business.event_duration_minutes must be > 0")
    return cfg
