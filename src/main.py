from __future__ import annotations

import logging
from datetime import timedelta

from detailing.api import Api
from detailing.cli import run_cli
from detailing.config import ConfigError, load_config
from detailing.identity import Identity
from detailing.repositories.auth_repo import AuthRepository
from detailing.storage import JsonFileStorage


def main() -> int:
    try:
        cfg = load_config("config.toml")
        logging.basicConfig(
            level=cfg.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        api = Api(cfg.api)
        identity = Identity(JsonFileStorage(cfg.session.storage_path), api=api, auth_repo=AuthRepository())
        run_cli(api, identity, event_duration=timedelta(minutes=cfg.business.event_duration_minutes))
        return 0
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
