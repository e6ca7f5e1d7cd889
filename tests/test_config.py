# tests/test_config.py
import pytest

from detailing.config import ConfigError, load_config

MINIMAL = """
[api]
base_url = "http://localhost:8080/api/"

[web]
secret_key = "s3cret"
"""


def write(tmp_path, text):
    path = tmp_path / "config.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_fill_optional_sections(tmp_path):
    cfg = load_config(write(tmp_path, MINIMAL))

    assert cfg.api.base_url == "http://localhost:8080/api"
    assert cfg.api.timeout == 15.0
    assert cfg.web.port == 5000
    assert cfg.log_level == "INFO"
    assert cfg.business.event_duration_minutes == 60
    assert cfg.session.storage_path == ".detailing_session.json"


def test_full_config(tmp_path):
    cfg = load_config(
        write(
            tmp_path,
            MINIMAL
            + """
[app]
name = "Studio"
log_level = "debug"

[business]
event_duration_minutes = 90
""",
        )
    )
    assert cfg.name == "Studio"
    assert cfg.log_level == "DEBUG"
    assert cfg.business.event_duration_minutes == 90


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.toml")


def test_missing_required_section(tmp_path):
    with pytest.raises(ConfigError, match="Missing config key"):
        load_config(write(tmp_path, '[api]\nbase_url = "http://x"\n'))


def test_bad_toml(tmp_path):
    with pytest.raises(ConfigError, match="TOML"):
        load_config(write(tmp_path, "[api\n"))


def test_duration_must_be_positive(tmp_path):
    with pytest.raises(ConfigError, match="event_duration_minutes"):
        load_config(write(tmp_path, MINIMAL + "\n[business]\nevent_duration_minutes = 0\n"))
