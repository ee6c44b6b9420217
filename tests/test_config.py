# =============================================================================
# Configuration Tests
# =============================================================================

import pytest

from mailhawk.config import Config, ConfigError, get_xdg_config_home


def test_defaults():
    config = Config()

    assert config.server.port == 3000
    assert config.fetch.listing_limit == 30
    assert config.fetch.listing_timeout == 30
    assert config.fetch.message_timeout == 180
    assert config.fetch.large_message_timeout == 600
    assert config.fetch.large_message_threshold == 10 * 1024 * 1024
    assert config.smtp.default_port == 587
    assert config.default_imap.to_dict() == {"host": "imap.web.de", "port": 993, "secure": True}
    assert config.default_smtp.to_dict() == {"host": "smtp.web.de", "port": 587, "secure": False}
    assert [p.name for p in config.providers] == ["WEB.DE", "GMX", "Custom"]


def test_xdg_config_home(monkeypatch, temp_dir):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(temp_dir))
    assert get_xdg_config_home() == temp_dir / "mailhawk"


def test_missing_file_gives_defaults(temp_dir):
    config = Config.load(temp_dir / "missing.toml", environ={})
    assert config.server.host == "127.0.0.1"


def test_save_and_load_round_trip(temp_dir):
    path = temp_dir / "config.toml"
    config = Config()
    config.server.port = 8080
    config.fetch.batch_size = 25
    config.sessions.max_sessions = 3
    config.providers[0].smtp_port = 465

    config.save(path)
    loaded = Config.load(path, environ={})

    assert loaded.server.port == 8080
    assert loaded.fetch.batch_size == 25
    assert loaded.sessions.max_sessions == 3
    assert loaded.providers[0].name == "WEB.DE"
    assert loaded.providers[0].smtp_port == 465


def test_invalid_toml(temp_dir):
    path = temp_dir / "config.toml"
    path.write_text("[server\nport = ")

    with pytest.raises(ConfigError):
        Config.load(path, environ={})


def test_invalid_value(temp_dir):
    path = temp_dir / "config.toml"
    path.write_text('[server]\nport = "not a number"\n')

    with pytest.raises(ConfigError):
        Config.load(path, environ={})


def test_environment_overrides(temp_dir):
    environ = {
        "PORT": "4000",
        "CORS_ORIGIN": "https://mail.example.com",
        "MAILHAWK_VERIFY_CERTS": "false",
        "DEFAULT_IMAP_HOST": "imap.example.com",
        "DEFAULT_SMTP_SECURE": "true",
        "GMX_IMAP_SERVER": "imap.gmx.de",
        "GMX_SMTP_PORT": "465",
    }

    config = Config.load(temp_dir / "missing.toml", environ=environ)

    assert config.server.port == 4000
    assert config.server.cors_origin == "https://mail.example.com"
    assert not config.imap.verify_certificates
    assert not config.smtp.verify_certificates
    assert config.default_imap.host == "imap.example.com"
    assert config.default_smtp.secure is True
    gmx = next(p for p in config.providers if p.name == "GMX")
    assert gmx.imap_server == "imap.gmx.de"
    assert gmx.smtp_port == 465


def test_bad_environment_value(temp_dir):
    with pytest.raises(ConfigError):
        Config.load(temp_dir / "missing.toml", environ={"MAILHAWK_PORT": "abc"})
